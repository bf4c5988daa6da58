# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc_client

"""
TokenClient component for the authorization code exchange at the token endpoint.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from coreason_oidc_client.config import OidcClientSettings
from coreason_oidc_client.exceptions import NetworkError
from coreason_oidc_client.metadata_service import MetadataService
from coreason_oidc_client.models import TokenResponse
from coreason_oidc_client.transport import JsonService
from coreason_oidc_client.utils.logger import logger


class TokenClient:
    """
    Exchanges authorization codes for tokens (RFC 6749 section 4.1.3).

    Attributes:
        settings (OidcClientSettings): The client settings.
        metadata_service (MetadataService): Source of the token endpoint.
    """

    def __init__(
        self,
        settings: OidcClientSettings,
        metadata_service: MetadataService,
        client: httpx.AsyncClient,
    ) -> None:
        self.settings = settings
        self.metadata_service = metadata_service
        self._json_service = JsonService(client)

    async def exchange_code(
        self,
        *,
        client_id: str,
        code: str,
        redirect_uri: str,
        code_verifier: str,
        client_secret: str | None = None,
        **extra: Any,
    ) -> TokenResponse:
        """
        Exchanges an authorization code at the token endpoint.

        The client authenticates with `client_secret_post` (secret in the form body) or
        `client_secret_basic` (HTTP Basic), as configured. A public client sends no secret.

        Args:
            client_id: The OIDC Client ID.
            code: The authorization code.
            redirect_uri: The redirect URI of the authorization request.
            code_verifier: The PKCE verifier, or an empty string.
            client_secret: The client secret, if the client is confidential.
            **extra: Additional token request parameters.

        Returns:
            TokenResponse: The token endpoint response. In-band errors are returned, not raised.

        Raises:
            MissingMetadataPropertyError: If the provider publishes no token endpoint.
            NetworkError: If the request fails or the response is not a token response.
        """
        url = await self.metadata_service.get_token_endpoint(optional=False)

        form: dict[str, Any] = {
            **extra,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
            "client_id": client_id,
        }

        basic_auth: tuple[str, str] | None = None
        if client_secret is not None:
            if self.settings.client_authentication == "client_secret_basic":
                basic_auth = (client_id, client_secret)
                # Basic authentication carries the client_id
                del form["client_id"]
            else:
                form["client_secret"] = client_secret

        logger.debug(f"Exchanging authorization code at {url}")
        data = await self._json_service.post_form(url, form, basic_auth=basic_auth)  # type: ignore[arg-type]

        if not isinstance(data, dict):
            raise NetworkError(f"Invalid token response from {url}: not a JSON object")
        try:
            return TokenResponse(**data)
        except ValidationError as e:
            raise NetworkError(f"Invalid token response from {url}: {e}") from e

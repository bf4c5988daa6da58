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
OidcClient component wiring the metadata, token, user info and validation components together.
"""

from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_oidc_client.config import OidcClientSettings
from coreason_oidc_client.metadata_service import MetadataService
from coreason_oidc_client.models import SigninResponse, SigninState, SignoutResponse, SignoutState
from coreason_oidc_client.token_client import TokenClient
from coreason_oidc_client.user_info_service import UserInfoService
from coreason_oidc_client.validator import ResponseValidator


class OidcClient:
    """
    Relying-party entry point for processing provider callbacks.
    Handles resources via async context manager.
    """

    def __init__(self, settings: OidcClientSettings, client: httpx.AsyncClient | None = None) -> None:
        """
        Initialize the OidcClient.

        Args:
            settings: The client settings.
            client: External async client (optional). If not provided, one is created with
                `settings.http_timeout` and closed on exit.
        """
        self.settings = settings
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        self.metadata_service = MetadataService(settings, self._client)
        self.token_client = TokenClient(settings, self.metadata_service, self._client)
        self.user_info_service = UserInfoService(self.metadata_service, self._client)
        self.validator = ResponseValidator(
            settings,
            self.metadata_service,
            token_client=self.token_client,
            user_info_service=self.user_info_service,
        )

    async def __aenter__(self) -> "OidcClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def process_signin_response(self, state: SigninState, response: SigninResponse) -> SigninResponse:
        """
        Validates the authorization response for a stored sign-in state.

        Delegates to `ResponseValidator.validate_signin_response`.

        Args:
            state: The stored sign-in state, looked up by the response's `state` parameter.
            response: The parsed authorization response.

        Returns:
            SigninResponse: The validated response, with `state` set to the application data.
        """
        return await self.validator.validate_signin_response(state, response)

    async def process_signout_response(self, state: SignoutState, response: SignoutResponse) -> SignoutResponse:
        """
        Validates the end-session response for a stored sign-out state.

        Delegates to `ResponseValidator.validate_signout_response`.
        """
        return await self.validator.validate_signout_response(state, response)

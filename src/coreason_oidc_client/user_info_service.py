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
UserInfoService component for loading claims from the user info endpoint.
"""

from typing import Any

import httpx

from coreason_oidc_client.exceptions import InvalidUserInfoError
from coreason_oidc_client.metadata_service import MetadataService
from coreason_oidc_client.transport import JsonService
from coreason_oidc_client.utils.logger import logger


class UserInfoService:
    """
    Loads the claims of the authenticated user from the provider's user info endpoint.
    """

    def __init__(self, metadata_service: MetadataService, client: httpx.AsyncClient) -> None:
        self.metadata_service = metadata_service
        self._json_service = JsonService(client)

    async def get_claims(self, access_token: str) -> dict[str, Any]:
        """
        Fetches the user info claims.

        Args:
            access_token: The access token, sent as a Bearer token.

        Returns:
            dict[str, Any]: The claim set.

        Raises:
            MissingMetadataPropertyError: If the provider publishes no user info endpoint.
            InvalidUserInfoError: If the response is not a JSON object.
            NetworkError: If the request fails.
        """
        if not access_token:
            raise InvalidUserInfoError("No access token provided for the user info request")

        url = await self.metadata_service.get_userinfo_endpoint()
        logger.debug(f"Loading user info claims from {url}")

        claims = await self._json_service.get_json(url, token=access_token)
        if not isinstance(claims, dict):
            raise InvalidUserInfoError(f"Invalid user info response from {url}: not a JSON object")

        return claims

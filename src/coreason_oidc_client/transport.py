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
JSON transport used for discovery, key set, token and user info requests.
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from coreason_oidc_client.exceptions import InvalidContentTypeError, NetworkError, OversizedResponseError
from coreason_oidc_client.utils.logger import logger

JSON_CONTENT_TYPE = "application/json"
DEFAULT_MAX_RESPONSE_BYTES = 1_000_000


class JsonService:
    """
    Fetches JSON documents over an httpx client with size and content-type checks.

    Attributes:
        client (httpx.AsyncClient): The async HTTP client.
        accepted_content_types (list[str]): Content types accepted besides `application/json`.
        max_response_bytes (int): Upper bound on the response body size.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        accepted_content_types: Iterable[str] = (),
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self.client = client
        self.accepted_content_types = [JSON_CONTENT_TYPE, *accepted_content_types]
        self.max_response_bytes = max_response_bytes

    async def get_json(self, url: str, *, token: str | None = None) -> Any:
        """
        GETs a JSON document.

        Args:
            url: The URL to fetch.
            token: Optional bearer token sent in the Authorization header.

        Returns:
            Any: The decoded JSON value.

        Raises:
            NetworkError: On transport failure, non-2xx status, bad content type or oversized body.
        """
        headers = {"Accept": ", ".join(self.accepted_content_types)}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        status, content_type, body = await self._send("GET", url, headers=headers)
        if not 200 <= status < 300:
            raise NetworkError(f"GET {url} failed with status {status}")
        return self._decode(url, content_type, body)

    async def post_form(
        self,
        url: str,
        data: Mapping[str, Any],
        *,
        basic_auth: tuple[str, str] | None = None,
    ) -> Any:
        """
        POSTs a form and returns the JSON response.

        A 400 response whose JSON body carries an `error` member is returned as-is so
        that OAuth2 errors can be handled in-band by the caller.

        Args:
            url: The URL to post to.
            data: The form parameters. `None` values are dropped.
            basic_auth: Optional (username, password) for HTTP Basic authentication.

        Returns:
            Any: The decoded JSON value.

        Raises:
            NetworkError: On transport failure, unexpected status, bad content type or oversized body.
        """
        form = {k: str(v) for k, v in data.items() if v is not None}
        auth = httpx.BasicAuth(*basic_auth) if basic_auth else None

        status, content_type, body = await self._send(
            "POST", url, headers={"Accept": JSON_CONTENT_TYPE}, data=form, auth=auth
        )

        if 200 <= status < 300:
            return self._decode(url, content_type, body)

        if status == 400:
            try:
                payload = self._decode(url, content_type, body)
            except NetworkError:
                payload = None
            if isinstance(payload, dict) and payload.get("error"):
                logger.warning(f"POST {url} returned OAuth error: {payload['error']}")
                return payload

        raise NetworkError(f"POST {url} failed with status {status}")

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        data: dict[str, str] | None = None,
        auth: httpx.Auth | None = None,
    ) -> tuple[int, str, bytes]:
        logger.debug(f"{method} {url}")
        try:
            async with self.client.stream(
                method, url, headers=headers, data=data, auth=auth, follow_redirects=True
            ) as response:
                content_length = response.headers.get("Content-Length")
                if content_length and content_length.isdigit() and int(content_length) > self.max_response_bytes:
                    raise OversizedResponseError(f"Response from {url} exceeds {self.max_response_bytes} bytes")

                content = bytearray()
                async for chunk in response.aiter_bytes():
                    content.extend(chunk)
                    if len(content) > self.max_response_bytes:
                        raise OversizedResponseError(f"Response from {url} exceeds {self.max_response_bytes} bytes")

                return response.status_code, response.headers.get("Content-Type", ""), bytes(content)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(f"{method} {url} failed: {e}") from e

    def _decode(self, url: str, content_type: str, body: bytes) -> Any:
        media_type = content_type.split(";")[0].strip().lower()
        if media_type not in self.accepted_content_types:
            raise InvalidContentTypeError(f"Invalid response Content-Type from {url}: {content_type!r}")
        try:
            return json.loads(body)
        except ValueError as e:
            raise NetworkError(f"Invalid JSON response from {url}: {e}") from e

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
MetadataService component for fetching and caching the provider metadata and signing keys.
"""

from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import anyio
import httpx
from pydantic import ValidationError

from coreason_oidc_client.config import OidcClientSettings
from coreason_oidc_client.exceptions import (
    ConfigurationError,
    InvalidKeySetError,
    InvalidMetadataError,
    MissingMetadataPropertyError,
)
from coreason_oidc_client.models import OidcMetadata, SigningKey
from coreason_oidc_client.transport import JsonService
from coreason_oidc_client.utils.logger import logger

OIDC_METADATA_URL_PATH = ".well-known/openid-configuration"
JWK_SET_CONTENT_TYPE = "application/jwk-set+json"

T = TypeVar("T")


class CacheEntry(Generic[T]):
    """
    A lazily populated, manually invalidated cache slot.

    Concurrent callers of `get_or_load` on an empty entry share a single load:
    the first one runs the loader, the others wait for it and reuse its value.
    A failed load leaves the entry empty.
    """

    def __init__(self, value: T | None = None) -> None:
        self._value = value
        # Created lazily so the entry can be built outside of an event loop
        self._lock: anyio.Lock | None = None

    @property
    def populated(self) -> bool:
        return self._value is not None

    @property
    def value(self) -> T | None:
        return self._value

    def invalidate(self) -> None:
        self._value = None

    async def get_or_load(self, loader: Callable[[], Awaitable[T]]) -> T:
        if self._value is not None:
            return self._value

        if self._lock is None:
            self._lock = anyio.Lock()

        async with self._lock:
            # Double check: another task may have populated the entry while we waited
            if self._value is None:
                self._value = await loader()
            return self._value


class MetadataService:
    """
    Fetches and caches the Identity Provider's discovery document and signing keys.

    Attributes:
        settings (OidcClientSettings): The client settings.
        metadata_url (str | None): The resolved discovery document URL.
    """

    def __init__(self, settings: OidcClientSettings, client: httpx.AsyncClient) -> None:
        """
        Initialize the MetadataService.

        Args:
            settings: The client settings. Static `metadata` and `signing_keys` pre-populate the caches.
            client: The async HTTP client to use for requests.
        """
        self.settings = settings
        self._json_service = JsonService(client, accepted_content_types=[JWK_SET_CONTENT_TYPE])
        self.metadata_url = self._resolve_metadata_url(settings)

        if settings.metadata is not None:
            logger.debug("Using metadata from settings")
        if settings.signing_keys is not None:
            logger.debug("Using signing keys from settings")

        self._metadata: CacheEntry[OidcMetadata] = CacheEntry(settings.metadata)
        self._signing_keys: CacheEntry[list[SigningKey]] = CacheEntry(
            self._parse_keys(settings.signing_keys) if settings.signing_keys is not None else None
        )

    @staticmethod
    def _resolve_metadata_url(settings: OidcClientSettings) -> str | None:
        if settings.metadata_url:
            return settings.metadata_url
        if settings.authority:
            authority = settings.authority
            if not authority.endswith("/"):
                authority += "/"
            return authority + OIDC_METADATA_URL_PATH
        return None

    def reset_signing_keys(self) -> None:
        """Drops the cached signing keys so the next `get_signing_keys` fetches the key set again."""
        self._signing_keys.invalidate()

    async def get_metadata(self) -> OidcMetadata:
        """
        Returns the provider metadata, fetching the discovery document on first use.

        Returns:
            OidcMetadata: The provider metadata.

        Raises:
            ConfigurationError: If neither `authority` nor `metadata_url` is configured.
            InvalidMetadataError: If the discovery document is not a valid metadata object.
            NetworkError: If fetching fails.
        """
        if self._metadata.populated:
            logger.debug("Returning metadata from cache")
        return await self._metadata.get_or_load(self._fetch_metadata)

    async def _fetch_metadata(self) -> OidcMetadata:
        if not self.metadata_url:
            logger.error("No authority or metadata_url configured")
            raise ConfigurationError("No authority or metadata_url configured on settings")

        logger.info(f"Fetching OIDC metadata from {self.metadata_url}")
        data = await self._json_service.get_json(self.metadata_url)
        if not isinstance(data, dict):
            raise InvalidMetadataError(f"Invalid OIDC metadata from {self.metadata_url}: not a JSON object")

        # Fetched values take precedence over the seed
        merged = {**(self.settings.metadata_seed or {}), **data}
        try:
            return OidcMetadata(**merged)
        except ValidationError as e:
            raise InvalidMetadataError(f"Invalid OIDC metadata from {self.metadata_url}: {e}") from e

    async def _get_metadata_property(self, name: str, optional: bool = False) -> str | None:
        metadata = await self.get_metadata()
        value = getattr(metadata, name, None)
        if value is None:
            if optional:
                logger.warning(f"Metadata does not contain optional property {name}")
                return None
            logger.error(f"Metadata does not contain property {name}")
            raise MissingMetadataPropertyError(f"Metadata does not contain property {name}")
        return value  # type: ignore[no-any-return]

    async def get_issuer(self) -> str:
        return await self._get_metadata_property("issuer")  # type: ignore[return-value]

    async def get_authorization_endpoint(self) -> str:
        return await self._get_metadata_property("authorization_endpoint")  # type: ignore[return-value]

    async def get_userinfo_endpoint(self) -> str:
        return await self._get_metadata_property("userinfo_endpoint")  # type: ignore[return-value]

    async def get_token_endpoint(self, optional: bool = True) -> str | None:
        return await self._get_metadata_property("token_endpoint", optional)

    async def get_check_session_iframe(self) -> str | None:
        return await self._get_metadata_property("check_session_iframe", True)

    async def get_end_session_endpoint(self) -> str | None:
        return await self._get_metadata_property("end_session_endpoint", True)

    async def get_revocation_endpoint(self) -> str | None:
        return await self._get_metadata_property("revocation_endpoint", True)

    async def get_keys_endpoint(self, optional: bool = True) -> str | None:
        return await self._get_metadata_property("jwks_uri", optional)

    async def get_signing_keys(self) -> list[SigningKey]:
        """
        Returns the provider signing keys, fetching the key set on first use or after a reset.

        Returns:
            list[SigningKey]: The signing keys.

        Raises:
            MissingMetadataPropertyError: If the metadata has no `jwks_uri`.
            InvalidKeySetError: If the key set has no `keys` array or contains invalid keys.
            NetworkError: If fetching fails.
        """
        if self._signing_keys.populated:
            logger.debug("Returning signing keys from cache")
        return await self._signing_keys.get_or_load(self._fetch_signing_keys)

    async def _fetch_signing_keys(self) -> list[SigningKey]:
        jwks_uri = await self.get_keys_endpoint(optional=False)
        logger.info(f"Fetching signing keys from {jwks_uri}")

        key_set = await self._json_service.get_json(jwks_uri)  # type: ignore[arg-type]
        if not isinstance(key_set, dict) or not isinstance(key_set.get("keys"), list):
            logger.error("Missing keys on key set")
            raise InvalidKeySetError(f"Missing keys on key set from {jwks_uri}")

        keys = self._parse_keys(key_set["keys"])
        logger.debug(f"Received {len(keys)} signing keys")
        return keys

    @staticmethod
    def _parse_keys(raw_keys: list[object]) -> list[SigningKey]:
        try:
            return [SigningKey.model_validate(key) for key in raw_keys]
        except ValidationError as e:
            raise InvalidKeySetError(f"Invalid key in key set: {e}") from e

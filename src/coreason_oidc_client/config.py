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
Configuration for the coreason-oidc-client package.
"""

from typing import Any, Literal

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_oidc_client.models import OidcMetadata


class OidcClientSettings(BaseSettings):
    """
    Configuration settings for the relying-party response validation.

    Attributes:
        authority (str | None): The issuer base URL. The discovery URL is derived from it.
        metadata_url (str | None): Explicit discovery document URL. Takes precedence over `authority`.
        metadata (OidcMetadata | None): Static provider metadata. Disables discovery.
        metadata_seed (dict | None): Values the fetched discovery document is merged over.
        signing_keys (list | None): Static JWKs. Disables the initial key set fetch.
        client_id (str): The OIDC Client ID (also the expected id_token audience).
        client_secret (SecretStr | None): The client secret for the token endpoint.
        clock_skew_in_seconds (int): Tolerance for exp/nbf/iat checks.
        filter_protocol_claims (bool): Strip protocol claims from the resulting profile.
        load_user_info (bool): Merge user info endpoint claims into the profile.
        merge_claims (bool): Deep-merge composite claims instead of collecting them in a list.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_OIDC_",
        case_sensitive=False,
    )

    # Declared first so the URL validators below can read it
    unsafe_local_dev: bool = False
    authority: str | None = None
    metadata_url: str | None = None
    metadata: OidcMetadata | None = None
    metadata_seed: dict[str, Any] | None = None
    signing_keys: list[dict[str, Any]] | None = None
    client_id: str
    client_secret: SecretStr | None = None
    client_authentication: Literal["client_secret_post", "client_secret_basic"] = "client_secret_post"
    clock_skew_in_seconds: int = Field(default=300, ge=0, description="Allowed clock skew in seconds.")
    filter_protocol_claims: bool = True
    load_user_info: bool = True
    merge_claims: bool = False
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all IdP network operations.")
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("authority", "metadata_url", mode="after")
    @classmethod
    def validate_https(cls, v: str | None, info: ValidationInfo) -> str | None:
        """
        Ensures that provider URLs use HTTPS, unless strictly opted out for local dev.
        """
        if v and v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

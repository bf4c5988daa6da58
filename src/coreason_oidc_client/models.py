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
Data models for the coreason-oidc-client package.

Request states and callback responses are frozen: each validation stage returns a new
response via `model_copy(update=...)` instead of mutating its input.
"""

import time
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

OPENID_SCOPE = "openid"


def _epoch_now() -> int:
    return int(time.time())


class OidcMetadata(BaseModel):
    """
    OIDC Configuration from .well-known/openid-configuration.

    Every member is optional here; required-ness is decided on access by the MetadataService.
    Unknown members published by the provider are kept as extras.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    issuer: str | None = Field(default=None, description="The OIDC issuer URL.")
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    userinfo_endpoint: str | None = None
    jwks_uri: str | None = Field(default=None, description="The URL to the JWKS.")
    end_session_endpoint: str | None = None
    check_session_iframe: str | None = None
    revocation_endpoint: str | None = None


class SigningKey(BaseModel):
    """
    A public JSON Web Key published by the provider.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    kty: str
    kid: str | None = None
    alg: str | None = None
    use: str | None = None

    def as_jwk(self) -> dict[str, Any]:
        """Returns the key as a JWK dictionary, including key material kept as extras."""
        return self.model_dump(exclude_none=True)


class Claims(RootModel[dict[str, Any]]):
    """
    Ordered claim set of an identity assertion.

    Each claim maps to one JSON value or, after merging, to a list of values.
    Well-known claims have typed accessors; use `get` for everything else.
    """

    model_config = ConfigDict(frozen=True)

    def __getitem__(self, name: str) -> Any:
        return self.root[name]

    def __contains__(self, name: object) -> bool:
        return name in self.root

    def __len__(self) -> int:
        return len(self.root)

    def get(self, name: str, default: Any = None) -> Any:
        return self.root.get(name, default)

    def keys(self) -> list[str]:
        return list(self.root)

    def to_dict(self) -> dict[str, Any]:
        """Returns a shallow copy of the claims."""
        return dict(self.root)

    @property
    def sub(self) -> str | None:
        return self.root.get("sub")

    @property
    def iss(self) -> str | None:
        return self.root.get("iss")

    @property
    def aud(self) -> str | list[str] | None:
        return self.root.get("aud")

    @property
    def azp(self) -> str | None:
        return self.root.get("azp")

    @property
    def exp(self) -> int | None:
        return self.root.get("exp")

    @property
    def iat(self) -> int | None:
        return self.root.get("iat")

    @property
    def nbf(self) -> int | None:
        return self.root.get("nbf")

    @property
    def nonce(self) -> str | None:
        return self.root.get("nonce")

    @property
    def at_hash(self) -> str | None:
        return self.root.get("at_hash")


class State(BaseModel):
    """
    Locally persisted record of an outgoing request.

    Attributes:
        id (str): Opaque correlation id sent as the `state` request parameter.
        data (Any): Application payload handed back to the caller after validation.
        created (int): Creation time in epoch seconds.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    data: Any = None
    created: int = Field(default_factory=_epoch_now)


class SigninState(State):
    """
    Request state of an authorization request.

    Attributes:
        client_id (str): The client the request was made for.
        authority (str): The provider the request was sent to.
        redirect_uri (str): The redirect URI used in the request (repeated at the token endpoint).
        scope (str): The requested scopes, space separated.
        nonce (str | None): The nonce sent, if an id_token was requested.
        code_verifier (str | None): The PKCE verifier, if a code was requested.
        extra_token_params (dict | None): Extra parameters forwarded to the token endpoint.
        skip_user_info (bool): Do not call the user info endpoint for this request.
    """

    client_id: str
    authority: str
    redirect_uri: str
    scope: str = OPENID_SCOPE
    nonce: str | None = None
    code_verifier: str | None = None
    extra_token_params: dict[str, Any] | None = None
    skip_user_info: bool = False


class SignoutState(State):
    """Request state of an end-session request."""


class SigninResponse(BaseModel):
    """
    Authorization response, progressively enriched by the ResponseValidator.

    Before validation `state` holds the correlation id; afterwards it holds the
    application data of the matching SigninState.
    """

    model_config = ConfigDict(frozen=True)

    state: Any = None
    code: str | None = None
    id_token: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None
    session_state: str | None = None
    profile: Claims | None = None
    received_at: int = Field(default_factory=_epoch_now)

    @field_validator("expires_in", mode="before")
    @classmethod
    def parse_expires_in(cls, v: Any) -> int | None:
        return _parse_lifetime(v)

    @property
    def scopes(self) -> list[str]:
        return [s for s in (self.scope or "").split(" ") if s]

    @property
    def is_openid_connect(self) -> bool:
        return OPENID_SCOPE in self.scopes or bool(self.id_token)

    @property
    def expires_at(self) -> int | None:
        if self.expires_in is None:
            return None
        return self.received_at + self.expires_in


class SignoutResponse(BaseModel):
    """End-session response."""

    model_config = ConfigDict(frozen=True)

    state: Any = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None


class TokenResponse(BaseModel):
    """
    Response of the token endpoint.

    Every member is optional: an in-band error carries only `error` fields.
    """

    model_config = ConfigDict(extra="allow")

    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None
    id_token: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    session_state: str | None = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def parse_expires_in(cls, v: Any) -> int | None:
        return _parse_lifetime(v)


def _parse_lifetime(v: Any) -> int | None:
    # Providers send expires_in as a number or a numeric string; anything else counts as absent
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None

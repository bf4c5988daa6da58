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
Custom exceptions for the coreason-oidc-client package.

Every failed check raises its own class. The `check` class attribute names the check,
and `state` carries the correlated opaque application data once the response state
has been matched against the stored request state.
"""

from typing import Any


class CoreasonOidcError(Exception):
    """Base exception for all coreason-oidc-client errors."""

    check: str = "unknown"

    def __init__(self, message: str = "", *, state: Any = None) -> None:
        super().__init__(message)
        self.state = state


class ConfigurationError(CoreasonOidcError):
    """Raised when the client configuration cannot satisfy a request."""

    check = "configuration"


class MissingMetadataPropertyError(ConfigurationError):
    """Raised when a required property is absent from the provider metadata."""

    check = "metadata_property"


class NetworkError(CoreasonOidcError):
    """Raised when an HTTP exchange with the provider fails."""

    check = "network"


class OversizedResponseError(NetworkError):
    """Raised when an HTTP response is too large."""

    check = "response_size"


class InvalidContentTypeError(NetworkError):
    """Raised when a response is not one of the accepted JSON content types."""

    check = "content_type"


class ProtocolError(CoreasonOidcError):
    """Raised when a response violates the OpenID Connect / OAuth2 protocol."""

    check = "protocol"


class StateMismatchError(ProtocolError):
    """Raised when the response state does not match the stored request state."""

    check = "state"


class InvalidStateError(ProtocolError):
    """Raised when the stored request state is incomplete or belongs to another client."""

    check = "request_state"


class MissingIdTokenError(ProtocolError):
    """Raised when a nonce was sent but no id_token came back."""

    check = "id_token_presence"


class UnexpectedIdTokenError(ProtocolError):
    """Raised when an id_token came back although no nonce was sent."""

    check = "id_token_presence"


class MissingCodeError(ProtocolError):
    """Raised when a code_verifier was sent but no code came back."""

    check = "code_presence"


class UnexpectedCodeError(ProtocolError):
    """Raised when a code came back although no code_verifier was sent."""

    check = "code_presence"


class MissingNonceError(ProtocolError):
    """Raised when an id_token must be validated but the request state has no nonce."""

    check = "nonce"


class InvalidNonceError(ProtocolError):
    """Raised when the id_token nonce does not match the request state."""

    check = "nonce"


class MalformedTokenError(ProtocolError):
    """Raised when a JWT cannot be parsed."""

    check = "jwt_format"


class InvalidTokenError(ProtocolError):
    """Raised when a JWT fails attribute or signature validation."""

    check = "jwt"


class TokenExpiredError(InvalidTokenError):
    """Raised when the token has expired."""

    check = "exp"


class InvalidAudienceError(InvalidTokenError):
    """Raised when the token's audience (or authorized party) does not match the client."""

    check = "aud"


class InvalidIssuerError(InvalidTokenError):
    """Raised when the token's issuer does not match the provider metadata."""

    check = "iss"


class SignatureVerificationError(InvalidTokenError):
    """Raised when the token's signature cannot be verified."""

    check = "signature"


class MissingSubjectError(ProtocolError):
    """Raised when the id_token carries no subject."""

    check = "sub"


class SigningKeyNotFoundError(ProtocolError):
    """Raised when no signing key matches the id_token header, even after a key refresh."""

    check = "signing_key"


class InvalidKeySetError(ProtocolError):
    """Raised when the provider's key set document is unusable."""

    check = "key_set"


class InvalidMetadataError(ProtocolError):
    """Raised when the provider's discovery document is unusable."""

    check = "metadata"


class InvalidUserInfoError(ProtocolError):
    """Raised when the user info endpoint does not return a claim set."""

    check = "userinfo"


class SubjectMismatchError(ProtocolError):
    """Raised when the user info subject differs from the id_token subject."""

    check = "userinfo_sub"


class AccessTokenHashError(ProtocolError):
    """Raised when the access token is not bound to the id_token by a matching at_hash."""

    check = "at_hash"


class UnsupportedAlgorithmError(ProtocolError):
    """Raised when the id_token is signed with an algorithm the hash check cannot handle."""

    check = "alg"


class ServerError(CoreasonOidcError):
    """
    In-band error returned by the provider (`error`, `error_description`, `error_uri`).

    Carries the correlated opaque `state` data so the caller can resume its flow.
    """

    check = "server"

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        error_uri: str | None = None,
        *,
        state: Any = None,
        session_state: str | None = None,
    ) -> None:
        super().__init__(error_description or error, state=state)
        self.error = error
        self.error_description = error_description
        self.error_uri = error_uri
        self.session_state = session_state

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
JWT primitives: parsing, attribute and signature validation, and token hashing.
"""

import hashlib
from enum import StrEnum
from typing import Any, cast

from authlib.common.encoding import json_loads, to_bytes, to_unicode, urlsafe_b64decode, urlsafe_b64encode
from authlib.jose import JsonWebToken, JWTClaims
from authlib.jose.errors import (
    BadSignatureError,
    DecodeError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
)
from pydantic import BaseModel, ConfigDict

from coreason_oidc_client.exceptions import (
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    MalformedTokenError,
    SignatureVerificationError,
    TokenExpiredError,
)


class KeyType(StrEnum):
    """JWK `kty` values selected for each signing algorithm family."""

    RSA = "RSA"
    PS = "PS"
    EC = "EC"


class SigningAlgorithm(StrEnum):
    """JWS algorithms with a SHA-2 digest, as named in the JWT `alg` header."""

    HS256 = "HS256"
    HS384 = "HS384"
    HS512 = "HS512"
    RS256 = "RS256"
    RS384 = "RS384"
    RS512 = "RS512"
    PS256 = "PS256"
    PS384 = "PS384"
    PS512 = "PS512"
    ES256 = "ES256"
    ES384 = "ES384"
    ES512 = "ES512"

    @classmethod
    def parse(cls, alg: Any) -> "SigningAlgorithm | None":
        """Returns the algorithm named by `alg`, or None if it is not a known SHA-2 algorithm."""
        try:
            return cls(alg)
        except ValueError:
            return None

    @property
    def key_type(self) -> KeyType | None:
        """The key type a provider key must have to verify this algorithm. None for symmetric algorithms."""
        return _KEY_TYPES[self]

    @property
    def hash_bits(self) -> int:
        return _HASH_BITS[self]

    @property
    def hash_name(self) -> str:
        return f"sha{self.hash_bits}"


_KEY_TYPES: dict[SigningAlgorithm, KeyType | None] = {
    SigningAlgorithm.HS256: None,
    SigningAlgorithm.HS384: None,
    SigningAlgorithm.HS512: None,
    SigningAlgorithm.RS256: KeyType.RSA,
    SigningAlgorithm.RS384: KeyType.RSA,
    SigningAlgorithm.RS512: KeyType.RSA,
    SigningAlgorithm.PS256: KeyType.PS,
    SigningAlgorithm.PS384: KeyType.PS,
    SigningAlgorithm.PS512: KeyType.PS,
    SigningAlgorithm.ES256: KeyType.EC,
    SigningAlgorithm.ES384: KeyType.EC,
    SigningAlgorithm.ES512: KeyType.EC,
}

_HASH_BITS: dict[SigningAlgorithm, int] = {
    SigningAlgorithm.HS256: 256,
    SigningAlgorithm.HS384: 384,
    SigningAlgorithm.HS512: 512,
    SigningAlgorithm.RS256: 256,
    SigningAlgorithm.RS384: 384,
    SigningAlgorithm.RS512: 512,
    SigningAlgorithm.PS256: 256,
    SigningAlgorithm.PS384: 384,
    SigningAlgorithm.PS512: 512,
    SigningAlgorithm.ES256: 256,
    SigningAlgorithm.ES384: 384,
    SigningAlgorithm.ES512: 512,
}

# Only public-key algorithms are accepted for id_token signatures
ASYMMETRIC_ALGORITHMS = [alg.value for alg in SigningAlgorithm if alg.key_type is not None]


class JwtParts(BaseModel):
    """Decoded, unverified header and payload of a compact JWT."""

    model_config = ConfigDict(frozen=True)

    header: dict[str, Any]
    payload: dict[str, Any]


def parse_jwt(token: str) -> JwtParts | None:
    """
    Decodes a compact JWT without verifying it.

    Args:
        token: The compact serialized JWT.

    Returns:
        JwtParts | None: The header and payload, or None if the token is malformed.
    """
    segments = token.split(".")
    if len(segments) != 3:
        return None

    try:
        header = json_loads(urlsafe_b64decode(to_bytes(segments[0])))
        payload = json_loads(urlsafe_b64decode(to_bytes(segments[1])))
    except (TypeError, ValueError):
        return None

    if not isinstance(header, dict) or not isinstance(payload, dict):
        return None
    return JwtParts(header=header, payload=payload)


def _claims_options(issuer: str, audience: str) -> dict[str, Any]:
    return {
        "iss": {"essential": True, "value": issuer},
        "aud": {"essential": True, "value": audience},
        "exp": {"essential": True},
        "iat": {"essential": True},
    }


def _validate_claims(claims: JWTClaims, audience: str, clock_skew: int, now: int) -> dict[str, Any]:
    try:
        claims.validate(now=now, leeway=clock_skew)
    except ExpiredTokenError as e:
        raise TokenExpiredError(f"Token has expired: {e}") from e
    except MissingClaimError as e:
        raise InvalidTokenError(f"Missing claim: {e}") from e
    except InvalidClaimError as e:
        if e.claim_name == "aud":
            raise InvalidAudienceError(f"Invalid audience: {e}") from e
        if e.claim_name == "iss":
            raise InvalidIssuerError(f"Invalid issuer: {e}") from e
        raise InvalidTokenError(f"Invalid claim: {e}") from e
    except JoseError as e:
        raise InvalidTokenError(f"Token validation failed: {e}") from e

    azp = claims.get("azp")
    if azp and azp != audience:
        raise InvalidAudienceError(f"Invalid azp in token: {azp}")

    return dict(claims)


def validate_jwt_attributes(token: str, issuer: str, audience: str, clock_skew: int, now: int) -> dict[str, Any]:
    """
    Validates the standard attributes of a JWT without checking its signature.

    Args:
        token: The compact serialized JWT.
        issuer: The expected `iss`.
        audience: The expected `aud` member (and `azp`, when present).
        clock_skew: Tolerance in seconds for `exp`, `nbf` and `iat`.
        now: The current time in epoch seconds.

    Returns:
        dict[str, Any]: The token payload.

    Raises:
        MalformedTokenError: If the token cannot be parsed.
        InvalidTokenError: If an attribute check fails.
    """
    parts = parse_jwt(token)
    if parts is None:
        raise MalformedTokenError("Failed to parse JWT")

    claims = JWTClaims(parts.payload, parts.header, options=_claims_options(issuer, audience))
    return _validate_claims(claims, audience, clock_skew, now)


def validate_jwt(
    token: str,
    key: dict[str, Any],
    issuer: str,
    audience: str,
    clock_skew: int,
    now: int,
) -> dict[str, Any]:
    """
    Verifies the signature of a JWT with the given JWK and validates its standard attributes.

    Args:
        token: The compact serialized JWT.
        key: The public JWK to verify with.
        issuer: The expected `iss`.
        audience: The expected `aud` member.
        clock_skew: Tolerance in seconds for `exp`, `nbf` and `iat`.
        now: The current time in epoch seconds.

    Returns:
        dict[str, Any]: The token payload.

    Raises:
        MalformedTokenError: If the token cannot be decoded.
        SignatureVerificationError: If the signature is invalid or the key unusable.
        InvalidTokenError: If an attribute check fails.
    """
    jwt = JsonWebToken(ASYMMETRIC_ALGORITHMS)
    try:
        # authlib ships without complete type hints for decode
        claims = cast("Any", jwt).decode(token, key, claims_options=_claims_options(issuer, audience))
    except BadSignatureError as e:
        raise SignatureVerificationError(f"Invalid signature: {e}") from e
    except DecodeError as e:
        raise MalformedTokenError(f"Failed to decode JWT: {e}") from e
    except JoseError as e:
        raise SignatureVerificationError(f"Signature verification failed: {e}") from e
    except ValueError as e:
        # authlib raises ValueError when the JWK cannot be imported
        raise SignatureVerificationError(f"Invalid signing key: {e}") from e

    return _validate_claims(claims, audience, clock_skew, now)


def hash_string(value: str, algorithm: str) -> bytes:
    """
    Digests a string.

    Args:
        value: The string to hash, UTF-8 encoded.
        algorithm: A hashlib algorithm name such as "sha256".

    Returns:
        bytes: The raw digest.
    """
    return hashlib.new(algorithm, value.encode("utf-8")).digest()


def base64url_encode(data: bytes) -> str:
    """Base64url-encodes bytes without padding."""
    return to_unicode(urlsafe_b64encode(data))

# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc_client

import json
import time
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from authlib.jose import JsonWebKey, jwt
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Tracer

from coreason_oidc_client.config import OidcClientSettings
from coreason_oidc_client.jose import parse_jwt
from coreason_oidc_client.metadata_service import MetadataService
from coreason_oidc_client.token_client import TokenClient
from coreason_oidc_client.user_info_service import UserInfoService
from coreason_oidc_client.validator import ResponseValidator

ISSUER = "https://idp.example"
CLIENT_ID = "client-123"
REDIRECT_URI = "https://app.example/callback"
NONCE = "nonce-abc"


class FakeIdentityProvider:
    """
    In-memory provider served through httpx.MockTransport.

    Records every request and serves discovery, key set, token and user info endpoints.
    """

    def __init__(self, keys: list[dict[str, Any]]) -> None:
        self.metadata: dict[str, Any] = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "userinfo_endpoint": f"{ISSUER}/userinfo",
            "jwks_uri": f"{ISSUER}/jwks",
            "end_session_endpoint": f"{ISSUER}/logout",
        }
        self.jwks: dict[str, Any] = {"keys": keys}
        self.token_response: dict[str, Any] = {}
        self.token_status = 200
        self.userinfo: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.metadata)
        if path == "/jwks":
            return httpx.Response(
                200,
                content=json.dumps(self.jwks).encode("utf-8"),
                headers={"Content-Type": "application/jwk-set+json"},
            )
        if path == "/token":
            return httpx.Response(self.token_status, json=self.token_response)
        if path == "/userinfo":
            return httpx.Response(200, json=self.userinfo)
        return httpx.Response(404, json={"error": "not_found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(scope="session")
def rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "rsa-1"})


@pytest.fixture(scope="session")
def rotated_rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "rsa-2"})


@pytest.fixture(scope="session")
def ec_key() -> Any:
    return JsonWebKey.generate_key("EC", "P-256", is_private=True, options={"kid": "ec-1"})


@pytest.fixture
def id_token_claims() -> dict[str, Any]:
    now = int(time.time())
    return {
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "sub": "user-1",
        "nonce": NONCE,
        "iat": now,
        "exp": now + 300,
        "email": "alice@example.com",
    }


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Signs claims with the given private key. `kid=None` leaves the kid out of the header."""

    def _make(key: Any, claims: dict[str, Any], alg: str = "RS256", kid: Any = "from-key") -> str:
        header: dict[str, Any] = {"alg": alg}
        signing_key = key
        if kid == "from-key":
            kid = key.as_dict()["kid"]
        else:
            # authlib copies the key's own kid into the header, so sign with a kid-less copy
            private = {k: v for k, v in key.as_dict(is_private=True).items() if k != "kid"}
            signing_key = JsonWebKey.import_key(private)
        if kid is not None:
            header["kid"] = kid

        token = jwt.encode(header, claims, signing_key).decode("utf-8")
        assert parse_jwt(token).header.get("kid") == kid  # type: ignore[union-attr]
        return token  # type: ignore[no-any-return]

    return _make


@pytest.fixture
def settings() -> OidcClientSettings:
    return OidcClientSettings(authority=ISSUER, client_id=CLIENT_ID)


@pytest.fixture
def idp(rsa_key: Any) -> FakeIdentityProvider:
    return FakeIdentityProvider([rsa_key.as_dict()])


@pytest.fixture
def make_validator() -> Callable[..., ResponseValidator]:
    """Wires a ResponseValidator to the fake provider, with an optional fixed clock."""

    def _make(
        settings: OidcClientSettings, idp: FakeIdentityProvider, clock: Callable[[], float] = time.time
    ) -> ResponseValidator:
        http = idp.client()
        metadata_service = MetadataService(settings, http)
        return ResponseValidator(
            settings,
            metadata_service,
            token_client=TokenClient(settings, metadata_service, http),
            user_info_service=UserInfoService(metadata_service, http),
            clock=clock,
        )

    return _make


@pytest.fixture
def telemetry_setup() -> tuple[InMemorySpanExporter, Tracer]:
    """Sets up an OpenTelemetry tracer with an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return exporter, provider.get_tracer("test_tracer")

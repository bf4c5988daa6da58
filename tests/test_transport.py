# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc_client

import base64
from collections.abc import Callable

import httpx
import pytest

from coreason_oidc_client.exceptions import InvalidContentTypeError, NetworkError, OversizedResponseError
from coreason_oidc_client.transport import JsonService


def make_service(handler: Callable[[httpx.Request], httpx.Response], **kwargs: object) -> JsonService:
    return JsonService(httpx.AsyncClient(transport=httpx.MockTransport(handler)), **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_get_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    service = make_service(handler)
    assert await service.get_json("https://idp.example/doc") == {"ok": True}
    assert seen[0].headers["Accept"] == "application/json"
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_get_json_with_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    await make_service(handler).get_json("https://idp.example/userinfo", token="at-1")
    assert seen[0].headers["Authorization"] == "Bearer at-1"


@pytest.mark.asyncio
async def test_content_type_with_charset_accepted() -> None:
    service = make_service(
        lambda r: httpx.Response(200, content=b'{"a": 1}', headers={"Content-Type": "application/json; charset=utf-8"})
    )
    assert await service.get_json("https://idp.example/doc") == {"a": 1}


@pytest.mark.asyncio
async def test_extra_content_type_accepted() -> None:
    service = make_service(
        lambda r: httpx.Response(200, content=b'{"keys": []}', headers={"Content-Type": "application/jwk-set+json"}),
        accepted_content_types=["application/jwk-set+json"],
    )
    assert await service.get_json("https://idp.example/jwks") == {"keys": []}


@pytest.mark.asyncio
async def test_invalid_content_type() -> None:
    service = make_service(
        lambda r: httpx.Response(200, content=b"<html></html>", headers={"Content-Type": "text/html"})
    )
    with pytest.raises(InvalidContentTypeError, match="text/html"):
        await service.get_json("https://idp.example/doc")


@pytest.mark.asyncio
async def test_invalid_json() -> None:
    service = make_service(
        lambda r: httpx.Response(200, content=b"{not json", headers={"Content-Type": "application/json"})
    )
    with pytest.raises(NetworkError, match="Invalid JSON"):
        await service.get_json("https://idp.example/doc")


@pytest.mark.asyncio
async def test_error_status() -> None:
    service = make_service(lambda r: httpx.Response(500, json={"error": "boom"}))
    with pytest.raises(NetworkError, match="500"):
        await service.get_json("https://idp.example/doc")


@pytest.mark.asyncio
async def test_transport_error_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError, match="connection refused") as exc_info:
        await make_service(handler).get_json("https://idp.example/doc")
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_oversized_by_content_length() -> None:
    service = make_service(lambda r: httpx.Response(200, json={"data": "x" * 200}), max_response_bytes=100)
    with pytest.raises(OversizedResponseError):
        await service.get_json("https://idp.example/doc")


@pytest.mark.asyncio
async def test_oversized_streamed_body() -> None:
    async def body():  # type: ignore[no-untyped-def]
        for _ in range(10):
            yield b"x" * 50

    service = make_service(
        lambda r: httpx.Response(200, content=body(), headers={"Content-Type": "application/json"}),
        max_response_bytes=100,
    )
    with pytest.raises(OversizedResponseError):
        await service.get_json("https://idp.example/doc")


@pytest.mark.asyncio
async def test_post_form() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "at"})

    result = await make_service(handler).post_form("https://idp.example/token", {"a": "1", "skip": None, "n": 5})

    assert result == {"access_token": "at"}
    assert seen[0].method == "POST"
    assert seen[0].headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert seen[0].content == b"a=1&n=5"


@pytest.mark.asyncio
async def test_post_form_basic_auth() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    await make_service(handler).post_form("https://idp.example/token", {}, basic_auth=("client", "secret"))

    expected = base64.b64encode(b"client:secret").decode()
    assert seen[0].headers["Authorization"] == f"Basic {expected}"


@pytest.mark.asyncio
async def test_post_form_oauth_error_returned_in_band() -> None:
    service = make_service(lambda r: httpx.Response(400, json={"error": "invalid_grant"}))
    assert await service.post_form("https://idp.example/token", {}) == {"error": "invalid_grant"}


@pytest.mark.asyncio
async def test_post_form_bad_request_without_error_raises() -> None:
    service = make_service(lambda r: httpx.Response(400, content=b"bad", headers={"Content-Type": "text/plain"}))
    with pytest.raises(NetworkError, match="400"):
        await service.post_form("https://idp.example/token", {})


@pytest.mark.asyncio
async def test_post_form_server_error_raises() -> None:
    service = make_service(lambda r: httpx.Response(401, json={"error": "invalid_client"}))
    with pytest.raises(NetworkError, match="401"):
        await service.post_form("https://idp.example/token", {})

"""Tests for the transport response wrapper and the httpx-backed transport."""

import httpx
import pytest

from portal_docs.exceptions import TransportError
from portal_docs.transport import HttpxTransport, TransportResponse


def test_response_headers_are_case_insensitive():
    response = TransportResponse(status=200, headers={"Content-Type": "application/pdf"}, body=b"%PDF")

    assert response.ok
    assert response.content_type == "application/pdf"
    assert response.header("CONTENT-TYPE") == "application/pdf"
    assert response.header("content-disposition") == ""
    assert not TransportResponse(status=302).ok


def test_response_text_uses_declared_charset():
    response = TransportResponse(
        status=200,
        headers={"content-type": "text/html; charset=windows-1250"},
        body="Přílohy:".encode("windows-1250"),
    )

    assert response.text() == "Přílohy:"


@pytest.mark.asyncio
async def test_httpx_transport_sends_session_cookies():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["cookie"] = request.headers.get("cookie")
        return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), cookies={"UISAuth": "abc"})
    transport = HttpxTransport(client=client)

    response = await transport.retrieve("https://is.mendelu.cz/auth/dok_server/slozka.pl?download=1")

    assert response.status == 200
    assert response.body == b"%PDF"
    assert response.content_type == "application/pdf"
    assert "UISAuth=abc" in seen["cookie"]
    await client.aclose()


@pytest.mark.asyncio
async def test_httpx_errors_become_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(TransportError) as exc_info:
        await transport.retrieve("https://is.mendelu.cz/x")

    assert exc_info.value.uri == "https://is.mendelu.cz/x"
    await transport.client.aclose()


@pytest.mark.asyncio
async def test_from_cookie_header():
    transport = HttpxTransport.from_cookie_header("UISAuth=abc; lang=cz; broken")

    assert transport.client.cookies.get("UISAuth") == "abc"
    assert transport.client.cookies.get("lang") == "cz"
    await transport.aclose()


@pytest.mark.asyncio
async def test_session_cookie_stays_on_portal_host():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen[request.url.host] = request.headers.get("cookie")
        if request.url.host == "is.mendelu.cz":
            return httpx.Response(302, headers={"location": "https://evil.example.com/collect"})
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"")

    transport = HttpxTransport.from_cookie_header(
        "UISAuth=secret", http_transport=httpx.MockTransport(handler)
    )

    await transport.retrieve("https://is.mendelu.cz/auth/dok_server/slozka.pl?id=1")
    await transport.retrieve("https://evil.example.com/other")

    assert seen["is.mendelu.cz"] == "UISAuth=secret"
    assert seen["evil.example.com"] is None
    await transport.aclose()

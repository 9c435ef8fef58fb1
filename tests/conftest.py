"""
Shared fixtures for the portal document engine tests.

Run:  pytest tests/ -v

Nothing here touches the network: every retrieval goes through FakeTransport,
which answers from a route table and records the URIs it was asked for.
"""

import asyncio
from typing import Union

import pytest

import portal_docs.request_queue as queue_mod
from portal_docs.cache import CacheManager
from portal_docs.config import EngineConfig
from portal_docs.exceptions import TransportError
from portal_docs.main import DocumentEngine
from portal_docs.request_queue import RequestQueue
from portal_docs.transport import BaseTransport, TransportResponse

BASE = "https://is.mendelu.cz"
DOCS = f"{BASE}/auth/dok_server/"


def html_response(markup: str, status: int = 200, charset: str = "utf-8") -> TransportResponse:
    return TransportResponse(
        status=status,
        headers={"Content-Type": f"text/html; charset={charset}"},
        body=markup.encode(charset),
    )


def file_response(body: bytes, content_type: str, disposition: str = None) -> TransportResponse:
    headers = {"Content-Type": content_type}
    if disposition:
        headers["Content-Disposition"] = disposition
    return TransportResponse(status=200, headers=headers, body=body)


class FakeTransport(BaseTransport):
    """Route table transport; unknown URIs answer 404."""

    def __init__(self, routes: dict = None, delay: float = 0.0):
        self.routes: dict[str, Union[TransportResponse, Exception]] = dict(routes or {})
        self.requests: list[str] = []
        self.delay = delay
        self.closed = False

    async def retrieve(self, uri: str) -> TransportResponse:
        self.requests.append(uri)
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = self.routes.get(uri)
        if answer is None:
            return TransportResponse(status=404, headers={"content-type": "text/html"}, body=b"")
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def aclose(self) -> None:
        self.closed = True

    def fail(self, uri: str, message: str = "connection reset") -> None:
        self.routes[uri] = TransportError(message, uri=uri)


class FixedClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_default_queue():
    """The default queue is process-wide; never share it between tests."""
    queue_mod._default_queue = None
    yield
    queue_mod._default_queue = None


@pytest.fixture
def config():
    return EngineConfig(short_ttl=300, long_ttl=86400, encryption_key="test-secret")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def queue():
    return RequestQueue(max_concurrent=3)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def cache(config, clock):
    return CacheManager(config, clock=clock)


@pytest.fixture
def engine(transport, config, cache, queue):
    return DocumentEngine(transport, config, cache=cache, queue=queue)


# ---------------------------------------------------------------------------
# Markup builders
# ---------------------------------------------------------------------------

def listing_page(rows: str, extra: str = "") -> str:
    """A document server folder page with the portal menu and one listing table."""
    return (
        "<html><head><meta charset=\"utf-8\"><title>Dokumentový server</title></head><body>"
        "<table class=\"portal_menu\"><tr>"
        "<td><a href=\"moje_dok.pl\">Všechny moje složky</a></td>"
        "<td><a href=\"slozka.pl?id=1\">Nadřazená složka</a></td>"
        "</tr></table>"
        f"{extra}"
        f"{listing_table(rows)}"
        "</body></html>"
    )


def listing_table(rows: str) -> str:
    """The folder listing table with its header row."""
    return (
        "<table id=\"tmtab_1\">"
        "<thead><tr class=\"zahlavi\">"
        "<th>Ozn.</th><th>Název</th><th>Komentář</th><th>Vložil</th><th>Datum dokumentu</th>"
        "<th colspan=\"3\">Akce</th>"
        "</tr></thead>"
        f"<tbody>{rows}</tbody>"
        "</table>"
    )


def document_row(name: str, download_id: int, folder_id: int = 150953, subfolder: str = "Ostatní",
                 author: str = "Jan Novák", date: str = "29. 1. 2026") -> str:
    return (
        "<tr class=\"uis-hl-table lbn\">"
        f"<td>{subfolder}</td>"
        f"<td>{name}</td>"
        "<td></td>"
        f"<td><a href=\"/auth/lide/clovek.pl?id=1234\">{author}</a></td>"
        f"<td>{date}</td>"
        f"<td><a href=\"dokumenty_cteni.pl?id={folder_id};dok={download_id};info=1\">"
        "<img sysid=\"mime-prohlizeni-info\"></a></td>"
        f"<td><a href=\"dokumenty_cteni.pl?id={folder_id};dok={download_id};info=2\">"
        "<img sysid=\"mime-prohlizeni-info\"></a></td>"
        f"<td><a href=\"slozka.pl?download={download_id};id={folder_id};z=1\">"
        "<img sysid=\"mime-pdf\"></a></td>"
        "</tr>"
    )


def folder_row(name: str, folder_id: int) -> str:
    return (
        "<tr class=\"uis-hl-table lbn\">"
        "<td></td>"
        f"<td><a href=\"slozka.pl?id={folder_id}\">{name}</a></td>"
        "<td></td><td></td><td></td><td></td><td></td><td></td>"
        "</tr>"
    )

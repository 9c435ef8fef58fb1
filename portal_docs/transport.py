"""
Authenticated transport used to retrieve portal pages and documents.

BaseTransport is the only network capability the engine uses; session and
cookie handling belong entirely to the implementation. HttpxTransport is the
default implementation; tests and embedding applications inject their own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Optional

import httpx

from .config import EngineConfig
from .exceptions import TransportError
from .logger import get_module_logger
from .preprocessor import Preprocessor

logger = get_module_logger("transport")


@dataclass
class TransportResponse:
    """Status, headers and raw body of one retrieval."""
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: Optional[str] = None       # final URL after redirects, when known

    def __post_init__(self):
        # Header lookups are case-insensitive
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def text(self) -> str:
        """Body decoded with the header charset, else the <meta> charset."""
        return Preprocessor.decode(self.body, self.content_type)


class BaseTransport(ABC):
    """Abstract base class for authenticated transports."""

    @abstractmethod
    async def retrieve(self, uri: str) -> TransportResponse:
        """
        Retrieve a URI with the user's session.

        Args:
            uri: Absolute URI on the portal

        Returns:
            TransportResponse for any HTTP status

        Raises:
            TransportError: if no response could be obtained at all
        """
        pass

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
        return None


class HttpxTransport(BaseTransport):
    """
    Transport backed by an httpx.AsyncClient carrying the session cookies.

    Cookies are bound to cookie_domain (the portal host), so neither a
    redirect nor a stray absolute link can carry the session elsewhere.
    """

    def __init__(
        self,
        cookies: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        cookie_domain: Optional[str] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.cookie_domain = cookie_domain or EngineConfig().allowed_host
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            cookies=self.scoped_cookies(cookies or {}, self.cookie_domain),
            headers=dict(headers or {}),
            timeout=timeout,
            follow_redirects=True,
            transport=http_transport,
        )

    @staticmethod
    def scoped_cookies(cookies: Mapping[str, str], domain: str) -> httpx.Cookies:
        jar = httpx.Cookies()
        for name, value in cookies.items():
            jar.set(name, value, domain=domain)
        return jar

    @classmethod
    def from_cookie_header(cls, cookie_header: str, **kwargs) -> "HttpxTransport":
        """Build a transport from a raw "name=value; name2=value2" Cookie header."""
        cookies = {}
        for part in cookie_header.split(";"):
            name, sep, value = part.strip().partition("=")
            if sep and name:
                cookies[name] = value
        return cls(cookies=cookies, **kwargs)

    async def retrieve(self, uri: str) -> TransportResponse:
        logger.debug(f"GET {uri}")
        try:
            response = await self.client.get(uri)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}", uri=uri) from e

        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
            url=str(response.url),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

"""
Link resolver: attachment reference → directly retrievable location.

Steps:
  1. Normalize the reference (legacy ";" separators, relative paths, and the
     algebraic rewrite of "dokumenty_cteni.pl" view links).
  2. If it carries no "download=" marker, retrieve the page once and follow
     the download anchor that sits beside a document-type icon. When that
     page is already the file (or an error), its response is used as is.
  3. Retrieve the final reference and classify the response.

Only references on the portal host are ever retrieved, so the session never
leaves it. resolve() never raises. Hop failures fall back to the pre-hop
reference; a failed terminal retrieval is reported as ContentKind.FAILED with the
best-known reference so the caller can offer to open it directly.
"""

import hashlib
import mimetypes
import re
from typing import Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag

from .config import EngineConfig
from .exceptions import ResolutionError, TransportError
from .logger import get_module_logger
from .request_queue import RequestQueue, get_default_queue
from .schemas import ContentKind, ResolvedLocation
from .transport import BaseTransport, TransportResponse
from .validation import validate_url

logger = get_module_logger("resolver")

DOWNLOAD_MARKER = "download="
VIEW_ENDPOINT = "dokumenty_cteni.pl"

VIEW_ID_PATTERN = re.compile(r"[&?]id=(\d+)")
VIEW_DOK_PATTERN = re.compile(r"[&?]dok=(\d+)")
DOWNLOAD_ID_PATTERN = re.compile(r"download=(\d+)")

# RFC 5987 extended value first, then quoted or bare filename token
FILENAME_STAR_PATTERN = re.compile(r"filename\*\s*=\s*([\w-]+)'[^']*'([^;]+)", re.IGNORECASE)
FILENAME_PATTERN = re.compile(r'filename\s*=\s*(?:"([^"]*)"|([^;]+))', re.IGNORECASE)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

DOCUMENT_CONTENT_TYPES = (
    "application/pdf",
    "text/",
    "application/msword",
    "application/rtf",
    "application/vnd.openxmlformats-officedocument",
    "application/vnd.ms-",
    "application/vnd.oasis.opendocument",
)

# Icon kinds that mark preview/info pages rather than documents
PREVIEW_SYSIDS = ("mime-prohlizeni-info",)

DEFAULT_FILENAME = "document"


class LinkResolver:
    """Resolves attachment references through the authenticated transport."""

    def __init__(
        self,
        transport: BaseTransport,
        config: Optional[EngineConfig] = None,
        queue: Optional[RequestQueue] = None
    ):
        self.transport = transport
        self.config = config or EngineConfig()
        self.queue = queue or get_default_queue()

    # --- Normalization ---

    def normalize(self, reference: str) -> str:
        """
        Turn a raw portal reference into an absolute URI.

        The portal separates query fields with ";" which the document server
        rejects when requested directly, so they become "&".
        """
        link = reference.strip().replace("?;", "?").replace(";", "&")

        direct = self.direct_download_for_view(link)
        if direct is not None:
            return direct

        return self._absolute(link)

    def direct_download_for_view(self, link: str) -> Optional[str]:
        """Rewrite a view link carrying id= and dok= into its download link, offline."""
        if VIEW_ENDPOINT not in link:
            return None
        id_match = VIEW_ID_PATTERN.search(link)
        dok_match = VIEW_DOK_PATTERN.search(link)
        if not id_match or not dok_match:
            return None
        return (
            f"{self.config.documents_url}slozka.pl"
            f"?download={dok_match.group(1)}&id={id_match.group(1)}&z=1"
        )

    def _absolute(self, link: str) -> str:
        if link.startswith(("http://", "https://")):
            # Bare view links must live under the documents path
            if VIEW_ENDPOINT in link and self.config.documents_path not in link:
                return link.replace(f"/{VIEW_ENDPOINT}", f"{self.config.documents_path}{VIEW_ENDPOINT}", 1)
            return link
        if link.startswith("/"):
            if link.startswith(f"/{VIEW_ENDPOINT}"):
                return f"{self.config.base_url}{self.config.documents_path.rstrip('/')}{link}"
            return f"{self.config.base_url}{link}"
        if link.startswith("./"):
            link = link[2:]
        return f"{self.config.documents_url}{link}"

    # --- Resolution ---

    async def resolve(self, reference: str) -> ResolvedLocation:
        """
        Resolve a reference into a ResolvedLocation.

        Args:
            reference: Attachment link as produced by the parser

        Returns:
            ResolvedLocation; kind FAILED when the terminal retrieval failed
            or the reference leads off the portal host
        """
        try:
            working = self.normalize(reference)
        except Exception as e:
            logger.warning(f"Failed to normalize reference '{reference}': {e}")
            return self._failed(reference, f"Unusable reference: {e}")

        if validate_url(working, self.config.allowed_host) is None:
            logger.warning(f"Refusing to retrieve off-portal reference {working}")
            return self._failed(working, f"Reference is outside {self.config.allowed_host}")

        response = None
        if DOWNLOAD_MARKER not in working:
            working, response = await self._follow_intermediate_page(working)

        # A hop that did not move the reference already holds its response
        if response is None:
            try:
                response = await self.queue.run(self.transport.retrieve, working)
            except TransportError as e:
                logger.warning(f"Terminal retrieval failed for {working}: {e.message}")
                return self._failed(working, e.message)

        if not response.ok:
            logger.warning(f"Terminal retrieval of {working} returned HTTP {response.status}")
            return self._failed(working, f"HTTP {response.status}")

        return self._classify(working, response)

    async def _follow_intermediate_page(self, working: str) -> tuple[str, Optional[TransportResponse]]:
        """
        One hop through an intermediate page.

        Returns:
            (target, None) when the page led to a download link;
            (working, response) when the page is itself the final answer
            (a file, an error status, or a page without a usable link);
            (working, None) when the page could not be retrieved at all
        """
        try:
            response = await self.queue.run(self.transport.retrieve, working)
        except TransportError as e:
            logger.info(f"No intermediate hop for {working}: {e.message}")
            return working, None

        if not response.ok or not self._is_html(response):
            return working, response

        try:
            target = self._find_download_link(working, response)
        except ResolutionError as e:
            logger.info(f"No intermediate hop for {working}: {e.message}")
            return working, response
        except Exception as e:
            logger.warning(f"Failed to parse intermediate page {working}: {e}")
            return working, response

        logger.info(f"Intermediate page resolved to {target}")
        return target, None

    def _find_download_link(self, page_uri: str, response: TransportResponse) -> str:
        soup = BeautifulSoup(response.text(), "html5lib")
        for anchor in soup.find_all("a", href=True):
            if DOWNLOAD_MARKER not in anchor["href"] or not self._has_document_icon(anchor):
                continue
            target = validate_url(self.normalize(anchor["href"]), self.config.allowed_host)
            if target is None:
                logger.warning(f"Ignoring off-portal download link on {page_uri}: {anchor['href']}")
                continue
            return target

        raise ResolutionError("No download anchor on page", reference=page_uri)

    @staticmethod
    def _has_document_icon(anchor: Tag) -> bool:
        candidates = [anchor.find("img", attrs={"sysid": True})]
        candidates += [anchor.find_next_sibling(), anchor.find_previous_sibling()]
        for icon in candidates:
            if icon is None or icon.name != "img":
                continue
            sysid = icon.get("sysid") or ""
            if sysid.startswith("mime-") and sysid not in PREVIEW_SYSIDS:
                return True
        return False

    # --- Classification ---

    @staticmethod
    def _is_html(response: TransportResponse) -> bool:
        content_type = response.content_type.lower()
        return any(t in content_type for t in HTML_CONTENT_TYPES)

    def _classify(self, uri: str, response: TransportResponse) -> ResolvedLocation:
        content_type = response.content_type.split(";")[0].strip().lower()

        if self._is_html(response):
            logger.info(f"Expected a file but got a page for {uri}, open it externally")
            return ResolvedLocation(
                uri=uri,
                kind=ContentKind.HTML_UNEXPECTED,
                filename=self.default_filename(uri, ".html"),
            )

        kind = ContentKind.DOCUMENT if content_type.startswith(DOCUMENT_CONTENT_TYPES) else ContentKind.BINARY
        filename = self.filename_from_disposition(response.header("content-disposition"))
        if not filename:
            extension = (mimetypes.guess_extension(content_type) if content_type else None) or ""
            filename = self.default_filename(uri, extension)

        return ResolvedLocation(uri=uri, kind=kind, filename=filename)

    @staticmethod
    def filename_from_disposition(disposition: Optional[str]) -> Optional[str]:
        """Suggested filename from a Content-Disposition header value, if any."""
        if not disposition:
            return None

        m = FILENAME_STAR_PATTERN.search(disposition)
        if m:
            charset = m.group(1) or "utf-8"
            try:
                name = unquote(m.group(2).strip(), encoding=charset)
            except LookupError:
                name = unquote(m.group(2).strip())
            if name:
                return name

        m = FILENAME_PATTERN.search(disposition)
        if m:
            name = (m.group(1) if m.group(1) is not None else m.group(2) or "").strip()
            if name:
                # Portal servers send raw UTF-8 bytes in the header, which
                # arrive here as latin-1 mojibake
                try:
                    return name.encode("latin-1").decode("utf-8")
                except (UnicodeEncodeError, UnicodeDecodeError):
                    return name
        return None

    @staticmethod
    def default_filename(uri: str, extension: str = "") -> str:
        """document-<download id>, or a short hash of the URI when there is no id."""
        m = DOWNLOAD_ID_PATTERN.search(uri)
        suffix = m.group(1) if m else hashlib.sha1(uri.encode("utf-8")).hexdigest()[:8]
        return f"{DEFAULT_FILENAME}-{suffix}{extension}"

    @staticmethod
    def _failed(uri: str, error: str) -> ResolvedLocation:
        return ResolvedLocation(
            uri=uri,
            kind=ContentKind.FAILED,
            filename=LinkResolver.default_filename(uri),
            error=error,
        )

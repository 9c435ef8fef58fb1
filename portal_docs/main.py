"""
Main orchestrator for the portal document engine.

Coordinates cache, transport, parser and resolver:
  list_folder()  cache-first listing, discovery on a miss, background
                 revalidation on a stale hit
  discover()     primary listing → pagination pages + one level of
                 subfolders, retrieved concurrently through the request queue
  resolve()      attachment reference → ResolvedLocation

Listing failures surface as empty lists; resolution failures as
ContentKind.FAILED locations. Nothing here raises into the UI layer except
programming errors.
"""

import asyncio
import re
from typing import Iterable, Optional

from pydantic import ValidationError

from .cache import FILES_FAMILY, SUBJECTS_FAMILY, CacheManager
from .config import EngineConfig
from .exceptions import DiscoveryError, TransportError
from .logger import get_module_logger, setup_logger
from .parser import DocumentParser
from .request_queue import RequestQueue, get_default_queue
from .resolver import LinkResolver
from .schemas import (
    Attachment,
    DocumentEntry,
    ParseResult,
    PlainListing,
    ResolvedLocation,
    SubjectInfo,
    migrate_listing_payload,
)
from .transport import BaseTransport, TransportResponse

logger = get_module_logger("main")

FOLDER_ENDPOINT = "slozka.pl"
FOLDER_ID_PATTERN = re.compile(r"[?&;]id=(\d+)")


def is_folder_link(link: str) -> bool:
    """A reference to another folder listing rather than a file."""
    return FOLDER_ENDPOINT in link and "download" not in link


class DocumentEngine:
    """
    Document discovery and resolution for one portal session.

    The transport carries the session; everything else is built from the
    config unless injected.
    """

    def __init__(
        self,
        transport: BaseTransport,
        config: Optional[EngineConfig] = None,
        cache: Optional[CacheManager] = None,
        parser: Optional[DocumentParser] = None,
        resolver: Optional[LinkResolver] = None,
        queue: Optional[RequestQueue] = None,
        language: str = "cz",
        log_level: int = None
    ):
        if log_level is not None:
            setup_logger(level=log_level)

        self.config = config or EngineConfig()
        self.transport = transport
        self.queue = queue or get_default_queue(self.config.max_concurrent_requests)
        self.cache = cache or CacheManager(self.config)
        self.parser = parser or DocumentParser(self.config)
        self.resolver = resolver or LinkResolver(transport, self.config, self.queue)
        self.language = language

        logger.info(f"DocumentEngine initialized for {self.config.base_url}")

    async def __aenter__(self) -> "DocumentEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.cache.wait_for_revalidations()
        await self.transport.aclose()

    # --- URLs ---

    def folder_url(self, folder_id: str) -> str:
        return f"{self.config.documents_url}{FOLDER_ENDPOINT}?id={folder_id}"

    @staticmethod
    def folder_id_from_url(url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        m = FOLDER_ID_PATTERN.search(url)
        return m.group(1) if m else None

    # --- Listings ---

    async def list_folder(self, folder_id: str, force_refresh: bool = False) -> list[DocumentEntry]:
        """
        Documents in a folder (with one level of subfolders).

        Args:
            folder_id: Portal folder id
            force_refresh: Skip the cached value and rediscover now

        Returns:
            List of DocumentEntry; empty when nothing could be discovered
        """
        key = self.cache.make_key(FILES_FAMILY, folder_id)
        url = self.folder_url(folder_id)

        async def load() -> Optional[dict]:
            return await self._load_listing(url)

        payload = None
        if not force_refresh:
            payload = await self.cache.get(key, revalidate=load)

        if payload is None:
            try:
                payload = await self.cache.refresh(key, load)
            except DiscoveryError as e:
                logger.warning(f"Listing folder {folder_id} failed: {e.message}")
                # A forced refresh that fails still shows what was cached
                payload = await self.cache.get(key) if force_refresh else None

        if payload is None:
            return []
        return await self._entries_from_payload(key, payload)

    async def _load_listing(self, folder_url: str) -> Optional[dict]:
        entries = await self.discover(folder_url)
        if not entries:
            # Empty results are not cached so the next view retries
            return None
        return PlainListing(entries=entries).model_dump(mode="json")

    async def _entries_from_payload(self, key: str, payload) -> list[DocumentEntry]:
        try:
            listing = migrate_listing_payload(payload)
        except ValidationError as e:
            logger.warning(f"Cached listing '{key}' has an unknown shape, clearing: {e}")
            await self.cache.invalidate(key)
            return []
        return listing.for_language(self.language)

    async def discover(self, folder_url: str, recursive: bool = True) -> list[DocumentEntry]:
        """
        Retrieve and parse a folder listing.

        The primary page is retrieved first; pagination pages and (when
        recursive) subfolder listings follow concurrently.

        Raises:
            DiscoveryError: the primary page could not be retrieved
        """
        primary = await self._fetch_listing(folder_url)
        entries = list(primary.entries)

        pages = []
        for reference in primary.pagination_references:
            page_url = self.resolver.normalize(reference)
            if page_url != folder_url and page_url not in pages:
                pages.append(page_url)
        if pages:
            logger.info(f"Following {len(pages)} pagination pages of {folder_url}")
            responses = await self.queue.map(pages, self.transport.retrieve, return_exceptions=True)
            for page_url, response in zip(pages, responses):
                entries.extend(self._page_entries(page_url, response))

        if recursive:
            folders = []
            for entry in entries:
                folder_link = next((a.link for a in entry.files if is_folder_link(a.link)), None)
                if folder_link is not None:
                    folders.append((entry, self.resolver.normalize(folder_link)))
            if folders:
                logger.info(f"Discovering {len(folders)} subfolders of {folder_url}")
                nested = await asyncio.gather(*(self._discover_subfolder(e, url) for e, url in folders))
                for subfolder_entries in nested:
                    entries.extend(subfolder_entries)

        documents = [e for e in entries if any(not is_folder_link(a.link) for a in e.files)]
        logger.info(f"Discovered {len(documents)} documents in {folder_url}")
        return documents

    async def _fetch_listing(self, url: str) -> ParseResult:
        try:
            response = await self.queue.run(self.transport.retrieve, url)
        except TransportError as e:
            raise DiscoveryError(f"Retrieval failed: {e.message}", folder_url=url) from e
        if not response.ok:
            raise DiscoveryError(f"HTTP {response.status}", folder_url=url)
        return self._parse_listing(url, response)

    def _parse_listing(self, url: str, response: TransportResponse) -> ParseResult:
        result = self.parser.parse(response.text())
        for warning in result.warnings:
            logger.debug(f"{url}: {warning}")
        return result

    def _page_entries(self, url: str, response) -> list[DocumentEntry]:
        """Entries of one pagination page; a failed page only shrinks the listing."""
        if isinstance(response, TransportError):
            logger.warning(f"Skipping listing page {url}: {response.message}")
            return []
        if isinstance(response, BaseException):
            raise response
        if not response.ok:
            logger.warning(f"Skipping listing page {url}: HTTP {response.status}")
            return []
        return self._parse_listing(url, response).entries

    async def _discover_subfolder(self, parent: DocumentEntry, url: str) -> list[DocumentEntry]:
        try:
            children = await self.discover(url, recursive=False)
        except DiscoveryError as e:
            logger.warning(f"Skipping subfolder '{parent.file_name}': {e.message}")
            return []
        return [child.model_copy(update={"subfolder": parent.file_name}) for child in children]

    async def invalidate_folder(self, folder_id: str) -> bool:
        return await self.cache.invalidate(self.cache.make_key(FILES_FAMILY, folder_id))

    async def invalidate_all_files(self) -> int:
        return await self.cache.invalidate_prefix(self.cache.families[FILES_FAMILY].prefix)

    # --- Subjects ---

    async def store_subjects(self, subjects: Iterable[SubjectInfo]) -> int:
        """Remember subject metadata in the long-TTL family. Returns the count stored."""
        stored = 0
        for subject in subjects:
            key = self.cache.make_key(SUBJECTS_FAMILY, subject.code)
            if await self.cache.set(key, subject.model_dump(mode="json")):
                stored += 1
        return stored

    async def get_subject(self, code: str) -> Optional[SubjectInfo]:
        key = self.cache.make_key(SUBJECTS_FAMILY, code)
        raw = await self.cache.get(key)
        if raw is None:
            return None
        try:
            return SubjectInfo.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Cached subject '{code}' is invalid, clearing: {e}")
            await self.cache.invalidate(key)
            return None

    async def documents_for_subject(self, code: str) -> list[Attachment]:
        """All attachments in a subject's document folder, flattened."""
        subject = await self.get_subject(code)
        folder_id = self.folder_id_from_url(subject.folder_url) if subject else None
        if folder_id is None:
            logger.info(f"No document folder known for subject {code}")
            return []
        entries = await self.list_folder(folder_id)
        return [attachment for entry in entries for attachment in entry.files]

    # --- Resolution ---

    async def resolve(self, reference: str) -> ResolvedLocation:
        return await self.resolver.resolve(reference)

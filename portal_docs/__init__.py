"""
Portal Document Engine

Document discovery and resolution for a university information portal that
publishes course documents only as server-rendered HTML tables.
- Parser: markup → DocumentEntry list, pagination references, total count
- Resolver: attachment reference → directly retrievable location
- CacheManager: namespaced, TTL-bound, encrypted stale-while-revalidate cache
- DocumentEngine: cache-first folder discovery through a bounded request queue

Public API surface:
  Orchestration  — DocumentEngine, EngineConfig
  Components     — DocumentParser, LinkResolver, CacheManager, RequestQueue
  Transport      — BaseTransport, HttpxTransport, TransportResponse
  Data models    — DocumentEntry, Attachment, ParseResult, ParseOutcome,
                   ResolvedLocation, ContentKind, SubjectInfo
  Error types    — PortalDocsError, TransportError, DiscoveryError
"""

# --- Orchestration ---
from .config import EngineConfig
from .main import DocumentEngine

# --- Components ---
from .parser import DocumentParser, parse_server_files
from .resolver import LinkResolver
from .cache import CacheManager, CacheFamily
from .request_queue import RequestQueue, get_default_queue

# --- Transport ---
from .transport import BaseTransport, HttpxTransport, TransportResponse

# --- Data models ---
from .schemas import (
    Attachment,
    ContentKind,
    DocumentEntry,
    ParseOutcome,
    ParseResult,
    ResolvedLocation,
    SubjectInfo,
)

# --- Exceptions ---
from .exceptions import PortalDocsError, TransportError, DiscoveryError

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "DocumentEngine",
    "DocumentParser",
    "parse_server_files",
    "LinkResolver",
    "CacheManager",
    "CacheFamily",
    "RequestQueue",
    "get_default_queue",
    "BaseTransport",
    "HttpxTransport",
    "TransportResponse",
    "Attachment",
    "ContentKind",
    "DocumentEntry",
    "ParseOutcome",
    "ParseResult",
    "ResolvedLocation",
    "SubjectInfo",
    "PortalDocsError",
    "TransportError",
    "DiscoveryError",
]

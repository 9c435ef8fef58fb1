"""
Custom exceptions for the portal document engine.

Error philosophy:
  - TransportError        → PROPAGATES from transports; the resolver and the
                            engine catch it and degrade.
  - DiscoveryError        → EMPTY STATE: the primary folder listing could not
                            be retrieved; callers render an empty list.
  - ResolutionError       → LOCAL: never escapes LinkResolver.resolve(), which
                            falls back to the best-known reference.
  - CacheCorruptionError  → SELF-HEALING: the record is purged and treated as
                            a miss.
  - StorageError          → SWALLOWED: logged, the engine keeps working
                            without persistent caching.

The parser raises none of these: malformed markup yields a reduced result.
"""

from typing import Optional


class PortalDocsError(Exception):
    """Base exception for all portal document engine errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Network ---

class TransportError(PortalDocsError):
    """Raised when the authenticated transport cannot retrieve a URI."""

    def __init__(
        self,
        message: str,
        uri: str,
        status: Optional[int] = None,
        details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.uri = uri
        self.status = status


class DiscoveryError(PortalDocsError):
    """
    Raised when a folder's primary listing cannot be retrieved.

    Pagination and subfolder failures do not raise; they only shrink the
    result.
    """

    def __init__(self, message: str, folder_url: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.folder_url = folder_url


class ResolutionError(PortalDocsError):
    """Raised inside the resolver when a resolution step cannot improve the reference."""

    def __init__(self, message: str, reference: str, details: Optional[dict] = None):
        super().__init__(message, details)
        # Best-known reference at the time of failure
        self.reference = reference


# --- Cache / persistence ---

class CacheCorruptionError(PortalDocsError):
    """Raised when a cache record cannot be decrypted, parsed or validated."""

    def __init__(self, message: str, key: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.key = key


class StorageError(PortalDocsError):
    """Raised by a store when a record cannot be persisted or removed."""
    pass


class StorageQuotaExceeded(StorageError):
    """Raised by a store whose byte quota would be exceeded by a write."""

    def __init__(self, message: str, used: int, quota: int, details: Optional[dict] = None):
        super().__init__(message, details)
        self.used = used
        self.quota = quota

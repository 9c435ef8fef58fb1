"""
Pydantic schemas defining the contracts between components.

DocumentEntry / Attachment: Parser output, cache payload, engine output
ParseResult: full Parser output (entries + pagination + totals + outcome)
ResolvedLocation: Resolver output, transient
CacheRecord: persisted shape of one cache entry

Data flow:
  markup → Parser → ParseResult → Engine → listing payload → CacheManager
  Attachment.link → Resolver → ResolvedLocation
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

UNKNOWN_TYPE = "unknown"


# --- Document model ---

class Attachment(BaseModel):
    """One retrievable resource belonging to a document entry."""
    name: str
    type: str = UNKNOWN_TYPE     # media kind from the icon sysid, e.g. "pdf"
    link: str                    # validated reference, not necessarily final


class DocumentEntry(BaseModel):
    """One logical document as listed by the portal."""
    subfolder: str = ""
    file_name: str = Field(min_length=1)
    file_comment: str = ""
    author: str = ""
    date: str = ""
    files: list[Attachment] = Field(min_length=1)


class ParseOutcome(str, Enum):
    """Why the parser returned what it returned."""
    DETAIL = "detail"                # single-document detail page
    LISTING = "listing"              # folder listing with at least one entry
    EMPTY = "empty"                  # structure recognized, no documents in it
    UNRECOGNIZED = "unrecognized"    # no recognizer matched any row


class ParseResult(BaseModel):
    """Output of the HTML table parser."""
    entries: list[DocumentEntry] = Field(default_factory=list)
    pagination_references: list[str] = Field(default_factory=list)
    total_count: Optional[int] = None
    outcome: ParseOutcome = ParseOutcome.UNRECOGNIZED
    warnings: list[str] = Field(default_factory=list)


# --- Resolution ---

class ContentKind(str, Enum):
    DOCUMENT = "document"
    BINARY = "binary"
    HTML_UNEXPECTED = "html_unexpected"   # open externally, do not interpret
    FAILED = "failed"                     # terminal retrieval failed


class ResolvedLocation(BaseModel):
    """Result of resolving one attachment reference. Never persisted."""
    uri: str
    kind: ContentKind
    filename: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind in (ContentKind.DOCUMENT, ContentKind.BINARY)


# --- Subject metadata (long-TTL family) ---

class SubjectInfo(BaseModel):
    code: str
    full_name: str = ""
    folder_url: Optional[str] = None


# --- Cache ---

class CacheRecord(BaseModel):
    """Persisted shape of one cache entry."""
    key: str
    payload: Any                  # plain JSON value, or a Fernet token when encrypted
    encrypted: bool = False
    timestamp: float              # write time, epoch seconds
    ttl: float                    # family TTL in seconds at write time

    def is_stale(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


# --- Listing payloads ---
# Older cache writers stored a folder listing either as a bare list of
# entries or as an object holding one list per UI language. Both are read
# through migrate_listing_payload() into this tagged union.

class PlainListing(BaseModel):
    kind: Literal["plain"] = "plain"
    entries: list[DocumentEntry] = Field(default_factory=list)

    def for_language(self, language: str = "cz") -> list[DocumentEntry]:
        return self.entries


class DualLanguageListing(BaseModel):
    kind: Literal["dual"] = "dual"
    cz: list[DocumentEntry] = Field(default_factory=list)
    en: list[DocumentEntry] = Field(default_factory=list)

    def for_language(self, language: str = "cz") -> list[DocumentEntry]:
        primary, other = (self.en, self.cz) if language == "en" else (self.cz, self.en)
        return primary or other


ListingPayload = Annotated[Union[PlainListing, DualLanguageListing], Field(discriminator="kind")]

_listing_adapter = TypeAdapter(ListingPayload)


def migrate_listing_payload(raw: Any) -> Union[PlainListing, DualLanguageListing]:
    """
    Read a cached listing in any known shape.

    Raises:
        ValueError (pydantic ValidationError) if the payload matches no shape.
    """
    if isinstance(raw, list):
        return PlainListing(entries=raw)
    if isinstance(raw, dict) and "kind" not in raw and ("cz" in raw or "en" in raw):
        return DualLanguageListing(cz=raw.get("cz") or [], en=raw.get("en") or [])
    return _listing_adapter.validate_python(raw)

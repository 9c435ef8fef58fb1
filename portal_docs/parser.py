"""
HTML table parser for the portal's document server pages.

Turns raw markup into DocumentEntry values, pagination references and an
optional total record count. Two page shapes are understood:

  Detail page:  a single document rendered as label → value rows, recognized
                by a localized "Attachments" label cell.
  Listing page: one or more tables of document rows, located through the
                ranked recognizers in recognizers.py.

Input:  markup string (already decoded)
Output: ParseResult. Never raises; unknown structure yields an empty result
        tagged UNRECOGNIZED.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

from .config import EngineConfig
from .logger import get_module_logger
from .preprocessor import Preprocessor
from .recognizers import (
    DEFAULT_RECOGNIZERS,
    RowRecognizer,
    cells_of,
    classes_of,
    find_data_rows,
    has_leading_marker,
    is_header_row,
    is_layout_table,
    own_rows,
)
from .schemas import UNKNOWN_TYPE, Attachment, DocumentEntry, ParseOutcome, ParseResult
from .validation import sanitize_text, validate_file_name, validate_url

logger = get_module_logger("parser")

# Field length bounds applied through sanitize_text()
MAX_SUBFOLDER = 100
MAX_COMMENT = 500
MAX_AUTHOR = 200
MAX_DATE = 50
MAX_MEDIA_KIND = 50

# Tables that are portal chrome, never document listings
EXCLUDED_TABLE_CLASSES = ("portal_menu",)

# --- Detail page labels (cs / sk / en) ---

ATTACHMENTS_LABELS = ("Attachments:", "Přílohy:", "Prílohy:")

DETAIL_FIELD_PATTERNS = (
    ("name", re.compile(r"(?:Name|Název|Názov):")),
    ("author", re.compile(r"(?:Entered by|Vložil|Zadal):")),
    ("date", re.compile(r"(?:Document date|Datum dokumentu|Dátum dokumentu):")),
    ("comment", re.compile(r"(?:Comments|Poznámka|Komentář|Komentár):")),
)

# --- Listing header keywords, checked in order; first unset match wins ---

HEADER_KEYWORDS = (
    ("name", ("název", "názov", "name")),
    ("author", ("vložil", "entered by", "zadal")),
    ("date", ("datum dokumentu", "dátum dokumentu", "document date")),
    ("date", ("poslední změna", "posledná zmena", "last change", "last modified", "modifikace")),
    ("comment", ("komentář", "komentár", "poznámka", "comment")),
    ("subfolder", ("ozn.", "subfolder", "podsložka")),
)

# Column positions used when a header does not name the column.
# Shifted by one when the row starts with a marker column.
POSITIONAL_COLUMNS = {
    "subfolder": 0,
    "name": 1,
    "comment": 2,
    "author": 3,
    "date": 4,
}

# --- Non-document anchors ---

SYSTEM_URL_PATTERN = re.compile(
    r"moje_dok\.pl|nove_dok\.pl|nastaveni_stromu\.pl|vyhledavani\.pl"
    r"|index\.pl|clovek\.pl|dokumenty_ct\.pl"
)

SYSTEM_LABEL_PATTERN = re.compile(
    r"Všechny moje složky|Nadřazená složka|All my folders|Parent folder"
    r"|Document tree|New documents|DS settings|Searching"
    r"|Dokumentový strom|Nové dokumenty|Nastavení stromu|Vyhledávání"
    r"|Zobrazení dokumentů|Strom od složky",
    re.IGNORECASE,
)

# Icon kinds (sysid without "mime-") for preview/info pages, not documents
PREVIEW_MEDIA_KINDS = ("prohlizeni-info",)

# --- Pagination and totals ---

LISTING_ENDPOINT = "slozka.pl"
DOWNLOAD_MARKER = "download"
PAGINATION_LABEL = re.compile(r"^\d+\s*[-–]\s*\d+$")
TOTAL_COUNT_PATTERN = re.compile(r"\b\d+\s*[-–]\s*\d+\s+(?:z|zo|of)\s+(\d+)\b", re.IGNORECASE)


def cell_text(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return element.get_text(" ", strip=True)


class DocumentParser:
    """Parses portal document server markup into DocumentEntry lists."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        recognizers: tuple[RowRecognizer, ...] = DEFAULT_RECOGNIZERS
    ):
        self.config = config or EngineConfig()
        self.recognizers = recognizers
        self.preprocessor = Preprocessor()

    def parse(self, html: Optional[str]) -> ParseResult:
        """
        Parse a document server page.

        Args:
            html: Decoded markup

        Returns:
            ParseResult with entries, pagination references, optional total
            count and an outcome tag
        """
        try:
            return self._parse(html)
        except Exception as e:
            logger.error(f"Parsing failed: {e}")
            return ParseResult(outcome=ParseOutcome.UNRECOGNIZED, warnings=[f"Parse error: {e}"])

    def _parse(self, html: Optional[str]) -> ParseResult:
        soup, warnings = self.preprocessor.to_soup(html)

        detail = self._parse_detail_page(soup)
        if detail is not None:
            logger.info("Parsed detail page")
            detail.warnings.extend(warnings)
            return detail

        entries, recognized = self._parse_listing_tables(soup)
        pagination = self._extract_pagination(soup)
        total_count = self._extract_total_count(soup)

        if entries:
            outcome = ParseOutcome.LISTING
        elif recognized:
            outcome = ParseOutcome.EMPTY
        else:
            outcome = ParseOutcome.UNRECOGNIZED
            warnings.append("No table structure recognized")

        logger.info(f"Parsed {len(entries)} entries, {len(pagination)} pagination links ({outcome.value})")
        return ParseResult(
            entries=entries,
            pagination_references=pagination,
            total_count=total_count,
            outcome=outcome,
            warnings=warnings,
        )

    # --- Detail page ---

    def _parse_detail_page(self, soup: BeautifulSoup) -> Optional[ParseResult]:
        label_cell = self._find_attachments_label(soup)
        if label_cell is None:
            return None

        row = label_cell.find_parent("tr")
        anchor = row.find("a", href=True) if row is not None else None
        if anchor is None:
            return None

        values = self._detail_values(soup)
        icon = row.find("img", attrs={"sysid": True})

        file_name = validate_file_name(values.get("name") or "Unknown")
        link = validate_url(anchor["href"], self.config.allowed_host)
        if not file_name or not link:
            logger.debug("Detail page found but name or link failed validation")
            return None

        entry = DocumentEntry(
            subfolder="",
            file_name=file_name,
            file_comment=sanitize_text(values.get("comment"), MAX_COMMENT),
            author=sanitize_text(values.get("author"), MAX_AUTHOR),
            date=sanitize_text(values.get("date"), MAX_DATE),
            files=[Attachment(name=file_name, type=self._media_kind(icon), link=link)],
        )
        return ParseResult(entries=[entry], total_count=1, outcome=ParseOutcome.DETAIL)

    @staticmethod
    def _find_attachments_label(soup: BeautifulSoup) -> Optional[Tag]:
        """Innermost cell carrying a localized "Attachments" label."""
        def has_label(cell: Tag) -> bool:
            text = cell.get_text()
            return any(label in text for label in ATTACHMENTS_LABELS)

        for cell in soup.find_all(["td", "th"]):
            # Layout cells wrapping the whole detail table also contain the label
            if has_label(cell) and not any(has_label(inner) for inner in cell.find_all(["td", "th"])):
                return cell
        return None

    def _detail_values(self, soup: BeautifulSoup) -> dict[str, str]:
        """Collect label → value pairs from two-cell rows."""
        values = {}
        for tr in soup.find_all("tr"):
            cells = tr.find_all(["td", "th"], recursive=False)
            if len(cells) < 2 or cells[0].find("table") is not None:
                continue
            label = cell_text(cells[0])
            for field, pattern in DETAIL_FIELD_PATTERNS:
                if field not in values and pattern.search(label):
                    values[field] = cell_text(cells[1])
                    break
        return values

    # --- Listing ---

    def _candidate_tables(self, soup: BeautifulSoup) -> list[Tag]:
        tables = []
        for table in soup.find_all("table"):
            chrome = [table] + table.find_parents("table")
            if any(cls in classes_of(t) for t in chrome for cls in EXCLUDED_TABLE_CLASSES):
                continue
            if is_layout_table(table):
                logger.debug("Skipping layout table wrapping nested tables")
                continue
            tables.append(table)
        return tables

    def _parse_listing_tables(self, soup: BeautifulSoup) -> tuple[list[DocumentEntry], bool]:
        entries = []
        recognized = False

        for table in self._candidate_tables(soup):
            columns = self.column_indices(table)
            recognizer, rows = find_data_rows(table, self.recognizers)
            if columns or rows:
                recognized = True
            if recognizer:
                logger.debug(f"Table rows located by '{recognizer}', header columns: {columns}")
            for row in rows:
                entry = self._parse_row(row, columns)
                if entry is not None:
                    entries.append(entry)

        return entries, recognized

    def column_indices(self, table: Tag) -> dict[str, int]:
        """Map field name → cell index from the table's header row, if any."""
        header = next((tr for tr in own_rows(table) if is_header_row(tr)), None)
        if header is None:
            return {}

        indices = {}
        position = 0
        for cell in header.find_all(["th", "td"], recursive=False):
            text = cell_text(cell).lower()
            for field, keywords in HEADER_KEYWORDS:
                if field not in indices and any(k in text for k in keywords):
                    indices[field] = position
                    break
            try:
                position += max(1, int(cell.get("colspan", 1)))
            except (TypeError, ValueError):
                position += 1
        return indices

    def _parse_row(self, row: Tag, columns: dict[str, int]) -> Optional[DocumentEntry]:
        cells = cells_of(row)
        if len(cells) < 2:
            return None

        shift = 1 if has_leading_marker(cells) else 0

        def field_cell(field: str) -> Optional[Tag]:
            index = columns.get(field, POSITIONAL_COLUMNS[field] + shift)
            return cells[index] if 0 <= index < len(cells) else None

        file_name = validate_file_name(cell_text(field_cell("name")))
        if not file_name or SYSTEM_LABEL_PATTERN.search(file_name):
            return None

        attachments = self._extract_attachments(row, file_name)
        if not attachments:
            return None

        return DocumentEntry(
            subfolder=sanitize_text(cell_text(field_cell("subfolder")), MAX_SUBFOLDER),
            file_name=file_name,
            file_comment=sanitize_text(cell_text(field_cell("comment")), MAX_COMMENT),
            author=sanitize_text(cell_text(field_cell("author")), MAX_AUTHOR),
            date=sanitize_text(cell_text(field_cell("date")), MAX_DATE),
            files=attachments,
        )

    def _extract_attachments(self, row: Tag, file_name: str) -> list[Attachment]:
        attachments: list[Attachment] = []
        by_link: dict[str, Attachment] = {}

        for anchor in row.find_all("a", href=True):
            if anchor.find_parent("tr") is not row:
                continue

            link = validate_url(self.rebase_reference(anchor["href"]), self.config.allowed_host)
            if not link or SYSTEM_URL_PATTERN.search(link):
                continue

            label = cell_text(anchor)
            if SYSTEM_LABEL_PATTERN.search(label) or PAGINATION_LABEL.match(label):
                continue

            media_kind = self._media_kind(self._icon_for(anchor))
            if media_kind in PREVIEW_MEDIA_KINDS:
                continue

            existing = by_link.get(link)
            if existing is not None:
                # Keep the first occurrence, upgrade its type if it was unknown
                if existing.type == UNKNOWN_TYPE and media_kind != UNKNOWN_TYPE:
                    existing.type = media_kind
                continue

            attachment = Attachment(name=file_name, type=media_kind, link=link)
            attachments.append(attachment)
            by_link[link] = attachment

        return attachments

    def rebase_reference(self, href: str) -> str:
        """Root bare relative references (e.g. "slozka.pl?...") under the documents path."""
        href = href.strip()
        if href.startswith(("http://", "https://", "/")) or ":" in href.split("?", 1)[0]:
            return href
        if href.startswith("./"):
            href = href[2:]
        return f"{self.config.documents_path}{href}"

    @staticmethod
    def _icon_for(anchor: Tag) -> Optional[Tag]:
        """Type icon inside the anchor, else an <img sysid> immediately beside it."""
        icon = anchor.find("img", attrs={"sysid": True})
        if icon is not None:
            return icon
        for sibling in (anchor.find_next_sibling(), anchor.find_previous_sibling()):
            if sibling is not None and sibling.name == "img" and sibling.get("sysid"):
                return sibling
        return None

    @staticmethod
    def _media_kind(icon: Optional[Tag]) -> str:
        if icon is None:
            return UNKNOWN_TYPE
        sysid = icon.get("sysid") or ""
        if sysid.startswith("mime-"):
            sysid = sysid[len("mime-"):]
        return sanitize_text(sysid, MAX_MEDIA_KIND).lower() or UNKNOWN_TYPE

    # --- Pagination and totals ---

    def _extract_pagination(self, soup: BeautifulSoup) -> list[str]:
        references = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if LISTING_ENDPOINT not in href or DOWNLOAD_MARKER in href:
                continue
            if not PAGINATION_LABEL.match(cell_text(anchor)):
                continue
            if validate_url(href, self.config.allowed_host) and href not in references:
                references.append(href)
        return references

    @staticmethod
    def _extract_total_count(soup: BeautifulSoup) -> Optional[int]:
        match = TOTAL_COUNT_PATTERN.search(soup.get_text(" "))
        return int(match.group(1)) if match else None


def parse_server_files(html: Optional[str], config: Optional[EngineConfig] = None) -> ParseResult:
    """Convenience function to parse a document server page."""
    return DocumentParser(config).parse(html)

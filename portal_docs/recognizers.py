"""
Structural recognizers for listing rows.

The portal renders folder listings with a few informally stable conventions
(highlighted row classes, header rows, a leading number/checkbox column) that
drift between locales and releases. Each convention is one RowRecognizer:
a predicate deciding whether the table looks like it uses the convention, and
an extractor returning the data rows. DEFAULT_RECOGNIZERS is tried in order
until one yields at least one row.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from bs4 import Tag

from .logger import get_module_logger

logger = get_module_logger("recognizers")

# Rows with fewer cells cannot carry a name and a reference
MIN_ROW_CELLS = 2

HIGHLIGHT_CLASS = "uis-hl-table"
LISTING_ROW_CLASS = "lbn"
HEADER_ROW_CLASS = "zahlavi"

# First-cell classes the portal uses for the row-number column
MARKER_CELL_CLASSES = ("UISTMNumberCell", "UISTMNumberCellHidden")


def classes_of(element: Optional[Tag]) -> list[str]:
    if element is None:
        return []
    value = element.get("class") or []
    return value.split() if isinstance(value, str) else list(value)


def own_rows(table: Tag) -> list[Tag]:
    """Rows of this table, excluding rows of nested tables."""
    return [tr for tr in table.find_all("tr") if tr.find_parent("table") is table]


def cells_of(row: Tag) -> list[Tag]:
    """Data cells of this row, excluding cells of nested tables."""
    return [td for td in row.find_all("td") if td.find_parent("tr") is row]


def is_layout_table(table: Tag) -> bool:
    """A table whose own data cells hold other tables arranges the page, it lists nothing."""
    return any(cell.find("table") is not None for tr in own_rows(table) for cell in cells_of(tr))


def is_header_row(row: Tag) -> bool:
    if HEADER_ROW_CLASS in classes_of(row):
        return True
    if row.find_parent("thead") is not None:
        return True
    # A row made only of <th> cells
    return bool(row.find("th")) and not cells_of(row)


def has_leading_marker(cells: list[Tag]) -> bool:
    """
    Whether the first cell is a row-number or checkbox column.

    Heuristic: inferred from a single cell's class attribute or a checkbox
    inside it. When true, positional column offsets shift by one.
    """
    if not cells:
        return False
    first = cells[0]
    if any(cls in classes_of(first) for cls in MARKER_CELL_CLASSES):
        return True
    return first.find("input", attrs={"type": "checkbox"}) is not None


@dataclass(frozen=True)
class RowRecognizer:
    """One structural convention for locating data rows in a table."""
    name: str
    predicate: Callable[[Tag], bool]
    extractor: Callable[[Tag], list[Tag]]

    def rows(self, table: Tag) -> list[Tag]:
        if not self.predicate(table):
            return []
        return self.extractor(table)


def _has_row_classes(*required: str) -> Callable[[Tag], bool]:
    def predicate(table: Tag) -> bool:
        return any(all(c in classes_of(tr) for c in required) for tr in own_rows(table))
    return predicate


def _rows_with_classes(*required: str) -> Callable[[Tag], list[Tag]]:
    def extractor(table: Tag) -> list[Tag]:
        return [
            tr for tr in own_rows(table)
            if all(c in classes_of(tr) for c in required)
            and len(cells_of(tr)) >= MIN_ROW_CELLS
        ]
    return extractor


def _any_table(table: Tag) -> bool:
    return True


def _body_rows(table: Tag) -> list[Tag]:
    return [
        tr for tr in own_rows(table)
        if not is_header_row(tr) and len(cells_of(tr)) >= MIN_ROW_CELLS
    ]


# Ranked most specific → least specific
DEFAULT_RECOGNIZERS = (
    RowRecognizer(
        name="highlighted_listing_rows",
        predicate=_has_row_classes(HIGHLIGHT_CLASS, LISTING_ROW_CLASS),
        extractor=_rows_with_classes(HIGHLIGHT_CLASS, LISTING_ROW_CLASS),
    ),
    RowRecognizer(
        name="highlighted_rows",
        predicate=_has_row_classes(HIGHLIGHT_CLASS),
        extractor=_rows_with_classes(HIGHLIGHT_CLASS),
    ),
    RowRecognizer(
        name="body_rows",
        predicate=_any_table,
        extractor=_body_rows,
    ),
)


def find_data_rows(
    table: Tag,
    recognizers: tuple[RowRecognizer, ...] = DEFAULT_RECOGNIZERS
) -> tuple[Optional[str], list[Tag]]:
    """
    Try recognizers in order; return the first one that yields rows.

    Returns:
        Tuple of (recognizer name or None, rows)
    """
    for recognizer in recognizers:
        rows = recognizer.rows(table)
        if rows:
            logger.debug(f"Recognizer '{recognizer.name}' matched {len(rows)} rows")
            return recognizer.name, rows
    return None, []

"""
Tests for the HTML table parser.

Covers the detail-page branch, the listing branch (header-mapped and
positional columns), attachment filtering and deduplication, pagination,
totals and the outcome tag.
"""

from portal_docs.parser import DocumentParser, parse_server_files
from portal_docs.schemas import ParseOutcome

from tests.conftest import document_row, folder_row, listing_page, listing_table

SCENARIO_NAME = "Přednáška 92 — abstraktní datové typy moduly"


def test_scenario_row_yields_one_pdf_attachment():
    html = listing_page(document_row(SCENARIO_NAME, 350247))

    result = DocumentParser().parse(html)

    assert result.outcome == ParseOutcome.LISTING
    assert len(result.entries) == 1
    entry = result.entries[0]
    assert entry.file_name == SCENARIO_NAME
    assert entry.subfolder == "Ostatní"
    assert entry.author == "Jan Novák"
    assert entry.date == "29. 1. 2026"
    assert entry.file_comment == ""
    assert len(entry.files) == 1
    assert "download=" in entry.files[0].link
    assert entry.files[0].type == "pdf"
    assert entry.files[0].name == SCENARIO_NAME


def test_scenario_row_without_header_uses_positional_columns():
    html = f"<table>{document_row(SCENARIO_NAME, 350247)}</table>"

    result = DocumentParser().parse(html)

    assert len(result.entries) == 1
    assert result.entries[0].file_name == SCENARIO_NAME
    assert result.entries[0].date == "29. 1. 2026"
    assert result.entries[0].files[0].type == "pdf"


def test_relative_references_are_rooted_under_documents_path():
    result = DocumentParser().parse(listing_page(document_row("Sylabus", 42, folder_id=7)))

    assert result.entries[0].files[0].link == "/auth/dok_server/slozka.pl?download=42;id=7;z=1"


def test_detail_page_yields_single_entry_with_anchor_target():
    html = """
    <html><body><table>
      <tr><td>
        <table class="detail">
          <tr><td>Název:</td><td>Zápočtový test</td></tr>
          <tr><td>Vložil:</td><td>Petra Dvořáková</td></tr>
          <tr><td>Datum dokumentu:</td><td>3. 2. 2026</td></tr>
          <tr><td>Poznámka:</td><td>Řešení v příloze</td></tr>
          <tr><td>Přílohy:</td>
              <td><a href="slozka.pl?download=9001;id=150953;z=1"><img sysid="mime-pdf"></a>
                  <a href="slozka.pl?download=9002;id=150953;z=1">druhá</a></td></tr>
        </table>
      </td></tr>
    </table></body></html>
    """

    result = DocumentParser().parse(html)

    assert result.outcome == ParseOutcome.DETAIL
    assert result.total_count == 1
    assert len(result.entries) == 1
    entry = result.entries[0]
    assert entry.file_name == "Zápočtový test"
    assert entry.author == "Petra Dvořáková"
    assert entry.date == "3. 2. 2026"
    assert entry.file_comment == "Řešení v příloze"
    assert len(entry.files) == 1
    assert entry.files[0].link == "slozka.pl?download=9001;id=150953;z=1"
    assert entry.files[0].type == "pdf"


def test_detail_page_in_english():
    html = """
    <table>
      <tr><td>Name:</td><td>Exam results</td></tr>
      <tr><td>Entered by:</td><td>John Smith</td></tr>
      <tr><td>Attachments:</td><td><a href="slozka.pl?download=5;id=6;z=1">results.pdf</a></td></tr>
    </table>
    """

    result = DocumentParser().parse(html)

    assert result.outcome == ParseOutcome.DETAIL
    assert result.entries[0].file_name == "Exam results"
    assert result.entries[0].author == "John Smith"
    assert result.entries[0].files[0].type == "unknown"


def test_row_with_only_navigation_anchors_is_excluded():
    nav_row = (
        "<tr class=\"uis-hl-table lbn\">"
        "<td></td><td>Rozvrh</td><td></td>"
        "<td><a href=\"/auth/lide/clovek.pl?id=1\">Jan Novák</a></td>"
        "<td></td>"
        "<td><a href=\"index.pl\">Domů</a></td>"
        "<td><a href=\"nastaveni_stromu.pl\">Nastavení</a></td>"
        "</tr>"
    )
    html = listing_page(nav_row + document_row("Sylabus", 1))

    result = DocumentParser().parse(html)

    assert [e.file_name for e in result.entries] == ["Sylabus"]
    assert all(entry.files for entry in result.entries)


def test_rows_named_like_system_links_are_excluded():
    system_row = (
        "<tr class=\"uis-hl-table lbn\">"
        "<td></td><td>All my folders</td><td></td><td></td><td></td>"
        "<td><a href=\"slozka.pl?id=99\">All my folders</a></td>"
        "</tr>"
    )

    result = DocumentParser().parse(listing_page(system_row))

    assert result.entries == []
    assert result.outcome == ParseOutcome.EMPTY


def test_external_links_are_rejected():
    row = (
        "<tr class=\"uis-hl-table lbn\">"
        "<td></td><td>Odkaz</td><td></td><td></td><td></td>"
        "<td><a href=\"https://evil.example.com/slozka.pl?download=1\"><img sysid=\"mime-pdf\"></a></td>"
        "<td><a href=\"javascript:alert(1)\">x</a></td>"
        "</tr>"
    )

    result = DocumentParser().parse(listing_page(row))

    assert result.entries == []


def test_duplicate_anchors_collapse_and_upgrade_type():
    row = (
        "<tr class=\"uis-hl-table lbn\">"
        "<td></td>"
        "<td><a href=\"slozka.pl?download=12;id=3;z=1\">Cvičení 4</a></td>"
        "<td></td><td></td><td></td>"
        "<td><a href=\"slozka.pl?download=12;id=3;z=1\"><img sysid=\"mime-docx\"></a></td>"
        "</tr>"
    )

    result = DocumentParser().parse(listing_page(row))

    assert len(result.entries) == 1
    files = result.entries[0].files
    assert len(files) == 1
    assert files[0].type == "docx"


def test_multiple_parts_of_one_document():
    row = (
        "<tr class=\"uis-hl-table lbn\">"
        "<td></td><td>Skripta</td><td>dva díly</td><td></td><td></td>"
        "<td><a href=\"slozka.pl?download=21;id=3;z=1\"><img sysid=\"mime-pdf\"></a></td>"
        "<td><a href=\"slozka.pl?download=22;id=3;z=1\"><img sysid=\"mime-zip\"></a></td>"
        "</tr>"
    )

    entry = DocumentParser().parse(listing_page(row)).entries[0]

    assert entry.file_comment == "dva díly"
    assert [a.type for a in entry.files] == ["pdf", "zip"]


def test_icon_beside_anchor_sets_media_kind():
    row = (
        "<tr><td></td><td>Tabulka</td><td></td><td></td><td></td>"
        "<td><img sysid=\"mime-xlsx\"><a href=\"slozka.pl?download=30;id=3;z=1\">stáhnout</a></td>"
        "</tr>"
    )

    result = DocumentParser().parse(f"<table>{row}</table>")

    assert result.entries[0].files[0].type == "xlsx"


def test_parse_is_idempotent():
    html = listing_page(document_row(SCENARIO_NAME, 1) + document_row("Sylabus", 2))
    parser = DocumentParser()

    assert parser.parse(html).model_dump() == parser.parse(html).model_dump()


def test_portal_menu_is_never_parsed_as_listing():
    html = (
        "<table class=\"portal_menu\"><tr>"
        "<td>Menu</td><td><a href=\"slozka.pl?download=1;id=2;z=1\">Nápověda</a></td>"
        "</tr></table>"
    )

    result = DocumentParser().parse(html)

    assert result.entries == []
    assert result.outcome == ParseOutcome.UNRECOGNIZED


def test_layout_table_around_listing_is_not_parsed_as_rows():
    html = (
        "<html><body><table class=\"layout\"><tr>"
        "<td><a href=\"/auth/student/studium.pl\">Moje studium</a>"
        "<a href=\"slozka.pl?download=5;id=150953;z=1\">Nápověda</a></td>"
        f"<td>{listing_table(document_row('Sylabus', 1))}</td>"
        "</tr></table></body></html>"
    )

    result = DocumentParser().parse(html)

    assert [e.file_name for e in result.entries] == ["Sylabus"]
    assert result.outcome == ParseOutcome.LISTING


def test_pagination_references_and_total_count():
    extra = (
        "<div class=\"strankovani\">Záznamy 1-10 z 35 "
        "<a href=\"slozka.pl?id=150953;on=1\">11-20</a> "
        "<a href=\"slozka.pl?id=150953;on=2\">21-30</a> "
        "<a href=\"slozka.pl?id=150953;on=2\">21-30</a> "
        "<a href=\"slozka.pl?id=150953;on=3\">31–35</a> "
        "<a href=\"slozka.pl?download=1;id=150953\">1-2</a>"
        "</div>"
    )

    result = DocumentParser().parse(listing_page(document_row("Sylabus", 1), extra))

    assert result.pagination_references == [
        "slozka.pl?id=150953;on=1",
        "slozka.pl?id=150953;on=2",
        "slozka.pl?id=150953;on=3",
    ]
    assert result.total_count == 35


def test_total_count_absent_without_indicator():
    result = DocumentParser().parse(listing_page(document_row("Sylabus", 1)))

    assert result.total_count is None
    assert result.pagination_references == []


def test_empty_folder_is_distinguished_from_unrecognized_markup():
    parser = DocumentParser()

    empty = parser.parse(listing_page(""))
    unknown = parser.parse("<html><body><p>Přihlášení vypršelo</p></body></html>")

    assert empty.entries == [] and unknown.entries == []
    assert empty.outcome == ParseOutcome.EMPTY
    assert unknown.outcome == ParseOutcome.UNRECOGNIZED
    assert unknown.warnings


def test_leading_marker_column_shifts_positional_offsets():
    row = (
        "<tr>"
        "<td class=\"UISTMNumberCell\">1.</td>"
        "<td>Ostatní</td><td>Zkouška</td><td>termíny</td><td>Jan Novák</td><td>1. 6. 2026</td>"
        "<td><a href=\"slozka.pl?download=40;id=3;z=1\"><img sysid=\"mime-pdf\"></a></td>"
        "</tr>"
    )

    entry = DocumentParser().parse(f"<table>{row}</table>").entries[0]

    assert entry.subfolder == "Ostatní"
    assert entry.file_name == "Zkouška"
    assert entry.file_comment == "termíny"
    assert entry.author == "Jan Novák"
    assert entry.date == "1. 6. 2026"


def test_checkbox_marks_leading_column():
    row = (
        "<tr>"
        "<td><input type=\"checkbox\" name=\"sel\"></td>"
        "<td></td><td>Projekt</td><td></td><td></td><td></td>"
        "<td><a href=\"slozka.pl?download=41;id=3;z=1\">projekt.zip</a></td>"
        "</tr>"
    )

    entry = DocumentParser().parse(f"<table>{row}</table>").entries[0]

    assert entry.file_name == "Projekt"


def test_header_columns_are_mapped_by_keyword():
    html = (
        "<table>"
        "<tr class=\"zahlavi\"><th>Document date</th><th>Entered by</th><th>Name</th><th></th></tr>"
        "<tr><td>2. 3. 2026</td><td>Anna Malá</td><td>Lab report</td>"
        "<td><a href=\"slozka.pl?download=50;id=3;z=1\"><img sysid=\"mime-pdf\"></a></td></tr>"
        "</table>"
    )
    parser = DocumentParser()

    assert parser.column_indices(parser.preprocessor.to_soup(html)[0].find("table")) == {
        "date": 0, "author": 1, "name": 2,
    }
    entry = parser.parse(html).entries[0]
    assert entry.file_name == "Lab report"
    assert entry.author == "Anna Malá"
    assert entry.date == "2. 3. 2026"


def test_folder_rows_are_kept_as_entries():
    result = DocumentParser().parse(listing_page(folder_row("Cvičení", 200)))

    assert len(result.entries) == 1
    assert result.entries[0].files[0].link == "/auth/dok_server/slozka.pl?id=200"
    assert result.entries[0].files[0].type == "unknown"


def test_unsafe_names_are_cleaned():
    row = (
        "<tr><td></td><td>../../etc/passwd</td><td></td><td></td><td></td>"
        "<td><a href=\"slozka.pl?download=60;id=3;z=1\">x</a></td></tr>"
    )

    entry = DocumentParser().parse(f"<table>{row}</table>").entries[0]

    assert "/" not in entry.file_name
    assert not entry.file_name.startswith(".")


def test_malformed_input_never_raises():
    parser = DocumentParser()

    for html in (None, "", "<table><tr><td>", "\x00\x01<table>", "<<<>>>"):
        result = parser.parse(html)
        assert result.entries == []


def test_parse_server_files_convenience():
    result = parse_server_files(listing_page(document_row("Sylabus", 1)))

    assert result.entries[0].file_name == "Sylabus"

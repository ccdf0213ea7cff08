"""Tests for reading uploaded workbooks and CSV files.

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from datetime import date, datetime

import pytest

from carbonledger.exceptions import FileReadError
from carbonledger.ingestion.file_reader import (
    UNREADABLE_FILE_MESSAGE,
    SpreadsheetFormat,
    cell_to_text,
    choose_sheet,
    decode_text,
    detect_format,
    find_data_table,
    read_file_buffer,
)


# ==============================================================================
# Format detection and decoding
# ==============================================================================

class TestDetectFormat:
    """Tests for detect_format."""

    def test_zip_magic_is_xlsx(self):
        """OOXML workbooks start with a ZIP header."""
        assert detect_format(b"PK\x03\x04rest", "data.csv") == SpreadsheetFormat.XLSX

    def test_ole_magic_is_xls(self):
        """Legacy workbooks start with an OLE2 header."""
        assert detect_format(b"\xd0\xcf\x11\xe0rest") == SpreadsheetFormat.XLS

    def test_extension_fallback(self):
        """Without magic bytes the extension decides."""
        assert detect_format(b"a,b", "DATA.XLS") == SpreadsheetFormat.XLS
        assert detect_format(b"a,b", "data.csv") == SpreadsheetFormat.CSV

    def test_defaults_to_csv(self):
        """Unknown content is treated as CSV."""
        assert detect_format(b"a,b") == SpreadsheetFormat.CSV
        assert detect_format(b"a,b", "notes.txt") == SpreadsheetFormat.CSV


class TestDecodeText:
    """Tests for decode_text."""

    def test_utf8_bom_is_stripped(self):
        """A UTF-8 BOM does not leak into the first header."""
        assert decode_text(b"\xef\xbb\xbfType,Quantity") == "Type,Quantity"

    def test_plain_utf8(self):
        """UTF-8 text decodes directly."""
        assert decode_text("Café,1".encode("utf-8")) == "Café,1"

    def test_non_utf8_falls_back_to_detection(self):
        """Non-UTF-8 bytes are still decoded."""
        text = decode_text(b"Site;Caf\xe9 Central;100")
        assert text.startswith("Site;Caf")
        assert text.endswith(";100")

    def test_binary_content_is_rejected(self):
        """NUL bytes mean the content is not text."""
        with pytest.raises(FileReadError):
            decode_text(b"\x00\x01\x02\x03")


# ==============================================================================
# Sheet selection and header detection
# ==============================================================================

class TestChooseSheet:
    """Tests for choose_sheet."""

    def test_prefers_sheet_with_activity_data(self):
        """Sheet name keywords, known headers and row count raise the score."""
        cover = ("Cover", [["Annual report"], ["Prepared by finance"]])
        data = ("Emissions Data", [
            ["Emission Type", "Site", "Quantity", "Unit"],
            ["Diesel", "Depot", 100, "litres"],
            ["Natural Gas", "Office", 500, "kWh"],
        ])
        assert choose_sheet([cover, data]) == 1

    def test_empty_sheets_are_skipped(self):
        """Sheets with fewer than two non-empty rows never win."""
        empty = ("Data", [[None, None], ["only one row"]])
        other = ("Sheet2", [["a", "b"], ["c", "d"]])
        assert choose_sheet([empty, other]) == 1

    def test_defaults_to_first_sheet(self):
        """Nothing usable falls back to index 0."""
        assert choose_sheet([("A", []), ("B", [])]) == 0


class TestFindDataTable:
    """Tests for find_data_table."""

    def test_header_below_title_rows(self):
        """Title and blank rows above the header are skipped."""
        grid = [
            ["Company emissions report", None, None, None],
            [None, None, None, None],
            ["Emission Type", "Site", "Quantity", "Unit"],
            ["Diesel", "Depot", 100, "litres"],
        ]
        assert find_data_table(grid) == [
            {"Emission Type": "Diesel", "Site": "Depot", "Quantity": 100, "Unit": "litres"},
        ]

    def test_widest_keyword_row_wins(self):
        """Among candidate header rows the one with most cells is used."""
        grid = [
            ["Site", "Type", "Date"],
            ["Site", "Type", "Date", "Quantity"],
            ["Depot", "Diesel", "2025-01-01", "5"],
        ]
        rows = find_data_table(grid)
        assert rows == [{"Site": "Depot", "Type": "Diesel", "Date": "2025-01-01", "Quantity": "5"}]

    def test_without_keywords_uses_first_non_empty_row(self):
        """A grid with no recognisable header uses its first row."""
        grid = [[None], ["a", "b"], ["1", "2"]]
        assert find_data_table(grid) == [{"a": "1", "b": "2"}]

    def test_blank_headers_are_named_by_position(self):
        """Unnamed columns become Column_N."""
        grid = [["Type", None, "Quantity"], ["Diesel", "x", "5"]]
        assert find_data_table(grid) == [{"Type": "Diesel", "Column_2": "x", "Quantity": "5"}]

    def test_blank_cells_and_rows(self):
        """Blank cells become None, blank rows are dropped, short rows are padded."""
        grid = [
            ["Type", "Site", "Quantity"],
            ["Diesel", "  ", "5"],
            ["", None, ""],
            ["LPG"],
        ]
        assert find_data_table(grid) == [
            {"Type": "Diesel", "Site": None, "Quantity": "5"},
            {"Type": "LPG", "Site": None, "Quantity": None},
        ]

    def test_empty_grid(self):
        """No rows, no data."""
        assert find_data_table([]) == []


# ==============================================================================
# read_file_buffer
# ==============================================================================

class TestReadFileBuffer:
    """Tests for the read_file_buffer entry point."""

    def test_reads_csv(self, activity_csv):
        """CSV uploads yield string cells and no sheet info."""
        result = read_file_buffer(activity_csv, "activities.csv")
        assert result.file_format == SpreadsheetFormat.CSV
        assert result.sheet_info is None
        assert len(result.rows) == 2
        assert result.rows[0]["Type"] == "Natural Gas"
        assert result.rows[1]["Quantity"] == "250"

    def test_sniffs_semicolon_delimiter(self, make_csv):
        """Semicolon separated files are split correctly."""
        content = make_csv([
            ["Type", "Site", "Quantity", "Unit"],
            ["Diesel", "Depot", "100", "litres"],
            ["LPG", "Office", "40", "kWh"],
            ["Natural Gas", "Office", "900", "kWh"],
        ], delimiter=";")
        rows = read_file_buffer(content, "data.csv").rows
        assert [r["Type"] for r in rows] == ["Diesel", "LPG", "Natural Gas"]
        assert rows[0]["Unit"] == "litres"

    def test_reads_best_sheet_of_workbook(self, make_xlsx):
        """The activity sheet is chosen and reported in sheet info."""
        content = make_xlsx({
            "Cover": [["Emissions workbook"]],
            "Emissions Data": [
                ["Emission Type", "Site", "Quantity", "Unit", "Date"],
                ["Diesel", "Depot", 100, "litres", date(2025, 3, 1)],
                ["Natural Gas", "Office", 500.5, "kWh", date(2025, 3, 1)],
            ],
        })
        result = read_file_buffer(content, "upload.xlsx")

        assert result.file_format == SpreadsheetFormat.XLSX
        assert result.sheet_info.selected_sheet == "Emissions Data"
        assert result.sheet_info.total_sheets == 2
        assert result.sheet_info.all_sheets == ["Cover", "Emissions Data"]
        assert result.rows[0]["Quantity"] == 100
        assert result.rows[1]["Quantity"] == 500.5
        assert result.rows[0]["Date"] == datetime(2025, 3, 1)

    def test_max_rows_limits_reading(self, make_csv):
        """Rows beyond the limit are not read."""
        content = make_csv([["Type", "Site", "Quantity"]] + [["Diesel", "Depot", str(i)] for i in range(10)])
        rows = read_file_buffer(content, "big.csv", max_rows=4).rows
        assert len(rows) == 3

    def test_empty_file_has_no_rows(self):
        """Empty uploads read as zero rows."""
        assert read_file_buffer(b"", "empty.csv").rows == []

    def test_binary_file_raises(self):
        """Binary content that is not a workbook cannot be read."""
        with pytest.raises(FileReadError) as exc_info:
            read_file_buffer(b"\x00\x00\x00\x01garbage", "data.csv")
        assert exc_info.value.message == UNREADABLE_FILE_MESSAGE
        assert exc_info.value.context["filename"] == "data.csv"


class TestCellToText:
    """Tests for cell_to_text."""

    def test_renders_values(self):
        """Cells are rendered as short text."""
        assert cell_to_text(None) == ""
        assert cell_to_text(12.0) == "12"
        assert cell_to_text(12.5) == "12.5"
        assert cell_to_text(datetime(2025, 1, 2)) == "2025-01-02"
        assert cell_to_text(datetime(2025, 1, 2, 8, 30)) == "2025-01-02T08:30:00"
        assert cell_to_text("kWh") == "kWh"

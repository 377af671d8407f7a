# Panoplan imports
from panoplan.import_staging import stage_file, stage_rows

# Third-party imports
import pandas as pd
import pytest


@pytest.fixture
def raw_rows():
    """Two header rows and three data rows, one of them blank"""
    return [
        ["Ref", "Room Name", "Area"],
        ["REF", "ROOM_NAME", "Q01_AREA"],
        ["G01", "Office", "12"],
        ["", "  ", None],
        ["G02", "Store", "6"],
    ]


class TestStageRows:
    """Splitting parsed rows into headers and data"""

    def test_headers_and_blank_row_filtering(self, raw_rows):
        result = stage_rows(raw_rows)
        assert result.ok
        assert result.headers == (["Ref", "Room Name", "Area"], ["REF", "ROOM_NAME", "Q01_AREA"])
        assert result.rows == [["G01", "Office", "12"], ["G02", "Store", "6"]]
        assert result.total_rows == 2

    def test_too_few_rows(self):
        result = stage_rows([["A"], ["B"]])
        assert not result.ok
        assert result.rows == []
        assert "at least 3 rows" in result.errors[0]

    def test_cells_become_strings(self):
        result = stage_rows([["A"], ["X"], [12], [float("nan")]])
        assert result.rows == [["12"]]


class TestStageFile:
    """Reading CSV / Excel schedules from disk"""

    def test_csv(self, tmp_path):
        path = tmp_path / "rooms.csv"
        path.write_text("Ref,Room Name\nREF,ROOM_NAME\nG01,Office\n,\nG02,Store\n")

        result = stage_file(path)

        assert result.ok
        assert result.source == path
        assert result.rows == [["G01", "Office"], ["G02", "Store"]]

    def test_ragged_csv_rows(self, tmp_path):
        path = tmp_path / "rooms.csv"
        path.write_text("Ref,Room Name\nREF,ROOM_NAME\nG01,Office,Level 1 note\nG02\n")

        result = stage_file(path)

        assert result.ok
        assert result.headers[0] == ["Ref", "Room Name", ""]
        assert result.rows == [["G01", "Office", "Level 1 note"], ["G02", "", ""]]

    def test_xlsx(self, tmp_path):
        path = tmp_path / "rooms.xlsx"
        pd.DataFrame([
            ["Ref", "Room Name"],
            ["REF", "ROOM_NAME"],
            ["G01", "Office"],
        ]).to_excel(path, header=False, index=False)

        result = stage_file(path)

        assert result.ok
        assert result.headers[1] == ["REF", "ROOM_NAME"]
        assert result.rows == [["G01", "Office"]]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "rooms.txt"
        path.write_text("hello")
        result = stage_file(path)
        assert not result.ok
        assert "Unsupported file format" in result.errors[0]

    def test_empty_file_reports_error(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("")
        result = stage_file(path)
        assert not result.ok
        assert result.rows == []

    def test_missing_file_reports_error(self, tmp_path):
        result = stage_file(tmp_path / "missing.csv")
        assert not result.ok

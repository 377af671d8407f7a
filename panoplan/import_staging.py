"""
Import staging for room schedules.

Reads a CSV or Excel room schedule into a two-row header pair plus data rows.
Only a fully materialized ``ImportResult`` reaches the engine: on any parse
failure ``rows`` is empty and ``errors`` says why.

Expected layout:
    Row 1   human-readable column names
    Row 2   internal field codes
    Row 3+  one room per row (rows with every cell empty are dropped)
"""

# Panoplan imports
from panoplan import config

# Standard library imports
import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

# Third-party imports
import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Staged room table.

    Attributes:
        headers: (row1 labels, row2 field codes).
        rows: Non-blank data rows, every cell a string.
        errors: Parse/validation errors; non-empty means nothing was staged.
        source: File the table came from, if any.
    """

    headers:    Tuple[List[str], List[str]]     = field(default_factory=lambda: ([], []))
    rows:       List[List[str]]                 = field(default_factory=list)
    errors:     List[str]                       = field(default_factory=list)
    source:     Optional[Path]                  = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value)


def _is_blank(row: Sequence[str]) -> bool:
    return all(cell.strip() == "" for cell in row)


def stage_rows(raw_rows: Iterable[Sequence[Any]], source: Optional[Path] = None) -> ImportResult:
    """
    Split already-parsed rows into headers and non-blank data rows.

    Args:
        raw_rows: Every row of the sheet, header rows included.
        source: Optional originating file, kept for reporting.

    Returns:
        ImportResult: With an error if fewer than 3 rows were supplied.
    """
    table = [[_cell(c) for c in row] for row in raw_rows]
    if len(table) < config.MIN_IMPORT_ROWS:
        return ImportResult(
            errors=["File must have at least 3 rows (2 header rows + data)."],
            source=source,
        )
    headers = (table[0], table[1])
    rows = [row for row in table[config.HEADER_ROWS:] if not _is_blank(row)]
    dropped = len(table) - config.HEADER_ROWS - len(rows)
    if dropped:
        logger.debug(f"Dropped {dropped} blank rows")
    return ImportResult(headers=headers, rows=rows, source=source)


def read_table(path: Union[Path, str]) -> pd.DataFrame:
    """Read the first sheet of a CSV/Excel file with no header inference, all cells as text."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        # Rows may be ragged; pad every row to the widest one
        with open(path, "r", newline="", encoding="utf-8-sig") as f:
            raw = list(csv.reader(f))
        width = max((len(row) for row in raw), default=0)
        return pd.DataFrame([row + [""] * (width - len(row)) for row in raw], dtype=str)
    if suffix == ".xlsx":
        return pd.read_excel(path, sheet_name=0, header=None, dtype=str, engine="openpyxl")
    return pd.read_excel(path, sheet_name=0, header=None, dtype=str)


def stage_file(path: Union[Path, str]) -> ImportResult:
    """
    Parse a room schedule file into an ImportResult.

    Args:
        path: .csv, .xlsx or .xls file.

    Returns:
        ImportResult: Errors are reported on the result rather than raised.
    """
    path = Path(path)
    if path.suffix.lower() not in config.IMPORT_EXTENSIONS:
        return ImportResult(
            errors=["Unsupported file format. Please upload CSV or Excel files."],
            source=path,
        )
    try:
        frame = read_table(path)
    except (OSError, ValueError, ImportError, csv.Error) as e:
        logger.warning(f"Failed to read {path}: {e}")
        return ImportResult(errors=[f"Could not read {path.name}: {e}"], source=path)

    result = stage_rows(frame.values.tolist(), source=path)
    if result.ok:
        logger.info(f"Staged {result.total_rows} rooms from {path.name}")
    return result

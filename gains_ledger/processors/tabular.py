"""
Tabular reader: raw CSV text -> RawRows.

Quoted cells, doubled quotes, embedded newlines, CRLF and a leading BOM are
handled by the csv module. Cells are trimmed. Blank lines are kept as empty
rows so every record keeps the line number it starts on.
"""

import csv
import io
from typing import List

from gains_ledger.core.models import RawRow


class TabularReadError(ValueError):
    """The content cannot be split into CSV records."""

    def __init__(self, message: str, line: int = 0):
        super().__init__(message)
        self.line = line


def sniff_delimiter(content: str) -> str:
    """Comma unless the first non-blank line only uses semicolons or tabs."""
    for line in content.splitlines():
        if not line.strip():
            continue
        if ',' in line:
            return ','
        if ';' in line:
            return ';'
        if '\t' in line:
            return '\t'
        return ','
    return ','


def read_rows(content: str, delimiter: str = None) -> List[RawRow]:
    """
    Split CSV text into rows of trimmed cells.

    Raises:
        TabularReadError: malformed input the csv module rejects (e.g. an oversized field)
    """
    if content is None:
        return []
    if content.startswith('\ufeff'):
        content = content[1:]
    if delimiter is None:
        delimiter = sniff_delimiter(content)

    reader = csv.reader(io.StringIO(content, newline=''), delimiter=delimiter)
    rows = []
    start_line = 1
    try:
        for record in reader:
            rows.append(RawRow(start_line, tuple(cell.strip() for cell in record)))
            start_line = reader.line_num + 1
    except csv.Error as e:
        raise TabularReadError(f"Malformed CSV near line {reader.line_num}: {e}", reader.line_num) from e
    return rows


def data_rows(rows: List[RawRow]) -> List[RawRow]:
    """Rows with at least one non-empty cell."""
    return [r for r in rows if not r.is_blank()]

"""Tabular data structures for parsed nvidia-smi CSV output."""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple


class FieldCountMismatchError(ValueError):
    """Raised when the CSV shape does not match the requested query fields."""

    def __init__(self, expected: int, actual: int, line: str = "header"):
        self.expected = expected
        self.actual = actual
        self.line = line
        super().__init__(
            f"field count mismatch in {line}: expected {expected} fields, got {actual}"
        )


@dataclass(frozen=True)
class Cell:
    """Single observation: which field was asked, what came back, and its raw text."""

    query_field: str
    returned_field: str
    raw_value: str


@dataclass
class Row:
    """One device's cells, in column order, plus a lookup by query field."""

    cells: Tuple[Cell, ...]
    cells_by_field: Dict[str, Cell] = field(default_factory=dict)

    def raw_value(self, query_field: str, default: str = "") -> str:
        cell = self.cells_by_field.get(query_field)
        return cell.raw_value if cell is not None else default


@dataclass
class Table:
    """Result of one nvidia-smi query."""

    returned_fields: Tuple[str, ...]
    rows: List[Row]
    cells_by_field: Dict[str, List[Cell]]


def parse_csv_line(line: str) -> List[str]:
    """Split a CSV line on commas and trim each value (no quoting support)."""
    return [value.strip() for value in line.split(",")]


def parse_csv_into_table(query_result: str, query_fields: Sequence[str]) -> Table:
    """
    Parse nvidia-smi CSV output into a Table.

    Args:
        query_result: Raw stdout, first line being the header
        query_fields: Query fields in the same order as the columns

    Returns:
        Table: Parsed table, rows in input order

    Raises:
        FieldCountMismatchError: If the header or any row does not have
            exactly one column per query field

    Example input:
        name, power.draw [W]
        NVIDIA GeForce RTX 2080 SUPER, 30.14 W
    """
    text = query_result.strip()
    if not text:
        raise FieldCountMismatchError(len(query_fields), 0)

    lines = text.split("\n")
    returned_fields = tuple(parse_csv_line(lines[0]))
    num_cols = len(query_fields)

    if len(returned_fields) != num_cols:
        raise FieldCountMismatchError(num_cols, len(returned_fields))

    cells_by_field: Dict[str, List[Cell]] = {q: [] for q in query_fields}
    rows: List[Row] = []

    for row_index, line in enumerate(lines[1:]):
        raw_values = parse_csv_line(line)
        if len(raw_values) != num_cols:
            raise FieldCountMismatchError(num_cols, len(raw_values), line=f"row {row_index}")

        cells = tuple(
            Cell(query_field=q, returned_field=r, raw_value=v)
            for q, r, v in zip(query_fields, returned_fields, raw_values)
        )
        for cell in cells:
            cells_by_field[cell.query_field].append(cell)

        rows.append(Row(cells=cells, cells_by_field={c.query_field: c for c in cells}))

    return Table(returned_fields=returned_fields, rows=rows, cells_by_field=cells_by_field)

"""
Type & structure inference for raw CSV text.

Turns the uploaded text into a single `Table`: it finds an optional
declared-type row (either above or below the header), cleans the header names
into SQL identifiers and infers one SQL type per column. Type inference runs a
fixed priority: the declared type when valid, then the column name, then the
observed values.
"""
from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .config import CONFIG, NormalizerConfig
from .errors import InvalidInputError
from .models import Column, Table
from .vocabulary import Vocabulary, first_match

logger = logging.getLogger(__name__)

SOURCE_TABLE_NAME = "MAIN_TABLE"
FALLBACK_TYPE = "VARCHAR(255)"

SQL_TYPE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^INT$",
        r"^INTEGER$",
        r"^BIGINT$",
        r"^VARCHAR\(\d+\)$",
        r"^CHAR\(\d+\)$",
        r"^DECIMAL\(\d+,\s*\d+\)$",
        r"^NUMERIC\(\d+,\s*\d+\)$",
        r"^FLOAT$",
        r"^DOUBLE$",
        r"^DATE$",
        r"^DATETIME$",
        r"^TIMESTAMP$",
        r"^BOOLEAN$",
        r"^BOOL$",
        r"^TEXT$",
        r"^LONGTEXT$",
    )
)

NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
)


# --------------------------------------------------------------------------------------
# Line & cell helpers
# --------------------------------------------------------------------------------------
def split_lines(text: str) -> List[str]:
    """Trim the text and return its non-blank lines. Raises for non-text input."""
    if not isinstance(text, str):
        raise InvalidInputError(f"Expected CSV text, got {type(text).__name__}")
    return [line for line in text.strip().splitlines() if line.strip()]


def parse_line(line: str) -> List[str]:
    """Split one comma-delimited line honouring double-quoted cells."""
    cells = next(csv.reader([line], skipinitialspace=True), [])
    return [cell.strip().strip('"').strip() for cell in cells]


def is_sql_type(value: str) -> bool:
    candidate = value.strip()
    return any(p.match(candidate) for p in SQL_TYPE_PATTERNS)


def is_type_row(cells: Sequence[str]) -> bool:
    if not cells:
        return False
    matches = sum(1 for cell in cells if is_sql_type(cell))
    return matches > len(cells) * CONFIG["LIMITS"]["TYPE_ROW_MIN_SHARE"]


def clean_header(raw: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", raw.strip().strip('"'))
    return cleaned.strip("_")


def clean_headers(raw_headers: Sequence[str]) -> List[str]:
    """Clean every header; blank results become `column_<n>` and repeats get a suffix."""
    seen: Dict[str, int] = {}
    result: List[str] = []
    for position, raw in enumerate(raw_headers, start=1):
        name = clean_header(raw) or f"column_{position}"
        key = name.lower()
        if key in seen:
            seen[key] += 1
            name = f"{name}_{seen[key]}"
        else:
            seen[key] = 1
        result.append(name)
    return result


# --------------------------------------------------------------------------------------
# Structure detection
# --------------------------------------------------------------------------------------
@dataclass
class CsvStructure:
    has_type_row: bool
    type_row_index: int
    header_row_index: int
    data_start_index: int
    original_headers: List[str]
    declared_types: List[str] = field(default_factory=list)
    clean_headers: List[str] = field(default_factory=list)


def analyze_csv_structure(lines: Sequence[str]) -> CsvStructure:
    """Locate the header row, the optional declared-type row and the first data row."""
    if len(lines) < 2:
        raise InvalidInputError("CSV input needs at least two non-empty lines (header and data)")

    first = parse_line(lines[0])
    second = parse_line(lines[1])

    if is_type_row(first):
        structure = CsvStructure(True, 0, 1, 2, second, declared_types=first)
    elif is_type_row(second):
        structure = CsvStructure(True, 1, 0, 2, first, declared_types=second)
    else:
        structure = CsvStructure(False, -1, 0, 1, first)

    structure.clean_headers = clean_headers(structure.original_headers)
    return structure


# --------------------------------------------------------------------------------------
# Type inference
# --------------------------------------------------------------------------------------
def is_number(value: str) -> bool:
    return NUMBER_RE.match(value.strip()) is not None


def is_date(value: str) -> bool:
    candidate = value.strip()
    try:
        datetime.fromisoformat(candidate)
        return True
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(candidate, fmt)
            return True
        except ValueError:
            continue
    return False


def infer_content_type(values: Sequence[str]) -> str:
    """Infer a type from observed (non-empty) values; VARCHAR(255) when there are none."""
    observed = [v for v in values if v != ""]
    if not observed:
        return FALLBACK_TYPE
    if all(is_number(v) for v in observed):
        return "DECIMAL(10,2)" if any("." in v for v in observed) else "INTEGER"
    if all(is_date(v) for v in observed):
        return "DATE"
    longest = max(len(v) for v in observed)
    for bucket in CONFIG["LIMITS"]["VARCHAR_BUCKETS"]:
        if longest <= bucket:
            return f"VARCHAR({bucket})"
    return "TEXT"


class TypeInferrer:
    """Declared type, then name heuristic, then content."""

    def __init__(self, vocabulary: Vocabulary) -> None:
        self.vocabulary = vocabulary

    def infer(self, name: str, values: Sequence[str], declared: Optional[str] = None) -> str:
        if declared and is_sql_type(declared):
            return re.sub(r"\s+", "", declared.strip().upper())
        by_name = first_match(self.vocabulary.type_name_rules, name)
        if by_name is not None:
            return by_name
        return infer_content_type(values)


# --------------------------------------------------------------------------------------
# Inferencer
# --------------------------------------------------------------------------------------
class StructureInferencer:
    """Parses raw CSV text into the single source `Table`."""

    def __init__(self, config: Optional[NormalizerConfig] = None) -> None:
        self.config = config or NormalizerConfig()
        self.types = TypeInferrer(self.config.vocabulary)

    def infer(self, text: str) -> Table:
        lines = split_lines(text)
        structure = analyze_csv_structure(lines)
        headers = structure.clean_headers
        rows = [parse_line(line) for line in lines[structure.data_start_index:]]
        logger.info(
            "Parsed %d columns and %d data rows (type row: %s)",
            len(headers),
            len(rows),
            "line %d" % (structure.type_row_index + 1) if structure.has_type_row else "none",
        )

        columns: List[Column] = []
        for index, name in enumerate(headers):
            values = [row[index] if index < len(row) else "" for row in rows]
            declared = structure.declared_types[index] if index < len(structure.declared_types) else None
            col_type = self.types.infer(name, values, declared)
            logger.debug("Column %s inferred as %s", name, col_type)
            columns.append(Column(name=name, type=col_type, values=values))

        data = [list(row) for row in rows]
        if structure.has_type_row:
            type_row = [
                structure.declared_types[i] if i < len(structure.declared_types) else ""
                for i in range(len(headers))
            ]
            data.insert(0, type_row)

        return Table(name=SOURCE_TABLE_NAME, columns=columns, data=data, has_type_row=structure.has_type_row)


# --------------------------------------------------------------------------------------
# Validation & preview helpers
# --------------------------------------------------------------------------------------
def validate_csv(text: Any) -> bool:
    """True when the text has a header of two or more cells and rows of matching width."""
    if not isinstance(text, str):
        return False
    lines = split_lines(text)
    if len(lines) < 2:
        return False
    try:
        structure = analyze_csv_structure(lines)
    except InvalidInputError:
        return False
    width = len(structure.original_headers)
    if width < 2:
        return False
    return all(len(parse_line(line)) == width for line in lines[structure.data_start_index:])


def _size_label(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def csv_stats(text: Any) -> Dict[str, Any]:
    if not validate_csv(text):
        return {"total_rows": 0, "total_columns": 0, "is_valid": False, "estimated_size": "0 Bytes"}
    lines = split_lines(text)
    structure = analyze_csv_structure(lines)
    return {
        "total_rows": len(lines) - structure.data_start_index,
        "total_columns": len(structure.clean_headers),
        "is_valid": True,
        "estimated_size": _size_label(len(text.encode("utf-8"))),
    }


def preview_structure(text: Any, rows: Optional[int] = None) -> Dict[str, List[Any]]:
    """Headers, up to `rows` sample rows and the inferred types, without running the pipeline."""
    if not validate_csv(text):
        return {"headers": [], "sample_rows": [], "column_types": []}
    limit = CONFIG["LIMITS"]["PREVIEW_ROWS"] if rows is None else rows
    table = StructureInferencer().infer(text)
    return {
        "headers": [col.name for col in table.columns],
        "sample_rows": [list(row) for row in table.data_rows[:limit]],
        "column_types": [col.type for col in table.columns],
    }

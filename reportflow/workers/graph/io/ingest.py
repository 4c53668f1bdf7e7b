from __future__ import annotations

import base64
import binascii
import csv
import io
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

import pandas as pd

from ..core.constants import _BOOLEAN_STRINGS, _NULL_SENTINELS
from ..core.errors import ValidationError
from ..core.types import NormalizedInput
from ..core.utils import parse_date

logger = logging.getLogger(__name__)


def _cast_value(value: Any) -> Any:
    """Cast a delimited cell to a number, boolean or date where it reads as one."""
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    if not trimmed or trimmed in _NULL_SENTINELS:
        return None
    lowered = trimmed.lower()
    if lowered in _BOOLEAN_STRINGS:
        return _BOOLEAN_STRINGS[lowered]
    try:
        number = float(trimmed)
    except ValueError:
        parsed = parse_date(trimmed) if trimmed[:1].isdigit() else None
        if parsed is not None and len(trimmed) <= 32:
            return parsed
        return trimmed
    if number.is_integer() and "." not in trimmed and "e" not in lowered:
        return int(number)
    return number


def _plain_value(value: Any) -> Any:
    """Unwrap pandas/numpy scalars into plain Python values."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, (datetime, date, str, bool, int, float)):
        return value
    item = getattr(value, "item", None)
    if callable(item):
        return item()
    return value


class _DatasetBuilder:
    """Concatenates records row-wise under the union of their keys."""

    def __init__(self) -> None:
        self.columns: List[str] = []
        self._known: Set[str] = set()
        self.rows: List[Dict[str, Any]] = []

    def ensure_column(self, name: str) -> None:
        if name not in self._known:
            self._known.add(name)
            self.columns.append(name)

    def process_row(self, row: Mapping[str, Any]) -> None:
        processed: Dict[str, Any] = {}
        for key, value in row.items():
            name = str(key)
            self.ensure_column(name)
            processed[name] = value
        self.rows.append(processed)

    def extend(self, rows: Iterable[Mapping[str, Any]]) -> None:
        for row in rows:
            self.process_row(row)

    def build(self) -> List[Dict[str, Any]]:
        return [{name: row.get(name) for name in self.columns} for row in self.rows]


class _HeaderNormalizer:
    """Normalizes and deduplicates column headers for delimited inputs."""

    def __init__(self) -> None:
        self._base_counts: Dict[str, int] = {}
        self._used: Set[str] = set()

    def _clean(self, raw: Any, index: int) -> str:
        text = "" if raw is None else str(raw)
        text = text.lstrip("\ufeff").strip()
        return text or f"column_{index + 1}"

    def _allocate(self, base: str) -> str:
        count = self._base_counts.get(base, 0)
        candidate = base if count == 0 else f"{base}_{count + 1}"
        while candidate in self._used:
            count += 1
            candidate = f"{base}_{count + 1}"
        self._base_counts[base] = count + 1
        self._used.add(candidate)
        return candidate

    def normalize(self, fieldnames: Sequence[Any]) -> List[str]:
        return [self._allocate(self._clean(name, index)) for index, name in enumerate(fieldnames)]


def _ingest_csv(text: str) -> List[Dict[str, Any]]:
    reader = csv.reader(io.StringIO(text))
    try:
        first_row = next(reader)
    except StopIteration:
        return []
    except csv.Error as exc:
        raise ValidationError(f"Failed to parse CSV data: {exc}") from exc

    headers = _HeaderNormalizer().normalize(first_row)
    rows: List[Dict[str, Any]] = []
    try:
        for raw_row in reader:
            if not raw_row or all(cell.strip() == "" for cell in raw_row):
                continue
            if len(raw_row) > len(headers):
                raise ValidationError(
                    f"Failed to parse CSV data: row {reader.line_num} has {len(raw_row)} fields, expected {len(headers)}"
                )
            row = {header: None for header in headers}
            for header, cell in zip(headers, raw_row):
                row[header] = _cast_value(cell)
            rows.append(row)
    except csv.Error as exc:
        raise ValidationError(f"Failed to parse CSV data: {exc}") from exc
    return rows


def _ingest_json(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Failed to parse JSON data: {exc.msg} at line {exc.lineno}") from exc
    if isinstance(data, Mapping):
        data = [data]
    if not isinstance(data, list):
        raise ValidationError("JSON data must be an array of objects")
    records: List[Dict[str, Any]] = []
    for index, item in enumerate(data):
        if not isinstance(item, Mapping):
            raise ValidationError(f"JSON data item {index} is not an object")
        records.append(dict(item))
    return records


def _ingest_excel(encoded: str, sheet_name: Optional[str] = None) -> List[Dict[str, Any]]:
    try:
        body = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"Spreadsheet data is not valid base64: {exc}") from exc

    try:
        with io.BytesIO(body) as stream:
            frame = pd.read_excel(stream, sheet_name=sheet_name if sheet_name else 0, dtype=object)
    except Exception as exc:
        raise ValidationError(f"Failed to read spreadsheet: {type(exc).__name__}: {exc}") from exc
    return _dataframe_to_records(frame)


def _dataframe_to_records(frame: Any) -> List[Dict[str, Any]]:
    if frame is None or frame.empty:
        return []
    sanitized = frame.copy()
    sanitized.columns = [str(col) for col in sanitized.columns]
    sanitized = sanitized.astype(object).where(pd.notnull(sanitized), None)
    records = []
    for record in sanitized.to_dict(orient="records"):
        row = {key: _plain_value(value) for key, value in record.items()}
        if all(value is None for value in row.values()):
            continue
        records.append(row)
    return records


def _structured_records(block: Mapping[str, Any]) -> List[Dict[str, Any]]:
    fmt = block.get("format")
    data = block.get("data")
    if fmt == "json":
        return _ingest_json(data)
    if fmt == "csv":
        if not isinstance(data, str):
            raise ValidationError("CSV data must be a string")
        return _ingest_csv(data)
    if fmt == "xlsx":
        if not isinstance(data, str):
            raise ValidationError("Spreadsheet data must be a base64 string")
        return _ingest_excel(data, block.get("sheetName"))
    raise ValidationError(f"Unsupported structured format: {fmt}")


def normalize_input(blocks: Sequence[Mapping[str, Any]]) -> NormalizedInput:
    """Parse every input block and merge the structured ones into a single record set."""
    builder = _DatasetBuilder()
    text_blocks: List[str] = []
    for index, block in enumerate(blocks):
        kind = block.get("type")
        if kind == "structured":
            records = _structured_records(block)
            builder.extend(records)
            logger.debug(
                "Parsed structured block",
                extra={"block": index, "format": block.get("format"), "rows": len(records)},
            )
        elif kind == "unstructured":
            text_blocks.append(str(block.get("content", "")))
        else:
            raise ValidationError(f"Unsupported input block type: {kind}")
    return NormalizedInput(records=builder.build(), columns=list(builder.columns), text_blocks=text_blocks)

"""Record <-> positional row conversion.

Rules:
- A record is a mapping of column name to string.
- Columns missing from a row or record become "".
- Keys not present in the header are dropped on write.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List


Record = Dict[str, str]
Predicate = Callable[[Record], bool]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def zip_row(headers: List[str], row: List[Any]) -> Record:
    record: Record = {}
    for idx, header in enumerate(headers):
        if not header:
            continue
        record[header] = _cell(row[idx]) if idx < len(row) else ""
    return record


def project_record(headers: List[str], record: dict) -> List[str]:
    return [_cell(record.get(header)) for header in headers]


def merge_record(current: Record, patch: dict) -> dict:
    merged: dict = dict(current)
    merged.update(patch)
    return merged


def split_list(text: str | None) -> List[str]:
    if not text:
        return []
    return [item.strip() for item in text.split(",") if item.strip()]


def join_list(items: Iterable[Any] | None) -> str:
    if not items:
        return ""
    return ",".join(_cell(item).strip() for item in items if _cell(item).strip())


def field_equals(**fields: Any) -> Predicate:
    expected = {key: _cell(value) for key, value in fields.items()}

    def _match(record: Record) -> bool:
        return all(record.get(key, "") == value for key, value in expected.items())

    return _match

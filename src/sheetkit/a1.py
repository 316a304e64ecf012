"""A1 notation helpers for the Sheets values API."""

from __future__ import annotations


def column_letter(index: int) -> str:
    """1-based column index to letters (1 -> A, 27 -> AA)."""
    if index < 1:
        raise ValueError(f"column index must be >= 1, got {index}")
    letters = ""
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def quote_sheet(title: str) -> str:
    escaped = title.replace("'", "''")
    return f"'{escaped}'"


def whole_sheet(title: str, width: int = 702) -> str:
    return f"{quote_sheet(title)}!A:{column_letter(width)}"


def row_range(title: str, row_number: int, width: int) -> str:
    last = column_letter(max(width, 1))
    return f"{quote_sheet(title)}!A{row_number}:{last}{row_number}"


def header_range(title: str, width: int = 702) -> str:
    return row_range(title, 1, width)


def first_column(title: str) -> str:
    return f"{quote_sheet(title)}!A:A"

from __future__ import annotations

from collections.abc import Hashable, Iterable
from typing import Any, TypeVar

T = TypeVar("T", bound=Hashable)


def dedupe_preserving_order(values: Iterable[T]) -> list[T]:
    seen: set[T] = set()
    output: list[T] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        output.append(value)
    return output


def normalize_string_list(values: Any, *, lower: bool = False) -> list[str]:
    """Strip, drop blanks and non-strings, dedupe in order."""
    if not isinstance(values, (list, tuple)):
        return []
    cleaned: list[str] = []
    for item in values:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if not item:
            continue
        cleaned.append(item.lower() if lower else item)
    return dedupe_preserving_order(cleaned)

# src/sluice/contracts/partitions.py
"""Partition identity of a dataset subset.

A PartitionValues entry maps partition-column names to scalar values,
e.g. ``{"dt": "20240101", "region": "eu"}``. A sequence of entries selects
a subset of a partitioned dataset; an empty sequence means "all data".

Values are compared by their string form. Partition values read back from
file paths are always strings while values held in memory may be ints or
dates, and both must identify the same partition.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

_NUMBER = re.compile(r"^[-+]?\d+(\.\d+)?$")


class PartitionValues(Mapping[str, Any]):
    """Immutable mapping of partition column -> value.

    Column order is preserved as given; equality and hashing ignore it.
    """

    __slots__ = ("_items",)

    _items: tuple[tuple[str, Any], ...]

    def __init__(self, elements: Mapping[str, Any] | None = None, /, **kwargs: Any) -> None:
        merged = {**(elements or {}), **kwargs}
        for key in merged:
            if not isinstance(key, str) or not key:
                raise ValueError(f"Partition column names must be non-empty strings, got {key!r}")
        object.__setattr__(self, "_items", tuple(merged.items()))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"PartitionValues is immutable, cannot set {name!r}")

    @classmethod
    def parse(cls, text: str) -> PartitionValues:
        """Parse ``col=val/col2=val2`` (also accepts ``,`` as separator)."""
        elements: dict[str, str] = {}
        for part in text.replace(",", "/").split("/"):
            part = part.strip()
            if not part:
                continue
            key, sep, value = part.partition("=")
            if not sep or not key:
                raise ValueError(f"Invalid partition value '{part}' in '{text}', expected col=value")
            elements[key.strip()] = value.strip()
        return cls(elements)

    # Mapping protocol

    def __getitem__(self, key: str) -> Any:
        for k, v in self._items:
            if k == key:
                return v
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartitionValues):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return "/".join(f"{k}={v}" for k, v in self._items)

    def __repr__(self) -> str:
        return f"PartitionValues({dict(self._items)!r})"

    def _key(self) -> frozenset[tuple[str, str]]:
        return frozenset((k, str(v)) for k, v in self._items)

    @property
    def elements(self) -> dict[str, Any]:
        """Copy of the entries as a plain dict."""
        return dict(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def filter_keys(self, columns: Iterable[str]) -> PartitionValues:
        """Keep only the given columns."""
        allowed = set(columns)
        return PartitionValues({k: v for k, v in self._items if k in allowed})

    def matches(self, other: Mapping[str, Any]) -> bool:
        """True if every column of self has the same value in other."""
        for k, v in self._items:
            if k not in other or str(other[k]) != str(v):
                return False
        return True

    def sort_key(self) -> tuple[tuple[str, int, float, str], ...]:
        """Order by column, then by value.

        Numeric values compare as numbers and sort before text, so ``p=2``
        comes before ``p=10``. Other values compare as text.
        """
        return tuple(_value_key(k, v) for k, v in sorted(self._items, key=lambda item: item[0]))


def _value_key(column: str, value: Any) -> tuple[str, int, float, str]:
    text = str(value)
    if _NUMBER.match(text):
        return (column, 0, float(text), text)
    return (column, 1, 0.0, text)


def dedupe(partition_values: Iterable[PartitionValues]) -> tuple[PartitionValues, ...]:
    """Remove duplicate entries, keeping first occurrence order."""
    seen: set[PartitionValues] = set()
    result: list[PartitionValues] = []
    for pv in partition_values:
        if pv not in seen:
            seen.add(pv)
            result.append(pv)
    return tuple(result)


def project(partition_values: Iterable[PartitionValues], columns: Iterable[str]) -> tuple[PartitionValues, ...]:
    """Project entries onto columns, dropping entries that become empty.

    Idempotent: project(project(x, c), c) == project(x, c).
    """
    allowed = tuple(columns)
    projected = (pv.filter_keys(allowed) for pv in partition_values)
    return dedupe(pv for pv in projected if not pv.is_empty)


def columns_of(partition_values: Sequence[PartitionValues]) -> set[str]:
    """Union of all partition columns referenced by the entries."""
    return {key for pv in partition_values for key in pv}


def format_partition_values(partition_values: Sequence[PartitionValues]) -> str:
    return " ".join(str(pv) for pv in partition_values)

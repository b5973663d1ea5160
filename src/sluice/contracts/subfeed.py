# src/sluice/contracts/subfeed.py
"""SubFeeds: immutable data handles passed along DAG edges.

A SubFeed identifies the DataObject it represents, the partition values in
scope for one hop, and optionally a materialized reference to the data
(a pandas DataFrame or a list of files). Every transition returns a new
instance; nothing is mutated in place.

The set of variants is closed:

- InitSubFeed: synthetic feed for inputs without an upstream producer
- DataFrameSubFeed: carries a DataFrame and an optional row filter
- FileSubFeed: carries references to files

Actions convert whatever they receive into their native kind with
``<Variant>.from_generic()`` at their boundary.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from sluice.contracts.partitions import PartitionValues, dedupe, project
from sluice.contracts.types import DataObjectId

if TYPE_CHECKING:
    import pandas as pd


@dataclass(frozen=True, kw_only=True)
class SubFeed(ABC):
    """Common contract of all SubFeed kinds.

    Attributes:
        data_object_id: DataObject this feed represents on one side of an edge
        partition_values: Partitions in scope; empty means all data
        is_dag_start: True only for feeds seeding inputs without a producer
        is_skipped: True when the producer had no data to process
    """

    data_object_id: DataObjectId
    partition_values: tuple[PartitionValues, ...] = ()
    is_dag_start: bool = False
    is_skipped: bool = False

    def __post_init__(self) -> None:
        # Callers may pass any iterable; store a deduplicated tuple.
        object.__setattr__(self, "partition_values", dedupe(self.partition_values))

    @property
    def result_id(self) -> str:
        return self.data_object_id

    @property
    @abstractmethod
    def materialized_ref(self) -> Any:
        """Materialized data held by this feed, or None."""

    @abstractmethod
    def break_lineage(self) -> Self:
        """Drop the materialized reference so the consumer re-reads from storage."""

    def clear_partition_values(self) -> Self:
        return replace(self, partition_values=())

    def update_partition_values(self, partitions: Iterable[str]) -> Self:
        """Project partition values onto the given columns.

        Entries that become empty are dropped, duplicates removed.
        """
        return replace(self, partition_values=project(self.partition_values, partitions))

    def with_partition_values(self, partition_values: Iterable[PartitionValues]) -> Self:
        return replace(self, partition_values=tuple(partition_values))

    def with_data_object_id(self, data_object_id: DataObjectId) -> Self:
        return replace(self, data_object_id=data_object_id)

    def persist(self) -> Self:
        return self

    def as_skipped(self) -> Self:
        """Empty, lineage-broken copy flagged as 'no data'."""
        return replace(self.break_lineage(), partition_values=(), is_skipped=True)

    def clear_skipped(self) -> Self:
        """Drop the 'no data' flag; the consumer reads the DataObject from storage."""
        if not self.is_skipped:
            return self
        return replace(self.break_lineage(), is_skipped=False)


@dataclass(frozen=True, kw_only=True)
class InitSubFeed(SubFeed):
    """Seeds the first Actions of a DAG. Never holds data."""

    @property
    def materialized_ref(self) -> None:
        return None

    def break_lineage(self) -> Self:
        return self


@dataclass(frozen=True, kw_only=True)
class DataFrameSubFeed(SubFeed):
    """Transports a pandas DataFrame between Actions.

    ``filter`` is a pandas query expression restricting rows beyond the
    partition selection. It is set by execution modes and applied when the
    consumer materializes the data.
    """

    data_frame: pd.DataFrame | None = field(default=None, compare=False)
    filter: str | None = None
    is_persisted: bool = False

    @property
    def materialized_ref(self) -> pd.DataFrame | None:
        return self.data_frame

    def break_lineage(self) -> Self:
        if self.data_frame is None and not self.is_persisted:
            return self
        return replace(self, data_frame=None, is_persisted=False)

    def persist(self) -> Self:
        """Mark the frame for reuse by several consumers.

        The frame is copied once so downstream in-place operations can't
        leak into other consumers of the same feed.
        """
        if self.data_frame is None or self.is_persisted:
            return replace(self, is_persisted=True)
        return replace(self, data_frame=self.data_frame.copy(), is_persisted=True)

    def with_data_frame(self, data_frame: pd.DataFrame | None) -> Self:
        return replace(self, data_frame=data_frame)

    def with_filter(self, filter_expression: str | None) -> Self:
        return replace(self, filter=filter_expression)

    @classmethod
    def from_generic(cls, sub_feed: SubFeed) -> DataFrameSubFeed:
        if isinstance(sub_feed, DataFrameSubFeed):
            return sub_feed
        return cls(
            data_object_id=sub_feed.data_object_id,
            partition_values=sub_feed.partition_values,
            is_dag_start=sub_feed.is_dag_start,
            is_skipped=sub_feed.is_skipped,
        )


@dataclass(frozen=True, kw_only=True)
class FileSubFeed(SubFeed):
    """Transports references to files between Actions.

    ``processed_input_file_refs`` remembers the input files an Action read,
    for post processing such as deleting them after a successful copy.
    """

    file_refs: tuple[Path, ...] | None = None
    processed_input_file_refs: tuple[Path, ...] | None = None

    @property
    def materialized_ref(self) -> tuple[Path, ...] | None:
        return self.file_refs

    def break_lineage(self) -> Self:
        if self.file_refs is None:
            return self
        return replace(self, file_refs=None)

    def with_file_refs(self, file_refs: Iterable[Path] | None) -> Self:
        return replace(self, file_refs=None if file_refs is None else tuple(file_refs))

    @classmethod
    def from_generic(cls, sub_feed: SubFeed) -> FileSubFeed:
        if isinstance(sub_feed, FileSubFeed):
            return sub_feed
        return cls(
            data_object_id=sub_feed.data_object_id,
            partition_values=sub_feed.partition_values,
            is_dag_start=sub_feed.is_dag_start,
            is_skipped=sub_feed.is_skipped,
        )

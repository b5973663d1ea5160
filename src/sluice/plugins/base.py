# src/sluice/plugins/base.py
"""Base class for DataObject implementations.

BaseDataObject owns everything the execution core expects from a DataObject
that is independent of the storage technology:

- partition projection and expansion in prepare_for_read()
- schema-only frames during INIT, so planning never needs existing data
- output validation (partition columns, declared schema) without I/O
- dynamic partition overwrite bookkeeping in write()

Subclasses implement only the storage hooks:

    _read(partition_values)        -> DataFrame (empty frame if no data)
    _write(data_frame, partitions) -> metrics dict
    _existing_schema()             -> dict[column, dtype] | None
    list_partition_values()        -> partitions present in storage

Thread safety:
    Independent branches of a DAG run concurrently and may read a DataObject
    while another branch writes it. Storage hooks are always called with
    self._lock held.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

import pandas as pd
import structlog

from sluice.contracts import (
    ConfigurationError,
    DataFrameSubFeed,
    DataObjectId,
    ExecutionPhase,
    PartitionColumnsMismatchError,
    PartitionValues,
    SchemaMismatchError,
    SubFeed,
    WriteResult,
    dedupe,
)
from sluice.contracts.partitions import columns_of
from sluice.engine.retry import RetryConfig, RetryManager
from sluice.plugins.expectations import Expectation, ExpectationResult, parse_expectations

logger = structlog.get_logger(__name__)


def partition_values_of(data_frame: pd.DataFrame, columns: Sequence[str]) -> list[PartitionValues]:
    """Distinct partition values present in a frame, in order of appearance."""
    if not columns or data_frame.empty:
        return []
    distinct = data_frame[list(columns)].drop_duplicates()
    return [PartitionValues(dict(zip(columns, row, strict=True))) for row in distinct.itertuples(index=False, name=None)]


def rows_matching(data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> pd.Series:
    """Boolean mask of rows belonging to any of the given partitions.

    Values are compared by string form.
    """
    mask = pd.Series(False, index=data_frame.index)
    for pv in partition_values:
        entry_mask = pd.Series(True, index=data_frame.index)
        for column, value in pv.items():
            entry_mask &= data_frame[column].astype(str) == str(value)
        mask |= entry_mask
    return mask


class BaseDataObject(ABC):
    """Base class for DataObjects.

    Subclasses must set ``name`` (the plugin type used in configuration).

    Args:
        data_object_id: Unique id within a pipeline
        partitions: Partition columns, outermost first
        schema_columns: Declared columns (partition columns included or not);
            when set, writes are checked against it
        options: Type-specific options
        retry_config: Retry policy for storage I/O (single attempt if None)
        expectations: Expectation declarations checked on every write
    """

    name: str = ""
    supports_files: bool = False

    def __init__(
        self,
        data_object_id: str,
        *,
        partitions: Sequence[str] = (),
        schema_columns: Sequence[str] | None = None,
        options: Mapping[str, Any] | None = None,
        retry_config: RetryConfig | None = None,
        expectations: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        self._id = DataObjectId(data_object_id)
        self._partitions = tuple(partitions)
        self._schema_columns = tuple(schema_columns) if schema_columns is not None else None
        self._options = dict(options or {})
        self._lock = threading.RLock()
        self._stats: dict[str, Any] | None = None
        self._retry = RetryManager(retry_config or RetryConfig.no_retry())
        self._expectations = parse_expectations(self._id, expectations)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id!r}, partitions={list(self._partitions)!r})"

    @property
    def id(self) -> DataObjectId:
        return self._id

    @property
    def partitions(self) -> tuple[str, ...]:
        return self._partitions

    @property
    def is_partitioned(self) -> bool:
        return bool(self._partitions)

    @property
    def schema_columns(self) -> tuple[str, ...] | None:
        return self._schema_columns

    @property
    def expectations(self) -> tuple[Expectation, ...]:
        return self._expectations

    # === Storage hooks ===

    @abstractmethod
    def _read(self, partition_values: Sequence[PartitionValues]) -> pd.DataFrame:
        """Read the given partitions (all data if empty). Empty frame if nothing exists."""

    @abstractmethod
    def _write(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> dict[str, Any]:
        """Replace the given partitions (everything if unpartitioned) with data_frame."""

    @abstractmethod
    def _existing_schema(self) -> dict[str, str] | None:
        """Schema of the stored data, or None if nothing was written yet."""

    @abstractmethod
    def list_partition_values(self) -> list[PartitionValues]:
        """Partitions present in storage. Empty if nothing was written yet."""

    # === Read side ===

    def prepare_for_read(self, sub_feed: SubFeed, phase: ExecutionPhase) -> SubFeed:
        """Resolve the feed's partition values against this DataObject.

        Partition values are projected onto this DataObject's partition
        columns. Values that only give the outer partition columns are
        expanded to the full partitions present in storage. When storage
        has no matching partitions the values are kept as given: the data
        may not exist yet during INIT, and reading a missing partition
        during EXEC yields an empty frame.
        """
        if not self.is_partitioned:
            return sub_feed.clear_partition_values()
        projected = sub_feed.update_partition_values(self._partitions)
        if not projected.partition_values:
            return projected
        if columns_of(projected.partition_values) >= set(self._partitions):
            return projected

        with self._lock:
            existing = self.list_partition_values()
        expanded: list[PartitionValues] = []
        for pv in projected.partition_values:
            matching = [e for e in existing if pv.matches(e)]
            expanded.extend(matching or [pv])
        if len(expanded) != len(projected.partition_values):
            logger.debug(
                "partition_values_expanded",
                data_object_id=self._id,
                phase=phase,
                given=len(projected.partition_values),
                expanded=len(expanded),
            )
        return projected.with_partition_values(dedupe(expanded))

    def materialize(self, sub_feed: DataFrameSubFeed, phase: ExecutionPhase) -> pd.DataFrame:
        """Read the feed's partitions and apply its filter.

        During INIT the result is a zero-row frame with the known schema.
        """
        if phase == ExecutionPhase.INIT:
            return self.schema_frame()
        with self._lock:
            data_frame = self._read(sub_feed.partition_values)
        if len(data_frame.columns) == 0:
            data_frame = self.schema_frame()
        if sub_feed.filter:
            data_frame = data_frame.query(sub_feed.filter)
        return data_frame

    def schema_frame(self) -> pd.DataFrame:
        """Zero-row frame with the stored (or else declared) columns.

        Partition columns are always present.
        """
        with self._lock:
            schema = self._existing_schema()
        if schema is None:
            schema = {column: "object" for column in self._schema_columns or ()}
        for column in self._partitions:
            schema.setdefault(column, "object")
        return pd.DataFrame({column: pd.Series(dtype=dtype) for column, dtype in schema.items()})

    def max_value(self, column: str) -> Any:
        with self._lock:
            data_frame = self._read(())
        if data_frame.empty or column not in data_frame.columns:
            return None
        value = data_frame[column].max()
        return None if pd.isna(value) else value

    # === Write side ===

    def validate(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> None:
        """Check data_frame and partition_values fit this DataObject. No I/O.

        A frame holding no columns besides partition columns carries no
        schema information (typically an INIT frame of a source that has
        no data yet) and passes the schema check.
        """
        columns = [str(c) for c in data_frame.columns]
        unexpected_partitions = sorted(columns_of(partition_values) - set(self._partitions))
        missing_partitions = [p for p in self._partitions if p not in columns] if columns else []
        if unexpected_partitions or missing_partitions:
            raise PartitionColumnsMismatchError(self._id, missing=missing_partitions, unexpected=unexpected_partitions)

        data_columns = [c for c in columns if c not in self._partitions]
        if not data_columns:
            return
        for expectation in self._expectations:
            missing_keys = [c for c in expectation.required_columns() if c not in columns]
            if missing_keys:
                raise ConfigurationError(f"({self._id}) expectation '{expectation.name}' needs column(s) {', '.join(missing_keys)}")

        if self._schema_columns is None:
            return
        declared = [c for c in self._schema_columns if c not in self._partitions]
        missing = [c for c in declared if c not in data_columns]
        unexpected = [c for c in data_columns if c not in declared]
        if missing or unexpected:
            raise SchemaMismatchError(self._id, missing=missing, unexpected=unexpected)

    def write(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> WriteResult:
        """Write data_frame with dynamic partition overwrite.

        Only partitions present in the frame are replaced. The committed
        partition values are the given ones if any, else those found in
        the frame.
        """
        self.validate(data_frame, partition_values)
        given = tuple(pv.filter_keys(self._partitions) for pv in partition_values)
        if data_frame.empty:
            return WriteResult(partition_values=given, metrics={"rows_written": 0}, no_data=True)

        written = partition_values_of(data_frame, self._partitions)
        with self._lock:
            metrics = self._write(data_frame, written)
            self._stats = None
        committed = given or tuple(written)
        return WriteResult(
            partition_values=dedupe(committed),
            metrics={"rows_written": len(data_frame), "partitions_written": len(written), **metrics},
        )

    def evaluate_expectations(self, data_frame: pd.DataFrame) -> list[ExpectationResult]:
        """Results of every declared expectation on a written frame."""
        return [expectation.evaluate(data_frame) for expectation in self._expectations]

    # === Metadata ===

    def get_schema(self) -> dict[str, str] | None:
        with self._lock:
            schema = self._existing_schema()
        if schema is None and self._schema_columns is not None:
            return {column: "object" for column in self._schema_columns}
        return schema

    def get_stats(self, update: bool = False) -> dict[str, Any]:
        """Row count and partition statistics. Cached until the next write."""
        if self._stats is not None and not update:
            return self._stats
        with self._lock:
            data_frame = self._read(())
            partitions = self.list_partition_values() if self.is_partitioned else []
        stats: dict[str, Any] = {
            "row_count": len(data_frame),
            "column_count": len(data_frame.columns),
        }
        if self.is_partitioned:
            stats["partition_count"] = len(partitions)
            stats["partitions"] = sorted(str(pv) for pv in partitions)
        self._stats = stats
        return stats

# src/sluice/plugins/protocols.py
"""Capability protocols of DataObjects.

These protocols define what the execution core requires from storage
adapters. They're used for type checking and isinstance() checks on
instances; concrete adapters subclass sluice.plugins.base.BaseDataObject.

Capabilities:
- DataObjectProtocol: identity, partition columns, metadata
- CanReadProtocol: prepare a SubFeed for reading, materialize a DataFrame
- CanWriteProtocol: validate without I/O, write a DataFrame, check expectations
- CanHandleFilesProtocol: list and write partition files
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sluice.contracts import DataObjectId, ExecutionPhase, PartitionValues, SubFeed, WriteResult

if TYPE_CHECKING:
    import pandas as pd

    from sluice.contracts import DataFrameSubFeed
    from sluice.plugins.expectations import ExpectationResult


@runtime_checkable
class DataObjectProtocol(Protocol):
    """Common part of every DataObject.

    ``partitions`` are the partition columns the DataObject supports; empty
    for an unpartitioned dataset.
    """

    name: str

    @property
    def id(self) -> DataObjectId: ...

    @property
    def partitions(self) -> tuple[str, ...]: ...

    def list_partition_values(self) -> list[PartitionValues]:
        """Partitions currently present. Empty if nothing was written yet."""
        ...

    def get_schema(self) -> dict[str, str] | None:
        """Column name -> dtype string, or None if unknown (no data, no declaration)."""
        ...

    def get_stats(self, update: bool = False) -> dict[str, Any]:
        """Statistics for metadata export (row count, partitions, ...)."""
        ...


@runtime_checkable
class CanReadProtocol(DataObjectProtocol, Protocol):
    """Read side of a DataObject."""

    def prepare_for_read(self, sub_feed: SubFeed, phase: ExecutionPhase) -> SubFeed:
        """Resolve partition values against this DataObject.

        Must not fail solely because data does not exist yet during INIT.
        """
        ...

    def materialize(self, sub_feed: DataFrameSubFeed, phase: ExecutionPhase) -> pd.DataFrame:
        """Read the partitions selected by sub_feed, applying its filter.

        During INIT, returns a schema-only (zero row) frame.
        """
        ...

    def max_value(self, column: str) -> Any:
        """Maximum of a column, or None if there is no data."""
        ...


@runtime_checkable
class CanWriteProtocol(DataObjectProtocol, Protocol):
    """Write side of a DataObject."""

    def validate(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> None:
        """Check that data_frame could be written. No I/O.

        Raises:
            PartitionColumnsMismatchError: partition columns don't fit
            SchemaMismatchError: columns don't match the declared schema
        """
        ...

    def write(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> WriteResult:
        """Write data_frame, overwriting the partitions it covers."""
        ...

    def evaluate_expectations(self, data_frame: pd.DataFrame) -> list[ExpectationResult]:
        """Check the declared expectations against a written frame."""
        ...


@runtime_checkable
class CanHandleFilesProtocol(DataObjectProtocol, Protocol):
    """DataObjects backed by files that can be copied as-is."""

    def list_files(self, partition_values: Sequence[PartitionValues]) -> list[Path]: ...

    def write_files(self, files: Sequence[Path], partition_values: Sequence[PartitionValues]) -> WriteResult: ...

    def delete_files(self, files: Sequence[Path]) -> None: ...
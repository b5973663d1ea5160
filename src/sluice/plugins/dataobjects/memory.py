# src/sluice/plugins/dataobjects/memory.py
"""In-memory DataObject holding a pandas DataFrame.

Useful for tests and for small reference tables declared inline:

    data_objects:
      countries:
        type: memory
        options:
          records:
            - {code: CH, name: Switzerland}
            - {code: DE, name: Germany}
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import pandas as pd

from sluice.contracts import PartitionValues
from sluice.engine.retry import RetryConfig
from sluice.plugins.base import BaseDataObject, partition_values_of, rows_matching
from sluice.plugins.config_base import PluginConfig


class MemoryOptions(PluginConfig):
    """Options of the memory DataObject."""

    records: list[dict[str, Any]] | None = None


class MemoryDataObject(BaseDataObject):
    """DataObject backed by a DataFrame held in process memory.

    Options:
        records: Optional list of row mappings used as initial data
    """

    name = "memory"

    def __init__(
        self,
        data_object_id: str,
        *,
        partitions: Sequence[str] = (),
        schema_columns: Sequence[str] | None = None,
        options: Mapping[str, Any] | None = None,
        retry_config: RetryConfig | None = None,
        expectations: Sequence[Mapping[str, Any]] = (),
        data: pd.DataFrame | None = None,
    ) -> None:
        super().__init__(
            data_object_id,
            partitions=partitions,
            schema_columns=schema_columns,
            options=options,
            retry_config=retry_config,
            expectations=expectations,
        )
        cfg = MemoryOptions.from_dict(self._options)
        if data is None and cfg.records:
            data = pd.DataFrame.from_records(cfg.records)
        self._data: pd.DataFrame | None = None if data is None else data.reset_index(drop=True)

    @property
    def data(self) -> pd.DataFrame | None:
        """Copy of the stored frame, None if nothing was written."""
        with self._lock:
            return None if self._data is None else self._data.copy()

    def _read(self, partition_values: Sequence[PartitionValues]) -> pd.DataFrame:
        if self._data is None:
            return pd.DataFrame()
        if not partition_values:
            return self._data.copy()
        return self._data[rows_matching(self._data, partition_values)].reset_index(drop=True)

    def _write(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> dict[str, Any]:
        if self._data is None or not self.is_partitioned:
            self._data = data_frame.reset_index(drop=True).copy()
            return {}
        kept = self._data[~rows_matching(self._data, partition_values)]
        rows_replaced = len(self._data) - len(kept)
        self._data = pd.concat([kept, data_frame], ignore_index=True)
        return {"rows_replaced": rows_replaced}

    def _existing_schema(self) -> dict[str, str] | None:
        if self._data is None:
            return None
        return {str(column): str(dtype) for column, dtype in self._data.dtypes.items()}

    def list_partition_values(self) -> list[PartitionValues]:
        with self._lock:
            if self._data is None:
                return []
            return partition_values_of(self._data, self._partitions)

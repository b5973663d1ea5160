# src/sluice/plugins/dataobjects/csv.py
"""CSV directory DataObject with hive-style partitions.

Layout on disk (partitions ["dt", "region"]):

    <path>/dt=20240101/region=eu/data.csv
    <path>/dt=20240101/region=us/data.csv

An unpartitioned DataObject keeps a single ``<path>/data.csv``. Partition
columns are not stored inside the files; they are restored from the
directory names when reading, and are therefore always strings.

Every file system call goes through the DataObject's RetryManager so
transient OSErrors (network shares, locked files) are retried.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import structlog

from sluice.contracts import PartitionValues, WriteResult, dedupe
from sluice.engine.retry import RetryConfig
from sluice.plugins.base import BaseDataObject
from sluice.plugins.config_base import PathConfig

logger = structlog.get_logger(__name__)

DATA_FILE_NAME = "data.csv"


class CsvOptions(PathConfig):
    """Options of the csv DataObject."""

    delimiter: str = ","
    encoding: str = "utf-8"


class CsvDataObject(BaseDataObject):
    """Partitioned CSV files below a base directory.

    Options:
        path: Base directory (required)
        delimiter: Field delimiter (default: ",")
        encoding: File encoding (default: "utf-8")
    """

    name = "csv"
    supports_files = True

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
        super().__init__(
            data_object_id,
            partitions=partitions,
            schema_columns=schema_columns,
            options=options,
            retry_config=retry_config,
            expectations=expectations,
        )
        cfg = CsvOptions.from_dict(self._options)
        self._path = cfg.resolved_path()
        self._delimiter = cfg.delimiter
        self._encoding = cfg.encoding

    @property
    def path(self) -> Path:
        return self._path

    # === Layout ===

    def partition_dir(self, partition_values: PartitionValues) -> Path:
        """Directory of one partition. partition_values must cover all partition columns."""
        directory = self._path
        for column in self._partitions:
            directory = directory / f"{column}={partition_values[column]}"
        return directory

    def _data_files(self) -> list[tuple[PartitionValues, Path]]:
        if not self.is_partitioned:
            data_file = self._path / DATA_FILE_NAME
            return [(PartitionValues(), data_file)] if data_file.is_file() else []
        pattern = "/".join(f"{column}=*" for column in self._partitions) + f"/{DATA_FILE_NAME}"
        found = []
        for data_file in self._path.glob(pattern):
            relative = data_file.parent.relative_to(self._path)
            elements = dict(part.split("=", 1) for part in relative.parts)
            found.append((PartitionValues(elements), data_file))
        return sorted(found, key=lambda item: item[0].sort_key())

    def _files_for(self, partition_values: Sequence[PartitionValues]) -> list[tuple[PartitionValues, Path]]:
        files = self._retry.execute_with_retry(self._data_files, description=f"list {self._path}")
        if not partition_values:
            return files
        return [(pv, path) for pv, path in files if any(selected.matches(pv) for selected in partition_values)]

    # === Storage hooks ===

    def _read_file(self, data_file: Path) -> pd.DataFrame:
        return pd.read_csv(data_file, sep=self._delimiter, encoding=self._encoding)

    def _read(self, partition_values: Sequence[PartitionValues]) -> pd.DataFrame:
        frames = []
        for pv, data_file in self._files_for(partition_values):
            frame = self._retry.execute_with_retry(lambda f=data_file: self._read_file(f), description=f"read {data_file}")
            for column in self._partitions:
                frame[column] = str(pv[column])
            frames.append(frame)
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    def _write_file(self, data_frame: pd.DataFrame, data_file: Path) -> None:
        data_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = data_file.with_suffix(".csv.tmp")
        data_frame.to_csv(tmp_file, sep=self._delimiter, encoding=self._encoding, index=False)
        tmp_file.replace(data_file)

    def _write(self, data_frame: pd.DataFrame, partition_values: Sequence[PartitionValues]) -> dict[str, Any]:
        if not self.is_partitioned:
            data_file = self._path / DATA_FILE_NAME
            self._retry.execute_with_retry(lambda: self._write_file(data_frame, data_file), description=f"write {data_file}")
            return {"files_written": 1}

        files_written = 0
        for pv, group in data_frame.groupby(list(self._partitions), sort=True, dropna=False):
            values = pv if isinstance(pv, tuple) else (pv,)
            partition = PartitionValues(dict(zip(self._partitions, values, strict=True)))
            data_file = self.partition_dir(partition) / DATA_FILE_NAME
            content = group.drop(columns=list(self._partitions))
            self._retry.execute_with_retry(lambda c=content, f=data_file: self._write_file(c, f), description=f"write {data_file}")
            files_written += 1
        return {"files_written": files_written}

    def _existing_schema(self) -> dict[str, str] | None:
        files = self._retry.execute_with_retry(self._data_files, description=f"list {self._path}")
        if not files:
            return None
        _, data_file = files[0]
        sample = self._retry.execute_with_retry(
            lambda: pd.read_csv(data_file, sep=self._delimiter, encoding=self._encoding, nrows=100),
            description=f"read {data_file}",
        )
        schema = {str(column): str(dtype) for column, dtype in sample.dtypes.items()}
        for column in self._partitions:
            schema[column] = "object"
        return schema

    def list_partition_values(self) -> list[PartitionValues]:
        if not self.is_partitioned:
            return []
        with self._lock:
            return [pv for pv, _ in self._retry.execute_with_retry(self._data_files, description=f"list {self._path}")]

    # === Files ===

    def list_files(self, partition_values: Sequence[PartitionValues]) -> list[Path]:
        """Data files of the given partitions (all files if empty)."""
        with self._lock:
            return [path for _, path in self._files_for(partition_values)]

    def write_files(self, files: Sequence[Path], partition_values: Sequence[PartitionValues]) -> WriteResult:
        """Copy data files produced by another csv DataObject into this one.

        Each file's partition is taken from the directory names of its
        source path. Files for unpartitioned targets are concatenated into
        the single data file.
        """
        if not files:
            return WriteResult(partition_values=tuple(partition_values), metrics={"files_written": 0}, no_data=True)

        written: list[PartitionValues] = []
        with self._lock:
            if not self.is_partitioned:
                frame = pd.concat([self._read_file(f) for f in files], ignore_index=True)
                self._write(frame, ())
            else:
                for source in files:
                    elements = dict(part.split("=", 1) for part in source.parent.parts if "=" in part)
                    partition = PartitionValues(elements).filter_keys(self._partitions)
                    if set(partition) != set(self._partitions):
                        partition_names = ", ".join(self._partitions)
                        raise ValueError(f"({self._id}) cannot derive partitions [{partition_names}] from file path {source}")
                    target = self.partition_dir(partition) / DATA_FILE_NAME
                    self._retry.execute_with_retry(
                        lambda s=source, t=target: _copy_file(s, t),
                        description=f"copy {source} -> {target}",
                    )
                    written.append(partition)
            self._stats = None

        logger.debug("files_copied", data_object_id=self._id, files=len(files))
        committed = tuple(partition_values) or dedupe(written)
        return WriteResult(partition_values=dedupe(committed), metrics={"files_written": len(files)})

    def delete_files(self, files: Sequence[Path]) -> None:
        """Delete data files, e.g. source files after they were moved elsewhere."""
        with self._lock:
            for data_file in files:
                self._retry.execute_with_retry(lambda f=data_file: f.unlink(missing_ok=True), description=f"delete {data_file}")
            self._stats = None


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)

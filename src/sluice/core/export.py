# src/sluice/core/export.py
"""Export DataObject schemas and statistics as JSON files.

For every exported DataObject two file families are kept in export_path:

    <id>.schema.<epoch>.json   column -> dtype
    <id>.stats.<epoch>.json    row count, partitions, ...
    <id>.schema.index          one file name per line, latest last
    <id>.stats.index

A new file is only written when its canonical JSON differs from the file
named on the last line of the index, so the directory holds the history of
changes rather than one file per export.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from sluice.core.canonical import canonical_json

if TYPE_CHECKING:
    from sluice.plugins.protocols import DataObjectProtocol

logger = structlog.get_logger(__name__)


@dataclass
class ExportSummary:
    """Files written by one export."""

    exported: list[str] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    unchanged: int = 0


class SchemaExporter:
    """Writes schema and statistics files for DataObjects whose id matches.

    Args:
        export_path: Directory for the JSON and index files (created if missing)
        include_regex: DataObject ids must fully match this expression
        exclude_regex: DataObject ids fully matching this are skipped (applied after include)
        update_stats: Recompute statistics instead of returning cached ones
        clock: Source of the epoch seconds used in file names
    """

    def __init__(
        self,
        export_path: Path,
        include_regex: str = ".*",
        exclude_regex: str | None = None,
        update_stats: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.export_path = Path(export_path)
        self._include = re.compile(include_regex)
        self._exclude = re.compile(exclude_regex) if exclude_regex else None
        self.update_stats = update_stats
        self._clock = clock

    def selects(self, data_object_id: str) -> bool:
        if not self._include.fullmatch(data_object_id):
            return False
        return self._exclude is None or not self._exclude.fullmatch(data_object_id)

    def export(self, data_objects: Iterable[DataObjectProtocol]) -> ExportSummary:
        selected = sorted((d for d in data_objects if self.selects(d.id)), key=lambda d: d.id)
        self.export_path.mkdir(parents=True, exist_ok=True)
        logger.info("schema_export_started", data_objects=len(selected), export_path=str(self.export_path))

        summary = ExportSummary()
        for data_object in selected:
            summary.exported.append(data_object.id)
            schema = data_object.get_schema()
            if schema is not None:
                self._write_if_changed(data_object.id, "schema", schema, summary)
            self._write_if_changed(data_object.id, "stats", data_object.get_stats(self.update_stats), summary)

        logger.info("schema_export_finished", written=len(summary.written), unchanged=summary.unchanged)
        return summary

    def index_path(self, data_object_id: str, kind: str) -> Path:
        return self.export_path / f"{data_object_id}.{kind}.index"

    def read_index(self, data_object_id: str, kind: str) -> list[str]:
        index = self.index_path(data_object_id, kind)
        if not index.exists():
            return []
        return [line.strip() for line in index.read_text(encoding="utf-8").splitlines() if line.strip()]

    def latest(self, data_object_id: str, kind: str) -> str | None:
        """Content of the most recent indexed file, None if there is none."""
        entries = self.read_index(data_object_id, kind)
        if not entries:
            return None
        latest_file = self.export_path / entries[-1]
        if not latest_file.exists():
            return None
        return latest_file.read_text(encoding="utf-8")

    def _write_if_changed(self, data_object_id: str, kind: str, content: Any, summary: ExportSummary) -> None:
        serialized = canonical_json(content)
        if self.latest(data_object_id, kind) == serialized:
            summary.unchanged += 1
            return

        file_name = f"{data_object_id}.{kind}.{int(self._clock())}.json"
        target = self.export_path / file_name
        target.write_text(serialized, encoding="utf-8")
        # same second as the previous export: the file was overwritten in place
        if self.read_index(data_object_id, kind)[-1:] != [file_name]:
            with self.index_path(data_object_id, kind).open("a", encoding="utf-8") as index:
                index.write(file_name + "\n")
        summary.written.append(target)
        logger.info("export_file_written", data_object_id=data_object_id, kind=kind, file=file_name)

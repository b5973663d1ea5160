# src/sluice/core/canonical.py
"""Canonical JSON for DataObject metadata and graph fingerprints.

Schema and statistics exports are compared against the previously exported
file byte for byte, so the same metadata must always serialize to the same
text. Values are first reduced to JSON primitives, then written per
RFC 8785 (JCS) by the rfc8785 package: sorted keys, no whitespace, fixed
number formatting.

Reduction rules:
    numpy scalars / arrays       -> Python int, float, bool / lists
    pandas Timestamp, datetime   -> ISO-8601 in UTC (naive values are UTC)
    date                         -> ISO-8601 date
    Decimal                      -> its exact string
    dtypes, paths, partitions    -> their string form
    sets                         -> sorted lists
    pd.NA, pd.NaT                -> null

NaN and infinity are rejected with ValueError: an undefined statistic is
None, never a float that compares unequal to itself.
"""

from __future__ import annotations

import hashlib
import math
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import PurePath
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
import rfc8785

from sluice.contracts.partitions import PartitionValues

if TYPE_CHECKING:
    from sluice.core.dag import ActionDAG


def _reject_non_finite(value: float | Decimal) -> None:
    finite = value.is_finite() if isinstance(value, Decimal) else math.isfinite(value)
    if not finite:
        raise ValueError(f"Cannot serialize non-finite number {value!r}; use None for undefined values")


def _as_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def to_primitive(value: Any) -> Any:
    """Reduce value to str, int, float, bool, None, list and dict only."""
    if value is None or isinstance(value, bool | str):
        return value
    if isinstance(value, Mapping) and not isinstance(value, PartitionValues):
        return {str(k): to_primitive(v) for k, v in value.items()}
    if isinstance(value, list | tuple | np.ndarray):
        return [to_primitive(v) for v in value]
    if isinstance(value, set | frozenset):
        return sorted((to_primitive(v) for v in value), key=repr)

    if isinstance(value, np.generic):
        value = value.item()
        if isinstance(value, bool | int | str):
            return value
    if isinstance(value, float):
        _reject_non_finite(value)
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        _reject_non_finite(value)
        return str(value)

    if value is pd.NaT or value is pd.NA:
        return None
    if isinstance(value, pd.Timestamp):
        return _as_utc_iso(value.to_pydatetime())
    if isinstance(value, datetime):
        return _as_utc_iso(value)
    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, (PartitionValues, PurePath, np.dtype, pd.api.extensions.ExtensionDtype)):
        return str(value)
    raise TypeError(f"Cannot serialize {type(value).__name__} value {value!r} as canonical JSON")


def canonical_json(obj: Any) -> str:
    """Serialize obj to canonical JSON text.

    Raises:
        ValueError: If obj contains NaN or infinity
        TypeError: If obj contains a value with no JSON representation
    """
    encoded: bytes = rfc8785.dumps(to_primitive(obj))
    return encoded.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON of obj."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


def compute_topology_hash(dag: ActionDAG) -> str:
    """Fingerprint of the graph shape: Actions, their DataObjects and edges.

    Independent of the order Actions were declared in. Logged at the start
    of every run so runs over the same pipeline can be correlated.
    """
    actions = [
        {"id": action_id, "inputs": list(info.inputs), "outputs": list(info.outputs)}
        for action_id in sorted(dag.topological_order())
        for info in [dag.get_node_info(action_id)]
    ]
    edges = [
        {"from": producer, "to": consumer, "data_objects": sorted(dag.edge_data_objects(producer, consumer))}
        for consumer in sorted(dag.topological_order())
        for producer in dag.predecessors(consumer)
    ]
    return stable_hash({"actions": actions, "edges": edges})

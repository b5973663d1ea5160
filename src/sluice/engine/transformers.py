# src/sluice/engine/transformers.py
"""Transformer chains of the built-in Actions.

An Action applies its transformers in declaration order, each step receiving
the result of the previous one. Transformers come in two shapes:

    DataFrame transformer   callable(df, **options) -> df
    DataFrames transformer  callable({id: df}, **options) -> {id: df}

CopyAction chains DataFrame transformers. CustomDataFrameAction chains
DataFrames transformers; a DataFrame transformer can join its chain when
``apply_to`` names the frames it runs on. Frames returned by a DataFrames
transformer are merged into the ones it received, so later steps still see
the inputs.

``debug`` logs shape, schema and leading rows of a frame and returns it
unchanged. Reference it as ``sluice.engine.transformers:debug``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import pandas as pd
import structlog

from sluice.contracts import ConfigurationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransformerStep:
    """One transformer of a chain with its keyword arguments."""

    function: Callable[..., Any]
    options: Mapping[str, Any] = field(default_factory=dict)
    apply_to: tuple[str, ...] | None = None

    @property
    def name(self) -> str:
        return getattr(self.function, "__name__", type(self.function).__name__)


def debug(data_frame: pd.DataFrame, *, rows: int = 5, label: str | None = None) -> pd.DataFrame:
    logger.info(
        "debug_frame",
        label=label,
        row_count=len(data_frame),
        schema={str(column): str(dtype) for column, dtype in data_frame.dtypes.items()},
        head=data_frame.head(rows).to_string(index=False),
    )
    return data_frame


def _call_frame_step(action_id: str, step: TransformerStep, data_frame: pd.DataFrame) -> pd.DataFrame:
    result = step.function(data_frame, **step.options)
    if not isinstance(result, pd.DataFrame):
        raise ConfigurationError(f"({action_id}) transformer {step.name} returned {type(result).__name__}, expected a DataFrame")
    return result


def apply_frame_chain(action_id: str, data_frame: pd.DataFrame, steps: tuple[TransformerStep, ...]) -> pd.DataFrame:
    """Run DataFrame transformers one after the other."""
    for step in steps:
        if step.apply_to is not None:
            raise ConfigurationError(f"({action_id}) transformer {step.name}: apply_to is only supported with several inputs")
        data_frame = _call_frame_step(action_id, step, data_frame)
    return data_frame


def apply_frames_chain(
    action_id: str,
    frames: Mapping[str, pd.DataFrame],
    steps: tuple[TransformerStep, ...],
) -> dict[str, pd.DataFrame]:
    """Run a chain over frames keyed by DataObject id.

    Returns the inputs merged with every frame the steps produced.
    """
    current = dict(frames)
    for step in steps:
        if step.apply_to is not None:
            unknown = [frame_id for frame_id in step.apply_to if frame_id not in current]
            if unknown:
                raise ConfigurationError(
                    f"({action_id}) transformer {step.name} applies to unknown DataFrame(s) {', '.join(unknown)}. "
                    f"Available: {', '.join(current)}"
                )
            for frame_id in step.apply_to:
                current[frame_id] = _call_frame_step(action_id, step, current[frame_id])
            continue

        result = step.function(current, **step.options)
        if not isinstance(result, Mapping):
            raise ConfigurationError(
                f"({action_id}) transformer {step.name} returned {type(result).__name__}, expected a mapping of output id to DataFrame"
            )
        current.update(result)
    return current

# src/sluice/plugins/expectations.py
"""Expectations: data quality checks declared on a DataObject.

An expectation computes one metric over the data an Action writes to the
DataObject and compares it against a condition. The metric is reported with
the write metrics in any case. A failed condition either fails the Action
(severity ``error``) or is only logged (severity ``warn``).

    data_objects:
      int_orders:
        type: memory
        expectations:
          - type: unique_key
            name: pk_orders
            key: [order_id]
            expectation: "= 1"
            failed_severity: error

Built-in types:
    unique_key  fraction of distinct key combinations over all rows,
                truncated to ``precision`` digits so a single duplicate
                never rounds up to 1
"""

from __future__ import annotations

import math
import operator
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import Field, field_validator

from sluice.plugins.config_base import PluginConfig, PluginConfigError

if TYPE_CHECKING:
    import pandas as pd

_CONDITION = re.compile(r"^\s*(?P<op>==|=|!=|<>|<=|>=|<|>)\s*(?P<value>[-+]?\d+(?:\.\d+)?)\s*$")

_OPERATORS: Mapping[str, Callable[[float, float], bool]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class ExpectationSeverity(StrEnum):
    ERROR = "error"
    WARN = "warn"


@dataclass(frozen=True, slots=True)
class ExpectationResult:
    """Outcome of one expectation on one written frame.

    ``passed`` is None when there was nothing to check: no condition is
    configured, or the frame has no rows.
    """

    name: str
    value: float | None
    expectation: str | None
    severity: ExpectationSeverity
    passed: bool | None

    @property
    def failed(self) -> bool:
        return self.passed is False

    def describe(self) -> str:
        return f"{self.name}: {self.value} does not satisfy '{self.expectation}'"


class Expectation(PluginConfig):
    """Common options of all expectation types."""

    type_name: ClassVar[str] = ""

    name: str = Field(min_length=1, description="Metric name the result is reported under")
    expectation: str | None = Field(default=None, description="Condition on the metric, e.g. '= 1' or '>= 0.95'")
    failed_severity: ExpectationSeverity = Field(default=ExpectationSeverity.ERROR)

    @field_validator("expectation")
    @classmethod
    def validate_condition(cls, v: str | None) -> str | None:
        if v is not None and not _CONDITION.match(v):
            raise ValueError(f"'{v}' must be a comparison operator followed by a number, e.g. '= 1' or '>= 0.95'")
        return v

    def required_columns(self) -> tuple[str, ...]:
        return ()

    def compute(self, data_frame: pd.DataFrame) -> float | None:
        raise NotImplementedError

    def evaluate(self, data_frame: pd.DataFrame) -> ExpectationResult:
        value = self.compute(data_frame)
        passed: bool | None = None
        if value is not None and self.expectation is not None:
            match = _CONDITION.match(self.expectation)
            if match is not None:
                passed = _OPERATORS[match["op"]](value, float(match["value"]))
        return ExpectationResult(self.name, value, self.expectation, self.failed_severity, passed)


class UniqueKeyExpectation(Expectation):
    """Rows must be unique on the key columns.

    The metric is count-distinct(key) / count, floored to ``precision``
    digits. A frame without rows yields no metric.
    """

    type_name = "unique_key"

    key: list[str] = Field(min_length=1, description="Key columns")
    expectation: str | None = "= 1"
    precision: int = Field(default=4, ge=0, le=12, description="Digits kept of the fraction")

    def required_columns(self) -> tuple[str, ...]:
        return tuple(self.key)

    def compute(self, data_frame: pd.DataFrame) -> float | None:
        if data_frame.empty:
            return None
        distinct = len(data_frame[self.key].drop_duplicates())
        scale = 10**self.precision
        return math.floor(distinct / len(data_frame) * scale) / scale


EXPECTATION_TYPES: Mapping[str, type[Expectation]] = {cls.type_name: cls for cls in (UniqueKeyExpectation,)}


def parse_expectations(data_object_id: str, declarations: Sequence[Mapping[str, Any]]) -> tuple[Expectation, ...]:
    """Build expectations from their settings, keyed by ``type``.

    Raises:
        PluginConfigError: On unknown types, invalid options or duplicate names
    """
    expectations: list[Expectation] = []
    for declaration in declarations:
        options = dict(declaration)
        type_name = options.pop("type", None)
        expectation_cls = EXPECTATION_TYPES.get(str(type_name))
        if expectation_cls is None:
            available = ", ".join(sorted(EXPECTATION_TYPES))
            raise PluginConfigError(f"({data_object_id}) unknown expectation type '{type_name}'. Available: {available}")
        expectations.append(expectation_cls.from_dict(options))

    names = [e.name for e in expectations]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise PluginConfigError(f"({data_object_id}) duplicate expectation name(s): {', '.join(duplicates)}")
    return tuple(expectations)

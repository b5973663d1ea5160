# src/sluice/plugins/config_base.py
"""Typed options of DataObjects, Actions and execution modes.

The settings file hands every plugin a free-form ``options`` mapping. A
plugin declares a PluginConfig subclass and parses that mapping with
from_dict(), so a misspelled or mistyped option fails while the pipeline is
built, never in the middle of a run.

Example:
    class CsvOptions(PathConfig):
        delimiter: str = ","

    options = CsvOptions.from_dict({"path": "data/orders"})
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ValidationError, field_validator

from sluice.contracts import ConfigurationError


class PluginConfigError(ConfigurationError):
    """Plugin options don't validate against the plugin's options model."""


class PluginConfig(BaseModel):
    """Frozen options model; unknown keys are errors."""

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_dict(cls, options: Mapping[str, Any] | None) -> Self:
        """Validate an options mapping (None means no options).

        Raises:
            PluginConfigError: Naming the options model and every invalid field
        """
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise PluginConfigError(f"{cls.__name__}: options must be a mapping, got {type(options).__name__}")
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            problems = "; ".join(f"{'.'.join(str(x) for x in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors())
            raise PluginConfigError(f"{cls.__name__}: {problems}") from e


class PathConfig(PluginConfig):
    """Options of DataObjects stored under a file system path."""

    path: str

    @field_validator("path")
    @classmethod
    def validate_path_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("path cannot be empty")
        return v

    def resolved_path(self) -> Path:
        """The path with ``~`` expanded; relative paths stay relative to the working directory."""
        return Path(self.path).expanduser()

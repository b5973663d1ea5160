# src/sluice/core/config.py
"""Pipeline settings: pydantic models and the Dynaconf based loader.

load_settings() merges the YAML file with SLUICE_* environment variables
and validates the result into frozen models. Cross references (Actions to
DataObjects, main input/output ids) are checked here, plugin types and
options only when the pipeline is built.

A pipeline file declares DataObjects and the Actions connecting them:

    data_objects:
      stg_orders:
        type: csv
        partitions: [dt]
        options: {path: "${DATA_DIR:-data}/stg/orders"}
      int_orders:
        type: memory
        partitions: [dt]

    actions:
      load_orders:
        type: copy
        inputs: [stg_orders]
        outputs: [int_orders]
        transformer: my_project.transformers:clean_orders
        execution_mode:
          type: partition_diff
"""

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from sluice.contracts import PartitionValues

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-.]*$")


def _validate_identifier(kind: str, value: str) -> str:
    if not _IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"{kind} id '{value}' must start with a letter or underscore and contain only letters, digits, '_', '-' and '.'")
    return value


class DataObjectSettings(BaseModel):
    """DataObject declaration."""

    model_config = {"frozen": True}

    type: str = Field(description="DataObject plugin type (memory, csv, ...)")
    partitions: list[str] = Field(default_factory=list, description="Partition columns, outermost first")
    schema_columns: list[str] | None = Field(
        default=None,
        description="Declared columns; when set, writes are validated against it",
    )
    options: dict[str, Any] = Field(default_factory=dict, description="Plugin-specific options")
    expectations: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Data quality checks on every write, each with a 'type' (unique_key, ...)",
    )

    @field_validator("partitions")
    @classmethod
    def validate_unique_partitions(cls, v: list[str]) -> list[str]:
        duplicates = sorted({p for p in v if v.count(p) > 1})
        if duplicates:
            raise ValueError(f"Duplicate partition column(s): {duplicates}")
        return v


class ExecutionModeSettings(BaseModel):
    """Execution mode of an Action."""

    model_config = {"frozen": True}

    type: str = Field(description="Execution mode type (partition_diff, incremental, ...)")
    main_input_id: str | None = Field(default=None, description="Main input, if it can't be determined automatically")
    main_output_id: str | None = Field(default=None, description="Main output, if it can't be determined automatically")
    options: dict[str, Any] = Field(default_factory=dict, description="Mode-specific options")


class ActionMetadataSettings(BaseModel):
    """Descriptive metadata of an Action."""

    model_config = {"frozen": True}

    name: str | None = None
    description: str | None = None
    feed: str | None = Field(default=None, description="Feed tag used to group Actions")


def _validate_transformer_reference(v: str) -> str:
    module, sep, attribute = v.partition(":")
    if not sep or not module or not attribute:
        raise ValueError(f"transformer '{v}' must have the form 'package.module:function'")
    return v


class TransformerSettings(BaseModel):
    """One step of an Action's transformer chain."""

    model_config = {"frozen": True}

    transformer: str = Field(description="Transformer reference as 'package.module:function'")
    options: dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the transformer")
    apply_to: list[str] | None = Field(
        default=None,
        description="Input/output ids a DataFrame transformer runs on, in Actions with several DataFrames",
    )

    @field_validator("transformer")
    @classmethod
    def validate_transformer_reference(cls, v: str) -> str:
        return _validate_transformer_reference(v)


class ActionSettings(BaseModel):
    """Action declaration."""

    model_config = {"frozen": True}

    type: str = Field(description="Action plugin type (copy, custom, file_transfer, ...)")
    inputs: list[str] = Field(min_length=1, description="Input DataObject ids")
    outputs: list[str] = Field(min_length=1, description="Output DataObject ids")
    execution_mode: ExecutionModeSettings | None = Field(default=None, description="Selects which data is processed")
    break_lineage: bool = Field(default=False, description="Re-read inputs from storage instead of reusing upstream frames")
    persist: bool = Field(default=False, description="Keep input frames for reuse by several consumers")
    transformer: str | None = Field(default=None, description="Transformer reference as 'package.module:function'")
    transformer_options: dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the transformer")
    transformers: list[TransformerSettings] = Field(default_factory=list, description="Transformer chain, applied after 'transformer'")
    options: dict[str, Any] = Field(default_factory=dict, description="Action-specific options")
    metadata: ActionMetadataSettings = Field(default_factory=ActionMetadataSettings)

    @field_validator("transformer")
    @classmethod
    def validate_transformer_reference(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _validate_transformer_reference(v)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "ActionSettings":
        for kind, ids in (("input", self.inputs), ("output", self.outputs)):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            if duplicates:
                raise ValueError(f"Duplicate {kind} id(s): {duplicates}")
        return self


class ConcurrencySettings(BaseModel):
    """Parallel processing configuration."""

    model_config = {"frozen": True}

    max_workers: int = Field(
        default=1,
        gt=0,
        description="Maximum Actions of independent branches running at the same time",
    )


class RetrySettings(BaseModel):
    """Retry behavior of DataObject I/O."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Maximum attempts per I/O operation")
    initial_delay_seconds: float = Field(default=1.0, gt=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=60.0, gt=0, description="Maximum backoff delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")
    jitter_seconds: float = Field(default=1.0, ge=0, description="Random jitter added to each delay")


class LoggingSettings(BaseModel):
    """Log output configuration."""

    model_config = {"frozen": True}

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    json_output: bool = Field(default=False, description="Emit JSON lines instead of console output")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{v}'")
        return level


class SluiceSettings(BaseModel):
    """Contents of one pipeline settings file.

    DataObjects and Actions are keyed by id; declaration order is kept and
    used as the Action order handed to the DAG.
    """

    model_config = {"frozen": True}

    data_objects: dict[str, DataObjectSettings] = Field(description="DataObject declarations by id")
    actions: dict[str, ActionSettings] = Field(description="Action declarations by id")
    partition_values: list[str] = Field(
        default_factory=list,
        description="Default run partition values, e.g. ['dt=20240101']",
    )
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("data_objects", "actions")
    @classmethod
    def validate_ids(cls, v: dict[str, Any]) -> dict[str, Any]:
        for key in v:
            _validate_identifier("Declared", key)
        return v

    @field_validator("actions")
    @classmethod
    def validate_actions_not_empty(cls, v: dict[str, ActionSettings]) -> dict[str, ActionSettings]:
        if not v:
            raise ValueError("At least one action is required")
        return v

    @field_validator("partition_values")
    @classmethod
    def validate_partition_values(cls, v: list[str]) -> list[str]:
        for entry in v:
            PartitionValues.parse(entry)
        return v

    @model_validator(mode="after")
    def validate_references(self) -> "SluiceSettings":
        """Every DataObject an Action references must be declared."""
        for action_id, action in self.actions.items():
            for data_object_id in (*action.inputs, *action.outputs):
                if data_object_id not in self.data_objects:
                    raise ValueError(
                        f"Action '{action_id}' references unknown DataObject '{data_object_id}'. "
                        f"Declared DataObjects: {sorted(self.data_objects)}"
                    )
            mode = action.execution_mode
            if mode is not None and mode.main_input_id is not None and mode.main_input_id not in action.inputs:
                raise ValueError(f"Action '{action_id}' execution_mode.main_input_id '{mode.main_input_id}' is not one of its inputs")
            if mode is not None and mode.main_output_id is not None and mode.main_output_id not in action.outputs:
                raise ValueError(f"Action '{action_id}' execution_mode.main_output_id '{mode.main_output_id}' is not one of its outputs")
        return self

    def run_partition_values(self) -> list[PartitionValues]:
        return [PartitionValues.parse(entry) for entry in self.partition_values]


# ${NAME} or ${NAME:-fallback}; NAME follows shell conventions
_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[A-Z_][A-Z0-9_]*)(?::-(?P<fallback>[^}]*))?\}")

# Keys Dynaconf adds to as_dict() next to the file's own
_DYNACONF_KEYS = frozenset({"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"})


def _substitute_env(match: re.Match[str]) -> str:
    value = os.environ.get(match["name"])
    if value is not None:
        return value
    if match["fallback"] is not None:
        return match["fallback"]
    # Left in place; a path or option containing it fails loudly later
    return match.group(0)


def _expand_env_references(value: Any) -> Any:
    """Replace ${NAME} / ${NAME:-fallback} in every string of a nested structure."""
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_substitute_env, value)
    if isinstance(value, dict):
        return {key: _expand_env_references(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_references(item) for item in value]
    return value


def load_settings(config_path: Path) -> SluiceSettings:
    """Read a pipeline settings file.

    Values come from, highest precedence first:
        1. SLUICE_* environment variables, ``__`` separating nesting levels
           (SLUICE_CONCURRENCY__MAX_WORKERS=4)
        2. the YAML file, after ${NAME:-fallback} expansion
        3. model defaults

    Raises:
        FileNotFoundError: If config_path doesn't exist
        ValidationError: If the merged values don't form valid settings
    """
    from dynaconf import Dynaconf

    # Dynaconf treats a missing settings file as empty
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    loaded = Dynaconf(
        envvar_prefix="SLUICE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    ).as_dict()
    # Dynaconf upper-cases top-level keys only
    raw = {key.lower(): value for key, value in loaded.items() if key not in _DYNACONF_KEYS}
    return SluiceSettings(**_expand_env_references(raw))


def settings_to_yaml(settings: SluiceSettings) -> str:
    """Render resolved settings (defaults filled in, env vars expanded) as YAML."""
    import yaml

    return yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False, default_flow_style=False)

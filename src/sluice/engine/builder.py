# src/sluice/engine/builder.py
"""Instantiate a pipeline from validated settings.

DataObjects are built first and registered in a fresh InstanceRegistry,
then every Action is built against the registered instances. Plugin types
are looked up by name in the PluginManager; an unknown type raises
ConfigurationError before anything runs.
"""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from sluice.contracts import ConfigurationError
from sluice.core.registry import InstanceRegistry
from sluice.engine.actions.base import ActionMetadata
from sluice.engine.actions.single import SubFeedAction
from sluice.engine.orchestrator import Orchestrator
from sluice.engine.retry import RetryConfig
from sluice.engine.transformers import TransformerStep

if TYPE_CHECKING:
    from sluice.core.config import ActionSettings, ExecutionModeSettings, SluiceSettings
    from sluice.engine.actions.base import Action
    from sluice.engine.metrics import MetricsSink
    from sluice.engine.modes import ExecutionMode
    from sluice.plugins.manager import PluginManager

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Pipeline:
    """Instantiated pipeline: registry plus Actions in declaration order."""

    settings: SluiceSettings
    registry: InstanceRegistry
    actions: list[Action]

    def create_orchestrator(self, *, max_workers: int | None = None, metrics_sink: MetricsSink | None = None) -> Orchestrator:
        return Orchestrator(
            self.actions,
            self.registry,
            max_workers=max_workers or self.settings.concurrency.max_workers,
            metrics_sink=metrics_sink,
        )


def resolve_transformer(reference: str) -> Callable[..., Any]:
    """Import a ``package.module:function`` reference.

    Raises:
        ConfigurationError: If the module or attribute can't be found or isn't callable
    """
    module_name, _, attribute = reference.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import transformer module '{module_name}': {e}") from e
    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ConfigurationError(f"Transformer '{reference}' not found: {module_name} has no attribute '{attribute}'") from None
    if not callable(target):
        raise ConfigurationError(f"Transformer '{reference}' is not callable")
    return target  # type: ignore[no-any-return]


def build_pipeline(settings: SluiceSettings, plugin_manager: PluginManager) -> Pipeline:
    """Build DataObjects and Actions from settings.

    Args:
        settings: Validated pipeline settings
        plugin_manager: Manager with the plugin types referenced by the settings

    Returns:
        Pipeline with a fresh registry holding every DataObject and Action

    Raises:
        ConfigurationError: On unknown plugin types, invalid plugin options or
            unresolvable transformers
    """
    registry = InstanceRegistry()
    retry_config = RetryConfig.from_settings(settings.retry)

    for data_object_id, do_settings in settings.data_objects.items():
        data_object_cls = plugin_manager.get_data_object_by_name(do_settings.type)
        registry.register_data_object(
            data_object_cls(
                data_object_id,
                partitions=do_settings.partitions,
                schema_columns=do_settings.schema_columns,
                options=do_settings.options,
                retry_config=retry_config,
                expectations=do_settings.expectations,
            )
        )

    actions: list[Action] = []
    for action_id, action_settings in settings.actions.items():
        action = _build_action(action_id, action_settings, registry, plugin_manager)
        registry.register_action(action)
        actions.append(action)

    logger.debug("pipeline_built", data_objects=len(settings.data_objects), actions=len(actions))
    return Pipeline(settings=settings, registry=registry, actions=actions)


def _build_mode(mode_settings: ExecutionModeSettings, plugin_manager: PluginManager) -> ExecutionMode:
    mode_cls = plugin_manager.get_execution_mode_by_name(mode_settings.type)
    return mode_cls(
        main_input_id=mode_settings.main_input_id,
        main_output_id=mode_settings.main_output_id,
        options=mode_settings.options,
    )


def _build_action(
    action_id: str,
    action_settings: ActionSettings,
    registry: InstanceRegistry,
    plugin_manager: PluginManager,
) -> Action:
    action_cls = plugin_manager.get_action_by_name(action_settings.type)
    inputs = [registry.get_data_object(i) for i in action_settings.inputs]
    outputs = [registry.get_data_object(o) for o in action_settings.outputs]

    kwargs: dict[str, Any] = {
        "execution_mode": _build_mode(action_settings.execution_mode, plugin_manager) if action_settings.execution_mode else None,
        "break_lineage": action_settings.break_lineage,
        "persist": action_settings.persist,
        "metadata": ActionMetadata(
            name=action_settings.metadata.name,
            description=action_settings.metadata.description,
            feed=action_settings.metadata.feed,
        ),
        "options": action_settings.options,
    }

    parameters = inspect.signature(action_cls.__init__).parameters
    steps = [
        TransformerStep(
            resolve_transformer(step.transformer),
            dict(step.options),
            tuple(step.apply_to) if step.apply_to is not None else None,
        )
        for step in action_settings.transformers
    ]
    if action_settings.transformer is not None or steps:
        if "transformer" not in parameters:
            raise ConfigurationError(f"({action_id}) action type '{action_settings.type}' does not take a transformer")
        if action_settings.transformer is not None:
            kwargs["transformer"] = resolve_transformer(action_settings.transformer)
            kwargs["transformer_options"] = action_settings.transformer_options
        if steps:
            if "transformers" not in parameters:
                raise ConfigurationError(f"({action_id}) action type '{action_settings.type}' does not take a transformer chain")
            kwargs["transformers"] = steps
    elif action_cls.requires_transformer:
        raise ConfigurationError(f"({action_id}) action type '{action_settings.type}' requires a transformer")

    if issubclass(action_cls, SubFeedAction):
        if len(inputs) != 1 or len(outputs) != 1:
            raise ConfigurationError(
                f"({action_id}) action type '{action_settings.type}' needs exactly one input and one output, "
                f"got {len(inputs)} and {len(outputs)}"
            )
        return action_cls(action_id, input=inputs[0], output=outputs[0], **kwargs)  # type: ignore[arg-type]
    return action_cls(action_id, inputs=inputs, outputs=outputs, **kwargs)  # type: ignore[arg-type]

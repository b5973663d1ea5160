# src/sluice/engine/actions/single.py
"""SubFeedAction: Actions with exactly one input and one output."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any

from sluice.contracts import ActionOutcome, ConfigurationError, Proceed, Skip, SubFeed
from sluice.engine.actions.base import Action

if TYPE_CHECKING:
    from sluice.engine.context import ActionPipelineContext
    from sluice.plugins.protocols import CanReadProtocol, CanWriteProtocol


class SubFeedAction(Action):
    """One input, one output.

    Subclasses implement transform(sub_feed, context) on the native SubFeed
    kind. The result is relabelled to the output id by the Action.
    """

    def __init__(self, action_id: str, *, input: CanReadProtocol, output: CanWriteProtocol, **kwargs: Any) -> None:
        super().__init__(action_id, inputs=[input], outputs=[output], **kwargs)

    @property
    def input(self) -> CanReadProtocol:
        return self.inputs[0]

    @property
    def output(self) -> CanWriteProtocol:
        return self.outputs[0]

    @abstractmethod
    def transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        """Transform the prepared input feed into the output feed."""

    def _do_transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> ActionOutcome:
        native = self._to_native(sub_feed)
        decision = self._decide([native], native)
        if isinstance(decision, Skip):
            return Skip(self._skipped_outputs(), reason=decision.reason)

        prepared = self._apply_decision(native, decision)
        prepared = self._prepare_input(self.input, prepared, context.phase)
        prepared = self._apply_flags(prepared)
        prepared = self._enrich_input(self.input, prepared, context.phase)
        if self.persist:
            prepared = prepared.persist()

        transformed = self.transform(prepared, context)
        if not isinstance(transformed, self.sub_feed_type):
            raise ConfigurationError(
                f"({self.id}) transform returned {type(transformed).__name__}, expected {self.sub_feed_type.__name__}"
            )
        relabelled = transformed.with_data_object_id(self.output.id)
        return Proceed([self._project_to_output(self.output, relabelled)])

    def _init(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        outcome = self._do_transform(sub_feeds[0], context)
        if isinstance(outcome, Skip):
            return outcome
        (output_feed,) = outcome.value
        self._validate_output(self.output, output_feed)
        return Proceed(self._finish_outputs([output_feed]))

    def _exec(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        outcome = self._do_transform(sub_feeds[0], context)
        if isinstance(outcome, Skip):
            self._log.info("skipped", reason=outcome.reason)
            return outcome
        (output_feed,) = outcome.value
        written = self._write(self.output, output_feed, context)
        return Proceed(self._finish_outputs([written]))

    def _post_exec(self, input_feeds: list[SubFeed], output_feeds: list[SubFeed], context: ActionPipelineContext) -> None:
        if len(input_feeds) != 1 or len(output_feeds) != 1:
            raise ConfigurationError(
                f"({self.id}) post_exec expects one input and one output subfeed, "
                f"got {len(input_feeds)} and {len(output_feeds)}"
            )
        self.post_exec_sub_feed(input_feeds[0], output_feeds[0], context)

    def post_exec_sub_feed(self, input_feed: SubFeed, output_feed: SubFeed, context: ActionPipelineContext) -> None:
        """Hook for subclasses. No-op by default."""


# src/sluice/engine/actions/multi.py
"""SubFeedsAction: Actions with N inputs and M outputs.

The execution mode decision applies to the main input's feed only. All
other inputs are read with the partition values they arrive with.

The Action is skipped when every input is skipped. When only some are, it
runs and reads the skipped inputs from storage.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING

from sluice.contracts import ActionOutcome, ConfigurationError, Proceed, Skip, SubFeed
from sluice.engine.actions.base import Action

if TYPE_CHECKING:
    from sluice.engine.context import ActionPipelineContext


class SubFeedsAction(Action):
    """Many inputs, many outputs.

    Subclasses implement transform(sub_feeds, context). It receives one
    prepared feed per input, in declaration order, and returns one feed per
    output, each labelled with the id of the output it is meant for.
    """

    @abstractmethod
    def transform(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> list[SubFeed]:
        """Transform the prepared input feeds into the output feeds."""

    def _order_by_input(self, sub_feeds: list[SubFeed]) -> list[SubFeed]:
        by_id = {f.data_object_id: f for f in sub_feeds}
        missing = [i for i in self.input_ids if i not in by_id]
        if missing:
            received = ", ".join(f.data_object_id for f in sub_feeds)
            raise ConfigurationError(f"({self.id}) no subfeed for input(s) {', '.join(missing)}, received {received}")
        return [by_id[i] for i in self.input_ids]

    def _do_transform(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        natives = [self._to_native(f) for f in self._order_by_input(sub_feeds)]
        decision = self._decide(natives, self._main_feed([f.clear_skipped() for f in natives]))
        if isinstance(decision, Skip):
            return Skip(self._skipped_outputs(), reason=decision.reason)

        natives = self._reset_skipped(natives)
        main_feed = self._main_feed(natives)
        prepared: list[SubFeed] = []
        for data_object, feed in zip(self.inputs, natives, strict=True):
            if feed is main_feed:
                feed = self._apply_decision(feed, decision)
            feed = self._prepare_input(data_object, feed, context.phase)
            feed = self._apply_flags(feed)
            feed = self._enrich_input(data_object, feed, context.phase)
            if self.persist:
                feed = feed.persist()
            prepared.append(feed)

        results: dict[str, SubFeed] = {}
        for transformed in self.transform(prepared, context):
            output = self._find_output(transformed.data_object_id)
            if output.id in results:
                raise ConfigurationError(f"({self.id}) transform returned more than one subfeed for output {output.id}")
            results[output.id] = self._project_to_output(output, self._to_native(transformed))

        missing = [o for o in self.output_ids if o not in results]
        if missing:
            raise ConfigurationError(f"({self.id}) transform produced no subfeed for output(s) {', '.join(missing)}")
        return Proceed([results[o] for o in self.output_ids])

    def _init(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        outcome = self._do_transform(sub_feeds, context)
        if isinstance(outcome, Skip):
            return outcome
        for output, feed in zip(self.outputs, outcome.value, strict=True):
            self._validate_output(output, feed)
        return Proceed(self._finish_outputs(outcome.value))

    def _exec(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        outcome = self._do_transform(sub_feeds, context)
        if isinstance(outcome, Skip):
            self._log.info("skipped", reason=outcome.reason)
            return outcome
        written = [self._write(output, feed, context) for output, feed in zip(self.outputs, outcome.value, strict=True)]
        return Proceed(self._finish_outputs(written))

# tests/property/engine/test_orchestrator_properties.py
"""Property tests: both phases visit the graph in the same order."""

from __future__ import annotations

from typing import Any

from hypothesis import given
from hypothesis import strategies as st

from sluice.contracts import ExecutionPhase, RunStatus, SubFeed
from sluice.engine.context import ActionPipelineContext
from sluice.engine.orchestrator import Orchestrator
from tests.conftest import RecordingAction, frame, memory
from tests.property.settings import SLOW_SETTINGS


class JournalAction(RecordingAction):
    def __init__(self, action_id: str, *, journal: list[tuple[ExecutionPhase, str]], **kwargs: Any) -> None:
        super().__init__(action_id, **kwargs)
        self.journal = journal

    def transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        self.journal.append((context.phase, self.id))
        return super().transform(sub_feed, context)


@st.composite
def upstream_choices(draw: st.DrawFn) -> list[int | None]:
    """For action i: index of the upstream action it reads from, or None for a source."""
    size = draw(st.integers(min_value=1, max_value=7))
    return [None if i == 0 else draw(st.one_of(st.none(), st.integers(min_value=0, max_value=i - 1))) for i in range(size)]


def build(choices: list[int | None], journal: list[tuple[ExecutionPhase, str]]) -> list[JournalAction]:
    outputs = [memory(f"out_{i}") for i in range(len(choices))]
    actions = []
    for i, upstream in enumerate(choices):
        source = memory(f"src_{i}", frame(v=[i])) if upstream is None else outputs[upstream]
        actions.append(JournalAction(f"action_{i}", input=source, output=outputs[i], journal=journal))
    return actions


class TestPhaseOrderProperties:
    @given(choices=upstream_choices(), reverse=st.booleans())
    @SLOW_SETTINGS
    def test_init_and_exec_visit_same_order(self, choices: list[int | None], reverse: bool) -> None:
        journal: list[tuple[ExecutionPhase, str]] = []
        actions = build(choices, journal)
        orchestrator = Orchestrator(actions[::-1] if reverse else actions, max_workers=1)

        result = orchestrator.run()

        assert result.status == RunStatus.COMPLETED
        init_order = [a for phase, a in journal if phase == ExecutionPhase.INIT]
        exec_order = [a for phase, a in journal if phase == ExecutionPhase.EXEC]
        assert init_order == exec_order == orchestrator.dag.topological_order()

    @given(choices=upstream_choices())
    @SLOW_SETTINGS
    def test_producers_run_before_consumers(self, choices: list[int | None]) -> None:
        journal: list[tuple[ExecutionPhase, str]] = []
        Orchestrator(build(choices, journal), max_workers=3).run()

        exec_order = [a for phase, a in journal if phase == ExecutionPhase.EXEC]
        for i, upstream in enumerate(choices):
            if upstream is not None:
                assert exec_order.index(f"action_{upstream}") < exec_order.index(f"action_{i}")

"""Tests for the session and page state machines"""
import pytest

from siteforge.core.state_machine import (
    BuildPhase,
    BuildState,
    InvalidTransition,
    PageLifecycle,
    PageState,
    phase_for_step,
)


class TestPageLifecycle:

    def test_regeneration_loop_then_fallback(self):
        lifecycle = PageLifecycle("about")
        for state in (PageState.GENERATED, PageState.VALIDATED, PageState.NEEDS_REGENERATION,
                      PageState.REGENERATING, PageState.GENERATED, PageState.VALIDATED,
                      PageState.EXHAUSTED, PageState.FALLBACK):
            lifecycle.advance(state)

        assert lifecycle.is_final
        assert lifecycle.history.count(PageState.VALIDATED) == 2

    def test_invalid_transition(self):
        lifecycle = PageLifecycle("about")
        with pytest.raises(InvalidTransition):
            lifecycle.advance(PageState.ACCEPTED)


class TestBuildState:

    def test_terminal_phase_is_final(self):
        state = BuildState("s1")
        state.log_event(BuildPhase.READY, "Done", step="complete")
        state.log_event(BuildPhase.GENERATING, "late event")

        assert state.phase == BuildPhase.READY
        assert len(state.event_log) == 1
        assert state.event_log[0]["step"] == "complete"

    @pytest.mark.parametrize("step,phase", [
        ("detected", BuildPhase.DETECTING),
        ("generating-page-4", BuildPhase.GENERATING),
        ("regenerating", BuildPhase.FIXING),
        ("complete", BuildPhase.READY),
    ])
    def test_phase_for_step(self, step, phase):
        assert phase_for_step(step) == phase

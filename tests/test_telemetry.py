"""Tests for run-scoped usage tracking"""
import pytest

from siteforge.core.telemetry import RequestContext, enrich_error_context, track_phase


class TestRunUsage:

    def test_children_share_run_usage(self):
        root = RequestContext(session_id="abcdef123456")
        with track_phase(root.child("Generator", phase="page:index")) as tracker:
            tracker.record_attempt(100, 900)
            tracker.complete(success=True)
        with track_phase(root.child("Generator", phase="page:about")) as tracker:
            tracker.record_attempt(error="Agent timeout after 180.0s")
            tracker.complete(success=False)

        assert root.usage.total_tokens == 1000
        assert root.usage.calls == 2
        assert root.usage.failed_calls == 1

    def test_log_prefix(self):
        context = RequestContext(session_id="abcdef123456").child("Generator", phase="regen:about", attempt=2)
        prefix = context.log_prefix()
        assert prefix.startswith("[Generator] session=abcdef12 run=")
        assert prefix.endswith("phase=regen:about attempt=2")


class TestTrackPhase:

    def test_exception_completes_as_failed(self):
        with pytest.raises(RuntimeError):
            with track_phase(RequestContext()) as tracker:
                raise RuntimeError("bug")

        assert tracker.done
        assert not tracker.success
        assert tracker.errors == ["RuntimeError: bug"]

    def test_unfinished_phase_completed_on_exit(self):
        with track_phase(RequestContext()) as tracker:
            pass

        assert tracker.done
        assert not tracker.success

    def test_complete_is_final(self):
        with track_phase(RequestContext()) as tracker:
            tracker.complete(success=True)
            tracker.complete(success=False)

        assert tracker.success


def test_enrich_error_context():
    data = enrich_error_context(ValueError("bad"), RequestContext(session_id="s1"), {"site_name": "Acme"})
    assert data["error_type"] == "ValueError"
    assert data["session_id"] == "s1"
    assert data["additional_context"] == {"site_name": "Acme"}

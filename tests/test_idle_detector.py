"""Tests for idle detection."""

from code_ledger.trackers.idle_detector import IdleDetector, IdleStatus


class TestIdleDetector:
    """Tests for IdleDetector classification."""

    def test_active_within_threshold(self):
        detector = IdleDetector(idle_threshold=120, now=0.0)
        state = detector.get_idle_state(now=120.0, has_resource=True)

        assert state.status is IdleStatus.ACTIVE
        assert state.seconds_since_activity == 120.0

    def test_idle_past_threshold(self):
        detector = IdleDetector(idle_threshold=120, now=0.0)
        assert detector.get_idle_state(now=120.5, has_resource=True).status is IdleStatus.IDLE
        assert detector.is_idle(120.5)

    def test_mark_activity_resets_clock(self):
        detector = IdleDetector(idle_threshold=10, now=0.0)
        detector.mark_activity(50.0)

        assert detector.last_activity == 50.0
        assert detector.seconds_since_activity(55.0) == 5.0
        assert not detector.is_idle(55.0)

    def test_no_resource(self):
        detector = IdleDetector(now=0.0)
        assert detector.get_idle_state(now=1.0, has_resource=False).status is IdleStatus.NO_RESOURCE

    def test_unfocused_takes_precedence(self):
        detector = IdleDetector(idle_threshold=10, now=0.0)
        detector.set_host_focus(False, now=0.0)

        state = detector.get_idle_state(now=100.0, has_resource=False)
        assert state.status is IdleStatus.UNFOCUSED
        assert state.host_focused is False

    def test_regaining_focus_counts_as_activity(self):
        detector = IdleDetector(idle_threshold=10, now=0.0)
        detector.set_host_focus(False, now=0.0)
        detector.set_host_focus(True, now=500.0)

        assert detector.get_idle_state(now=505.0, has_resource=True).status is IdleStatus.ACTIVE

    def test_losing_focus_keeps_last_activity(self):
        detector = IdleDetector(now=3.0)
        detector.set_host_focus(False, now=9.0)
        assert detector.last_activity == 3.0

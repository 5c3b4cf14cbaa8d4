"""AlertCoordinator 单元测试"""

import pytest

from alerts.alert_coordinator import AlertCoordinator
from alerts.toast_channel import ToastChannel
from alerts.voice_channel import VoiceChannel
from models.data_models import TOAST, VOICE, MetricsSnapshot


def _metrics(**overrides):
    params = dict(blink_rate=16, distance_cm=60.0, fatigue_score=10, session_seconds=120, face_detected=True)
    params.update(overrides)
    return MetricsSnapshot(**params)


@pytest.fixture
def coordinator(engine):
    return AlertCoordinator(VoiceChannel(engine=engine), ToastChannel(limit=10, duration_s=7.0))


def _keys(events):
    return [e.key for e in events]


class TestThresholdRules:
    def test_healthy_metrics_no_alert(self, coordinator):
        assert coordinator.evaluate_frame(_metrics(), now=0.0) == []

    def test_too_close(self, coordinator, engine):
        events = coordinator.evaluate_frame(_metrics(distance_cm=35.0), now=0.0)
        assert _keys(events) == ["tooClose"]
        assert events[0].category == "danger"
        assert set(events[0].channels) == {VOICE, TOAST}
        assert len(engine.spoken) == 1

    def test_optimal_distance_no_alert(self, coordinator):
        """ipd 40px 对应约 71.9cm，不应触发距离过近"""
        assert coordinator.evaluate_frame(_metrics(distance_cm=71.9), now=0.0) == []

    def test_low_blink_requires_one_minute(self, coordinator):
        assert coordinator.evaluate_frame(_metrics(blink_rate=5, session_seconds=59), now=0.0) == []
        events = coordinator.evaluate_frame(_metrics(blink_rate=5, session_seconds=60), now=1.0)
        assert _keys(events) == ["lowBlink"]
        assert events[0].category == "warning"

    def test_critical_fatigue(self, coordinator):
        events = coordinator.evaluate_frame(_metrics(fatigue_score=80), now=0.0)
        assert _keys(events) == ["critFatigue"]
        assert coordinator.evaluate_frame(_metrics(fatigue_score=79), now=1000.0) == []

    def test_low_blink_scenario(self, coordinator, engine):
        """会话 61 秒、眨眼 5 次/分：语音+弹窗只触发一次，10 秒后不再触发"""
        first = coordinator.evaluate_frame(_metrics(blink_rate=5, session_seconds=61), now=61.0)
        second = coordinator.evaluate_frame(_metrics(blink_rate=5, session_seconds=71), now=71.0)
        assert _keys(first) == ["lowBlink"]
        assert second == []
        assert len(engine.spoken) == 1
        assert [e.key for e in coordinator.toast.active(61.0)] == ["lowBlink"]

    @pytest.mark.parametrize("delta, expected", [(10.0, 1), (74.9, 1), (75.0, 2), (200.0, 2)])
    def test_cooldown_window(self, coordinator, delta, expected):
        events = coordinator.evaluate_frame(_metrics(distance_cm=30.0), now=100.0)
        events += coordinator.evaluate_frame(_metrics(distance_cm=30.0), now=100.0 + delta)
        assert len(events) == expected

    def test_multiple_rules_same_frame(self, coordinator):
        events = coordinator.evaluate_frame(
            _metrics(distance_cm=30.0, blink_rate=3, fatigue_score=90), now=0.0,
        )
        assert _keys(events) == ["tooClose", "lowBlink", "critFatigue"]

    def test_busy_voice_still_toasts(self, manual_engine):
        """语音忙时仍然发出弹窗"""
        engine = manual_engine
        coordinator = AlertCoordinator(VoiceChannel(engine=engine), ToastChannel(limit=10))
        events = coordinator.evaluate_frame(_metrics(distance_cm=30.0, fatigue_score=90), now=0.0)
        assert _keys(events) == ["tooClose", "critFatigue"]
        assert len(engine.spoken) == 1
        assert len(coordinator.toast.active(0.0)) == 2

    def test_voice_disabled_still_rate_limited(self, engine):
        voice = VoiceChannel(engine=engine, enabled=False)
        coordinator = AlertCoordinator(voice, ToastChannel())
        coordinator.evaluate_frame(_metrics(distance_cm=30.0), now=0.0)
        voice.enabled = True
        assert coordinator.evaluate_frame(_metrics(distance_cm=30.0), now=10.0) == []
        assert engine.spoken == []


class TestTimeRules:
    def _run_ticks(self, coordinator, start, end):
        events = []
        for second in range(start, end + 1):
            events += coordinator.tick(second, now=float(second))
        return events

    def test_no_alert_at_zero(self, coordinator):
        assert coordinator.tick(0, now=0.0) == []

    def test_hydration_is_toast_only(self, coordinator, engine):
        events = coordinator.tick(900, now=900.0)
        assert _keys(events) == ["hydrate"]
        assert events[0].channels == (TOAST,)
        assert engine.spoken == []

    def test_long_break_is_toast_only(self, coordinator, engine):
        events = coordinator.tick(3000, now=3000.0)
        assert _keys(events) == ["longBreak"]
        assert engine.spoken == []

    def test_only_exact_multiples_fire(self, coordinator):
        events = self._run_ticks(coordinator, 1, 1199)
        assert _keys(events) == ["hydrate"]

    def test_break_starts_countdown(self, coordinator, engine):
        events = coordinator.tick(1200, now=1200.0)
        assert _keys(events) == ["break20"]
        assert coordinator.break_countdown == 20
        assert len(engine.spoken) == 1

    def test_countdown_completes(self, coordinator):
        coordinator.tick(1200, now=1200.0)
        events = self._run_ticks(coordinator, 1201, 1219)
        assert events == []
        assert coordinator.break_countdown == 1

        done = coordinator.tick(1220, now=1220.0)
        assert _keys(done) == ["breakDone"]
        assert done[0].category == "success"
        assert coordinator.break_countdown is None

    def test_break_fires_each_interval(self, coordinator):
        """跑到第二次休息倒计时结束（2400 + 20 秒）"""
        events = self._run_ticks(coordinator, 1, 2420)
        assert _keys(events).count("break20") == 2
        assert _keys(events).count("breakDone") == 2
        assert _keys(events).count("hydrate") == 2

    def test_missed_tick_skips_reminder(self, coordinator):
        """跳过 900 秒这一拍时喝水提醒不会补发"""
        events = coordinator.tick(899, now=899.0) + coordinator.tick(901, now=901.0)
        assert events == []

    def test_reset(self, coordinator):
        coordinator.tick(1200, now=1200.0)
        coordinator.reset()
        assert coordinator.break_countdown is None
        assert len(coordinator.cooldowns) == 0

"""BlinkDetector 单元测试"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from detectors.blink_detector import (
    BLINK_WINDOW_S,
    NEUTRAL_EAR,
    BlinkDetector,
    calculate_ear,
)


def _eye(v1=0.03, v2=0.03, horizontal=0.09, x0=0.30, y0=0.40):
    """按 外眼角、上眼睑两点、内眼角、下眼睑两点 的顺序构造 6 个关键点"""
    return [
        (x0, y0),
        (x0 + 0.03, y0 - v1 / 2),
        (x0 + 0.06, y0 - v2 / 2),
        (x0 + horizontal, y0),
        (x0 + 0.06, y0 + v2 / 2),
        (x0 + 0.03, y0 + v1 / 2),
    ]


OPEN_EYE = _eye()
CLOSED_EYE = _eye(0.02, 0.018)


class TestCalculateEar:
    def test_known_geometry(self):
        """竖直距离 0.02 / 0.018，水平距离 0.09 → EAR ≈ 0.211"""
        ear = calculate_ear(CLOSED_EYE)
        assert ear == pytest.approx((0.02 + 0.018) / (2 * 0.09))
        assert ear < 0.22

    def test_open_eye(self):
        assert calculate_ear(OPEN_EYE) == pytest.approx(0.06 / 0.18)

    def test_zero_horizontal_uses_unit_denominator(self):
        points = [(0.5, 0.5), (0.5, 0.4), (0.5, 0.4), (0.5, 0.5), (0.5, 0.6), (0.5, 0.6)]
        assert calculate_ear(points) == pytest.approx((0.2 + 0.2) / 1.0)

    def test_missing_point_returns_neutral(self):
        points = list(OPEN_EYE)
        points[2] = None
        assert calculate_ear(points) == NEUTRAL_EAR

    def test_wrong_length_returns_neutral(self):
        assert calculate_ear(OPEN_EYE[:4]) == NEUTRAL_EAR


class TestBlinkDetector:
    def test_closed_eyes_register_blink(self):
        detector = BlinkDetector()
        result = detector.analyze(CLOSED_EYE, CLOSED_EYE, now=10.0)
        assert result.is_blink
        assert result.blink_rate == 1
        assert result.ear == pytest.approx(0.2111, abs=1e-3)

    def test_open_eyes_no_blink(self):
        detector = BlinkDetector()
        result = detector.analyze(OPEN_EYE, OPEN_EYE, now=10.0)
        assert not result.is_blink
        assert result.blink_rate == 0

    def test_debounce_blocks_rapid_frames(self):
        detector = BlinkDetector(debounce_s=0.3)
        for t in (10.0, 10.1, 10.2):
            result = detector.analyze(CLOSED_EYE, CLOSED_EYE, now=t)
        assert result.blink_rate == 1

    def test_blink_after_debounce(self):
        """上一次眨眼超过 300ms 后再次闭眼应登记新的眨眼"""
        detector = BlinkDetector(debounce_s=0.3)
        detector.analyze(CLOSED_EYE, CLOSED_EYE, now=10.0)
        result = detector.analyze(CLOSED_EYE, CLOSED_EYE, now=10.35)
        assert result.is_blink
        assert result.blink_rate == 2

    def test_missing_eye_points_do_not_blink(self):
        detector = BlinkDetector()
        result = detector.analyze([None] * 6, [None] * 6, now=1.0)
        assert result.ear == NEUTRAL_EAR
        assert not result.is_blink

    def test_entries_expire_after_window(self):
        detector = BlinkDetector()
        detector.analyze(CLOSED_EYE, CLOSED_EYE, now=0.0)
        detector.analyze(CLOSED_EYE, CLOSED_EYE, now=30.0)
        assert detector.blink_rate(59.9) == 2
        assert detector.blink_rate(60.0) == 1
        assert detector.blink_rate(95.0) == 0
        assert detector.blink_log == []

    def test_reset_clears_log(self):
        detector = BlinkDetector()
        detector.analyze(CLOSED_EYE, CLOSED_EYE, now=1.0)
        detector.reset()
        assert detector.blink_rate(1.0) == 0

    def test_average_of_both_eyes(self):
        """一只眼闭、一只眼睁时按平均值判断"""
        detector = BlinkDetector(ear_threshold=0.22)
        result = detector.analyze(CLOSED_EYE, OPEN_EYE, now=1.0)
        assert result.ear == pytest.approx((0.2111 + 0.3333) / 2, abs=1e-3)
        assert not result.is_blink


@given(st.lists(st.integers(min_value=301, max_value=30000), min_size=1, max_size=40))
def test_blink_rate_counts_entries_in_trailing_window(gaps_ms):
    """间隔均不小于去抖时间的闭眼帧都会登记，眨眼频率等于窗口内的条目数"""
    detector = BlinkDetector(debounce_s=0.3)
    timestamps = []
    elapsed = 0
    for gap in gaps_ms:
        elapsed += gap
        timestamps.append(elapsed / 1000.0)

    for t in timestamps:
        detector.analyze(CLOSED_EYE, CLOSED_EYE, now=t)

    now = timestamps[-1]
    expected = sum(1 for t in timestamps if now - t < BLINK_WINDOW_S)
    assert detector.blink_rate(now) == expected


@given(st.lists(st.integers(min_value=0, max_value=299), min_size=1, max_size=20))
def test_frames_within_debounce_do_not_add_blinks(gaps_ms):
    detector = BlinkDetector(debounce_s=0.3)
    detector.analyze(CLOSED_EYE, CLOSED_EYE, now=100.0)
    last = 100.0
    # 每帧距离上次登记的眨眼都不足 300ms
    for gap in gaps_ms:
        detector.analyze(CLOSED_EYE, CLOSED_EYE, now=last + gap / 1000.0)
    assert detector.blink_rate(100.3) == 1

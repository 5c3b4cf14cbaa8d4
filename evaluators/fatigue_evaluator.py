"""综合疲劳评分模块：分段打分求和，再做指数平滑"""

from models.data_models import FatigueResult

SMOOTHING_ALPHA = 0.15


class FatigueState:
    """会话内持久化的平滑分数，会话开始/结束时归零"""

    def __init__(self, smoothed_score: float = 0.0):
        self.smoothed_score = smoothed_score

    def reset(self):
        self.smoothed_score = 0.0


def _blink_points(blink_rate: float) -> int:
    # 还没有眨眼数据时不扣分
    if blink_rate <= 0:
        return 0
    if blink_rate < 8:
        return 30
    if blink_rate < 12:
        return 18
    if blink_rate < 15:
        return 8
    return 0


def _distance_points(distance_cm: float) -> int:
    if distance_cm < 35:
        return 35
    if distance_cm < 45:
        return 22
    if distance_cm < 50:
        return 12
    if distance_cm > 90:
        return 8
    return 0


def _tilt_points(tilt: float) -> int:
    abs_tilt = abs(tilt)
    if abs_tilt > 20:
        return 15
    if abs_tilt > 12:
        return 8
    return 0


def _dilation_points(dilation: float) -> int:
    if dilation > 0.32:
        return 20
    if dilation > 0.27:
        return 10
    if dilation < 0.10:
        return 5
    return 0


def _session_points(session_seconds: float) -> int:
    if session_seconds > 5400:
        return 20
    if session_seconds > 3600:
        return 13
    if session_seconds > 1800:
        return 6
    return 0


def raw_fatigue_score(
    blink_rate: float,
    distance_cm: float,
    tilt: float,
    dilation: float,
    session_seconds: float = 0,
) -> float:
    """各项分数求和并限定在 [0, 100]"""
    raw = (
        _blink_points(blink_rate)
        + _distance_points(distance_cm)
        + _tilt_points(tilt)
        + _dilation_points(dilation)
        + _session_points(session_seconds)
    )
    return float(min(100, max(0, raw)))


class FatigueEvaluator:
    """计算疲劳分数，平滑状态由调用方以 FatigueState 显式传入"""

    def __init__(self, alpha: float = SMOOTHING_ALPHA):
        self.alpha = alpha

    def smooth(self, raw: float, state: FatigueState) -> int:
        """
        指数平滑: smoothed = α*raw + (1-α)*smoothed_prev

        Returns:
            四舍五入后的整数分数，范围 [0, 100]
        """
        state.smoothed_score = self.alpha * raw + (1.0 - self.alpha) * state.smoothed_score
        state.smoothed_score = min(100.0, max(0.0, state.smoothed_score))
        return int(state.smoothed_score + 0.5)

    def evaluate(
        self,
        state: FatigueState,
        blink_rate: float,
        distance_cm: float,
        tilt: float,
        dilation: float,
        session_seconds: float = 0,
    ) -> FatigueResult:
        """
        综合评分。

        Args:
            state: 本会话的平滑状态，会被原地更新
            blink_rate: 每分钟眨眼次数
            distance_cm: 视距（厘米）
            tilt: 头部侧倾角（度）
            dilation: 瞳孔负荷代理值
            session_seconds: 会话已持续秒数

        Returns:
            FatigueResult(score, raw_score)
        """
        raw = raw_fatigue_score(blink_rate, distance_cm, tilt, dilation, session_seconds)
        return FatigueResult(score=self.smooth(raw, state), raw_score=raw)

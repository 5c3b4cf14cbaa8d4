"""眨眼检测模块，负责计算 EAR 值并统计最近 60 秒的眨眼次数"""

import math
from collections import deque
from typing import List, Optional, Sequence

from models.data_models import BlinkResult, Point

# 眼睛轮廓关键点索引：外眼角、上眼睑两点、内眼角、下眼睑两点
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]

# 关键点缺失时的中性 EAR，不会触发眨眼
NEUTRAL_EAR = 0.3

# 统计窗口（秒）
BLINK_WINDOW_S = 60.0


def calculate_ear(eye_points: Sequence[Optional[Point]]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Args:
        eye_points: 6 个眼睛轮廓关键点，顺序为外眼角、上眼睑两点、内眼角、下眼睑两点

    Returns:
        EAR 值；任一关键点缺失时返回 NEUTRAL_EAR，分母为零时按 1 计算
    """
    if len(eye_points) != 6 or any(p is None for p in eye_points):
        return NEUTRAL_EAR

    p1, p2, p3, p4, p5, p6 = eye_points

    vertical_1 = math.dist(p2, p6)
    vertical_2 = math.dist(p3, p5)
    denominator = 2.0 * math.dist(p1, p4)

    if denominator == 0.0:
        denominator = 1.0

    return (vertical_1 + vertical_2) / denominator


class BlinkDetector:
    """维护眨眼时间戳日志，按阈值和去抖间隔登记眨眼，输出每分钟眨眼次数"""

    def __init__(self, ear_threshold: float = 0.22, debounce_s: float = 0.3):
        self.ear_threshold = ear_threshold
        self.debounce_s = debounce_s
        self._blink_log = deque()

    @property
    def blink_log(self) -> List[float]:
        return list(self._blink_log)

    def analyze(
        self,
        left_eye: Sequence[Optional[Point]],
        right_eye: Sequence[Optional[Point]],
        now: float,
    ) -> BlinkResult:
        """
        分析双眼状态，必要时登记一次眨眼。

        Args:
            left_eye: 左眼 6 个关键点
            right_eye: 右眼 6 个关键点
            now: 当前帧时间戳（秒）

        Returns:
            BlinkResult(ear, is_blink, blink_rate)
        """
        avg_ear = (calculate_ear(left_eye) + calculate_ear(right_eye)) / 2.0

        is_blink = avg_ear < self.ear_threshold and self._debounced(now)
        if is_blink:
            self._blink_log.append(now)

        return BlinkResult(ear=avg_ear, is_blink=is_blink, blink_rate=self.blink_rate(now))

    def blink_rate(self, now: float) -> int:
        """清除过期记录后返回窗口内的眨眼次数"""
        while self._blink_log and now - self._blink_log[0] >= BLINK_WINDOW_S:
            self._blink_log.popleft()
        return len(self._blink_log)

    def _debounced(self, now: float) -> bool:
        if not self._blink_log:
            return True
        return now - self._blink_log[-1] >= self.debounce_s

    def reset(self):
        """清空眨眼日志"""
        self._blink_log.clear()

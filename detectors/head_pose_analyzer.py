"""头部姿态分析模块，由额头-下巴轴线估计头部侧倾角"""

import math
from typing import Optional

from models.data_models import LandmarkFrame

# 额头顶部、下巴关键点索引
FOREHEAD_INDEX = 10
CHIN_INDEX = 152


class HeadPoseAnalyzer:
    """计算头部侧倾角（度），正脸为 0，向画面右侧倾为正"""

    def estimate_tilt(self, frame: LandmarkFrame) -> Optional[float]:
        """
        估计头部侧倾角。

        Args:
            frame: 归一化关键点帧

        Returns:
            侧倾角（度），关键点缺失或重合时返回 None
        """
        top = frame.point(FOREHEAD_INDEX)
        chin = frame.point(CHIN_INDEX)
        if top is None or chin is None:
            return None

        # 换算到像素坐标，避免宽高比带来的角度畸变
        dx = (top[0] - chin[0]) * frame.width
        dy = (chin[1] - top[1]) * frame.height
        if dx == 0.0 and dy == 0.0:
            return None

        return math.degrees(math.atan2(dx, dy))

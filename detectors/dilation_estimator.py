"""瞳孔负荷估计模块：虹膜宽度 / 眼睑开合度，可选亮度补偿"""

import math
from typing import Optional

import numpy as np

from models.data_models import LandmarkFrame

# 虹膜左右边缘、上下眼睑关键点索引
IRIS_EDGE_INDICES = (469, 471)
EYELID_INDICES = (159, 145)

MIN_EYELID_OPENING = 0.005

# 亮度采样区域边长（像素）
SAMPLE_SIZE = 40
NEUTRAL_BRIGHTNESS = 0.5

# 尚未测到虹膜时沿用的负荷值，落在不扣分区间内
NEUTRAL_DILATION = 0.2


def estimate_brightness(frame: np.ndarray, sample_size: int = SAMPLE_SIZE) -> float:
    """
    采样画面中心区域的平均亮度。

    Args:
        frame: BGR 格式的 OpenCV 图像帧
        sample_size: 采样区域边长

    Returns:
        [0, 1] 区间的亮度，帧无效时返回 0.5
    """
    if frame is None or frame.ndim != 3 or frame.shape[2] < 3 or frame.size == 0:
        return NEUTRAL_BRIGHTNESS

    h, w = frame.shape[:2]
    size = min(sample_size, h, w)
    y = (h - size) // 2
    x = (w - size) // 2
    patch = frame[y:y + size, x:x + size, :3].astype(np.float64)

    # BGR 通道顺序
    luminance = 0.114 * patch[..., 0] + 0.587 * patch[..., 1] + 0.299 * patch[..., 2]
    return float(min(1.0, max(0.0, luminance.mean() / 255.0)))


class DilationEstimator:
    """计算瞳孔负荷代理值；brightness_compensation 控制是否按环境亮度修正"""

    def __init__(self, brightness_compensation: bool = True):
        self.brightness_compensation = brightness_compensation

    def estimate(self, frame: LandmarkFrame, brightness: float = NEUTRAL_BRIGHTNESS) -> Optional[float]:
        """关键点缺失时返回 None，由调用方沿用上一帧的值"""
        iris_a, iris_b = frame.select(IRIS_EDGE_INDICES)
        upper, lower = frame.select(EYELID_INDICES)
        if iris_a is None or iris_b is None or upper is None or lower is None:
            return None

        iris_width = math.dist(iris_a, iris_b)
        opening = max(abs(upper[1] - lower[1]), MIN_EYELID_OPENING)
        ratio = iris_width / opening

        if self.brightness_compensation:
            ratio *= 1.0 + brightness - 0.5
        return ratio

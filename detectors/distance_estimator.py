"""视距估计模块，基于针孔相机模型由瞳距像素值推算人眼到屏幕的距离

distance = (真实瞳距_mm * 焦距_px) / 瞳距_px

未校准时使用默认焦距：640px 宽、约 70° 视场角的摄像头
focal ≈ (640 / 2) / tan(35°) ≈ 457px
"""

import logging
import math
from typing import Optional

from models.data_models import CalibrationResult, DistanceResult, LandmarkFrame

logger = logging.getLogger(__name__)

DEFAULT_FOCAL_LENGTH_PX = 457.0
REAL_IPD_MM = 63.0

MIN_DISTANCE_CM = 15.0
MAX_DISTANCE_CM = 200.0
FALLBACK_DISTANCE_CM = 60.0
MIN_IPD_PX = 2.0

# 虹膜中心关键点索引（需 refine_landmarks）
LEFT_IRIS_CENTER = 468
RIGHT_IRIS_CENTER = 473


def measure_ipd_pixels(frame: LandmarkFrame) -> Optional[float]:
    """计算两虹膜中心的像素距离，关键点缺失时返回 None"""
    left = frame.point(LEFT_IRIS_CENTER)
    right = frame.point(RIGHT_IRIS_CENTER)
    if left is None or right is None:
        return None
    dx = (left[0] - right[0]) * frame.width
    dy = (left[1] - right[1]) * frame.height
    return math.hypot(dx, dy)


def estimate_distance(ipd_pixels: Optional[float], focal_length_px: Optional[float] = None) -> float:
    """
    由瞳距像素值估计视距。

    Args:
        ipd_pixels: 瞳距像素值
        focal_length_px: 校准后的焦距，None 时使用默认焦距

    Returns:
        视距（厘米），限定在 [15, 200]；瞳距无效时返回 60
    """
    if ipd_pixels is None or ipd_pixels < MIN_IPD_PX:
        return FALLBACK_DISTANCE_CM

    focal = focal_length_px if focal_length_px is not None else DEFAULT_FOCAL_LENGTH_PX
    distance_cm = (REAL_IPD_MM * focal) / ipd_pixels / 10.0

    return min(MAX_DISTANCE_CM, max(MIN_DISTANCE_CM, distance_cm))


def calibrate_focal_length(ipd_pixels: float, known_distance_cm: float) -> float:
    """已知距离下反推焦距: focal = ipd_px * distance_mm / 真实瞳距_mm"""
    return (ipd_pixels * known_distance_cm * 10.0) / REAL_IPD_MM


class DistanceEstimator:
    """持有本次会话的校准状态，输出视距"""

    def __init__(self, reference_distance_cm: float = 60.0):
        self.reference_distance_cm = reference_distance_cm
        self.focal_length_px: Optional[float] = None
        self.last_ipd_pixels: Optional[float] = None

    @property
    def calibrated(self) -> bool:
        return self.focal_length_px is not None

    def invalidate(self) -> None:
        """人脸丢失时清除最近一次瞳距，之后的校准必须等到重新检测到双眼"""
        self.last_ipd_pixels = None

    def estimate(self, frame: LandmarkFrame) -> DistanceResult:
        ipd = measure_ipd_pixels(frame)
        self.last_ipd_pixels = ipd
        return DistanceResult(
            distance_cm=estimate_distance(ipd, self.focal_length_px),
            ipd_pixels=ipd,
            calibrated=self.calibrated,
        )

    def calibrate(self, ipd_pixels: Optional[float] = None) -> CalibrationResult:
        """
        以参考距离校准焦距，每个会话只允许一次。

        Args:
            ipd_pixels: 当前瞳距像素值，None 时使用最近一帧的测量值

        Returns:
            CalibrationResult；失败时不修改任何状态
        """
        if self.calibrated:
            return CalibrationResult(
                success=False,
                message="本次会话已完成校准",
                focal_length_px=self.focal_length_px,
            )

        if ipd_pixels is None:
            ipd_pixels = self.last_ipd_pixels

        if ipd_pixels is None or ipd_pixels < MIN_IPD_PX:
            logger.warning("校准失败: 未检测到有效瞳距")
            return CalibrationResult(success=False, message="未检测到双眼，请正对摄像头后重试")

        self.focal_length_px = calibrate_focal_length(ipd_pixels, self.reference_distance_cm)
        logger.info("焦距校准完成: %.1f px (瞳距 %.1f px)", self.focal_length_px, ipd_pixels)
        return CalibrationResult(
            success=True,
            message=f"校准完成，参考距离 {self.reference_distance_cm:.0f} cm",
            focal_length_px=self.focal_length_px,
        )

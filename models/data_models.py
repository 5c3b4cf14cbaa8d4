"""核心数据模型定义"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

Point = Tuple[float, float]

# 告警类别
CATEGORIES = ("danger", "warning", "info", "success")

# 通知通道
VOICE = "voice"
TOAST = "toast"


@dataclass
class LandmarkFrame:
    """单帧人脸关键点（归一化坐标，缺失点为 None）"""
    points: Sequence[Optional[Point]]
    timestamp: float
    width: int = 640
    height: int = 480

    def point(self, index: int) -> Optional[Point]:
        """按索引取关键点，越界或缺失时返回 None"""
        if index < 0 or index >= len(self.points):
            return None
        return self.points[index]

    def select(self, indices: Sequence[int]) -> List[Optional[Point]]:
        return [self.point(i) for i in indices]


@dataclass
class BlinkResult:
    """眨眼检测结果"""
    ear: float
    is_blink: bool
    blink_rate: int


@dataclass
class DistanceResult:
    """视距估计结果"""
    distance_cm: float
    ipd_pixels: Optional[float]
    calibrated: bool


@dataclass
class CalibrationResult:
    """焦距校准结果"""
    success: bool
    message: str
    focal_length_px: Optional[float] = None


@dataclass
class FatigueResult:
    """疲劳评分结果"""
    score: int
    raw_score: float


@dataclass
class MetricsSnapshot:
    """一帧处理后的指标快照"""
    blink_rate: int = 0
    ear: float = 0.3
    distance_cm: float = 60.0
    dilation: float = 0.0
    tilt: float = 0.0
    brightness: float = 0.5
    fatigue_score: int = 0
    session_seconds: int = 0
    face_detected: bool = False
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "blink_rate": self.blink_rate,
            "ear": round(self.ear, 4),
            "distance_cm": round(self.distance_cm, 1),
            "dilation": round(self.dilation, 4),
            "tilt": round(self.tilt, 2),
            "brightness": round(self.brightness, 3),
            "fatigue_score": self.fatigue_score,
            "session_seconds": self.session_seconds,
            "face_detected": self.face_detected,
        }


@dataclass
class AlertEvent:
    """告警事件，由告警协调器产生，交给语音/弹窗通道消费"""
    category: str
    message: str
    channels: Tuple[str, ...]
    timestamp: float
    key: str = ""

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "category": self.category,
            "message": self.message,
            "channels": list(self.channels),
            "timestamp": self.timestamp,
        }


@dataclass
class AlertRule:
    """告警规则：阈值规则的 interval 为 0，定时规则按会话秒数取模触发"""
    key: str
    category: str
    message: str
    cooldown: float
    channels: Tuple[str, ...] = (VOICE, TOAST)
    interval: int = 0
    voice_message: Optional[str] = None

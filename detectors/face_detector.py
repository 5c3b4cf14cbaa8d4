"""人脸关键点检测模块，基于 MediaPipe FaceMesh（含虹膜关键点）"""

import time
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from models.data_models import LandmarkFrame


# refine_landmarks=True 时共 478 个点，468 之后为虹膜
NUM_LANDMARKS = 478


class FaceDetector:
    """使用 MediaPipe FaceMesh 检测人脸关键点，输出归一化坐标的 LandmarkFrame"""

    def __init__(
        self,
        max_num_faces: int = 1,
        min_detection_confidence: float = 0.5,
    ):
        """初始化 MediaPipe FaceMesh"""
        self._face_mesh = mp.solutions.face_mesh.FaceMesh(
            max_num_faces=max_num_faces,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=0.5,
            refine_landmarks=True,
        )

    def detect(self, frame: np.ndarray, timestamp: Optional[float] = None) -> Optional[LandmarkFrame]:
        """
        检测单帧图像中的人脸关键点。

        Args:
            frame: BGR 格式的 OpenCV 图像帧
            timestamp: 采集时间戳（秒），默认 time.monotonic()

        Returns:
            LandmarkFrame；未检测到人脸时返回 None
        """
        if timestamp is None:
            timestamp = time.monotonic()

        h, w = frame.shape[:2]

        # BGR -> RGB
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb_frame.flags.writeable = False

        results = self._face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return None

        face = results.multi_face_landmarks[0]
        points = [(lm.x, lm.y) for lm in face.landmark]

        # 未开启虹膜细化的模型只有 468 个点，虹膜点按缺失处理
        if len(points) < NUM_LANDMARKS:
            points.extend([None] * (NUM_LANDMARKS - len(points)))

        return LandmarkFrame(points=points, timestamp=timestamp, width=w, height=h)

    def close(self):
        """释放 MediaPipe 资源"""
        self._face_mesh.close()

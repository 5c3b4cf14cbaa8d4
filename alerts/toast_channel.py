"""弹窗通知通道：有界队列，超出上限丢弃最旧的一条，显示一段时间后自动过期"""

import threading
from collections import deque
from typing import List

from models.data_models import AlertEvent


class ToastChannel:
    """保存当前可见的弹窗通知"""

    def __init__(self, limit: int = 4, duration_s: float = 7.0):
        self.limit = limit
        self.duration_s = duration_s
        self._toasts = deque()
        self._lock = threading.Lock()

    def push(self, event: AlertEvent) -> None:
        with self._lock:
            self._toasts.append(event)
            while len(self._toasts) > self.limit:
                self._toasts.popleft()

    def active(self, now: float) -> List[AlertEvent]:
        """清除过期通知后返回仍在显示的通知（旧的在前）"""
        with self._lock:
            while self._toasts and now - self._toasts[0].timestamp >= self.duration_s:
                self._toasts.popleft()
            return list(self._toasts)

    def clear(self) -> None:
        with self._lock:
            self._toasts.clear()

    def __len__(self) -> int:
        return len(self._toasts)

"""告警冷却登记表"""

from typing import Dict, Optional


class CooldownRegistry:
    """记录每个告警键最近一次触发的时间，时间戳对同一键单调不减"""

    def __init__(self):
        self._last_fired: Dict[str, float] = {}

    def ready(self, key: str, cooldown: float, now: float) -> bool:
        """未登记的键视为可触发"""
        last = self._last_fired.get(key)
        if last is None:
            return True
        return now - last >= cooldown

    def mark(self, key: str, now: float) -> None:
        last = self._last_fired.get(key)
        if last is None or now > last:
            self._last_fired[key] = now

    def last(self, key: str) -> Optional[float]:
        return self._last_fired.get(key)

    def clear(self) -> None:
        self._last_fired.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._last_fired

    def __len__(self) -> int:
        return len(self._last_fired)

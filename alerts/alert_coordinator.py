"""告警协调模块：逐帧评估阈值规则，每秒评估定时规则，按键冷却后分发到语音和弹窗通道"""

import logging
from typing import Callable, Dict, List, Optional

from alerts.cooldown import CooldownRegistry
from alerts.toast_channel import ToastChannel
from alerts.voice_channel import VoiceChannel
from models.data_models import TOAST, VOICE, AlertEvent, AlertRule, MetricsSnapshot

logger = logging.getLogger(__name__)

TOO_CLOSE_CM = 40
LOW_BLINK_RATE = 8
LOW_BLINK_MIN_SESSION_S = 60
CRITICAL_FATIGUE = 80
BREAK_SECONDS = 20

THRESHOLD_RULES = (
    AlertRule(
        key="tooClose", category="danger", cooldown=75.0,
        message="距离屏幕太近了，请后退到 50 厘米以外",
        voice_message="离屏幕太近了，请往后坐一点",
    ),
    AlertRule(
        key="lowBlink", category="warning", cooldown=90.0,
        message="眨眼次数偏低，请有意识地多眨眼",
        voice_message="你眨眼太少了，记得多眨眨眼",
    ),
    AlertRule(
        key="critFatigue", category="danger", cooldown=150.0,
        message="用眼疲劳程度过高，建议立即休息",
        voice_message="眼睛已经很疲劳了，请休息一下",
    ),
)

TIME_RULES = (
    AlertRule(
        key="break20", category="info", cooldown=60.0, interval=1200,
        message="20-20-20 法则：请注视 6 米外的物体 20 秒",
        voice_message="该休息眼睛了，请看向远处二十秒",
    ),
    AlertRule(
        key="hydrate", category="info", cooldown=60.0, interval=900,
        message="记得喝口水，保持眼睛湿润",
        channels=(TOAST,),
    ),
    AlertRule(
        key="longBreak", category="warning", cooldown=60.0, interval=3000,
        message="已连续用眼 50 分钟，请起身活动几分钟",
        channels=(TOAST,),
    ),
)

BREAK_DONE_RULE = AlertRule(
    key="breakDone", category="success", cooldown=0.0,
    message="休息结束，继续加油",
    voice_message="休息结束",
)

_CONDITIONS: Dict[str, Callable[[MetricsSnapshot], bool]] = {
    "tooClose": lambda m: m.distance_cm < TOO_CLOSE_CM,
    "lowBlink": lambda m: (
        m.session_seconds >= LOW_BLINK_MIN_SESSION_S and m.blink_rate < LOW_BLINK_RATE
    ),
    "critFatigue": lambda m: m.fatigue_score >= CRITICAL_FATIGUE,
}


class AlertCoordinator:
    """持有冷却登记表和休息倒计时，产生告警事件"""

    def __init__(self, voice: VoiceChannel, toast: ToastChannel, break_seconds: int = BREAK_SECONDS):
        self.voice = voice
        self.toast = toast
        self.break_seconds = break_seconds
        self.cooldowns = CooldownRegistry()
        self.break_countdown: Optional[int] = None

    def evaluate_frame(self, metrics: MetricsSnapshot, now: float) -> List[AlertEvent]:
        """逐帧评估阈值规则"""
        events = []
        for rule in THRESHOLD_RULES:
            if _CONDITIONS[rule.key](metrics):
                event = self._fire(rule, now)
                if event is not None:
                    events.append(event)
        return events

    def tick(self, session_seconds: int, now: float) -> List[AlertEvent]:
        """
        每秒调用一次：推进休息倒计时，再评估定时规则。

        定时规则仅在会话秒数恰好是间隔的整数倍时触发，漏掉的 tick 不会补发。
        """
        events = []

        if self.break_countdown is not None:
            self.break_countdown -= 1
            if self.break_countdown <= 0:
                self.break_countdown = None
                event = self._fire(BREAK_DONE_RULE, now)
                if event is not None:
                    events.append(event)

        if session_seconds <= 0:
            return events

        for rule in TIME_RULES:
            if session_seconds % rule.interval != 0:
                continue
            event = self._fire(rule, now)
            if event is None:
                continue
            events.append(event)
            if rule.key == "break20":
                self.break_countdown = self.break_seconds

        return events

    def _fire(self, rule: AlertRule, now: float) -> Optional[AlertEvent]:
        if not self.cooldowns.ready(rule.key, rule.cooldown, now):
            return None
        self.cooldowns.mark(rule.key, now)

        event = AlertEvent(
            category=rule.category,
            message=rule.message,
            channels=rule.channels,
            timestamp=now,
            key=rule.key,
        )
        if TOAST in rule.channels:
            self.toast.push(event)
        spoke = False
        if VOICE in rule.channels:
            spoke = self.voice.speak(rule.voice_message or rule.message, rule.key, rule.cooldown, now=now)

        logger.info("触发告警 %s [%s] 语音=%s: %s", rule.key, rule.category, spoke, rule.message)
        return event

    def reset(self) -> None:
        self.cooldowns.clear()
        self.break_countdown = None

"""监测会话：串联各检测模块与告警协调器，管理会话生命周期和每秒计时"""

import logging
import threading
import time
from collections import deque
from dataclasses import replace
from typing import Callable, List, Optional

from advice.advice_provider import AdviceScheduler, LocalAdvisor
from alerts.alert_coordinator import AlertCoordinator
from alerts.toast_channel import ToastChannel
from alerts.voice_channel import VoiceChannel
from config import DEFAULTS, merge_config
from detectors.blink_detector import LEFT_EYE_INDICES, RIGHT_EYE_INDICES, BlinkDetector
from detectors.dilation_estimator import NEUTRAL_BRIGHTNESS, NEUTRAL_DILATION, DilationEstimator
from detectors.distance_estimator import DistanceEstimator
from detectors.head_pose_analyzer import HeadPoseAnalyzer
from evaluators.fatigue_evaluator import FatigueEvaluator, FatigueState
from models.data_models import AlertEvent, CalibrationResult, LandmarkFrame, MetricsSnapshot

logger = logging.getLogger(__name__)

MAX_HISTORY = 200
MAX_LOG_ENTRIES = 200


class MonitoringPipeline:
    """单次会话的全部状态：眨眼日志、校准、平滑分数、冷却表、倒计时"""

    def __init__(self, config: dict, voice: VoiceChannel, toast: ToastChannel):
        self.blink_detector = BlinkDetector(
            ear_threshold=config["ear_threshold"],
            debounce_s=config["blink_debounce_s"],
        )
        self.distance_estimator = DistanceEstimator(
            reference_distance_cm=config["calibration_distance_cm"],
        )
        self.dilation_estimator = DilationEstimator(
            brightness_compensation=config["brightness_compensation"],
        )
        self.head_pose_analyzer = HeadPoseAnalyzer()
        self.fatigue_evaluator = FatigueEvaluator()
        self.fatigue_state = FatigueState()
        self.coordinator = AlertCoordinator(voice, toast)

        self.session_seconds = 0
        self.metrics = MetricsSnapshot(dilation=NEUTRAL_DILATION)
        self.history = deque(maxlen=MAX_HISTORY)

    def process_frame(
        self,
        landmarks: Optional[LandmarkFrame],
        brightness: float = NEUTRAL_BRIGHTNESS,
        now: Optional[float] = None,
    ) -> List[AlertEvent]:
        """
        处理一帧关键点。

        未检测到人脸时保留上一帧指标、标记为未检测，不更新任何指标也不评估阈值规则。
        """
        if landmarks is None:
            self.distance_estimator.invalidate()
            self.metrics = replace(self.metrics, face_detected=False, session_seconds=self.session_seconds)
            return []

        if now is None:
            now = landmarks.timestamp

        blink = self.blink_detector.analyze(
            landmarks.select(LEFT_EYE_INDICES), landmarks.select(RIGHT_EYE_INDICES), now,
        )
        distance = self.distance_estimator.estimate(landmarks)

        dilation = self.dilation_estimator.estimate(landmarks, brightness)
        if dilation is None:
            dilation = self.metrics.dilation
        tilt = self.head_pose_analyzer.estimate_tilt(landmarks)
        if tilt is None:
            tilt = self.metrics.tilt

        fatigue = self.fatigue_evaluator.evaluate(
            self.fatigue_state,
            blink_rate=blink.blink_rate,
            distance_cm=distance.distance_cm,
            tilt=tilt,
            dilation=dilation,
            session_seconds=self.session_seconds,
        )

        self.metrics = MetricsSnapshot(
            blink_rate=blink.blink_rate,
            ear=blink.ear,
            distance_cm=distance.distance_cm,
            dilation=dilation,
            tilt=tilt,
            brightness=brightness,
            fatigue_score=fatigue.score,
            session_seconds=self.session_seconds,
            face_detected=True,
            timestamp=now,
        )
        self.history.append(self.metrics)

        return self.coordinator.evaluate_frame(self.metrics, now)

    def tick(self, now: float) -> List[AlertEvent]:
        """会话秒数加一并评估定时规则"""
        self.session_seconds += 1
        self.metrics = replace(self.metrics, session_seconds=self.session_seconds)
        return self.coordinator.tick(self.session_seconds, now)

    def calibrate(self, ipd_pixels: Optional[float] = None) -> CalibrationResult:
        return self.distance_estimator.calibrate(ipd_pixels)


class SessionClock:
    """后台计时线程，每隔 interval 秒调用一次回调"""

    def __init__(self, callback: Callable[[], None], interval: float = 1.0):
        self._callback = callback
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self):
        self._thread.start()

    def _run(self):
        deadline = time.monotonic() + self._interval
        while not self._stop_event.wait(max(0.0, deadline - time.monotonic())):
            self._callback()
            deadline += self._interval

    def stop(self):
        self._stop_event.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join()


class MonitoringSession:
    """
    对外的会话控制入口。

    帧回调与每秒 tick 在同一把锁下互斥执行；start() 创建全新的会话状态，
    stop() 同步丢弃全部状态、取消语音并停止计时线程。
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        voice: Optional[VoiceChannel] = None,
        toast: Optional[ToastChannel] = None,
        advice_provider=None,
        clock: Callable[[], float] = time.monotonic,
        auto_tick: bool = True,
    ):
        self.config = dict(DEFAULTS) if config is None else dict(config)
        self.voice = voice if voice is not None else VoiceChannel(enabled=self.config["voice_enabled"])
        self.toast = toast if toast is not None else ToastChannel(
            limit=self.config["toast_limit"],
            duration_s=self.config["toast_duration_s"],
        )
        self.advice_provider = advice_provider
        self._clock = clock
        self._auto_tick = auto_tick

        self._lock = threading.RLock()
        self._pipeline: Optional[MonitoringPipeline] = None
        self._session_clock: Optional[SessionClock] = None
        self._advice = AdviceScheduler(advice_provider, LocalAdvisor(), self.config["advice_interval_s"])
        self._logs = []

    @property
    def running(self) -> bool:
        return self._pipeline is not None

    @property
    def pipeline(self) -> Optional[MonitoringPipeline]:
        return self._pipeline

    @property
    def advice(self) -> str:
        return self._advice.advice

    def start(self) -> bool:
        with self._lock:
            if self._pipeline is not None:
                return True
            self.voice.reset()
            self.toast.clear()
            self._pipeline = MonitoringPipeline(self.config, self.voice, self.toast)
            self._advice = AdviceScheduler(self.advice_provider, LocalAdvisor(), self.config["advice_interval_s"])
            self._add_log("info", "监测已开始")
            logger.info("监测会话开始")

            if self._auto_tick:
                self._session_clock = SessionClock(self.tick)
                self._session_clock.start()
        return True

    def stop(self) -> None:
        with self._lock:
            if self._pipeline is None:
                return
            self._pipeline = None
            self.voice.reset()
            self.toast.clear()
            self._advice.cancel()
            session_clock, self._session_clock = self._session_clock, None
            self._add_log("info", "监测已停止")
            logger.info("监测会话结束")

        # 在锁外等待计时线程退出，避免与正在执行的 tick 互等
        if session_clock is not None:
            session_clock.stop()

    def process_frame(
        self,
        landmarks: Optional[LandmarkFrame],
        brightness: float = NEUTRAL_BRIGHTNESS,
    ) -> List[AlertEvent]:
        """帧回调入口，未在监测时忽略"""
        with self._lock:
            if self._pipeline is None:
                return []
            now = landmarks.timestamp if landmarks is not None else self._clock()
            events = self._pipeline.process_frame(landmarks, brightness, now)
            self._log_events(events)
            return events

    def tick(self) -> List[AlertEvent]:
        """每秒调用一次"""
        with self._lock:
            pipeline = self._pipeline
            if pipeline is None:
                return []
            events = pipeline.tick(self._clock())
            self._log_events(events)
            if self._advice.due(pipeline.session_seconds):
                self._advice.request(pipeline.metrics, list(pipeline.history))
            return events

    def calibrate(self, ipd_pixels: Optional[float] = None) -> CalibrationResult:
        with self._lock:
            if self._pipeline is None:
                return CalibrationResult(success=False, message="请先开始监测再校准")
            result = self._pipeline.calibrate(ipd_pixels)
            self._add_log("info" if result.success else "warning", result.message)
            return result

    def set_voice_enabled(self, enabled: bool) -> None:
        self.voice.enabled = enabled
        if not enabled:
            self.voice.stop()

    def update_config(self, overrides: dict) -> None:
        """更新配置，对运行中的会话立即生效的只有阈值类参数"""
        with self._lock:
            self.config = merge_config(self.config, overrides)
            self.set_voice_enabled(bool(self.config["voice_enabled"]))
            self.toast.limit = self.config["toast_limit"]
            self.toast.duration_s = self.config["toast_duration_s"]
            if self._pipeline is not None:
                self._pipeline.blink_detector.ear_threshold = self.config["ear_threshold"]
                self._pipeline.blink_detector.debounce_s = self.config["blink_debounce_s"]
                self._pipeline.dilation_estimator.brightness_compensation = self.config["brightness_compensation"]

    def snapshot(self) -> dict:
        with self._lock:
            if self._pipeline is None:
                data = MetricsSnapshot().to_dict()
            else:
                data = self._pipeline.metrics.to_dict()
                data["calibrated"] = self._pipeline.distance_estimator.calibrated
                data["break_countdown"] = self._pipeline.coordinator.break_countdown
        data["running"] = self.running
        data["speaking"] = self.voice.busy
        data["advice"] = self.advice
        return data

    def active_toasts(self) -> List[AlertEvent]:
        return self.toast.active(self._clock())

    def _log_events(self, events: List[AlertEvent]) -> None:
        for event in events:
            self._add_log(event.category, event.message)

    def _add_log(self, level, message):
        """添加一条会话日志。level: info / warning / danger / success"""
        import datetime
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        self._logs.append(entry)
        if len(self._logs) > MAX_LOG_ENTRIES:
            self._logs = self._logs[-MAX_LOG_ENTRIES:]

    def get_logs(self, since=0):
        """获取日志，since 为起始索引。"""
        with self._lock:
            return self._logs[since:], len(self._logs)

"""用眼建议模块：远程 Gemini 接口 + 本地兜底建议，后台线程定时刷新"""

import logging
import os
import threading
from typing import Optional, Sequence

import requests

from models.data_models import MetricsSnapshot

logger = logging.getLogger(__name__)

GEMINI_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent"
)

_PROMPT_TEMPLATE = """你是一名用眼健康助手。

用户当前数据:
眨眼频率: {blink_rate} 次/分钟
屏幕距离: {distance:.0f} 厘米
瞳孔负荷: {dilation:.3f}
疲劳分数: {fatigue}%
已监测: {minutes} 分钟
历史记录: {history} 条

请用轻松友好的语气给出一两句简短、具体的护眼建议，必要时提到 20-20-20 法则。
"""

LOCAL_TIPS = (
    "每 20 分钟看向 6 米外的物体 20 秒，让睫状肌放松一下。",
    "屏幕顶部略低于视线高度，可以减少眼睛暴露面积。",
    "调低屏幕亮度，使其与环境光接近。",
    "有意识地完整眨眼，可以缓解眼干。",
    "保持一臂距离（约 50-70 厘米）观看屏幕。",
    "多喝水，身体缺水时眼睛也更容易干涩。",
)


class AdviceUnavailable(RuntimeError):
    """远程建议服务不可用"""


class GeminiAdviceProvider:
    """通过 Gemini REST 接口生成建议，未配置 API key 或请求失败时抛出 AdviceUnavailable"""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0, url: str = GEMINI_API_URL):
        self.api_key = api_key if api_key is not None else os.environ.get("GEMINI_API_KEY")
        self.timeout = timeout
        self.url = url

    def get_advice(self, snapshot: MetricsSnapshot, history: Sequence[MetricsSnapshot] = ()) -> str:
        if not self.api_key:
            raise AdviceUnavailable("未配置 GEMINI_API_KEY")

        prompt = _PROMPT_TEMPLATE.format(
            blink_rate=snapshot.blink_rate,
            distance=snapshot.distance_cm,
            dilation=snapshot.dilation,
            fatigue=snapshot.fatigue_score,
            minutes=snapshot.session_seconds // 60,
            history=len(history),
        )

        try:
            response = requests.post(
                self.url,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise AdviceUnavailable(f"Gemini 请求失败: {e}") from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise AdviceUnavailable("Gemini 返回内容为空") from e

        text = str(text).strip()
        if not text:
            raise AdviceUnavailable("Gemini 返回内容为空")
        return text


class LocalAdvisor:
    """本地兜底建议：先看当前指标，没有明显问题时轮换通用提示"""

    def __init__(self, tips: Sequence[str] = LOCAL_TIPS):
        self.tips = tuple(tips)
        self._index = 0

    def get_advice(self, snapshot: MetricsSnapshot, history: Sequence[MetricsSnapshot] = ()) -> str:
        if snapshot.fatigue_score >= 70:
            return "疲劳分数偏高，建议闭眼休息几分钟，或起身走动一下。"
        if snapshot.face_detected and snapshot.distance_cm < 40:
            return "你离屏幕太近了，往后坐一些，保持 50 厘米以上的距离。"
        if 0 < snapshot.blink_rate < 8:
            return "眨眼次数偏少，试着连续慢慢眨眼十次，让泪膜重新铺满眼球。"

        tip = self.tips[self._index % len(self.tips)]
        self._index += 1
        return tip


class AdviceScheduler:
    """按固定间隔在后台线程请求建议，结果就绪后替换当前建议；远程失败时使用本地建议"""

    INITIAL_ADVICE = "正在初始化用眼建议..."

    def __init__(self, provider=None, fallback: Optional[LocalAdvisor] = None, interval_s: int = 12):
        self.provider = provider
        self.fallback = fallback or LocalAdvisor()
        self.interval_s = interval_s
        self._advice = self.INITIAL_ADVICE
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._generation = 0

    @property
    def advice(self) -> str:
        with self._lock:
            return self._advice

    def due(self, session_seconds: int) -> bool:
        if self.interval_s <= 0:
            return False
        return session_seconds > 0 and session_seconds % self.interval_s == 0

    def request(self, snapshot: MetricsSnapshot, history: Sequence[MetricsSnapshot] = ()) -> bool:
        """启动一次后台请求；上一次请求尚未返回时跳过"""
        if self._thread is not None and self._thread.is_alive():
            return False
        with self._lock:
            generation = self._generation
        self._thread = threading.Thread(
            target=self._run, args=(snapshot, list(history), generation), daemon=True,
        )
        self._thread.start()
        return True

    def _run(self, snapshot, history, generation):
        advice = None
        if self.provider is not None:
            try:
                advice = self.provider.get_advice(snapshot, history)
            except AdviceUnavailable as e:
                logger.warning("远程建议不可用，使用本地建议: %s", e)
            except Exception as e:
                logger.warning("建议服务异常，使用本地建议: %s", e)
        if not advice:
            advice = self.fallback.get_advice(snapshot, history)

        with self._lock:
            if generation == self._generation:
                self._advice = advice

    def wait(self, timeout: Optional[float] = None) -> None:
        """等待进行中的请求结束"""
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        """丢弃进行中请求的结果并恢复初始建议"""
        with self._lock:
            self._generation += 1
            self._advice = self.INITIAL_ADVICE

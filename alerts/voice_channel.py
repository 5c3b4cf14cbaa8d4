"""语音提醒通道

VoiceChannel 负责按键冷却和忙碌策略，真正的语音合成交给注入的引擎。
忙碌策略为“忙则跳过”：上一句还没播完时，新的语音请求直接放弃。
"""

import asyncio
import io
import logging
import threading
import time
from typing import Callable, Optional

import edge_tts
import pygame

from alerts.cooldown import CooldownRegistry

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "zh-CN-XiaoxiaoNeural"


class VoiceUnavailable(RuntimeError):
    """语音引擎不可用（依赖缺失、无音频设备、合成失败）"""


class EdgeSpeechEngine:
    """使用 edge-tts 合成语音、pygame 播放，每句话在独立的后台线程中执行"""

    def __init__(self, voice: str = DEFAULT_VOICE):
        self.voice = voice
        self._cancel: Optional[threading.Event] = None
        self._mixer_ready = False

    def _ensure_mixer(self):
        if self._mixer_ready:
            return
        try:
            pygame.mixer.init()
        except pygame.error as e:
            raise VoiceUnavailable(f"音频设备初始化失败: {e}") from e
        self._mixer_ready = True

    def say(self, text: str, on_done: Callable[[], None]) -> None:
        """立即返回，播放结束（或失败、被取消）后调用 on_done"""
        self._ensure_mixer()
        # 每句话一个取消标志，stop() 只作用于当时正在进行的那一句
        cancel = threading.Event()
        self._cancel = cancel
        threading.Thread(target=self._run, args=(text, on_done, cancel), daemon=True).start()

    def _run(self, text, on_done, cancel):
        try:
            audio = asyncio.run(self._synthesize(text))
            if audio and not cancel.is_set():
                self._play(audio, cancel)
        except Exception as e:
            logger.warning("语音播放失败: %s", e)
        finally:
            on_done()

    async def _synthesize(self, text: str) -> bytes:
        communicate = edge_tts.Communicate(text=text, voice=self.voice)
        chunks = []
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                chunks.append(chunk["data"])
        return b"".join(chunks)

    def _play(self, audio: bytes, cancel: threading.Event) -> None:
        pygame.mixer.music.load(io.BytesIO(audio), "mp3")
        pygame.mixer.music.play()
        while pygame.mixer.music.get_busy() and not cancel.is_set():
            pygame.time.wait(50)
        # 被取消时 stop() 已停止播放，此时播放器可能已属于下一句
        if not cancel.is_set():
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()

    def stop(self) -> None:
        if self._cancel is not None:
            self._cancel.set()
        if self._mixer_ready:
            pygame.mixer.music.stop()


class VoiceChannel:
    """带独立冷却和忙碌状态的语音通道，引擎缺失或故障时退化为空操作"""

    def __init__(self, engine=None, enabled: bool = True, clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.enabled = enabled
        self.cooldowns = CooldownRegistry()
        self.busy = False
        self._clock = clock
        self._lock = threading.Lock()
        self._utterance = 0

    @property
    def available(self) -> bool:
        return self.engine is not None

    def speak(self, text: str, key: str, cooldown: float, now: Optional[float] = None) -> bool:
        """
        尝试播报一句话。

        Args:
            text: 播报内容
            key: 冷却键
            cooldown: 该键的冷却时间（秒）
            now: 当前时间，默认取注入的时钟

        Returns:
            是否真正开始播报
        """
        if not self.enabled or self.engine is None:
            return False
        if now is None:
            now = self._clock()

        with self._lock:
            if self.busy:
                logger.debug("语音通道忙，跳过: %s", key)
                return False
            if not self.cooldowns.ready(key, cooldown, now):
                return False
            self.busy = True
            self._utterance += 1
            token = self._utterance

        try:
            self.engine.say(text, lambda: self._finished(token))
        except VoiceUnavailable as e:
            logger.warning("语音通道不可用，后续语音提醒将被忽略: %s", e)
            self.engine = None
            with self._lock:
                self.busy = False
            return False

        self.cooldowns.mark(key, now)
        return True

    def _finished(self, token: int) -> None:
        with self._lock:
            if token == self._utterance:
                self.busy = False

    def stop(self) -> None:
        """取消正在播放的语音"""
        with self._lock:
            self._utterance += 1
            self.busy = False
        if self.engine is not None:
            self.engine.stop()

    def reset(self) -> None:
        self.stop()
        self.cooldowns.clear()

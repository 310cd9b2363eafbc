"""警报输出设备：声音播放与震动"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import pygame

from models.data_models import VibrationPattern

logger = logging.getLogger(__name__)


class AlertSinkError(Exception):
    """警报设备无法执行动作（设备缺失、资源不可用等）"""


class AlertSink(ABC):
    """协调器独占使用的警报输出设备。所有失败都以 AlertSinkError 报告。"""

    @abstractmethod
    def play_sound(self, path: str, looping: bool) -> None:
        """播放指定音频文件。"""

    @abstractmethod
    def stop_sound(self) -> None:
        """停止正在播放的声音，未播放时无操作。"""

    @abstractmethod
    def vibrate(self, pattern: VibrationPattern) -> None:
        """按波形震动。"""

    @abstractmethod
    def cancel_vibration(self) -> None:
        """取消震动，未震动时无操作。"""

    @abstractmethod
    def release(self) -> None:
        """释放设备资源。"""


class PygameAlertSink(AlertSink):
    """
    基于 pygame.mixer 播放警报声音；震动委托给可选的震动设备对象。

    震动设备需提供 vibrate(pattern) 和 cancel() 两个方法，
    未提供时 vibrate() 抛出 AlertSinkError。
    """

    def __init__(self, vibrator=None):
        self._vibrator = vibrator
        self._mixer_ready = False
        self._channel = None
        self._current_path: Optional[str] = None
        self._sounds = {}

    @property
    def has_vibrator(self) -> bool:
        return self._vibrator is not None

    def _ensure_mixer(self) -> None:
        """延迟初始化 mixer，无音频设备时抛出 AlertSinkError。"""
        if self._mixer_ready:
            return
        try:
            pygame.mixer.init()
        except pygame.error as e:
            raise AlertSinkError(f"音频设备不可用: {e}") from e
        self._mixer_ready = True

    def _load(self, path: str):
        sound = self._sounds.get(path)
        if sound is not None:
            return sound
        if not os.path.exists(path):
            raise AlertSinkError(f"音频文件不存在: {path}")
        try:
            sound = pygame.mixer.Sound(path)
        except pygame.error as e:
            raise AlertSinkError(f"无法加载音频文件 {path}: {e}") from e
        self._sounds[path] = sound
        return sound

    def play_sound(self, path: str, looping: bool) -> None:
        self._ensure_mixer()

        # 同一循环声音仍在播放时不重新开始
        if (
            looping
            and self._channel is not None
            and self._current_path == path
            and self._channel.get_busy()
        ):
            return

        sound = self._load(path)
        self.stop_sound()
        sound.set_volume(1.0)
        channel = sound.play(loops=-1 if looping else 0)
        if channel is None:
            raise AlertSinkError("没有可用的音频通道")
        self._channel = channel
        self._current_path = path
        logger.info("警报声音开始播放: %s", path)

    def stop_sound(self) -> None:
        if self._channel is not None:
            self._channel.stop()
            self._channel = None
            self._current_path = None

    def vibrate(self, pattern: VibrationPattern) -> None:
        if self._vibrator is None:
            raise AlertSinkError("没有可用的震动设备")
        try:
            self._vibrator.vibrate(pattern)
        except Exception as e:
            raise AlertSinkError(f"震动失败: {e}") from e

    def cancel_vibration(self) -> None:
        if self._vibrator is None:
            return
        try:
            self._vibrator.cancel()
        except Exception as e:
            raise AlertSinkError(f"取消震动失败: {e}") from e

    def release(self) -> None:
        self.stop_sound()
        self._sounds.clear()
        if self._mixer_ready:
            pygame.mixer.quit()
            self._mixer_ready = False

"""警报协调模块：将警报等级序列转换为限频、去抖动的警报动作"""

import logging
import threading
from dataclasses import replace
from typing import Optional, Set

from alerts.sinks import AlertSink, AlertSinkError
from alerts.sound_registry import SoundRegistry
from models.data_models import (
    CRITICAL_PATTERN,
    WARNING_PULSE,
    AlertAction,
    AlertLevel,
    AlertSession,
)

logger = logging.getLogger(__name__)


class AlertCoordinator:
    """
    维护 AlertSession，按状态表向警报设备下发动作。

    - NORMAL: 正在报警时停止报警，并清零报警次数
    - WARNING: 未在报警且距上次报警超过最小间隔时，短震一次
    - CRITICAL: 不受限频约束，循环播放警报声并持续强震

    所有状态读写和设备访问都在同一把锁内完成。
    """

    def __init__(
        self,
        sink: AlertSink,
        sound_registry: Optional[SoundRegistry] = None,
        alert_sound: Optional[str] = None,
        min_warning_alert_interval_ms: int = 1000,
    ):
        self._sink = sink
        self._registry = sound_registry if sound_registry is not None else SoundRegistry()
        self.min_warning_alert_interval_ms = min_warning_alert_interval_ms
        self._session = AlertSession()
        self._lock = threading.Lock()
        self._closed = False

        if alert_sound is not None:
            self._registry.get(alert_sound)
        elif len(self._registry) > 0:
            alert_sound = self._registry.names()[0]
        self._alert_sound = alert_sound

    @property
    def session(self) -> AlertSession:
        """当前会话状态的副本"""
        with self._lock:
            return replace(self._session)

    @property
    def alert_sound(self) -> Optional[str]:
        return self._alert_sound

    @property
    def is_closed(self) -> bool:
        return self._closed

    def set_alert_sound(self, sound_id: str) -> None:
        """
        切换 CRITICAL 警报使用的声音。

        Raises:
            KeyError: 声音未在注册表中
        """
        self._registry.get(sound_id)
        with self._lock:
            self._alert_sound = sound_id
        logger.info("警报声音已切换: %s", sound_id)

    def handle_alert(self, level: AlertLevel, now: int) -> Set[AlertAction]:
        """
        处理一个警报等级，返回实际下发的动作集合。

        Args:
            level: 当前帧的警报等级
            now: 调用方提供的单调时间（毫秒）

        Returns:
            AlertAction 集合；无需动作时为 {AlertAction.NO_OP}
        """
        with self._lock:
            if self._closed:
                return {AlertAction.NO_OP}

            if level is AlertLevel.NORMAL:
                return self._handle_normal(now)
            if level is AlertLevel.WARNING:
                return self._handle_warning(now)
            return self._handle_critical(now)

    def _handle_normal(self, now: int) -> Set[AlertAction]:
        session = self._session
        session.alert_count = 0
        if session.current_level is not AlertLevel.NORMAL or session.is_alerting:
            # 等级切换同样刷新限频时间，恢复后短时间内的 WARNING 被抑制
            session.last_alert_time_millis = now
        session.current_level = AlertLevel.NORMAL
        if not session.is_alerting:
            return {AlertAction.NO_OP}

        logger.debug("恢复正常，停止报警")
        try:
            self._stop_outputs()
        finally:
            session.is_alerting = False
        return {AlertAction.STOP_ALERT}

    def _handle_warning(self, now: int) -> Set[AlertAction]:
        session = self._session
        if session.is_alerting or not self._interval_elapsed(now):
            return {AlertAction.NO_OP}

        logger.debug("触发 WARNING 警报 (第 %d 次)", session.alert_count + 1)
        action = AlertAction.NO_OP
        try:
            if self._call_sink("WARNING 震动失败，跳过本次提醒", self._sink.vibrate, WARNING_PULSE):
                action = AlertAction.START_WARNING_VIBRATION
        finally:
            self._mark_alerting(AlertLevel.WARNING, now)
        return {action}

    def _handle_critical(self, now: int) -> Set[AlertAction]:
        logger.debug("触发 CRITICAL 警报 (第 %d 次)", self._session.alert_count + 1)

        action = AlertAction.NO_OP
        try:
            sound_ok = self._start_sound()
            vibration_ok = self._call_sink("CRITICAL 震动失败", self._sink.vibrate, CRITICAL_PATTERN)
            if sound_ok:
                action = AlertAction.START_CRITICAL_ALARM
            elif vibration_ok:
                action = AlertAction.START_CRITICAL_VIBRATION
            else:
                logger.error("警报设备完全不可用，CRITICAL 警报无法输出")
        finally:
            # 声音可能已经开始循环，必须记为报警中以便后续 NORMAL 停止
            self._mark_alerting(AlertLevel.CRITICAL, now)
        return {action}

    def _start_sound(self) -> bool:
        if self._alert_sound is None:
            logger.warning("未配置警报声音，降级为仅震动")
            return False
        return self._call_sink(
            "警报声音播放失败，降级为仅震动",
            self._sink.play_sound,
            self._registry.get(self._alert_sound),
            looping=True,
        )

    @staticmethod
    def _call_sink(failure_message, func, *args, **kwargs) -> bool:
        """调用警报设备，失败只记录日志并返回 False。"""
        try:
            func(*args, **kwargs)
        except AlertSinkError as e:
            logger.warning("%s: %s", failure_message, e)
            return False
        except Exception:
            logger.exception("%s: 警报设备异常", failure_message)
            return False
        return True

    def _interval_elapsed(self, now: int) -> bool:
        last = self._session.last_alert_time_millis
        return last is None or now - last > self.min_warning_alert_interval_ms

    def _mark_alerting(self, level: AlertLevel, now: int) -> None:
        session = self._session
        session.current_level = level
        session.is_alerting = True
        session.alert_count += 1
        session.last_alert_time_millis = now

    def _stop_outputs(self) -> None:
        """停止声音并取消震动，两者互不影响。"""
        self._call_sink("停止警报声音失败", self._sink.stop_sound)
        self._call_sink("取消震动失败", self._sink.cancel_vibration)

    def shutdown(self) -> None:
        """停止所有输出并释放警报设备，重复调用无副作用。"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                try:
                    self._sink.stop_sound()
                finally:
                    self._sink.cancel_vibration()
            except AlertSinkError as e:
                logger.warning("关闭时停止警报输出失败: %s", e)
            finally:
                self._session = AlertSession()
                try:
                    self._sink.release()
                except AlertSinkError as e:
                    logger.warning("释放警报设备失败: %s", e)
        logger.info("警报协调器已关闭")

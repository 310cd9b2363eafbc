"""困倦判断模块：将逐帧睁眼程度转换为去抖动后的警报等级"""

import logging
import math
from dataclasses import replace
from typing import Optional

from models.data_models import AlertLevel, DrowsinessState, EyeObservation

logger = logging.getLogger(__name__)

# 无有效测量值时使用的"基本睁眼"默认值
FALLBACK_OPENNESS = 0.3

_LOG_EVERY_FACE_FRAMES = 15
_LOG_EVERY_NO_FACE_FRAMES = 30


def clamp_openness(value: float) -> float:
    """将睁眼程度限制在 [0, 1]，NaN 视为默认睁眼值。"""
    if math.isnan(value):
        return FALLBACK_OPENNESS
    return min(1.0, max(0.0, value))


class DrowsinessEvaluator:
    """维护连续闭眼帧计数器，按阶梯函数输出 NORMAL / WARNING / CRITICAL"""

    def __init__(
        self,
        eye_closed_threshold: float = 0.25,
        warning_frame_count: int = 2,
        critical_frame_count: int = 5,
        open_frame_decay: Optional[int] = None,
    ):
        """
        Args:
            eye_closed_threshold: 睁眼程度低于该值即视为闭眼
            warning_frame_count: 连续闭眼达到该帧数进入 WARNING
            critical_frame_count: 连续闭眼达到该帧数进入 CRITICAL
            open_frame_decay: 为 None 时睁眼一帧即清零计数器；
                              否则每个睁眼帧将计数器减去该值（不低于 0）

        Raises:
            ValueError: 参数取值无效
        """
        if not 0.0 <= eye_closed_threshold <= 1.0:
            raise ValueError(f"闭眼阈值必须在 [0, 1] 范围内: {eye_closed_threshold}")
        if warning_frame_count < 1 or critical_frame_count < 1:
            raise ValueError("帧数阈值必须为正整数")
        if warning_frame_count > critical_frame_count:
            raise ValueError(
                f"WARNING 帧数 ({warning_frame_count}) 不能大于 CRITICAL 帧数 ({critical_frame_count})"
            )
        if open_frame_decay is not None and open_frame_decay < 1:
            raise ValueError(f"衰减步长必须为正整数: {open_frame_decay}")

        self.eye_closed_threshold = eye_closed_threshold
        self.warning_frame_count = warning_frame_count
        self.critical_frame_count = critical_frame_count
        self.open_frame_decay = open_frame_decay
        self._frame_counter = 0
        self._face_frames = 0
        self._no_face_frames = 0
        self._state = DrowsinessState()

    @property
    def state(self) -> DrowsinessState:
        """最近一次评估产生的状态快照"""
        return self._state

    def alert_level_for(self, closed_frames: int) -> AlertLevel:
        """连续闭眼帧数到警报等级的单调阶梯函数。"""
        if closed_frames >= self.critical_frame_count:
            return AlertLevel.CRITICAL
        if closed_frames >= self.warning_frame_count:
            return AlertLevel.WARNING
        return AlertLevel.NORMAL

    def evaluate(self, observation: EyeObservation) -> DrowsinessState:
        """
        处理一帧观测值，返回新的状态快照。

        Args:
            observation: 当前帧的人脸/睁眼观测

        Returns:
            DrowsinessState，不会抛出异常
        """
        if not observation.face_detected:
            return self._handle_no_face(observation.timestamp_millis)

        openness = clamp_openness(observation.eye_openness)
        is_closed = openness < self.eye_closed_threshold

        if is_closed:
            self._frame_counter += 1
        elif self.open_frame_decay is None:
            self._frame_counter = 0
        else:
            self._frame_counter = max(0, self._frame_counter - self.open_frame_decay)

        alert_level = self.alert_level_for(self._frame_counter)

        self._state = replace(
            self._state,
            face_detected=True,
            eye_openness=openness,
            consecutive_closed_frames=self._frame_counter,
            alert_level=alert_level,
            timestamp_millis=observation.timestamp_millis,
            eyes_closed=is_closed,
        )

        self._face_frames += 1
        if self._face_frames % _LOG_EVERY_FACE_FRAMES == 0:
            logger.debug(
                "睁眼程度: %.3f | 闭眼: %d/%d | 等级: %s",
                openness,
                self._frame_counter,
                self.critical_frame_count,
                alert_level.name,
            )

        return self._state

    def _handle_no_face(self, timestamp_millis: int) -> DrowsinessState:
        """未检测到人脸：计数器清零，等级恢复 NORMAL。"""
        self._frame_counter = 0
        self._state = replace(
            self._state,
            face_detected=False,
            eye_openness=0.0,
            consecutive_closed_frames=0,
            alert_level=AlertLevel.NORMAL,
            timestamp_millis=timestamp_millis,
            eyes_closed=False,
        )

        self._no_face_frames += 1
        if self._no_face_frames % _LOG_EVERY_NO_FACE_FRAMES == 0:
            logger.debug("未检测到人脸")

        return self._state

    def reset(self):
        """重置帧计数器"""
        self._frame_counter = 0
        self._state = DrowsinessState()

"""核心数据模型定义"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


class AlertLevel(Enum):
    """警报等级，按严重程度递增"""
    NORMAL = 0
    WARNING = 1
    CRITICAL = 2


class AlertAction(Enum):
    """协调器向警报设备下发的离散动作"""
    START_WARNING_VIBRATION = "start_warning_vibration"
    START_CRITICAL_ALARM = "start_critical_alarm"
    # 声音无法播放时的降级动作：仅震动
    START_CRITICAL_VIBRATION = "start_critical_vibration"
    STOP_ALERT = "stop_alert"
    NO_OP = "no_op"


@dataclass
class FaceLandmarks:
    """人脸关键点检测结果"""
    left_eye: List[Tuple[float, float]]
    right_eye: List[Tuple[float, float]]
    all_landmarks: List[Tuple[float, float]]


@dataclass(frozen=True)
class EyeObservation:
    """单帧眼睛观测值，由人脸分析器产生"""
    face_detected: bool
    eye_openness: float
    timestamp_millis: int


@dataclass(frozen=True)
class DrowsinessState:
    """
    困倦状态快照。

    每帧生成一个新的不可变对象，可安全地在评估线程和其他消费者之间共享。
    """
    face_detected: bool = False
    eye_openness: float = 0.3
    consecutive_closed_frames: int = 0
    alert_level: AlertLevel = AlertLevel.NORMAL
    timestamp_millis: int = 0
    eyes_closed: bool = False

    @property
    def is_drowsy(self) -> bool:
        return self.alert_level is not AlertLevel.NORMAL


@dataclass
class AlertSession:
    """警报会话状态，仅由 AlertCoordinator 修改"""
    current_level: AlertLevel = AlertLevel.NORMAL
    is_alerting: bool = False
    last_alert_time_millis: Optional[int] = None
    alert_count: int = 0


# 振幅取值范围 1-255，-1 表示设备默认振幅
DEFAULT_AMPLITUDE = -1


@dataclass(frozen=True)
class VibrationPattern:
    """震动波形：各段时长（毫秒）、对应振幅、循环起点（-1 表示只播放一次）"""
    timings_ms: Tuple[int, ...]
    amplitudes: Tuple[int, ...]
    repeat: int = -1

    @property
    def is_repeating(self) -> bool:
        return self.repeat >= 0


WARNING_PULSE = VibrationPattern(timings_ms=(300,), amplitudes=(DEFAULT_AMPLITUDE,))

CRITICAL_PATTERN = VibrationPattern(
    timings_ms=(0, 500, 200, 500, 200, 500),
    amplitudes=(0, 255, 0, 255, 0, 255),
    repeat=0,
)

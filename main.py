"""驾驶员困倦监测系统入口文件"""

import argparse
import json
import logging
import os
import sys
import threading
import time

import cv2

from alerts.alert_coordinator import AlertCoordinator
from alerts.alert_worker import AlertWorker
from alerts.dispatcher import StateDispatcher
from alerts.sinks import PygameAlertSink
from alerts.sound_registry import SoundRegistry
from detectors.eye_analyzer import EyeOpennessEstimator
from evaluators.drowsiness_evaluator import DrowsinessEvaluator
from models.data_models import AlertLevel

logger = logging.getLogger(__name__)

_SOUNDS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "sounds")

# 默认配置
# TODO: 闭眼阈值 0.25 / 5 帧待产品确认，历史版本中也用过 0.15 / 8 帧
_DEFAULTS = {
    "eye_closed_threshold": 0.25,
    "warning_frame_count": 2,
    "critical_frame_count": 5,
    "min_warning_alert_interval_ms": 1000,
    "open_frame_decay": None,
    "frame_skip": 3,
    "alert_sound": "alert_sound",
    "sounds": {"alert_sound": os.path.join(_SOUNDS_DIR, "alert_sound.wav")},
}

_WINDOW_NAME = "驾驶员困倦监测"


def _monotonic_millis() -> int:
    return int(time.monotonic() * 1000)


class DrowsinessMonitor:
    """
    串联 人脸检测 -> 睁眼程度估计 -> 困倦判断 -> 状态分发 -> 警报线程。

    评估在调用 process_frame 的线程中完成，警报动作只在警报线程中执行。
    """

    def __init__(
        self,
        config_path=None,
        face_detector=None,
        sink=None,
        clock=None,
        on_alert_actions=None,
    ):
        self.config = self._load_config(config_path)
        self._clock = clock if clock is not None else _monotonic_millis
        self._on_alert_actions = on_alert_actions
        self._cap = None
        self._window_open = False
        self._frame_index = 0
        self._test_timer = None
        self._stopped = False
        self._lock = threading.Lock()

        config = self.config
        self.frame_skip = max(1, int(config["frame_skip"]))

        if face_detector is None:
            from detectors.face_detector import FaceDetector
            face_detector = FaceDetector()
        self.face_detector = face_detector
        self.eye_estimator = EyeOpennessEstimator()
        self.evaluator = DrowsinessEvaluator(
            eye_closed_threshold=config["eye_closed_threshold"],
            warning_frame_count=config["warning_frame_count"],
            critical_frame_count=config["critical_frame_count"],
            open_frame_decay=config["open_frame_decay"],
        )

        self.sound_registry = SoundRegistry.from_mapping(config["sounds"])
        alert_sound = config["alert_sound"]
        if alert_sound not in self.sound_registry:
            print(f"警告: 警报声音未注册 {alert_sound}，使用默认声音")
            alert_sound = None

        self.coordinator = AlertCoordinator(
            sink if sink is not None else PygameAlertSink(),
            sound_registry=self.sound_registry,
            alert_sound=alert_sound,
            min_warning_alert_interval_ms=config["min_warning_alert_interval_ms"],
        )
        self.alert_worker = AlertWorker(self.coordinator, on_actions=self._handle_actions)
        self.dispatcher = StateDispatcher()
        self.dispatcher.subscribe(self._forward_alert_level)
        self.alert_worker.start()

    @staticmethod
    def _load_config(config_path):
        """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
        config = dict(_DEFAULTS)

        if config_path is None:
            return config

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            print(f"警告: 配置文件不存在 {config_path}，使用默认配置")
            return config
        except json.JSONDecodeError:
            print(f"警告: 配置文件格式错误 {config_path}，使用默认配置")
            return config

        for key in _DEFAULTS:
            if key in data and data[key] is not None:
                config[key] = data[key]

        return config

    @property
    def latest_state(self):
        return self.evaluator.state

    def _forward_alert_level(self, state):
        self.alert_worker.submit(state.alert_level, state.timestamp_millis)

    def _handle_actions(self, level, actions):
        logger.info(
            "警报等级 %s -> %s",
            level.name,
            ", ".join(sorted(a.value for a in actions)),
        )
        if self._on_alert_actions is not None:
            self._on_alert_actions(level, actions)

    def process_frame(self, frame):
        """
        处理一帧图像。

        Returns:
            新的 DrowsinessState；被跳过的帧返回 None
        """
        self._frame_index += 1
        if self._frame_index % self.frame_skip != 0:
            return None

        timestamp = self._clock()
        landmarks = self.face_detector.detect(frame)
        observation = self.eye_estimator.observe(landmarks, timestamp)
        with self._lock:
            state = self.evaluator.evaluate(observation)
        self.dispatcher.dispatch(state)
        return state

    def update_config(self, config):
        """
        动态更新判断阈值，未给出的字段保持不变。
        新阈值生效时闭眼计数清零。

        Raises:
            ValueError: 新阈值组合无效，此时保留原配置
        """
        evaluator = self.evaluator
        new_evaluator = DrowsinessEvaluator(
            eye_closed_threshold=config.get("eye_closed_threshold", evaluator.eye_closed_threshold),
            warning_frame_count=config.get("warning_frame_count", evaluator.warning_frame_count),
            critical_frame_count=config.get("critical_frame_count", evaluator.critical_frame_count),
            open_frame_decay=config.get("open_frame_decay", evaluator.open_frame_decay),
        )
        with self._lock:
            self.evaluator = new_evaluator
        self.coordinator.min_warning_alert_interval_ms = config.get(
            "min_warning_alert_interval_ms", self.coordinator.min_warning_alert_interval_ms
        )
        if config.get("frame_skip") is not None:
            self.frame_skip = max(1, int(config["frame_skip"]))

    def reset(self):
        """清零闭眼计数并停止正在进行的警报。"""
        with self._lock:
            self.evaluator.reset()
        self.alert_worker.submit(AlertLevel.NORMAL, self._clock())

    def test_alert(self, duration_s=3.0):
        """触发一次 CRITICAL 警报，duration_s 秒后自动恢复 NORMAL。"""
        logger.info("测试警报系统")
        self.alert_worker.submit(AlertLevel.CRITICAL, self._clock())

        if self._test_timer is not None:
            self._test_timer.cancel()
        self._test_timer = threading.Timer(
            duration_s,
            lambda: self.alert_worker.submit(AlertLevel.NORMAL, self._clock()),
        )
        self._test_timer.daemon = True
        self._test_timer.start()

    def run(self, camera_index=0):
        """启动摄像头主循环，按 q 退出。"""
        self._cap = cv2.VideoCapture(camera_index)

        if not self._cap.isOpened():
            print("无法打开摄像头")
            self.stop()
            sys.exit(1)

        try:
            self._main_loop()
        finally:
            self.stop()

    def _main_loop(self):
        self._window_open = True
        while True:
            ret, frame = self._cap.read()
            if not ret:
                continue

            self.process_frame(frame)
            cv2.imshow(_WINDOW_NAME, frame)

            if cv2.waitKey(1) & 0xFF == ord("q"):
                break

    def stop(self):
        """释放摄像头、停止警报（释放警报设备）、关闭人脸检测器。"""
        if self._stopped:
            return
        self._stopped = True

        if self._test_timer is not None:
            self._test_timer.cancel()
        try:
            if self._cap is not None and self._cap.isOpened():
                self._cap.release()
            if self._window_open:
                cv2.destroyAllWindows()
                self._window_open = False
        finally:
            try:
                self.alert_worker.stop()
            finally:
                self.face_detector.close()


def main():
    parser = argparse.ArgumentParser(description="驾驶员困倦监测系统")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 配置文件路径",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="摄像头编号",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    monitor = DrowsinessMonitor(config_path=args.config)
    monitor.run(camera_index=args.camera)


if __name__ == "__main__":
    main()

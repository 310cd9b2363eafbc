"""单消费者警报线程：保证 AlertCoordinator.handle_alert 只在一个线程中被调用"""

import logging
import queue
import threading
from typing import Callable, Optional, Set

from alerts.alert_coordinator import AlertCoordinator
from models.data_models import AlertAction, AlertLevel

logger = logging.getLogger(__name__)

ActionsCallback = Callable[[AlertLevel, Set[AlertAction]], None]

_STOP = object()


class AlertWorker:
    """从队列中依次取出 (等级, 时间戳) 交给协调器处理。"""

    def __init__(self, coordinator: AlertCoordinator, on_actions: Optional[ActionsCallback] = None):
        self.coordinator = coordinator
        self._on_actions = on_actions
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        if self._stopped:
            raise RuntimeError("AlertWorker 已停止，无法重新启动")
        self._thread = threading.Thread(target=self._run, name="alert-worker", daemon=True)
        self._thread.start()

    def submit(self, level: AlertLevel, timestamp_millis: int) -> None:
        """投递一个警报等级，停止后投递的等级会被忽略。"""
        if self._stopped:
            return
        self._queue.put((level, timestamp_millis))

    def drain(self) -> None:
        """阻塞直到已投递的等级全部处理完。"""
        self._queue.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                level, timestamp = item
                actions = self.coordinator.handle_alert(level, timestamp)
                if self._on_actions is not None and actions != {AlertAction.NO_OP}:
                    self._on_actions(level, actions)
            except Exception:
                logger.exception("处理警报等级失败: %r", item)
            finally:
                self._queue.task_done()

    def stop(self, timeout: float = 2.0) -> None:
        """停止线程并关闭协调器（释放警报设备）。"""
        if self._stopped:
            return
        self._stopped = True
        try:
            if self._thread is not None:
                self._queue.put(_STOP)
                self._thread.join(timeout)
                if self._thread.is_alive():
                    logger.warning("警报线程未在 %.1f 秒内退出", timeout)
        finally:
            self.coordinator.shutdown()

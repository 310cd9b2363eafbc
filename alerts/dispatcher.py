"""状态分发：把评估结果转发给已注册的监听者"""

import logging
import threading
from typing import Callable, List

from models.data_models import DrowsinessState

logger = logging.getLogger(__name__)

StateListener = Callable[[DrowsinessState], None]


class StateDispatcher:
    """评估器只返回数据，由分发器负责通知 UI、警报等下游。"""

    def __init__(self):
        self._listeners: List[StateListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: StateListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def dispatch(self, state: DrowsinessState) -> None:
        """按注册顺序通知监听者；单个监听者出错不影响其余监听者。"""
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("状态监听者处理失败: %r", listener)

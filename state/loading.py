"""
加载状态注册表

各个界面区域以独立的 id 声明自己的加载状态，
全局加载标志 = 任一区域正在加载 或 正处于路由切换中。
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from state.navigation import NavigationTracker

logger = logging.getLogger(__name__)


@dataclass
class LoadingState:
    id: str
    is_loading: bool = True
    message: Optional[str] = None

    def to_dict(self):
        return {'id': self.id, 'isLoading': self.is_loading, 'message': self.message}


class LoadingRegistry:
    def __init__(self, tracker: Optional[NavigationTracker] = None):
        self._lock = threading.RLock()
        self._states: Dict[str, LoadingState] = {}
        self._tracker = tracker
        self._listeners: List[Callable[[bool], None]] = []
        self._global_loading = False
        self._unsubscribe_tracker = tracker.subscribe(lambda _: self._recompute()) if tracker else None

    def register(self, state_id: str, message: Optional[str] = None):
        with self._lock:
            existing = self._states.get(state_id)
            if existing:
                existing.is_loading = True
                if message:
                    existing.message = message
            else:
                self._states[state_id] = LoadingState(state_id, True, message)
        self._recompute()

    def unregister(self, state_id: str):
        with self._lock:
            self._states.pop(state_id, None)
        self._recompute()

    def set_message(self, state_id: str, message: str):
        with self._lock:
            existing = self._states.get(state_id)
            if existing:
                existing.message = message

    def states(self) -> List[LoadingState]:
        with self._lock:
            return [LoadingState(s.id, s.is_loading, s.message) for s in self._states.values()]

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return any(s.is_loading for s in self._states.values())

    @property
    def global_loading(self) -> bool:
        return self._global_loading

    def subscribe(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def clear(self):
        with self._lock:
            self._states.clear()
        self._recompute()

    def close(self):
        if self._unsubscribe_tracker:
            self._unsubscribe_tracker()
            self._unsubscribe_tracker = None

    def _recompute(self):
        with self._lock:
            navigating = self._tracker.is_navigating if self._tracker else False
            value = navigating or any(s.is_loading for s in self._states.values())
            changed = value != self._global_loading
            self._global_loading = value
            listeners = list(self._listeners) if changed else []
        for listener in listeners:
            listener(value)

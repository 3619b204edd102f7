"""
路由切换状态跟踪

记录客户端是否正处于路由切换中，以及是否还有未完成的数据请求，
用于在切换期间抑制已缓存内容的加载提示。
这是一个启发式的防抖：切换后等待 settle_delay，如果仍有未完成的请求，
则每隔 recheck_delay 重新检查一次实时状态。
"""

import logging
import threading
from typing import Callable, List, Optional, Set

logger = logging.getLogger(__name__)


def thread_timer(delay: float, callback: Callable[[], None]):
    """默认的定时器：后台守护线程，返回对象支持 cancel()"""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class NavigationTracker:
    """单个客户端的路由切换状态"""

    def __init__(self, settle_delay: float = 0.8, recheck_delay: float = 0.2, scheduler=None):
        self.settle_delay = settle_delay
        self.recheck_delay = recheck_delay
        self._schedule = scheduler or thread_timer
        self._lock = threading.RLock()
        self._is_navigating = False
        self._last_path = ''
        self._pending: Set[str] = set()
        self._timer = None
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def is_navigating(self) -> bool:
        return self._is_navigating

    @property
    def last_path(self) -> str:
        return self._last_path

    @property
    def pending_fetch_ids(self) -> Set[str]:
        with self._lock:
            return set(self._pending)

    def should_skip_loading(self) -> bool:
        return self._is_navigating

    def subscribe(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """订阅 is_navigating 的变化，返回取消订阅函数"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def on_route_change(self, new_path: str):
        with self._lock:
            if new_path == self._last_path:
                return
            was_navigating = self._is_navigating
            self._is_navigating = True
            self._last_path = new_path
            # 已有定时器时不重新计时，定时器到期时检查的是实时状态
            if self._timer is None:
                self._arm(self.settle_delay)
        logger.debug(f"路由切换到 {new_path}")
        if not was_navigating:
            self._notify(True)

    def register_fetch(self, fetch_id: str):
        with self._lock:
            self._pending.add(fetch_id)

    def unregister_fetch(self, fetch_id: str):
        with self._lock:
            if fetch_id not in self._pending:
                return
            self._pending.discard(fetch_id)
            if self._pending or not self._is_navigating:
                return
            # 最后一个请求完成，立即结束切换状态
            self._is_navigating = False
            self._cancel_timer()
        self._notify(False)

    def force_clear(self):
        """重置全部状态，客户端上下文销毁时调用"""
        with self._lock:
            was_navigating = self._is_navigating
            self._cancel_timer()
            self._is_navigating = False
            self._pending.clear()
        if was_navigating:
            self._notify(False)

    def _arm(self, delay: float):
        handle = {}

        def fire():
            self._on_timer(handle.get('timer'))

        handle['timer'] = self._timer = self._schedule(delay, fire)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, timer):
        with self._lock:
            if timer is None or timer is not self._timer:
                return
            self._timer = None
            if not self._is_navigating:
                return
            if self._pending:
                self._arm(self.recheck_delay)
                return
            self._is_navigating = False
        self._notify(False)

    def _notify(self, value: bool):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(value)

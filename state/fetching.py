"""
数据请求协调器

封装任意的数据获取函数：
1. 非强制刷新且缓存新鲜时直接返回缓存，不发起请求；
2. 否则取消同一使用方上一次未完成的请求，生成新的请求id并登记加载状态；
3. 成功时只有最新的请求才能写入缓存并返回结果，被取代的请求结果直接丢弃；
4. 失败时只有最新的请求才会抛出异常；
5. 无论结果如何，加载状态都只注销一次。
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from state.cache import TimedCache
from state.loading import LoadingRegistry
from state.navigation import NavigationTracker

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DURATION = 5 * 60


class CancellationToken:
    """请求取消标记。取消只阻止结果被使用，不保证底层网络请求中断"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class FetchResult:
    data: Any = None
    from_cache: bool = False
    superseded: bool = False
    fetch_id: Optional[str] = None


class FetchCoordinator:
    def __init__(self, cache: TimedCache, registry: Optional[LoadingRegistry] = None,
                 tracker: Optional[NavigationTracker] = None,
                 default_duration: float = DEFAULT_CACHE_DURATION):
        self.cache = cache
        self.registry = registry
        self.tracker = tracker
        self.default_duration = default_duration
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._latest: Dict[str, str] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    def fetch(self, key: str, fetch_fn: Callable[[], Any], consumer: Optional[str] = None,
              force_refresh: bool = False, cache_duration: Optional[float] = None,
              message: str = 'Loading...') -> FetchResult:
        consumer = consumer or key
        duration = self.default_duration if cache_duration is None else cache_duration

        if not force_refresh:
            entry = self.cache.get(key, duration)
            if entry is not None:
                return FetchResult(data=entry.data, from_cache=True)

        with self._lock:
            previous = self._tokens.get(consumer)
            if previous:
                previous.cancel()
            token = CancellationToken()
            fetch_id = f"{consumer}#{next(self._counter)}"
            self._tokens[consumer] = token
            self._latest[consumer] = fetch_id

        self._register(fetch_id, message)
        try:
            try:
                data = fetch_fn()
            except Exception:
                if self._is_current(consumer, fetch_id, token):
                    raise
                logger.debug(f"请求 {fetch_id} 已被取代，忽略其错误")
                return FetchResult(superseded=True, fetch_id=fetch_id)

            with self._lock:
                current = self._latest.get(consumer) == fetch_id and not token.cancelled
                if current:
                    # 写缓存与检查在同一把锁内，避免被较慢的旧请求覆盖
                    self.cache.set(key, data)
            if not current:
                logger.debug(f"请求 {fetch_id} 已被取代，丢弃结果")
                return FetchResult(superseded=True, fetch_id=fetch_id)
            return FetchResult(data=data, fetch_id=fetch_id)
        finally:
            self._unregister(fetch_id)
            with self._lock:
                if self._latest.get(consumer) == fetch_id:
                    self._tokens.pop(consumer, None)

    def latest_fetch_id(self, consumer: str) -> Optional[str]:
        with self._lock:
            return self._latest.get(consumer)

    def cancel(self, consumer: str):
        with self._lock:
            token = self._tokens.pop(consumer, None)
        if token:
            token.cancel()

    def cancel_all(self):
        with self._lock:
            tokens = list(self._tokens.values())
            self._tokens.clear()
        for token in tokens:
            token.cancel()

    def _is_current(self, consumer: str, fetch_id: str, token: CancellationToken) -> bool:
        with self._lock:
            return self._latest.get(consumer) == fetch_id and not token.cancelled

    def _register(self, fetch_id: str, message: str):
        if self.registry:
            self.registry.register(fetch_id, message)
        if self.tracker:
            self.tracker.register_fetch(fetch_id)

    def _unregister(self, fetch_id: str):
        if self.registry:
            self.registry.unregister(fetch_id)
        if self.tracker:
            self.tracker.unregister_fetch(fetch_id)

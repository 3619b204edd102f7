"""
每个浏览器客户端一份的状态上下文

每个客户端一个 ClientContext，由 ContextRegistry 按客户端id管理，销毁时显式清理定时器、请求和内存中的文件。
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from schemas import Publication
from state.cache import TimedCache
from state.client_cache import ThumbnailCache, UserCache
from state.fetching import FetchCoordinator
from state.handoff import PdfHandoff
from state.loading import LoadingRegistry
from state.local_store import MemoryStore, NamespacedStore
from state.navigation import NavigationTracker
from state.publications import PublicationStore
from state.session import SessionStore

logger = logging.getLogger(__name__)


class ClientContext:
    def __init__(self, client_id: str, store=None, publications_duration: float = 5 * 60,
                 user_cache_duration: float = 60 * 60, settle_delay: float = 0.8,
                 recheck_delay: float = 0.2, scheduler=None, clock=None):
        self.client_id = client_id
        self.store = NamespacedStore(store if store is not None else MemoryStore(), client_id)
        self.tracker = NavigationTracker(settle_delay, recheck_delay, scheduler=scheduler)
        self.registry = LoadingRegistry(self.tracker)
        self.cache = TimedCache(clock) if clock else TimedCache()
        self.coordinator = FetchCoordinator(self.cache, self.registry, self.tracker,
                                            default_duration=publications_duration)
        self.handoff = PdfHandoff(self.store)
        self.user_cache = UserCache(self.store, max_age=user_cache_duration)
        self.thumbnails = ThumbnailCache(self.store)
        self.session = SessionStore()
        self._lock = threading.Lock()
        self._stores: Dict[str, PublicationStore] = {}
        self._unsubscribe_session = self.session.subscribe(self._on_session_change)

    def publications(self, user_id: str, loader: Callable[[str], List[Publication]]) -> PublicationStore:
        with self._lock:
            store = self._stores.get(user_id)
            if store is None:
                store = PublicationStore(self.coordinator, loader, user_id)
                self._stores[user_id] = store
            else:
                store.loader = loader
            return store

    def _on_session_change(self, event, session):
        if event == 'TOKEN_REFRESHED':
            return
        # 切换或退出账号时，旧用户的出版物缓存和用户缓存都不再有效
        logger.debug(f"客户端 {self.client_id} 会话变化: {event}")
        self.coordinator.cancel_all()
        self.cache.clear()
        with self._lock:
            self._stores.clear()
        if session is None:
            self.user_cache.clear()

    def dispose(self):
        self.tracker.force_clear()
        self.coordinator.cancel_all()
        self.registry.clear()
        self.registry.close()
        self.handoff.drop_file()
        self._unsubscribe_session()
        logger.debug(f"客户端上下文已销毁: {self.client_id}")


class ContextRegistry:
    """按客户端id保存上下文，超过 max_idle 秒没有访问的上下文在下次 get 时被销毁"""

    def __init__(self, factory: Callable[[str], ClientContext], max_idle: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._factory = factory
        self._max_idle = max_idle
        self._clock = clock
        self._lock = threading.Lock()
        self._contexts: Dict[str, ClientContext] = {}
        self._last_seen: Dict[str, float] = {}

    def get(self, client_id: str) -> ClientContext:
        with self._lock:
            now = self._clock()
            expired = self._pop_idle(now, keep=client_id)
            context = self._contexts.get(client_id)
            if context is None:
                context = self._factory(client_id)
                self._contexts[client_id] = context
            self._last_seen[client_id] = now
        for stale in expired:
            stale.dispose()
        return context

    def _pop_idle(self, now: float, keep: Optional[str] = None) -> List[ClientContext]:
        if self._max_idle is None:
            return []
        idle = [cid for cid, seen in self._last_seen.items()
                if cid != keep and now - seen >= self._max_idle]
        expired = []
        for cid in idle:
            self._last_seen.pop(cid, None)
            context = self._contexts.pop(cid, None)
            if context is not None:
                expired.append(context)
        if expired:
            logger.info(f"清理空闲客户端上下文: {len(expired)} 个")
        return expired

    def sweep(self) -> int:
        """立即销毁所有空闲的上下文，返回销毁的数量"""
        with self._lock:
            expired = self._pop_idle(self._clock())
        for context in expired:
            context.dispose()
        return len(expired)

    def peek(self, client_id: str) -> Optional[ClientContext]:
        with self._lock:
            return self._contexts.get(client_id)

    def dispose(self, client_id: str):
        with self._lock:
            context = self._contexts.pop(client_id, None)
            self._last_seen.pop(client_id, None)
        if context:
            context.dispose()

    def dispose_all(self):
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
            self._last_seen.clear()
        for context in contexts:
            context.dispose()

    def __len__(self):
        with self._lock:
            return len(self._contexts)

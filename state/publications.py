"""
当前用户的出版物列表

列表通过 FetchCoordinator 加载，缓存键为 publications:<user_id>。
add / update / delete 直接修改内存列表并原地更新缓存条目，不重新请求，
修改函数返回后可见列表与缓存内容始终一致。
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from schemas import Publication
from state.fetching import FetchCoordinator, FetchResult
from state.optimistic import OptimisticMutation

logger = logging.getLogger(__name__)


def publications_cache_key(user_id: str) -> str:
    return f"publications:{user_id}"


class PublicationStore:
    def __init__(self, coordinator: FetchCoordinator, loader: Callable[[str], List[Publication]], user_id: str):
        self.coordinator = coordinator
        self.loader = loader
        self.user_id = user_id
        self.key = publications_cache_key(user_id)
        self._lock = threading.RLock()
        entry = coordinator.cache.peek(self.key)
        self._items: List[Publication] = list(entry.data) if entry else []
        self.loaded = entry is not None

    @property
    def publications(self) -> List[Publication]:
        with self._lock:
            return list(self._items)

    def load(self, force_refresh: bool = False) -> FetchResult:
        result = self.coordinator.fetch(
            self.key,
            lambda: list(self.loader(self.user_id)),
            force_refresh=force_refresh,
            message='Loading publications...',
        )
        if not result.superseded:
            with self._lock:
                # 协调器写入缓存后可能已有修改落在缓存上，以缓存为准
                entry = self.coordinator.cache.peek(self.key)
                self._items = list(entry.data) if entry is not None else list(result.data)
                self.loaded = True
        return result

    def get(self, publication_id: str) -> Optional[Publication]:
        with self._lock:
            for pub in self._items:
                if pub.id == publication_id:
                    return pub
        return None

    def user_publications(self, user_id: str) -> List[Publication]:
        with self._lock:
            return [pub for pub in self._items if pub.user_id == user_id]

    def add(self, publication: Publication):
        with self._lock:
            self._commit([publication] + [p for p in self._current() if p.id != publication.id])

    def update(self, publication_id: str, changes: Dict) -> Optional[Publication]:
        updated = None
        with self._lock:
            items = []
            for pub in self._current():
                if pub.id == publication_id:
                    pub = replace(pub, **changes)
                    updated = pub
                items.append(pub)
            self._commit(items)
        return updated

    def delete(self, publication_id: str):
        with self._lock:
            self._commit([p for p in self._current() if p.id != publication_id])

    def optimistic(self, mutate: Callable[[], None], name: str) -> OptimisticMutation:
        """基于当前列表快照创建一个乐观更新，回滚时整体恢复快照"""
        snapshot = self.publications

        def rollback():
            with self._lock:
                self._commit(snapshot)

        return OptimisticMutation(mutate, rollback, name=name)

    def _current(self) -> List[Publication]:
        entry = self.coordinator.cache.peek(self.key)
        return list(entry.data) if entry is not None else list(self._items)

    def _commit(self, items: List[Publication]):
        self._items = items
        self.coordinator.cache.patch(self.key, list(items))

"""内存中的限时缓存"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float

    def is_fresh(self, max_age: float, now: float) -> bool:
        return now - self.timestamp < max_age


class TimedCache:
    """按 key 存放最近一次获取的数据，过期判断在读取时进行"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, key: str, max_age: float) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
        if entry and entry.is_fresh(max_age, self._clock()):
            return entry
        return None

    def peek(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, data: Any) -> CacheEntry:
        entry = CacheEntry(key, data, self._clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def patch(self, key: str, data: Any) -> CacheEntry:
        """替换数据但保留时间戳；不存在时创建一个已过期的条目"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = CacheEntry(key, data, float('-inf'))
                self._entries[key] = entry
            else:
                entry.data = data
            return entry

    def invalidate(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def keys(self):
        with self._lock:
            return list(self._entries)

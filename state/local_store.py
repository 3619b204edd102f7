"""
持久化键值存储，对应浏览器的 localStorage：键和值都是字符串，值为JSON文本，没有版本号。
"""

import json
import logging
import os
import tempfile
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class MemoryStore:
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(data or {})
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str):
        with self._lock:
            self._data[key] = value

    def remove_item(self, key: str):
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


class JsonFileStore(MemoryStore):
    """整个存储保存在一个JSON文件中，每次写入后原子替换文件"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(self._read())

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return {str(k): str(v) for k, v in data.items()}
        except (OSError, ValueError) as e:
            logger.warning(f"本地存储文件无法读取，使用空存储: {self.path}, {e}")
            return {}

    def set_item(self, key: str, value: str):
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str):
        super().remove_item(key)
        self._flush()

    def _flush(self):
        with self._lock:
            snapshot = dict(self._data)
        directory = os.path.dirname(self.path) or '.'
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            os.unlink(tmp_path)
            raise


class NamespacedStore:
    """为每个客户端加上键前缀，共享同一个底层存储"""

    def __init__(self, store, namespace: str):
        self._store = store
        self._prefix = f"{namespace}:"

    def get_item(self, key: str) -> Optional[str]:
        return self._store.get_item(self._prefix + key)

    def set_item(self, key: str, value: str):
        self._store.set_item(self._prefix + key, value)

    def remove_item(self, key: str):
        self._store.remove_item(self._prefix + key)

    def keys(self) -> List[str]:
        return [k[len(self._prefix):] for k in self._store.keys() if k.startswith(self._prefix)]


def read_json(store, key: str):
    raw = store.get_item(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"本地存储中的 {key} 不是合法的JSON，已忽略")
        return None


def write_json(store, key: str, value):
    store.set_item(key, json.dumps(value, ensure_ascii=False))

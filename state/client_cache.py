"""客户端持久化缓存：用户资料（1小时过期）和PDF缩略图 data URL"""

import logging
import time
from typing import Callable, Dict, Optional

from schemas import User
from state.local_store import read_json, write_json

logger = logging.getLogger(__name__)

USER_CACHE_KEY = 'nekopress_user'
THUMBNAIL_CACHE_KEY = 'nekopress_thumbs'
USER_CACHE_EXPIRY = 60 * 60


class UserCache:
    def __init__(self, store, max_age: float = USER_CACHE_EXPIRY, clock: Callable[[], float] = time.time):
        self._store = store
        self.max_age = max_age
        self._clock = clock

    def get(self) -> Optional[User]:
        data = read_json(self._store, USER_CACHE_KEY)
        if not isinstance(data, dict):
            return None
        user, ts = data.get('user'), data.get('ts')
        if not user or not ts:
            return None
        if self._clock() - ts > self.max_age:
            self._store.remove_item(USER_CACHE_KEY)
            return None
        try:
            return User(**user)
        except TypeError:
            logger.warning("用户缓存格式不正确，已忽略")
            return None

    def set(self, user: Optional[User]):
        if user is None:
            self._store.remove_item(USER_CACHE_KEY)
            return
        write_json(self._store, USER_CACHE_KEY, {'user': user.to_dict(), 'ts': self._clock()})

    def clear(self):
        self._store.remove_item(USER_CACHE_KEY)


class ThumbnailCache:
    def __init__(self, store):
        self._store = store

    def _all(self) -> Dict[str, str]:
        data = read_json(self._store, THUMBNAIL_CACHE_KEY)
        return data if isinstance(data, dict) else {}

    def get(self, pdf_url: str) -> Optional[str]:
        return self._all().get(pdf_url)

    def set(self, pdf_url: str, data_url: str):
        thumbs = self._all()
        thumbs[pdf_url] = data_url
        write_json(self._store, THUMBNAIL_CACHE_KEY, thumbs)

    def remove(self, pdf_url: str):
        thumbs = self._all()
        if thumbs.pop(pdf_url, None) is not None:
            write_json(self._store, THUMBNAIL_CACHE_KEY, thumbs)

    def clear(self):
        self._store.remove_item(THUMBNAIL_CACHE_KEY)


def clear_all_caches(store):
    store.remove_item(USER_CACHE_KEY)
    store.remove_item(THUMBNAIL_CACHE_KEY)
    logger.info("客户端缓存已清除")


def cache_info(store, clock: Callable[[], float] = time.time) -> Dict:
    """调试用：各缓存的状态"""
    info = {}
    raw_user = store.get_item(USER_CACHE_KEY)
    if raw_user is not None:
        data = read_json(store, USER_CACHE_KEY)
        if isinstance(data, dict):
            ts = data.get('ts')
            info['user'] = {
                'hasData': bool(data.get('user')),
                'timestamp': ts,
                'age': clock() - ts if ts else 0,
            }
        else:
            info['user'] = {'error': 'Invalid cache data'}
    thumbs = read_json(store, THUMBNAIL_CACHE_KEY)
    if isinstance(thumbs, dict):
        info['thumbnails'] = {'count': len(thumbs)}
    return info

"""
认证会话订阅

保存唯一的当前会话，每次变化时推送给所有订阅者。
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class AuthSession:
    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    email: Optional[str] = None


class SessionStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._current: Optional[AuthSession] = None
        self._subscribers: List[Callable[[str, Optional[AuthSession]], None]] = []

    @property
    def current(self) -> Optional[AuthSession]:
        return self._current

    def subscribe(self, callback: Callable[[str, Optional[AuthSession]], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
        return unsubscribe

    def set(self, session: Optional[AuthSession], event: Optional[str] = None):
        with self._lock:
            previous = self._current
            self._current = session
            subscribers = list(self._subscribers)
        if event is None:
            event = 'SIGNED_IN' if session else 'SIGNED_OUT'
        if previous and session and previous.user_id == session.user_id and event == 'SIGNED_IN':
            event = 'TOKEN_REFRESHED'
        for callback in subscribers:
            try:
                callback(event, session)
            except Exception as e:
                logger.error(f"会话订阅回调执行失败: {e}", exc_info=True)


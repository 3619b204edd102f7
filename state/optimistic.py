"""
乐观更新

先在本地应用修改，再提交到后端；提交失败时恢复修改前的快照。
状态流转：PENDING -> CONFIRMED | ROLLED_BACK
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

PENDING = 'pending'
CONFIRMED = 'confirmed'
ROLLED_BACK = 'rolled_back'


class OptimisticMutation:
    def __init__(self, apply: Callable[[], Any], rollback: Callable[[], Any], name: str = 'mutation'):
        self._apply = apply
        self._rollback = rollback
        self.name = name
        self.state = None
        self.error = None

    def run(self, commit: Callable[[], Any]):
        """应用本地修改并提交，返回 commit 的结果；失败时回滚并重新抛出异常"""
        self._apply()
        self.state = PENDING
        try:
            result = commit()
        except Exception as e:
            self._rollback()
            self.state = ROLLED_BACK
            self.error = e
            logger.warning(f"{self.name} 提交失败，已回滚: {e}")
            raise
        self.state = CONFIRMED
        return result

    @property
    def confirmed(self) -> bool:
        return self.state == CONFIRMED

    @property
    def rolled_back(self) -> bool:
        return self.state == ROLLED_BACK

from typing import List, Dict, Set, Optional
import logging

from errors import BackendError
from schemas import PublicationLike

logger = logging.getLogger(__name__)


class LikeOperations:
    """点赞数据库操作类，每篇出版物的点赞数即 publication_likes 中的行数"""

    def __init__(self, supabase):
        self.supabase = supabase

    def get_likes(self, publication_id: str) -> List[PublicationLike]:
        try:
            result = self.supabase.table('publication_likes') \
                .select('user_id, publication_id') \
                .eq('publication_id', publication_id) \
                .execute()
        except Exception as e:
            logger.error(f"获取点赞失败: {publication_id}, {e}")
            raise BackendError('Failed to load likes') from e
        return [PublicationLike.from_row(row) for row in (result.data or [])]

    def like_summary(self, publication_id: str, user_id: Optional[str] = None) -> Dict:
        """
        Returns:
            dict: {'count': 点赞数, 'liked': 当前用户是否已点赞}
        """
        likes = self.get_likes(publication_id)
        return {
            'count': len(likes),
            'liked': bool(user_id) and any(like.user_id == user_id for like in likes),
        }

    def like(self, publication_id: str, user_id: str):
        try:
            self.supabase.table('publication_likes') \
                .insert({'publication_id': publication_id, 'user_id': user_id}) \
                .execute()
        except Exception as e:
            logger.error(f"点赞失败: {publication_id}, {e}")
            raise BackendError('Failed to like publication') from e

    def unlike(self, publication_id: str, user_id: str):
        try:
            self.supabase.table('publication_likes') \
                .delete() \
                .eq('publication_id', publication_id) \
                .eq('user_id', user_id) \
                .execute()
        except Exception as e:
            logger.error(f"取消点赞失败: {publication_id}, {e}")
            raise BackendError('Failed to unlike publication') from e

    def _likes_for(self, publication_ids: List[str]) -> List[PublicationLike]:
        if not publication_ids:
            return []
        try:
            result = self.supabase.table('publication_likes') \
                .select('publication_id, user_id') \
                .in_('publication_id', publication_ids) \
                .execute()
        except Exception as e:
            logger.error(f"批量获取点赞失败: {e}")
            raise BackendError('Failed to load likes') from e
        return [PublicationLike.from_row(row) for row in (result.data or [])]

    def like_counts(self, publication_ids: List[str]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for like in self._likes_for(publication_ids):
            counts[like.publication_id] = counts.get(like.publication_id, 0) + 1
        return counts

    def liked_set(self, publication_ids: List[str], user_id: str) -> Set[str]:
        return {like.publication_id for like in self._likes_for(publication_ids) if like.user_id == user_id}

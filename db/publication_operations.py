from typing import List, Dict, Optional, Any, Callable
import logging
import time
from datetime import datetime, timezone

from config import SUPABASE_CONFIG, DELETE_CONFIG
from errors import BackendError
from schemas import Publication

logger = logging.getLogger(__name__)


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class PublicationStorage:
    """PDF和缩略图存储到Supabase的 publications 存储桶"""

    def __init__(self, supabase, bucket: Optional[str] = None, admin=None):
        self.supabase = supabase
        self.bucket = bucket or SUPABASE_CONFIG['publications_bucket']
        # 清理文件用管理员客户端，上传仍走用户客户端受行级权限约束
        self.admin = admin or supabase

    def _upload(self, folder: str, filename: str, content: bytes, content_type: str) -> Dict[str, Any]:
        path = f"{folder}/{_timestamp_ms()}_{filename}"
        try:
            self.supabase.storage.from_(self.bucket).upload(
                path=path,
                file=content,
                file_options={'content-type': content_type}
            )
            public_url = self.supabase.storage.from_(self.bucket).get_public_url(path)
        except Exception as e:
            logger.error(f"上传文件失败: {path}, {e}")
            raise BackendError(f'Upload failed: {e}') from e
        return {'path': path, 'public_url': public_url, 'file_size': len(content)}

    def upload_pdf(self, filename: str, content: bytes) -> Dict[str, Any]:
        """上传PDF到 pdfs/ 目录"""
        return self._upload('pdfs', filename, content, 'application/pdf')

    def upload_thumbnail(self, filename: str, content: bytes, content_type: str = 'image/png') -> Dict[str, Any]:
        """上传缩略图到 thumbs/ 目录"""
        return self._upload('thumbs', filename, content, content_type)

    def public_url(self, path: str) -> str:
        return self.supabase.storage.from_(self.bucket).get_public_url(path)

    def path_from_public_url(self, url: Optional[str]) -> Optional[str]:
        """从公开链接中取出存储路径，不是本存储桶的链接返回None"""
        if not url:
            return None
        marker = f"/object/public/{self.bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1].split('?', 1)[0]

    def remove(self, paths: List[str]) -> bool:
        """删除存储文件，失败只记录日志"""
        paths = [p for p in paths if p]
        if not paths:
            return True
        try:
            self.admin.storage.from_(self.bucket).remove(paths)
            return True
        except Exception as e:
            logger.warning(f"删除存储文件失败: {paths}, {e}")
            return False


class PublicationOperations:
    """出版物数据库操作类"""

    def __init__(self, supabase, storage: Optional[PublicationStorage] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.supabase = supabase
        self.storage = storage or PublicationStorage(supabase)
        self.sleep = sleep

    def list_user_publications(self, user_id: str) -> List[Publication]:
        """获取用户的出版物，按创建时间倒序"""
        try:
            result = self.supabase.table('publications') \
                .select('*') \
                .eq('user_id', user_id) \
                .order('created_at', desc=True) \
                .execute()
        except Exception as e:
            logger.error(f"获取用户出版物失败: {user_id}, {e}")
            raise BackendError('Failed to fetch publications') from e
        return [Publication.from_row(row) for row in (result.data or [])]

    def list_all_publications(self) -> List[Publication]:
        try:
            result = self.supabase.table('publications').select('*').order('created_at', desc=True).execute()
        except Exception as e:
            logger.error(f"获取全部出版物失败: {e}")
            raise BackendError('Failed to fetch all publications') from e
        return [Publication.from_row(row) for row in (result.data or [])]

    def get_publication(self, publication_id: str) -> Optional[Publication]:
        try:
            result = self.supabase.table('publications').select('*').eq('id', publication_id).limit(1).execute()
        except Exception as e:
            logger.error(f"获取出版物失败: {publication_id}, {e}")
            raise BackendError('Failed to fetch publication') from e
        return Publication.from_row(result.data[0]) if result.data else None

    def insert_publication(self, user_id: str, title: str, description: str,
                           pdf_url: str, thumb_url: Optional[str] = None) -> Publication:
        """插入出版物记录

        Returns:
            Publication: 插入后的记录（包含数据库生成的ID等字段）
        """
        row = {
            'user_id': user_id,
            'title': title,
            'description': description,
            'pdf_url': pdf_url,
            'thumb_url': thumb_url,
        }
        try:
            result = self.supabase.table('publications').insert(row).execute()
        except Exception as e:
            logger.error(f"插入出版物失败: {title}, {e}")
            raise BackendError(f'Failed to save publication: {e}') from e
        if not result.data:
            raise BackendError('Failed to save publication')
        logger.info(f"出版物创建成功: {result.data[0].get('id')}")
        return Publication.from_row(result.data[0])

    def update_publication(self, publication_id: str, user_id: str, update_data: Dict[str, Any]) -> Publication:
        """更新标题、描述或缩略图，只有所有者可以修改"""
        allowed = {k: v for k, v in update_data.items() if k in ('title', 'description', 'thumb_url')}
        allowed['updated_at'] = datetime.now(timezone.utc).isoformat()
        try:
            result = self.supabase.table('publications') \
                .update(allowed) \
                .eq('id', publication_id) \
                .eq('user_id', user_id) \
                .execute()
        except Exception as e:
            logger.error(f"更新出版物失败: {publication_id}, {e}")
            raise BackendError('Failed to update publication') from e
        if not result.data:
            raise BackendError('Failed to update publication')
        return Publication.from_row(result.data[0])

    def delete_publication(self, publication: Publication) -> bool:
        """删除出版物

        先删除点赞记录，再删除出版物本身，然后最多校验3次确认记录已被删除，
        最后尝试删除存储中的PDF和缩略图（失败不影响结果）。

        Args:
            publication: 要删除的出版物

        Returns:
            bool: 删除成功返回True
        """
        try:
            self.supabase.table('publication_likes').delete().eq('publication_id', publication.id).execute()
            self.supabase.table('publications') \
                .delete() \
                .eq('id', publication.id) \
                .eq('user_id', publication.user_id) \
                .execute()
        except Exception as e:
            logger.error(f"删除出版物失败: {publication.id}, {e}")
            raise BackendError(f'Failed to delete publication: {e}') from e

        if not self._verify_deleted(publication.id):
            raise BackendError('Publication still exists after delete')

        self.storage.remove([
            self.storage.path_from_public_url(publication.pdf_url),
            self.storage.path_from_public_url(publication.thumb_url),
        ])
        logger.info(f"出版物已删除: {publication.id}")
        return True

    def _verify_deleted(self, publication_id: str) -> bool:
        attempts = DELETE_CONFIG['verify_attempts']
        for attempt in range(1, attempts + 1):
            try:
                result = self.supabase.table('publications').select('id').eq('id', publication_id).execute()
                if not result.data:
                    return True
                logger.warning(f"第 {attempt} 次校验：出版物 {publication_id} 仍然存在")
            except Exception as e:
                logger.warning(f"第 {attempt} 次校验删除结果失败: {e}")
            if attempt < attempts:
                self.sleep(DELETE_CONFIG['verify_interval'])
        return False

    def search_publications(self, term: str, limit: int = 5) -> List[Dict]:
        """按标题或描述模糊搜索，附带作者用户名和头像"""
        try:
            result = self.supabase.table('publications') \
                .select('id,title,user_id,profiles!publications_user_id_fkey(username,avatar_url)') \
                .or_(f'title.ilike.%{term}%,description.ilike.%{term}%') \
                .limit(limit) \
                .execute()
        except Exception as e:
            logger.error(f"搜索出版物失败: {term}, {e}")
            raise BackendError('Search failed') from e
        items = []
        for row in result.data or []:
            owner = row.get('profiles') or {}
            items.append({
                'id': row['id'],
                'title': row.get('title'),
                'user_id': row.get('user_id'),
                'username': owner.get('username') or 'Unknown',
                'avatar_url': owner.get('avatar_url'),
            })
        return items

    def community_feed(self, profiles: List, max_per_user: int = 6) -> List[Dict]:
        """把出版物按用户分组，每个用户最多 max_per_user 篇，没有出版物的用户不显示"""
        by_user: Dict[str, List[Publication]] = {}
        for pub in self.list_all_publications():
            bucket = by_user.setdefault(pub.user_id, [])
            if len(bucket) < max_per_user:
                bucket.append(pub)
        feed = []
        for profile in profiles:
            pubs = by_user.get(profile.id)
            if not pubs:
                continue
            feed.append({
                'id': profile.id,
                'username': profile.username,
                'avatar_url': profile.avatar_url,
                'publications': [p.to_dict() for p in pubs],
            })
        return feed

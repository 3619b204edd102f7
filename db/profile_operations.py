from typing import List, Dict, Optional, Any
import logging
import time

from config import SUPABASE_CONFIG
from errors import BackendError
from schemas import Profile

logger = logging.getLogger(__name__)


class ProfileOperations:
    """用户资料数据库操作类"""

    def __init__(self, supabase):
        self.supabase = supabase

    def get_profile_by_id(self, user_id: str) -> Optional[Profile]:
        """根据用户ID获取资料

        Args:
            user_id: 用户ID

        Returns:
            Profile: 用户资料，不存在时返回None
        """
        try:
            result = self.supabase.table('profiles').select('*').eq('id', user_id).limit(1).execute()
        except Exception as e:
            logger.error(f"获取用户资料失败: {user_id}, {e}")
            raise BackendError('Failed to load user profile') from e
        return Profile.from_row(result.data[0]) if result.data else None

    def get_profile_by_username(self, username: str) -> Optional[Profile]:
        """根据用户名获取资料，用户名统一按小写查询"""
        try:
            result = self.supabase.table('profiles') \
                .select('*') \
                .eq('username', username.lower()) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.error(f"根据用户名获取资料失败: {username}, {e}")
            raise BackendError('Failed to load profile') from e
        return Profile.from_row(result.data[0]) if result.data else None

    def username_exists(self, username: str, exclude_user_id: Optional[str] = None) -> bool:
        """检查用户名是否已被占用

        Args:
            username: 已转换为小写的用户名
            exclude_user_id: 排除的用户ID（用户修改自己的用户名时）
        """
        try:
            result = self.supabase.table('profiles').select('id').eq('username', username).execute()
        except Exception as e:
            logger.error(f"检查用户名失败: {username}, {e}")
            raise BackendError(f'Database error: {e}') from e
        return any(str(row['id']) != str(exclude_user_id) for row in (result.data or []))

    def email_exists(self, email: str) -> bool:
        try:
            result = self.supabase.table('profiles').select('id').eq('email', email).limit(1).execute()
        except Exception as e:
            logger.error(f"检查邮箱失败: {email}, {e}")
            raise BackendError(f'Database error: {e}') from e
        return bool(result.data)

    def update_profile(self, user_id: str, update_data: Dict[str, Any]) -> Optional[Profile]:
        """更新用户资料

        Args:
            user_id: 用户ID
            update_data: 更新字段（username、bio、location、avatar_url）

        Returns:
            Profile: 更新后的资料
        """
        allowed = {k: v for k, v in update_data.items() if k in ('username', 'bio', 'location', 'avatar_url')}
        if not allowed:
            return self.get_profile_by_id(user_id)
        try:
            result = self.supabase.table('profiles').update(allowed).eq('id', user_id).execute()
        except Exception as e:
            logger.error(f"更新用户资料失败: {user_id}, {e}")
            raise BackendError('Failed to update profile') from e
        return Profile.from_row(result.data[0]) if result.data else self.get_profile_by_id(user_id)

    def set_username(self, user_id: str, username: str) -> Optional[Profile]:
        return self.update_profile(user_id, {'username': username})

    def search_profiles(self, term: str, limit: int = 3) -> List[Dict]:
        """按用户名模糊搜索"""
        try:
            result = self.supabase.table('profiles') \
                .select('username,avatar_url') \
                .ilike('username', f'%{term}%') \
                .limit(limit) \
                .execute()
            return result.data or []
        except Exception as e:
            logger.error(f"搜索用户失败: {term}, {e}")
            raise BackendError('Search failed') from e

    def list_profiles(self, limit: int = 10) -> List[Profile]:
        try:
            result = self.supabase.table('profiles').select('id,username,avatar_url').limit(limit).execute()
        except Exception as e:
            logger.error(f"获取用户列表失败: {e}")
            raise BackendError('Failed to load profiles') from e
        return [Profile.from_row(row) for row in (result.data or [])]

    def upload_avatar(self, user_id: str, image_bytes: bytes, filename: str,
                      content_type: str = 'image/png') -> Optional[Profile]:
        """上传头像到 avatars 存储桶并更新 avatar_url"""
        bucket = SUPABASE_CONFIG['avatars_bucket']
        path = f"{user_id}/{int(time.time() * 1000)}_{filename}"
        try:
            self.supabase.storage.from_(bucket).upload(
                path=path,
                file=image_bytes,
                file_options={'content-type': content_type}
            )
            public_url = self.supabase.storage.from_(bucket).get_public_url(path)
        except Exception as e:
            logger.error(f"上传头像失败: {user_id}, {e}")
            raise BackendError(f'Avatar upload failed: {e}') from e
        return self.update_profile(user_id, {'avatar_url': public_url})

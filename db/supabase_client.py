from supabase import create_client, Client
from config import SUPABASE_CONFIG
import logging

logger = logging.getLogger(__name__)


class SupabaseInitializer:
    def __init__(self, supabase_url=None, ANON_KEY=None, SERVICE_ROLE_KEY=None):
        # 读取配置
        self.supabase_url = supabase_url if supabase_url else SUPABASE_CONFIG.get('url')
        self.ANON_KEY = ANON_KEY if ANON_KEY else SUPABASE_CONFIG.get('key')
        self.SERVICE_ROLE_KEY = SERVICE_ROLE_KEY if SERVICE_ROLE_KEY else SUPABASE_CONFIG.get('service_key')

        # 创建客户端
        # 匿名访问和用户登录：ANON_KEY
        # 管理员操作（清理存储文件等）：SERVICE_ROLE_KEY
        self.supabase: Client = create_client(self.supabase_url, self.ANON_KEY)
        self.supabase_admin: Client = create_client(self.supabase_url, self.SERVICE_ROLE_KEY) \
            if self.SERVICE_ROLE_KEY else self.supabase
        logger.info(f"Supabase client initialized with URL: {self.supabase_url}")

    def user_client(self, access_token: str) -> Client:
        """创建携带用户令牌的客户端，表和存储的读写都受行级权限约束"""
        client = create_client(self.supabase_url, self.ANON_KEY)
        client.options.headers.update({
            "Authorization": f"Bearer {access_token}"
        })
        client.postgrest.auth(access_token)
        return client


_initializer = None


def get_supabase_initializer() -> SupabaseInitializer:
    """进程内共享的初始化器，首次使用时创建"""
    global _initializer
    if _initializer is None:
        _initializer = SupabaseInitializer()
    return _initializer

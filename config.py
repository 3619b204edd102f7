# 配置文件
import os
from dotenv import load_dotenv

load_dotenv(os.getenv('NEKOPRESS_ENV_FILE', '.env'))

SUPABASE_CONFIG = {
    'url': os.getenv('SUPABASE_PUBLIC_URL'),
    'key': os.getenv('ANON_KEY'),
    'service_key': os.getenv('SERVICE_ROLE_KEY'),
    'publications_bucket': 'publications',
    'avatars_bucket': 'avatars',
}

# 缓存配置（秒）
CACHE_CONFIG = {
    'publications_seconds': float(os.getenv('PUBLICATIONS_CACHE_SECONDS', 5 * 60)),
    'user_seconds': float(os.getenv('USER_CACHE_SECONDS', 60 * 60)),
}

# 路由切换状态配置（秒）
NAVIGATION_CONFIG = {
    'settle_seconds': float(os.getenv('NAV_SETTLE_SECONDS', 0.8)),
    'recheck_seconds': float(os.getenv('NAV_RECHECK_SECONDS', 0.2)),
}

# 删除出版物后的校验
DELETE_CONFIG = {
    'verify_attempts': 3,
    'verify_interval': float(os.getenv('DELETE_VERIFY_INTERVAL', 0.5)),
}

# 客户端状态空闲多久后销毁（秒）
CLIENT_CONFIG = {
    'idle_seconds': float(os.getenv('CLIENT_IDLE_SECONDS', 30 * 60)),
}

# 翻页阅读器从存储桶读取PDF
VIEWER_CONFIG = {
    'fetch_timeout': 30,
    'max_pdf_bytes': int(float(os.getenv('VIEWER_MAX_PDF_MB', 50)) * 1024 * 1024),
}

# 本地持久化存储（模拟浏览器 localStorage）
STORAGE_CONFIG = {
    'local_store_path': os.getenv('LOCAL_STORE_PATH', os.path.join('data', 'local_store.json')),
}

# Flask配置
FLASK_CONFIG = {
    'host': os.getenv('FLASK_HOST', '0.0.0.0'),
    'port': int(os.getenv('FLASK_PORT', 5000)),
    'debug': os.getenv('FLASK_DEBUG', 'True').lower() == 'true',
    'secret_key': os.getenv('FLASK_SECRET_KEY', 'nekopress-dev-secret'),
    'site_url': os.getenv('SITE_URL', 'http://localhost:3000'),
}

# 日志配置
LOGGING_CONFIG = {
    'level': os.getenv('LOG_LEVEL', 'INFO'),
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
}

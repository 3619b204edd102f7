from flask import Blueprint, g, jsonify, request
import logging

from apis.client_api import get_client_context
from config import FLASK_CONFIG
from db.profile_operations import ProfileOperations
from db.supabase_client import get_supabase_initializer
from errors import AuthRequiredError, BackendError, ConflictError, ValidationError
from form_utils.validators import (
    is_username_valid,
    normalize_username,
    validate_email,
    validate_password,
    validate_username,
)
from schemas import User
from state.session import AuthSession

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

OAUTH_PROVIDERS = ('google', 'apple', 'github')


def _anon_client():
    return get_supabase_initializer().supabase


def _bearer_token():
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None
    token = auth_header.replace('Bearer ', '').strip()
    return token or None


def get_authenticated_client():
    """
    获取已认证的Supabase客户端

    Returns:
        tuple: (用户ID, Supabase客户端实例)，未登录时返回 (None, None)
    """
    token = _bearer_token()
    if not token:
        return None, None

    try:
        initializer = get_supabase_initializer()
        user_response = initializer.supabase.auth.get_user(token)
        if not user_response or not getattr(user_response, 'user', None):
            return None, None

        user_id = str(user_response.user.id)
        g.auth_user = user_response.user
        g.access_token = token
        get_client_context().session.set(AuthSession(
            user_id=user_id,
            access_token=token,
            email=getattr(user_response.user, 'email', None),
        ))
        return user_id, initializer.user_client(token)
    except Exception as e:
        logger.warning(f"用户认证失败: {e}")
        return None, None


def require_authenticated_client():
    user_id, client = get_authenticated_client()
    if not user_id:
        raise AuthRequiredError('用户未登录或会话已过期')
    return user_id, client


def load_current_user(client, auth_user) -> User:
    """合并认证信息与 profiles 表中的资料，数据库资料优先"""
    profile = ProfileOperations(client).get_profile_by_id(str(auth_user.id))
    return User.from_auth(auth_user, profile)


def _user_payload(user: User, cached: bool = False):
    return {
        'status': 'success',
        'user': user.to_dict(),
        'needs_username': not is_username_valid(user.username),
        'cached': cached,
    }


@auth_bp.route('/health', methods=['GET'])
def check_health():
    """认证模块健康检查"""
    return jsonify({
        'module': 'auth',
        'status': 'healthy',
        'message': '认证模块运行正常'
    })


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """用户注册"""
    data = request.get_json(silent=True) or {}
    email = validate_email(data.get('email'))
    password = validate_password(data.get('password'))
    username = validate_username(normalize_username(data.get('username')))

    profiles = ProfileOperations(_anon_client())
    if profiles.username_exists(username):
        raise ConflictError('Username is already taken.')
    if profiles.email_exists(email):
        raise ConflictError('Email is already registered.')

    try:
        response = _anon_client().auth.sign_up({
            "email": email,
            "password": password,
            "options": {
                "data": {"username": username, "email": email},
                "email_redirect_to": f"{FLASK_CONFIG['site_url']}/auth/callback",
            }
        })
    except Exception as e:
        logger.error(f"用户注册失败: {e}")
        raise BackendError(str(e)) from e

    if not response or not response.user:
        raise BackendError('注册失败')

    # 注册前暂存的PDF保留在交接记录中，登录后继续发布流程
    pending = get_client_context().handoff.pending()
    return jsonify({
        'status': 'success',
        'message': 'Signup successful! Please check your email to verify.',
        'user': {
            'id': response.user.id,
            'email': response.user.email
        },
        'pending_pdf': pending.to_json_dict() if pending else None,
        'next': data.get('next') or '/home/publisher',
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """用户登录"""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password')
    if not email or not password:
        raise ValidationError('邮箱和密码不能为空')

    try:
        response = _anon_client().auth.sign_in_with_password({
            "email": email,
            "password": password
        })
    except Exception as e:
        logger.error(f"用户登录失败: {e}")
        return jsonify({
            'status': 'error',
            'message': '登录失败，用户名或密码错误'
        }), 401

    if not response or not response.session:
        return jsonify({
            'status': 'error',
            'message': '登录失败'
        }), 401

    get_client_context().session.set(AuthSession(
        user_id=str(response.user.id),
        access_token=response.session.access_token,
        refresh_token=response.session.refresh_token,
        email=response.user.email,
    ))
    return jsonify({
        'status': 'success',
        'message': 'Login successful!',
        'user': {
            'id': response.user.id,
            'email': response.user.email
        },
        'session': {
            'access_token': response.session.access_token,
            'refresh_token': response.session.refresh_token
        },
        'next': data.get('next') or '/home/publisher',
    }), 200


@auth_bp.route('/oauth', methods=['POST'])
def oauth():
    """第三方登录，返回跳转地址"""
    data = request.get_json(silent=True) or {}
    provider = data.get('provider')
    if provider not in OAUTH_PROVIDERS:
        raise ValidationError(f'不支持的登录方式: {provider}')

    try:
        response = _anon_client().auth.sign_in_with_oauth({
            "provider": provider,
            "options": {
                "redirect_to": data.get('redirect_to') or f"{FLASK_CONFIG['site_url']}/auth/callback",
                "query_params": {"access_type": "offline", "prompt": "consent"},
            }
        })
    except Exception as e:
        logger.error(f"第三方登录失败: {e}")
        raise BackendError('An error occurred during social login') from e

    return jsonify({'status': 'success', 'url': response.url}), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """用户注销"""
    context = get_client_context()
    token = _bearer_token()
    try:
        if token:
            get_supabase_initializer().user_client(token).auth.sign_out()
    except Exception as e:
        # 服务端注销失败时本地状态照样清除
        logger.warning(f"用户注销失败: {e}")
    context.session.set(None)
    context.handoff.clear()
    return jsonify({
        'status': 'success',
        'message': 'Logged out successfully'
    }), 200


@auth_bp.route('/user', methods=['GET'])
def get_user():
    """获取当前用户信息，1小时内优先使用缓存"""
    user_id, client = require_authenticated_client()
    context = get_client_context()

    if request.args.get('refresh') != '1':
        cached = context.user_cache.get()
        if cached and cached.id == user_id:
            return jsonify(_user_payload(cached, cached=True)), 200

    user = load_current_user(client, g.auth_user)
    context.user_cache.set(user)
    return jsonify(_user_payload(user)), 200


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    """发送重置密码邮件"""
    data = request.get_json(silent=True) or {}
    email = validate_email(data.get('email'))
    try:
        _anon_client().auth.reset_password_for_email(email, {
            "redirect_to": f"{FLASK_CONFIG['site_url']}/auth/update-password"
        })
    except Exception as e:
        logger.error(f"发送重置密码邮件失败: {e}")
        raise BackendError(str(e)) from e
    return jsonify({'status': 'success', 'message': 'Password reset email sent'}), 200


@auth_bp.route('/update-password', methods=['POST'])
def update_password():
    """使用重置邮件中的会话设置新密码"""
    data = request.get_json(silent=True) or {}
    password = validate_password(data.get('password'))
    if data.get('confirm_password') is not None and data.get('confirm_password') != password:
        raise ValidationError('Passwords do not match.')
    token = _bearer_token()
    refresh_token = data.get('refresh_token')
    if not token or not refresh_token:
        raise AuthRequiredError('会话已过期，请重新发送重置邮件')

    try:
        client = get_supabase_initializer().user_client(token)
        client.auth.set_session(token, refresh_token)
        client.auth.update_user({"password": password})
    except Exception as e:
        logger.error(f"更新密码失败: {e}")
        raise BackendError(str(e)) from e
    return jsonify({'status': 'success', 'message': 'Password updated successfully'}), 200


@auth_bp.route('/set-username', methods=['POST'])
def set_username():
    """为没有合法用户名的账号设置用户名"""
    user_id, client = require_authenticated_client()
    data = request.get_json(silent=True) or {}
    username = validate_username(normalize_username(data.get('username')))

    profiles = ProfileOperations(client)
    if profiles.username_exists(username, exclude_user_id=user_id):
        raise ConflictError('Username is already taken.')
    profiles.set_username(user_id, username)

    context = get_client_context()
    user = load_current_user(client, g.auth_user)
    context.user_cache.set(user)
    return jsonify(_user_payload(user)), 200

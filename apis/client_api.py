from flask import Blueprint, jsonify, request, session
import logging
import uuid
from typing import Optional

from config import CACHE_CONFIG, CLIENT_CONFIG, NAVIGATION_CONFIG, STORAGE_CONFIG
from errors import ValidationError
from state.client_cache import cache_info, clear_all_caches
from state.context import ClientContext, ContextRegistry
from state.local_store import JsonFileStore

logger = logging.getLogger(__name__)

client_bp = Blueprint('client', __name__, url_prefix='/api/client')

CLIENT_ID_HEADER = 'X-Client-Id'

_local_store = None


def _get_local_store():
    global _local_store
    if _local_store is None:
        _local_store = JsonFileStore(STORAGE_CONFIG['local_store_path'])
    return _local_store


def _new_context(client_id):
    return ClientContext(
        client_id,
        store=_get_local_store(),
        publications_duration=CACHE_CONFIG['publications_seconds'],
        user_cache_duration=CACHE_CONFIG['user_seconds'],
        settle_delay=NAVIGATION_CONFIG['settle_seconds'],
        recheck_delay=NAVIGATION_CONFIG['recheck_seconds'],
    )


# 每个浏览器客户端一份状态
contexts = ContextRegistry(_new_context, max_idle=CLIENT_CONFIG['idle_seconds'])


def get_client_id(create=True):
    """客户端id优先取请求头，其次取会话cookie，都没有时生成一个新的（create=False 时返回None）"""
    client_id = request.headers.get(CLIENT_ID_HEADER)
    if client_id:
        return client_id
    client_id = session.get('client_id')
    if not client_id and create:
        client_id = str(uuid.uuid4())
        session['client_id'] = client_id
    return client_id


def get_client_context() -> ClientContext:
    return contexts.get(get_client_id())


def find_client_context() -> Optional[ClientContext]:
    """只读请求使用：没有客户端id时不创建上下文"""
    client_id = get_client_id(create=False)
    return contexts.get(client_id) if client_id else None


def _loading_payload(context):
    if context is None:
        return {
            'status': 'success',
            'client_id': None,
            'is_navigating': False,
            'last_path': None,
            'pending_fetches': 0,
            'global_loading': False,
            'states': [],
        }
    return {
        'status': 'success',
        'client_id': context.client_id,
        'is_navigating': context.tracker.is_navigating,
        'last_path': context.tracker.last_path,
        'pending_fetches': len(context.tracker.pending_fetch_ids),
        'global_loading': context.registry.global_loading,
        'states': [state.to_dict() for state in context.registry.states()],
    }


@client_bp.route('/navigate', methods=['POST'])
def navigate():
    """前端路由切换时调用"""
    data = request.get_json(silent=True) or {}
    path = data.get('path')
    if not path:
        raise ValidationError('缺少path参数')
    context = get_client_context()
    context.tracker.on_route_change(path)
    return jsonify(_loading_payload(context)), 200


@client_bp.route('/loading', methods=['GET'])
def loading_status():
    return jsonify(_loading_payload(find_client_context())), 200


@client_bp.route('/loading/<state_id>', methods=['PUT'])
def register_loading(state_id):
    data = request.get_json(silent=True) or {}
    context = get_client_context()
    context.registry.register(state_id, data.get('message'))
    return jsonify(_loading_payload(context)), 200


@client_bp.route('/loading/<state_id>', methods=['PATCH'])
def set_loading_message(state_id):
    data = request.get_json(silent=True) or {}
    message = data.get('message')
    if message is None:
        raise ValidationError('缺少message参数')
    context = get_client_context()
    context.registry.set_message(state_id, message)
    return jsonify(_loading_payload(context)), 200


@client_bp.route('/loading/<state_id>', methods=['DELETE'])
def unregister_loading(state_id):
    context = get_client_context()
    context.registry.unregister(state_id)
    return jsonify(_loading_payload(context)), 200


@client_bp.route('/reset', methods=['POST'])
def reset_client():
    """页面卸载时调用，释放该客户端的定时器和内存中的文件"""
    client_id = get_client_id(create=False)
    if client_id:
        contexts.dispose(client_id)
    return jsonify({'status': 'success', 'message': '客户端状态已重置'}), 200


@client_bp.route('/cache', methods=['GET'])
def get_cache_info():
    context = find_client_context()
    if context is None:
        return jsonify({'status': 'success', 'cache': {'publications': []}}), 200
    info = cache_info(context.store)
    info['publications'] = context.cache.keys()
    return jsonify({'status': 'success', 'cache': info}), 200


@client_bp.route('/cache', methods=['DELETE'])
def clear_cache():
    context = get_client_context()
    clear_all_caches(context.store)
    context.cache.clear()
    return jsonify({'status': 'success', 'message': '缓存已清除'}), 200

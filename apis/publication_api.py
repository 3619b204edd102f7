from flask import Blueprint, jsonify, request
import logging
import time

from apis.auth_api import _anon_client, get_authenticated_client, require_authenticated_client
from apis.client_api import get_client_context
from db.like_operations import LikeOperations
from db.profile_operations import ProfileOperations
from db.publication_operations import PublicationOperations, PublicationStorage
from db.supabase_client import get_supabase_initializer
from errors import NotFoundError, PdfReselectRequired, PermissionDeniedError, ValidationError
from form_utils.validators import validate_publication_fields
from pdf_utils.pdf_tools import is_pdf_content, render_thumbnail, to_data_url
from schemas import PdfFile

logger = logging.getLogger(__name__)

publication_bp = Blueprint('publications', __name__, url_prefix='/api/publications')


def _storage(client):
    return PublicationStorage(client, admin=get_supabase_initializer().supabase_admin)


def _owned_publication(ops, publication_id, user_id):
    publication = ops.get_publication(publication_id)
    if publication is None:
        raise NotFoundError('Publication not found')
    if publication.user_id != user_id:
        raise PermissionDeniedError('只能修改自己的出版物')
    return publication


def _pdf_from_request(context):
    """
    获取要发布的PDF：优先使用本次上传的文件，其次使用登录前暂存的文件

    Returns:
        tuple: (PdfFile, 是否来自暂存)
    """
    upload = request.files.get('pdf')
    if upload is not None and upload.filename:
        content = upload.read()
        last_modified = request.form.get('last_modified', type=int) or int(time.time() * 1000)
        return PdfFile(name=upload.filename, last_modified=last_modified, content=content), False

    restored = context.handoff.restore()
    if restored.needs_reselect:
        raise PdfReselectRequired(restored.meta.name, restored.meta.last_modified)
    if restored.file is None:
        raise ValidationError('Please select a PDF file.')
    return restored.file, True


@publication_bp.route('/mine', methods=['GET'])
def my_publications():
    """当前用户的出版物列表，缓存有效期内不重复查询"""
    user_id, client = require_authenticated_client()
    context = get_client_context()
    ops = PublicationOperations(client)
    store = context.publications(user_id, ops.list_user_publications)
    result = store.load(force_refresh=request.args.get('refresh') == '1')
    return jsonify({
        'status': 'success',
        'data': [pub.to_dict() for pub in store.publications],
        'from_cache': result.from_cache,
        'superseded': result.superseded,
        'show_loading': not (result.from_cache and context.tracker.should_skip_loading()),
    }), 200


@publication_bp.route('', methods=['GET'])
def all_publications():
    publications = PublicationOperations(_anon_client()).list_all_publications()
    return jsonify({'status': 'success', 'data': [pub.to_dict() for pub in publications]}), 200


@publication_bp.route('/<publication_id>', methods=['GET'])
def get_publication(publication_id):
    publication = PublicationOperations(_anon_client()).get_publication(publication_id)
    if publication is None:
        raise NotFoundError('Publication not found')
    return jsonify({'status': 'success', 'data': publication.to_dict()}), 200


@publication_bp.route('', methods=['POST'])
def create_publication():
    """
    发布新的出版物

    1. 校验标题和描述
    2. 获取PDF（本次上传或登录前暂存的文件）
    3. 上传PDF和缩略图（未提供缩略图时用第一页生成）
    4. 插入数据库记录并加入当前用户的列表缓存
    5. 清除PDF交接记录
    """
    user_id, client = require_authenticated_client()
    context = get_client_context()
    title, description = validate_publication_fields(request.form.get('title'), request.form.get('description'))
    pdf, from_handoff = _pdf_from_request(context)
    if not is_pdf_content(pdf.content):
        raise ValidationError('The selected file is not a valid PDF.')

    storage = _storage(client)
    ops = PublicationOperations(client, storage)
    pdf_upload = storage.upload_pdf(pdf.name, pdf.content)
    uploaded = [pdf_upload['path']]

    thumb_url = None
    thumb_file = request.files.get('thumbnail')
    try:
        if thumb_file is not None and thumb_file.filename:
            thumb_upload = storage.upload_thumbnail(thumb_file.filename, thumb_file.read(),
                                                    thumb_file.mimetype or 'image/png')
            uploaded.append(thumb_upload['path'])
            thumb_url = thumb_upload['public_url']
        else:
            image = render_thumbnail(pdf.content)
            if image:
                thumb_upload = storage.upload_thumbnail(f"{pdf.name.rsplit('.', 1)[0]}.png", image)
                uploaded.append(thumb_upload['path'])
                thumb_url = thumb_upload['public_url']
                context.thumbnails.set(pdf_upload['public_url'], to_data_url(image))

        publication = ops.insert_publication(user_id, title, description, pdf_upload['public_url'], thumb_url)
    except Exception:
        # 数据库记录没有写入，已上传的文件不再需要
        storage.remove(uploaded)
        raise

    context.publications(user_id, ops.list_user_publications).add(publication)
    context.handoff.clear()
    logger.info(f"用户 {user_id} 发布了 {publication.id}，来源: {'暂存文件' if from_handoff else '直接上传'}")
    return jsonify({
        'status': 'success',
        'message': 'Publication created',
        'data': publication.to_dict(),
    }), 201


@publication_bp.route('/<publication_id>', methods=['PATCH'])
def update_publication(publication_id):
    """修改标题、描述或缩略图"""
    user_id, client = require_authenticated_client()
    context = get_client_context()
    storage = _storage(client)
    ops = PublicationOperations(client, storage)
    current = _owned_publication(ops, publication_id, user_id)

    data = request.get_json(silent=True) if request.is_json else request.form
    data = data or {}
    changes = {}
    for field in ('title', 'description'):
        if field in data:
            value = (data.get(field) or '').strip()
            if not value:
                raise ValidationError(f'{field.capitalize()} is required.')
            changes[field] = value
    thumb_file = request.files.get('thumbnail')
    if thumb_file is not None and thumb_file.filename:
        changes['thumb_url'] = storage.upload_thumbnail(
            thumb_file.filename, thumb_file.read(), thumb_file.mimetype or 'image/png')['public_url']
    if not changes:
        return jsonify({'status': 'success', 'data': current.to_dict()}), 200

    store = context.publications(user_id, ops.list_user_publications)
    mutation = store.optimistic(lambda: store.update(publication_id, changes), name=f'更新 {publication_id}')
    updated = mutation.run(lambda: ops.update_publication(publication_id, user_id, changes))
    store.update(publication_id, {'updated_at': updated.updated_at})
    if 'thumb_url' in changes and current.thumb_url:
        storage.remove([storage.path_from_public_url(current.thumb_url)])
    return jsonify({'status': 'success', 'message': 'Publication updated', 'data': updated.to_dict()}), 200


@publication_bp.route('/<publication_id>', methods=['DELETE'])
def delete_publication(publication_id):
    user_id, client = require_authenticated_client()
    context = get_client_context()
    ops = PublicationOperations(client, _storage(client))
    publication = _owned_publication(ops, publication_id, user_id)

    store = context.publications(user_id, ops.list_user_publications)
    mutation = store.optimistic(lambda: store.delete(publication_id), name=f'删除 {publication_id}')
    mutation.run(lambda: ops.delete_publication(publication))
    context.thumbnails.remove(publication.pdf_url)
    return jsonify({'status': 'success', 'message': 'Publication deleted'}), 200


@publication_bp.route('/search', methods=['GET'])
def search():
    """同时搜索用户和出版物"""
    term = (request.args.get('q') or '').strip()
    if not term:
        return jsonify({'status': 'success', 'users': [], 'publications': []}), 200
    client = _anon_client()
    return jsonify({
        'status': 'success',
        'users': ProfileOperations(client).search_profiles(term),
        'publications': PublicationOperations(client).search_publications(term),
    }), 200


@publication_bp.route('/discover', methods=['GET'])
def discover():
    """社区出版物：按用户分组，附带点赞数和当前用户的点赞状态"""
    max_users = request.args.get('max_users', default=10, type=int)
    max_per_user = request.args.get('max_per_user', default=6, type=int)
    user_id, client = get_authenticated_client()
    client = client or _anon_client()

    profiles = ProfileOperations(client).list_profiles(limit=max_users)
    feed = PublicationOperations(client).community_feed(profiles, max_per_user=max_per_user)
    pub_ids = [pub['id'] for entry in feed for pub in entry['publications']]
    likes = LikeOperations(client)
    counts = likes.like_counts(pub_ids)
    liked = likes.liked_set(pub_ids, user_id) if user_id else set()
    for entry in feed:
        for pub in entry['publications']:
            pub['likes'] = counts.get(pub['id'], 0)
            pub['liked'] = pub['id'] in liked
    return jsonify({'status': 'success', 'data': feed}), 200

from flask import Blueprint, jsonify
import logging

from apis.auth_api import _anon_client, get_authenticated_client, require_authenticated_client
from db.like_operations import LikeOperations
from db.publication_operations import PublicationOperations
from errors import NotFoundError, PermissionDeniedError
from state.optimistic import OptimisticMutation

logger = logging.getLogger(__name__)

like_bp = Blueprint('likes', __name__, url_prefix='/api/likes')


@like_bp.route('/<publication_id>', methods=['GET'])
def get_likes(publication_id):
    user_id, client = get_authenticated_client()
    summary = LikeOperations(client or _anon_client()).like_summary(publication_id, user_id)
    return jsonify({'status': 'success', 'publication_id': publication_id, **summary}), 200


@like_bp.route('/<publication_id>/toggle', methods=['POST'])
def toggle_like(publication_id):
    """
    点赞/取消点赞

    本地计数先更新，写入失败时恢复原值。快速连续点击可能与后端竞争，
    点赞数据不要求严格一致。
    """
    user_id, client = require_authenticated_client()
    publication = PublicationOperations(client).get_publication(publication_id)
    if publication is None:
        raise NotFoundError('Publication not found')
    if publication.user_id == user_id:
        raise PermissionDeniedError('不能给自己的出版物点赞')

    likes = LikeOperations(client)
    state = likes.like_summary(publication_id, user_id)
    before = dict(state)

    def apply():
        state['liked'] = not before['liked']
        state['count'] = max(before['count'] - 1, 0) if before['liked'] else before['count'] + 1

    def rollback():
        state.update(before)

    def commit():
        if before['liked']:
            likes.unlike(publication_id, user_id)
        else:
            likes.like(publication_id, user_id)

    OptimisticMutation(apply, rollback, name=f'点赞 {publication_id}').run(commit)
    return jsonify({'status': 'success', 'publication_id': publication_id, **state}), 200

from flask import Blueprint, g, jsonify, request
import logging

from apis.auth_api import _anon_client, load_current_user, require_authenticated_client
from apis.client_api import get_client_context
from db.profile_operations import ProfileOperations
from db.publication_operations import PublicationOperations
from errors import ConflictError, NotFoundError, ValidationError
from form_utils.validators import normalize_username, validate_username

logger = logging.getLogger(__name__)

profile_bp = Blueprint('profiles', __name__, url_prefix='/api/profiles')

AVATAR_TYPES = ('image/png', 'image/jpeg', 'image/webp', 'image/gif')


@profile_bp.route('/<username>', methods=['GET'])
def public_profile(username):
    """公开主页：用户资料和出版物，用户名不区分大小写"""
    client = _anon_client()
    profile = ProfileOperations(client).get_profile_by_username(username)
    if profile is None:
        raise NotFoundError('User not found')
    publications = PublicationOperations(client).list_user_publications(profile.id)
    data = profile.to_dict()
    data.pop('email', None)
    return jsonify({
        'status': 'success',
        'profile': data,
        'publications': [pub.to_dict() for pub in publications],
    }), 200


@profile_bp.route('/me', methods=['PATCH'])
def update_my_profile():
    """修改用户名、简介、所在地"""
    user_id, client = require_authenticated_client()
    data = request.get_json(silent=True) or {}
    profiles = ProfileOperations(client)

    changes = {k: data[k] for k in ('bio', 'location') if k in data}
    if 'username' in data:
        username = validate_username(normalize_username(data.get('username')))
        if profiles.username_exists(username, exclude_user_id=user_id):
            raise ConflictError('Username is already taken.')
        changes['username'] = username

    profiles.update_profile(user_id, changes)
    user = load_current_user(client, g.auth_user)
    get_client_context().user_cache.set(user)
    return jsonify({'status': 'success', 'message': 'Profile updated', 'user': user.to_dict()}), 200


@profile_bp.route('/me/avatar', methods=['POST'])
def upload_avatar():
    user_id, client = require_authenticated_client()
    image = request.files.get('avatar')
    if image is None or not image.filename:
        raise ValidationError('Please select an image.')
    if image.mimetype not in AVATAR_TYPES:
        raise ValidationError('Avatar must be a PNG, JPEG, WEBP or GIF image.')

    ProfileOperations(client).upload_avatar(user_id, image.read(), image.filename, image.mimetype)
    user = load_current_user(client, g.auth_user)
    get_client_context().user_cache.set(user)
    return jsonify({'status': 'success', 'message': 'Avatar updated', 'user': user.to_dict()}), 200

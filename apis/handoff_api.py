from flask import Blueprint, jsonify, request
import logging
import time

from apis.client_api import find_client_context, get_client_context
from errors import ValidationError
from pdf_utils.pdf_tools import is_pdf_content
from schemas import PdfFile

logger = logging.getLogger(__name__)

handoff_bp = Blueprint('handoff', __name__, url_prefix='/api/handoff')


@handoff_bp.route('', methods=['POST'])
def stash_pdf():
    """未登录用户选择PDF后暂存，跳转注册页面后可以继续发布"""
    upload = request.files.get('pdf')
    if upload is None or not upload.filename:
        raise ValidationError('Please select a PDF file.')
    content = upload.read()
    if not is_pdf_content(content):
        raise ValidationError('The selected file is not a valid PDF.')

    last_modified = request.form.get('last_modified', type=int) or int(time.time() * 1000)
    meta = get_client_context().handoff.stash(PdfFile(upload.filename, last_modified, content))
    return jsonify({
        'status': 'success',
        'pdf': meta.to_json_dict(),
        'next': '/auth/register?next=/home/create',
    }), 201


@handoff_bp.route('', methods=['GET'])
def restore_pdf():
    """
    返回暂存状态：
        ready    - 文件仍在，可以直接发布
        reselect - 只剩元数据，需要重新选择文件
        empty    - 没有暂存的文件
    """
    context = find_client_context()
    handoff = context.handoff.restore().to_dict() if context else {'status': 'empty'}
    body = {'status': 'success', 'handoff': handoff}
    return jsonify(body), 200


@handoff_bp.route('', methods=['DELETE'])
def clear_pdf():
    context = find_client_context()
    if context:
        context.handoff.clear()
    return jsonify({'status': 'success', 'message': '已清除暂存的文件'}), 200

from flask import Blueprint, jsonify, request
import logging
import requests
from urllib.parse import urlparse

from apis.auth_api import _anon_client
from apis.client_api import find_client_context
from config import SUPABASE_CONFIG, VIEWER_CONFIG
from db.publication_operations import PublicationOperations, PublicationStorage
from errors import PdfReselectRequired
from pdf_utils.pdf_tools import filename_from_url, is_pdf_content, is_pdf_response, page_count

logger = logging.getLogger(__name__)

viewer_bp = Blueprint('viewer', __name__, url_prefix='/api/view')


class PdfTooLarge(Exception):
    pass


def _error_state(message, status_code=502):
    """翻页阅读器加载失败时的整页错误状态，前端显示重试和返回按钮"""
    return jsonify({
        'status': 'error',
        'message': message,
        'retry': True,
        'actions': ['reload', 'back'],
    }), status_code


def _describe(name, content, source):
    return jsonify({
        'status': 'success',
        'source': source,
        'name': name,
        'size': len(content),
        'pages': page_count(content),
    }), 200


def is_storage_url(url) -> bool:
    """只允许读取本站 Supabase 存储桶中的公开文件"""
    base = SUPABASE_CONFIG.get('url')
    if not base or not url:
        return False
    parsed, expected = urlparse(url), urlparse(base)
    if parsed.scheme not in ('http', 'https') or parsed.scheme != expected.scheme:
        return False
    if parsed.netloc != expected.netloc:
        return False
    return PublicationStorage(_anon_client()).path_from_public_url(url) is not None


def _read_limited(response, limit):
    """分块读取响应体，超过 limit 字节时中止"""
    declared = response.headers.get('content-length')
    if declared and declared.isdigit() and int(declared) > limit:
        raise PdfTooLarge()
    chunks, size = [], 0
    for chunk in response.iter_content(chunk_size=8192):
        if not chunk:
            continue
        size += len(chunk)
        if size > limit:
            raise PdfTooLarge()
        chunks.append(chunk)
    return b''.join(chunks)


def _fetch_pdf(pdf_url):
    if not is_storage_url(pdf_url):
        logger.warning(f"拒绝读取存储桶以外的链接: {pdf_url}")
        return _error_state('Only PDFs published on Nekopress can be viewed', 400)
    try:
        response = requests.get(pdf_url, timeout=VIEWER_CONFIG['fetch_timeout'], stream=True,
                                allow_redirects=False)
    except requests.RequestException as e:
        logger.error(f"获取PDF失败: {pdf_url}, {e}")
        return _error_state(f'Failed to load PDF from URL: {e}')
    try:
        if response.status_code != 200:
            return _error_state(f'Failed to fetch PDF: {response.status_code} {response.reason}')
        try:
            content = _read_limited(response, VIEWER_CONFIG['max_pdf_bytes'])
        except PdfTooLarge:
            return _error_state('PDF file is too large to view', 413)
        except requests.RequestException as e:
            logger.error(f"读取PDF失败: {pdf_url}, {e}")
            return _error_state(f'Failed to load PDF from URL: {e}')
    finally:
        response.close()

    if not is_pdf_response(response) and not is_pdf_content(content):
        return _error_state('The provided URL does not point to a valid PDF file', 422)
    try:
        return _describe(filename_from_url(pdf_url), content, 'url')
    except Exception as e:
        logger.error(f"解析PDF失败: {pdf_url}, {e}", exc_info=True)
        return _error_state('Failed to load PDF file', 422)


@viewer_bp.route('', methods=['GET'])
def view_pdf():
    """
    加载翻页阅读器需要的PDF

    依次尝试：pdf 参数中的链接、id 参数对应的出版物、暂存的PDF。
    链接只能指向本站存储桶。
    """
    pdf_url = request.args.get('pdf')
    publication_id = request.args.get('id')

    if not pdf_url and publication_id:
        publication = PublicationOperations(_anon_client()).get_publication(publication_id)
        if publication is None:
            return _error_state(f'PDF with ID: {publication_id} not found', 404)
        pdf_url = publication.pdf_url

    if pdf_url:
        return _fetch_pdf(pdf_url)

    context = find_client_context()
    restored = context.handoff.restore() if context else None
    if restored is not None and restored.needs_reselect:
        raise PdfReselectRequired(restored.meta.name, restored.meta.last_modified)
    if restored is not None and restored.file is not None:
        return _describe(restored.file.name, restored.file.content, 'handoff')
    return _error_state('No PDF file available to view', 404)

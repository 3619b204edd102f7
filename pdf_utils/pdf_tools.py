# -*- coding: utf-8 -*-
"""
PDF 相关的小工具：格式判断、页数、首页缩略图
"""
import base64
import logging
from io import BytesIO
from typing import Optional
from urllib.parse import unquote, urlparse

import fitz

logger = logging.getLogger(__name__)


def is_pdf_content(content: bytes) -> bool:
    """
    检查字节内容是否为PDF格式

    Args:
        content: 文件的字节内容

    Returns:
        bool: 如果是PDF格式返回True，否则返回False
    """
    # PDF文件以'%PDF-'开头
    if content and len(content) > 4:
        return content.startswith(b'%PDF-')
    return False


def is_pdf_response(response) -> bool:
    """检查HTTP响应头是否声明为PDF"""
    content_type = response.headers.get('content-type', '').lower()
    return 'application/pdf' in content_type


def page_count(content: bytes) -> int:
    doc = fitz.open(stream=BytesIO(content), filetype="pdf")
    try:
        return doc.page_count
    finally:
        doc.close()


def render_thumbnail(content: bytes, zoom: float = 0.5) -> Optional[bytes]:
    """
    渲染PDF第一页为PNG

    Args:
        content: PDF字节内容
        zoom: 缩放比例

    Returns:
        bytes: PNG图片内容，PDF无法打开或没有页面时返回None
    """
    try:
        doc = fitz.open(stream=BytesIO(content), filetype="pdf")
    except Exception as e:
        logger.warning(f"无法打开PDF生成缩略图: {e}")
        return None
    try:
        if doc.page_count == 0:
            return None
        pix = doc[0].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return pix.tobytes("png")
    finally:
        doc.close()


def to_data_url(image: bytes, mime: str = 'image/png') -> str:
    return f"data:{mime};base64,{base64.b64encode(image).decode('ascii')}"


def filename_from_url(url: str, default: str = 'document.pdf') -> str:
    path = urlparse(url).path
    name = unquote(path.rsplit('/', 1)[-1]) if path else ''
    return name or default

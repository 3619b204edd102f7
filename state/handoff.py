"""
未登录时选择的PDF在注册/登录跳转后的交接

持久化存储中只保存 {name, lastModified}，文件内容无法序列化，只保留在内存里。
页面重新加载（即新的 PdfHandoff 对象）后只剩元数据，restore() 会明确返回
需要重新选择文件的状态，而不是返回空文件。
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from schemas import PdfFile, PendingPdfHandoff
from state.local_store import read_json, write_json

logger = logging.getLogger(__name__)

PDF_STORAGE_KEY = 'nekopress_pdf_upload'

EMPTY = 'empty'
READY = 'ready'
RESELECT = 'reselect'


@dataclass
class HandoffRestore:
    status: str
    meta: Optional[PendingPdfHandoff] = None
    file: Optional[PdfFile] = None

    @property
    def needs_reselect(self) -> bool:
        return self.status == RESELECT

    def to_dict(self):
        data = {'status': self.status}
        if self.meta:
            data['pdf'] = self.meta.to_json_dict()
        if self.file:
            data['size'] = len(self.file.content)
        if self.needs_reselect:
            data['message'] = f'请重新选择文件 "{self.meta.name}"'
        return data


class PdfHandoff:
    def __init__(self, store, key: str = PDF_STORAGE_KEY):
        self._store = store
        self._key = key
        self._lock = threading.Lock()
        self._file: Optional[PdfFile] = None

    def stash(self, pdf: PdfFile) -> PendingPdfHandoff:
        meta = PendingPdfHandoff(name=pdf.name, last_modified=pdf.last_modified)
        with self._lock:
            write_json(self._store, self._key, meta.to_json_dict())
            self._file = pdf
        logger.info(f"已暂存PDF元数据: {pdf.name}")
        return meta

    def pending(self) -> Optional[PendingPdfHandoff]:
        data = read_json(self._store, self._key)
        if not isinstance(data, dict) or not data.get('name'):
            return None
        return PendingPdfHandoff.from_json_dict(data)

    def restore(self) -> HandoffRestore:
        meta = self.pending()
        if meta is None:
            return HandoffRestore(EMPTY)
        with self._lock:
            live = self._file
        if live is not None and live.name == meta.name and live.last_modified == meta.last_modified:
            return HandoffRestore(READY, meta=meta, file=live)
        logger.warning(f"PDF文件内容已丢失，需要重新选择: {meta.name}")
        return HandoffRestore(RESELECT, meta=meta)

    def clear(self):
        with self._lock:
            self._store.remove_item(self._key)
            self._file = None

    def drop_file(self):
        """只丢弃内存中的文件内容，持久化的元数据保留"""
        with self._lock:
            self._file = None

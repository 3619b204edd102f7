# -*- coding: utf-8 -*-
"""
PDF交接和本地存储测试
"""

import json

from schemas import PdfFile
from state.handoff import EMPTY, PDF_STORAGE_KEY, READY, RESELECT, PdfHandoff
from state.local_store import JsonFileStore, MemoryStore, NamespacedStore, read_json


PDF = PdfFile(name='zine.pdf', last_modified=1700000000000, content=b'%PDF-1.7 fake')


def test_stash_persists_only_metadata():
    store = MemoryStore()
    meta = PdfHandoff(store).stash(PDF)

    assert meta.to_json_dict() == {'name': 'zine.pdf', 'lastModified': 1700000000000}
    assert json.loads(store.get_item(PDF_STORAGE_KEY)) == {'name': 'zine.pdf', 'lastModified': 1700000000000}


def test_restore_in_same_session_returns_file():
    handoff = PdfHandoff(MemoryStore())
    handoff.stash(PDF)

    restored = handoff.restore()
    assert restored.status == READY
    assert restored.file.content == PDF.content
    assert restored.to_dict()['size'] == len(PDF.content)


def test_restore_after_reload_requires_reselect():
    """页面重新加载后文件内容丢失，必须明确要求重新选择"""
    store = MemoryStore()
    PdfHandoff(store).stash(PDF)

    restored = PdfHandoff(store).restore()
    assert restored.status == RESELECT
    assert restored.needs_reselect
    assert restored.file is None
    assert restored.meta.name == 'zine.pdf'
    assert restored.to_dict()['pdf'] == {'name': 'zine.pdf', 'lastModified': 1700000000000}


def test_dropped_file_requires_reselect():
    handoff = PdfHandoff(MemoryStore())
    handoff.stash(PDF)
    handoff.drop_file()
    assert handoff.restore().status == RESELECT
    assert handoff.pending().name == 'zine.pdf'


def test_mismatched_live_file_requires_reselect():
    store = MemoryStore()
    handoff = PdfHandoff(store)
    handoff.stash(PDF)
    store.set_item(PDF_STORAGE_KEY, json.dumps({'name': 'other.pdf', 'lastModified': 1}))
    assert handoff.restore().status == RESELECT


def test_clear_removes_everything():
    store = MemoryStore()
    handoff = PdfHandoff(store)
    handoff.stash(PDF)
    handoff.clear()

    assert store.get_item(PDF_STORAGE_KEY) is None
    assert handoff.restore().status == EMPTY
    assert handoff.pending() is None


def test_invalid_json_is_treated_as_empty():
    store = MemoryStore({PDF_STORAGE_KEY: '{not json'})
    assert PdfHandoff(store).restore().status == EMPTY


def test_json_file_store_survives_restart(tmp_path):
    path = str(tmp_path / 'store' / 'local.json')
    store = JsonFileStore(path)
    PdfHandoff(NamespacedStore(store, 'client-1')).stash(PDF)

    reopened = JsonFileStore(path)
    assert reopened.keys() == [f'client-1:{PDF_STORAGE_KEY}']
    restored = PdfHandoff(NamespacedStore(reopened, 'client-1')).restore()
    assert restored.status == RESELECT
    assert PdfHandoff(NamespacedStore(reopened, 'client-2')).restore().status == EMPTY


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / 'local.json'
    path.write_text('garbage', encoding='utf-8')
    store = JsonFileStore(str(path))
    assert store.keys() == []
    store.set_item('a', '1')
    assert read_json(JsonFileStore(str(path)), 'a') == 1


def test_namespaced_store_isolates_clients():
    base = MemoryStore()
    a = NamespacedStore(base, 'a')
    b = NamespacedStore(base, 'b')
    a.set_item('k', '1')

    assert b.get_item('k') is None
    assert a.keys() == ['k']
    a.remove_item('k')
    assert base.keys() == []

# -*- coding: utf-8 -*-
"""
数据库操作测试，使用 conftest 中的内存版 Supabase
"""

from datetime import datetime

import pytest

from db.like_operations import LikeOperations
from db.profile_operations import ProfileOperations
from db.publication_operations import PublicationOperations, PublicationStorage
from errors import BackendError
from schemas import Publication


def _ops(fake_supabase, sleeps=None):
    sleeps = sleeps if sleeps is not None else []
    return PublicationOperations(fake_supabase, PublicationStorage(fake_supabase, 'publications'), sleep=sleeps.append)


def test_upload_and_remove_storage_objects(fake_supabase):
    storage = PublicationStorage(fake_supabase, 'publications')
    uploaded = storage.upload_pdf('zine.pdf', b'%PDF-1.4')

    assert uploaded['path'].startswith('pdfs/') and uploaded['path'].endswith('_zine.pdf')
    assert uploaded['file_size'] == 8
    assert storage.path_from_public_url(uploaded['public_url']) == uploaded['path']
    assert storage.path_from_public_url('https://elsewhere.com/x.pdf') is None

    assert storage.remove([uploaded['path'], None])
    assert fake_supabase.storage.buckets['publications'].files == {}


def test_storage_remove_failure_is_not_fatal(fake_supabase):
    fake_supabase.storage.fail_removes = True
    assert PublicationStorage(fake_supabase, 'publications').remove(['pdfs/a.pdf']) is False


def test_upload_failure_raises_backend_error(fake_supabase):
    fake_supabase.storage.fail_uploads = True
    with pytest.raises(BackendError):
        PublicationStorage(fake_supabase, 'publications').upload_thumbnail('a.png', b'png')


def test_list_user_publications_newest_first(fake_supabase):
    first = fake_supabase.add_publication('u1', title='first')
    second = fake_supabase.add_publication('u1', title='second')
    fake_supabase.add_publication('u2', title='other')

    publications = _ops(fake_supabase).list_user_publications('u1')
    assert [p.id for p in publications] == [second['id'], first['id']]
    assert all(isinstance(p, Publication) for p in publications)


def test_get_publication_missing_returns_none(fake_supabase):
    assert _ops(fake_supabase).get_publication('missing') is None


def test_list_failure_is_wrapped(fake_supabase):
    fake_supabase.fail('publications', 'select')
    with pytest.raises(BackendError):
        _ops(fake_supabase).list_user_publications('u1')


def test_update_publication_only_by_owner(fake_supabase):
    row = fake_supabase.add_publication('u1')
    ops = _ops(fake_supabase)

    updated = ops.update_publication(row['id'], 'u1', {'title': 'New', 'user_id': 'hijack'})
    assert updated.title == 'New'
    assert updated.user_id == 'u1'

    with pytest.raises(BackendError):
        ops.update_publication(row['id'], 'u2', {'title': 'Nope'})


def test_update_publication_sends_iso_timestamp(fake_supabase):
    row = fake_supabase.add_publication('u1')
    updated = _ops(fake_supabase).update_publication(row['id'], 'u1', {'description': 'Changed'})

    stamp = datetime.fromisoformat(updated.updated_at)
    assert stamp.tzinfo is not None
    assert fake_supabase.tables['publications'][0]['updated_at'] == updated.updated_at

    # 数据库不会把字符串当作函数执行
    with pytest.raises(Exception, match='timestamp'):
        fake_supabase.table('publications').update({'updated_at': 'now()'}).eq('id', row['id']).execute()


def test_delete_removes_likes_row_and_files(fake_supabase):
    storage = PublicationStorage(fake_supabase, 'publications')
    pdf = storage.upload_pdf('a.pdf', b'%PDF-1.4')
    thumb = storage.upload_thumbnail('a.png', b'png')
    row = fake_supabase.add_publication('u1', pdf_url=pdf['public_url'], thumb_url=thumb['public_url'])
    LikeOperations(fake_supabase).like(row['id'], 'u2')
    sleeps = []

    assert _ops(fake_supabase, sleeps).delete_publication(Publication.from_row(row))
    assert fake_supabase.tables['publications'] == []
    assert fake_supabase.tables['publication_likes'] == []
    assert fake_supabase.storage.buckets['publications'].files == {}
    assert sleeps == []


def test_delete_verification_retries_then_fails(fake_supabase):
    """记录删除后仍然存在时最多校验3次，然后报错，存储文件保留"""
    storage = PublicationStorage(fake_supabase, 'publications')
    pdf = storage.upload_pdf('a.pdf', b'%PDF-1.4')
    row = fake_supabase.add_publication('u1', pdf_url=pdf['public_url'])
    fake_supabase.ignore_deletes.add('publications')
    sleeps = []

    with pytest.raises(BackendError):
        _ops(fake_supabase, sleeps).delete_publication(Publication.from_row(row))

    verify_selects = [c for c in fake_supabase.calls if c == ('publications', 'select')]
    assert len(verify_selects) == 3
    assert len(sleeps) == 2
    assert pdf['path'] in fake_supabase.storage.buckets['publications'].files


def test_search_publications_includes_owner(fake_supabase):
    owner = fake_supabase.add_user('neko@example.com', username='neko')
    fake_supabase.add_publication(owner.id, title='Cat Zine', description='whiskers')
    fake_supabase.add_publication(owner.id, title='Dogs', description='more CATS inside')
    fake_supabase.add_publication(owner.id, title='Birds', description='feathers')

    results = _ops(fake_supabase).search_publications('cat')
    assert sorted(r['title'] for r in results) == ['Cat Zine', 'Dogs']
    assert {r['username'] for r in results} == {'neko'}


def test_community_feed_groups_by_user(fake_supabase):
    alice = fake_supabase.add_user('a@example.com', username='alice')
    bob = fake_supabase.add_user('b@example.com', username='bob')
    fake_supabase.add_user('c@example.com', username='carol')
    for i in range(3):
        fake_supabase.add_publication(alice.id, title=f'a{i}')
    fake_supabase.add_publication(bob.id, title='b0')

    profiles = ProfileOperations(fake_supabase).list_profiles()
    feed = _ops(fake_supabase).community_feed(profiles, max_per_user=2)
    assert [entry['username'] for entry in feed] == ['alice', 'bob']
    assert [p['title'] for p in feed[0]['publications']] == ['a2', 'a1']


def test_profile_lookups(fake_supabase):
    user = fake_supabase.add_user('neko@example.com', username='neko')
    profiles = ProfileOperations(fake_supabase)

    assert profiles.get_profile_by_username('NEKO').id == user.id
    assert profiles.get_profile_by_username('nobody') is None
    assert profiles.username_exists('neko')
    assert not profiles.username_exists('neko', exclude_user_id=user.id)
    assert profiles.email_exists('neko@example.com')
    assert [p['username'] for p in profiles.search_profiles('ek')] == ['neko']


def test_update_profile_ignores_unknown_fields(fake_supabase):
    user = fake_supabase.add_user('neko@example.com', username='neko')
    profile = ProfileOperations(fake_supabase).update_profile(user.id, {'bio': 'meow', 'email': 'x@y.z'})
    assert profile.bio == 'meow'
    assert profile.email == 'neko@example.com'


def test_upload_avatar_sets_public_url(fake_supabase):
    user = fake_supabase.add_user('neko@example.com', username='neko')
    profile = ProfileOperations(fake_supabase).upload_avatar(user.id, b'img', 'me.png')
    assert profile.avatar_url.startswith('https://fake.supabase.co/storage/v1/object/public/avatars/')
    assert f'avatars/{user.id}/' in profile.avatar_url


def test_like_summary_and_counts(fake_supabase):
    likes = LikeOperations(fake_supabase)
    likes.like('p1', 'u1')
    likes.like('p1', 'u2')
    likes.like('p2', 'u2')

    assert likes.like_summary('p1', 'u1') == {'count': 2, 'liked': True}
    assert likes.like_summary('p2', 'u1') == {'count': 1, 'liked': False}
    assert likes.like_summary('p2') == {'count': 1, 'liked': False}
    assert likes.like_counts(['p1', 'p2', 'p3']) == {'p1': 2, 'p2': 1}
    assert likes.liked_set(['p1', 'p2'], 'u1') == {'p1'}
    assert likes.like_counts([]) == {}


def test_duplicate_like_is_backend_error(fake_supabase):
    likes = LikeOperations(fake_supabase)
    likes.like('p1', 'u1')
    with pytest.raises(BackendError):
        likes.like('p1', 'u1')
    likes.unlike('p1', 'u1')
    assert likes.like_summary('p1', 'u1') == {'count': 0, 'liked': False}

"""
测试公共夹具

FakeSupabase 在内存中模拟 Supabase 客户端的表查询、对象存储和认证接口，
只实现本项目用到的调用方式。
"""

import itertools
import re
import uuid
from datetime import datetime
from types import SimpleNamespace

import pytest

from db import supabase_client
from state.context import ClientContext, ContextRegistry
from state.local_store import MemoryStore


class FakeAPIError(Exception):
    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


def _check_timestamps(row):
    """timestamptz 列只接受 ISO 8601 格式，和 Postgres 一样拒绝其它字符串"""
    for column, value in row.items():
        if column.endswith('_at') and value is not None:
            try:
                datetime.fromisoformat(str(value))
            except ValueError:
                raise FakeAPIError(f'invalid input syntax for type timestamp with time zone: "{value}"',
                                   code='22007') from None


def _ilike(value, pattern):
    if value is None:
        return False
    regex = '.*'.join(re.escape(part) for part in pattern.split('%'))
    return re.fullmatch(regex, str(value), re.IGNORECASE | re.DOTALL) is not None


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = 'select'
        self.columns = '*'
        self.payload = None
        self.filters = []
        self._order = None
        self._limit = None

    def select(self, columns='*', count=None):
        self.op = 'select'
        self.columns = columns
        return self

    def insert(self, rows):
        self.op = 'insert'
        self.payload = rows
        return self

    def update(self, patch):
        self.op = 'update'
        self.payload = patch
        return self

    def delete(self):
        self.op = 'delete'
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: str(row.get(column)) == str(value))
        return self

    def in_(self, column, values):
        allowed = {str(v) for v in values}
        self.filters.append(lambda row: str(row.get(column)) in allowed)
        return self

    def ilike(self, column, pattern):
        self.filters.append(lambda row: _ilike(row.get(column), pattern))
        return self

    def or_(self, expression):
        clauses = []
        for part in expression.split(','):
            column, operator, pattern = part.split('.', 2)
            assert operator == 'ilike'
            clauses.append((column, pattern))
        self.filters.append(lambda row: any(_ilike(row.get(c), p) for c, p in clauses))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        failure = self.db.failures.get((self.table, self.op))
        if failure is not None:
            raise failure
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == 'insert':
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.insert_row(self.table, dict(item)) for item in payload]
            return SimpleNamespace(data=[dict(r) for r in inserted], count=len(inserted))

        matched = [row for row in rows if self._matches(row)]
        if self.op == 'update':
            _check_timestamps(self.payload)
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(r) for r in matched], count=len(matched))
        if self.op == 'delete':
            if self.table not in self.db.ignore_deletes:
                self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=[dict(r) for r in matched], count=len(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: r.get(column) or '', reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        data = [self._project(self.db.with_joins(self.table, self.columns, dict(r))) for r in matched]
        return SimpleNamespace(data=data, count=len(data))

    def _project(self, row):
        if self.columns.strip() == '*':
            return row
        fields, current, depth = [], '', 0
        for ch in self.columns:
            depth += {'(': 1, ')': -1}.get(ch, 0)
            if ch == ',' and depth == 0:
                fields.append(current.strip())
                current = ''
            else:
                current += ch
        fields.append(current.strip())
        projected = {f: row.get(f) for f in fields if '(' not in f}
        if 'profiles' in row:
            projected['profiles'] = row['profiles']
        return projected


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name
        self.files = {}

    def upload(self, path, file, file_options=None):
        if self.storage.fail_uploads:
            raise FakeAPIError('storage unavailable')
        if path in self.files:
            raise FakeAPIError('The resource already exists', code='409')
        self.files[path] = file
        return SimpleNamespace(path=path)

    def get_public_url(self, path):
        return f"https://fake.supabase.co/storage/v1/object/public/{self.name}/{path}"

    def remove(self, paths):
        if self.storage.fail_removes:
            raise FakeAPIError('storage unavailable')
        for path in paths:
            self.files.pop(path, None)
        return [SimpleNamespace(name=p) for p in paths]


class FakeStorage:
    def __init__(self):
        self.buckets = {}
        self.fail_uploads = False
        self.fail_removes = False

    def from_(self, bucket):
        if bucket not in self.buckets:
            self.buckets[bucket] = FakeBucket(self, bucket)
        return self.buckets[bucket]


class FakeAuth:
    def __init__(self, db):
        self.db = db
        self.tokens = {}
        self.accounts = {}
        self.reset_emails = []
        self.updated_passwords = []
        self.signed_out = 0

    def get_user(self, token=None):
        user = self.tokens.get(token)
        if user is None:
            raise FakeAPIError('invalid JWT')
        return SimpleNamespace(user=user)

    def sign_up(self, credentials):
        email = credentials['email']
        if email in self.accounts:
            raise FakeAPIError('User already registered')
        metadata = credentials.get('options', {}).get('data', {})
        user = self.db.add_user(email=email, password=credentials['password'],
                                username=metadata.get('username'))
        return SimpleNamespace(user=user, session=None)

    def sign_in_with_password(self, credentials):
        account = self.accounts.get(credentials['email'])
        if account is None or account['password'] != credentials['password']:
            raise FakeAPIError('Invalid login credentials')
        user = account['user']
        session = SimpleNamespace(access_token=account['token'], refresh_token=f"refresh-{account['token']}")
        return SimpleNamespace(user=user, session=session)

    def sign_in_with_oauth(self, credentials):
        return SimpleNamespace(
            provider=credentials['provider'],
            url=f"https://fake.supabase.co/auth/v1/authorize?provider={credentials['provider']}",
        )

    def sign_out(self):
        self.signed_out += 1

    def reset_password_for_email(self, email, options=None):
        self.reset_emails.append((email, options))

    def set_session(self, access_token, refresh_token):
        if access_token not in self.tokens:
            raise FakeAPIError('invalid session')

    def update_user(self, attributes):
        self.updated_passwords.append(attributes.get('password'))


class FakeSupabase:
    def __init__(self):
        self.tables = {'profiles': [], 'publications': [], 'publication_likes': []}
        self.failures = {}
        self.ignore_deletes = set()
        self.calls = []
        self._seq = itertools.count(1)
        self.storage = FakeStorage()
        self.auth = FakeAuth(self)

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, op, error=None):
        self.failures[(table, op)] = error or FakeAPIError(f'{table} {op} failed')

    def count_calls(self, table, op='select'):
        return sum(1 for call in self.calls if call == (table, op))

    def insert_row(self, table, row):
        _check_timestamps(row)
        n = next(self._seq)
        if table == 'publication_likes':
            for existing in self.tables[table]:
                if (existing['publication_id'], existing['user_id']) == (row['publication_id'], row['user_id']):
                    raise FakeAPIError('duplicate key value violates unique constraint', code='23505')
        else:
            row.setdefault('id', str(uuid.uuid4()))
            row.setdefault('created_at', f"2026-01-01T00:00:00.{n:06d}")
        self.tables.setdefault(table, []).append(row)
        return row

    def with_joins(self, table, columns, row):
        if table == 'publications' and 'profiles!' in columns:
            owner = next((p for p in self.tables['profiles'] if p['id'] == row.get('user_id')), None)
            row['profiles'] = {'username': owner.get('username'), 'avatar_url': owner.get('avatar_url')} \
                if owner else None
        return row

    def add_user(self, email, password='secret123', username=None, token=None, metadata=None):
        user_id = str(uuid.uuid4())
        token = token or f"token-{user_id}"
        user = SimpleNamespace(
            id=user_id,
            email=email,
            user_metadata=dict(metadata or {}),
            created_at='2026-01-01T00:00:00',
        )
        self.auth.tokens[token] = user
        self.auth.accounts[email] = {'password': password, 'user': user, 'token': token}
        self.tables['profiles'].append({'id': user_id, 'username': username, 'email': email,
                                        'avatar_url': None, 'bio': None, 'location': None})
        return user

    def add_publication(self, user_id, title='Title', description='Description', pdf_url=None, thumb_url=None):
        row = self.insert_row('publications', {
            'user_id': user_id,
            'title': title,
            'description': description,
            'pdf_url': pdf_url or f"https://fake.supabase.co/storage/v1/object/public/publications/pdfs/{title}.pdf",
            'thumb_url': thumb_url,
        })
        return row


class FakeInitializer:
    def __init__(self, fake):
        self.supabase = fake
        self.supabase_admin = fake

    def user_client(self, access_token):
        return self.supabase


class ManualScheduler:
    """手动触发的定时器，用于确定性地测试防抖逻辑"""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = SimpleNamespace(delay=delay, callback=callback, cancelled=False, fired=False)
        timer.cancel = lambda: setattr(timer, 'cancelled', True)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_next(self):
        timer = self.active[0]
        timer.fired = True
        timer.callback()
        return timer


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_supabase(monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(supabase_client, '_initializer', FakeInitializer(fake))
    return fake


@pytest.fixture
def contexts(monkeypatch, scheduler):
    from apis import client_api

    shared_store = MemoryStore()
    registry = ContextRegistry(lambda client_id: ClientContext(client_id, store=shared_store, scheduler=scheduler))
    monkeypatch.setattr(client_api, 'contexts', registry)
    yield registry
    registry.dispose_all()


@pytest.fixture
def client(fake_supabase, contexts):
    from api import app

    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client


def auth_headers(token, client_id='client-1'):
    return {'Authorization': f'Bearer {token}', 'X-Client-Id': client_id}


@pytest.fixture
def alice(fake_supabase):
    user = fake_supabase.add_user('alice@example.com', username='alice', token='tok-alice')
    return SimpleNamespace(user=user, id=user.id, headers=auth_headers('tok-alice'))


@pytest.fixture
def bob(fake_supabase):
    user = fake_supabase.add_user('bob@example.com', username='bob', token='tok-bob')
    return SimpleNamespace(user=user, id=user.id, headers=auth_headers('tok-bob', 'client-2'))


@pytest.fixture
def pdf_bytes():
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Nekopress flipbook")
    doc.new_page()
    content = doc.tobytes()
    doc.close()
    return content

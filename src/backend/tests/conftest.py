"""
Shared fixtures: an in-memory stand-in for the Supabase client.

Covers the parts the services use: table select/insert/delete with eq,
gte, lte, order and limit; embedded selects between receipts and
receipt_items; auth.get_user; storage upload/get_public_url/remove.
"""

import copy
import re
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

PUBLIC_URL_BASE = "https://example.supabase.co/storage/v1/object/public"

EMBED_PATTERN = re.compile(r'(\w+):(\w+)(!inner)?\(([^)]*)\)')
ISO_PREFIX = re.compile(r'^\d{4}-\d{2}-\d{2}')


def _comparable(value):
    """Timestamps compare as instants (date-only is midnight UTC), like timestamptz."""
    if isinstance(value, str) and ISO_PREFIX.match(value):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = None
        self.payload = None
        self.embeds = []
        self.filters = []
        self.ordering = None
        self.max_rows = None

    # Actions
    def select(self, columns='*', count=None):
        self.action = 'select'
        self.embeds = EMBED_PATTERN.findall(columns)
        return self

    def insert(self, data):
        self.action = 'insert'
        self.payload = data
        return self

    def delete(self):
        self.action = 'delete'
        return self

    # Filters
    def eq(self, column, value):
        self.filters.append((column, lambda a, b: a == b, value))
        return self

    def gte(self, column, value):
        self.filters.append((column, lambda a, b: a is not None and _comparable(a) >= _comparable(b), value))
        return self

    def lte(self, column, value):
        self.filters.append((column, lambda a, b: a is not None and _comparable(a) <= _comparable(b), value))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _embed(self, row):
        row = dict(row)
        for alias, target, inner, _columns in self.embeds:
            if target == 'receipt_items':
                row[alias] = [
                    dict(item) for item in self.db.tables['receipt_items']
                    if item['receipt_id'] == row['id']
                ]
            elif target == 'receipts':
                parent = next(
                    (r for r in self.db.tables['receipts'] if r['id'] == row.get('receipt_id')),
                    None
                )
                if parent is None and inner:
                    return None
                row[alias] = dict(parent) if parent else None
        return row

    @staticmethod
    def _resolve(row, column):
        value = row
        for part in column.split('.'):
            value = value.get(part) if isinstance(value, dict) else None
        return value

    def _matches(self, row):
        return all(op(self._resolve(row, column), value) for column, op, value in self.filters)

    def execute(self):
        failure = self.db.failures.get((self.table, self.action))
        if failure is not None:
            raise failure

        self.db.calls.append((self.table, self.action))

        if self.action == 'insert':
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.add_row(self.table, row) for row in rows]
            return FakeResponse(copy.deepcopy(inserted))

        if self.action == 'delete':
            rows = self.db.tables[self.table]
            doomed = [row for row in rows if self._matches(row)]
            self.db.tables[self.table] = [row for row in rows if row not in doomed]
            if self.table == 'receipts':
                # ON DELETE CASCADE
                ids = {row['id'] for row in doomed}
                self.db.tables['receipt_items'] = [
                    item for item in self.db.tables['receipt_items']
                    if item['receipt_id'] not in ids
                ]
            return FakeResponse(copy.deepcopy(doomed))

        rows = [self._embed(row) for row in self.db.tables[self.table]]
        rows = [row for row in rows if row is not None and self._matches(row)]
        if self.ordering:
            column, desc = self.ordering
            rows.sort(key=lambda row: row.get(column) or '', reverse=desc)
        if self.max_rows is not None:
            rows = rows[:self.max_rows]
        return FakeResponse(copy.deepcopy(rows), count=len(rows))


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.storage.fail_upload is not None:
            raise self.storage.fail_upload
        self.storage.objects[(self.name, path)] = {
            'data': file,
            'options': file_options or {}
        }
        return SimpleNamespace(path=path)

    def get_public_url(self, path):
        return f"{PUBLIC_URL_BASE}/{self.name}/{path}"

    def remove(self, paths):
        for path in paths:
            self.storage.objects.pop((self.name, path), None)
        return []


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.fail_upload = None
        self.buckets = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)

    def list_buckets(self):
        return [SimpleNamespace(name=name, public=public) for name, public in self.buckets.items()]


class FakeAuth:
    def __init__(self):
        self.tokens = {}

    def get_user(self, jwt=None):
        user_id = self.tokens.get(jwt)
        if user_id is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=user_id))


class FakeSupabase:
    """In-memory Supabase client."""

    def __init__(self):
        self.tables = {'receipts': [], 'receipt_items': []}
        self.failures = {}
        self.calls = []
        self.auth = FakeAuth()
        self.storage = FakeStorage()
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def table(self, name):
        self.tables.setdefault(name, [])
        return FakeQuery(self, name)

    def fail(self, table, action, error=None):
        """Make the next ``action`` on ``table`` raise."""
        self.failures[(table, action)] = error or Exception(f"{table} {action} failed")

    def add_row(self, table, row):
        self._clock += timedelta(seconds=1)
        stored = {'id': str(uuid.uuid4()), 'created_at': self._clock.isoformat(), **row}
        if table == 'receipts':
            stored.setdefault('updated_at', stored['created_at'])
        self.tables[table].append(stored)
        return stored


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def user_id():
    return "11111111-2222-3333-4444-555555555555"


@pytest.fixture
def extraction_current():
    return {
        "store": {"name": "Edeka"},
        "receipt_uid": "4711-0815",
        "address": {"street": "Hauptstr. 1", "postal_code": "10115", "city": "Berlin"},
        "date": "01.02.24",
        "time": "14:30",
        "items": [{"name": "Milk", "price": 1.29, "quantity": 2}],
        "total": 2.58,
        "taxAmount": 0.17,
        "quality_rating": 8,
    }


@pytest.fixture
def extraction_legacy():
    return {
        "store": {"name": "Aldi", "location": "Berlin"},
        "date": "5.3.2024",
        "items": [
            {"name": "Bread", "price": 2.49},
            {"name": "Eggs", "price": 3.19, "quantity": 1},
        ],
        "total": 5.68,
    }

import pytest
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from ticketing.auth_service.provider import AuthProvider, AuthProviderError, Identity, SignInResult
from ticketing.config import Settings
from ticketing.database.record_store import (
    DuplicateRecord,
    QueryResult,
    RecordStore,
    StoreError,
)
from ticketing.gateway.server import create_app

ALLOWED_ORIGIN = "http://setya.fwh.is"


class InMemoryRecordStore(RecordStore):
    """
    Record store over plain lists, for handler tests.

    Equality filters compare as strings, the way Postgres coerces a query
    parameter like "1" to an integer key. Every executed operation is
    recorded in `calls`; `fail()` makes one operation on one table raise.
    """

    PRIMARY_KEYS = {
        "users": "user_id",
        "events": "event_id",
        "tickets": "ticket_id",
        "admin_verification_requests": "request_id",
    }
    UNIQUE_COLUMNS = {"users": ("id_number", "auth_id")}
    BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __init__(self):
        self.tables = defaultdict(list)
        self.calls = []
        self.failures = {}
        self._next_id = defaultdict(int)

    # --- TEST HELPERS ---
    def seed(self, table, **fields):
        return dict(self._insert(table, fields))

    def fail(self, operation, table, message="simulated store failure"):
        self.failures[(operation, table)] = StoreError(message)

    def rows(self, table):
        return [dict(r) for r in self.tables[table]]

    def mutations(self):
        return [c for c in self.calls if c[0] in ("insert", "update", "delete")]

    # --- INTERNALS ---
    def _record(self, operation, table):
        self.calls.append((operation, table))
        if (operation, table) in self.failures:
            raise self.failures[(operation, table)]

    def _check_unique(self, table, candidate, ignore=None):
        for column in self.UNIQUE_COLUMNS.get(table, ()):
            value = candidate.get(column)
            if value is None:
                continue
            for row in self.tables[table]:
                if row is not ignore and row.get(column) == value:
                    raise DuplicateRecord(f'duplicate key value violates unique constraint "{table}_{column}_key"')

    def _insert(self, table, fields):
        row = dict(fields)
        self._next_id[table] += 1
        pk = self.PRIMARY_KEYS.get(table, "id")
        row.setdefault(pk, self._next_id[table])
        row.setdefault("created_at", (self.BASE_TIME + timedelta(seconds=self._next_id[table])).isoformat())
        self._check_unique(table, row)
        self.tables[table].append(row)
        return row

    @staticmethod
    def _matches(row, filters):
        for f in filters:
            value = row.get(f.column)
            if f.operator == "=":
                if str(value) != str(f.value):
                    return False
            elif value is None:
                return False
            elif f.operator == ">=" and not value >= f.value:
                return False
            elif f.operator == "<" and not value < f.value:
                return False
        return True

    # --- RecordStore ---
    def run_select(self, query):
        self._record("select", query.table_name)
        rows = [dict(r) for r in self.tables[query.table_name] if self._matches(r, query.filters)]
        total = len(rows)
        for column, ascending in reversed(query.ordering):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=not ascending)
        start = query.offset or 0
        end = None if query.max_rows is None else start + query.max_rows
        rows = rows[start:end]
        if query.columns:
            rows = [{c: r.get(c) for c in query.columns} for r in rows]
        return QueryResult(data=rows, count=total if query.with_count else None)

    def run_insert(self, table_name, row):
        self._record("insert", table_name)
        return dict(self._insert(table_name, row))

    def run_update(self, query, patch):
        self._record("update", query.table_name)
        updated = []
        for row in self.tables[query.table_name]:
            if self._matches(row, query.filters):
                self._check_unique(query.table_name, patch, ignore=row)
                row.update(patch)
                updated.append(dict(row))
        return updated

    def run_delete(self, query):
        self._record("delete", query.table_name)
        keep = [r for r in self.tables[query.table_name] if not self._matches(r, query.filters)]
        removed = len(self.tables[query.table_name]) - len(keep)
        self.tables[query.table_name] = keep
        return removed


class FakeAuthProvider(AuthProvider):
    def __init__(self):
        self.tokens = {}
        self.accounts = {}
        self.calls = 0

    def register(self, token, auth_id, email=None, password=None):
        identity = Identity(id=auth_id, email=email)
        self.tokens[token] = identity
        if email:
            self.accounts[email] = (password, token, identity)
        return identity

    def verify_token(self, token):
        self.calls += 1
        if token not in self.tokens:
            raise AuthProviderError("invalid token")
        return self.tokens[token]

    def sign_in(self, email, password):
        self.calls += 1
        account = self.accounts.get(email)
        if not account or account[0] != password:
            raise AuthProviderError("invalid credentials")
        _, token, identity = account
        return SignInResult(
            identity=identity,
            user={"id": identity.id, "email": email},
            session={"access_token": token, "token_type": "bearer"},
        )


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def auth_provider():
    return FakeAuthProvider()


@pytest.fixture
def app(store, auth_provider):
    settings = Settings(cors_allowed_origins=[ALLOWED_ORIGIN])
    app = create_app(settings, auth_provider=auth_provider, record_store=store)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(store, auth_provider):
    auth_provider.register("admin-token", "auth-admin", email="admin@example.com", password="admin-pass")
    return store.seed(
        "users", auth_id="auth-admin", id_number="A-0001", id_name="Ada Admin",
        dob="1985-02-03", id_picture_url="https://img.example/a.png",
        verification_status="approved", role="admin",
    )


@pytest.fixture
def regular_user(store, auth_provider):
    auth_provider.register("user-token", "auth-user", email="user@example.com", password="user-pass")
    return store.seed(
        "users", auth_id="auth-user", id_number="U-0001", id_name="Uma User",
        dob="1999-09-09", id_picture_url="https://img.example/u.png",
        verification_status="pending", role="user",
    )


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": "Bearer admin-token"}


@pytest.fixture
def user_headers(regular_user):
    return {"Authorization": "Bearer user-token"}


def future_date(days=30):
    return (datetime.now(timezone.utc) + timedelta(days=days)).replace(microsecond=0).isoformat()


def past_date(days=30):
    return (datetime.now(timezone.utc) - timedelta(days=days)).replace(microsecond=0).isoformat()

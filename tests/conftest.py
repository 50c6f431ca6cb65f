"""Pytest configuration and shared fixtures: an in-memory stand-in for the Supabase client."""

import base64
import datetime
import json
import re
import uuid
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from supabase import AuthApiError, PostgrestAPIError, StorageException

from core import supabase_client as supabase_client_module
from core.config import settings

CORRECT_PASSCODE = "123456"


def make_access_token(account_id: str, session_id: str) -> str:
    def encode(part: Dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(json.dumps(part).encode()).decode().rstrip("=")
    return f"{encode({'alg': 'HS256', 'typ': 'JWT'})}.{encode({'sub': account_id, 'session_id': session_id})}.signature"


def postgrest_error(message: str = "simulated database failure") -> PostgrestAPIError:
    return PostgrestAPIError({"message": message, "code": "XX000", "details": "", "hint": ""})


def _split_or_filters(filters: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for char in filters:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return parts


def like_to_regex(pattern: str) -> "re.Pattern":
    """PostgreSQL LIKE semantics: % any run, _ one char, backslash escapes the next char."""
    parts, chars = [], iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _as_datetime(value):
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    return value


# --- Database ---

class FakeQuery:
    def __init__(self, backend: "FakeSupabase", table: str):
        self.backend = backend
        self.table_name = table
        self.operation = "select"
        self.columns = "*"
        self.count_mode = None
        self.payload = None
        self.filters = []
        self.order_by = []
        self.slice = None

    # operations
    def select(self, columns="*", count=None):
        self.operation, self.columns, self.count_mode = "select", columns, count
        return self

    def insert(self, payload):
        self.operation, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.operation, self.payload = "update", payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and _as_datetime(row.get(column)) < _as_datetime(value))
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def ilike(self, column, pattern):
        regex = like_to_regex(pattern)
        self.filters.append(lambda row: regex.fullmatch(row.get(column) or "") is not None)
        return self

    def or_(self, filters):
        conditions = []
        for part in _split_or_filters(filters):
            column, operator, value = part.split(".", 2)
            if operator == "eq":
                conditions.append(lambda row, c=column, v=value: str(row.get(c)) == v)
            elif operator == "cs":
                wanted = [item.strip().strip('"') for item in value.strip("{}").split(",") if item.strip()]
                conditions.append(lambda row, c=column, w=wanted: all(item in (row.get(c) or []) for item in w))
            else:
                raise NotImplementedError(operator)
        self.filters.append(lambda row: any(condition(row) for condition in conditions))
        return self

    # shaping
    def order(self, column, desc=False):
        self.order_by.append((column, desc))
        return self

    def range(self, start, end):
        self.slice = (start, end + 1)
        return self

    def limit(self, size):
        self.slice = (0, size)
        return self

    def _matches(self):
        return [row for row in self.backend.tables.setdefault(self.table_name, []) if all(f(row) for f in self.filters)]

    def execute(self):
        self.backend.calls.append((self.table_name, self.operation))
        failure = self.backend.failures.pop((self.table_name, self.operation), None)
        if failure is not None:
            raise failure

        rows = self.backend.tables.setdefault(self.table_name, [])
        if self.operation == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for payload in payloads:
                now = self.backend.tick()
                row = {"id": uuid.uuid4().hex, "created_at": now, "updated_at": now}
                row.update(payload)
                rows.append(row)
                inserted.append(dict(row))
            return SimpleNamespace(data=inserted, count=None)

        matched = self._matches()
        if self.operation == "update":
            now = self.backend.tick()
            for row in matched:
                row.update(self.payload)
                row["updated_at"] = now
            return SimpleNamespace(data=[dict(row) for row in matched], count=None)

        if self.operation == "delete":
            for row in matched:
                rows.remove(row)
            return SimpleNamespace(data=[dict(row) for row in matched], count=None)

        for column, desc in reversed(self.order_by):
            matched.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        count = len(matched) if self.count_mode == "exact" else None
        if self.slice:
            matched = matched[self.slice[0]:self.slice[1]]
        if self.columns != "*":
            wanted = [c.strip() for c in self.columns.split(",")]
            matched = [{c: row.get(c) for c in wanted} for row in matched]
        else:
            matched = [dict(row) for row in matched]
        return SimpleNamespace(data=matched, count=count)


# --- Storage ---

class FakeBucket:
    def __init__(self, backend: "FakeSupabase", name: str):
        self.backend = backend
        self.name = name

    def upload(self, path, file, file_options=None):
        failure = self.backend.failures.pop(("storage", "upload"), None)
        if failure is not None:
            raise failure
        self.backend.blobs[(self.name, path)] = file
        return SimpleNamespace(path=path, full_path=f"{self.name}/{path}")

    def remove(self, paths):
        failure = self.backend.failures.pop(("storage", "remove"), None)
        if failure is not None:
            raise failure
        removed = []
        for path in paths:
            if self.backend.blobs.pop((self.name, path), None) is not None:
                removed.append({"name": path})
        return removed

    def get_public_url(self, path, options=None):
        return f"https://fake.supabase.co/storage/v1/object/public/{self.name}/{path}"


class FakeStorage:
    def __init__(self, backend):
        self.backend = backend

    def from_(self, bucket):
        return FakeBucket(self.backend, bucket)


# --- Auth ---

class FakeAuthAdmin:
    def __init__(self, backend):
        self.backend = backend

    def create_user(self, attributes):
        email = attributes["email"]
        if any(a.email == email for a in self.backend.accounts.values()):
            raise AuthApiError("A user with this email address has already been registered", 422, "email_exists")
        account = SimpleNamespace(id=str(uuid.uuid4()), email=email)
        self.backend.accounts[account.id] = account
        return SimpleNamespace(user=account)

    def list_users(self, page=None, per_page=None):
        self.backend.calls.append(("auth", "list_users"))
        users = list(self.backend.accounts.values())
        page, per_page = page or 1, per_page or 50
        return users[(page - 1) * per_page: page * per_page]

    def get_user_by_id(self, uid):
        account = self.backend.accounts.get(uid)
        if account is None:
            raise AuthApiError("User not found", 404, "user_not_found")
        return SimpleNamespace(user=account)

    def sign_out(self, jwt, scope="global"):
        failure = self.backend.failures.pop(("auth", "sign_out"), None)
        if failure is not None:
            raise failure
        self.backend.sessions.pop(jwt, None)


class FakeAuth:
    def __init__(self, backend):
        self.backend = backend
        self.admin = FakeAuthAdmin(backend)

    def sign_in_with_otp(self, credentials):
        email = credentials["email"]
        if email in self.backend.undeliverable:
            raise AuthApiError("Unable to send email", 500, "email_send_failed")
        if not any(a.email == email for a in self.backend.accounts.values()):
            if not credentials.get("options", {}).get("should_create_user", True):
                raise AuthApiError("Signups not allowed for otp", 422, "otp_disabled")
            account = SimpleNamespace(id=str(uuid.uuid4()), email=email)
            self.backend.accounts[account.id] = account
        self.backend.sent_otps.append(email)
        return SimpleNamespace(user=None, session=None)

    def verify_otp(self, params):
        if params["token"] != CORRECT_PASSCODE or params["email"] not in self.backend.sent_otps:
            raise AuthApiError("Token has expired or is invalid", 403, "otp_expired")
        account = next(a for a in self.backend.accounts.values() if a.email == params["email"])
        token = make_access_token(account.id, str(uuid.uuid4()))
        self.backend.sessions[token] = account.id
        return SimpleNamespace(user=account, session=SimpleNamespace(access_token=token, refresh_token="refresh"))

    def get_user(self, jwt=None):
        account_id = self.backend.sessions.get(jwt)
        if account_id is None:
            raise AuthApiError("invalid JWT", 401, "bad_jwt")
        return SimpleNamespace(user=self.backend.accounts[account_id])


class FakePostgrest:
    def __init__(self):
        self.token = None

    def auth(self, token):
        self.token = token


class FakeClient:
    def __init__(self, backend: "FakeSupabase", key: str):
        self.key = key
        self.backend = backend
        self.auth = FakeAuth(backend)
        self.storage = FakeStorage(backend)
        self.postgrest = FakePostgrest()

    def table(self, name):
        return FakeQuery(self.backend, name)


class FakeSupabase:
    """Shared state behind every fake client: tables, blobs, auth accounts and sessions."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.blobs: Dict[tuple, bytes] = {}
        self.accounts: Dict[str, SimpleNamespace] = {}
        self.sessions: Dict[str, str] = {}
        self.sent_otps: List[str] = []
        self.undeliverable: set = set()
        self.failures: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []
        self.clients: List[FakeClient] = []
        self._clock = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)

    def tick(self) -> str:
        self._clock += datetime.timedelta(seconds=1)
        return self._clock.isoformat(timespec="microseconds")

    def fail_next(self, target: str, operation: str, error: Optional[Exception] = None):
        if error is None:
            error = StorageException("simulated storage failure") if target == "storage" else postgrest_error()
        self.failures[(target, operation)] = error

    def create_client(self, url, key, options=None):
        client = FakeClient(self, key)
        self.clients.append(client)
        return client

    def blob_keys(self) -> List[str]:
        return [key for (_, key) in self.blobs]


@pytest.fixture
def fake_supabase(monkeypatch) -> FakeSupabase:
    backend = FakeSupabase()
    monkeypatch.setattr(settings, "SUPABASE_URL", "https://fake.supabase.co")
    monkeypatch.setattr(settings, "SUPABASE_KEY", "anon-key")
    monkeypatch.setattr(settings, "SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.setattr(supabase_client_module, "create_client", backend.create_client)
    monkeypatch.setattr(supabase_client_module, "_supabase_clients", {})
    return backend


@pytest.fixture
def make_session(fake_supabase):
    """Creates an auth account and a live session only, no users row. Returns (account, token)."""
    def _make(email="owner@example.com"):
        account = SimpleNamespace(id=str(uuid.uuid4()), email=email)
        fake_supabase.accounts[account.id] = account
        token = make_access_token(account.id, str(uuid.uuid4()))
        fake_supabase.sessions[token] = account.id
        return account, token

    return _make


@pytest.fixture
def make_user(fake_supabase, make_session):
    """Creates an auth account, a users row and a live session. Returns (UserDocument, token)."""
    from core.models import UserDocument

    def _make(email="owner@example.com", full_name="Owner User"):
        account, token = make_session(email)
        row = {"id": uuid.uuid4().hex, "account_id": account.id, "full_name": full_name,
               "email": email, "avatar": settings.AVATAR_PLACEHOLDER_URL,
               "created_at": fake_supabase.tick(), "updated_at": None}
        fake_supabase.tables.setdefault(settings.USERS_TABLE, []).append(row)
        return UserDocument(**row), token

    return _make

from __future__ import annotations

import itertools
import json
import re
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from unugha_core import AuthSessionStore, SupabaseClient


SUPABASE_URL = "https://demo.supabase.co"
SUPABASE_KEY = "anon-key"
SITE_URL = "https://events.example"

EMBED_PATTERN = re.compile(r"(\w+):(\w+)\(\*\)")


def _as_filter_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _matches(row: Dict[str, Any], column: str, expression: str) -> bool:
    operator, _, expected = expression.partition(".")
    actual = row.get(column)
    if operator == "is":
        return expected == "null" and actual is None
    if operator == "eq":
        return _as_filter_text(actual) == expected
    if operator == "neq":
        return _as_filter_text(actual) != expected
    if operator == "gte":
        return actual is not None and str(actual) >= expected
    if operator == "lte":
        return actual is not None and str(actual) <= expected
    raise AssertionError(f"Unsupported filter operator {operator!r}")


class FakeSupabase:
    """In-memory stand-in for the PostgREST, GoTrue and Storage endpoints."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            "events": [],
            "registrations": [],
            "organizations": [],
            "profiles": [],
        }
        self.users: Dict[str, Dict[str, Any]] = {}
        self.unconfirmed: set[str] = set()
        self.objects: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.hooks: Dict[Tuple[str, str], Callable[[httpx.Request], None]] = {}
        self.confirm_email = False
        self.access_tokens: Dict[str, str] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self._ids = itertools.count(1)

    # -- test helpers ---------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(self, method: str, path: str, status: int, payload: Any) -> None:
        """Answer every ``method`` request whose path starts with ``path`` with an error."""

        self.failures[(method, path)] = (status, payload)

    def add_user(
        self,
        email: str,
        password: str = "secret123",
        metadata: Optional[Dict[str, Any]] = None,
        confirmed: bool = True,
    ) -> Dict[str, Any]:
        user = {
            "id": f"user-{next(self._ids)}",
            "email": email,
            "password": password,
            "user_metadata": dict(metadata or {}),
        }
        self.users[email] = user
        if not confirmed:
            self.unconfirmed.add(email)
        return user

    def insert(self, table: str, **row: Any) -> Dict[str, Any]:
        record = self._stamp(table, row)
        self.tables[table].append(record)
        return record

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [req for req in self.requests if req.method == method and req.url.path == path]

    # -- dispatch -------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        hook = self.hooks.get(key)
        if hook is not None:
            hook(request)
        for (method, prefix), (status, payload) in self.failures.items():
            if request.method == method and request.url.path.startswith(prefix):
                return httpx.Response(status, json=payload)

        path = request.url.path
        if path.startswith("/rest/v1/"):
            return self._rest(request, path[len("/rest/v1/"):])
        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):])
        if path.startswith("/storage/v1/object/"):
            return self._storage(request, path[len("/storage/v1/object/"):])
        return httpx.Response(404, json={"message": "Not found"})

    # -- PostgREST ------------------------------------------------------------

    def _stamp(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        number = next(self._ids)
        record = {"id": f"{table}-{number}", "created_at": f"2025-01-01T00:{number // 60:02d}:{number % 60:02d}+00:00"}
        record.update(row)
        return record

    def _rest(self, request: httpx.Request, table: str) -> httpx.Response:
        if table not in self.tables:
            return httpx.Response(
                404,
                json={
                    "code": "PGRST205",
                    "details": None,
                    "hint": None,
                    "message": f"Could not find the table 'public.{table}' in the schema cache",
                },
            )

        rows = self.tables[table]
        params = request.url.params.multi_items()
        filters = [(col, expr) for col, expr in params if col not in {"select", "order", "limit"}]
        matched = [row for row in rows if all(_matches(row, col, expr) for col, expr in filters)]

        if request.method == "GET":
            result = self._shape(matched, dict(params))
            if request.headers.get("accept") == "application/vnd.pgrst.object+json":
                if len(result) != 1:
                    return httpx.Response(
                        406,
                        json={
                            "code": "PGRST116",
                            "details": f"The result contains {len(result)} rows",
                            "hint": None,
                            "message": "JSON object requested, multiple (or no) rows returned",
                        },
                    )
                return httpx.Response(200, json=result[0])
            return httpx.Response(200, json=result)

        if request.method == "POST":
            payload = json.loads(request.content)
            created = []
            for row in payload:
                if table == "registrations" and any(
                    existing["user_id"] == row.get("user_id") and existing["event_id"] == row.get("event_id")
                    for existing in rows
                ):
                    return httpx.Response(
                        409,
                        json={
                            "code": "23505",
                            "details": f"Key (user_id, event_id)=({row.get('user_id')}, {row.get('event_id')}) already exists.",
                            "hint": None,
                            "message": 'duplicate key value violates unique constraint "registrations_user_id_event_id_key"',
                        },
                    )
                created.append(self._stamp(table, row))
            rows.extend(created)
            return httpx.Response(201, json=created)

        if request.method == "PATCH":
            values = json.loads(request.content)
            for row in matched:
                row.update(values)
            return httpx.Response(200, json=matched)

        if request.method == "DELETE":
            self.tables[table] = [row for row in rows if row not in matched]
            return httpx.Response(200, json=matched)

        return httpx.Response(405, json={"message": "Method not allowed"})

    def _shape(self, rows: List[Dict[str, Any]], params: Dict[str, str]) -> List[Dict[str, Any]]:
        result = [dict(row) for row in rows]
        for column, direction in reversed([item.split(".") for item in params.get("order", "").split(",") if item]):
            result.sort(key=lambda row: str(row.get(column) or ""), reverse=direction == "desc")
        if "limit" in params:
            result = result[: int(params["limit"])]
        for alias, table in EMBED_PATTERN.findall(params.get("select", "")):
            foreign_key = f"{table[:-1]}_id"
            lookup = {row["id"]: row for row in self.tables.get(table, [])}
            for row in result:
                row[alias] = lookup.get(row.get(foreign_key))
        return result

    # -- GoTrue ---------------------------------------------------------------

    def _public_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {"id": user["id"], "email": user["email"], "user_metadata": dict(user["user_metadata"])}

    def _issue_session(self, user: Dict[str, Any]) -> Dict[str, Any]:
        number = next(self._ids)
        access, refresh = f"access-{number}", f"refresh-{number}"
        self.access_tokens[access] = user["email"]
        self.refresh_tokens[refresh] = user["email"]
        return {
            "access_token": access,
            "token_type": "bearer",
            "expires_in": 3600,
            "expires_at": int(time.time()) + 3600,
            "refresh_token": refresh,
            "user": self._public_user(user),
        }

    def _bearer_user(self, request: httpx.Request) -> Optional[Dict[str, Any]]:
        token = request.headers.get("authorization", "").removeprefix("Bearer ").strip()
        email = self.access_tokens.get(token)
        return self.users.get(email) if email else None

    def _auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}

        if endpoint == "signup":
            email = body.get("email")
            if email in self.users:
                return httpx.Response(
                    422,
                    json={"code": 422, "error_code": "user_already_exists", "msg": "User already registered"},
                )
            user = self.add_user(email, body.get("password"), body.get("data"), confirmed=not self.confirm_email)
            if self.confirm_email:
                return httpx.Response(200, json=self._public_user(user))
            return httpx.Response(200, json=self._issue_session(user))

        if endpoint == "token":
            grant = request.url.params.get("grant_type")
            if grant == "password":
                user = self.users.get(body.get("email"))
                if user is None or user["password"] != body.get("password"):
                    return httpx.Response(
                        400,
                        json={"code": 400, "error_code": "invalid_credentials", "msg": "Invalid login credentials"},
                    )
                if user["email"] in self.unconfirmed:
                    return httpx.Response(
                        400,
                        json={"code": 400, "error_code": "email_not_confirmed", "msg": "Email not confirmed"},
                    )
                return httpx.Response(200, json=self._issue_session(user))
            if grant == "refresh_token":
                email = self.refresh_tokens.pop(body.get("refresh_token"), None)
                if email is None:
                    return httpx.Response(
                        400,
                        json={
                            "error": "invalid_grant",
                            "error_description": "Invalid Refresh Token: Refresh Token Not Found",
                        },
                    )
                return httpx.Response(200, json=self._issue_session(self.users[email]))

        if endpoint == "logout":
            token = request.headers.get("authorization", "").removeprefix("Bearer ").strip()
            self.access_tokens.pop(token, None)
            return httpx.Response(204)

        if endpoint == "user":
            user = self._bearer_user(request)
            if user is None:
                return httpx.Response(401, json={"code": 401, "error_code": "bad_jwt", "msg": "invalid JWT"})
            if request.method == "PUT":
                user["user_metadata"].update(body.get("data") or {})
                if body.get("password"):
                    user["password"] = body["password"]
            return httpx.Response(200, json=self._public_user(user))

        if endpoint == "recover":
            return httpx.Response(200, json={})

        return httpx.Response(404, json={"msg": f"Unknown auth endpoint {endpoint}"})

    # -- Storage --------------------------------------------------------------

    def _storage(self, request: httpx.Request, key: str) -> httpx.Response:
        if request.method == "POST":
            self.objects[key] = request.content
            return httpx.Response(200, json={"Key": key})
        if request.method == "DELETE":
            prefixes = json.loads(request.content).get("prefixes", [])
            removed = []
            for path in prefixes:
                if self.objects.pop(f"{key}/{path}", None) is not None:
                    removed.append({"name": path})
            return httpx.Response(200, json=removed)
        return httpx.Response(405, json={"message": "Method not allowed"})


@pytest.fixture(autouse=True)
def reset_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_KEY", "UNUGHA_DATA_DIR", "UNUGHA_SITE_URL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def client(fake: FakeSupabase, tmp_path) -> SupabaseClient:
    return SupabaseClient(
        url=SUPABASE_URL,
        key=SUPABASE_KEY,
        data_dir=tmp_path,
        site_url=SITE_URL,
        transport=fake.transport(),
    )


@pytest.fixture
def signed_in(fake: FakeSupabase, client: SupabaseClient):
    """Coroutine factory returning a started session store signed in as ``email``."""

    async def factory(email: str = "host@unugha.ac.id", password: str = "secret123", **metadata: Any) -> AuthSessionStore:
        if email not in fake.users:
            fake.add_user(email, password, metadata)
        store = AuthSessionStore(client)
        await store.start()
        await store.sign_in(email, password)
        return store

    return factory

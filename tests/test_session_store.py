from __future__ import annotations

import asyncio
import json
from typing import List

import pytest

from unugha_core import AuthSessionStore, AuthState, SupabaseClient, SupabaseError
from unugha_core.auth import AuthEvent, Session


def _expire_stored_session(client: SupabaseClient) -> None:
    path = client.auth.session_path
    payload = json.loads(path.read_text())
    payload["expires_at"] = 0
    path.write_text(json.dumps(payload))


def _fresh_client(fake, tmp_path) -> SupabaseClient:
    return SupabaseClient(url="https://demo.supabase.co", key="anon-key", data_dir=tmp_path, transport=fake.transport())


def test_starts_unauthenticated_without_session(client: SupabaseClient) -> None:
    store = AuthSessionStore(client)
    assert store.state is AuthState.INITIALIZING

    async def scenario() -> AuthState:
        await store.start()
        return await store.wait_ready()

    assert asyncio.run(scenario()) is AuthState.UNAUTHENTICATED
    assert store.snapshot() == {"state": "unauthenticated", "user": None}


def test_sign_in_and_out_follow_auth_events(fake, client: SupabaseClient) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123", {"full_name": "Rina", "role": "organizer"})
    store = AuthSessionStore(client)
    seen: List[AuthState] = []
    store.subscribe(lambda current: seen.append(current.state))

    async def scenario() -> None:
        await store.start()
        await store.sign_in("rina@unugha.ac.id", "secret123")
        assert store.is_authenticated
        assert store.snapshot()["user"]["displayName"] == "Rina"
        assert store.snapshot()["user"]["role"] == "organizer"
        await store.sign_out()

    asyncio.run(scenario())

    assert seen == [AuthState.UNAUTHENTICATED, AuthState.AUTHENTICATED, AuthState.UNAUTHENTICATED]
    assert store.user is None


def test_failed_sign_in_leaves_state_unchanged(fake, client: SupabaseClient) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123")
    store = AuthSessionStore(client)

    async def scenario() -> None:
        await store.start()
        with pytest.raises(SupabaseError, match="Invalid login credentials"):
            await store.sign_in("rina@unugha.ac.id", "nope")

    asyncio.run(scenario())
    assert store.state is AuthState.UNAUTHENTICATED


def test_restores_persisted_session(fake, client: SupabaseClient, tmp_path) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123")
    asyncio.run(client.auth.sign_in_with_password("rina@unugha.ac.id", "secret123"))

    store = AuthSessionStore(_fresh_client(fake, tmp_path))
    assert asyncio.run(store.start()) is AuthState.AUTHENTICATED
    assert store.user.email == "rina@unugha.ac.id"


def test_failing_session_query_settles_unauthenticated(fake, client: SupabaseClient, tmp_path) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123")
    asyncio.run(client.auth.sign_in_with_password("rina@unugha.ac.id", "secret123"))
    _expire_stored_session(client)
    fake.fail("POST", "/auth/v1/token", 503, {"message": "upstream unavailable"})

    store = AuthSessionStore(_fresh_client(fake, tmp_path))
    assert asyncio.run(store.start()) is AuthState.UNAUTHENTICATED


def test_auth_event_during_session_query_wins(fake, client: SupabaseClient, tmp_path) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123")
    signed_in = asyncio.run(client.auth.sign_in_with_password("rina@unugha.ac.id", "secret123")).session
    _expire_stored_session(client)

    restarted = _fresh_client(fake, tmp_path)
    store = AuthSessionStore(restarted)

    def sign_in_while_refreshing(request) -> None:
        # A sign-in completes while the stale session is still being refreshed.
        restarted.auth._set_session(Session.from_payload(signed_in.as_dict()), AuthEvent.SIGNED_IN)

    fake.hooks[("POST", "/auth/v1/token")] = sign_in_while_refreshing
    fake.fail("POST", "/auth/v1/token", 503, {"message": "upstream unavailable"})

    assert asyncio.run(store.start()) is AuthState.AUTHENTICATED
    assert store.user.email == "rina@unugha.ac.id"


def test_single_subscription_and_close(fake, client: SupabaseClient) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123")
    store = AuthSessionStore(client)
    calls: List[AuthState] = []

    async def scenario() -> None:
        await store.start()
        await store.start()
        store.subscribe(lambda current: calls.append(current.state))
        await store.sign_in("rina@unugha.ac.id", "secret123")
        store.close()
        await store.sign_out()

    asyncio.run(scenario())

    assert calls == [AuthState.AUTHENTICATED]
    # Events after close() no longer reach the store.
    assert store.state is AuthState.AUTHENTICATED


def test_unsubscribe(fake, client: SupabaseClient) -> None:
    fake.add_user("rina@unugha.ac.id", "secret123")
    store = AuthSessionStore(client)
    calls: List[AuthState] = []
    unsubscribe = store.subscribe(lambda current: calls.append(current.state))

    async def scenario() -> None:
        await store.start()
        unsubscribe()
        await store.sign_in("rina@unugha.ac.id", "secret123")

    asyncio.run(scenario())
    assert calls == [AuthState.UNAUTHENTICATED]

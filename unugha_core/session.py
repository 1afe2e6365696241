"""Process-wide sign-in state shared by every page."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .auth import AuthEvent, AuthResponse, AuthSubscription, Session, User
from .client import SupabaseClient
from .errors import SupabaseError


logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


SessionListener = Callable[["AuthSessionStore"], None]


class AuthSessionStore:
    """Single source of truth for who is signed in.

    The store never writes its own state from ``sign_in``/``sign_up``/``sign_out``;
    it only follows the auth client's change notifications and the initial
    session query, so the local view cannot drift from the backend's.
    """

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client
        self._state = AuthState.INITIALIZING
        self._session: Session | None = None
        self._listeners: List[SessionListener] = []
        self._subscription: AuthSubscription | None = None
        self._events_seen = 0
        self._ready = asyncio.Event()

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def user(self) -> User | None:
        return self._session.user if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._state is AuthState.AUTHENTICATED

    async def start(self) -> AuthState:
        """Subscribe to session changes and restore any existing session."""

        if self._subscription is None:
            self._subscription = self._client.auth.on_auth_state_change(self._on_auth_event)

        marker = self._events_seen
        session: Session | None = None
        try:
            session = await self._client.auth.get_session()
        except SupabaseError as exc:
            logger.warning("Could not restore auth session (%s)", exc)
        finally:
            # A sign-in/out that landed while the query was in flight is newer.
            if self._events_seen == marker:
                self._apply(session)
        return self._state

    async def wait_ready(self) -> AuthState:
        await self._ready.wait()
        return self._state

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        return await self._client.auth.sign_in_with_password(email, password)

    async def sign_up(self, email: str, password: str, metadata: Dict[str, Any] | None = None) -> AuthResponse:
        return await self._client.auth.sign_up(email, password, data=metadata)

    async def sign_out(self) -> None:
        await self._client.auth.sign_out()

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    def snapshot(self) -> Dict[str, Any]:
        user = self.user
        return {
            "state": self._state.value,
            "user": None
            if user is None
            else {
                "id": user.id,
                "email": user.email,
                "displayName": user.display_name,
                "avatarUrl": user.avatar_url,
                "role": user.role,
            },
        }

    def _on_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        self._events_seen += 1
        logger.debug("Auth event %s", event.value)
        self._apply(session)

    def _apply(self, session: Session | None) -> None:
        self._session = session
        self._state = AuthState.AUTHENTICATED if session is not None else AuthState.UNAUTHENTICATED
        self._ready.set()
        for listener in list(self._listeners):
            listener(self)

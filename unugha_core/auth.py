from __future__ import annotations

import base64
import binascii
import datetime as dt
import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from .errors import SupabaseError

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .client import SupabaseClient


logger = logging.getLogger(__name__)

# Refresh a little before the token actually expires.
EXPIRY_MARGIN_SECONDS = 60


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


@dataclass
class User:
    id: str
    email: str = ""
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "User":
        metadata = payload.get("user_metadata")
        return cls(
            id=str(payload.get("id") or "").strip(),
            email=str(payload.get("email") or ""),
            user_metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )

    @property
    def full_name(self) -> str:
        for key in ("full_name", "name"):
            value = self.user_metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""

    @property
    def display_name(self) -> str:
        return self.full_name or self.email.split("@")[0] or "User"

    @property
    def avatar_url(self) -> str | None:
        value = self.user_metadata.get("avatar_url")
        return value if isinstance(value, str) and value else None

    @property
    def role(self) -> str:
        return str(self.user_metadata.get("role") or "participant")

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "user_metadata": dict(self.user_metadata)}


@dataclass
class Session:
    access_token: str
    refresh_token: str
    expires_at: int
    user: User
    token_type: str = "bearer"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Session":
        expires_at = payload.get("expires_at")
        if not isinstance(expires_at, (int, float)):
            expires_in = payload.get("expires_in") or 3600
            expires_at = _now_timestamp() + int(expires_in)
        user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else {}
        return cls(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=str(payload.get("refresh_token") or ""),
            expires_at=int(expires_at),
            user=User.from_payload(user_payload),
            token_type=str(payload.get("token_type") or "bearer"),
        )

    def expired(self, margin: int = EXPIRY_MARGIN_SECONDS) -> bool:
        return self.expires_at - margin <= _now_timestamp()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
            "user": self.user.as_dict(),
        }


@dataclass
class AuthResponse:
    user: Optional[User]
    session: Optional[Session]


AuthListener = Callable[[AuthEvent, Optional[Session]], None]


class AuthSubscription:
    def __init__(self, auth: "AuthClient", key: str) -> None:
        self._auth = auth
        self.key = key

    def unsubscribe(self) -> None:
        self._auth._listeners.pop(self.key, None)


def _now_timestamp() -> int:
    return int(dt.datetime.now(dt.UTC).timestamp())


def token_expiry(access_token: str) -> int | None:
    """``exp`` claim of a JWT access token, read without verifying the signature."""

    parts = access_token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(segment))
    except (binascii.Error, ValueError):
        return None
    expires_at = claims.get("exp") if isinstance(claims, dict) else None
    return int(expires_at) if isinstance(expires_at, (int, float)) else None


class AuthClient:
    """GoTrue sub-interface of :class:`SupabaseClient`.

    Holds the current session in memory and notifies listeners about every
    session change. With ``persist`` set (the default) the session is also
    written to ``session.json`` in the client data directory so a restarted
    process can pick it up again.
    """

    def __init__(self, client: "SupabaseClient", persist: bool = True) -> None:
        self._client = client
        self._persist = persist
        self._session: Session | None = None
        self._loaded = False
        self._listeners: Dict[str, AuthListener] = {}

    @property
    def session_path(self) -> Path:
        return self._client.data_dir / "session.json"

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    @property
    def current_session(self) -> Session | None:
        return self._session

    def on_auth_state_change(self, callback: AuthListener) -> AuthSubscription:
        key = str(uuid.uuid4())
        self._listeners[key] = callback
        return AuthSubscription(self, key)

    # ------------------------------------------------------------------
    # Public operations

    async def sign_up(
        self,
        email: str,
        password: str,
        data: Dict[str, Any] | None = None,
        redirect_to: str | None = None,
    ) -> AuthResponse:
        params = {"redirect_to": redirect_to} if redirect_to else None
        payload = await self._client.request(
            "POST",
            "/auth/v1/signup",
            params=params,
            json={"email": email, "password": password, "data": data or {}},
            headers=self._anon_headers(),
        )
        if not isinstance(payload, dict):
            raise SupabaseError({"message": "Unexpected response when signing up"})

        if payload.get("access_token"):
            session = Session.from_payload(payload)
            self._set_session(session, AuthEvent.SIGNED_IN)
            return AuthResponse(session.user, session)

        # Email confirmation pending: GoTrue answers with the bare user.
        user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        user = User.from_payload(user_payload) if user_payload.get("id") else None
        return AuthResponse(user, None)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        payload = await self._client.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._anon_headers(),
        )
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise SupabaseError({"message": "Unexpected response when signing in"})
        session = Session.from_payload(payload)
        self._set_session(session, AuthEvent.SIGNED_IN)
        return AuthResponse(session.user, session)

    async def sign_out(self) -> None:
        session = self._session
        try:
            if session is not None:
                await self._client.request(
                    "POST",
                    "/auth/v1/logout",
                    headers={"Authorization": f"Bearer {session.access_token}"},
                )
        except SupabaseError as exc:
            # Already revoked or expired on the server; the local sign-out still applies.
            if exc.status not in (401, 403, 404):
                raise
            logger.info("Supabase logout returned %s; clearing local session", exc.status)
        finally:
            self._set_session(None, AuthEvent.SIGNED_OUT)

    async def get_session(self) -> Session | None:
        """Current session, loading the persisted one and refreshing it when expired."""

        if not self._loaded:
            self._session = self._load_session() if self._persist else None
            self._loaded = True

        session = self._session
        if session is None:
            return None
        if session.expired():
            return await self.refresh_session()
        return session

    async def refresh_session(self, refresh_token: str | None = None) -> Session | None:
        session = self._session
        token = refresh_token or (session.refresh_token if session else "")
        if not token:
            return None

        try:
            payload = await self._client.request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": token},
                headers=self._anon_headers(),
            )
        except SupabaseError as exc:
            if exc.status is not None and 400 <= exc.status < 500:
                logger.info("Stored session could not be refreshed (%s); signing out locally", exc)
                self._set_session(None, AuthEvent.SIGNED_OUT)
                return None
            raise

        refreshed = Session.from_payload(payload if isinstance(payload, dict) else {})
        if not refreshed.user.id and session is not None:
            refreshed = replace(refreshed, user=session.user)
        if not refreshed.access_token or not refreshed.user.id:
            raise SupabaseError({"message": "Unexpected response when refreshing the session"})
        self._set_session(refreshed, AuthEvent.TOKEN_REFRESHED)
        return refreshed

    async def get_user(self) -> User | None:
        if self._session is None:
            return None
        payload = await self._client.request("GET", "/auth/v1/user")
        return User.from_payload(payload) if isinstance(payload, dict) else None

    async def verify_access_token(self, access_token: str) -> Session:
        """Check a caller's bearer token with ``/auth/v1/user`` and adopt it as the session.

        No auth event is emitted and nothing is persisted; the adopted session
        carries no refresh token.
        """

        payload = await self._client.request(
            "GET",
            "/auth/v1/user",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        user = User.from_payload(payload if isinstance(payload, dict) else {})
        if not user.id:
            raise SupabaseError({"message": "Invalid authentication token"}, 401)

        expires_at = token_expiry(access_token) or _now_timestamp() + 3600
        session = Session(access_token=access_token, refresh_token="", expires_at=expires_at, user=user)
        self._session = session
        self._loaded = True
        return session

    async def update_user(
        self,
        *,
        data: Dict[str, Any] | None = None,
        password: str | None = None,
        email: str | None = None,
    ) -> User:
        session = self._session
        if session is None:
            raise SupabaseError({"message": "Auth session missing!"}, 401)

        body: Dict[str, Any] = {}
        if data is not None:
            body["data"] = data
        if password is not None:
            body["password"] = password
        if email is not None:
            body["email"] = email

        payload = await self._client.request("PUT", "/auth/v1/user", json=body)
        user = User.from_payload(payload if isinstance(payload, dict) else {})
        if not user.id:
            user = session.user
        self._set_session(replace(session, user=user), AuthEvent.USER_UPDATED)
        return user

    async def reset_password_for_email(self, email: str, redirect_to: str | None = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._client.request(
            "POST",
            "/auth/v1/recover",
            params=params,
            json={"email": email},
            headers=self._anon_headers(),
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _anon_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._client.key}"}

    def _set_session(self, session: Session | None, event: AuthEvent) -> None:
        self._session = session
        self._loaded = True
        if self._persist:
            if session is None:
                self._remove_session_file()
            else:
                self._write_session_file(session)
        for listener in list(self._listeners.values()):
            listener(event, session)

    def _load_session(self) -> Session | None:
        path = self.session_path
        try:
            if not path.exists():
                return None
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", path, exc)
            return None

        if not isinstance(payload, dict) or not payload.get("access_token"):
            return None
        session = Session.from_payload(payload)
        return session if session.user.id else None

    def _write_session_file(self, session: Session) -> None:
        path = self.session_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as handle:
                json.dump(session.as_dict(), handle, indent=2, sort_keys=True)
        except OSError as exc:
            logger.warning("Could not persist session to %s: %s", path, exc)

    def _remove_session_file(self) -> None:
        try:
            self.session_path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:  # pragma: no cover - unlikely but logged for diagnosis
            logger.warning("Failed to remove session file %s: %s", self.session_path, exc)

from __future__ import annotations

import logging
from typing import Any, Dict

from ..auth import User
from ..client import SupabaseClient
from ..errors import LoginRequired, SupabaseError, error_message, is_missing_table_error
from ..session import AuthSessionStore


logger = logging.getLogger(__name__)


class PageController:
    """Local UI state for one page plus access to the shared client and session.

    Loads are tagged with a generation number: a response that arrives after a
    newer load has started is dropped instead of overwriting newer state.
    """

    def __init__(self, client: SupabaseClient, session: AuthSessionStore) -> None:
        self.client = client
        self.session = session
        self.loading = False
        self.error: str | None = None
        self.status_code: int | None = None
        self.notice: str | None = None
        self.redirect_to: str | None = None
        self._generation = 0

    @property
    def user(self) -> User | None:
        return self.session.user

    @property
    def missing_schema(self) -> bool:
        return is_missing_table_error(self.error)

    def require_user(self) -> User:
        user = self.session.user
        if user is None:
            raise LoginRequired()
        return user

    def _begin(self) -> int:
        self._generation += 1
        self.loading = True
        self.error = None
        self.status_code = None
        self.notice = None
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _finish(self, generation: int) -> None:
        if self._is_current(generation):
            self.loading = False

    def _invalid(self, exc: ValueError) -> None:
        self.error = str(exc)
        self.status_code = 400

    def _fail(self, exc: Exception, prefix: str = "", generation: int | None = None) -> None:
        message = error_message(exc)
        logger.warning("%s: %s%s", type(self).__name__, prefix, message)
        if generation is not None and not self._is_current(generation):
            return
        self.error = f"{prefix}{message}"
        status = getattr(exc, "status", None)
        self.status_code = status if isinstance(status, int) and 400 <= status < 500 else 502

    async def _discard_upload(self, bucket: str, path: str) -> None:
        """Remove an uploaded object whose dependent record could not be written."""

        try:
            await self.client.storage.remove(bucket, [path])
        except SupabaseError as exc:
            logger.warning("Could not remove orphaned upload %s/%s: %s", bucket, path, exc)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "loading": self.loading,
            "error": self.error,
            "notice": self.notice,
            "redirectTo": self.redirect_to,
            "missingSchema": self.missing_schema,
        }

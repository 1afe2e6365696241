from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict

from ..errors import SupabaseError, auth_guidance
from .base import PageController


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class LoginMode(str, Enum):
    LOGIN = "login"
    REGISTER = "register"
    FORGOT = "forgot"


class LoginController(PageController):
    """Sign in, register and password-reset form."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.mode = LoginMode.LOGIN
        self.guidance: str | None = None
        self.reset_sent = False

    def set_mode(self, mode: LoginMode | str) -> None:
        self.mode = LoginMode(mode)
        self.error = None
        self.guidance = None
        self.status_code = None

    @property
    def reset_redirect(self) -> str:
        return f"{self.client.site_url}/#/settings"

    async def submit(self, email: str, password: str = "", mode: LoginMode | str | None = None) -> bool:
        if mode is not None:
            self.set_mode(mode)
        self.error = None
        self.guidance = None
        self.status_code = None
        self.notice = None
        self.redirect_to = None
        self.reset_sent = False

        email = (email or "").strip()
        try:
            if not email:
                raise ValueError("Email is required")
            if self.mode is not LoginMode.FORGOT and not password:
                raise ValueError("Password is required")
            if self.mode is LoginMode.REGISTER and len(password) < MIN_PASSWORD_LENGTH:
                raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        except ValueError as exc:
            self._invalid(exc)
            return False

        self.loading = True
        try:
            if self.mode is LoginMode.LOGIN:
                await self.session.sign_in(email, password)
                self.redirect_to = "/dashboard"
            elif self.mode is LoginMode.REGISTER:
                response = await self.session.sign_up(email, password)
                if response.session is None:
                    self.notice = "Registration successful! Check your email for a verification link, then sign in."
                    self.mode = LoginMode.LOGIN
                else:
                    self.notice = "Registration successful!"
                    self.redirect_to = "/dashboard"
            else:
                await self.client.auth.reset_password_for_email(email, redirect_to=self.reset_redirect)
                self.reset_sent = True
                self.notice = "Password reset instructions have been sent to your email."
        except SupabaseError as exc:
            self._fail(exc)
            self.guidance = auth_guidance(self.error)
            return False
        finally:
            self.loading = False

        user = self.user
        logger.info("Auth %s succeeded for user %s", self.mode.value, user.id if user else "-")
        return True

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state.update({"mode": self.mode.value, "guidance": self.guidance, "resetSent": self.reset_sent})
        return state

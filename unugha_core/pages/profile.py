from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from ..errors import SupabaseError
from ..models import present_avatar
from ..storage import AVATAR_BUCKET, FileUpload, validate_image
from .base import PageController
from .login import MIN_PASSWORD_LENGTH


logger = logging.getLogger(__name__)


class ProfileSettingsController(PageController):
    """Account settings: display name, avatar, password and sign out."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.full_name = ""
        self.email = ""
        self.avatar_url: str | None = None

    def load(self) -> None:
        user = self.require_user()
        self.full_name = user.full_name
        self.email = user.email
        self.avatar_url = user.avatar_url

    @property
    def avatar(self) -> str:
        return present_avatar(self.avatar_url, self.email, self.client.url)

    async def _mirror_profile(self, user_id: str, values: Dict[str, Any]) -> None:
        # The auth update already succeeded; the profiles row only mirrors it.
        try:
            await self.client.table("profiles").update(values).eq("id", user_id).execute()
        except SupabaseError as exc:
            logger.warning("Could not mirror %s to profiles row %s: %s", sorted(values), user_id, exc)

    async def update_profile(self, full_name: str) -> bool:
        user = self.require_user()
        self.error = None
        self.status_code = None
        self.notice = None

        full_name = (full_name or "").strip()
        if not full_name:
            self._invalid(ValueError("Full name cannot be empty"))
            return False

        self.loading = True
        try:
            updated = await self.client.auth.update_user(data={"full_name": full_name})
        except SupabaseError as exc:
            self._fail(exc, "Failed to update profile: ")
            return False
        finally:
            self.loading = False

        await self._mirror_profile(user.id, {"full_name": full_name})
        self.full_name = updated.full_name or full_name
        self.notice = "Profile updated successfully."
        return True

    async def upload_avatar(self, upload: FileUpload) -> bool:
        user = self.require_user()
        self.error = None
        self.status_code = None
        self.notice = None

        try:
            validate_image(upload)
        except ValueError as exc:
            self._invalid(exc)
            return False

        path = f"{user.id}-{uuid.uuid4().hex}.{upload.extension}"
        self.loading = True
        try:
            try:
                await self.client.storage.upload(AVATAR_BUCKET, path, upload)
            except SupabaseError as exc:
                self._fail(exc, "Failed to upload avatar: ")
                return False

            public_url = self.client.storage.public_url(path, AVATAR_BUCKET)
            try:
                await self.client.auth.update_user(data={"avatar_url": public_url})
            except SupabaseError as exc:
                self._fail(exc, "Failed to save avatar: ")
                await self._discard_upload(AVATAR_BUCKET, path)
                return False
        finally:
            self.loading = False

        await self._mirror_profile(user.id, {"avatar_url": public_url})
        self.avatar_url = public_url
        self.notice = "Profile photo updated."
        return True

    async def update_password(self, new_password: str, confirm_password: str) -> bool:
        self.require_user()
        self.error = None
        self.status_code = None
        self.notice = None

        try:
            if new_password != confirm_password:
                raise ValueError("Password confirmation does not match.")
            if len(new_password or "") < MIN_PASSWORD_LENGTH:
                raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        except ValueError as exc:
            self._invalid(exc)
            return False

        self.loading = True
        try:
            await self.client.auth.update_user(password=new_password)
        except SupabaseError as exc:
            self._fail(exc, "Failed to change password: ")
            return False
        finally:
            self.loading = False

        self.notice = "Password changed successfully."
        return True

    async def sign_out(self) -> bool:
        self.error = None
        self.status_code = None
        try:
            await self.session.sign_out()
        except SupabaseError as exc:
            self._fail(exc, "Failed to sign out: ")
            return False
        self.full_name = ""
        self.email = ""
        self.avatar_url = None
        self.redirect_to = "/"
        return True

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state.update({"fullName": self.full_name, "email": self.email, "avatarUrl": self.avatar})
        return state

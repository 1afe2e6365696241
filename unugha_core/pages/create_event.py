from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from ..errors import SupabaseError
from ..models import EventForm, present_event
from ..storage import BANNER_BUCKET, FileUpload, validate_image
from .base import PageController


logger = logging.getLogger(__name__)


class CreateEventController(PageController):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.created: Dict[str, Any] | None = None

    async def submit(self, form: EventForm, banner: FileUpload | None = None) -> bool:
        """Validate, upload the banner (optional) and insert the event.

        Stops at the first failing step. An uploaded banner is removed again
        when the event row cannot be written.
        """

        user = self.require_user()
        self.error = None
        self.status_code = None
        self.notice = None
        self.created = None

        try:
            form.validate()
            if banner is not None:
                validate_image(banner)
        except ValueError as exc:
            self._invalid(exc)
            return False

        self.loading = True
        try:
            image_path: str | None = None
            if banner is not None:
                path = f"{user.id}/{uuid.uuid4().hex}.{banner.extension}"
                try:
                    image_path = await self.client.storage.upload(BANNER_BUCKET, path, banner)
                except SupabaseError as exc:
                    self._fail(exc, "Failed to upload banner: ")
                    return False

            try:
                rows = await self.client.table("events").insert(form.record(user.id, image_path)).execute()
            except SupabaseError as exc:
                self._fail(exc, "Failed to create event: ")
                if image_path:
                    await self._discard_upload(BANNER_BUCKET, image_path)
                return False
        finally:
            self.loading = False

        self.created = rows[0] if rows else None
        logger.info("Event '%s' created by %s", form.title.strip(), user.id)
        self.notice = "Event created successfully!"
        self.redirect_to = "/dashboard"
        return True

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state["event"] = present_event(self.created, self.client.url) if self.created else None
        return state

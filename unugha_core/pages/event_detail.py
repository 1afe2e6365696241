from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..auth import User
from ..errors import SupabaseError, is_conflict_error
from ..models import EventStatus, EventType, is_online_location, present_event
from .base import PageController


logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "date", "time", "location", "description", "type", "status", "is_public")


class EventDetailController(PageController):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.event_id: str | None = None
        self.event: Dict[str, Any] | None = None
        self.is_registered = False
        self.registering = False
        self.conflict = False
        self.attendees: List[Dict[str, Any]] = []

    @property
    def is_host(self) -> bool:
        user = self.user
        return bool(user and self.event and self.event.get("host_id") == user.id)

    @property
    def is_online(self) -> bool:
        return bool(self.event) and is_online_location(self.event.get("location"))

    async def load(self, event_id: str) -> None:
        self.event_id = event_id
        generation = self._begin()
        try:
            try:
                event = await self.client.table("events").select("*").eq("id", event_id).single().execute()
            except SupabaseError as exc:
                self._fail(exc, "Failed to load event details: ", generation=generation)
                if self._is_current(generation):
                    self.event = None
                    self.is_registered = False
                return
            registered = await self._registration_exists(event_id)
        finally:
            self._finish(generation)

        if self._is_current(generation):
            self.event = event
            self.is_registered = registered

    async def _registration_exists(self, event_id: str) -> bool:
        user = self.user
        if user is None:
            return False
        try:
            row = await (
                self.client.table("registrations")
                .select("id")
                .eq("event_id", event_id)
                .eq("user_id", user.id)
                .maybe_single()
                .execute()
            )
        except SupabaseError as exc:
            logger.warning("Registration status check failed for event %s: %s", event_id, exc)
            return False
        return row is not None

    async def register(self, event_id: str) -> bool:
        user = self.require_user()
        self.registering = True
        self.conflict = False
        self.error = None
        self.status_code = None
        try:
            await (
                self.client.table("registrations")
                .insert({"user_id": user.id, "event_id": event_id})
                .execute()
            )
        except SupabaseError as exc:
            self.conflict = is_conflict_error(exc)
            self._fail(exc, "Registration failed: ")
            return False
        finally:
            self.registering = False

        if self.event_id == event_id:
            self.is_registered = True
        self.notice = "You are registered! This event now appears on your dashboard."
        return True

    # ------------------------------------------------------------------
    # Host-only operations. Row level security on the backend is the real gate.

    async def _host(self, event_id: str) -> User | None:
        """Signed-in host of ``event_id``; ``None`` when the event cannot be loaded."""

        user = self.require_user()
        if self.event is None or self.event.get("id") != event_id:
            await self.load(event_id)
            if self.event is None:
                return None
        if self.event.get("host_id") != user.id:
            raise PermissionError("Only the event host can manage this event")
        return user

    async def update_event(self, event_id: str, changes: Dict[str, Any]) -> bool:
        user = await self._host(event_id)
        if user is None:
            return False
        values = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS}
        try:
            if not values:
                raise ValueError("Nothing to update")
            if "status" in values and values["status"] not in {item.value for item in EventStatus}:
                raise ValueError(f"Unknown event status '{values['status']}'")
            if "type" in values and values["type"] not in {item.value for item in EventType}:
                raise ValueError(f"Unknown event type '{values['type']}'")
            if "title" in values and not str(values["title"] or "").strip():
                raise ValueError("Event title cannot be empty")
        except ValueError as exc:
            self._invalid(exc)
            return False

        self.error = None
        try:
            rows = await (
                self.client.table("events")
                .update(values)
                .eq("id", event_id)
                .eq("host_id", user.id)
                .execute()
            )
        except SupabaseError as exc:
            self._fail(exc, "Failed to update event: ")
            return False

        if not rows:
            self.error = "Event was not updated. You may not have permission to change it."
            self.status_code = 403
            return False
        self.event = rows[0]
        self.notice = "Event updated."
        return True

    async def delete_event(self, event_id: str) -> bool:
        user = await self._host(event_id)
        if user is None:
            return False
        self.error = None
        try:
            rows = await (
                self.client.table("events")
                .delete()
                .eq("id", event_id)
                .eq("host_id", user.id)
                .execute()
            )
        except SupabaseError as exc:
            self._fail(exc, "Failed to delete event: ")
            return False

        if not rows:
            self.error = "Event was not deleted. You may not have permission to remove it."
            self.status_code = 403
            return False
        self.event = None
        self.notice = "Event deleted."
        self.redirect_to = "/dashboard"
        return True

    async def load_attendees(self, event_id: str) -> List[Dict[str, Any]]:
        if await self._host(event_id) is None:
            self.attendees = []
            return self.attendees
        try:
            self.attendees = await (
                self.client.table("registrations")
                .select("*")
                .eq("event_id", event_id)
                .order("created_at")
                .execute()
            )
        except SupabaseError as exc:
            self._fail(exc, "Failed to load registrations: ")
            self.attendees = []
        return self.attendees

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state.update(
            {
                "event": present_event(self.event, self.client.url) if self.event else None,
                "isRegistered": self.is_registered,
                "isHost": self.is_host,
                "isOnline": self.is_online,
                "conflict": self.conflict,
            }
        )
        return state

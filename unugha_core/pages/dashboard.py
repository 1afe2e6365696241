from __future__ import annotations

from typing import Any, Dict, List

from ..auth import User
from ..errors import SupabaseError
from ..models import ALL_STATUSES_TAB, EventStatus, ViewMode, present_event
from .base import PageController


STATUS_TABS = (ALL_STATUSES_TAB, EventStatus.OPEN.value, EventStatus.DONE.value)


class DashboardController(PageController):
    """Events the signed-in user hosts or attends."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.view_mode = ViewMode.HOSTED
        self.events: List[Dict[str, Any]] = []

    async def load(self, view_mode: ViewMode | str | None = None) -> None:
        user = self.require_user()
        if view_mode is not None:
            self.view_mode = ViewMode(view_mode)
        mode = self.view_mode

        generation = self._begin()
        try:
            if mode is ViewMode.HOSTED:
                rows = await self._hosted_events(user)
            else:
                rows = await self._attending_events(user)
        except SupabaseError as exc:
            self._fail(exc, generation=generation)
            if self._is_current(generation):
                self.events = []
            return
        finally:
            self._finish(generation)

        if self._is_current(generation):
            self.events = rows

    async def _hosted_events(self, user: User) -> List[Dict[str, Any]]:
        return await (
            self.client.table("events")
            .select("*")
            .eq("host_id", user.id)
            .order("created_at", desc=True)
            .execute()
        )

    async def _attending_events(self, user: User) -> List[Dict[str, Any]]:
        rows = await (
            self.client.table("registrations")
            .select("event_id, events:events (*)")
            .eq("user_id", user.id)
            .execute()
        )
        return [row["events"] for row in rows if isinstance(row.get("events"), dict)]

    def filtered_events(self, tab: str = ALL_STATUSES_TAB) -> List[Dict[str, Any]]:
        if not tab or tab == ALL_STATUSES_TAB:
            return list(self.events)
        return [event for event in self.events if event.get("status") == tab]

    def stats(self) -> Dict[str, int]:
        return {
            "total": len(self.events),
            "open": sum(1 for event in self.events if event.get("status") == EventStatus.OPEN.value),
            "done": sum(1 for event in self.events if event.get("status") == EventStatus.DONE.value),
        }

    def as_dict(self, tab: str = ALL_STATUSES_TAB) -> Dict[str, Any]:
        state = super().as_dict()
        state.update(
            {
                "viewMode": self.view_mode.value,
                "tab": tab or ALL_STATUSES_TAB,
                "events": [present_event(row, self.client.url) for row in self.filtered_events(tab)],
                "stats": self.stats(),
            }
        )
        return state

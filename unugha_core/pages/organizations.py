from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..errors import SupabaseError
from ..models import present_event, present_organization
from .base import PageController


logger = logging.getLogger(__name__)


class OrganizationListController(PageController):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.organizations: List[Dict[str, Any]] = []

    async def load(self) -> None:
        generation = self._begin()
        try:
            rows = await self.client.table("organizations").select("*").execute()
        except SupabaseError as exc:
            self._fail(exc, generation=generation)
            return
        finally:
            self._finish(generation)

        if self._is_current(generation):
            self.organizations = rows

    def filtered(self, search: str = "") -> List[Dict[str, Any]]:
        """Organizations whose name or type contains ``search`` (case-insensitive)."""

        needle = (search or "").strip().lower()
        if not needle:
            return list(self.organizations)
        return [
            row
            for row in self.organizations
            if needle in str(row.get("name") or "").lower() or needle in str(row.get("type") or "").lower()
        ]

    def as_dict(self, search: str = "") -> Dict[str, Any]:
        state = super().as_dict()
        state["organizations"] = [present_organization(row, self.client.url) for row in self.filtered(search)]
        return state


class OrganizationDetailController(PageController):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.organization: Dict[str, Any] | None = None
        self.events: List[Dict[str, Any]] = []

    async def load(self, org_id: str) -> None:
        generation = self._begin()
        try:
            try:
                organization = await (
                    self.client.table("organizations").select("*").eq("id", org_id).single().execute()
                )
            except SupabaseError as exc:
                self._fail(exc, "Failed to load organization: ", generation=generation)
                return

            try:
                events = await (
                    self.client.table("events")
                    .select("*")
                    .eq("organization_id", org_id)
                    .order("date", desc=True)
                    .execute()
                )
            except SupabaseError as exc:
                logger.warning("Could not load events for organization %s: %s", org_id, exc)
                events = []
        finally:
            self._finish(generation)

        if self._is_current(generation):
            self.organization = organization
            self.events = events

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state.update(
            {
                "organization": present_organization(self.organization, self.client.url)
                if self.organization
                else None,
                "events": [present_event(row, self.client.url) for row in self.events],
            }
        )
        return state

from __future__ import annotations

import calendar
import datetime as dt
from typing import Any, Dict, List

from ..errors import SupabaseError
from ..models import present_event
from .base import PageController


# Weeks start on Sunday.
FIRST_WEEKDAY = calendar.SUNDAY
WEEKDAY_LABELS = ("Min", "Sen", "Sel", "Rab", "Kam", "Jum", "Sab")


def month_bounds(year: int, month: int) -> tuple[dt.date, dt.date]:
    last_day = calendar.monthrange(year, month)[1]
    return dt.date(year, month, 1), dt.date(year, month, last_day)


class CalendarController(PageController):
    """Month view of the events visible to the signed-in user."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        today = dt.date.today()
        self.year = today.year
        self.month = today.month
        self.events: List[Dict[str, Any]] = []

    async def load(self, year: int | None = None, month: int | None = None) -> None:
        user = self.require_user()
        year = self.year if year is None else year
        month = self.month if month is None else month
        try:
            first, last = month_bounds(year, month)
        except ValueError as exc:
            self._invalid(ValueError(f"Invalid month: {exc}"))
            return
        self.year, self.month = first.year, first.month

        generation = self._begin()
        try:
            rows = await (
                self.client.table("events")
                .select("*")
                .gte("date", first.isoformat())
                .lte("date", last.isoformat())
                .order("date")
                .order("time")
                .execute()
            )
        except SupabaseError as exc:
            self._fail(exc, "Failed to load calendar: ", generation=generation)
            return
        finally:
            self._finish(generation)

        if self._is_current(generation):
            self.events = [row for row in rows if row.get("is_public", True) or row.get("host_id") == user.id]

    def weeks(self) -> List[List[Dict[str, Any]]]:
        """Grid of weeks; days outside the month are included with ``inMonth`` false."""

        by_date: Dict[str, List[Dict[str, Any]]] = {}
        for row in self.events:
            by_date.setdefault(str(row.get("date") or "")[:10], []).append(row)

        grid = []
        for week in calendar.Calendar(firstweekday=FIRST_WEEKDAY).monthdatescalendar(self.year, self.month):
            grid.append(
                [
                    {
                        "date": day.isoformat(),
                        "day": day.day,
                        "inMonth": day.month == self.month,
                        "events": [
                            present_event(row, self.client.url) for row in by_date.get(day.isoformat(), [])
                        ]
                        if day.month == self.month
                        else [],
                    }
                    for day in week
                ]
            )
        return grid

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state.update(
            {
                "year": self.year,
                "month": self.month,
                "monthName": calendar.month_name[self.month],
                "weekdays": list(WEEKDAY_LABELS),
                "weeks": self.weeks(),
            }
        )
        return state

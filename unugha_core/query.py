from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .client import SupabaseClient


SINGLE_OBJECT_ACCEPT = "application/vnd.pgrst.object+json"


def _filter_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TableQuery:
    """Chainable PostgREST request for one table.

    Mirrors the familiar ``table(...).select(...).eq(...).order(...)`` chain;
    nothing is sent until :meth:`execute` is awaited.
    """

    def __init__(self, client: "SupabaseClient", table: str) -> None:
        self._client = client
        self.table = table
        self.method = "GET"
        self.columns = "*"
        self.filters: List[Tuple[str, str]] = []
        self._order: List[str] = []
        self._limit: int | None = None
        self._single = False
        self._maybe_single = False
        self._payload: Any = None

    # -- verbs ---------------------------------------------------------------

    def select(self, columns: str = "*") -> "TableQuery":
        self.columns = re.sub(r"\s+", "", columns) or "*"
        return self

    def insert(self, rows: Dict[str, Any] | Sequence[Dict[str, Any]]) -> "TableQuery":
        self.method = "POST"
        self._payload = list(rows) if isinstance(rows, (list, tuple)) else [rows]
        return self

    def update(self, values: Dict[str, Any]) -> "TableQuery":
        self.method = "PATCH"
        self._payload = dict(values)
        return self

    def delete(self) -> "TableQuery":
        self.method = "DELETE"
        return self

    # -- filters and modifiers ----------------------------------------------

    def eq(self, column: str, value: Any) -> "TableQuery":
        operator = "is" if value is None else "eq"
        self.filters.append((column, f"{operator}.{_filter_value(value)}"))
        return self

    def neq(self, column: str, value: Any) -> "TableQuery":
        self.filters.append((column, f"neq.{_filter_value(value)}"))
        return self

    def gte(self, column: str, value: Any) -> "TableQuery":
        self.filters.append((column, f"gte.{_filter_value(value)}"))
        return self

    def lte(self, column: str, value: Any) -> "TableQuery":
        self.filters.append((column, f"lte.{_filter_value(value)}"))
        return self

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self._order.append(f"{column}.{'desc' if desc else 'asc'}")
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = count
        return self

    def single(self) -> "TableQuery":
        """Expect exactly one row; PostgREST answers 406 otherwise."""

        self._single = True
        return self

    def maybe_single(self) -> "TableQuery":
        """Return the first row or ``None``."""

        self._maybe_single = True
        self._limit = 1
        return self

    # -- request building ----------------------------------------------------

    @property
    def path(self) -> str:
        return f"/rest/v1/{self.table}"

    def params(self) -> List[Tuple[str, str]]:
        params = list(self.filters)
        if self.method != "DELETE" or self.columns != "*":
            params.append(("select", self.columns))
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        return params

    def headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.method != "GET":
            headers["Prefer"] = "return=representation"
        if self._payload is not None:
            headers["Content-Type"] = "application/json"
        if self._single:
            headers["Accept"] = SINGLE_OBJECT_ACCEPT
        return headers

    async def execute(self) -> Any:
        """Send the request.

        Returns a dict for :meth:`single`, a dict or ``None`` for
        :meth:`maybe_single` and a list of row dicts otherwise. Failures raise
        :class:`~unugha_core.errors.SupabaseError`.
        """

        data = await self._client.request(
            self.method,
            self.path,
            params=self.params(),
            json=self._payload,
            headers=self.headers(),
        )

        if self._single:
            return data if isinstance(data, dict) else {}

        if isinstance(data, dict):
            rows = [data]
        elif isinstance(data, list):
            rows = [row for row in data if isinstance(row, dict)]
        else:
            rows = []

        if self._maybe_single:
            return rows[0] if rows else None
        return rows

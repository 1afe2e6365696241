from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .auth import AuthClient
from .errors import SupabaseError
from .query import TableQuery
from .storage import BANNER_BUCKET, StorageClient, storage_url


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class SupabaseClient:
    """Shared handle to the Supabase project used by every page.

    Configuration comes from the environment unless passed explicitly:
    ``SUPABASE_URL``, ``SUPABASE_ANON_KEY`` (publishable key, ``SUPABASE_KEY``
    is accepted too), ``UNUGHA_DATA_DIR`` for the persisted session and
    ``UNUGHA_SITE_URL`` for links sent by email.
    """

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        data_dir: Path | None = None,
        site_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        persist_session: bool = True,
    ) -> None:
        self.url = (url if url is not None else os.getenv("SUPABASE_URL", "")).rstrip("/")
        self.key = key if key is not None else (os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
        self.data_dir = Path(data_dir or os.getenv("UNUGHA_DATA_DIR") or "data")
        self.site_url = (site_url or os.getenv("UNUGHA_SITE_URL") or "http://localhost:5173").rstrip("/")
        self.timeout = timeout
        self._transport = transport

        self.auth = AuthClient(self, persist=persist_session)
        self.storage = StorageClient(self)

    def for_request(self) -> "SupabaseClient":
        """Same project and transport, but an empty in-memory session of its own."""

        return SupabaseClient(
            url=self.url,
            key=self.key,
            data_dir=self.data_dir,
            site_url=self.site_url,
            transport=self._transport,
            timeout=self.timeout,
            persist_session=False,
        )

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def storage_url(self, path: str | None, bucket: str = BANNER_BUCKET) -> Optional[str]:
        return storage_url(path, bucket, base_url=self.url)

    def headers(self) -> Dict[str, str]:
        token = self.auth.access_token or self.key
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        content: bytes | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        """Send one request and return the decoded body (``None`` when empty)."""

        if not self.configured:
            raise SupabaseError(
                {"message": "Supabase configuration is incomplete (set SUPABASE_URL and SUPABASE_ANON_KEY)"}
            )

        request_headers = self.headers()
        request_headers.update(headers or {})
        endpoint = f"{self.url}{path}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    endpoint,
                    params=params,
                    json=json,
                    content=content,
                    headers=request_headers,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error = SupabaseError.from_response(exc.response)
            logger.debug("Supabase %s %s failed (%s): %s", method, path, error.status, error)
            raise error from exc
        except httpx.HTTPError as exc:
            logger.warning("Supabase %s %s unavailable (%s)", method, path, exc)
            raise SupabaseError({"message": f"Network request failed: {exc}"}) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

"""REST backend implementing every collaborator over the dashboard API.

The backend uses :mod:`httpx` so it stays fully asynchronous and can be
driven by a mock transport in tests. Every endpoint answers with the
``{success, data, message, error}`` envelope; an unsuccessful envelope is
raised as :class:`ApiError`.
"""

from __future__ import annotations

from typing import Any

import httpx

from ..data.models import RecognizedText
from .base import PersistenceAdapter, RecognitionAdapter, RosterAdapter


class ApiError(httpx.HTTPError):
    """The API answered, but reported failure in its response envelope."""


class RestBackend(RecognitionAdapter, RosterAdapter, PersistenceAdapter):
    """Adapter that talks to the guild dashboard HTTP API."""

    def __init__(
        self, base_url: str, token: str = "", client: httpx.AsyncClient | None = None
    ) -> None:
        """Store the API ``base_url``, bearer ``token`` and optional ``client``."""
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = client or httpx.AsyncClient(timeout=30.0)

    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self.client.request(
            method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
        )
        response.raise_for_status()
        body = response.json()
        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                raise ApiError(str(body.get("error") or body.get("message") or "request failed"))
            return body.get("data")
        return body

    async def _request_or_none(self, method: str, path: str) -> Any:
        try:
            return await self._request(method, path)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return None
            raise

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------
    async def recognize(self, image: bytes, module: str) -> RecognizedText:
        """Upload one screenshot and return the recognized raw text.

        Parameters
        ----------
        image:
            Encoded image bytes.
        module:
            Event module the screenshot belongs to.

        """
        data = await self._request(
            "POST",
            "/screenshot/analyze",
            files={"screenshot": ("screenshot.png", image, "image/png")},
            data={"module": module},
        )
        return RecognizedText.from_text(str((data or {}).get("rawText", "")))

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------
    async def list_members(self) -> list[dict[str, Any]]:
        return list(await self._request("GET", "/guild/members") or [])

    async def rename_member(self, member_id: int | str, new_name: str) -> None:
        await self._request("PUT", f"/guild/members/{member_id}", json={"name": new_name})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    async def get_dates(self, module: str) -> list[str]:
        return [str(d) for d in await self._request("GET", f"/{module}/dates") or []]

    async def get_by_date(self, module: str, date: str) -> dict[str, Any] | None:
        return await self._request_or_none("GET", f"/{module}/date/{date}")

    async def upsert(self, module: str, record: dict[str, Any]) -> None:
        await self._request("POST", f"/{module}/import", json={f"{module}Data": [record]})

    async def delete(self, module: str, date: str) -> bool:
        return await self._request_or_none("DELETE", f"/{module}/date/{date}") is not None

    async def close(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""
        await self.client.aclose()

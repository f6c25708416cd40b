"""HTTP client for the Pulse platform API.

Thin async wrapper over ``httpx.AsyncClient``. Every call returns the decoded
JSON body (or an empty dict for empty bodies); normalization is left to
``connectors.ingestion``. No retries.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class BackendError(Exception):
    """Base exception for backend communication errors."""


class BackendConnectionError(BackendError):
    """Could not reach the backend."""


class BackendRequestError(BackendError):
    """The backend answered with an error status or an undecodable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class HttpPulseBackend:
    """PulseBackend implementation over the platform's REST API.

    Usage::

        backend = HttpPulseBackend("https://pulse.example.org", token="...")
        recs = await backend.get_active_recommendations()
        await backend.aclose()
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def data_source(self) -> str:
        return "http"

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_active_recommendations(self) -> Any:
        return await self._request("GET", "/recommendations/active")

    async def get_profile(self) -> Any:
        return await self._request("GET", "/patients/profile")

    async def get_goal_completions(self) -> Any:
        return await self._request("GET", "/patients/goals/completions")

    async def get_biomarker_dashboard(self) -> Any:
        return await self._request("GET", "/biomarkers/dashboard")

    async def get_biomarker_history(self, biomarker_type: str, limit: int = 500) -> Any:
        return await self._request(
            "GET",
            f"/biomarkers/history/{quote(str(biomarker_type), safe='')}",
            params={"limit": limit, "offset": 0},
        )

    async def get_effective_thresholds(self) -> Any:
        return await self._request("GET", "/thresholds/effective")

    async def get_my_thresholds(self) -> Any:
        return await self._request("GET", "/thresholds/my")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def set_my_threshold(self, payload: dict[str, Any]) -> Any:
        return await self._request("POST", "/thresholds/my", json=payload)

    async def delete_my_threshold(self, threshold_id: str) -> Any:
        return await self._request("DELETE", f"/thresholds/my/{quote(str(threshold_id), safe='')}")

    async def dismiss_recommendation(self, recommendation_id: str) -> Any:
        return await self._request(
            "POST", f"/recommendations/{quote(str(recommendation_id), safe='')}/dismiss"
        )

    async def submit_feedback(self, recommendation_id: str, payload: dict[str, Any]) -> Any:
        return await self._request(
            "POST",
            f"/recommendations/{quote(str(recommendation_id), safe='')}/feedback",
            json=payload,
        )

    async def mark_note_read(self, note_id: str) -> Any:
        return await self._request("PATCH", f"/notes/{quote(str(note_id), safe='')}/mark-read")

    async def insert_biomarker(self, payload: dict[str, Any]) -> Any:
        return await self._request("POST", "/biomarkers/", json=payload)

    async def mark_goal_complete(self, goal_text: str, goal_frequency: str, completion_date: str) -> Any:
        return await self._request(
            "POST",
            "/patients/goals/complete",
            params={
                "goal_text": goal_text,
                "goal_frequency": goal_frequency,
                "completion_date": completion_date,
            },
        )

    async def unmark_goal_complete(self, goal_text: str, completion_date: str) -> Any:
        return await self._request(
            "POST",
            "/patients/goals/uncomplete",
            params={"goal_text": goal_text, "completion_date": completion_date},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{API_PREFIX}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Backend unreachable: %s %s (%s)", method, url, exc)
            raise BackendConnectionError(f"Cannot reach backend at {self._base_url}: {exc}") from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning("Backend error %d on %s %s: %s", response.status_code, method, url, detail)
            raise BackendRequestError(
                f"Backend returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise BackendRequestError(
                f"Backend returned a non-JSON body for {method} {url}",
                status_code=response.status_code,
            ) from exc

"""HTTP client for the backend bulk-enrichment endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from leadpilot.config import settings
from leadpilot.enrich.errors import ApiStatusError, ApiTransportError

logger = logging.getLogger(__name__)

START_PATH = "/enrich/batchEnrichLeads"
APPEND_PATH = "/enrich/batchEnrichEditUrns"
STATUS_PATH = "/enrich/batchEnrichStatus"
PAUSE_PATH = "/enrich/batchEnrichPause"
RESUME_PATH = "/enrich/batchEnrichResume"
STOP_PATH = "/enrich/batchEnrichStop"
QUOTA_PATH = "/enrich/quotaRefresh"
LEADS_PATH = "/scraper/getAllLeads"


class EnrichmentApiClient:
    """Thin async wrapper over the enrichment API.

    Every call is a JSON ``POST``. A call that never gets a response raises
    ``ApiTransportError``; a non-2xx response raises ``ApiStatusError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout_seconds: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.ENRICH_API_BASE_URL).strip().rstrip("/")
        self.token = settings.ENRICH_API_TOKEN if token is None else token
        self.timeout_seconds = max(1.0, float(timeout_seconds or settings.ENRICH_HTTP_TIMEOUT_SECONDS))
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: dict[str, Any] | None = None) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                resp = await client.post(f"{self.base_url}{path}", json=payload or {})
        except httpx.TimeoutException as exc:
            logger.warning("enrich_api.timeout", extra={"path": path})
            raise ApiTransportError(path, "Request timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("enrich_api.transport_error", extra={"path": path, "error": str(exc)})
            raise ApiTransportError(path, str(exc) or None) from exc

        if resp.is_error:
            logger.warning("enrich_api.http_error", extra={"path": path, "status_code": resp.status_code})
            raise ApiStatusError(path, resp.status_code, resp.text[:500])

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            logger.warning("enrich_api.invalid_json", extra={"path": path})
            return {}

    async def _post_object(self, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        data = await self._post(path, payload)
        return data if isinstance(data, dict) else {}

    async def start_job(self, parent_id: str, urn_ids: list[str], label: str) -> dict[str, Any]:
        return await self._post_object(
            START_PATH,
            {"pipelineId": parent_id, "urn_ids": list(urn_ids), "job_name": label},
        )

    async def append_targets(self, job_id: str, urn_ids: list[str]) -> dict[str, Any]:
        return await self._post_object(
            APPEND_PATH,
            {"job_id": job_id, "urn_ids": list(urn_ids), "action": "add"},
        )

    async def job_status(self, job_id: str) -> dict[str, Any]:
        return await self._post_object(STATUS_PATH, {"job_id": job_id})

    async def pause_job(self, job_id: str) -> None:
        await self._post(PAUSE_PATH, {"job_id": job_id})

    async def resume_job(self, job_id: str) -> None:
        await self._post(RESUME_PATH, {"job_id": job_id})

    async def stop_job(self, job_id: str) -> None:
        await self._post(STOP_PATH, {"job_id": job_id})

    async def refresh_quota(self) -> dict[str, Any]:
        return await self._post_object(QUOTA_PATH)

    async def fetch_leads(self, parent_id: str) -> list[dict[str, Any]]:
        data = await self._post(LEADS_PATH, {"id": parent_id})
        if isinstance(data, dict):
            data = data.get("data")
        return [lead for lead in data if isinstance(lead, dict)] if isinstance(data, list) else []

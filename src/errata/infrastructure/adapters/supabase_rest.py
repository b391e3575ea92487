"""
Supabase Repository: Infrastructure adapter for the hosted Postgres store.

Implements CardRepository and PreferencesRepository over the PostgREST
HTTP API that Supabase exposes under ``/rest/v1``, plus the review-session
port over the ``review_sessions`` table.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from errata.application.analysis.effective_config import (
    dump_analysis_config,
    parse_analysis_config,
)
from errata.domain.analysis.models import AnalysisConfig, ErrorCard, ReviewSession, SessionStatus
from errata.domain.analysis.ports import (
    CardRepository,
    PreferencesRepository,
    ReviewSessionRepository,
)
from errata.domain.constants import DEFAULT_STATUS_NAMES, REQUEST_TIMEOUT
from errata.domain.errors import RepositoryError

CARD_SELECT = (
    "id,error_text,error_status,error_type,review_count,needs_intervention,created_at,"
    "topics!inner(id,name,subject_id,subjects(id,name))"
)


class SupabaseRepository(CardRepository, PreferencesRepository, ReviewSessionRepository):
    """
    Talks to the ``errors``, ``error_statuses``, ``user_preferences`` and
    ``review_sessions`` tables.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )

        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = await self._client.request(method, path, params=params, json=json, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_message(e.response)
            self.logger.error(f"{method} {path} failed ({e.response.status_code}): {detail}")
            raise RepositoryError(detail) from e
        except httpx.HTTPError as e:
            self.logger.error(f"{method} {path} failed: {e}")
            raise RepositoryError(str(e) or type(e).__name__) from e

        if not resp.content:
            return None
        return resp.json()

    # ----- CardRepository -----

    async def fetch_cards(
        self,
        user_id: str,
        subject_id: str | None = None,
        only_flagged: bool = False,
    ) -> list[ErrorCard]:
        params = {
            "select": CARD_SELECT,
            "user_id": f"eq.{user_id}",
            "order": "review_count.desc",
        }
        if subject_id:
            params["topics.subject_id"] = f"eq.{subject_id}"
        if only_flagged:
            params["needs_intervention"] = "is.true"

        rows = await self._request("GET", "/errors", params=params) or []
        return [_card_from_row(row) for row in rows]

    async def set_intervention(self, user_id: str, card_ids: list[str], flagged: bool) -> int:
        if not card_ids:
            return 0

        now = datetime.now(timezone.utc).isoformat()
        body: dict[str, Any] = {"needs_intervention": flagged}
        if flagged:
            body["intervention_flagged_at"] = now
            body["intervention_resolved_at"] = None
        else:
            body["intervention_resolved_at"] = now

        await self._request(
            "PATCH",
            "/errors",
            params={"id": f"in.({','.join(card_ids)})", "user_id": f"eq.{user_id}"},
            json=body,
            prefer="return=minimal",
        )
        return len(card_ids)

    async def increment_review(self, card_id: str) -> None:
        await self._request("POST", "/rpc/increment_review_count", json={"error_id": card_id})

    # ----- PreferencesRepository -----

    async def fetch_statuses(self, user_id: str) -> list[str]:
        rows = await self._request(
            "GET",
            "/error_statuses",
            params={"select": "name", "user_id": f"eq.{user_id}", "order": "created_at.asc"},
        )
        names = [row["name"] for row in rows or [] if row.get("name")]
        if names:
            return names

        # No custom statuses yet: defaults plus whatever is already in use.
        used = await self._request(
            "GET",
            "/errors",
            params={"select": "error_status", "user_id": f"eq.{user_id}"},
        )
        in_use = [row["error_status"] for row in used or [] if row.get("error_status")]
        return list(dict.fromkeys([*DEFAULT_STATUS_NAMES, *in_use]))

    async def fetch_analysis_config(self, user_id: str) -> AnalysisConfig | None:
        rows = await self._request(
            "GET",
            "/user_preferences",
            params={"select": "analysis_config", "user_id": f"eq.{user_id}", "limit": "1"},
        )
        if not rows:
            return None
        return parse_analysis_config(rows[0].get("analysis_config"))

    async def save_analysis_config(self, user_id: str, config: AnalysisConfig) -> AnalysisConfig:
        rows = await self._request(
            "POST",
            "/user_preferences",
            params={"on_conflict": "user_id"},
            json={"user_id": user_id, "analysis_config": dump_analysis_config(config)},
            prefer="resolution=merge-duplicates,return=representation",
        )
        if rows:
            return parse_analysis_config(rows[0].get("analysis_config")) or config
        return config

    # ----- ReviewSessionRepository -----

    async def fetch_active_session(self, user_id: str) -> ReviewSession | None:
        rows = await self._request(
            "GET",
            "/review_sessions",
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "status": "eq.in_progress",
                "order": "created_at.desc",
                "limit": "1",
            },
        )
        return _session_from_row(rows[0]) if rows else None

    async def fetch_session(self, session_id: str) -> ReviewSession | None:
        rows = await self._request(
            "GET",
            "/review_sessions",
            params={"select": "*", "id": f"eq.{session_id}", "limit": "1"},
        )
        return _session_from_row(rows[0]) if rows else None

    async def cancel_active_sessions(self, user_id: str) -> None:
        await self._request(
            "PATCH",
            "/review_sessions",
            params={"user_id": f"eq.{user_id}", "status": "eq.in_progress"},
            json={"status": "cancelled"},
            prefer="return=minimal",
        )

    async def create_session(
        self, user_id: str, card_ids: list[str], filters: dict
    ) -> ReviewSession:
        rows = await self._request(
            "POST",
            "/review_sessions",
            json={
                "user_id": user_id,
                "filters": filters,
                "card_ids": card_ids,
                "reviewed_card_ids": [],
                "status": "in_progress",
            },
            prefer="return=representation",
        )
        if not rows:
            raise RepositoryError("Review session insert returned no row")
        return _session_from_row(rows[0])

    async def update_session(
        self,
        session_id: str,
        reviewed_card_ids: list[str] | None = None,
        status: SessionStatus | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if reviewed_card_ids is not None:
            body["reviewed_card_ids"] = reviewed_card_ids
        if status is not None:
            body["status"] = status
        if not body:
            return
        await self._request(
            "PATCH",
            "/review_sessions",
            params={"id": f"eq.{session_id}"},
            json=body,
            prefer="return=minimal",
        )


def _card_from_row(row: dict[str, Any]) -> ErrorCard:
    topic = _first(row.get("topics")) or {}
    subject = _first(topic.get("subjects")) or {}

    return ErrorCard(
        id=str(row["id"]),
        review_count=int(row.get("review_count") or 0),
        status_name=row.get("error_status") or "",
        needs_intervention=bool(row.get("needs_intervention")),
        subject_id=subject.get("id") or topic.get("subject_id"),
        topic_id=topic.get("id"),
        created_at=_parse_timestamp(row.get("created_at")),
        error_text=row.get("error_text"),
        error_type=row.get("error_type"),
        subject_name=subject.get("name"),
        topic_name=topic.get("name"),
    )


def _session_from_row(row: dict[str, Any]) -> ReviewSession:
    return ReviewSession(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        card_ids=[str(c) for c in row.get("card_ids") or []],
        reviewed_card_ids=[str(c) for c in row.get("reviewed_card_ids") or []],
        status=row.get("status") or "in_progress",
        filters=row.get("filters") or {},
        created_at=_parse_timestamp(row.get("created_at")),
    )


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value


def _first(value: Any) -> Any:
    # Embedded resources come back as an object or a one-element list.
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text

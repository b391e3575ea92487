"""
Snapshot Repository: Infrastructure adapter for a local YAML/JSON file.

Useful offline and in tests. The file layout is::

    users:
      <user_id>:
        statuses: [normal, critico, ...]
        analysis_config: {status_config: {...}, problem_threshold: 10, ...}
        cards:
          - id: c1
            review_count: 7
            status_name: normal
            subject_id: s1
            ...
    review_sessions:
      - id: 01J...
        user_id: <user_id>
        card_ids: [c1, c2]
        reviewed_card_ids: [c1]
        status: in_progress

Mutations are applied in memory and written back to the same file.
"""

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from ulid import ULID

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
from errata.domain.constants import DEFAULT_STATUS_NAMES
from errata.domain.errors import RepositoryError

logger = logging.getLogger(__name__)


class SnapshotRepository(CardRepository, PreferencesRepository, ReviewSessionRepository):
    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            raise RepositoryError(f"Snapshot file not found: {self.path}")
        try:
            # JSON is a subset of YAML, so one loader handles both.
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RepositoryError(f"Could not read snapshot {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("users", {}), dict):
            raise RepositoryError(f"Snapshot {self.path} must map 'users' to per-user data")
        data.setdefault("users", {})
        self._data = data
        return data

    def _save(self) -> None:
        data = self._load()
        try:
            if self.path.suffix == ".json":
                text = json.dumps(data, indent=2, default=_json_default)
            else:
                text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
            self.path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise RepositoryError(f"Could not write snapshot {self.path}: {e}") from e

    def _user(self, user_id: str) -> dict[str, Any]:
        return self._load()["users"].setdefault(user_id, {})

    # ----- CardRepository -----

    async def fetch_cards(
        self,
        user_id: str,
        subject_id: str | None = None,
        only_flagged: bool = False,
    ) -> list[ErrorCard]:
        cards = [_card_from_dict(raw) for raw in self._user(user_id).get("cards", [])]
        if subject_id:
            cards = [c for c in cards if c.subject_id == subject_id]
        if only_flagged:
            cards = [c for c in cards if c.needs_intervention]
        return sorted(cards, key=lambda c: c.review_count, reverse=True)

    async def set_intervention(self, user_id: str, card_ids: list[str], flagged: bool) -> int:
        wanted = set(card_ids)
        now = datetime.now(timezone.utc).isoformat()
        for raw in self._user(user_id).get("cards", []):
            if str(raw.get("id")) not in wanted:
                continue
            raw["needs_intervention"] = flagged
            if flagged:
                raw["intervention_flagged_at"] = now
                raw["intervention_resolved_at"] = None
            else:
                raw["intervention_resolved_at"] = now
        self._save()
        return len(card_ids)

    async def increment_review(self, card_id: str) -> None:
        for user in self._load()["users"].values():
            for raw in user.get("cards", []):
                if str(raw.get("id")) == card_id:
                    raw["review_count"] = int(raw.get("review_count") or 0) + 1
                    self._save()
                    return
        raise RepositoryError(f"Card not found: {card_id}")

    # ----- PreferencesRepository -----

    async def fetch_statuses(self, user_id: str) -> list[str]:
        user = self._user(user_id)
        if user.get("statuses"):
            return [str(s) for s in user["statuses"]]
        in_use = [raw.get("status_name") for raw in user.get("cards", []) if raw.get("status_name")]
        return list(dict.fromkeys([*DEFAULT_STATUS_NAMES, *in_use]))

    async def fetch_analysis_config(self, user_id: str) -> AnalysisConfig | None:
        return parse_analysis_config(self._user(user_id).get("analysis_config"))

    async def save_analysis_config(self, user_id: str, config: AnalysisConfig) -> AnalysisConfig:
        self._user(user_id)["analysis_config"] = dump_analysis_config(config)
        self._save()
        logger.info(f"Saved analysis config for user={user_id} to {self.path}")
        return config

    # ----- ReviewSessionRepository -----

    def _sessions(self) -> list[dict[str, Any]]:
        return self._load().setdefault("review_sessions", [])

    async def fetch_active_session(self, user_id: str) -> ReviewSession | None:
        active = [
            raw
            for raw in self._sessions()
            if raw.get("user_id") == user_id and raw.get("status") == "in_progress"
        ]
        if not active:
            return None
        # ULIDs sort by creation time
        return _session_from_dict(max(active, key=lambda raw: str(raw["id"])))

    async def fetch_session(self, session_id: str) -> ReviewSession | None:
        for raw in self._sessions():
            if str(raw.get("id")) == session_id:
                return _session_from_dict(raw)
        return None

    async def cancel_active_sessions(self, user_id: str) -> None:
        for raw in self._sessions():
            if raw.get("user_id") == user_id and raw.get("status") == "in_progress":
                raw["status"] = "cancelled"
        self._save()

    async def create_session(
        self, user_id: str, card_ids: list[str], filters: dict
    ) -> ReviewSession:
        raw = {
            "id": str(ULID()),
            "user_id": user_id,
            "card_ids": list(card_ids),
            "reviewed_card_ids": [],
            "status": "in_progress",
            "filters": dict(filters),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._sessions().append(raw)
        self._save()
        return _session_from_dict(raw)

    async def update_session(
        self,
        session_id: str,
        reviewed_card_ids: list[str] | None = None,
        status: SessionStatus | None = None,
    ) -> None:
        for raw in self._sessions():
            if str(raw.get("id")) != session_id:
                continue
            if reviewed_card_ids is not None:
                raw["reviewed_card_ids"] = list(reviewed_card_ids)
            if status is not None:
                raw["status"] = status
            self._save()
            return
        raise RepositoryError(f"Review session not found: {session_id}")


def _card_from_dict(raw: dict[str, Any]) -> ErrorCard:
    created_at = raw.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    elif isinstance(created_at, date) and not isinstance(created_at, datetime):
        created_at = datetime.combine(created_at, datetime.min.time())

    return ErrorCard(
        id=str(raw["id"]),
        review_count=int(raw.get("review_count") or 0),
        status_name=raw.get("status_name") or "",
        needs_intervention=bool(raw.get("needs_intervention", False)),
        subject_id=_opt_str(raw.get("subject_id")),
        topic_id=_opt_str(raw.get("topic_id")),
        created_at=created_at,
        error_text=raw.get("error_text"),
        error_type=raw.get("error_type"),
        subject_name=raw.get("subject_name"),
        topic_name=raw.get("topic_name"),
    )


def _session_from_dict(raw: dict[str, Any]) -> ReviewSession:
    created_at = raw.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)

    return ReviewSession(
        id=str(raw["id"]),
        user_id=str(raw["user_id"]),
        card_ids=[str(c) for c in raw.get("card_ids") or []],
        reviewed_card_ids=[str(c) for c in raw.get("reviewed_card_ids") or []],
        status=raw.get("status") or "in_progress",
        filters=dict(raw.get("filters") or {}),
        created_at=created_at,
    )


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _json_default(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Cannot serialize {type(value).__name__}")

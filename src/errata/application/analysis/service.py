"""
Analysis Service: Application layer orchestrator.

Coordinates fetching cards and preferences from the repositories, running
the analyzer, writing back auto-flags and user actions, and driving review
sessions over the cards the analysis marks as problematic.
"""

import logging
from dataclasses import replace

from errata.domain.analysis.models import AnalysisConfig, ErrorCard, ReviewSession
from errata.domain.analysis.ports import (
    CardRepository,
    PreferencesRepository,
    ReviewSessionRepository,
)
from errata.domain.errors import ConfigurationError, MissingIdentifierError, NotFoundError

from .effective_config import build_effective_config
from .problem_index import AnalysisResult, ProblemIndexAnalyzer, problematic_card_ids

logger = logging.getLogger(__name__)


class AnalysisService:
    """
    Application service for problem-index analysis and card flag actions.

    Depends on the CardRepository and PreferencesRepository abstractions,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        cards: CardRepository,
        preferences: PreferencesRepository,
        analyzer: ProblemIndexAnalyzer | None = None,
        sessions: ReviewSessionRepository | None = None,
    ):
        """
        Args:
            cards: The repository (port) for error cards.
            preferences: The repository (port) for statuses and config.
            analyzer: Optional custom analyzer; uses default if not provided.
            sessions: The repository (port) for review sessions.
        """
        self._cards = cards
        self._prefs = preferences
        self._analyzer = analyzer or ProblemIndexAnalyzer()
        self._sessions = sessions

    async def close(self) -> None:
        """Close each distinct repository once."""
        closed: list[object] = []
        for repo in (self._cards, self._prefs, self._sessions):
            if repo is None or any(repo is seen for seen in closed):
                continue
            closed.append(repo)
            await repo.close()

    async def analyze(
        self,
        user_id: str | None,
        subject_id: str | None = None,
        only_flagged: bool = False,
    ) -> AnalysisResult:
        """
        Fetch the user's cards and config and run the analysis.

        When auto-flagging is enabled, outliers that are not yet flagged are
        persisted as needs_intervention before returning. The returned result
        reflects the state before that write; the ids written are listed in
        ``auto_flag_candidates``.

        Raises:
            MissingIdentifierError: If user_id is empty.
            RepositoryError: If any fetch or the auto-flag write fails.
        """
        _require(user_id, "user_id")

        cards = await self._cards.fetch_cards(
            user_id, subject_id=subject_id, only_flagged=only_flagged
        )
        statuses = await self._prefs.fetch_statuses(user_id)
        stored = await self._prefs.fetch_analysis_config(user_id)

        config = build_effective_config(statuses, stored)
        result = self._analyzer.analyze(cards, config, statuses)

        logger.info(
            f"Analysis for user={user_id}: {result.stats.total} scored, "
            f"{result.stats.attention_zone} in attention, {result.stats.outliers} outliers"
        )

        if result.auto_flag_candidates:
            await self._cards.set_intervention(user_id, result.auto_flag_candidates, True)
            logger.info(f"Auto-flagged {len(result.auto_flag_candidates)} cards for user={user_id}")

        return result

    async def set_critical_flag(
        self, user_id: str | None, card_ids: list[str], flagged: bool
    ) -> int:
        """
        Manually flag or unflag cards for intervention.

        Returns:
            Number of cards the update was requested for.
        """
        _require(user_id, "user_id")
        if not card_ids:
            raise MissingIdentifierError("card_ids must not be empty")

        updated = await self._cards.set_intervention(user_id, list(card_ids), flagged)
        logger.info(f"{'Flagged' if flagged else 'Unflagged'} {updated} cards for user={user_id}")
        return updated

    async def mark_reviewed(self, card_id: str | None) -> None:
        """Record one more review of a card."""
        _require(card_id, "card_id")
        await self._cards.increment_review(card_id)

    async def get_config(self, user_id: str | None) -> AnalysisConfig:
        """Return the effective config, with defaults for unconfigured statuses."""
        _require(user_id, "user_id")
        statuses = await self._prefs.fetch_statuses(user_id)
        stored = await self._prefs.fetch_analysis_config(user_id)
        return build_effective_config(statuses, stored)

    async def save_config(self, user_id: str | None, config: AnalysisConfig) -> AnalysisConfig:
        """Persist the user's config; it applies to every later analysis."""
        _require(user_id, "user_id")
        return await self._prefs.save_analysis_config(user_id, config)

    async def list_cards(self, user_id: str | None, subject_id: str | None = None) -> list[ErrorCard]:
        """Raw cards, used by the timeline views."""
        _require(user_id, "user_id")
        return await self._cards.fetch_cards(user_id, subject_id=subject_id)

    async def list_statuses(self, user_id: str | None) -> list[str]:
        _require(user_id, "user_id")
        return await self._prefs.fetch_statuses(user_id)

    # ----- Review sessions -----

    def _session_repo(self) -> ReviewSessionRepository:
        if self._sessions is None:
            raise ConfigurationError("No review-session repository configured")
        return self._sessions

    async def active_session(self, user_id: str | None) -> ReviewSession | None:
        _require(user_id, "user_id")
        return await self._session_repo().fetch_active_session(user_id)

    async def start_session(
        self,
        user_id: str | None,
        card_ids: list[str] | None = None,
        filters: dict | None = None,
    ) -> ReviewSession:
        """
        Start a review session, cancelling any session still in progress.

        Without explicit ``card_ids`` the session queues the problematic
        cards of a fresh analysis (attention or critical zone), optionally
        narrowed by ``filters["subject_id"]``.

        Raises:
            MissingIdentifierError: If user_id is empty or no cards qualify.
        """
        _require(user_id, "user_id")
        filters = dict(filters or {})
        repo = self._session_repo()

        if card_ids is None:
            result = await self.analyze(user_id, subject_id=filters.get("subject_id"))
            card_ids = problematic_card_ids(result)
            filters.setdefault("source", "problematic")
        if not card_ids:
            raise MissingIdentifierError("card_ids must not be empty")

        await repo.cancel_active_sessions(user_id)
        session = await repo.create_session(user_id, list(card_ids), filters)
        logger.info(
            f"Started review session {session.id} for user={user_id} with {len(card_ids)} cards"
        )
        return session

    async def record_session_review(
        self, session_id: str | None, card_id: str | None
    ) -> ReviewSession:
        """
        Count a review of ``card_id`` inside a session.

        The first review of a card bumps its review_count; repeats are
        ignored. Reviewing the last remaining card completes the session.
        """
        _require(card_id, "card_id")
        session = await self._get_session(session_id)
        if card_id in session.reviewed_card_ids:
            return session

        await self._cards.increment_review(card_id)

        reviewed = [*session.reviewed_card_ids, card_id]
        status = "completed" if len(reviewed) >= len(session.card_ids) else session.status
        await self._session_repo().update_session(
            session.id, reviewed_card_ids=reviewed, status=status
        )
        if status == "completed" and session.status != "completed":
            logger.info(f"Review session {session.id} completed")
        return replace(session, reviewed_card_ids=reviewed, status=status)

    async def complete_session(self, session_id: str | None) -> ReviewSession:
        session = await self._get_session(session_id)
        await self._session_repo().update_session(session.id, status="completed")
        return replace(session, status="completed")

    async def cancel_session(self, session_id: str | None) -> ReviewSession:
        session = await self._get_session(session_id)
        await self._session_repo().update_session(session.id, status="cancelled")
        logger.info(f"Review session {session.id} cancelled")
        return replace(session, status="cancelled")

    async def _get_session(self, session_id: str | None) -> ReviewSession:
        _require(session_id, "session_id")
        session = await self._session_repo().fetch_session(session_id)
        if session is None:
            raise NotFoundError(f"Review session not found: {session_id}")
        return session


def _require(value: str | None, name: str) -> None:
    if not value:
        raise MissingIdentifierError(f"{name} is required")

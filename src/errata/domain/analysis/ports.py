"""
Ports (interfaces) for reading and writing cards and user preferences.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import AnalysisConfig, ErrorCard, ReviewSession, SessionStatus


class CardRepository(ABC):
    """
    Port for the user's error cards.

    Implementations:
        - SupabaseRepository: PostgREST over HTTP.
        - SnapshotRepository: A local YAML/JSON snapshot file.
    """

    @abstractmethod
    async def fetch_cards(
        self,
        user_id: str,
        subject_id: str | None = None,
        only_flagged: bool = False,
    ) -> list[ErrorCard]:
        """
        Fetch the user's cards, optionally filtered.

        Args:
            user_id: Owner of the cards.
            subject_id: Only cards whose topic belongs to this subject.
            only_flagged: Only cards with needs_intervention set.

        Returns:
            List of ErrorCard, ordered by review_count descending.

        Raises:
            RepositoryError: If the backend cannot be read.
        """
        pass

    @abstractmethod
    async def set_intervention(self, user_id: str, card_ids: list[str], flagged: bool) -> int:
        """
        Set or clear needs_intervention on the given cards.

        Flagging stamps intervention_flagged_at and clears
        intervention_resolved_at; clearing stamps intervention_resolved_at.

        Returns:
            Number of card ids the update was requested for.
        """
        pass

    @abstractmethod
    async def increment_review(self, card_id: str) -> None:
        """Increment a card's review_count by one."""
        pass

    async def close(self) -> None:
        """Release any connections held by the adapter."""
        return None


class PreferencesRepository(ABC):
    """Port for per-user statuses and analysis configuration."""

    @abstractmethod
    async def fetch_statuses(self, user_id: str) -> list[str]:
        """
        Return the user's status names in creation order.

        When the user has not defined any, returns the default status names
        followed by any other statuses already used on their cards.
        """
        pass

    @abstractmethod
    async def fetch_analysis_config(self, user_id: str) -> AnalysisConfig | None:
        """Return the stored analysis config, or None if never saved."""
        pass

    @abstractmethod
    async def save_analysis_config(self, user_id: str, config: AnalysisConfig) -> AnalysisConfig:
        """Insert or replace the user's analysis config."""
        pass

    async def close(self) -> None:
        """Release any connections held by the adapter."""
        return None


class ReviewSessionRepository(ABC):
    """
    Port for review sessions.

    A user has at most one session in progress; starting a new one cancels
    the previous one.
    """

    @abstractmethod
    async def fetch_active_session(self, user_id: str) -> ReviewSession | None:
        """Return the user's most recent in-progress session, if any."""
        pass

    @abstractmethod
    async def fetch_session(self, session_id: str) -> ReviewSession | None:
        pass

    @abstractmethod
    async def cancel_active_sessions(self, user_id: str) -> None:
        """Move every in-progress session of the user to cancelled."""
        pass

    @abstractmethod
    async def create_session(
        self, user_id: str, card_ids: list[str], filters: dict
    ) -> ReviewSession:
        """Insert a new in-progress session with no reviewed cards."""
        pass

    @abstractmethod
    async def update_session(
        self,
        session_id: str,
        reviewed_card_ids: list[str] | None = None,
        status: SessionStatus | None = None,
    ) -> None:
        """
        Overwrite the given fields of a session; None leaves a field unchanged.

        Raises:
            RepositoryError: If the backend cannot be written.
        """
        pass

    async def close(self) -> None:
        """Release any connections held by the adapter."""
        return None

"""
Domain models for error cards and their analysis configuration.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from errata.domain.constants import (
    DEFAULT_AUTO_FLAG_ENABLED,
    DEFAULT_OUTLIER_PERCENTAGE,
    DEFAULT_PROBLEM_THRESHOLD,
)


@dataclass(frozen=True)
class ErrorCard:
    """
    A logged mistake, as read from the persistence layer.

    Attributes:
        id: Opaque unique identifier.
        review_count: Number of times the card has been reviewed (>= 0).
        status_name: One of the user's free-form status labels.
        needs_intervention: Manually or previously auto-set critical flag.
        subject_id: Subject the card's topic belongs to, if any.
        topic_id: Topic the card is filed under, if any.
        created_at: When the mistake was logged.
    """

    id: str
    review_count: int
    status_name: str
    needs_intervention: bool = False
    subject_id: str | None = None
    topic_id: str | None = None
    created_at: datetime | None = None

    # Display-only fields
    error_text: str | None = None
    error_type: str | None = None
    subject_name: str | None = None
    topic_name: str | None = None


SessionStatus = Literal["in_progress", "completed", "cancelled"]


@dataclass(frozen=True)
class ReviewSession:
    """
    A queue of cards the user works through in one sitting.

    Attributes:
        id: Backend-assigned identifier.
        card_ids: Cards queued when the session started, in order.
        reviewed_card_ids: Cards already reviewed in this session.
        status: in_progress until every card is reviewed or the user stops.
        filters: Whatever selected the cards (e.g. ``{"source": "problematic"}``).
    """

    id: str
    user_id: str
    card_ids: list[str]
    reviewed_card_ids: list[str] = field(default_factory=list)
    status: SessionStatus = "in_progress"
    filters: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def remaining_card_ids(self) -> list[str]:
        reviewed = set(self.reviewed_card_ids)
        return [c for c in self.card_ids if c not in reviewed]


@dataclass(frozen=True)
class StatusConfig:
    """
    Per-status scoring parameters.

    Attributes:
        weight: Severity multiplier applied to excess reviews (>= 0).
        expected_reviews: Reviews considered normal before excess accrues (>= 1).
    """

    weight: float
    expected_reviews: int

    def __post_init__(self):
        if self.weight < 0:
            raise ValueError(f"weight must be non-negative, got {self.weight}")
        if self.expected_reviews < 1:
            raise ValueError(
                f"expected_reviews must be positive, got {self.expected_reviews}"
            )


@dataclass
class AnalysisConfig:
    """
    A user's analysis settings.

    Statuses are an open set of strings; a status missing from
    ``status_config`` is scored with the unconfigured defaults.
    """

    status_config: dict[str, StatusConfig] = field(default_factory=dict)
    problem_threshold: float = DEFAULT_PROBLEM_THRESHOLD
    outlier_percentage: float = DEFAULT_OUTLIER_PERCENTAGE
    auto_flag_enabled: bool = DEFAULT_AUTO_FLAG_ENABLED

    def __post_init__(self):
        if self.problem_threshold <= 0:
            raise ValueError(
                f"problem_threshold must be positive, got {self.problem_threshold}"
            )
        if not 0 < self.outlier_percentage <= 100:
            raise ValueError(
                f"outlier_percentage must be in (0, 100], got {self.outlier_percentage}"
            )

"""
Problem-index analyzer.

Scores each reviewed card by how far it has gone past the reviews its
status expects, splits cards into attention and critical zones, and
aggregates the result for the analysis dashboard.

This is a pure computation module with no I/O.
"""

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Literal

from errata.domain.analysis.models import AnalysisConfig, ErrorCard
from errata.domain.constants import DEFAULT_EXPECTED_REVIEWS, UNCONFIGURED_STATUS_WEIGHT

from .regression import RegressionDiagnostic, compute_regression

logger = logging.getLogger(__name__)

Zone = Literal["critical", "attention", "normal"]


@dataclass(frozen=True)
class ScoredCard:
    """
    An ErrorCard with its derived analysis fields.
    """

    # Original card
    id: str
    review_count: int
    status_name: str
    needs_intervention: bool
    subject_id: str | None
    topic_id: str | None
    subject_name: str | None
    topic_name: str | None
    error_text: str | None

    # Scoring
    expected_reviews: int
    status_weight: float
    excess_reviews: int
    problem_index: float

    # Classification
    needs_attention: bool = False
    is_outlier: bool = False
    zone: Zone = "normal"


@dataclass(frozen=True)
class SubjectSummary:
    subject_id: str | None
    name: str | None
    count: int


@dataclass
class AnalysisStats:
    total: int = 0
    flagged: int = 0
    outliers: int = 0  # Outliers not already flagged
    attention_zone: int = 0
    most_problematic_subject: SubjectSummary | None = None


@dataclass
class AnalysisResult:
    cards: list[ScoredCard]
    stats: AnalysisStats
    config: AnalysisConfig
    regression: RegressionDiagnostic
    outlier_threshold: float | None  # None: no card can be an outlier
    auto_flag_candidates: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)


def compute_outlier_threshold(
    indices: Iterable[float], problem_threshold: float, outlier_percentage: float
) -> float | None:
    """
    Dynamic cutoff for the critical zone.

    Only indices already in the attention zone take part, so the top
    ``outlier_percentage``% of problematic cards become critical.

    Returns:
        The cutoff, or None when no index reaches ``problem_threshold``.
    """
    problematic = sorted(i for i in indices if i >= problem_threshold)
    if not problematic:
        return None

    percentile = (100 - outlier_percentage) / 100
    index = min(math.floor(len(problematic) * percentile), len(problematic) - 1)
    return problematic[index]


class ProblemIndexAnalyzer:
    """
    Computes problem indices, zones and aggregate statistics.

    Stateless and side-effect free: the same cards and config always give
    the same result.
    """

    def __init__(self, default_expected_reviews: int = DEFAULT_EXPECTED_REVIEWS):
        """
        Args:
            default_expected_reviews: Expected reviews for statuses with no config.
        """
        self.default_expected_reviews = default_expected_reviews

    def analyze(
        self,
        cards: Iterable[ErrorCard],
        config: AnalysisConfig,
        statuses: Sequence[str] = (),
    ) -> AnalysisResult:
        """
        Run the full analysis.

        Cards that were never reviewed carry no signal and are left out of
        every output.

        Args:
            cards: The user's cards.
            config: Effective config (see build_effective_config).
            statuses: Known status names, echoed back for the UI.
        """
        scored = [self.score(card, config) for card in cards if card.review_count > 0]

        unconfigured = {c.status_name for c in scored} - set(config.status_config)
        if unconfigured:
            logger.warning(f"Scoring unconfigured statuses with defaults: {sorted(unconfigured)}")

        outlier_threshold = compute_outlier_threshold(
            (c.problem_index for c in scored),
            config.problem_threshold,
            config.outlier_percentage,
        )
        classified = [self.classify(c, config, outlier_threshold) for c in scored]

        auto_flag_candidates = []
        if config.auto_flag_enabled:
            auto_flag_candidates = [
                c.id for c in classified if c.is_outlier and not c.needs_intervention
            ]

        return AnalysisResult(
            cards=classified,
            stats=self.aggregate(classified),
            config=config,
            regression=compute_regression(classified),
            outlier_threshold=outlier_threshold,
            auto_flag_candidates=auto_flag_candidates,
            statuses=list(statuses),
        )

    def score(self, card: ErrorCard, config: AnalysisConfig) -> ScoredCard:
        """
        Compute excess reviews and problem index for one card.

        problem_index = max(0, review_count - expected_reviews) * weight
        """
        status_cfg = config.status_config.get(card.status_name)
        if status_cfg is None:
            expected = self.default_expected_reviews
            weight = UNCONFIGURED_STATUS_WEIGHT
        else:
            expected = status_cfg.expected_reviews
            weight = status_cfg.weight

        excess = max(0, card.review_count - expected)

        return ScoredCard(
            id=card.id,
            review_count=card.review_count,
            status_name=card.status_name,
            needs_intervention=card.needs_intervention,
            subject_id=card.subject_id,
            topic_id=card.topic_id,
            subject_name=card.subject_name,
            topic_name=card.topic_name,
            error_text=card.error_text,
            expected_reviews=expected,
            status_weight=weight,
            excess_reviews=excess,
            problem_index=excess * weight,
        )

    def classify(
        self,
        card: ScoredCard,
        config: AnalysisConfig,
        outlier_threshold: float | None,
    ) -> ScoredCard:
        """
        Place a scored card in a zone.

        A flagged card is always critical, whatever its recomputed index.
        """
        needs_attention = card.problem_index >= config.problem_threshold
        is_outlier = (
            outlier_threshold is not None
            and card.problem_index >= outlier_threshold
            and card.problem_index > 0
        )

        if card.needs_intervention or is_outlier:
            zone: Zone = "critical"
        elif needs_attention:
            zone = "attention"
        else:
            zone = "normal"

        return replace(card, needs_attention=needs_attention, is_outlier=is_outlier, zone=zone)

    def aggregate(self, cards: Sequence[ScoredCard]) -> AnalysisStats:
        """
        Summary counts over classified cards.

        The most problematic subject is the one with the most cards that
        need attention or are flagged; ties go to the smallest subject id,
        and cards without a subject rank after every real subject.
        """
        counts: dict[str | None, int] = {}
        names: dict[str | None, str | None] = {}
        for card in cards:
            if card.needs_attention or card.needs_intervention:
                counts[card.subject_id] = counts.get(card.subject_id, 0) + 1
                names.setdefault(card.subject_id, card.subject_name)

        most_problematic = None
        if counts:
            subject_id = min(counts, key=lambda sid: (-counts[sid], sid is None, sid or ""))
            most_problematic = SubjectSummary(
                subject_id=subject_id, name=names[subject_id], count=counts[subject_id]
            )

        return AnalysisStats(
            total=len(cards),
            flagged=sum(1 for c in cards if c.needs_intervention),
            outliers=sum(1 for c in cards if c.is_outlier and not c.needs_intervention),
            attention_zone=sum(1 for c in cards if c.needs_attention),
            most_problematic_subject=most_problematic,
        )


def problematic_card_ids(result: AnalysisResult) -> list[str]:
    """Ids of cards to queue for a "review problematic" session."""
    return [c.id for c in result.cards if c.needs_attention or c.zone == "critical"]

"""
Regression diagnostic for the problem-index scatter view.

Fits problem_index against review_count with ordinary least squares and
reports how far each card sits above the line. A card well above the
line is harder than its review count alone would predict.

This is a pure computation module with no I/O.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, Protocol

from errata.domain.constants import (
    MODERATE_DEVIATION_SIGMA,
    REGRESSION_EPSILON,
    SEVERE_DEVIATION_SIGMA,
)

Severity = Literal["severe", "moderate", "normal"]


class RegressionInput(Protocol):
    id: str
    review_count: int
    problem_index: float
    needs_intervention: bool


@dataclass(frozen=True)
class TrendPoint:
    x: float
    y: float


@dataclass(frozen=True)
class RegressionPoint:
    """
    One card's position relative to the fitted line.

    Attributes:
        card_id: The card this point represents.
        x: Review count.
        y: Problem index.
        expected: Value of the fitted line at x.
        deviation: y - expected.
        normalized_deviation: deviation / std_error.
        severity: Color band; flagged cards are always "severe".
    """

    card_id: str
    x: int
    y: float
    expected: float
    deviation: float
    normalized_deviation: float
    severity: Severity


@dataclass
class RegressionDiagnostic:
    slope: float = 0.0
    intercept: float = 0.0
    std_error: float = 1.0
    trend_line: list[TrendPoint] = field(default_factory=list)
    points: list[RegressionPoint] = field(default_factory=list)


def fit_line(xs: Sequence[float], ys: Sequence[float]) -> tuple[float, float] | None:
    """
    Ordinary least squares fit.

    Returns:
        (slope, intercept), or None when the fit is degenerate (fewer than
        two distinct x values).
    """
    n = len(xs)
    if n < 2 or len(set(xs)) < 2:
        return None

    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys, strict=True))
    sum_x2 = sum(x * x for x in xs)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return None

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def classify_deviation(normalized: float, needs_intervention: bool = False) -> Severity:
    if needs_intervention or normalized > SEVERE_DEVIATION_SIGMA:
        return "severe"
    if normalized > MODERATE_DEVIATION_SIGMA:
        return "moderate"
    return "normal"


def compute_regression(cards: Sequence[RegressionInput]) -> RegressionDiagnostic:
    """
    Build the regression diagnostic over already-scored cards.

    A degenerate fit yields slope = intercept = 0 and no trend line; the
    points are still reported against the zero line so flagged cards keep
    their severe classification.
    """
    if not cards:
        return RegressionDiagnostic()

    xs = [c.review_count for c in cards]
    ys = [c.problem_index for c in cards]

    fit = fit_line(xs, ys)
    if fit is None:
        slope, intercept = 0.0, 0.0
        trend_line: list[TrendPoint] = []
    else:
        slope, intercept = fit
        lo, hi = min(xs), max(xs)
        trend_line = [
            TrendPoint(x=lo, y=slope * lo + intercept),
            TrendPoint(x=hi, y=slope * hi + intercept),
        ]

    expected = [slope * x + intercept for x in xs]
    deviations = [y - e for y, e in zip(ys, expected, strict=True)]
    std_error = _population_std([abs(d) for d in deviations])
    if std_error < REGRESSION_EPSILON:
        std_error = 1.0

    points = []
    for card, line_value, deviation in zip(cards, expected, deviations, strict=True):
        normalized = deviation / std_error
        points.append(
            RegressionPoint(
                card_id=card.id,
                x=card.review_count,
                y=card.problem_index,
                expected=line_value,
                deviation=deviation,
                normalized_deviation=normalized,
                severity=classify_deviation(normalized, card.needs_intervention),
            )
        )

    return RegressionDiagnostic(
        slope=slope,
        intercept=intercept,
        std_error=std_error,
        trend_line=trend_line,
        points=points,
    )


def _population_std(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)

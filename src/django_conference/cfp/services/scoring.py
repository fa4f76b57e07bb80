"""Review aggregation and triage classification for submissions.

These are pure functions over review rows so the back-office list can
compute them for every submission without extra queries.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django_conference.cfp.models import Review

NEEDS_MORE_REVIEWS = "needs_more_reviews"
LIKELY_SHORTLISTED = "likely_shortlisted"
LIKELY_REJECT = "likely_reject"
BORDERLINE = "borderline"

CLASSIFICATIONS = (NEEDS_MORE_REVIEWS, LIKELY_SHORTLISTED, LIKELY_REJECT, BORDERLINE)
SCORE_BUCKETS = ("0-1.99", "2-2.99", "3-3.49", "3.5-4")
COVERAGE_BUCKETS = ("0-24", "25-49", "50-74", "75-100")

MIN_REVIEWS = 2
CONFIDENT_REVIEWS = 4
MIN_COVERAGE = 50.0


@dataclass(frozen=True, slots=True)
class SubmissionStats:
    """Averages are ``None`` when no review carries that score."""

    review_count: int
    avg_overall: float | None
    avg_relevance: float | None
    avg_technical_depth: float | None
    avg_clarity: float | None
    avg_diversity: float | None
    coverage_percent: float

    def as_dict(self) -> dict[str, object]:
        return {
            "review_count": self.review_count,
            "avg_overall": self.avg_overall,
            "avg_relevance": self.avg_relevance,
            "avg_technical_depth": self.avg_technical_depth,
            "avg_clarity": self.avg_clarity,
            "avg_diversity": self.avg_diversity,
            "coverage_percent": self.coverage_percent,
        }


def _average(values: list[int | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round(sum(present) / len(present), 2)


def compute_stats(reviews: Iterable["Review"], total_reviewers: int) -> SubmissionStats:
    """Aggregate *reviews* into per-score averages and reviewer coverage.

    Coverage is the share of *total_reviewers* who reviewed the submission,
    as a percentage rounded to one decimal place.
    """
    rows = list(reviews)
    count = len(rows)
    coverage = round(count / total_reviewers * 100, 1) if total_reviewers > 0 else 0.0
    return SubmissionStats(
        review_count=count,
        avg_overall=_average([r.score_overall for r in rows]),
        avg_relevance=_average([r.score_relevance for r in rows]),
        avg_technical_depth=_average([r.score_technical_depth for r in rows]),
        avg_clarity=_average([r.score_clarity for r in rows]),
        avg_diversity=_average([r.score_diversity for r in rows]),
        coverage_percent=min(coverage, 100.0),
    )


def classify(stats: SubmissionStats) -> str:
    """Return the triage class for a submission. Rules apply in order."""
    avg = stats.avg_overall
    count = stats.review_count
    coverage = stats.coverage_percent

    if avg is None or count < MIN_REVIEWS or (count < CONFIDENT_REVIEWS and coverage < MIN_COVERAGE):
        return NEEDS_MORE_REVIEWS
    if avg >= 3.0 and (coverage >= MIN_COVERAGE or count >= CONFIDENT_REVIEWS):  # noqa: PLR2004
        return LIKELY_SHORTLISTED
    if avg < 2.0:  # noqa: PLR2004
        return LIKELY_REJECT
    return BORDERLINE


def score_bucket(avg: float | None) -> str | None:
    if avg is None:
        return None
    if avg < 2:  # noqa: PLR2004
        return "0-1.99"
    if avg < 3:  # noqa: PLR2004
        return "2-2.99"
    if avg < 3.5:  # noqa: PLR2004
        return "3-3.49"
    return "3.5-4"


def coverage_bucket(percent: float) -> str:
    if percent < 25:  # noqa: PLR2004
        return "0-24"
    if percent < 50:  # noqa: PLR2004
        return "25-49"
    if percent < 75:  # noqa: PLR2004
        return "50-74"
    return "75-100"

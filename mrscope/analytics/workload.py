"""Reviewer workload scoring and next-reviewer recommendation.

Stats are built by a pure fold over open merge requests; callers own
the returned list.
"""

from __future__ import annotations

from collections.abc import Collection

from pydantic import BaseModel

from ..models import ChangeRecord, MRComplexity, UserRef

REVIEW_WEIGHT = 2.0
OPEN_WEIGHT = 1.0
DRAFT_WEIGHT = 0.5
REVIEW_COMPLEXITY_WEIGHT = 0.5
AUTHOR_COMPLEXITY_WEIGHT = 0.3

# Assumed for changes without a known complexity
UNKNOWN_COMPLEXITY = 1.0

ComplexityKey = tuple[int | None, int]  # (project_id, iid)


class EngineerStats(BaseModel):
    """Open work attributed to one engineer."""

    user: UserRef
    open_mrs: int = 0  # Authored, not draft
    draft_mrs: int = 0
    assigned_reviews: int = 0
    review_complexity: float = 0.0
    author_complexity: float = 0.0

    @property
    def workload_score(self) -> float:
        return calculate_workload_score(self)


class ReviewShare(BaseModel):
    name: str
    username: str
    value: int


def calculate_workload_score(stats: EngineerStats) -> float:
    """Composite load; lower means more available."""
    return (
        stats.assigned_reviews * REVIEW_WEIGHT
        + stats.open_mrs * OPEN_WEIGHT
        + stats.draft_mrs * DRAFT_WEIGHT
        + stats.review_complexity * REVIEW_COMPLEXITY_WEIGHT
        + stats.author_complexity * AUTHOR_COMPLEXITY_WEIGHT
    )


def complexity_index(complexities: list[MRComplexity]) -> dict[ComplexityKey, float]:
    return {(c.project_id, c.iid): c.complexity_score for c in complexities}


def process_engineer_stats(
    changes: list[ChangeRecord],
    complexities: list[MRComplexity] | None = None,
) -> list[EngineerStats]:
    """Per-engineer stats for authors, reviewers and assignees, busiest first."""
    scores = complexity_index(complexities or [])
    stats: dict[int, EngineerStats] = {}

    def track(user: UserRef) -> EngineerStats:
        if user.id not in stats:
            stats[user.id] = EngineerStats(user=user)
        return stats[user.id]

    for change in changes:
        track(change.author)
        for user in [*change.reviewers, *change.assignees]:
            track(user)

    for change in changes:
        complexity = scores.get((change.project_id, change.iid), UNKNOWN_COMPLEXITY)

        author = stats[change.author.id]
        if change.draft:
            author.draft_mrs += 1
        else:
            author.open_mrs += 1
        author.author_complexity += complexity

        for reviewer in change.reviewers:
            reviewer_stats = stats[reviewer.id]
            reviewer_stats.assigned_reviews += 1
            reviewer_stats.review_complexity += complexity

    return sorted(stats.values(), key=lambda s: s.workload_score, reverse=True)


def review_distribution(stats: list[EngineerStats]) -> list[ReviewShare]:
    """Assigned review counts, largest first."""
    reviewers = [s for s in stats if s.assigned_reviews > 0]
    reviewers.sort(key=lambda s: s.assigned_reviews, reverse=True)
    return [
        ReviewShare(name=s.user.name or s.user.username, username=s.user.username, value=s.assigned_reviews)
        for s in reviewers
    ]


def get_next_reviewer(
    stats: list[EngineerStats],
    eligible: Collection[str] | None = None,
) -> EngineerStats | None:
    """Least-loaded engineer from the allow-list (None allows everyone).

    Ties go to the alphabetically first username.
    """
    candidates = [s for s in stats if eligible is None or s.user.username in eligible]
    if not candidates:
        return None
    return min(candidates, key=lambda s: (s.workload_score, s.user.username))

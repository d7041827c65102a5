"""Per-change metrics and team-level rollups.

All averages return 0 when their denominator set is empty.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta

from pydantic import BaseModel, Field

from ..models import ChangeRecord, FileDiff, MetricSource, MRMetrics, NoteRecord
from .diffstat import summarize_diffs
from .responses import hours_between
from .taxonomy import is_review_comment

TREND_WEEKS = 12
SAMPLE_SIZE = 5

# System note bodies for a draft being marked ready (old and current wording)
READY_PHRASES = ("marked as ready", "marked this merge request as ready")


def _is_ready_note(note: NoteRecord) -> bool:
    body = note.body.lower().replace("*", "")
    return note.system and any(phrase in body for phrase in READY_PHRASES)


class WeeklyTrend(BaseModel):
    week: str  # Monday, ISO date
    merged_mrs: int = 0
    avg_time_to_merge: float = 0.0
    avg_lines_changed: float = 0.0
    avg_reviewers: float = 0.0


class SizeDistribution(BaseModel):
    small: int = 0  # < 100 lines
    medium: int = 0  # 100-499
    large: int = 0  # 500-999
    xlarge: int = 0  # >= 1000

    @property
    def total(self) -> int:
        return self.small + self.medium + self.large + self.xlarge


class ReviewerDistribution(BaseModel):
    none: int = 0
    one: int = 0
    two: int = 0
    three: int = 0
    four_plus: int = 0

    @property
    def total(self) -> int:
        return self.none + self.one + self.two + self.three + self.four_plus


class TeamAnalytics(BaseModel):
    """Team-level review analytics for one timeframe. Times are in hours."""

    avg_time_to_merge: float = 0.0
    avg_time_to_first_review: float = 0.0
    avg_draft_duration: float = 0.0
    avg_review_duration: float = 0.0
    avg_reviewers_per_mr: float = 0.0
    avg_comments_per_mr: float = 0.0
    avg_lines_added_per_mr: float = 0.0
    avg_lines_deleted_per_mr: float = 0.0
    avg_files_changed_per_mr: float = 0.0
    weekly_trends: list[WeeklyTrend] = Field(default_factory=list)
    mrs_by_size: SizeDistribution = Field(default_factory=SizeDistribution)
    mrs_by_reviewers: ReviewerDistribution = Field(default_factory=ReviewerDistribution)
    fastest_merges: list[MRMetrics] = Field(default_factory=list)
    slowest_merges: list[MRMetrics] = Field(default_factory=list)
    largest_mrs: list[MRMetrics] = Field(default_factory=list)
    total_mrs_analyzed: int = 0
    merged_mrs_analyzed: int = 0
    open_mrs_analyzed: int = 0
    draft_mrs_analyzed: int = 0
    detailed_mrs_analyzed: int = 0  # Changes with per-change metrics
    estimated_mrs: int = 0  # Of those, built from defaults


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def find_time_to_first_review(change: ChangeRecord, notes: list[NoteRecord]) -> float | None:
    """Hours from creation until review was first requested.

    Uses the first system note requesting review (or assigning a
    reviewer). Without one, a non-draft change that has reviewers is
    assumed to have had them from creation.
    """
    for note in sorted(notes, key=lambda n: n.created_at):
        if not note.system:
            continue
        body = note.body.lower()
        if "requested review" in body or ("assigned" in body and "reviewer" in body):
            return hours_between(change.created_at, note.created_at)

    if change.reviewers and not change.draft:
        return 0.0

    return None


def calculate_mr_metrics(
    change: ChangeRecord,
    notes: list[NoteRecord],
    changes: list[FileDiff] | None = None,
    source: MetricSource = "measured",
) -> MRMetrics:
    """Metrics for one change from its notes and (optional) diffs."""
    comment_count = sum(1 for note in notes if is_review_comment(note, change.author))

    files_changed, stat = summarize_diffs(changes or [])

    time_to_merge = None
    draft_duration = None
    review_duration = None
    if change.is_merged and change.merged_at:
        time_to_merge = hours_between(change.created_at, change.merged_at)

        ready_note = next(
            (n for n in notes if _is_ready_note(n)),
            None,
        )
        if ready_note:
            draft_duration = hours_between(change.created_at, ready_note.created_at)
            review_duration = hours_between(ready_note.created_at, change.merged_at)
        elif change.draft:
            draft_duration = time_to_merge
            review_duration = 0.0
        else:
            draft_duration = 0.0
            review_duration = time_to_merge

    return MRMetrics(
        id=change.id,
        iid=change.iid,
        title=change.title,
        web_url=change.web_url,
        author=change.author.name or change.author.username,
        author_username=change.author.username,
        state=change.state,
        is_draft=change.draft,
        created_at=change.created_at,
        merged_at=change.merged_at,
        time_to_merge=time_to_merge,
        reviewer_count=len(change.reviewers),
        comment_count=comment_count,
        lines_added=stat.added,
        lines_deleted=stat.deleted,
        files_changed=files_changed,
        draft_duration=draft_duration,
        review_duration=review_duration,
        time_to_first_review=find_time_to_first_review(change, notes),
        source=source,
    )


def week_start(dt: datetime) -> date:
    """Monday of the week containing dt (UTC)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    day = dt.date()
    return day - timedelta(days=day.weekday())


def group_by_week(metrics: list[MRMetrics]) -> dict[str, list[MRMetrics]]:
    """Group changes by the Monday of their creation week."""
    weeks: dict[str, list[MRMetrics]] = {}
    for mr in metrics:
        weeks.setdefault(week_start(mr.created_at).isoformat(), []).append(mr)
    return weeks


def calculate_weekly_trends(metrics: list[MRMetrics], weeks: int = TREND_WEEKS) -> list[WeeklyTrend]:
    groups = group_by_week(metrics)
    trends = []
    for week in sorted(groups)[-weeks:]:
        mrs = groups[week]
        merged = [mr for mr in mrs if mr.state == "merged" and mr.time_to_merge is not None]
        trends.append(
            WeeklyTrend(
                week=week,
                merged_mrs=len(merged),
                avg_time_to_merge=_mean(mr.time_to_merge for mr in merged),
                avg_lines_changed=_mean(mr.lines_changed for mr in mrs),
                avg_reviewers=_mean(mr.reviewer_count for mr in mrs),
            )
        )
    return trends


def size_distribution(metrics: list[MRMetrics]) -> SizeDistribution:
    dist = SizeDistribution()
    for mr in metrics:
        lines = mr.lines_changed
        if lines < 100:
            dist.small += 1
        elif lines < 500:
            dist.medium += 1
        elif lines < 1000:
            dist.large += 1
        else:
            dist.xlarge += 1
    return dist


def reviewer_distribution(metrics: list[MRMetrics]) -> ReviewerDistribution:
    dist = ReviewerDistribution()
    for mr in metrics:
        if mr.reviewer_count == 0:
            dist.none += 1
        elif mr.reviewer_count == 1:
            dist.one += 1
        elif mr.reviewer_count == 2:
            dist.two += 1
        elif mr.reviewer_count == 3:
            dist.three += 1
        else:
            dist.four_plus += 1
    return dist


def calculate_team_analytics(metrics: list[MRMetrics]) -> TeamAnalytics:
    """Fold per-change metrics into team analytics."""
    merged = [mr for mr in metrics if mr.state == "merged" and mr.time_to_merge is not None]
    with_first_review = [mr for mr in metrics if mr.time_to_first_review is not None]

    return TeamAnalytics(
        avg_time_to_merge=_mean(mr.time_to_merge for mr in merged),
        avg_time_to_first_review=_mean(mr.time_to_first_review for mr in with_first_review),
        avg_draft_duration=_mean(mr.draft_duration for mr in merged if mr.draft_duration),
        avg_review_duration=_mean(mr.review_duration for mr in merged if mr.review_duration),
        avg_reviewers_per_mr=_mean(mr.reviewer_count for mr in metrics),
        avg_comments_per_mr=_mean(mr.comment_count for mr in metrics),
        avg_lines_added_per_mr=_mean(mr.lines_added for mr in metrics),
        avg_lines_deleted_per_mr=_mean(mr.lines_deleted for mr in metrics),
        avg_files_changed_per_mr=_mean(mr.files_changed for mr in metrics),
        weekly_trends=calculate_weekly_trends(metrics),
        mrs_by_size=size_distribution(metrics),
        mrs_by_reviewers=reviewer_distribution(metrics),
        fastest_merges=sorted(merged, key=lambda mr: mr.time_to_merge)[:SAMPLE_SIZE],
        slowest_merges=sorted(merged, key=lambda mr: mr.time_to_merge, reverse=True)[:SAMPLE_SIZE],
        largest_mrs=sorted(metrics, key=lambda mr: mr.lines_changed, reverse=True)[:SAMPLE_SIZE],
        total_mrs_analyzed=len(metrics),
        merged_mrs_analyzed=len(merged),
        open_mrs_analyzed=sum(1 for mr in metrics if mr.state == "opened"),
        draft_mrs_analyzed=sum(1 for mr in metrics if mr.is_draft),
        detailed_mrs_analyzed=len(metrics),
        estimated_mrs=sum(1 for mr in metrics if mr.source == "estimated"),
    )

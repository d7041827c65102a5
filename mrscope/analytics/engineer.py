"""Per-engineer review history.

Folds merge requests in a timeframe into one engineer's authored,
reviewed and merged work, plus feedback and responsiveness metrics on
their most recent authored changes.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

from pydantic import BaseModel, Field

from ..models import ChangeRecord, NoteRecord, Timeframe
from .comments import CommentAnalysisResult, analyze_comments, collect_review_comments
from .metrics import week_start
from .responses import ResponseTimeMetrics, hours_between, reconstruct_threads, summarize_response_times
from .taxonomy import is_review_comment

WEEKS_BY_TIMEFRAME = {
    Timeframe.WEEK: 2,
    Timeframe.MONTH: 5,
    Timeframe.QUARTER: 13,
}

# Most recent authored changes looked at by each stage
DETAILED_SAMPLE = 25
COMMENT_SAMPLE = 20
RESPONSE_SAMPLE = 15

# Notes keyed by change id (unique across projects)
NotesByChange = dict[int, list[NoteRecord]]


class EngineerWeek(BaseModel):
    week: str  # Monday, ISO date
    authored: int = 0
    reviewed: int = 0
    merged: int = 0


class DetailedMetrics(BaseModel):
    avg_comments_per_authored_mr: float = 0.0
    avg_review_cycles_as_author: float = 0.0  # Distinct commenting reviewers per change
    avg_time_to_merge: float = 0.0
    avg_time_to_first_comment: float = 0.0
    total_comments: int = 0
    mrs_with_notes: int = 0


class EngineerReport(BaseModel):
    """Review history for one engineer over a timeframe."""

    username: str
    timeframe: Timeframe
    title: str | None = None
    authored_mrs: list[ChangeRecord] = Field(default_factory=list)
    reviewed_mrs: list[ChangeRecord] = Field(default_factory=list)
    merged_mrs: list[ChangeRecord] = Field(default_factory=list)
    weekly_stats: list[EngineerWeek] = Field(default_factory=list)
    detailed: DetailedMetrics = Field(default_factory=DetailedMetrics)
    comment_analysis: CommentAnalysisResult = Field(default_factory=CommentAnalysisResult)
    response_time_metrics: ResponseTimeMetrics = Field(default_factory=ResponseTimeMetrics)
    notes_unavailable: int = 0  # Sampled changes whose notes could not be fetched


def split_engineer_changes(
    username: str,
    changes: list[ChangeRecord],
) -> tuple[list[ChangeRecord], list[ChangeRecord], list[ChangeRecord]]:
    """Return (authored, reviewed, merged); authored is most recent first."""
    authored = [c for c in changes if c.author.username == username]
    authored.sort(key=lambda c: c.last_activity_at, reverse=True)

    reviewed = [c for c in changes if c.has_reviewer(username) and c.author.username != username]
    merged = [c for c in authored if c.is_merged]
    return authored, reviewed, merged


def calculate_weekly_stats(
    authored: list[ChangeRecord],
    reviewed: list[ChangeRecord],
    merged: list[ChangeRecord],
    timeframe: Timeframe,
    now: datetime,
) -> list[EngineerWeek]:
    """Activity per Monday-aligned week, oldest first.

    Authored counts by creation, reviewed by last update, merged by merge time.
    """
    current = week_start(now)
    weeks: dict[date, EngineerWeek] = {}
    for offset in range(WEEKS_BY_TIMEFRAME[timeframe] - 1, -1, -1):
        monday = current - timedelta(weeks=offset)
        weeks[monday] = EngineerWeek(week=monday.isoformat())

    for change in authored:
        week = weeks.get(week_start(change.created_at))
        if week:
            week.authored += 1

    for change in reviewed:
        week = weeks.get(week_start(change.last_activity_at))
        if week:
            week.reviewed += 1

    for change in merged:
        if change.merged_at is None:
            continue
        week = weeks.get(week_start(change.merged_at))
        if week:
            week.merged += 1

    return list(weeks.values())


def calculate_detailed_metrics(authored: list[ChangeRecord], notes_by_change: NotesByChange) -> DetailedMetrics:
    """Feedback received on the most recent authored changes."""
    sample = authored[:DETAILED_SAMPLE]

    total_comments = 0
    total_reviewers = 0
    first_comment_times = []
    with_notes = 0
    for change in sample:
        notes = notes_by_change.get(change.id)
        if notes is None:
            continue
        with_notes += 1

        comments = sorted(
            (n for n in notes if is_review_comment(n, change.author)),
            key=lambda n: n.created_at,
        )
        total_comments += len(comments)
        total_reviewers += len({n.author.username or n.author.id for n in comments})
        if comments:
            first_comment_times.append(hours_between(change.created_at, comments[0].created_at))

    merge_times = [
        hours_between(c.created_at, c.merged_at) for c in sample if c.is_merged and c.merged_at
    ]

    return DetailedMetrics(
        avg_comments_per_authored_mr=total_comments / with_notes if with_notes else 0.0,
        avg_review_cycles_as_author=total_reviewers / with_notes if with_notes else 0.0,
        avg_time_to_merge=sum(merge_times) / len(merge_times) if merge_times else 0.0,
        avg_time_to_first_comment=(
            sum(first_comment_times) / len(first_comment_times) if first_comment_times else 0.0
        ),
        total_comments=total_comments,
        mrs_with_notes=with_notes,
    )


def analyze_authored_comments(
    authored: list[ChangeRecord],
    notes_by_change: NotesByChange,
) -> CommentAnalysisResult:
    comments: list[str] = []
    for change in authored[:COMMENT_SAMPLE]:
        comments.extend(collect_review_comments(notes_by_change.get(change.id, []), change.author))
    return analyze_comments(comments)


def calculate_author_response_times(
    authored: list[ChangeRecord],
    notes_by_change: NotesByChange,
) -> ResponseTimeMetrics:
    threads = []
    for change in authored[:RESPONSE_SAMPLE]:
        threads.extend(reconstruct_threads(change.iid, notes_by_change.get(change.id, []), change.author))
    return summarize_response_times(threads)


def build_engineer_report(
    username: str,
    changes: list[ChangeRecord],
    notes_by_change: NotesByChange,
    timeframe: Timeframe,
    now: datetime | None = None,
    title: str | None = None,
) -> EngineerReport:
    """Full engineer report in one pass."""
    now = now or datetime.now(UTC)
    authored, reviewed, merged = split_engineer_changes(username, changes)

    sampled = authored[:DETAILED_SAMPLE]
    return EngineerReport(
        username=username,
        timeframe=timeframe,
        title=title,
        authored_mrs=authored,
        reviewed_mrs=reviewed,
        merged_mrs=merged,
        weekly_stats=calculate_weekly_stats(authored, reviewed, merged, timeframe, now),
        detailed=calculate_detailed_metrics(authored, notes_by_change),
        comment_analysis=analyze_authored_comments(authored, notes_by_change),
        response_time_metrics=calculate_author_response_times(authored, notes_by_change),
        notes_unavailable=sum(1 for c in sampled if c.id not in notes_by_change),
    )

"""Reviewer/author response threads.

A thread starts at every human note not written by the change author.
It is resolved by the first later author note inside the response
window that looks like a reply. Author notes are not consumed, so one
reply can resolve several earlier reviewer comments.
"""

from __future__ import annotations

import statistics
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from ..models import NoteRecord, UserRef
from .taxonomy import is_human_note, looks_like_response

RESPONSE_WINDOW = timedelta(days=7)


class ReviewerComment(BaseModel):
    model_config = ConfigDict(frozen=True)

    author: str
    created_at: datetime
    body: str


class AuthorResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    created_at: datetime
    body: str


class ResponseThread(BaseModel):
    """A reviewer comment and the author's timely reply, if any."""

    model_config = ConfigDict(frozen=True)

    id: str  # "<change iid>-<note id>"
    reviewer_comment: ReviewerComment
    author_response: AuthorResponse | None = None
    resolved: bool = False
    response_time_hours: float | None = None


class ResponseTimeDistribution(BaseModel):
    under_1_hour: int = 0
    under_4_hours: int = 0
    under_24_hours: int = 0
    under_3_days: int = 0
    over_3_days: int = 0

    @property
    def total(self) -> int:
        return (
            self.under_1_hour + self.under_4_hours + self.under_24_hours
            + self.under_3_days + self.over_3_days
        )


class DailyResponseStats(BaseModel):
    date: str  # ISO calendar date of the reviewer comment
    comments_received: int = 0
    comments_responded: int = 0
    avg_response_time: float = 0.0


class ResponseTimeMetrics(BaseModel):
    """Latency statistics over response threads. Times are in hours."""

    avg_response_time: float = 0.0
    median_response_time: float = 0.0
    fastest_response: float = 0.0
    slowest_response: float = 0.0
    response_rate: float = 0.0
    total_comments: int = 0
    responded_comments: int = 0
    unresolved_comments: int = 0
    distribution: ResponseTimeDistribution = Field(default_factory=ResponseTimeDistribution)
    comments_by_day: list[DailyResponseStats] = Field(default_factory=list)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours, floored at 0."""
    return max(0.0, (end - start).total_seconds() / 3600)


def merge_note_streams(notes: list[NoteRecord], discussion_notes: list[NoteRecord]) -> list[NoteRecord]:
    """Combine top-level and discussion notes, deduplicated by id, oldest first."""
    by_id: dict[int, NoteRecord] = {}
    for note in [*notes, *discussion_notes]:
        by_id.setdefault(note.id, note)
    return sorted(by_id.values(), key=lambda n: n.created_at)


def find_author_response(
    notes: list[NoteRecord],
    start: int,
    author: UserRef,
    comment_time: datetime,
) -> NoteRecord | None:
    """First response-like author note within the window, scanning from start."""
    deadline = comment_time + RESPONSE_WINDOW
    for note in notes[start:]:
        if note.created_at > deadline:
            break
        if note.author.same_as(author) and looks_like_response(note.body):
            return note
    return None


def reconstruct_threads(change_iid: int, notes: list[NoteRecord], author: UserRef) -> list[ResponseThread]:
    """Pair each reviewer comment on one change with the author's reply."""
    human_notes = sorted((n for n in notes if is_human_note(n)), key=lambda n: n.created_at)

    threads = []
    for index, note in enumerate(human_notes):
        if note.author.same_as(author):
            continue

        response = find_author_response(human_notes, index + 1, author, note.created_at)
        threads.append(
            ResponseThread(
                id=f"{change_iid}-{note.id}",
                reviewer_comment=ReviewerComment(
                    author=note.author.username or note.author.name,
                    created_at=note.created_at,
                    body=note.body,
                ),
                author_response=(
                    AuthorResponse(created_at=response.created_at, body=response.body)
                    if response
                    else None
                ),
                resolved=response is not None,
                response_time_hours=(
                    hours_between(note.created_at, response.created_at) if response else None
                ),
            )
        )

    return threads


def _bucket(distribution: ResponseTimeDistribution, hours: float) -> None:
    if hours < 1:
        distribution.under_1_hour += 1
    elif hours < 4:
        distribution.under_4_hours += 1
    elif hours < 24:
        distribution.under_24_hours += 1
    elif hours < 72:
        distribution.under_3_days += 1
    else:
        distribution.over_3_days += 1


def _calendar_day(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.date().isoformat()


def summarize_response_times(threads: list[ResponseThread]) -> ResponseTimeMetrics:
    """Aggregate latency statistics across threads."""
    if not threads:
        return ResponseTimeMetrics()

    times = [t.response_time_hours for t in threads if t.resolved and t.response_time_hours is not None]

    distribution = ResponseTimeDistribution()
    for hours in times:
        _bucket(distribution, hours)

    days: dict[str, list[ResponseThread]] = {}
    for thread in threads:
        days.setdefault(_calendar_day(thread.reviewer_comment.created_at), []).append(thread)

    comments_by_day = []
    for day in sorted(days):
        day_times = [
            t.response_time_hours for t in days[day] if t.resolved and t.response_time_hours is not None
        ]
        comments_by_day.append(
            DailyResponseStats(
                date=day,
                comments_received=len(days[day]),
                comments_responded=len(day_times),
                avg_response_time=statistics.fmean(day_times) if day_times else 0.0,
            )
        )

    return ResponseTimeMetrics(
        avg_response_time=statistics.fmean(times) if times else 0.0,
        median_response_time=statistics.median(times) if times else 0.0,
        fastest_response=min(times) if times else 0.0,
        slowest_response=max(times) if times else 0.0,
        response_rate=len(times) / len(threads) * 100,
        total_comments=len(threads),
        responded_comments=len(times),
        unresolved_comments=len(threads) - len(times),
        distribution=distribution,
        comments_by_day=comments_by_day,
    )

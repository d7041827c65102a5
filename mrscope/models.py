"""Pydantic models for merge request records and per-change metrics."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

# "locked" is transient while GitLab merges a change
MRState = Literal["opened", "merged", "closed", "locked"]

# "estimated" marks values built from defaults after a failed fetch
MetricSource = Literal["measured", "estimated"]


class Timeframe(str, Enum):
    """Look-back window for analytics."""

    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"

    @property
    def days(self) -> int:
        return int(self.value.rstrip("d"))

    def cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.days)


class UserRef(BaseModel):
    """GitLab user reference."""
    id: int
    name: str = ""
    username: str = ""

    def same_as(self, other: "UserRef | None") -> bool:
        """Same person by id, or by username when both have one."""
        if other is None:
            return False
        if self.id == other.id:
            return True
        return bool(self.username) and self.username == other.username


class ChangeRecord(BaseModel):
    """Merge request snapshot."""
    id: int
    iid: int
    project_id: int | None = None
    title: str
    author: UserRef
    state: MRState
    draft: bool = False
    created_at: datetime
    updated_at: datetime | None = None
    merged_at: datetime | None = None
    reviewers: list[UserRef] = Field(default_factory=list)
    assignees: list[UserRef] = Field(default_factory=list)
    web_url: str = ""

    @property
    def is_merged(self) -> bool:
        return self.state == "merged"

    @property
    def last_activity_at(self) -> datetime:
        return self.updated_at or self.created_at

    def has_reviewer(self, username: str) -> bool:
        return any(r.username == username for r in self.reviewers)


class NoteRecord(BaseModel):
    """Merge request note (comment or system event)."""
    id: int
    author: UserRef
    body: str = ""
    created_at: datetime
    system: bool = False


class FileDiff(BaseModel):
    """One file entry of a merge request's diff."""
    diff: str = ""
    old_path: str = ""
    new_path: str = ""
    new_file: bool = False
    renamed_file: bool = False
    deleted_file: bool = False


class DiffStat(BaseModel):
    """Added/deleted line counts."""
    added: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        return self.added + self.deleted


class MRComplexity(BaseModel):
    """Complexity of a single merge request."""
    iid: int
    project_id: int | None = None
    files_changed: int
    lines_added: int
    lines_deleted: int
    total_lines: int
    complexity_score: float
    source: MetricSource = "measured"


class MRMetrics(BaseModel):
    """Per-change review metrics. Durations are in hours."""
    id: int
    iid: int
    title: str
    web_url: str = ""
    author: str
    author_username: str
    state: MRState
    is_draft: bool
    created_at: datetime
    merged_at: datetime | None = None
    time_to_merge: float | None = Field(default=None, ge=0)
    reviewer_count: int = 0
    comment_count: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    files_changed: int = 0
    draft_duration: float | None = Field(default=None, ge=0)
    review_duration: float | None = Field(default=None, ge=0)
    time_to_first_review: float | None = Field(default=None, ge=0)
    source: MetricSource = "measured"

    @property
    def lines_changed(self) -> int:
        return self.lines_added + self.lines_deleted

"""Merge request data extractor."""

from datetime import datetime

from ..models import ChangeRecord, UserRef


def parse_datetime(dt_str: str | None) -> datetime | None:
    """Parse ISO datetime string, returns None if input is empty."""
    if not dt_str:
        return None
    return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))


def parse_datetime_required(dt_str: str) -> datetime:
    """Parse ISO datetime string, raises if input is empty."""
    if not dt_str:
        raise ValueError("datetime string is required")
    return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))


def extract_user(user_data: dict | None) -> UserRef:
    """Extract user reference from GitLab API response."""
    user_data = user_data or {}
    return UserRef(
        id=user_data.get("id", 0),
        name=user_data.get("name") or "",
        username=user_data.get("username") or "",
    )


def extract_merge_request(mr_data: dict) -> ChangeRecord:
    """Extract merge request data from GitLab API response."""
    # Older GitLab versions only send work_in_progress
    draft = mr_data.get("draft")
    if draft is None:
        draft = mr_data.get("work_in_progress", False)

    return ChangeRecord(
        id=mr_data["id"],
        iid=mr_data["iid"],
        project_id=mr_data.get("project_id"),
        title=mr_data.get("title", ""),
        author=extract_user(mr_data.get("author")),
        state=mr_data["state"],
        draft=bool(draft),
        created_at=parse_datetime_required(mr_data["created_at"]),
        updated_at=parse_datetime(mr_data.get("updated_at")),
        merged_at=parse_datetime(mr_data.get("merged_at")),
        reviewers=[extract_user(u) for u in mr_data.get("reviewers") or []],
        assignees=[extract_user(u) for u in mr_data.get("assignees") or []],
        web_url=mr_data.get("web_url", ""),
    )

"""Diff data extractor."""

from ..models import FileDiff


def extract_file_diff(diff_data: dict) -> FileDiff:
    """Extract one file diff from GitLab API response."""
    return FileDiff(
        diff=diff_data.get("diff") or "",
        old_path=diff_data.get("old_path", ""),
        new_path=diff_data.get("new_path", ""),
        new_file=diff_data.get("new_file", False),
        renamed_file=diff_data.get("renamed_file", False),
        deleted_file=diff_data.get("deleted_file", False),
    )


def extract_changes(changes_data: dict | list) -> list[FileDiff]:
    """Extract file diffs from a /changes payload or a /diffs list."""
    if isinstance(changes_data, dict):
        changes_data = changes_data.get("changes") or []
    return [extract_file_diff(d) for d in changes_data]

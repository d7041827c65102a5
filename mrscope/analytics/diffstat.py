"""Unified diff line counting."""

from __future__ import annotations

from ..models import DiffStat, FileDiff


def parse_diff_stats(diff: str | None) -> DiffStat:
    """Count added and deleted lines in unified diff text.

    File headers (`+++`/`---`) are not counted. Context lines, hunk
    headers and anything else are ignored.
    """
    if not diff:
        return DiffStat()

    added = 0
    deleted = 0
    for line in diff.split("\n"):
        if line.startswith("+") and not line.startswith("+++"):
            added += 1
        elif line.startswith("-") and not line.startswith("---"):
            deleted += 1

    return DiffStat(added=added, deleted=deleted)


def summarize_diffs(changes: list[FileDiff]) -> tuple[int, DiffStat]:
    """Return (files changed, summed line counts) for a change's diff list."""
    added = 0
    deleted = 0
    for change in changes:
        stat = parse_diff_stats(change.diff)
        added += stat.added
        deleted += stat.deleted
    return len(changes), DiffStat(added=added, deleted=deleted)

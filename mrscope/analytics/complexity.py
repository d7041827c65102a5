"""Merge request complexity scoring.

The score grows with files touched and (logarithmically) with lines
changed, gets a small bump for deletion-heavy changes, and extra
penalties for very large or very wide changes.
"""

from __future__ import annotations

import math

from ..models import FileDiff, MRComplexity
from .diffstat import summarize_diffs

MIN_SCORE = 0.1
MAX_SCORE = 10.0

LARGE_CHANGE_LINES = 500
WIDE_CHANGE_FILES = 5

# Used when a change's diff could not be retrieved
DEFAULT_FILES_CHANGED = 1
DEFAULT_LINES_ADDED = 10
DEFAULT_LINES_DELETED = 5
DEFAULT_SCORE = 1.0


def calculate_complexity_score(files_changed: int, lines_added: int, lines_deleted: int) -> float:
    """Score a change in [0.1, 10.0]."""
    total = lines_added + lines_deleted
    denominator = max(total, 1)

    score = 0.3 * files_changed
    score += 0.5 * math.log10(denominator)
    score += 0.3 * (lines_deleted / denominator)

    if total > LARGE_CHANGE_LINES:
        score += (total - LARGE_CHANGE_LINES) / 1000
    if files_changed > WIDE_CHANGE_FILES:
        score += (files_changed - WIDE_CHANGE_FILES) * 0.1

    return min(max(score, MIN_SCORE), MAX_SCORE)


def measure_complexity(iid: int, changes: list[FileDiff], project_id: int | None = None) -> MRComplexity:
    """Complexity from a change's retrieved diffs."""
    files_changed, stat = summarize_diffs(changes)
    return MRComplexity(
        iid=iid,
        project_id=project_id,
        files_changed=files_changed,
        lines_added=stat.added,
        lines_deleted=stat.deleted,
        total_lines=stat.total,
        complexity_score=calculate_complexity_score(files_changed, stat.added, stat.deleted),
        source="measured",
    )


def default_complexity(iid: int, project_id: int | None = None) -> MRComplexity:
    """Fallback complexity for a change whose diff is unavailable."""
    return MRComplexity(
        iid=iid,
        project_id=project_id,
        files_changed=DEFAULT_FILES_CHANGED,
        lines_added=DEFAULT_LINES_ADDED,
        lines_deleted=DEFAULT_LINES_DELETED,
        total_lines=DEFAULT_LINES_ADDED + DEFAULT_LINES_DELETED,
        complexity_score=DEFAULT_SCORE,
        source="estimated",
    )

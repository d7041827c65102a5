"""Review analytics over merge request records.

Everything in this package is a pure function over already-retrieved
records:
- Diff statistics and complexity scoring
- Keyword classification of review comments
- Reviewer/author response threads
- Team rollups, workload scoring and engineer reports
"""

from .comments import CommentAnalysisResult, analyze_comments, collect_review_comments
from .complexity import calculate_complexity_score, default_complexity, measure_complexity
from .diffstat import parse_diff_stats, summarize_diffs
from .engineer import EngineerReport, build_engineer_report
from .metrics import TeamAnalytics, calculate_mr_metrics, calculate_team_analytics
from .responses import (
    ResponseThread,
    ResponseTimeMetrics,
    merge_note_streams,
    reconstruct_threads,
    summarize_response_times,
)
from .taxonomy import COMMENT_CATEGORIES, TAXONOMY_VERSION, is_review_comment
from .workload import EngineerStats, calculate_workload_score, get_next_reviewer, process_engineer_stats

__all__ = [
    # Diffs
    "parse_diff_stats",
    "summarize_diffs",
    "calculate_complexity_score",
    "measure_complexity",
    "default_complexity",
    # Comments
    "COMMENT_CATEGORIES",
    "TAXONOMY_VERSION",
    "is_review_comment",
    "collect_review_comments",
    "analyze_comments",
    "CommentAnalysisResult",
    # Responses
    "merge_note_streams",
    "reconstruct_threads",
    "summarize_response_times",
    "ResponseThread",
    "ResponseTimeMetrics",
    # Rollups
    "calculate_mr_metrics",
    "calculate_team_analytics",
    "TeamAnalytics",
    "EngineerStats",
    "process_engineer_stats",
    "calculate_workload_score",
    "get_next_reviewer",
    "EngineerReport",
    "build_engineer_report",
]

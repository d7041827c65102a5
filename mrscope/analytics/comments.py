"""Review comment classification.

Buckets review feedback into the taxonomy categories, ranks the most
frequent issues and turns them into recommendations plus a single
quality score in [20, 100].
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from ..models import NoteRecord, UserRef
from .taxonomy import (
    CATEGORIES_BY_NAME,
    COMMENT_CATEGORIES,
    SEVERITY_WEIGHTS,
    TAXONOMY_VERSION,
    CommentCategory,
    Severity,
    is_review_comment,
)

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 3
EXAMPLE_MAX_CHARS = 100
TOP_ISSUES = 5

MIN_SCORE = 20.0
MAX_PENALTY = 80.0

GENERAL_RECOMMENDATION_ACTIONS = [
    "Regularly read code written by experienced developers",
    "Stay updated with industry best practices and new technologies",
    "Participate in code reviews both as author and reviewer",
    "Practice writing clean, maintainable code",
]


class CategoryBreakdown(BaseModel):
    count: int = 0
    percentage: float = 0.0
    examples: list[str] = Field(default_factory=list)
    principle: str
    description: str
    severity: Severity


class TopIssue(BaseModel):
    category: str
    count: int
    percentage: float
    principle: str
    severity: Severity


class Recommendation(BaseModel):
    principle: str
    description: str
    action_items: list[str]
    priority: Severity


class CommentAnalysisResult(BaseModel):
    """Category breakdown and quality score for a set of review comments."""

    total_comments: int = 0
    categorized_comments: dict[str, CategoryBreakdown] = Field(default_factory=dict)
    top_issues: list[TopIssue] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    overall_score: float = 100.0
    taxonomy_version: int = TAXONOMY_VERSION


def truncate_example(comment: str) -> str:
    if len(comment) <= EXAMPLE_MAX_CHARS:
        return comment
    return comment[: EXAMPLE_MAX_CHARS - 3] + "..."


def classify_comment(comment: str) -> list[CommentCategory]:
    """All categories whose keywords appear in the comment."""
    lowered = comment.lower()
    return [category for category in COMMENT_CATEGORIES if category.matches(lowered)]


def collect_review_comments(notes: list[NoteRecord], author: UserRef) -> list[str]:
    """Bodies of eligible review comments on one change."""
    return [note.body.strip() for note in notes if is_review_comment(note, author)]


def build_recommendations(top_issues: list[TopIssue]) -> list[Recommendation]:
    """One recommendation per top issue, or a general one when nothing matched."""
    recommendations = []
    for issue in top_issues:
        category = CATEGORIES_BY_NAME[issue.category]
        recommendations.append(
            Recommendation(
                principle=category.principle,
                description=category.description,
                action_items=list(category.action_items),
                priority=category.severity,
            )
        )

    if not recommendations:
        recommendations.append(
            Recommendation(
                principle="Continuous Improvement",
                description="Keep learning and improving your software engineering skills",
                action_items=GENERAL_RECOMMENDATION_ACTIONS.copy(),
                priority="low",
            )
        )

    return recommendations


def calculate_overall_score(top_issues: list[TopIssue]) -> float:
    """100 minus a severity-weighted penalty, never below 20."""
    penalty = sum(issue.percentage * SEVERITY_WEIGHTS[issue.severity] for issue in top_issues) / 100
    penalty = min(penalty * MAX_PENALTY, MAX_PENALTY)
    return max(MIN_SCORE, 100 - penalty)


def analyze_comments(comments: list[str]) -> CommentAnalysisResult:
    """Classify review comments and score the feedback profile.

    Args:
        comments: Bodies already filtered to eligible human review comments.

    Returns:
        CommentAnalysisResult. An empty input scores 100 with no categories.
    """
    if not comments:
        return CommentAnalysisResult()

    breakdown = {
        category.name: CategoryBreakdown(
            principle=category.principle,
            description=category.description,
            severity=category.severity,
        )
        for category in COMMENT_CATEGORIES
    }

    matched_comments = 0
    for index, comment in enumerate(comments):
        categories = classify_comment(comment)
        if categories:
            matched_comments += 1
        for category in categories:
            entry = breakdown[category.name]
            entry.count += 1
            if len(entry.examples) < MAX_EXAMPLES:
                entry.examples.append(truncate_example(comment))
        logger.debug(f"Comment {index + 1} matched: {[c.name for c in categories] or 'nothing'}")

    total = len(comments)
    for entry in breakdown.values():
        entry.percentage = entry.count / total * 100

    # Stable sort keeps table order for ties
    ranked = sorted(
        (name for name, entry in breakdown.items() if entry.count > 0),
        key=lambda name: breakdown[name].count,
        reverse=True,
    )
    top_issues = [
        TopIssue(
            category=name,
            count=breakdown[name].count,
            percentage=breakdown[name].percentage,
            principle=breakdown[name].principle,
            severity=breakdown[name].severity,
        )
        for name in ranked[:TOP_ISSUES]
    ]

    score = calculate_overall_score(top_issues)
    logger.info(
        f"Analyzed {total} comments: {matched_comments} matched, "
        f"{len(top_issues)} issue categories, score {score:.1f}"
    )

    return CommentAnalysisResult(
        total_comments=total,
        categorized_comments=breakdown,
        top_issues=top_issues,
        recommendations=build_recommendations(top_issues),
        overall_score=score,
    )

"""Keyword taxonomy for review comments.

Everything here is a plain keyword heuristic: categories match by
lower-cased substring containment and are not mutually exclusive.
Bump TAXONOMY_VERSION whenever a table changes so cached analyses
can be told apart.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from ..models import NoteRecord, UserRef

TAXONOMY_VERSION = 1

Severity = Literal["low", "medium", "high"]

SEVERITY_WEIGHTS: dict[str, int] = {"high": 3, "medium": 2, "low": 1}


@dataclass(frozen=True)
class CommentCategory:
    """A review-feedback category and the guidance attached to it."""

    name: str
    keywords: tuple[str, ...]
    principle: str
    description: str
    severity: Severity
    action_items: tuple[str, ...]

    def matches(self, lowered: str) -> bool:
        """Check a lower-cased comment for any keyword."""
        return any(keyword in lowered for keyword in self.keywords)


DEFAULT_ACTION_ITEMS = (
    "Review industry best practices for this area",
    "Seek feedback from senior developers",
    "Consider refactoring to improve code quality",
)

COMMENT_CATEGORIES: tuple[CommentCategory, ...] = (
    CommentCategory(
        name="Code Quality",
        keywords=(
            "clean up", "refactor", "simplify", "complex", "readable", "clarity",
            "naming", "variable name", "function name", "method name", "confusing",
            "unclear", "hard to understand", "magic number", "constant", "clean code",
            "improve", "better", "cleaner", "optimize", "enhancement",
        ),
        principle="Clean Code",
        description="Code should be readable, maintainable, and self-documenting",
        severity="medium",
        action_items=(
            "Review and refactor complex functions into smaller, focused methods",
            "Use meaningful variable and function names that express intent",
            "Extract magic numbers into named constants",
            "Apply the Boy Scout Rule: leave code cleaner than you found it",
        ),
    ),
    CommentCategory(
        name="Testing",
        keywords=(
            "test", "unit test", "integration test", "coverage", "mock", "stub",
            "test case", "edge case", "assertion", "verify", "validate", "spec",
        ),
        principle="Test-Driven Development",
        description="Code should be thoroughly tested with appropriate test coverage",
        severity="high",
        action_items=(
            "Write unit tests for all new functions and methods",
            "Aim for at least 80% code coverage on critical paths",
            "Include edge cases and error scenarios in test suites",
            "Practice Test-Driven Development (TDD) for new features",
        ),
    ),
    CommentCategory(
        name="Performance",
        keywords=(
            "performance", "optimize", "slow", "inefficient", "memory", "leak",
            "algorithm", "complexity", "cache", "database", "query", "n+1", "bottleneck",
        ),
        principle="Performance Optimization",
        description="Code should be efficient and performant",
        severity="medium",
        action_items=(
            "Profile code to identify actual bottlenecks before optimizing",
            "Implement caching strategies for expensive operations",
            "Review database queries for N+1 problems and optimization opportunities",
            "Consider algorithmic complexity when choosing data structures",
        ),
    ),
    CommentCategory(
        name="Security",
        keywords=(
            "security", "vulnerability", "sanitize", "validate", "injection",
            "xss", "csrf", "authentication", "authorization", "encrypt", "hash", "secure",
        ),
        principle="Security Best Practices",
        description="Code should follow security best practices and be secure by design",
        severity="high",
        action_items=(
            "Always validate and sanitize user input",
            "Use parameterized queries to prevent SQL injection",
            "Implement proper authentication and authorization checks",
            "Follow the principle of least privilege for access controls",
        ),
    ),
    CommentCategory(
        name="Error Handling",
        keywords=(
            "error", "exception", "try catch", "handle", "fail", "graceful",
            "fallback", "recovery", "logging", "debug", "throw",
        ),
        principle="Robust Error Handling",
        description="Code should handle errors gracefully and provide meaningful feedback",
        severity="medium",
        action_items=(
            "Implement comprehensive error handling for all external dependencies",
            "Provide meaningful error messages that help users understand issues",
            "Use proper logging levels and structured logging",
            "Design graceful degradation for non-critical failures",
        ),
    ),
    CommentCategory(
        name="Documentation",
        keywords=(
            "comment", "documentation", "doc", "explain", "document", "readme",
            "jsdoc", "javadoc", "api doc", "inline comment", "describe",
        ),
        principle="Self-Documenting Code",
        description="Code should be well-documented and self-explanatory",
        severity="low",
        action_items=(
            'Write clear, concise comments that explain "why" not "what"',
            "Maintain up-to-date API documentation",
            "Include usage examples in documentation",
            "Document complex business logic and architectural decisions",
        ),
    ),
    CommentCategory(
        name="Architecture",
        keywords=(
            "architecture", "design", "pattern", "solid", "coupling", "cohesion",
            "separation", "responsibility", "dependency", "interface", "abstraction",
        ),
        principle="SOLID Principles",
        description="Code should follow good architectural principles and design patterns",
        severity="high",
        action_items=(
            "Apply SOLID principles: Single Responsibility, Open/Closed, etc.",
            "Reduce coupling between modules and increase cohesion within modules",
            "Use dependency injection for better testability",
            "Consider design patterns that fit the problem domain",
        ),
    ),
    CommentCategory(
        name="Code Style",
        keywords=(
            "style", "format", "lint", "prettier", "indentation", "spacing",
            "convention", "consistent", "formatting", "eslint",
        ),
        principle="Consistent Code Style",
        description="Code should follow consistent styling and formatting conventions",
        severity="low",
        action_items=DEFAULT_ACTION_ITEMS,
    ),
    CommentCategory(
        name="Logic Issues",
        keywords=(
            "logic", "bug", "incorrect", "wrong", "fix", "issue", "problem",
            "condition", "if statement", "loop", "algorithm", "broken",
        ),
        principle="Correctness",
        description="Code should be logically correct and free of bugs",
        severity="high",
        action_items=(
            "Double-check conditional logic and edge cases",
            "Use code reviews to catch logical errors early",
            "Write comprehensive tests to verify business logic",
            "Consider pair programming for complex algorithmic work",
        ),
    ),
    CommentCategory(
        name="Best Practices",
        keywords=(
            "best practice", "convention", "standard", "guideline", "pattern",
            "anti-pattern", "code smell", "technical debt", "improve", "suggestion",
            "recommend", "consider", "should", "could", "might", "perhaps",
        ),
        principle="Industry Best Practices",
        description="Code should follow established industry best practices and conventions",
        severity="medium",
        action_items=(
            "Follow established coding standards and conventions",
            "Regularly refactor code to eliminate technical debt",
            "Stay updated with industry best practices",
            "Seek feedback from senior developers on code design",
        ),
    ),
)

CATEGORIES_BY_NAME: dict[str, CommentCategory] = {c.name: c for c in COMMENT_CATEGORIES}

# Platform lifecycle notes and CI chatter. Phrases are near-exact so
# genuine feedback that merely mentions "added" or "pipeline" survives.
AUTOMATED_PHRASES: tuple[str, ...] = (
    "approved this merge request",
    "unapproved this merge request",
    "mentioned in ",
    "changed the description",
    "added label",
    "removed label",
    "assigned to @",
    "unassigned @",
    "requested review from @",
    "marked as draft",
    "marked this merge request as draft",
    "marked as ready",
    "marked this merge request as ready",
    "enabled an automatic merge",
    "merged this merge request",
    "closed this merge request",
    "reopened this merge request",
)

_AUTOMATED_PATTERNS = (
    re.compile(r"\b(pipeline|build) (#\d+ )?(passed|failed|succeeded|canceled)\b", re.IGNORECASE),
    re.compile(r"^\s*ci/cd\b", re.IGNORECASE),
    re.compile(r"^\s*added \d+ commits?\b", re.IGNORECASE),
)

# Author replies that acknowledge feedback
RESPONSE_INDICATORS: tuple[str, ...] = (
    "thanks", "thank you", "fixed", "done", "updated", "changed", "addressed",
    "good point", "you're right", "agreed", "makes sense", "will do",
    "implemented", "refactored", "added", "removed", "modified",
    "ok", "lgtm", "ack", "sgtm", "yes", "\U0001f44d", "\U0001f4af",
)

# Anything longer than this counts as a reply
_MIN_RESPONSE_CHARS = 3


def is_automated_comment(body: str) -> bool:
    """Check if a note body is CI output or a platform lifecycle message."""
    lowered = body.lower()
    if any(phrase in lowered for phrase in AUTOMATED_PHRASES):
        return True
    return any(pattern.search(body) for pattern in _AUTOMATED_PATTERNS)


def is_human_note(note: NoteRecord) -> bool:
    """Non-system, non-blank and not automated."""
    if note.system:
        return False
    if not note.body.strip():
        return False
    return not is_automated_comment(note.body)


def is_review_comment(note: NoteRecord, author: UserRef) -> bool:
    """A human note written by someone other than the change author."""
    if note.author.same_as(author):
        return False
    return is_human_note(note)


def looks_like_response(body: str) -> bool:
    """Loose check for an author reply to feedback."""
    lowered = body.lower()
    if any(indicator in lowered for indicator in RESPONSE_INDICATORS):
        return True
    return len(body) > _MIN_RESPONSE_CHARS

"""Team review policy loaded from mrscope.yaml.

Example:

    project: my-group/my-project
    reviewers:
      eligible:
        - alice
        - bob
      bot_patterns:
        - "*-bot"
    engineers:
      titles:
        alice: Senior Software Engineer
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAMES = ["mrscope.yaml", ".mrscope.yaml", "mrscope.yml", ".mrscope.yml"]

DEFAULT_BOT_PATTERNS = [
    # GitLab project and group access token users
    "project_*_bot*",
    "group_*_bot*",
    # Common automation accounts
    "*-bot",
    "*_bot",
    "*[[]bot]",  # literal "[bot]" suffix, e.g. renovate[bot]
    "ghost",
]


@dataclass
class ReviewConfig:
    """Reviewer policy for a project."""

    project: str | None = None  # e.g., "my-group/my-project"
    eligible_reviewers: list[str] | None = None  # None means anyone may be recommended
    bot_patterns: list[str] = field(default_factory=lambda: DEFAULT_BOT_PATTERNS.copy())
    engineer_titles: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path | str | None = None) -> ReviewConfig:
        """Load config from YAML file or return defaults."""
        if path is None:
            for candidate in CONFIG_FILENAMES:
                if Path(candidate).exists():
                    path = candidate
                    break

        if path is None or not Path(path).exists():
            return cls.default()

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewConfig:
        """Create config from dictionary (e.g., parsed YAML)."""
        reviewers = data.get("reviewers") or {}
        engineers = data.get("engineers") or {}

        eligible = reviewers.get("eligible")
        bot_patterns = reviewers.get("bot_patterns", DEFAULT_BOT_PATTERNS.copy())

        return cls(
            project=data.get("project"),
            eligible_reviewers=list(eligible) if eligible is not None else None,
            bot_patterns=list(bot_patterns),
            engineer_titles=dict(engineers.get("titles") or {}),
        )

    @classmethod
    def default(cls) -> ReviewConfig:
        """Unrestricted policy - use `mrscope init` to write a starter file."""
        return cls()

    def is_bot(self, username: str) -> bool:
        """Check if username matches a bot pattern."""
        if not username:
            return False
        return any(fnmatch.fnmatch(username.lower(), p.lower()) for p in self.bot_patterns)

    def is_eligible_reviewer(self, username: str) -> bool:
        """Whether username may be recommended as the next reviewer."""
        if self.is_bot(username):
            return False
        if self.eligible_reviewers is None:
            return True
        return username in self.eligible_reviewers

    def title_for(self, username: str) -> str | None:
        return self.engineer_titles.get(username)

    def to_yaml(self) -> str:
        """Serialize config to YAML."""
        data: dict[str, Any] = {}
        if self.project:
            data["project"] = self.project

        reviewers: dict[str, Any] = {}
        if self.eligible_reviewers is not None:
            reviewers["eligible"] = self.eligible_reviewers
        if self.bot_patterns != DEFAULT_BOT_PATTERNS:
            reviewers["bot_patterns"] = self.bot_patterns
        if reviewers:
            data["reviewers"] = reviewers

        if self.engineer_titles:
            data["engineers"] = {"titles": self.engineer_titles}

        return yaml.dump(data, default_flow_style=False, sort_keys=False)

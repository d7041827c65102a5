"""Project detection and data path management.

Detects the GitLab project (or group) path from the environment, config
or git remote, and manages per-project storage paths.
"""

from __future__ import annotations

import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ProjectInfo:
    """GitLab project or group reference."""

    path: str  # e.g., "my-group/sub-group/my-project", or a numeric project id

    @property
    def name(self) -> str:
        return self.path.rstrip("/").split("/")[-1]

    @property
    def data_dir(self) -> Path:
        """Global data directory for this project."""
        return get_cache_dir().joinpath(*self.path.strip("/").split("/"))

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "mrscope.log"


def get_cache_dir() -> Path:
    """Get the global cache directory for mrscope data."""
    # Use XDG_CACHE_HOME if set, otherwise ~/.cache
    xdg_cache = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache:
        return Path(xdg_cache) / "mrscope"
    return Path.home() / ".cache" / "mrscope"


def parse_git_remote_url(url: str) -> ProjectInfo | None:
    """Parse the project path from a git remote URL.

    GitLab paths may be nested (group/subgroup/project). Supports:
    - git@gitlab.com:group/project.git
    - https://gitlab.com/group/sub/project.git
    - ssh://git@gitlab.com/group/project.git
    """
    # SSH format: git@gitlab.com:group/project.git
    ssh_match = re.match(r"git@[\w.-]+:((?:[^/]+/)+[^/]+?)(?:\.git)?/?$", url)
    if ssh_match:
        return ProjectInfo(path=ssh_match.group(1))

    # HTTPS format, optionally with credentials or a port
    https_match = re.match(r"https?://(?:[^@/]+@)?[\w.:-]+/((?:[^/]+/)+[^/]+?)(?:\.git)?/?$", url)
    if https_match:
        return ProjectInfo(path=https_match.group(1))

    # SSH with ssh:// prefix
    ssh_url_match = re.match(r"ssh://git@[\w.:-]+/((?:[^/]+/)+[^/]+?)(?:\.git)?/?$", url)
    if ssh_url_match:
        return ProjectInfo(path=ssh_url_match.group(1))

    return None


def get_git_remote_url(remote: str = "origin") -> str | None:
    """Get the URL of a git remote."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", remote],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def detect_project_from_git() -> ProjectInfo | None:
    """Detect project from git remote in current directory."""
    url = get_git_remote_url("origin")
    if url:
        return parse_git_remote_url(url)
    return None


def get_project_from_config() -> ProjectInfo | None:
    """Get project from mrscope.yaml if specified."""
    from .review_config import ReviewConfig

    config = ReviewConfig.load()
    if config.project:
        return ProjectInfo(path=config.project)
    return None


def get_project_from_env() -> ProjectInfo | None:
    """Get project from environment variables."""
    path = os.environ.get("GITLAB_PROJECT")
    if path:
        return ProjectInfo(path=path)
    return None


def get_project(override: str | None = None) -> ProjectInfo:
    """Get project info with fallback chain.

    Priority:
    1. Explicit override (--project)
    2. Environment variable (GITLAB_PROJECT)
    3. mrscope.yaml config (project)
    4. Git remote detection

    Raises ValueError if the project cannot be determined.
    """
    if override:
        return ProjectInfo(path=override)

    project = get_project_from_env()
    if project:
        return project

    project = get_project_from_config()
    if project:
        return project

    project = detect_project_from_git()
    if project:
        return project

    raise ValueError(
        "Could not determine GitLab project. Either:\n"
        "  1. Pass --project group/project, or\n"
        "  2. Set the GITLAB_PROJECT env var, or\n"
        "  3. Add it to mrscope.yaml:\n"
        "     project: your-group/your-project, or\n"
        "  4. Run from a git repo with a GitLab remote"
    )

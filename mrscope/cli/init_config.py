"""CLI tool to generate mrscope.yaml for a repository.

Detects:
- the GitLab project path from the git origin remote
- eligible reviewers from a CODEOWNERS file (root, docs/ or .gitlab/)
"""

from __future__ import annotations

import re
from pathlib import Path

from ..project import detect_project_from_git
from ..review_config import ReviewConfig

CODEOWNERS_LOCATIONS = ["CODEOWNERS", "docs/CODEOWNERS", ".gitlab/CODEOWNERS"]

# @user, but not @group/subgroup
_OWNER = re.compile(r"(?<![\w.-])@([\w.-]+)(?![\w./-])")


def find_codeowners(root: Path) -> Path | None:
    for location in CODEOWNERS_LOCATIONS:
        path = root / location
        if path.exists():
            return path
    return None


def parse_codeowners(text: str) -> list[str]:
    """Individual usernames named in a CODEOWNERS file, in first-seen order."""
    usernames: list[str] = []
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        # Section headers like [Backend] or ^[Docs][2] @owner
        if not line:
            continue
        for username in _OWNER.findall(line):
            if username not in usernames:
                usernames.append(username)
    return usernames


def generate_config(root: Path) -> ReviewConfig:
    """Build a config from what the repository tells us."""
    config = ReviewConfig.default()

    project = detect_project_from_git()
    if project:
        config.project = project.path

    codeowners = find_codeowners(root)
    if codeowners:
        owners = parse_codeowners(codeowners.read_text())
        if owners:
            config.eligible_reviewers = owners

    return config


def init_config(root: Path | None = None, output: Path | None = None) -> str:
    """Initialize mrscope.yaml.

    Args:
        root: Repository root (defaults to cwd)
        output: Output file path (defaults to mrscope.yaml in root)

    Returns:
        YAML config string
    """
    if root is None:
        root = Path.cwd()
    if output is None:
        output = root / "mrscope.yaml"

    config = generate_config(root)

    if config.project:
        print(f"Project: {config.project}")
    else:
        print("No GitLab remote found; set `project:` or GITLAB_PROJECT yourself.")

    if config.eligible_reviewers:
        print(f"Eligible reviewers from CODEOWNERS: {', '.join(config.eligible_reviewers)}")
    else:
        print("No CODEOWNERS found; every engineer can be recommended as reviewer.")

    header = """# mrscope.yaml - review policy for merge request analytics
# Generated by: mrscope init
#
# reviewers.eligible limits who can be recommended as next reviewer.
# engineers.titles adds job titles to engineer reports.

"""
    yaml_content = header + config.to_yaml()
    output.write_text(yaml_content)
    print(f"\nWrote {output}")

    return yaml_content

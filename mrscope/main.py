"""Command runners: wire project, cache and client into the pipeline.

Uses trio for concurrent API requests.
"""

import logging
import os
from pathlib import Path

from rich.console import Console

from .analytics.engineer import EngineerReport
from .cache import CacheKind, JsonFileStore, ResultCache
from .config import DEFAULT_TIMEFRAME
from .gitlab_client import GitLabClient
from .models import Timeframe
from .pipeline import AnalysisStage, DashboardData, analyze_engineer, analyze_team, load_dashboard
from .project import ProjectInfo
from .report import dashboard_sections, engineer_sections, print_report, team_sections
from .review_config import ReviewConfig

logger = logging.getLogger(__name__)


def setup_logging(log_file: Path) -> logging.Logger:
    """Setup file logging for debugging."""
    os.makedirs(log_file.parent, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=[
            logging.FileHandler(log_file, mode="a"),
        ],
    )
    return logging.getLogger(__name__)


def parse_timeframe(value: str | None) -> Timeframe:
    """Timeframe from "7d"/"30d"/"90d", defaulting to TIMEFRAME from .env."""
    try:
        return Timeframe(value or DEFAULT_TIMEFRAME)
    except ValueError:
        raise ValueError(f"Unknown timeframe {value!r}. Use one of: 7d, 30d, 90d") from None


def open_cache(project: ProjectInfo) -> ResultCache:
    return ResultCache(JsonFileStore(project.cache_dir))


async def run_team(project: ProjectInfo, timeframe: Timeframe, use_cache: bool = True, console: Console | None = None):
    """Analyze and print team review analytics."""
    console = console or Console()
    cache = open_cache(project) if use_cache else None

    async with GitLabClient() as client:
        with console.status(f"Analyzing {project.path} ({timeframe.value})..."):
            analytics = await analyze_team(client, project.path, timeframe, cache=cache)
        logger.info(f"Team analysis done with {client.request_count} API requests")

    print_report(team_sections(analytics), console)
    return analytics


async def run_engineer(
    project: ProjectInfo,
    username: str,
    timeframe: Timeframe,
    use_cache: bool = True,
    console: Console | None = None,
):
    """Analyze and print one engineer's review history."""
    console = console or Console()
    cache = open_cache(project) if use_cache else None
    config = ReviewConfig.load()

    async with GitLabClient() as client:
        with console.status(f"Fetching merge requests for {username}...") as status:

            def on_progress(stage: AnalysisStage, partial: EngineerReport) -> None:
                status.update(
                    f"{username}: {stage.value.replace('_', ' ')} done "
                    f"({len(partial.authored_mrs)} authored MRs)"
                )

            report = await analyze_engineer(
                client,
                project.path,
                username,
                timeframe,
                cache=cache,
                title=config.title_for(username),
                on_progress=on_progress,
            )
        logger.info(f"Engineer analysis done with {client.request_count} API requests")

    print_report(engineer_sections(report), console)
    return report


async def run_dashboard(project: ProjectInfo, console: Console | None = None):
    """Load and print the open-work dashboard."""
    console = console or Console()
    cache = open_cache(project)
    config = ReviewConfig.load()

    async with GitLabClient() as client:
        with console.status(f"Loading open merge requests for {project.path}...") as status:

            def on_basic(data: DashboardData) -> None:
                status.update(f"Scoring complexity of {len(data.merge_requests)} open merge requests...")

            data = await load_dashboard(client, project.path, cache=cache, config=config, on_basic=on_basic)

    print_report(dashboard_sections(data), console)
    return data


def clear_cache(project: ProjectInfo, kind: CacheKind | None = None, user: str | None = None) -> int:
    """Remove cached results for a project."""
    cache = open_cache(project)
    if kind is None and user is None:
        return cache.invalidate_project(project.path)
    return cache.clear(kind=kind, project=project.path, scope=user)


def show_cache_info(project: ProjectInfo, user: str | None = None, console: Console | None = None) -> None:
    console = console or Console()
    cache = open_cache(project)

    kinds = [CacheKind.ENGINEER] if user else [CacheKind.ANALYTICS, CacheKind.COMPLEXITY]
    for kind in kinds:
        info = cache.info(kind, project.path, scope=user)
        if not info.cached:
            console.print(f"{kind.value}: [dim]nothing cached[/]")
            continue
        timeframes = f" ({', '.join(info.timeframes)})" if info.timeframes else ""
        console.print(f"{kind.value}: last updated {info.last_updated:%Y-%m-%d %H:%M} UTC{timeframes}")

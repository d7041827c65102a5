"""Analysis orchestration for team, engineer and dashboard views.

Uses trio for concurrent API requests. Per-item failures degrade to
estimated metrics; only the overall timeout or a failed listing fails
the whole operation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

import httpx
import trio
from pydantic import BaseModel, Field

from .analytics.complexity import default_complexity, measure_complexity
from .analytics.engineer import (
    DETAILED_SAMPLE,
    EngineerReport,
    NotesByChange,
    analyze_authored_comments,
    build_engineer_report,
    calculate_author_response_times,
    calculate_detailed_metrics,
    calculate_weekly_stats,
    split_engineer_changes,
)
from .analytics.metrics import TeamAnalytics, calculate_mr_metrics, calculate_team_analytics
from .analytics.responses import merge_note_streams
from .analytics.workload import (
    EngineerStats,
    ReviewShare,
    get_next_reviewer,
    process_engineer_stats,
    review_distribution,
)
from .cache import CacheKey, CacheKind, ResultCache
from .config import (
    ANALYSIS_TIMEOUT,
    BATCH_DELAY,
    COMPLEXITY_BATCH_DELAY,
    MAX_DETAILED_ANALYSIS,
    MR_ANALYSIS_TIMEOUT,
    MR_BATCH_SIZE,
    NOTES_BATCH_SIZE,
    PROJECT_BATCH_SIZE,
)
from .extractors.diffs import extract_changes
from .extractors.merge_requests import extract_merge_request
from .extractors.notes import extract_discussion_notes, extract_note
from .gitlab_client import GitLabClient, RetriesExhaustedError
from .models import ChangeRecord, FileDiff, MRComplexity, MRMetrics, NoteRecord, Timeframe
from .review_config import ReviewConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class AnalysisError(Exception):
    """The analysis could not produce a result."""


class AnalysisTimeoutError(AnalysisError):
    """The analysis did not finish within its time budget."""


class AnalysisStage(Enum):
    FETCH = "fetch"
    BASIC_METRICS = "basic_metrics"
    DETAILED_METRICS = "detailed_metrics"
    COMMENT_ANALYSIS = "comment_analysis"
    RESPONSE_TIMES = "response_times"


ProgressCallback = Callable[[AnalysisStage, EngineerReport], None]


@dataclass
class Settled(Generic[T, R]):
    """Outcome of one item in a batch."""

    item: T
    value: R | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DashboardData(BaseModel):
    """Open merge requests and who is carrying them."""

    merge_requests: list[ChangeRecord] = Field(default_factory=list)
    engineer_stats: list[EngineerStats] = Field(default_factory=list)
    review_distribution: list[ReviewShare] = Field(default_factory=list)
    complexities: list[MRComplexity] = Field(default_factory=list)
    next_reviewer: EngineerStats | None = None


async def settle_in_batches(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    batch_size: int = MR_BATCH_SIZE,
    delay: float = BATCH_DELAY,
    item_timeout: float | None = None,
) -> list[Settled[T, R]]:
    """Run fn over items in concurrent batches, settling each item independently.

    A failing (or timed out) item records its error and never affects
    its siblings. Results keep input order.
    """
    results: list[Settled[T, R]] = [Settled(item) for item in items]

    async def run(slot: Settled[T, R]) -> None:
        try:
            if item_timeout is None:
                slot.value = await fn(slot.item)
            else:
                with trio.fail_after(item_timeout):
                    slot.value = await fn(slot.item)
        except trio.TooSlowError:
            slot.error = f"timed out after {item_timeout:.0f}s"
        except Exception as e:
            slot.error = f"{type(e).__name__}: {e}"

    for start in range(0, len(results), batch_size):
        async with trio.open_nursery() as nursery:
            for slot in results[start : start + batch_size]:
                nursery.start_soon(run, slot)

        if start + batch_size < len(results):
            await trio.sleep(delay)

    return results


def _dedupe(changes: list[ChangeRecord]) -> list[ChangeRecord]:
    seen: set[int] = set()
    unique = []
    for change in changes:
        if change.id not in seen:
            seen.add(change.id)
            unique.append(change)
    return unique


async def fetch_changes(
    client: GitLabClient,
    project: str,
    states: Sequence[str | None],
    updated_after: datetime | None = None,
) -> list[ChangeRecord]:
    """Merge requests of a project, or of every project in a group.

    Raises AnalysisError if the listing itself fails. In group mode a
    project that fails to list is skipped. Records that fail to parse
    are logged and skipped.
    """

    async def fetch_project(project_ref: str | int) -> list[ChangeRecord]:
        changes = []
        for state in states:
            for mr_data in await client.get_merge_requests(project_ref, state=state, updated_after=updated_after):
                try:
                    changes.append(extract_merge_request(mr_data))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping unreadable merge request {mr_data.get('iid')} in {project_ref}: {e}")
        return changes

    try:
        if await client.is_group(project):
            projects = await client.get_group_projects(project)
            logger.info(f"Group {project}: fetching merge requests from {len(projects)} projects")
            settled = await settle_in_batches(
                [p["id"] for p in projects], fetch_project, batch_size=PROJECT_BATCH_SIZE
            )
            changes = []
            for result in settled:
                if result.ok:
                    changes.extend(result.value or [])
                else:
                    logger.warning(f"Skipping project {result.item}: {result.error}")
        else:
            changes = await fetch_project(project)
    except (httpx.HTTPError, RetriesExhaustedError) as e:
        raise AnalysisError(f"Failed to fetch merge requests for {project}: {e}") from e

    changes = _dedupe(changes)
    if updated_after is not None:
        changes = [c for c in changes if c.last_activity_at >= updated_after]

    changes.sort(key=lambda c: c.last_activity_at, reverse=True)
    return changes


def sample_changes(changes: list[ChangeRecord], limit: int = MAX_DETAILED_ANALYSIS) -> list[ChangeRecord]:
    """Representative subset for detailed analysis.

    60% most recent, then 30% merged and 10% open, deduplicated and
    capped at limit. Expects changes most recent first.
    """
    if len(changes) <= limit:
        return changes

    recent = changes[: int(limit * 0.6)]
    merged = [c for c in changes if c.state == "merged"][: int(limit * 0.3)]
    opened = [c for c in changes if c.state == "opened"][: int(limit * 0.1)]
    return _dedupe([*recent, *merged, *opened])[:limit]


def _project_ref(change: ChangeRecord, project: str) -> str | int:
    return change.project_id if change.project_id is not None else project


async def fetch_notes(client: GitLabClient, project: str | int, iid: int) -> list[NoteRecord]:
    """Top-level and discussion notes of one merge request, oldest first."""
    notes: list[NoteRecord] = []
    discussion_notes: list[NoteRecord] = []

    async def fetch_top_level():
        notes.extend(extract_note(n) for n in await client.get_mr_notes(project, iid))

    async def fetch_discussions():
        discussion_notes.extend(extract_discussion_notes(await client.get_mr_discussions(project, iid)))

    async with trio.open_nursery() as nursery:
        nursery.start_soon(fetch_top_level)
        nursery.start_soon(fetch_discussions)

    return merge_note_streams(notes, discussion_notes)


async def analyze_change(client: GitLabClient, project: str, change: ChangeRecord) -> MRMetrics:
    """Metrics for one merge request using concurrent requests.

    A failed notes or diff fetch still yields metrics, tagged estimated.
    """
    project_ref = _project_ref(change, project)
    notes: list[NoteRecord] = []
    diffs: list[FileDiff] = []
    errors: list[str] = []

    async def fetch_mr_notes():
        try:
            notes.extend(extract_note(n) for n in await client.get_mr_notes(project_ref, change.iid))
        except Exception as e:
            errors.append(f"notes: {e}")

    async def fetch_mr_changes():
        try:
            diffs.extend(extract_changes(await client.get_mr_changes(project_ref, change.iid)))
        except Exception as e:
            errors.append(f"changes: {e}")

    async with trio.open_nursery() as nursery:
        nursery.start_soon(fetch_mr_notes)
        nursery.start_soon(fetch_mr_changes)

    if errors:
        logger.warning(f"MR !{change.iid}: {'; '.join(errors)}")

    metrics = calculate_mr_metrics(change, notes, diffs, source="estimated" if errors else "measured")
    logger.info(
        f"MR !{change.iid}: {metrics.comment_count} comments, "
        f"{metrics.lines_changed} lines, {metrics.reviewer_count} reviewers"
    )
    return metrics


async def _compute_team_analytics(
    client: GitLabClient,
    project: str,
    timeframe: Timeframe,
    now: datetime,
) -> TeamAnalytics:
    changes = await fetch_changes(client, project, ("opened", "merged"), timeframe.cutoff(now))
    logger.info(f"Found {len(changes)} merge requests in {timeframe.value} for {project}")
    if not changes:
        return TeamAnalytics()

    sample = sample_changes(changes)
    if len(sample) < len(changes):
        logger.info(f"Sampling {len(sample)} of {len(changes)} merge requests for detailed analysis")

    settled = await settle_in_batches(
        sample,
        lambda change: analyze_change(client, project, change),
        batch_size=MR_BATCH_SIZE,
        item_timeout=MR_ANALYSIS_TIMEOUT,
    )

    metrics = []
    for result in settled:
        if result.ok and result.value is not None:
            metrics.append(result.value)
        else:
            logger.warning(f"MR !{result.item.iid} analysis failed ({result.error}), using basic metrics")
            metrics.append(calculate_mr_metrics(result.item, [], None, source="estimated"))

    analytics = calculate_team_analytics(metrics)

    # Totals count every fetched change, not just the sample
    return analytics.model_copy(
        update={
            "total_mrs_analyzed": len(changes),
            "merged_mrs_analyzed": sum(1 for c in changes if c.state == "merged"),
            "open_mrs_analyzed": sum(1 for c in changes if c.state == "opened"),
        }
    )


async def analyze_team(
    client: GitLabClient,
    project: str,
    timeframe: Timeframe = Timeframe.MONTH,
    cache: ResultCache | None = None,
    now: datetime | None = None,
    timeout: float = ANALYSIS_TIMEOUT,
) -> TeamAnalytics:
    """Team analytics for a project or group, cached per timeframe.

    Raises:
        AnalysisTimeoutError: if the analysis exceeds timeout seconds.
        AnalysisError: if merge requests could not be listed.
    """
    key = CacheKey(CacheKind.ANALYTICS, project, timeframe=timeframe.value)
    if cache:
        cached = cache.get(key, TeamAnalytics)
        if cached:
            logger.info(f"Using cached team analytics for {project} ({timeframe.value})")
            return cached

    try:
        with trio.fail_after(timeout):
            analytics = await _compute_team_analytics(client, project, timeframe, now or datetime.now(UTC))
    except trio.TooSlowError as e:
        raise AnalysisTimeoutError(f"Team analysis for {project} timed out after {timeout:.0f} seconds") from e

    if cache and analytics.total_mrs_analyzed:
        cache.set(key, analytics)
    return analytics


async def fetch_notes_by_change(
    client: GitLabClient,
    project: str,
    changes: list[ChangeRecord],
) -> NotesByChange:
    """Notes for each change; changes whose notes fail are left out."""
    settled = await settle_in_batches(
        changes,
        lambda change: fetch_notes(client, _project_ref(change, project), change.iid),
        batch_size=NOTES_BATCH_SIZE,
        item_timeout=MR_ANALYSIS_TIMEOUT,
    )

    notes_by_change: NotesByChange = {}
    for result in settled:
        if result.ok and result.value is not None:
            notes_by_change[result.item.id] = result.value
        else:
            logger.warning(f"Notes unavailable for MR !{result.item.iid}: {result.error}")
    return notes_by_change


async def _compute_engineer_report(
    client: GitLabClient,
    project: str,
    username: str,
    timeframe: Timeframe,
    now: datetime,
    title: str | None,
    on_progress: ProgressCallback | None,
) -> EngineerReport:
    def publish(stage: AnalysisStage, report: EngineerReport) -> None:
        if on_progress:
            on_progress(stage, report.model_copy(deep=True))

    changes = await fetch_changes(client, project, (None,), timeframe.cutoff(now))
    authored, reviewed, merged = split_engineer_changes(username, changes)
    logger.info(
        f"{username}: {len(authored)} authored, {len(reviewed)} reviewed, {len(merged)} merged in {timeframe.value}"
    )

    if on_progress is None:
        notes_by_change = await fetch_notes_by_change(client, project, authored[:DETAILED_SAMPLE])
        return build_engineer_report(username, changes, notes_by_change, timeframe, now, title)

    report = EngineerReport(
        username=username,
        timeframe=timeframe,
        title=title,
        authored_mrs=authored,
        reviewed_mrs=reviewed,
        merged_mrs=merged,
    )
    publish(AnalysisStage.FETCH, report)

    report.weekly_stats = calculate_weekly_stats(authored, reviewed, merged, timeframe, now)
    publish(AnalysisStage.BASIC_METRICS, report)

    sampled = authored[:DETAILED_SAMPLE]
    notes_by_change = await fetch_notes_by_change(client, project, sampled)
    report.detailed = calculate_detailed_metrics(authored, notes_by_change)
    report.notes_unavailable = sum(1 for c in sampled if c.id not in notes_by_change)
    publish(AnalysisStage.DETAILED_METRICS, report)

    report.comment_analysis = analyze_authored_comments(authored, notes_by_change)
    publish(AnalysisStage.COMMENT_ANALYSIS, report)

    report.response_time_metrics = calculate_author_response_times(authored, notes_by_change)
    publish(AnalysisStage.RESPONSE_TIMES, report)

    return report


async def analyze_engineer(
    client: GitLabClient,
    project: str,
    username: str,
    timeframe: Timeframe = Timeframe.MONTH,
    cache: ResultCache | None = None,
    now: datetime | None = None,
    timeout: float = ANALYSIS_TIMEOUT,
    title: str | None = None,
    on_progress: ProgressCallback | None = None,
) -> EngineerReport:
    """Review history for one engineer, cached per user and timeframe.

    on_progress is called after each stage with a snapshot of the
    partial report. A cache hit reports every stage at once.

    Raises:
        AnalysisTimeoutError: if the analysis exceeds timeout seconds.
        AnalysisError: if merge requests could not be listed.
    """
    key = CacheKey(CacheKind.ENGINEER, project, scope=username, timeframe=timeframe.value)
    if cache:
        cached = cache.get(key, EngineerReport)
        if cached:
            logger.info(f"Using cached engineer data for {username} ({timeframe.value})")
            if on_progress:
                for stage in AnalysisStage:
                    on_progress(stage, cached)
            return cached

    try:
        with trio.fail_after(timeout):
            report = await _compute_engineer_report(
                client, project, username, timeframe, now or datetime.now(UTC), title, on_progress
            )
    except trio.TooSlowError as e:
        raise AnalysisTimeoutError(f"Analysis for {username} timed out after {timeout:.0f} seconds") from e

    if cache:
        cache.set(key, report)
    return report


def complexity_cache_key(project: str, change: ChangeRecord) -> CacheKey:
    tag = f"{change.project_id}-{change.iid}" if change.project_id is not None else str(change.iid)
    return CacheKey(CacheKind.COMPLEXITY, project, tag=tag)


async def measure_complexities(
    client: GitLabClient,
    project: str,
    changes: list[ChangeRecord],
    cache: ResultCache | None = None,
) -> list[MRComplexity]:
    """Complexity for each change, from cache where possible.

    Changes whose diffs cannot be fetched get the estimated default,
    which is not cached so the next load retries.
    """
    by_id: dict[int, MRComplexity] = {}
    missing = []
    for change in changes:
        cached = cache.get(complexity_cache_key(project, change), MRComplexity) if cache else None
        if cached:
            by_id[change.id] = cached
        else:
            missing.append(change)

    logger.info(f"Complexity: {len(by_id)} cached, {len(missing)} to fetch")

    async def measure(change: ChangeRecord) -> MRComplexity:
        data = await client.get_mr_changes(_project_ref(change, project), change.iid)
        return measure_complexity(change.iid, extract_changes(data), project_id=change.project_id)

    settled = await settle_in_batches(missing, measure, batch_size=MR_BATCH_SIZE, delay=COMPLEXITY_BATCH_DELAY)
    for result in settled:
        change = result.item
        if result.ok and result.value is not None:
            by_id[change.id] = result.value
            if cache:
                cache.set(complexity_cache_key(project, change), result.value)
        else:
            logger.warning(f"Complexity for MR !{change.iid} unavailable ({result.error}), using default")
            by_id[change.id] = default_complexity(change.iid, project_id=change.project_id)

    return [by_id[change.id] for change in changes]


def _dashboard(
    changes: list[ChangeRecord],
    complexities: list[MRComplexity],
    config: ReviewConfig,
) -> DashboardData:
    stats = process_engineer_stats(changes, complexities)
    eligible = {s.user.username for s in stats if config.is_eligible_reviewer(s.user.username)}
    return DashboardData(
        merge_requests=changes,
        engineer_stats=stats,
        review_distribution=review_distribution(stats),
        complexities=complexities,
        next_reviewer=get_next_reviewer(stats, eligible),
    )


async def load_dashboard(
    client: GitLabClient,
    project: str,
    cache: ResultCache | None = None,
    config: ReviewConfig | None = None,
    timeout: float = ANALYSIS_TIMEOUT,
    on_basic: Callable[[DashboardData], None] | None = None,
) -> DashboardData:
    """Open merge requests with workload stats and a next-reviewer pick.

    on_basic receives the dashboard before complexities are known.
    """
    config = config or ReviewConfig.default()

    try:
        with trio.fail_after(timeout):
            changes = await fetch_changes(client, project, ("opened",))
            logger.info(f"Loaded {len(changes)} open merge requests for {project}")
            if on_basic:
                on_basic(_dashboard(changes, [], config))

            complexities = await measure_complexities(client, project, changes, cache)
    except trio.TooSlowError as e:
        raise AnalysisTimeoutError(f"Dashboard for {project} timed out after {timeout:.0f} seconds") from e

    return _dashboard(changes, complexities, config)

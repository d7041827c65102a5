"""Tests for analysis orchestration."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest
import respx
import trio

from mrscope.analytics.engineer import EngineerReport
from mrscope.analytics.metrics import TeamAnalytics
from mrscope.cache import CacheKey, CacheKind, MemoryStore, ResultCache
from mrscope.gitlab_client import GitLabClient
from mrscope.models import ChangeRecord, MRComplexity, Timeframe, UserRef
from mrscope.pipeline import (
    AnalysisError,
    AnalysisStage,
    AnalysisTimeoutError,
    analyze_engineer,
    analyze_team,
    complexity_cache_key,
    fetch_changes,
    load_dashboard,
    sample_changes,
    settle_in_batches,
)
from mrscope.review_config import ReviewConfig

API = "https://gitlab.com/api/v4"
NOW = datetime(2025, 1, 29, 12, 0, tzinfo=UTC)


def iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def make_user(user_id: int, username: str) -> dict:
    return {"id": user_id, "username": username, "name": username.title()}


ALICE = make_user(1, "alice")
BOB = make_user(2, "bob")
CAROL = make_user(3, "carol")


def make_mr(iid: int, state: str = "opened", author: dict = ALICE, reviewers=(BOB,), hours_ago: float = 24, **overrides) -> dict:
    created = NOW - timedelta(hours=hours_ago)
    base = {
        "id": 5000 + iid,
        "iid": iid,
        "project_id": 123,
        "title": f"MR {iid}",
        "author": author,
        "state": state,
        "draft": False,
        "created_at": iso(created),
        "updated_at": iso(created + timedelta(hours=1)),
        "merged_at": iso(created + timedelta(hours=5)) if state == "merged" else None,
        "reviewers": list(reviewers),
        "assignees": [],
        "web_url": f"https://gitlab.com/acme/api/-/merge_requests/{iid}",
    }
    base.update(overrides)
    return base


def make_note(note_id: int, author: dict, body: str, at: datetime, system: bool = False) -> dict:
    return {"id": note_id, "author": author, "body": body, "created_at": iso(at), "system": system}


def mock_listing(project: str | int, mrs: list[dict]) -> respx.Route:
    """Serve a merge request listing, filtered by the state param."""

    def respond(request: httpx.Request) -> httpx.Response:
        state = request.url.params.get("state")
        return httpx.Response(200, json=[mr for mr in mrs if state is None or mr["state"] == state])

    return respx.get(f"{API}/projects/{project}/merge_requests").mock(side_effect=respond)


MR_URL = f"{API}/projects/123/merge_requests"


def mock_notes(iid: int, notes: list[dict], discussions: bool = False) -> None:
    respx.get(f"{MR_URL}/{iid}/notes").mock(return_value=httpx.Response(200, json=notes))
    if discussions:
        respx.get(f"{MR_URL}/{iid}/discussions").mock(return_value=httpx.Response(200, json=[]))


def mock_diff(iid: int, diff: str = "+a\n+b\n-c\n") -> None:
    respx.get(f"{MR_URL}/{iid}/changes").mock(
        return_value=httpx.Response(200, json={"iid": iid, "changes": [{"diff": diff, "new_path": "a.py"}]})
    )


@pytest.fixture
async def gitlab_client():
    client = GitLabClient(token="fake-token", base_url=API)
    async with client:
        yield client


@pytest.fixture
def cache():
    return ResultCache(MemoryStore())


class TestSettleInBatches:
    @pytest.mark.trio
    async def test_failures_are_isolated(self, autojump_clock):
        async def work(n: int) -> int:
            if n == 3:
                raise ValueError("bad item")
            return n * 10

        results = await settle_in_batches([1, 2, 3, 4, 5, 6], work, batch_size=2)
        assert [r.value for r in results] == [10, 20, None, 40, 50, 60]
        assert not results[2].ok
        assert "bad item" in results[2].error

    @pytest.mark.trio
    async def test_item_timeout(self, autojump_clock):
        async def work(n: int) -> int:
            await trio.sleep(n)
            return n

        results = await settle_in_batches([1, 30], work, item_timeout=15)
        assert results[0].value == 1
        assert "timed out" in results[1].error

    @pytest.mark.trio
    async def test_empty(self):
        async def work(n: int) -> int:
            return n

        assert await settle_in_batches([], work) == []


class TestFetchChanges:
    @pytest.mark.trio
    @respx.mock
    async def test_single_project(self, gitlab_client):
        mock_listing(123, [make_mr(1, hours_ago=48), make_mr(2, "merged", hours_ago=2)])
        changes = await fetch_changes(gitlab_client, "123", ("opened", "merged"))
        assert [c.iid for c in changes] == [2, 1]

    @pytest.mark.trio
    @respx.mock
    async def test_filters_by_cutoff(self, gitlab_client):
        mock_listing(123, [make_mr(1, hours_ago=24 * 40), make_mr(2)])
        changes = await fetch_changes(gitlab_client, "123", (None,), updated_after=NOW - timedelta(days=30))
        assert [c.iid for c in changes] == [2]

    @pytest.mark.trio
    @respx.mock
    async def test_unreadable_record_skipped(self, gitlab_client):
        broken = make_mr(3)
        del broken["created_at"]
        mock_listing(123, [make_mr(1), make_mr(2, "locked"), broken, make_mr(4, state="archived")])

        changes = await fetch_changes(gitlab_client, "123", (None,))
        assert sorted(c.iid for c in changes) == [1, 2]
        assert {c.state for c in changes} == {"opened", "locked"}

    @pytest.mark.trio
    @respx.mock
    async def test_group_skips_failing_project(self, gitlab_client, autojump_clock):
        respx.get(f"{API}/groups/acme").mock(return_value=httpx.Response(200, json={"id": 9}))
        respx.get(f"{API}/groups/acme/projects").mock(return_value=httpx.Response(200, json=[{"id": 1}, {"id": 2}]))
        mock_listing(1, [make_mr(1, project_id=1), make_mr(2, project_id=1)])
        respx.get(f"{API}/projects/2/merge_requests").mock(return_value=httpx.Response(503))

        changes = await fetch_changes(gitlab_client, "acme", ("opened",))
        assert sorted(c.iid for c in changes) == [1, 2]
        assert all(c.project_id == 1 for c in changes)

    @pytest.mark.trio
    @respx.mock
    async def test_listing_failure_raises(self, gitlab_client):
        respx.get(f"{API}/projects/123/merge_requests").mock(return_value=httpx.Response(403))
        with pytest.raises(AnalysisError, match="Failed to fetch merge requests"):
            await fetch_changes(gitlab_client, "123", ("opened",))


class TestSampleChanges:
    def make_changes(self, count: int) -> list[ChangeRecord]:
        author = UserRef(id=1, username="alice")
        return [
            ChangeRecord(
                id=i,
                iid=i,
                title=f"MR {i}",
                author=author,
                state="merged" if i % 2 else "opened",
                created_at=NOW - timedelta(hours=i),
            )
            for i in range(count)
        ]

    def test_small_sets_untouched(self):
        changes = self.make_changes(10)
        assert sample_changes(changes) == changes

    def test_large_sets_capped(self):
        changes = self.make_changes(200)
        sample = sample_changes(changes, limit=50)
        assert len(sample) <= 50
        assert len({c.id for c in sample}) == len(sample)
        # The 30 most recent always make it in
        assert [c.id for c in sample[:30]] == list(range(30))


class TestAnalyzeTeam:
    @pytest.mark.trio
    @respx.mock
    async def test_analytics(self, gitlab_client, cache):
        merged = make_mr(1, "merged", hours_ago=30)
        opened = make_mr(2, hours_ago=10)
        mock_listing(123, [merged, opened])
        created = NOW - timedelta(hours=30)
        mock_notes(
            1,
            [
                make_note(1, BOB, "Please add a test", created + timedelta(hours=1)),
                make_note(2, BOB, "requested review from @bob", created + timedelta(hours=2), system=True),
            ],
        )
        mock_diff(1)
        respx.get(f"{MR_URL}/2/notes").mock(return_value=httpx.Response(404))
        respx.get(f"{MR_URL}/2/changes").mock(return_value=httpx.Response(200, json={"changes": []}))

        analytics = await analyze_team(gitlab_client, "123", Timeframe.MONTH, cache=cache, now=NOW)

        assert analytics.total_mrs_analyzed == 2
        assert analytics.merged_mrs_analyzed == 1
        assert analytics.open_mrs_analyzed == 1
        assert analytics.detailed_mrs_analyzed == 2
        assert analytics.estimated_mrs == 1
        assert analytics.avg_time_to_merge == pytest.approx(5.0)
        assert analytics.avg_comments_per_mr == pytest.approx(0.5)
        assert analytics.avg_lines_added_per_mr == pytest.approx(1.0)

        key = CacheKey(CacheKind.ANALYTICS, "123", timeframe="30d")
        assert cache.get(key, TeamAnalytics) == analytics

    @pytest.mark.trio
    @respx.mock
    async def test_cache_hit_skips_api(self, gitlab_client, cache):
        cached = TeamAnalytics(total_mrs_analyzed=7)
        cache.set(CacheKey(CacheKind.ANALYTICS, "123", timeframe="7d"), cached)
        result = await analyze_team(gitlab_client, "123", Timeframe.WEEK, cache=cache, now=NOW)
        assert result == cached
        assert gitlab_client.request_count == 0

    @pytest.mark.trio
    @respx.mock
    async def test_empty_not_cached(self, gitlab_client, cache):
        mock_listing(123, [])
        analytics = await analyze_team(gitlab_client, "123", cache=cache, now=NOW)
        assert analytics.total_mrs_analyzed == 0
        assert cache.get(CacheKey(CacheKind.ANALYTICS, "123", timeframe="30d"), TeamAnalytics) is None

    @pytest.mark.trio
    async def test_timeout(self, autojump_clock):
        class SlowClient:
            async def is_group(self, path):
                return False

            async def get_merge_requests(self, project, **kwargs):
                await trio.sleep(600)
                return []

        with pytest.raises(AnalysisTimeoutError, match="timed out after 45 seconds"):
            await analyze_team(SlowClient(), "123", now=NOW, timeout=45)


class TestAnalyzeEngineer:
    @pytest.mark.trio
    @respx.mock
    async def test_report_and_progress(self, gitlab_client, cache):
        authored = make_mr(1, "merged", hours_ago=30)
        reviewed = make_mr(2, author=BOB, reviewers=(ALICE,), hours_ago=5)
        mock_listing(123, [authored, reviewed])
        created = NOW - timedelta(hours=30)
        mock_notes(
            1,
            [
                make_note(1, BOB, "Please add a unit test", created + timedelta(hours=1)),
                make_note(2, ALICE, "Added, thanks", created + timedelta(hours=2)),
            ],
            discussions=True,
        )

        progress: list[tuple[AnalysisStage, EngineerReport]] = []
        report = await analyze_engineer(
            gitlab_client,
            "123",
            "alice",
            Timeframe.MONTH,
            cache=cache,
            now=NOW,
            title="Staff Engineer",
            on_progress=lambda stage, partial: progress.append((stage, partial)),
        )

        assert [stage for stage, _ in progress] == list(AnalysisStage)
        # Snapshots are taken as each stage completes
        assert progress[0][1].weekly_stats == []
        assert progress[-1][1] == report

        assert report.title == "Staff Engineer"
        assert [c.iid for c in report.authored_mrs] == [1]
        assert [c.iid for c in report.reviewed_mrs] == [2]
        assert [c.iid for c in report.merged_mrs] == [1]
        assert report.detailed.total_comments == 1
        assert report.comment_analysis.top_issues[0].category == "Testing"
        assert report.response_time_metrics.avg_response_time == pytest.approx(1.0)
        assert report.notes_unavailable == 0

        key = CacheKey(CacheKind.ENGINEER, "123", scope="alice", timeframe="30d")
        assert cache.get(key, EngineerReport) == report

    @pytest.mark.trio
    @respx.mock
    async def test_notes_failure_degrades(self, gitlab_client):
        mock_listing(123, [make_mr(1)])
        respx.get(f"{MR_URL}/1/notes").mock(return_value=httpx.Response(404))
        respx.get(f"{MR_URL}/1/discussions").mock(return_value=httpx.Response(200, json=[]))

        report = await analyze_engineer(gitlab_client, "123", "alice", now=NOW)
        assert report.notes_unavailable == 1
        assert report.comment_analysis.total_comments == 0
        assert len(report.authored_mrs) == 1

    @pytest.mark.trio
    @respx.mock
    async def test_same_report_with_and_without_progress(self, gitlab_client):
        created = NOW - timedelta(hours=30)
        mock_listing(123, [make_mr(1, "merged", hours_ago=30), make_mr(2, author=BOB, reviewers=(ALICE,))])
        mock_notes(
            1,
            [
                make_note(1, BOB, "This function is too long, please refactor", created + timedelta(hours=1)),
                make_note(2, ALICE, "Done", created + timedelta(hours=4)),
            ],
            discussions=True,
        )

        staged = await analyze_engineer(gitlab_client, "123", "alice", now=NOW, on_progress=lambda *_: None)
        direct = await analyze_engineer(gitlab_client, "123", "alice", now=NOW)

        assert direct == staged
        assert direct.response_time_metrics.avg_response_time == pytest.approx(3.0)

    @pytest.mark.trio
    @respx.mock
    async def test_locked_merge_request_counted(self, gitlab_client):
        mock_listing(123, [make_mr(1), make_mr(2, state="locked", hours_ago=2)])
        mock_notes(1, [], discussions=True)
        mock_notes(2, [], discussions=True)

        report = await analyze_engineer(gitlab_client, "123", "alice", now=NOW)
        assert sorted(c.iid for c in report.authored_mrs) == [1, 2]
        assert report.merged_mrs == []
        assert report.notes_unavailable == 0

    @pytest.mark.trio
    @respx.mock
    async def test_cache_hit_reports_every_stage(self, gitlab_client, cache):
        cached = EngineerReport(username="alice", timeframe=Timeframe.MONTH)
        cache.set(CacheKey(CacheKind.ENGINEER, "123", scope="alice", timeframe="30d"), cached)

        stages = []
        result = await analyze_engineer(
            gitlab_client, "123", "alice", cache=cache, on_progress=lambda stage, _: stages.append(stage)
        )
        assert result == cached
        assert stages == list(AnalysisStage)
        assert gitlab_client.request_count == 0


class TestLoadDashboard:
    @pytest.mark.trio
    @respx.mock
    async def test_dashboard(self, gitlab_client, cache):
        mock_listing(
            123,
            [
                make_mr(1, author=ALICE, reviewers=(BOB,)),
                make_mr(2, author=BOB, reviewers=(CAROL,), hours_ago=48),
            ],
        )
        mock_diff(1, "+a\n" * 50)
        respx.get(f"{MR_URL}/2/changes").mock(return_value=httpx.Response(404))

        basics = []
        config = ReviewConfig(eligible_reviewers=["bob", "carol"])
        data = await load_dashboard(gitlab_client, "123", cache=cache, config=config, on_basic=basics.append)

        assert [mr.iid for mr in data.merge_requests] == [1, 2]
        assert basics[0].complexities == []
        assert [c.source for c in data.complexities] == ["measured", "estimated"]
        assert {s.user.username for s in data.engineer_stats} == {"alice", "bob", "carol"}
        assert data.next_reviewer is not None
        assert data.next_reviewer.user.username == "carol"
        assert [s.username for s in data.review_distribution] == ["bob", "carol"]

        # Measured complexity is cached, the estimated default is not
        changes = data.merge_requests
        assert cache.get(complexity_cache_key("123", changes[0]), MRComplexity) is not None
        assert cache.get(complexity_cache_key("123", changes[1]), MRComplexity) is None

    @pytest.mark.trio
    @respx.mock
    async def test_cached_complexity_skips_fetch(self, gitlab_client, cache):
        mock_listing(123, [make_mr(1)])
        change = ChangeRecord(
            id=5001, iid=1, project_id=123, title="MR 1", author=UserRef(id=1, username="alice"),
            state="opened", created_at=NOW,
        )
        cached = MRComplexity(
            iid=1, project_id=123, files_changed=4, lines_added=40, lines_deleted=4, total_lines=44,
            complexity_score=2.5,
        )
        cache.set(complexity_cache_key("123", change), cached)

        data = await load_dashboard(gitlab_client, "123", cache=cache)
        assert data.complexities == [cached]

    def test_complexity_cache_key(self):
        change = ChangeRecord(
            id=1, iid=42, project_id=7, title="x", author=UserRef(id=1), state="opened", created_at=NOW
        )
        assert complexity_cache_key("acme", change).storage_key() == "gitlab_mr_complexity_acme_7-42"

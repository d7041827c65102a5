"""Tests for workload scoring and next-reviewer selection."""

from datetime import UTC, datetime

import pytest

from mrscope.analytics.workload import (
    EngineerStats,
    calculate_workload_score,
    get_next_reviewer,
    process_engineer_stats,
    review_distribution,
)
from mrscope.models import ChangeRecord, MRComplexity, UserRef

ALICE = UserRef(id=1, username="alice", name="Alice")
BOB = UserRef(id=2, username="bob", name="Bob")
CAROL = UserRef(id=3, username="carol", name="Carol")
DAVE = UserRef(id=4, username="dave", name="Dave")


def make_change(iid: int, author: UserRef, reviewers=(), assignees=(), draft=False, project_id=123) -> ChangeRecord:
    return ChangeRecord(
        id=1000 + iid,
        iid=iid,
        project_id=project_id,
        title=f"MR {iid}",
        author=author,
        state="opened",
        draft=draft,
        created_at=datetime(2025, 1, 6, tzinfo=UTC),
        reviewers=list(reviewers),
        assignees=list(assignees),
    )


def make_complexity(iid: int, score: float, project_id=123) -> MRComplexity:
    return MRComplexity(
        iid=iid,
        project_id=project_id,
        files_changed=1,
        lines_added=1,
        lines_deleted=0,
        total_lines=1,
        complexity_score=score,
    )


class TestWorkloadScore:
    def test_formula(self):
        stats = EngineerStats(
            user=ALICE,
            open_mrs=2,
            draft_mrs=1,
            assigned_reviews=3,
            review_complexity=4.0,
            author_complexity=5.0,
        )
        assert calculate_workload_score(stats) == pytest.approx(3 * 2 + 2 + 0.5 + 4 * 0.5 + 5 * 0.3)
        assert stats.workload_score == calculate_workload_score(stats)

    def test_idle(self):
        assert EngineerStats(user=ALICE).workload_score == 0


class TestProcessEngineerStats:
    def test_counts_and_complexity(self):
        changes = [
            make_change(1, ALICE, reviewers=[BOB]),
            make_change(2, ALICE, reviewers=[BOB, CAROL], draft=True),
            make_change(3, CAROL),
        ]
        complexities = [make_complexity(1, 2.0), make_complexity(2, 3.0)]
        stats = {s.user.username: s for s in process_engineer_stats(changes, complexities)}

        assert stats["alice"].open_mrs == 1
        assert stats["alice"].draft_mrs == 1
        assert stats["alice"].author_complexity == pytest.approx(5.0)
        assert stats["bob"].assigned_reviews == 2
        assert stats["bob"].review_complexity == pytest.approx(5.0)
        assert stats["carol"].assigned_reviews == 1
        # Unknown complexity counts as 1.0
        assert stats["carol"].author_complexity == pytest.approx(1.0)

    def test_assignees_are_tracked(self):
        stats = process_engineer_stats([make_change(1, ALICE, assignees=[DAVE])])
        dave = next(s for s in stats if s.user.username == "dave")
        assert dave.workload_score == 0

    def test_complexity_keyed_by_project(self):
        changes = [make_change(1, ALICE, project_id=1), make_change(1, BOB, project_id=2)]
        stats = {s.user.username: s for s in process_engineer_stats(changes, [make_complexity(1, 7.0, project_id=2)])}
        assert stats["alice"].author_complexity == pytest.approx(1.0)
        assert stats["bob"].author_complexity == pytest.approx(7.0)

    def test_sorted_busiest_first(self):
        changes = [make_change(1, ALICE, reviewers=[BOB]), make_change(2, CAROL, reviewers=[BOB])]
        stats = process_engineer_stats(changes)
        assert stats[0].user.username == "bob"

    def test_equal_counts_ranked_by_complexity(self):
        changes = [
            make_change(1, ALICE, reviewers=[BOB]),
            make_change(2, DAVE, reviewers=[CAROL]),
        ]
        complexities = [make_complexity(1, 2.0), make_complexity(2, 6.0)]
        stats = process_engineer_stats(changes, complexities)
        by_name = {s.user.username: s for s in stats}

        assert by_name["bob"].assigned_reviews == by_name["carol"].assigned_reviews == 1
        assert by_name["carol"].workload_score > by_name["bob"].workload_score
        assert by_name["dave"].workload_score > by_name["alice"].workload_score
        assert [s.user.username for s in stats] == ["carol", "bob", "dave", "alice"]

    def test_empty(self):
        assert process_engineer_stats([]) == []


class TestReviewDistribution:
    def test_only_reviewers_largest_first(self):
        changes = [
            make_change(1, ALICE, reviewers=[BOB, CAROL]),
            make_change(2, ALICE, reviewers=[BOB]),
        ]
        shares = review_distribution(process_engineer_stats(changes))
        assert [(s.username, s.value) for s in shares] == [("bob", 2), ("carol", 1)]
        assert shares[0].name == "Bob"


class TestNextReviewer:
    def test_least_loaded(self):
        changes = [make_change(1, ALICE, reviewers=[BOB]), make_change(2, CAROL, draft=True)]
        pick = get_next_reviewer(process_engineer_stats(changes))
        assert pick is not None
        assert pick.user.username == "carol"

    def test_allow_list(self):
        stats = process_engineer_stats([make_change(1, ALICE, reviewers=[BOB], assignees=[DAVE])])
        pick = get_next_reviewer(stats, eligible={"alice", "bob"})
        assert pick is not None
        assert pick.user.username == "alice"

    def test_ties_broken_by_username(self):
        stats = [EngineerStats(user=CAROL), EngineerStats(user=BOB)]
        pick = get_next_reviewer(stats)
        assert pick is not None
        assert pick.user.username == "bob"

    def test_no_eligible(self):
        stats = process_engineer_stats([make_change(1, ALICE)])
        assert get_next_reviewer(stats, eligible=set()) is None

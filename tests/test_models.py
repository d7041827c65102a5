"""Tests for Pydantic models."""

from datetime import UTC, datetime

import pytest

from mrscope.models import ChangeRecord, DiffStat, MRMetrics, Timeframe, UserRef


class TestTimeframe:
    @pytest.mark.parametrize(
        "timeframe,days",
        [(Timeframe.WEEK, 7), (Timeframe.MONTH, 30), (Timeframe.QUARTER, 90)],
    )
    def test_days(self, timeframe, days):
        assert timeframe.days == days

    def test_cutoff(self):
        now = datetime(2025, 3, 31, 12, 0, tzinfo=UTC)
        assert Timeframe.MONTH.cutoff(now) == datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

    def test_from_value(self):
        assert Timeframe("90d") is Timeframe.QUARTER


class TestUserRef:
    def test_same_id(self):
        assert UserRef(id=1, username="a").same_as(UserRef(id=1, username="renamed"))

    def test_same_username_different_id(self):
        assert UserRef(id=1, username="alice").same_as(UserRef(id=2, username="alice"))

    def test_blank_usernames_do_not_match(self):
        assert not UserRef(id=1).same_as(UserRef(id=2))

    def test_none(self):
        assert not UserRef(id=1, username="alice").same_as(None)


class TestChangeRecord:
    def make_change(self, **overrides) -> ChangeRecord:
        base = {
            "id": 1,
            "iid": 10,
            "title": "Fix",
            "author": UserRef(id=1, username="alice"),
            "state": "opened",
            "created_at": datetime(2025, 1, 1, tzinfo=UTC),
        }
        base.update(overrides)
        return ChangeRecord(**base)

    def test_has_reviewer(self):
        change = self.make_change(reviewers=[UserRef(id=2, username="bob")])
        assert change.has_reviewer("bob")
        assert not change.has_reviewer("carol")

    def test_last_activity_prefers_updated(self):
        updated = datetime(2025, 1, 5, tzinfo=UTC)
        assert self.make_change(updated_at=updated).last_activity_at == updated

    def test_rejects_unknown_state(self):
        with pytest.raises(ValueError):
            self.make_change(state="archived")


class TestDiffStat:
    def test_total(self):
        assert DiffStat(added=3, deleted=2).total == 5

    def test_empty(self):
        assert DiffStat().total == 0


class TestMRMetrics:
    def test_lines_changed(self):
        metrics = MRMetrics(
            id=1,
            iid=10,
            title="Fix",
            author="Alice",
            author_username="alice",
            state="opened",
            is_draft=False,
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
            lines_added=40,
            lines_deleted=2,
        )
        assert metrics.lines_changed == 42
        assert metrics.source == "measured"

    @pytest.mark.parametrize("field", ["time_to_merge", "draft_duration", "review_duration", "time_to_first_review"])
    def test_durations_are_non_negative(self, field):
        base = {
            "id": 1,
            "iid": 10,
            "title": "Fix",
            "author": "Alice",
            "author_username": "alice",
            "state": "merged",
            "is_draft": False,
            "created_at": datetime(2025, 1, 1, tzinfo=UTC),
        }
        assert getattr(MRMetrics(**base, **{field: 0.0}), field) == 0.0
        with pytest.raises(ValueError):
            MRMetrics(**base, **{field: -0.5})

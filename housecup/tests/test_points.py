"""
Unit Tests for the Points Service

Tests cover:
1. Award and deduction flow
2. Capped removal
3. Reset
4. Totals derived from the log
5. Concurrent writers and storage failures
"""

import threading

import pytest

from housecup.errors import ConflictError, NotFoundError, PersistenceFailure, ValidationError
from housecup.models import House
from housecup.notifier import HOUSE_POINTS_CHANNEL, ChangeNotifier
from housecup.service import PointsService
from housecup.storage import InMemoryLedgerStorage


class FailingStorage(InMemoryLedgerStorage):
    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def write_ledger(self, record, expected_version):
        if self.fail_writes:
            raise PersistenceFailure("storage unavailable")
        return super().write_ledger(record, expected_version)


class InterferingStorage(InMemoryLedgerStorage):
    """Lets another admin write between our read and our write, once."""

    def __init__(self):
        super().__init__()
        self.interfered = False

    def write_ledger(self, record, expected_version):
        if expected_version is not None and not self.interfered:
            self.interfered = True
            PointsService(storage=self).apply_delta(House.SLYTHERIN, 10, "Concurrent admin")
        return super().write_ledger(record, expected_version)


class AlwaysStaleStorage(InMemoryLedgerStorage):
    def __init__(self):
        super().__init__()
        self.attempts = 0

    def write_ledger(self, record, expected_version):
        if expected_version is None:
            return super().write_ledger(record, expected_version)
        self.attempts += 1
        raise ConflictError("stale")


def assert_totals_match_log(state):
    for house in House:
        logged = sum(t.delta for t in state.transactions if t.house == house)
        assert state.totals[house] == logged


class TestApplyDeltaFlow:
    """Tests for raw point changes."""

    def test_award_points(self):
        """Test awarding points records one transaction."""
        service = PointsService()

        state = service.apply_delta(House.GRYFFINDOR, 50, "Won the quidditch match")

        assert state.totals[House.GRYFFINDOR] == 50
        assert len(state.transactions) == 1
        transaction = state.transactions[0]
        assert transaction.house == House.GRYFFINDOR
        assert transaction.delta == 50
        assert transaction.reason == "Won the quidditch match"

    def test_accepts_house_name_string(self):
        """Test that plain house identifiers are accepted."""
        service = PointsService()

        state = service.apply_delta("ravenclaw", 10, "Homework")

        assert state.totals[House.RAVENCLAW] == 10

    def test_negative_delta_can_go_below_zero(self):
        """Test that raw deductions are not floored."""
        service = PointsService()

        state = service.apply_delta(House.SLYTHERIN, -25, "Quick -25")

        assert state.totals[House.SLYTHERIN] == -25
        assert state.transactions[0].delta == -25

    def test_zero_delta_rejected(self):
        """Test that a zero change is rejected and logs nothing."""
        service = PointsService()

        with pytest.raises(ValidationError):
            service.apply_delta(House.HUFFLEPUFF, 0, "Nothing")

        assert service.current_state().transactions == []

    def test_unknown_house_rejected(self):
        """Test that houses outside the fixed four are rejected."""
        service = PointsService()

        with pytest.raises(ValidationError):
            service.apply_delta("durmstrang", 10, "Visitors")

    def test_default_reason(self):
        """Test that a missing reason falls back to manual entry."""
        service = PointsService()

        state = service.apply_delta(House.GRYFFINDOR, 10)

        assert state.transactions[0].reason == "Manual entry"

    def test_totals_track_log_over_many_changes(self):
        """Test that totals equal the per-house sum of the log."""
        service = PointsService()

        service.apply_delta(House.GRYFFINDOR, 100, "Win")
        service.apply_delta(House.SLYTHERIN, -50, "Stack Cup loss")
        service.remove_capped(House.GRYFFINDOR, 30, "Late")
        service.apply_delta(House.RAVENCLAW, 25, "Quiz")
        service.remove_capped(House.SLYTHERIN, 10, "Already negative")
        state = service.apply_delta(House.GRYFFINDOR, -200, "Curfew")

        assert_totals_match_log(state)
        assert state.totals == {
            House.GRYFFINDOR: -130,
            House.SLYTHERIN: -50,
            House.HUFFLEPUFF: 0,
            House.RAVENCLAW: 25,
        }

    def test_version_increases_per_write(self):
        """Test that each write bumps the ledger version."""
        service = PointsService()

        first = service.apply_delta(House.GRYFFINDOR, 10)
        second = service.apply_delta(House.GRYFFINDOR, 10)

        assert second.version == first.version + 1

    def test_game_action(self):
        """Test that preset game actions apply their points and reason."""
        service = PointsService()
        service.apply_delta(House.RAVENCLAW, 80, "Quiz")

        state = service.apply_game_action(House.HUFFLEPUFF, "beer_pong_win")
        state = service.apply_game_action(House.RAVENCLAW, "stack_cup_loss")

        assert state.totals[House.HUFFLEPUFF] == 50
        assert state.totals[House.RAVENCLAW] == 30
        assert [t.reason for t in state.transactions] == ["Quiz", "Beer Pong win", "Stack Cup loss"]

    def test_losing_game_action_floors_at_zero(self):
        """Test that a losing game action never drives a total below zero."""
        service = PointsService()

        state = service.apply_game_action(House.RAVENCLAW, "stack_cup_loss")

        assert state.totals[House.RAVENCLAW] == 0
        assert state.transactions == []

        service.apply_delta(House.RAVENCLAW, 20, "Quiz")
        state = service.apply_game_action(House.RAVENCLAW, "stack_cup_loss")

        assert state.totals[House.RAVENCLAW] == 0
        assert state.transactions[-1].delta == -20
        assert state.transactions[-1].reason == "Stack Cup loss"

    def test_quick_points(self):
        """Test quick buttons record a bonus or deduction as a raw change."""
        service = PointsService()

        service.apply_quick_points(House.GRYFFINDOR, 25)
        state = service.apply_quick_points(House.SLYTHERIN, -10)

        assert state.totals[House.GRYFFINDOR] == 25
        assert state.totals[House.SLYTHERIN] == -10
        assert [t.reason for t in state.transactions] == ["Quick bonus", "Quick deduction"]

    def test_quick_points_only_preset_amounts(self):
        """Test that amounts outside the quick buttons are rejected."""
        service = PointsService()

        with pytest.raises(ValidationError):
            service.apply_quick_points(House.GRYFFINDOR, 7)

        assert service.current_state().transactions == []

    @pytest.mark.parametrize("amount", [2.5, "10", True])
    def test_non_integer_amount_rejected(self, amount):
        """Test that amounts must be whole numbers."""
        service = PointsService()

        with pytest.raises(ValidationError):
            service.apply_delta(House.GRYFFINDOR, amount)
        with pytest.raises(ValidationError):
            service.remove_capped(House.GRYFFINDOR, amount)

    def test_unknown_game_action(self):
        """Test that an unknown game action fails."""
        service = PointsService()

        with pytest.raises(NotFoundError):
            service.apply_game_action(House.HUFFLEPUFF, "wizard_chess")


class TestRemoveCappedFlow:
    """Tests for the floor-at-zero removal path."""

    def test_removal_capped_at_total(self):
        """Test that removal never drives a total below zero."""
        service = PointsService()
        service.apply_delta(House.GRYFFINDOR, 30, "Win")

        state = service.remove_capped(House.GRYFFINDOR, 50, "Penalty")

        assert state.totals[House.GRYFFINDOR] == 0
        assert state.transactions[-1].delta == -30
        assert state.transactions[-1].reason == "Penalty"

    def test_partial_removal(self):
        """Test removing less than the current total."""
        service = PointsService()
        service.apply_delta(House.SLYTHERIN, 100, "Win")

        state = service.remove_capped(House.SLYTHERIN, 40)

        assert state.totals[House.SLYTHERIN] == 60
        assert state.transactions[-1].reason == "Point deduction"

    def test_removal_from_zero_is_noop(self):
        """Test that nothing is recorded when there is nothing to remove."""
        service = PointsService()
        before = service.current_state()

        after = service.remove_capped(House.HUFFLEPUFF, 10, "Penalty")

        assert after.transactions == []
        assert after.version == before.version

    def test_removal_from_negative_total_is_noop(self):
        """Test that removal never raises a negative total."""
        service = PointsService()
        service.apply_delta(House.RAVENCLAW, -20, "Quick -20")

        state = service.remove_capped(House.RAVENCLAW, 10, "Penalty")

        assert state.totals[House.RAVENCLAW] == -20
        assert len(state.transactions) == 1

    def test_removal_amount_must_be_positive(self):
        """Test that non-positive removal amounts are rejected."""
        service = PointsService()

        with pytest.raises(ValidationError):
            service.remove_capped(House.RAVENCLAW, 0)
        with pytest.raises(ValidationError):
            service.remove_capped(House.RAVENCLAW, -5)


class TestResetFlow:
    """Tests for resetting the ledger."""

    def test_reset_clears_totals_and_log(self):
        """Test that reset zeroes every house and empties the log."""
        service = PointsService()
        service.apply_delta(House.GRYFFINDOR, 100)
        service.apply_delta(House.SLYTHERIN, -40)

        state = service.reset()

        assert all(points == 0 for points in state.totals.values())
        assert state.transactions == []

    def test_log_restarts_after_reset(self):
        """Test that the first change after a reset starts a fresh log."""
        service = PointsService()
        service.apply_delta(House.GRYFFINDOR, 100)
        service.reset()

        state = service.apply_delta(House.HUFFLEPUFF, 5)

        assert len(state.transactions) == 1
        assert state.totals[House.HUFFLEPUFF] == 5
        assert state.totals[House.GRYFFINDOR] == 0


class TestHistoryAndRecovery:
    """Tests for transaction history and totals recovery."""

    def test_initial_state_is_empty(self):
        """Test that first read initialises an all-zero ledger."""
        service = PointsService()

        state = service.current_state()

        assert state.totals == {house: 0 for house in House}
        assert state.transactions == []

    def test_recent_transactions_newest_first(self):
        """Test history ordering and limit."""
        service = PointsService()
        for amount in (1, 2, 3, 4, 5):
            service.apply_delta(House.GRYFFINDOR, amount)

        history = service.recent_transactions(limit=3)

        assert history.total_count == 5
        assert [t.delta for t in history.transactions] == [5, 4, 3]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_history_limit_must_be_positive(self, limit):
        service = PointsService()
        service.apply_delta(House.GRYFFINDOR, 1)

        with pytest.raises(ValidationError):
            service.recent_transactions(limit=limit)

    def test_drifted_totals_recovered_from_log(self):
        """Test that stored totals are recomputed from the log."""
        storage = InMemoryLedgerStorage()
        service = PointsService(storage=storage)
        service.apply_delta(House.GRYFFINDOR, 40)
        record = storage.read_ledger()
        record["totals"]["gryffindor"] = 999
        storage.write_ledger(record, expected_version=record["version"])

        assert service.verify_totals() == {House.GRYFFINDOR: 959}
        assert service.current_state().totals[House.GRYFFINDOR] == 40

        service.rebuild_totals()

        assert service.verify_totals() == {}
        assert storage.read_ledger()["totals"]["gryffindor"] == 40

    def test_change_published(self):
        """Test that writes publish a change and no-ops do not."""
        notifier = ChangeNotifier()
        signals = []
        notifier.subscribe(HOUSE_POINTS_CHANNEL, lambda: signals.append("changed"))
        service = PointsService(notifier=notifier)

        service.apply_delta(House.GRYFFINDOR, 10)
        service.remove_capped(House.SLYTHERIN, 10)
        service.reset()

        assert signals == ["changed", "changed"]


class TestConcurrencyAndFailures:
    """Tests for conflicting writers and storage failures."""

    def test_conflicting_write_is_recomputed(self):
        """Test that a write racing another admin keeps both changes."""
        storage = InterferingStorage()
        service = PointsService(storage=storage)
        service.current_state()

        state = service.apply_delta(House.GRYFFINDOR, 50, "Win")

        assert state.totals[House.GRYFFINDOR] == 50
        assert state.totals[House.SLYTHERIN] == 10
        assert len(state.transactions) == 2
        assert_totals_match_log(state)

    def test_conflict_surfaces_after_retries(self):
        """Test that persistent conflicts are reported to the caller."""
        storage = AlwaysStaleStorage()
        service = PointsService(storage=storage, max_conflict_retries=2)

        with pytest.raises(ConflictError):
            service.apply_delta(House.GRYFFINDOR, 10)

        assert storage.attempts == 3

    def test_persistence_failure_leaves_state_untouched(self):
        """Test that a failed write applies nothing and is not retried."""
        storage = FailingStorage()
        service = PointsService(storage=storage)
        before = service.apply_delta(House.GRYFFINDOR, 20)
        storage.fail_writes = True

        with pytest.raises(PersistenceFailure):
            service.apply_delta(House.GRYFFINDOR, 30)
        with pytest.raises(PersistenceFailure):
            service.reset()

        after = service.current_state()
        assert after.totals == before.totals
        assert after.transactions == before.transactions
        assert after.version == before.version

    def test_concurrent_admins(self):
        """Test that threads hammering one house lose no updates."""
        service = PointsService(max_conflict_retries=1000)
        service.current_state()

        def award():
            for _ in range(10):
                service.apply_delta(House.RAVENCLAW, 1, "Concurrent")

        threads = [threading.Thread(target=award) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        state = service.current_state()
        assert state.totals[House.RAVENCLAW] == 80
        assert len(state.transactions) == 80
        assert_totals_match_log(state)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

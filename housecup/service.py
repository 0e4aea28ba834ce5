import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from uuid import uuid4

from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    GAME_ACTIONS,
    QUICK_POINT_AMOUNTS,
    House,
    LedgerState,
    PointTransaction,
    TransactionHistory,
    empty_totals,
)
from .notifier import HOUSE_POINTS_CHANNEL, ChangeNotifier
from .storage import InMemoryLedgerStorage

logger = logging.getLogger(__name__)

DEFAULT_AWARD_REASON = "Manual entry"
DEFAULT_REMOVAL_REASON = "Point deduction"
QUICK_BONUS_REASON = "Quick bonus"
QUICK_DEDUCTION_REASON = "Quick deduction"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_whole_number(amount) -> None:
    # bool is an int subclass
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValidationError(f"Points must be a whole number, got {amount!r}")


def parse_house(house: Union[House, str]) -> House:
    try:
        return House(house)
    except ValueError:
        raise ValidationError(f"Unknown house: {house!r}")


class PointsService:
    """Applies point changes to the house ledger.

    Every mutation reads the current row, derives the next one and writes it
    back guarded by the version it read. A stale write is re-read and
    recomputed up to ``max_conflict_retries`` times; any other storage error
    propagates with the stored row untouched.
    """

    def __init__(
        self,
        storage: Optional[InMemoryLedgerStorage] = None,
        notifier: Optional[ChangeNotifier] = None,
        max_conflict_retries: int = 3,
    ):
        self.storage = storage or InMemoryLedgerStorage()
        self.notifier = notifier
        self.max_conflict_retries = max_conflict_retries

    def current_state(self) -> LedgerState:
        record = self.storage.read_ledger()
        if record is None:
            return self._initialize()
        state = LedgerState.model_validate(record)
        derived = state.derived_totals()
        if derived != state.totals:
            logger.warning(
                "Stored totals %s drifted from ledger %s; using ledger totals",
                state.totals, derived,
            )
            state = state.model_copy(update={"totals": derived})
        return state

    def apply_delta(self, house: Union[House, str], amount: int, reason: Optional[str] = None) -> LedgerState:
        house = parse_house(house)
        _check_whole_number(amount)
        if amount == 0:
            raise ValidationError("Point change must be non-zero")
        reason = reason or DEFAULT_AWARD_REASON

        def change(state: LedgerState) -> LedgerState:
            return self._append(state, house, amount, reason)

        new_state = self._mutate(change)
        logger.info("Applied %+d to %s (%s)", amount, house.value, reason)
        return new_state

    def remove_capped(self, house: Union[House, str], amount: int, reason: Optional[str] = None) -> LedgerState:
        house = parse_house(house)
        _check_whole_number(amount)
        if amount <= 0:
            raise ValidationError("Points to remove must be positive")
        reason = reason or DEFAULT_REMOVAL_REASON

        def change(state: LedgerState) -> Optional[LedgerState]:
            removed = min(amount, max(state.totals[house], 0))
            if removed == 0:
                return None
            return self._append(state, house, -removed, reason)

        new_state = self._mutate(change)
        logger.info("Removed up to %d from %s (%s)", amount, house.value, reason)
        return new_state

    def apply_game_action(self, house: Union[House, str], action_key: str) -> LedgerState:
        action = GAME_ACTIONS.get(action_key)
        if action is None:
            raise NotFoundError(f"Unknown game action: {action_key!r}")
        if action.points < 0:
            return self.remove_capped(house, -action.points, action.reason)
        return self.apply_delta(house, action.points, action.reason)

    def apply_quick_points(self, house: Union[House, str], amount: int) -> LedgerState:
        if amount not in QUICK_POINT_AMOUNTS:
            raise ValidationError(f"{amount!r} is not a quick point amount")
        reason = QUICK_BONUS_REASON if amount > 0 else QUICK_DEDUCTION_REASON
        return self.apply_delta(house, amount, reason)

    def reset(self) -> LedgerState:
        def change(state: LedgerState) -> LedgerState:
            return LedgerState(
                totals=empty_totals(),
                transactions=[],
                last_updated=_now(),
                version=state.version + 1,
            )

        new_state = self._mutate(change)
        logger.warning("All house points reset; transaction log discarded")
        return new_state

    def recent_transactions(self, limit: int = 20) -> TransactionHistory:
        if limit < 1:
            raise ValidationError("History limit must be at least 1")
        state = self.current_state()
        # Newest append wins among equal timestamps.
        ordered = list(reversed(state.transactions))
        ordered.sort(key=lambda t: t.occurred_at, reverse=True)
        return TransactionHistory(transactions=ordered[:limit], total_count=len(ordered))

    def verify_totals(self) -> dict[House, int]:
        record = self.storage.read_ledger()
        if record is None:
            return {}
        state = LedgerState.model_validate(record)
        derived = state.derived_totals()
        return {
            house: state.totals[house] - derived[house]
            for house in House
            if state.totals[house] != derived[house]
        }

    def rebuild_totals(self) -> LedgerState:
        def change(state: LedgerState) -> LedgerState:
            return state.model_copy(update={"last_updated": _now(), "version": state.version + 1})

        return self._mutate(change)

    def _append(self, state: LedgerState, house: House, delta: int, reason: str) -> LedgerState:
        now = _now()
        transaction = PointTransaction(
            id=str(uuid4()),
            house=house,
            delta=delta,
            reason=reason,
            occurred_at=now,
        )
        totals = dict(state.totals)
        totals[house] += delta
        return LedgerState(
            totals=totals,
            transactions=[*state.transactions, transaction],
            last_updated=now,
            version=state.version + 1,
        )

    def _mutate(self, change: Callable[[LedgerState], Optional[LedgerState]]) -> LedgerState:
        attempt = 0
        while True:
            current = self.current_state()
            new_state = change(current)
            if new_state is None:
                return current
            try:
                record = self.storage.write_ledger(
                    new_state.model_dump(mode="json"), expected_version=current.version
                )
            except ConflictError:
                attempt += 1
                if attempt > self.max_conflict_retries:
                    logger.error("Giving up after %d conflicting ledger writes", attempt)
                    raise
                logger.info("Ledger changed underneath us; retrying (attempt %d)", attempt)
                continue
            self._notify()
            return LedgerState.model_validate(record)

    def _initialize(self) -> LedgerState:
        state = LedgerState(last_updated=_now())
        try:
            record = self.storage.write_ledger(state.model_dump(mode="json"), expected_version=None)
        except ConflictError:
            # Another writer created the row first.
            record = self.storage.read_ledger()
            if record is None:
                raise
        else:
            logger.info("Initialised empty house ledger")
        return LedgerState.model_validate(record)

    def _notify(self) -> None:
        if self.notifier is not None:
            self.notifier.publish(HOUSE_POINTS_CHANNEL)

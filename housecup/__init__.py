"""
House Cup Points Ledger

This module provides:
- Append-only point transactions per house
- Totals derived from the transaction log, with drift recovery
- Version-checked writes for concurrent admins
- Ranked house standings
- Change notification with a polling fallback for live displays
"""

from .errors import (
    HouseCupError,
    ValidationError,
    ConflictError,
    NotConfiguredError,
    PersistenceFailure,
    NotFoundError,
)
from .models import (
    House,
    PointTransaction,
    LedgerState,
    Leaderboard,
    Standing,
)
from .leaderboard import project_leaderboard
from .notifier import ChangeNotifier, LiveFeed
from .service import PointsService

__all__ = [
    "HouseCupError",
    "ValidationError",
    "ConflictError",
    "NotConfiguredError",
    "PersistenceFailure",
    "NotFoundError",
    "House",
    "PointTransaction",
    "LedgerState",
    "Leaderboard",
    "Standing",
    "project_leaderboard",
    "ChangeNotifier",
    "LiveFeed",
    "PointsService",
]

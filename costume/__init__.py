"""
Costume Contest Voting

Ranked ballots (up to three picks, weighted 3/2/1), one per voter identity,
tallied into a deterministic leaderboard.
"""

from .identity import ClientSignals, VoterIdentityResolver
from .models import (
    Rank,
    CostumeEntry,
    Ballot,
    BallotDraft,
    ContestResult,
    VoteSubmission,
    VotingSettings,
)
from .service import ContestService

__all__ = [
    "ClientSignals",
    "VoterIdentityResolver",
    "Rank",
    "CostumeEntry",
    "Ballot",
    "BallotDraft",
    "ContestResult",
    "VoteSubmission",
    "VotingSettings",
    "ContestService",
]

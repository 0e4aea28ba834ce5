from datetime import datetime
from typing import Mapping, Optional

from .models import HOUSE_COLORS, HOUSE_NAMES, House, Leaderboard, Standing

HOUSE_ORDER = {house: position for position, house in enumerate(House)}


def project_leaderboard(totals: Mapping[House, int], last_updated: Optional[datetime] = None) -> Leaderboard:
    """Rank houses by points.

    Equal points keep the fixed house order. Ranks are plain list positions,
    so tied houses still get distinct ranks. A leader is only reported once
    the top score is above zero.
    """
    ordered = sorted(House, key=lambda house: (-totals.get(house, 0), HOUSE_ORDER[house]))
    standings = [
        Standing(
            house=house,
            name=HOUSE_NAMES[house],
            color=HOUSE_COLORS[house],
            points=totals.get(house, 0),
            rank=position,
        )
        for position, house in enumerate(ordered, start=1)
    ]
    leader = standings[0]
    return Leaderboard(
        standings=standings,
        total_points=sum(standing.points for standing in standings),
        leading_house=leader.house if leader.points > 0 else None,
        last_updated=last_updated,
    )

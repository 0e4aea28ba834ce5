from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class House(str, Enum):
    GRYFFINDOR = "gryffindor"
    SLYTHERIN = "slytherin"
    HUFFLEPUFF = "hufflepuff"
    RAVENCLAW = "ravenclaw"


HOUSE_NAMES = {
    House.GRYFFINDOR: "Gryffindor",
    House.SLYTHERIN: "Slytherin",
    House.HUFFLEPUFF: "Hufflepuff",
    House.RAVENCLAW: "Ravenclaw",
}

HOUSE_COLORS = {
    House.GRYFFINDOR: "#740001",
    House.SLYTHERIN: "#1e4d13",
    House.HUFFLEPUFF: "#ecb939",
    House.RAVENCLAW: "#6d1bd9",
}

QUICK_POINT_AMOUNTS = (100, 50, 25, 10, -10, -25, -50, -100)


def empty_totals() -> dict[House, int]:
    return {house: 0 for house in House}


class GameAction(BaseModel):
    key: str
    label: str
    points: int
    reason: str


GAME_ACTIONS = {
    "beer_pong_win": GameAction(key="beer_pong_win", label="Beer Pong Win", points=50, reason="Beer Pong win"),
    "stack_cup_loss": GameAction(key="stack_cup_loss", label="Stack Cup Loss", points=-50, reason="Stack Cup loss"),
}


class PointTransaction(BaseModel):
    id: str
    house: House
    delta: int
    reason: str
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class LedgerState(BaseModel):
    totals: dict[House, int] = Field(default_factory=empty_totals)
    transactions: list[PointTransaction] = Field(default_factory=list)
    last_updated: datetime
    version: int = 0

    model_config = ConfigDict(from_attributes=True)

    def derived_totals(self) -> dict[House, int]:
        totals = empty_totals()
        for transaction in self.transactions:
            totals[transaction.house] += transaction.delta
        return totals


class PointChangeRequest(BaseModel):
    amount: int = Field(..., description="Signed point change; zero is rejected")
    reason: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": 50, "reason": "Won the quidditch match"}
    })


class PointRemovalRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Points to remove, capped at the current total")
    reason: Optional[str] = None


class TransactionHistory(BaseModel):
    transactions: list[PointTransaction]
    total_count: int


class Standing(BaseModel):
    house: House
    name: str
    color: str
    points: int
    rank: int


class Leaderboard(BaseModel):
    standings: list[Standing]
    total_points: int
    leading_house: Optional[House] = None
    last_updated: Optional[datetime] = None

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class Rank(str, Enum):
    FIRST = "first_choice"
    SECOND = "second_choice"
    THIRD = "third_choice"

    @property
    def weight(self) -> int:
        return RANK_WEIGHTS[self]


RANK_WEIGHTS = {Rank.FIRST: 3, Rank.SECOND: 2, Rank.THIRD: 1}


class CostumeEntry(BaseModel):
    id: int
    name: str
    image_url: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateEntryRequest(BaseModel):
    name: str = Field(..., min_length=1)
    image_base64: str = Field(..., description="Base64-encoded image bytes")
    filename: str = Field(default="costume.jpg")


class VotingSettings(BaseModel):
    enabled: bool = False
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VotingSettingsRequest(BaseModel):
    enabled: bool


class VoteSubmission(BaseModel):
    voter_id: str = Field(..., min_length=1)
    first_choice: Optional[int] = None
    second_choice: Optional[int] = None
    third_choice: Optional[int] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {"voter_id": "1x2k9a", "first_choice": 3, "second_choice": 1, "third_choice": None}
    })

    def choices(self) -> dict[Rank, int]:
        picked = {
            Rank.FIRST: self.first_choice,
            Rank.SECOND: self.second_choice,
            Rank.THIRD: self.third_choice,
        }
        return {rank: entry_id for rank, entry_id in picked.items() if entry_id is not None}


class Ballot(VoteSubmission):
    submitted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VoteResponse(BaseModel):
    ballot: Ballot
    message: str


class ContestResult(BaseModel):
    costume_id: int
    costume_name: str
    costume_image_url: str
    first_place_votes: int = 0
    second_place_votes: int = 0
    third_place_votes: int = 0
    total_points: int = 0


@dataclass
class BallotDraft:
    """A ballot being filled in before submission.

    An entry holds at most one rank. Picking the rank it already holds
    clears it; picking a different rank moves it there.
    """

    first_choice: Optional[int] = None
    second_choice: Optional[int] = None
    third_choice: Optional[int] = None

    def get(self, rank: Rank) -> Optional[int]:
        return getattr(self, rank.value)

    def toggle(self, entry_id: int, rank: Rank) -> None:
        if self.get(rank) == entry_id:
            setattr(self, rank.value, None)
            return
        for other in Rank:
            if self.get(other) == entry_id:
                setattr(self, other.value, None)
        setattr(self, rank.value, entry_id)

    def rank_of(self, entry_id: int) -> Optional[Rank]:
        for rank in Rank:
            if self.get(rank) == entry_id:
                return rank
        return None

    @property
    def is_empty(self) -> bool:
        return all(self.get(rank) is None for rank in Rank)

    def to_submission(self, voter_id: str) -> VoteSubmission:
        return VoteSubmission(
            voter_id=voter_id,
            first_choice=self.first_choice,
            second_choice=self.second_choice,
            third_choice=self.third_choice,
        )

import logging
from datetime import datetime, timezone
from typing import Optional

from housecup.errors import ConflictError, HouseCupError, NotFoundError, ValidationError
from housecup.notifier import (
    COSTUME_ENTRIES_CHANNEL,
    COSTUME_VOTES_CHANNEL,
    VOTING_SETTINGS_CHANNEL,
    ChangeNotifier,
)

from .models import (
    Ballot,
    ContestResult,
    CostumeEntry,
    Rank,
    VoteResponse,
    VoteSubmission,
    VotingSettings,
)
from .storage import DuplicateBallotError, InMemoryContestStorage, InMemoryImageStore

logger = logging.getLogger(__name__)


class VotingClosedError(HouseCupError):
    pass


class NoSelectionError(ValidationError):
    pass


class AlreadyVotedError(ConflictError):
    pass


class ContestService:
    def __init__(
        self,
        storage: Optional[InMemoryContestStorage] = None,
        image_store: Optional[InMemoryImageStore] = None,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.storage = storage or InMemoryContestStorage()
        self.image_store = image_store or InMemoryImageStore()
        self.notifier = notifier

    def add_entry(self, name: str, image: bytes, filename: str) -> CostumeEntry:
        name = name.strip()
        if not name:
            raise ValidationError("Costume name is required")
        image_url = self.image_store.upload(image, filename)
        entry = CostumeEntry(**self.storage.insert_entry(name, image_url))
        logger.info("Added costume entry %d (%s)", entry.id, entry.name)
        self._notify(COSTUME_ENTRIES_CHANNEL)
        return entry

    def list_entries(self) -> list[CostumeEntry]:
        entries = [CostumeEntry(**e) for e in self.storage.read_entries()]
        entries.sort(key=lambda e: (e.uploaded_at, e.id), reverse=True)
        return entries

    def delete_entry(self, entry_id: int) -> None:
        self.storage.delete_entry(entry_id)
        self._notify(COSTUME_ENTRIES_CHANNEL)

    def get_voting_settings(self) -> VotingSettings:
        record = self.storage.read_voting_settings()
        if record is None:
            return VotingSettings(enabled=False)
        return VotingSettings(**record)

    def set_voting_enabled(self, enabled: bool) -> VotingSettings:
        settings = VotingSettings(**self.storage.write_voting_settings(enabled))
        logger.info("Costume voting %s", "opened" if enabled else "closed")
        self._notify(VOTING_SETTINGS_CHANNEL)
        return settings

    def has_voted(self, voter_id: str) -> bool:
        return self.storage.get_ballot(voter_id) is not None

    def submit_vote(self, submission: VoteSubmission) -> VoteResponse:
        if not self.get_voting_settings().enabled:
            raise VotingClosedError("Costume voting is not open")

        choices = submission.choices()
        if not choices:
            raise NoSelectionError("Please select at least one costume to vote for")
        if self.has_voted(submission.voter_id):
            raise AlreadyVotedError("You have already voted!")

        if len(set(choices.values())) != len(choices):
            raise ValidationError("A costume can only hold one place on a ballot")
        for rank, entry_id in choices.items():
            if self.storage.get_entry(entry_id) is None:
                raise NotFoundError(f"Costume entry {entry_id} for {rank.value} not found")

        ballot = Ballot(**submission.model_dump(), submitted_at=datetime.now(timezone.utc))
        try:
            self.storage.insert_ballot(ballot.model_dump())
        except DuplicateBallotError:
            raise AlreadyVotedError("You have already voted!")

        logger.info("Recorded ballot for voter %s", submission.voter_id)
        self._notify(COSTUME_VOTES_CHANNEL)
        return VoteResponse(ballot=ballot, message="Vote submitted successfully")

    def tally(self) -> list[ContestResult]:
        """Weighted results for the entries that still exist.

        Ballot picks for deleted entries match nothing and drop out. Equal
        scores are ordered by entry id.
        """
        results = {
            entry.id: ContestResult(
                costume_id=entry.id,
                costume_name=entry.name,
                costume_image_url=entry.image_url,
            )
            for entry in self.list_entries()
        }
        for record in self.storage.read_ballots():
            ballot = Ballot(**record)
            for rank, entry_id in ballot.choices().items():
                result = results.get(entry_id)
                if result is None:
                    continue
                if rank is Rank.FIRST:
                    result.first_place_votes += 1
                elif rank is Rank.SECOND:
                    result.second_place_votes += 1
                else:
                    result.third_place_votes += 1
                result.total_points += rank.weight

        return sorted(results.values(), key=lambda r: (-r.total_points, r.costume_id))

    def total_votes(self) -> int:
        return self.storage.count_ballots()

    def _notify(self, channel: str) -> None:
        if self.notifier is not None:
            self.notifier.publish(channel)

import copy
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from housecup.errors import ConflictError, NotConfiguredError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class DuplicateBallotError(ConflictError):
    pass


class InMemoryContestStorage:
    """Costume entries, ballots and the voting switch.

    Ballots are keyed by voter id and the insert checks the key under the
    same lock that writes it, so two inserts for one voter can never both
    land.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[int, dict] = {}
        self._ballots: dict[str, dict] = {}
        self._voting_settings: Optional[dict] = None
        self._next_entry_id = 1

    def read_entries(self) -> list[dict]:
        with self._lock:
            return copy.deepcopy(list(self._entries.values()))

    def get_entry(self, entry_id: int) -> Optional[dict]:
        with self._lock:
            return copy.deepcopy(self._entries.get(entry_id))

    def insert_entry(self, name: str, image_url: str) -> dict:
        with self._lock:
            record = {
                "id": self._next_entry_id,
                "name": name,
                "image_url": image_url,
                "uploaded_at": datetime.now(timezone.utc),
            }
            self._entries[record["id"]] = record
            self._next_entry_id += 1
            return copy.deepcopy(record)

    def delete_entry(self, entry_id: int) -> None:
        with self._lock:
            if self._entries.pop(entry_id, None) is None:
                raise NotFoundError(f"Costume entry {entry_id} not found")
        logger.info("Deleted costume entry %d", entry_id)

    def read_ballots(self) -> list[dict]:
        with self._lock:
            return copy.deepcopy(list(self._ballots.values()))

    def get_ballot(self, voter_id: str) -> Optional[dict]:
        with self._lock:
            return copy.deepcopy(self._ballots.get(voter_id))

    def insert_ballot(self, record: dict) -> dict:
        with self._lock:
            if record["voter_id"] in self._ballots:
                raise DuplicateBallotError(f"Ballot already recorded for voter {record['voter_id']}")
            self._ballots[record["voter_id"]] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def count_ballots(self) -> int:
        with self._lock:
            return len(self._ballots)

    def read_voting_settings(self) -> Optional[dict]:
        with self._lock:
            return copy.deepcopy(self._voting_settings)

    def write_voting_settings(self, enabled: bool) -> dict:
        with self._lock:
            self._voting_settings = {"enabled": enabled, "last_updated": datetime.now(timezone.utc)}
            return copy.deepcopy(self._voting_settings)


class InMemoryImageStore:
    def __init__(self, base_url: str = "memory://costume-images"):
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}

    def upload(self, data: bytes, filename: str) -> str:
        if not data:
            raise ValidationError("Image upload is empty")
        extension = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        key = f"{int(time.time() * 1000)}-{uuid4().hex[:10]}.{extension}"
        self.objects[key] = bytes(data)
        return f"{self.base_url}/{key}"


def create_contest_storage(backend: str) -> InMemoryContestStorage:
    if backend == "memory":
        return InMemoryContestStorage()
    raise NotConfiguredError(f"Unsupported storage backend: {backend!r}")

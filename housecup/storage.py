import copy
import logging
import threading
from typing import Optional

from .errors import ConflictError, NotConfiguredError

logger = logging.getLogger(__name__)


class InMemoryLedgerStorage:
    """Single-row ledger store with version-checked writes.

    The row holds the totals and the transaction log together, so a write
    replaces both or neither. ``expected_version=None`` creates the row and
    fails if it already exists.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._row: Optional[dict] = None

    def read_ledger(self) -> Optional[dict]:
        with self._lock:
            return copy.deepcopy(self._row)

    def write_ledger(self, record: dict, expected_version: Optional[int]) -> dict:
        with self._lock:
            if expected_version is None:
                if self._row is not None:
                    raise ConflictError("Ledger already initialised")
            elif self._row is None or self._row["version"] != expected_version:
                found = None if self._row is None else self._row["version"]
                raise ConflictError(
                    f"Ledger version mismatch: expected {expected_version}, found {found}"
                )
            self._row = copy.deepcopy(record)
            logger.debug("Ledger row written at version %s", record["version"])
            return copy.deepcopy(self._row)


def create_ledger_storage(backend: str) -> InMemoryLedgerStorage:
    if backend == "memory":
        return InMemoryLedgerStorage()
    raise NotConfiguredError(f"Unsupported storage backend: {backend!r}")

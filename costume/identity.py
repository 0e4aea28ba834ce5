"""
Voter identity for ballot deduplication.

The identity is a hash of weak browser signals cached in client-local
storage. It is stable on one device and browser profile, differs across
devices, can collide between similar devices, and is lost when local storage
is cleared. It caps ballots per device on a best-effort basis and is not an
authentication mechanism. Callers depend only on ``resolve()`` so another
identity scheme can replace it without touching the vote tally.
"""

import logging
import threading
from typing import Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

VOTER_ID_KEY = "costume_voter_id"
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


class LocalStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryLocalStore:
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._lock = threading.Lock()
        self._values = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value


class ClientSignals(BaseModel):
    user_agent: str = ""
    language: str = ""
    screen_width: int = 0
    screen_height: int = 0
    timezone_offset: int = 0
    canvas_data: str = ""

    def fingerprint(self) -> str:
        return "|".join([
            self.user_agent,
            self.language,
            f"{self.screen_width}x{self.screen_height}",
            str(self.timezone_offset),
            self.canvas_data,
        ])


def rolling_hash(text: str) -> int:
    """31-multiplier string hash folded into a signed 32-bit accumulator.

    Characters are taken as UTF-16 code units so the result matches what a
    browser computes for the same string.
    """
    encoded = text.encode("utf-16-le")
    value = 0
    for index in range(0, len(encoded), 2):
        code_unit = encoded[index] | (encoded[index + 1] << 8)
        value = (value * 31 + code_unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def voter_id_from_signals(signals: ClientSignals) -> str:
    return to_base36(abs(rolling_hash(signals.fingerprint())))


class VoterIdentityResolver:
    def __init__(self, local_store: LocalStore, signals: ClientSignals):
        self.local_store = local_store
        self.signals = signals

    def resolve(self) -> str:
        voter_id = self.local_store.get(VOTER_ID_KEY)
        if voter_id:
            return voter_id
        voter_id = voter_id_from_signals(self.signals)
        self.local_store.set(VOTER_ID_KEY, voter_id)
        logger.debug("Generated voter id %s", voter_id)
        return voter_id

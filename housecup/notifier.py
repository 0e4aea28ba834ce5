"""
Change notification for live displays.

A published change carries no payload: subscribers treat it as a cue to
re-read authoritative state. ``LiveFeed`` pairs a subscription with a
periodic pull so a display stays within one poll interval of the truth even
when no signal arrives.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

HOUSE_POINTS_CHANNEL = "house_points"
COSTUME_ENTRIES_CHANNEL = "costume_entries"
COSTUME_VOTES_CHANNEL = "costume_votes"
VOTING_SETTINGS_CHANNEL = "voting_settings"

DEFAULT_POLL_INTERVAL = 10.0


class ChangeNotifier:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Callable[[], None]]] = {}

    def subscribe(self, channel: str, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(channel, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(channel, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, channel: str) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(channel, []))
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Subscriber on %r failed", channel)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))


class LiveFeed:
    def __init__(
        self,
        fetch: Callable[[], object],
        on_update: Callable[[object], None],
        notifier: Optional[ChangeNotifier] = None,
        channel: str = HOUSE_POINTS_CHANNEL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.fetch = fetch
        self.on_update = on_update
        self.notifier = notifier
        self.channel = channel
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        if self.notifier is not None:
            self._unsubscribe = self.notifier.subscribe(self.channel, self.refresh)
        self._thread = threading.Thread(target=self._poll, name=f"livefeed-{self.channel}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._thread is not None:
            self._thread.join(timeout=self.poll_interval + 1)
            self._thread = None

    def refresh(self) -> bool:
        try:
            data = self.fetch()
        except Exception:
            logger.exception("Polling error on %r", self.channel)
            return False
        try:
            self.on_update(data)
        except Exception:
            logger.exception("Display update failed on %r", self.channel)
            return False
        return True

    def _poll(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.refresh()

"""Persist and restore the reading cursor and listening time per (user, document)."""

import logging
import time

from narrated_reader.constants import PERSIST_INTERVAL_SECONDS
from narrated_reader.errors import PersistenceFailure
from narrated_reader.models import ListeningSession

logger = logging.getLogger(__name__)


class SessionTracker:
    """Records cursor moves for one (user, document) pair.

    Writes are last-write-wins and happen at most once per interval unless
    forced. total_time accumulates measured wall-clock seconds between
    start_clock() and stop_clock(), so paused time is never counted. A
    failed write is logged and dropped; the next write carries the latest
    position and any unsaved time.
    """

    def __init__(
        self,
        store,
        user_id: str,
        document_id: str,
        interval: float = PERSIST_INTERVAL_SECONDS,
        clock=time.monotonic,
    ):
        self.store = store
        self.user_id = user_id
        self.document_id = document_id
        self.interval = interval
        self._clock = clock
        self.session: ListeningSession | None = None
        self.position = 0
        self._unsaved_time = 0.0
        self._clock_started: float | None = None
        self._last_write: float | None = None

    def restore(self) -> int:
        """Load the stored cursor, or 0 when this document was never played."""
        try:
            self.session = self.store.get_session(self.user_id, self.document_id)
        except (PersistenceFailure, OSError) as e:
            logger.warning("Could not load session for %s: %s", self.document_id, e)
            self.session = None
        self.position = self.session.last_position if self.session else 0
        return self.position

    @property
    def total_time(self) -> float:
        saved = self.session.total_time if self.session else 0.0
        running = self._clock() - self._clock_started if self._clock_started is not None else 0.0
        return saved + self._unsaved_time + running

    def start_clock(self) -> None:
        if self._clock_started is None:
            self._clock_started = self._clock()

    def stop_clock(self) -> None:
        self._accumulate()
        self._clock_started = None

    def _accumulate(self) -> None:
        if self._clock_started is None:
            return
        now = self._clock()
        self._unsaved_time += now - self._clock_started
        self._clock_started = now

    def record_position(self, word_index: int, force: bool = False) -> bool:
        """Remember word_index and persist it if due. Returns True if written."""
        self.position = word_index
        if not force and self._last_write is not None:
            if self._clock() - self._last_write < self.interval:
                return False
        return self.flush()

    def flush(self) -> bool:
        self._accumulate()
        saved = self.session.total_time if self.session else 0.0
        updated = ListeningSession(
            user_id=self.user_id,
            document_id=self.document_id,
            last_position=self.position,
            total_time=saved + self._unsaved_time,
        )
        try:
            self.store.upsert_session(updated)
        except (PersistenceFailure, OSError) as e:
            logger.warning("Could not persist position %d for %s: %s", self.position, self.document_id, e)
            return False

        self.session = updated
        self._unsaved_time = 0.0
        self._last_write = self._clock()
        logger.debug("Persisted position %d for %s", self.position, self.document_id)
        return True

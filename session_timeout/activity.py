# session_timeout/activity.py
import logging
from typing import Callable, Optional

from config.session_config import ACTIVITY_EVENTS, ACTIVITY_THROTTLE_MS
from session_timeout.events import UNLOAD_EVENT, PageEvents
from session_timeout.policy import now_ms
from session_timeout.store import SessionStore

logger = logging.getLogger(__name__)


class ActivityTracker:
    """
    Records user activity into the Session Store.

    Activity is always recorded, exam route or not, so idle accounting is
    correct as soon as the user leaves the exam.
    """

    def __init__(self, store: SessionStore, events: PageEvents,
                 clock: Callable[[], int] = now_ms, throttle_ms: int = ACTIVITY_THROTTLE_MS):
        self.store = store
        self.events = events
        self.clock = clock
        self.throttle_ms = throttle_ms
        self._last_accepted: Optional[int] = None
        self._listening = False

    @property
    def listening(self) -> bool:
        return self._listening

    def start(self) -> None:
        if self._listening:
            return
        for name in ACTIVITY_EVENTS:
            self.events.connect(name, self.handle_activity)
        self.events.connect(UNLOAD_EVENT, self.handle_unload)
        self._listening = True

        self._last_accepted = self.clock()
        self.store.touch()

    def stop(self) -> None:
        if not self._listening:
            return
        for name in ACTIVITY_EVENTS:
            self.events.disconnect(name, self.handle_activity)
        self.events.disconnect(UNLOAD_EVENT, self.handle_unload)
        self._listening = False

    def handle_activity(self, sender=None, **kwargs) -> bool:
        now = self.clock()
        if self._last_accepted is not None and now - self._last_accepted < self.throttle_ms:
            return False
        self._last_accepted = now
        self.store.touch()
        return True

    def handle_unload(self, sender=None, **kwargs) -> None:
        self._last_accepted = self.clock()
        self.store.touch()

# session_timeout/monitor.py
"""
Timeout Monitor.

Runs ``check()`` once on start, every TIMEOUT_CHECK_INTERVAL_SECONDS, and
whenever the page becomes visible again. The first positive verdict moves the
monitor from MONITORING to TERMINATING; that state is terminal, so the
termination path runs at most once no matter how many triggers race.
"""
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError

from config.session_config import TIMEOUT_CHECK_INTERVAL_SECONDS
from session_timeout.events import VISIBILITY_EVENT
from session_timeout.guard import is_exam_route
from session_timeout.policy import Role, TerminationReason, evaluate_session, now_ms

logger = logging.getLogger(__name__)


class MonitorState(Enum):
    MONITORING = "monitoring"
    TERMINATING = "terminating"


class TimeoutMonitor:
    JOB_ID = "timeout-check"

    def __init__(self, role: Role, store, navigator, terminator, events=None, scheduler=None,
                 clock: Callable[[], int] = now_ms,
                 interval_seconds: float = TIMEOUT_CHECK_INTERVAL_SECONDS):
        self.role = Role(role)
        self.store = store
        self.navigator = navigator
        self.terminator = terminator
        self.events = events
        self.scheduler = scheduler
        self.clock = clock
        self.interval_seconds = interval_seconds

        self._state = MonitorState.MONITORING
        self._lock = threading.Lock()
        self._job = None
        self._watching_visibility = False

    @property
    def state(self) -> MonitorState:
        return self._state

    def start(self) -> None:
        if self.scheduler is not None and self._job is None:
            self._job = self.scheduler.add_interval(self.check, self.interval_seconds, self.JOB_ID)
        if self.events is not None and not self._watching_visibility:
            self.events.connect(VISIBILITY_EVENT, self.handle_visibility_change)
            self._watching_visibility = True
        self.check()

    def stop(self) -> None:
        self._cancel_job()
        if self.events is not None and self._watching_visibility:
            self.events.disconnect(VISIBILITY_EVENT, self.handle_visibility_change)
            self._watching_visibility = False

    def handle_visibility_change(self, sender=None, state: str = "visible", **kwargs) -> None:
        if state == "visible":
            self.check()

    def check(self) -> Optional[TerminationReason]:
        """Evaluate the stored clock; returns the reason when this call terminated the session."""
        if self._state is not MonitorState.MONITORING:
            return None

        clock = self.store.read()
        decision = evaluate_session(
            clock.last_active_at,
            clock.session_start_at,
            self.role,
            exam_in_progress=is_exam_route(self.navigator.path),
            now=self.clock(),
        )
        if not decision.terminate:
            return None

        if not self.terminate(decision.reason):
            return None
        return decision.reason

    def terminate(self, reason: TerminationReason) -> bool:
        """Hand over to Session Termination; False if termination already started."""
        if not self._enter_terminating():
            return False
        self._cancel_job()
        self.terminator.terminate(reason)
        return True

    def _enter_terminating(self) -> bool:
        with self._lock:
            if self._state is not MonitorState.MONITORING:
                return False
            self._state = MonitorState.TERMINATING
            return True

    def _cancel_job(self) -> None:
        job, self._job = self._job, None
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError as e:
            logger.debug("Timeout check job already gone: %s", e)

# session_timeout/controller.py
"""
SessionTimeoutController

One instance per mounted protected layout. It owns every timer and listener
of the session core and tears all of them down on unmount:

- Session Store      (shared clock, storage + cookie mirror)
- Activity Tracker   (records activity, never gated by the exam guard)
- Timeout Monitor    (10 s checks, visibility re-checks, exam-safe rules)
- Session Termination
- Active-Exam Banner (students only)

Usage:
    client = ApiClient()
    store = SessionStore(FileStorage("~/.exam/session.json"), CookieBackend(client.cookies))
    with SessionTimeoutController("student", store, client, Navigator("/student")) as ctl:
        ctl.events.dispatch("click")
"""
import logging
from typing import Callable, Optional

from session_timeout.activity import ActivityTracker
from session_timeout.banner import ActiveExamBanner
from session_timeout.events import PageEvents
from session_timeout.monitor import TimeoutMonitor
from session_timeout.navigation import Navigator
from session_timeout.policy import Role, TerminationReason, now_ms, remaining_idle_time
from session_timeout.scheduler import IntervalScheduler
from session_timeout.termination import SessionTerminator

logger = logging.getLogger(__name__)


class SessionTimeoutController:
    def __init__(self, role, store, auth, navigator: Optional[Navigator] = None,
                 events: Optional[PageEvents] = None, scheduler=None,
                 fetch_active_attempt: Optional[Callable[[], Optional[dict]]] = None,
                 clock: Callable[[], int] = now_ms):
        self.role = Role.from_profile(role)
        if self.role is None:
            raise ValueError(f"unsupported session role: {role!r}")

        self.store = store
        self.auth = auth
        self.navigator = navigator or Navigator()
        self.events = events or PageEvents()
        self.scheduler = scheduler or IntervalScheduler(name=f"session-{self.role.value}")
        self.clock = clock

        if fetch_active_attempt is None and hasattr(auth, "get_active_attempt"):
            fetch_active_attempt = auth.get_active_attempt

        self.terminator = SessionTerminator(
            store, auth, self.navigator, on_terminated=self._handle_terminated
        )
        self.tracker = ActivityTracker(store, self.events, clock=clock)
        self.monitor = TimeoutMonitor(
            self.role, store, self.navigator, self.terminator,
            events=self.events, scheduler=self.scheduler, clock=clock,
        )
        self.banner = None
        if self.role is Role.STUDENT and fetch_active_attempt is not None:
            self.banner = ActiveExamBanner(
                fetch_active_attempt, self.navigator, scheduler=self.scheduler, clock=clock
            )

        self.mounted = False
        self.terminated_reason: Optional[TerminationReason] = None

    def mount(self) -> "SessionTimeoutController":
        if self.mounted:
            return self
        self.mounted = True
        self.scheduler.start()
        self.store.init(self.role)
        self.tracker.start()
        # the initial check may terminate and unmount straight away
        self.monitor.start()
        if self.mounted and self.banner is not None:
            self.banner.start()
        logger.info("Session timeout mounted (role=%s, path=%s)", self.role.value, self.navigator.path)
        return self

    def unmount(self) -> None:
        if not self.mounted:
            return
        self.mounted = False
        self.tracker.stop()
        self.monitor.stop()
        if self.banner is not None:
            self.banner.stop()
        self.scheduler.shutdown()
        logger.info("Session timeout unmounted (role=%s)", self.role.value)

    def remaining_idle_time(self) -> int:
        return remaining_idle_time(self.store.read().last_active_at, self.role, self.clock())

    def force_logout(self, reason: TerminationReason = TerminationReason.IDLE) -> None:
        self.monitor.terminate(reason)

    def _handle_terminated(self, reason: TerminationReason) -> None:
        self.terminated_reason = reason
        self.unmount()

    def __enter__(self) -> "SessionTimeoutController":
        return self.mount()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unmount()

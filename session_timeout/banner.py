# session_timeout/banner.py
"""
Active-Exam Resume Banner.

Polls for the student's in-progress attempt and keeps a local one-second
countdown between polls. Purely a display surface: it never feeds back into
the timeout decision. Polling follows navigation: it pauses inside the exam
flow and resumes once the student leaves it.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError

from config.session_config import (
    COUNTDOWN_INTERVAL_SECONDS,
    EXAM_POLL_INTERVAL_SECONDS,
    EXAM_URGENT_SECONDS,
    LOGIN_PATH,
)
from session_timeout.attempts import ExamAttemptWindow
from session_timeout.guard import is_exam_flow_route
from session_timeout.policy import now_ms

logger = logging.getLogger(__name__)


def format_countdown(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


@dataclass
class BannerView:
    attempt_id: str
    exam_id: str
    exam_title: str
    remaining_seconds: int
    countdown: str
    urgent: bool


class ActiveExamBanner:
    POLL_JOB_ID = "exam-poll"
    COUNTDOWN_JOB_ID = "exam-countdown"

    def __init__(self, fetch_active_attempt: Callable[[], Optional[dict]], navigator, scheduler=None,
                 clock: Callable[[], int] = now_ms):
        self.fetch_active_attempt = fetch_active_attempt
        self.navigator = navigator
        self.scheduler = scheduler
        self.clock = clock

        self.active: Optional[ExamAttemptWindow] = None
        self.remaining_seconds = 0
        self.dismissed = False

        self._lock = threading.Lock()
        self._poll_job = None
        self._countdown_job = None
        self._started = False

    # ----------------------------
    # lifecycle
    # ----------------------------
    def start(self) -> None:
        if not self._started:
            self._started = True
            self.navigator.navigated.connect(self.handle_navigation, weak=False)
        if self._should_poll():
            self._start_polling()

    def stop(self) -> None:
        if self._started:
            self._started = False
            self.navigator.navigated.disconnect(self.handle_navigation)
        self._stop_polling()

    def handle_navigation(self, sender=None, url=None, **kwargs) -> None:
        if self._should_poll():
            self._start_polling()
        else:
            self._stop_polling()

    def _start_polling(self) -> None:
        if self.scheduler is not None:
            with self._lock:
                if self._poll_job is None:
                    self._poll_job = self.scheduler.add_interval(
                        self.poll, EXAM_POLL_INTERVAL_SECONDS, self.POLL_JOB_ID
                    )
        self.poll()

    def _stop_polling(self) -> None:
        self._stop_countdown()
        with self._lock:
            job, self._poll_job = self._poll_job, None
        self._cancel(job, "Exam poll")

    # ----------------------------
    # polling + countdown
    # ----------------------------
    def poll(self) -> Optional[ExamAttemptWindow]:
        if self._on_exam_page():
            return None
        try:
            row = self.fetch_active_attempt()
        except Exception as e:
            logger.error("Error checking active exam: %s", e)
            return self.active

        window = ExamAttemptWindow.from_row(row)
        remaining = window.remaining_seconds(self.clock()) if window else 0

        with self._lock:
            if window is None or remaining <= 0:
                self.active = None
                self.remaining_seconds = 0
            else:
                self.active = window
                self.remaining_seconds = remaining
                self.dismissed = False

        if self.active is None:
            self._stop_countdown()
        else:
            self._start_countdown()
        return self.active

    def tick(self) -> int:
        with self._lock:
            if self.active is None or self.remaining_seconds <= 0:
                return 0
            if self.remaining_seconds <= 1:
                self.active = None
                self.remaining_seconds = 0
            else:
                self.remaining_seconds -= 1
            remaining = self.remaining_seconds

        if remaining == 0:
            self._stop_countdown()
        return remaining

    def _start_countdown(self) -> None:
        if self.scheduler is None:
            return
        with self._lock:
            if self._countdown_job is None:
                self._countdown_job = self.scheduler.add_interval(
                    self.tick, COUNTDOWN_INTERVAL_SECONDS, self.COUNTDOWN_JOB_ID
                )

    def _stop_countdown(self) -> None:
        with self._lock:
            job, self._countdown_job = self._countdown_job, None
        self._cancel(job, "Exam countdown")

    @staticmethod
    def _cancel(job, label: str) -> None:
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError as e:
            logger.debug("%s job already gone: %s", label, e)

    # ----------------------------
    # user actions + view
    # ----------------------------
    def resume(self) -> Optional[str]:
        if self.active is None:
            return None
        url = f"/exam/prepare/{self.active.exam_id}"
        self.navigator.push(url)
        return url

    def dismiss(self) -> None:
        self.dismissed = True

    def render(self) -> Optional[BannerView]:
        if self._on_exam_page() or self.dismissed:
            return None
        with self._lock:
            active, remaining = self.active, self.remaining_seconds
        if active is None:
            return None
        return BannerView(
            attempt_id=active.attempt_id,
            exam_id=active.exam_id,
            exam_title=active.exam_title,
            remaining_seconds=remaining,
            countdown=format_countdown(remaining),
            urgent=remaining < EXAM_URGENT_SECONDS,
        )

    def _on_exam_page(self) -> bool:
        return is_exam_flow_route(self.navigator.path)

    def _should_poll(self) -> bool:
        return not self._on_exam_page() and self.navigator.path != LOGIN_PATH

# session_timeout/scheduler.py
"""
Interval jobs for one mounted controller. Wraps an APScheduler
BackgroundScheduler so each controller starts and shuts down its own timers.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class IntervalScheduler:
    def __init__(self, name: str = "session-timeout"):
        self.name = name
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        if self._scheduler is not None:
            logger.warning("Scheduler %s already running", self.name)
            return
        self._scheduler = BackgroundScheduler(daemon=True)
        self._scheduler.start()
        logger.debug("Scheduler %s started", self.name)

    def add_interval(self, func, seconds: float, job_id: str):
        """Run ``func`` every ``seconds``; returns a job handle with ``remove()``."""
        if self._scheduler is None:
            raise RuntimeError("Scheduler is not running")
        return self._scheduler.add_job(
            func=func,
            trigger="interval",
            seconds=seconds,
            id=f"{self.name}:{job_id}",
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        # wait=False: shutdown may be requested from inside a running job
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.debug("Scheduler %s stopped", self.name)

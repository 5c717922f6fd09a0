# otp_cleanup.py - Background scheduler that retires stale admin OTP codes
"""
- Runs every 30 minutes
- Marks unused codes past their expiry as used, so they can never verify
"""
import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler

import persistence
from config.session_config import OTP_CLEANUP_INTERVAL_MINUTES

logger = logging.getLogger(__name__)

scheduler = None


def cleanup_expired_otps() -> int:
    """Retire expired codes; returns how many were retired."""
    try:
        retired = persistence.expire_stale_otps()
    except Exception as e:
        logger.exception("Error cleaning up expired OTPs: %s", e)
        return 0
    if retired:
        logger.info("Retired %d expired OTP code(s)", retired)
    return retired


def start_cleanup_scheduler():
    """Start the background scheduler for OTP cleanup"""
    global scheduler

    if scheduler is not None:
        logger.warning("OTP cleanup scheduler already running")
        return scheduler

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        func=cleanup_expired_otps,
        trigger="interval",
        minutes=OTP_CLEANUP_INTERVAL_MINUTES,
        id="otp_cleanup_job",
        name="Admin OTP Cleanup",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("OTP cleanup scheduler started (every %d mins)", OTP_CLEANUP_INTERVAL_MINUTES)

    # Shut down scheduler when app stops
    atexit.register(stop_cleanup_scheduler)
    return scheduler


def stop_cleanup_scheduler():
    """Stop the background scheduler"""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("OTP cleanup scheduler stopped")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    cleanup_expired_otps()

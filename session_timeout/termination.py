# session_timeout/termination.py
import logging
from typing import Callable, Optional
from urllib.parse import urlencode

from config.session_config import LOGIN_PATH
from session_timeout.policy import TerminationReason

logger = logging.getLogger(__name__)


def build_expired_login_url(reason: TerminationReason, login_path: str = LOGIN_PATH) -> str:
    """/login?expired=true&reason=idle"""
    reason = TerminationReason(reason)
    return f"{login_path}?{urlencode({'expired': 'true', 'reason': reason.value})}"


class SessionTerminator:
    """
    Ends the session once a timeout has been decided:
    clear local state, sign out remotely, redirect to login.
    """

    def __init__(self, store, auth, navigator, login_path: str = LOGIN_PATH,
                 on_terminated: Optional[Callable[[TerminationReason], None]] = None):
        self.store = store
        self.auth = auth
        self.navigator = navigator
        self.login_path = login_path
        self.on_terminated = on_terminated

    def terminate(self, reason: TerminationReason) -> str:
        reason = TerminationReason(reason)
        logger.info("Terminating session (reason=%s)", reason.value)

        # local state is cleared even when sign-out fails
        self.store.clear()

        try:
            error = self.auth.sign_out()
            if error:
                logger.error("Sign-out during session termination failed: %s", error)
        except Exception as e:
            logger.error("Sign-out during session termination raised: %s", e)

        url = build_expired_login_url(reason, self.login_path)
        self.navigator.push(url)

        if self.on_terminated is not None:
            self.on_terminated(reason)
        return url

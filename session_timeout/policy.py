# session_timeout/policy.py
"""
Pure timeout rules. Every function takes epoch-millisecond timestamps and an
optional ``now`` so callers (and tests) can pin the clock.
"""
import time
from enum import Enum
from typing import NamedTuple, Optional

from config.session_config import ABSOLUTE_TIMEOUT_MS, IDLE_TIMEOUT_MS


class Role(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"

    @classmethod
    def from_profile(cls, value) -> Optional["Role"]:
        """Map a stored profile role to a session role. 'teacher' counts as admin."""
        if isinstance(value, Role):
            return value
        if value in ("admin", "teacher"):
            return cls.ADMIN
        if value == "student":
            return cls.STUDENT
        return None


class TerminationReason(str, Enum):
    IDLE = "idle"
    ABSOLUTE = "absolute"


class TerminationDecision(NamedTuple):
    terminate: bool
    reason: Optional[TerminationReason] = None


KEEP_SESSION = TerminationDecision(False, None)


def now_ms() -> int:
    return int(time.time() * 1000)


def idle_timeout(role: Role) -> int:
    return IDLE_TIMEOUT_MS.get(Role(role).value, IDLE_TIMEOUT_MS["student"])


def absolute_timeout(role: Role) -> Optional[int]:
    return ABSOLUTE_TIMEOUT_MS.get(Role(role).value)


def is_idle_exceeded(last_active_at: Optional[int], role: Role, now: Optional[int] = None) -> bool:
    # No recorded activity yet: cannot be idle-expired
    if last_active_at is None:
        return False
    now = now_ms() if now is None else now
    return now - last_active_at > idle_timeout(role)


def is_absolute_exceeded(session_start_at: Optional[int], role: Role, now: Optional[int] = None) -> bool:
    timeout = absolute_timeout(role)
    if timeout is None or session_start_at is None:
        return False
    now = now_ms() if now is None else now
    return now - session_start_at > timeout


def should_terminate(last_active_at: Optional[int], session_start_at: Optional[int],
                     role: Role, now: Optional[int] = None) -> TerminationDecision:
    """Absolute timeout wins when both thresholds are exceeded."""
    now = now_ms() if now is None else now
    if is_absolute_exceeded(session_start_at, role, now):
        return TerminationDecision(True, TerminationReason.ABSOLUTE)
    if is_idle_exceeded(last_active_at, role, now):
        return TerminationDecision(True, TerminationReason.IDLE)
    return KEEP_SESSION


def evaluate_session(last_active_at: Optional[int], session_start_at: Optional[int],
                     role: Role, exam_in_progress: bool, now: Optional[int] = None) -> TerminationDecision:
    """
    Exam-safe variant of should_terminate.

    While an exam is in progress the idle check is suppressed for everyone;
    admins keep their absolute cap, students are never terminated.
    """
    role = Role(role)
    if not exam_in_progress:
        return should_terminate(last_active_at, session_start_at, role, now)
    if role is Role.ADMIN and is_absolute_exceeded(session_start_at, role, now):
        return TerminationDecision(True, TerminationReason.ABSOLUTE)
    return KEEP_SESSION


def remaining_idle_time(last_active_at: Optional[int], role: Role, now: Optional[int] = None) -> int:
    timeout = idle_timeout(role)
    if last_active_at is None:
        return timeout
    now = now_ms() if now is None else now
    return max(0, timeout - (now - last_active_at))


def format_time_remaining(ms: int) -> str:
    """e.g. 5400000 -> '1 h 30 min', 300000 -> '5 min', 42000 -> '42 s'."""
    seconds = max(0, int(ms)) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours} h {minutes % 60} min"
    if minutes > 0:
        return f"{minutes} min"
    return f"{seconds} s"

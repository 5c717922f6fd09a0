# session_timeout/attempts.py
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from session_timeout.policy import now_ms

STATUS_IN_PROGRESS = "in_progress"


def to_epoch_ms(value: Any) -> Optional[int]:
    """Accepts datetimes, ISO-8601 strings (with or without 'Z') and epoch ms."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return None


def remaining_exam_seconds(start_time_ms: int, duration_minutes: int, now: Optional[int] = None) -> int:
    now = now_ms() if now is None else now
    elapsed_seconds = (now - start_time_ms) // 1000
    return max(0, int(duration_minutes) * 60 - elapsed_seconds)


@dataclass
class ExamAttemptWindow:
    attempt_id: str
    exam_id: str
    start_time: int
    duration_minutes: int
    status: str = STATUS_IN_PROGRESS
    exam_title: str = ""

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> Optional["ExamAttemptWindow"]:
        """Build from an attempt row joined with its exam; None when unusable."""
        if not row:
            return None
        start = to_epoch_ms(row.get("start_time"))
        duration = row.get("duration")
        if duration is None:
            duration = row.get("duration_minutes")
        if start is None or duration is None:
            return None
        return cls(
            attempt_id=str(row.get("attempt_id") or row.get("id")),
            exam_id=str(row.get("exam_id")),
            start_time=start,
            duration_minutes=int(duration),
            status=row.get("status") or STATUS_IN_PROGRESS,
            exam_title=row.get("exam_title") or row.get("title") or "",
        )

    def remaining_seconds(self, now: Optional[int] = None) -> int:
        if self.status != STATUS_IN_PROGRESS:
            return 0
        return remaining_exam_seconds(self.start_time, self.duration_minutes, now)

    def is_running(self, now: Optional[int] = None) -> bool:
        return self.remaining_seconds(now) > 0

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "exam_id": self.exam_id,
            "exam_title": self.exam_title,
            "start_time": datetime.fromtimestamp(self.start_time / 1000, tz=timezone.utc).isoformat(),
            "duration": self.duration_minutes,
            "status": self.status,
            "remaining_seconds": self.remaining_seconds(now),
        }

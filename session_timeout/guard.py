# session_timeout/guard.py
from typing import Optional
from urllib.parse import urlsplit

from config.session_config import (
    EXAM_PREPARE_PREFIX,
    EXAM_ROUTE_PREFIX,
    LEGACY_EXAM_ROUTE_PREFIX,
)


def _path_only(path: Optional[str]) -> str:
    if not path:
        return ""
    return urlsplit(path).path or ""


def is_exam_route(path: Optional[str]) -> bool:
    """
    True while the user is inside the timed exam-taking view:
    /exam/<attempt_id>[/...] (but not the prepare or result pages)
    and the legacy /student/exam prefix.
    """
    path = _path_only(path)
    if path.startswith(LEGACY_EXAM_ROUTE_PREFIX):
        return True
    if not path.startswith(EXAM_ROUTE_PREFIX) or path.startswith(EXAM_PREPARE_PREFIX):
        return False

    parts = [p for p in path[len(EXAM_ROUTE_PREFIX):].split("/") if p]
    if not parts:
        return False
    return "result" not in parts[1:]


def is_exam_flow_route(path: Optional[str]) -> bool:
    """Any page of the exam flow (prepare, taking, result)."""
    return _path_only(path).startswith(EXAM_ROUTE_PREFIX)

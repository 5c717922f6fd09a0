# session_timeout/store.py
"""
Session Store: one logical SessionClock replicated into persistent client
storage (read by the client monitor) and a cookie mirror (read by the server
checkpoint). Every write goes through ``SessionStore.write`` which fans out to
both backends under a single lock.
"""
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from requests.cookies import RequestsCookieJar, create_cookie

from config.session_config import (
    COOKIE_LAST_ACTIVE_AT,
    COOKIE_MAX_AGE_SECONDS,
    COOKIE_SAMESITE,
    COOKIE_SESSION_START_AT,
    STORAGE_KEYS,
)
from session_timeout.policy import Role, now_ms

logger = logging.getLogger(__name__)

LAST_ACTIVE_KEY = STORAGE_KEYS["LAST_ACTIVE_AT"]
SESSION_START_KEY = STORAGE_KEYS["SESSION_START_AT"]
ROLE_KEY = STORAGE_KEYS["USER_ROLE"]


def parse_epoch_ms(value: Any) -> Optional[int]:
    """Stringified epoch ms -> int. Anything missing or malformed is None."""
    if value is None:
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None


def parse_role(value: Any) -> Optional[Role]:
    if value in (Role.ADMIN.value, Role.STUDENT.value):
        return Role(value)
    return None


@dataclass
class SessionClock:
    last_active_at: Optional[int] = None
    session_start_at: Optional[int] = None
    role: Optional[Role] = None

    @property
    def is_empty(self) -> bool:
        return self.last_active_at is None and self.session_start_at is None


# ----------------------------
# Persistent client storage
# ----------------------------
class MemoryStorage:
    """In-process key/value storage with the localStorage contract (string values)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_items(self, items: Dict[str, str]) -> None:
        self._data.update({k: str(v) for k, v in items.items()})

    def remove_items(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class FileStorage:
    """JSON-file key/value storage that survives process restarts."""

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)
        folder = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(folder, exist_ok=True)

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Session storage unreadable (%s): %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        folder = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=folder, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=4)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_items(self, items: Dict[str, str]) -> None:
        data = self._load()
        data.update({k: str(v) for k, v in items.items()})
        self._save(data)

    def remove_items(self, keys: Iterable[str]) -> None:
        data = self._load()
        for key in keys:
            data.pop(key, None)
        self._save(data)


# ----------------------------
# Cookie mirror
# ----------------------------
class CookieBackend:
    """
    Mirrors the two timestamps into a requests cookie jar, so every request
    the client sends carries them to the server checkpoint.
    """

    def __init__(self, jar: Optional[RequestsCookieJar] = None, domain: str = ""):
        self.jar = jar if jar is not None else RequestsCookieJar()
        self.domain = domain

    def _set(self, name: str, value: str) -> None:
        cookie = create_cookie(
            name,
            value,
            domain=self.domain,
            path="/",
            expires=int(time.time()) + COOKIE_MAX_AGE_SECONDS,
            rest={"SameSite": COOKIE_SAMESITE},
        )
        self.jar.set_cookie(cookie)

    def get(self, name: str) -> Optional[str]:
        return self.jar.get(name, domain=self.domain, path="/")

    def write(self, last_active_at: int, session_start_at: int) -> None:
        self._set(COOKIE_LAST_ACTIVE_AT, str(last_active_at))
        self._set(COOKIE_SESSION_START_AT, str(session_start_at))

    def clear(self) -> None:
        for name in (COOKIE_LAST_ACTIVE_AT, COOKIE_SESSION_START_AT):
            # value None removes the cookie
            self.jar.set(name, None, domain=self.domain, path="/")


# ----------------------------
# Store
# ----------------------------
class SessionStore:
    def __init__(self, storage=None, cookies: Optional[CookieBackend] = None,
                 clock: Callable[[], int] = now_ms):
        self.storage = storage if storage is not None else MemoryStorage()
        self.cookies = cookies if cookies is not None else CookieBackend()
        self.clock = clock
        self._lock = threading.RLock()

    def read(self) -> SessionClock:
        with self._lock:
            return SessionClock(
                last_active_at=parse_epoch_ms(self.storage.get_item(LAST_ACTIVE_KEY)),
                session_start_at=parse_epoch_ms(self.storage.get_item(SESSION_START_KEY)),
                role=parse_role(self.storage.get_item(ROLE_KEY)),
            )

    def write(self, clock: SessionClock) -> None:
        """Fan a complete clock out to both backends."""
        if clock.last_active_at is None or clock.session_start_at is None:
            raise ValueError("both timestamps are required to write a session clock")
        if clock.session_start_at > clock.last_active_at:
            raise ValueError("session_start_at must not be after last_active_at")

        items = {
            LAST_ACTIVE_KEY: str(clock.last_active_at),
            SESSION_START_KEY: str(clock.session_start_at),
        }
        if clock.role is not None:
            items[ROLE_KEY] = Role(clock.role).value

        with self._lock:
            self.storage.set_items(items)
            self.cookies.write(clock.last_active_at, clock.session_start_at)

    def init(self, role: Role) -> SessionClock:
        """Start (or resume) the session clock for this role."""
        with self._lock:
            now = self.clock()
            start = parse_epoch_ms(self.storage.get_item(SESSION_START_KEY))
            if start is None or start > now:
                start = now
            clock = SessionClock(now, start, Role(role))
            self.write(clock)
            return clock

    def touch(self) -> SessionClock:
        with self._lock:
            now = self.clock()
            current = self.read()
            start = current.session_start_at
            if start is None or start > now:
                start = now
            clock = SessionClock(now, start, current.role)
            self.write(clock)
            return clock

    def clear(self) -> None:
        with self._lock:
            self.storage.remove_items((LAST_ACTIVE_KEY, SESSION_START_KEY, ROLE_KEY))
            self.cookies.clear()

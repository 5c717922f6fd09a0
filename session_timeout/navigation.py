# session_timeout/navigation.py
from typing import List
from urllib.parse import urlsplit

from blinker import Signal


class Navigator:
    """Tracks the current location of the page host and announces navigations."""

    def __init__(self, path: str = "/"):
        self.url = path
        self.history: List[str] = [path]
        self.navigated = Signal()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> str:
        return urlsplit(self.url).query

    def push(self, url: str) -> None:
        self.url = url
        self.history.append(url)
        self.navigated.send(self, url=url)

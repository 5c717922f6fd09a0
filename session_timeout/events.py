from blinker import Namespace

from config.session_config import ACTIVITY_EVENTS

UNLOAD_EVENT = "beforeunload"
VISIBILITY_EVENT = "visibilitychange"
PAGE_EVENTS = ACTIVITY_EVENTS + (UNLOAD_EVENT, VISIBILITY_EVENT)


class PageEvents:
    """
    Per-page event surface. Each controller owns its own instance, so
    listeners never leak between mounted layouts.
    """

    def __init__(self):
        self._signals = Namespace()

    def signal(self, name: str):
        if name not in PAGE_EVENTS:
            raise ValueError(f"unknown page event: {name}")
        return self._signals.signal(name)

    # signals are private to this page, so receivers listen to any sender
    def connect(self, name: str, receiver) -> None:
        self.signal(name).connect(receiver, weak=False)

    def disconnect(self, name: str, receiver) -> None:
        self.signal(name).disconnect(receiver)

    def dispatch(self, name: str, **kwargs):
        return self.signal(name).send(self, **kwargs)

    def set_visibility(self, state: str):
        return self.dispatch(VISIBILITY_EVENT, state=state)

    def receivers(self, name: str) -> int:
        return len(self.signal(name).receivers)

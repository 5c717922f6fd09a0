import logging

import pytest

from session_timeout.navigation import Navigator
from session_timeout.policy import Role, TerminationReason
from session_timeout.termination import SessionTerminator, build_expired_login_url

from conftest import FakeAuth


@pytest.mark.parametrize("reason, url", [
    (TerminationReason.IDLE, "/login?expired=true&reason=idle"),
    (TerminationReason.ABSOLUTE, "/login?expired=true&reason=absolute"),
    ("idle", "/login?expired=true&reason=idle"),
])
def test_build_expired_login_url(reason, url):
    assert build_expired_login_url(reason) == url


def test_terminate_clears_local_state_before_sign_out(store):
    store.init(Role.STUDENT)
    auth = FakeAuth()
    seen = {}
    auth.on_sign_out = lambda: seen.setdefault("empty", store.read().is_empty)
    navigator = Navigator("/student")
    reasons = []

    url = SessionTerminator(store, auth, navigator, on_terminated=reasons.append).terminate(
        TerminationReason.IDLE
    )

    assert seen["empty"] is True
    assert url == navigator.url == "/login?expired=true&reason=idle"
    assert reasons == [TerminationReason.IDLE]


def test_sign_out_error_is_logged_and_redirect_still_happens(store, caplog):
    store.init(Role.ADMIN)
    navigator = Navigator("/admin")
    auth = FakeAuth(sign_out_error="network down")

    with caplog.at_level(logging.ERROR, logger="session_timeout.termination"):
        SessionTerminator(store, auth, navigator).terminate(TerminationReason.ABSOLUTE)

    assert navigator.url == "/login?expired=true&reason=absolute"
    assert "network down" in caplog.text


def test_sign_out_exception_does_not_block_redirect(store):
    navigator = Navigator("/student")
    auth = FakeAuth(sign_out_exc=ConnectionError("refused"))

    SessionTerminator(store, auth, navigator).terminate(TerminationReason.IDLE)

    assert navigator.url.startswith("/login?expired=true")
    assert store.read().is_empty


def test_navigation_is_announced(store):
    navigator = Navigator("/student")
    pushed = []
    navigator.navigated.connect(lambda sender, url: pushed.append(url), weak=False)

    SessionTerminator(store, FakeAuth(), navigator).terminate(TerminationReason.IDLE)

    assert pushed == ["/login?expired=true&reason=idle"]
    assert navigator.path == "/login"
    assert navigator.query == "expired=true&reason=idle"

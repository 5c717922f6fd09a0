import threading

import pytest

from config.session_config import HOUR_MS, MINUTE_MS
from session_timeout.monitor import MonitorState, TimeoutMonitor
from session_timeout.navigation import Navigator
from session_timeout.policy import Role, TerminationReason
from session_timeout.store import SessionClock
from session_timeout.termination import SessionTerminator

from conftest import T0


def make_monitor(role, store, auth, events, scheduler, clock, path):
    navigator = Navigator(path)
    terminator = SessionTerminator(store, auth, navigator)
    monitor = TimeoutMonitor(role, store, navigator, terminator,
                             events=events, scheduler=scheduler, clock=clock)
    return monitor, navigator


def test_stale_student_is_terminated_on_start(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0 - 31 * MINUTE_MS, T0 - 31 * MINUTE_MS, Role.STUDENT))
    monitor, navigator = make_monitor(Role.STUDENT, store, auth, events, scheduler, clock, "/student")

    monitor.start()

    assert monitor.state is MonitorState.TERMINATING
    assert navigator.url == "/login?expired=true&reason=idle"
    assert auth.sign_out_calls == 1
    assert store.read().is_empty
    assert scheduler.jobs == []


def test_student_on_exam_route_is_left_alone_for_hours(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0 - 5 * HOUR_MS, T0 - 5 * HOUR_MS, Role.STUDENT))
    monitor, navigator = make_monitor(Role.STUDENT, store, auth, events, scheduler, clock, "/exam/att-1")

    monitor.start()
    scheduler.advance(60 * 60)
    events.set_visibility("visible")

    assert monitor.state is MonitorState.MONITORING
    assert auth.sign_out_calls == 0
    assert navigator.url == "/exam/att-1"
    assert store.read().last_active_at == T0 - 5 * HOUR_MS


def test_admin_on_exam_route_still_hits_absolute(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0 - MINUTE_MS, T0 - 6 * HOUR_MS - MINUTE_MS, Role.ADMIN))
    monitor, navigator = make_monitor(Role.ADMIN, store, auth, events, scheduler, clock, "/exam/att-1")

    monitor.start()

    assert navigator.url == "/login?expired=true&reason=absolute"


def test_admin_on_exam_route_is_never_idled(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0 - 2 * HOUR_MS, T0 - 2 * HOUR_MS, Role.ADMIN))
    monitor, _ = make_monitor(Role.ADMIN, store, auth, events, scheduler, clock, "/student/exam/4")

    monitor.start()
    scheduler.advance(10 * 60)

    assert monitor.state is MonitorState.MONITORING


def test_periodic_check_catches_idle(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0, T0, Role.ADMIN))
    monitor, navigator = make_monitor(Role.ADMIN, store, auth, events, scheduler, clock, "/admin")
    monitor.start()

    scheduler.advance(15 * 60)
    assert monitor.state is MonitorState.MONITORING

    scheduler.advance(10)
    assert monitor.state is MonitorState.TERMINATING
    assert navigator.url == "/login?expired=true&reason=idle"
    assert scheduler.jobs == []


def test_hidden_page_skips_check_and_visible_page_rechecks(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0, T0, Role.STUDENT))
    monitor, _ = make_monitor(Role.STUDENT, store, auth, events, scheduler, clock, "/student")
    monitor.start()

    clock.advance(31 * MINUTE_MS)
    events.set_visibility("hidden")
    assert monitor.state is MonitorState.MONITORING

    events.set_visibility("visible")
    assert monitor.state is MonitorState.TERMINATING


def test_missing_timestamps_never_terminate(store, auth, events, scheduler, clock):
    monitor, _ = make_monitor(Role.ADMIN, store, auth, events, scheduler, clock, "/admin")
    monitor.start()
    scheduler.advance(24 * 60 * 60 // 10)
    assert monitor.state is MonitorState.MONITORING


def test_termination_runs_once_across_triggers(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0 - HOUR_MS, T0 - HOUR_MS, Role.STUDENT))
    monitor, _ = make_monitor(Role.STUDENT, store, auth, events, scheduler, clock, "/student")

    monitor.start()
    monitor.check()
    events.set_visibility("visible")
    assert monitor.terminate(TerminationReason.IDLE) is False

    assert auth.sign_out_calls == 1


def test_concurrent_checks_terminate_once(store, auth, clock):
    store.write(SessionClock(T0 - HOUR_MS, T0 - HOUR_MS, Role.STUDENT))
    navigator = Navigator("/student")
    monitor = TimeoutMonitor(Role.STUDENT, store, navigator,
                             SessionTerminator(store, auth, navigator), clock=clock)

    barrier = threading.Barrier(8)
    results = []

    def run():
        barrier.wait()
        results.append(monitor.check())

    threads = [threading.Thread(target=run) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert auth.sign_out_calls == 1
    assert results.count(TerminationReason.IDLE) == 1


def test_stop_cancels_job_and_visibility_listener(store, auth, events, scheduler, clock):
    store.write(SessionClock(T0, T0, Role.STUDENT))
    monitor, _ = make_monitor(Role.STUDENT, store, auth, events, scheduler, clock, "/student")
    monitor.start()
    assert scheduler.job_ids() == [TimeoutMonitor.JOB_ID]

    monitor.stop()
    assert scheduler.jobs == []
    assert events.receivers("visibilitychange") == 0


@pytest.mark.parametrize("path", ["/exam/prepare/9", "/exam/att-1/result"])
def test_prepare_and_result_pages_are_not_exempt(path, store, auth, events, scheduler, clock):
    store.write(SessionClock(T0 - HOUR_MS, T0 - HOUR_MS, Role.STUDENT))
    monitor, _ = make_monitor(Role.STUDENT, store, auth, events, scheduler, clock, path)
    monitor.start()
    assert monitor.state is MonitorState.TERMINATING

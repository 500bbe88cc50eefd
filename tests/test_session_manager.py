import asyncio
from datetime import timedelta

import pytest

from billtracker.core.session_manager import (
    BrowserLoginFlow,
    Credentials,
    LoginError,
    SessionManager,
    SessionState,
)
from billtracker.core.session_store import Cookie, SessionRecord, SessionStore
from fakes import NOW, Clock, FakeBrowserPort, FakeLoginFlow

CREDS = Credentials("me@example.com", "secret")


def _manager(tmp_path, flow, credentials=CREDS, clock=None):
    store = SessionStore(str(tmp_path))
    return SessionManager("Atmos Energy", store, flow, credentials, clock=clock or Clock()), store


def test_valid_saved_session_is_reused_without_login(tmp_path):
    """A saved, unexpired session that verifies is reused and login is never attempted."""
    flow = FakeLoginFlow(restore_ok=True)
    manager, store = _manager(tmp_path, flow)
    store.write("Atmos Energy", SessionRecord.create([Cookie("sid", "saved")], NOW - timedelta(hours=1)))

    result = asyncio.run(manager.ensure_session())

    assert result == SessionManager.RESTORED
    assert manager.state == SessionState.AUTHENTICATED
    assert flow.restored_with == [Cookie("sid", "saved")]
    assert flow.login_calls == 0


def test_expired_session_logs_in_and_overwrites(tmp_path):
    """An expired record is never restored; a new record replaces it after login."""
    clock = Clock()
    flow = FakeLoginFlow(cookies=[Cookie("sid", "fresh")])
    manager, store = _manager(tmp_path, flow, clock=clock)
    store.write("Atmos Energy", SessionRecord.create([Cookie("sid", "old")], NOW - timedelta(hours=25)))

    result = asyncio.run(manager.ensure_session())

    assert result == SessionManager.LOGGED_IN
    assert flow.restore_calls == 0
    assert flow.login_calls == 1
    saved = store.read("Atmos Energy")
    assert saved.cookies == [Cookie("sid", "fresh")]
    assert saved.saved_at == NOW
    assert saved.expires_at == NOW + timedelta(hours=24)


def test_rejected_restore_falls_through_to_login(tmp_path):
    flow = FakeLoginFlow(restore_ok=False)
    manager, store = _manager(tmp_path, flow)
    store.write("Atmos Energy", SessionRecord.create([Cookie("sid", "saved")], NOW))

    assert asyncio.run(manager.ensure_session()) == SessionManager.LOGGED_IN
    assert flow.restore_calls == 1
    assert flow.login_calls == 1


def test_restore_error_falls_through_to_login(tmp_path):
    flow = FakeLoginFlow(restore_error=RuntimeError("browser crashed"))
    manager, store = _manager(tmp_path, flow)
    store.write("Atmos Energy", SessionRecord.create([Cookie("sid", "saved")], NOW))

    assert asyncio.run(manager.ensure_session()) == SessionManager.LOGGED_IN
    assert manager.state == SessionState.AUTHENTICATED


def test_no_record_logs_in(tmp_path):
    flow = FakeLoginFlow()
    manager, store = _manager(tmp_path, flow)
    assert asyncio.run(manager.ensure_session()) == SessionManager.LOGGED_IN
    assert store.read("Atmos Energy") is not None


def test_login_rejected_raises_and_resets_state(tmp_path):
    """Failed verification after login is a LoginError; nothing is saved, no retry."""
    flow = FakeLoginFlow(login_ok=False)
    manager, store = _manager(tmp_path, flow)

    with pytest.raises(LoginError):
        asyncio.run(manager.ensure_session())
    assert manager.state == SessionState.UNAUTHENTICATED
    assert flow.login_calls == 1
    assert store.read("Atmos Energy") is None


def test_login_exception_becomes_login_error(tmp_path):
    flow = FakeLoginFlow(login_error=TimeoutError("step timed out"))
    manager, _ = _manager(tmp_path, flow)
    with pytest.raises(LoginError):
        asyncio.run(manager.ensure_session())
    assert manager.state == SessionState.UNAUTHENTICATED


def test_missing_credentials_fail_before_automation(tmp_path):
    flow = FakeLoginFlow()
    manager, _ = _manager(tmp_path, flow, credentials=Credentials("", ""))
    with pytest.raises(LoginError):
        asyncio.run(manager.ensure_session())
    assert flow.login_calls == 0


def test_authenticated_manager_short_circuits_and_invalidate(tmp_path):
    flow = FakeLoginFlow()
    manager, _ = _manager(tmp_path, flow)
    asyncio.run(manager.ensure_session())
    assert asyncio.run(manager.ensure_session()) == SessionManager.RESTORED
    assert flow.login_calls == 1

    manager.invalidate()
    assert manager.state == SessionState.UNAUTHENTICATED


def test_save_failure_does_not_fail_login(tmp_path):
    class BrokenStore(SessionStore):
        def write(self, source_id, record):
            raise OSError("disk full")

    flow = FakeLoginFlow()
    manager = SessionManager("S", BrokenStore(str(tmp_path)), flow, CREDS, clock=Clock())
    assert asyncio.run(manager.ensure_session()) == SessionManager.LOGGED_IN


def _browser_flow(port, continue_selector=None):
    return BrowserLoginFlow(
        port,
        login_url="https://example.com/login",
        landing_url="https://example.com/account/landing",
        authenticated_markers=("landing",),
        continue_selector=continue_selector,
    )


def test_browser_flow_login_steps():
    port = FakeBrowserPort()
    flow = _browser_flow(port, continue_selector="#continue")
    asyncio.run(flow.login(CREDS))
    kinds = [a[0] for a in port.actions]
    assert kinds == ["open", "fill", "click", "fill", "click", "open"]
    assert port.actions[1][2] == "me@example.com"
    assert port.actions[3][2] == "secret"
    assert asyncio.run(flow.is_authenticated())


def test_browser_flow_restore_injects_cookies_then_opens_landing():
    port = FakeBrowserPort()
    flow = _browser_flow(port)
    asyncio.run(flow.restore([Cookie("sid", "x")]))
    assert port.opened() == ["https://example.com/login", "https://example.com/account/landing"]
    assert port.cookies == [Cookie("sid", "x")]


def test_browser_flow_redirect_to_login_is_unauthenticated():
    port = FakeBrowserPort()
    port.redirects["https://example.com/account/landing"] = "https://example.com/login?next=landing"
    flow = _browser_flow(port)
    asyncio.run(flow.restore([]))
    assert not asyncio.run(flow.is_authenticated())

import threading
from datetime import timedelta

import pytest
import requests

from client import (
    ClientSessionCache,
    LmsClient,
    SessionEnvelope,
    SessionExpired,
    LoginFailed,
    STORAGE_KEY,
)
from security.policy import IDLE_TIMEOUT_SECONDS
from tests.conftest import get_session
from utils.timeutil import utcnow

BASE_URL = "http://lms.test"


class FakeTimer:
    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class Clock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class _Response:
    def __init__(self, resp):
        self.status_code = resp.status_code
        self._body = resp.get_json(silent=True)

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FlaskHttp:
    """requests.Session stand-in that routes calls into the Flask test client."""

    def __init__(self, client):
        self.client = client
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None, **kwargs):
        path = url[len(BASE_URL):]
        self.calls.append((method.upper(), path))
        return _Response(self.client.open(path, method=method.upper(), json=json, headers=headers, **kwargs))

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)


class OfflineHttp:
    def post(self, *args, **kwargs):
        raise requests.ConnectionError("offline")

    get = request = post


@pytest.fixture(autouse=True)
def reset_timers():
    FakeTimer.created = []


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def dropped():
    return []


@pytest.fixture
def cache(clock, dropped):
    return ClientSessionCache(
        on_logout=lambda env, reason: dropped.append((env.session_id, reason)),
        clock=clock,
        timer_factory=FakeTimer,
    )


def _envelope(clock, **overrides):
    values = dict(
        employee={"emp_id": "EMP001", "role": "employee"},
        session_id=7,
        token="tok",
        expires_at=clock() + timedelta(hours=8),
        last_activity_at=clock(),
    )
    values.update(overrides)
    return SessionEnvelope(**values)


def test_establish_persists_and_arms_one_timer(cache, clock):
    cache.establish(_envelope(clock))
    assert cache.get().session_id == 7
    assert cache.timer_active

    (timer,) = FakeTimer.created
    assert timer.interval == IDLE_TIMEOUT_SECONDS
    assert timer.started and timer.daemon


def test_new_session_replaces_previous_timer(cache, clock):
    cache.establish(_envelope(clock))
    cache.establish(_envelope(clock, session_id=8))

    first, second = FakeTimer.created
    assert first.cancelled
    assert not second.cancelled
    assert cache.get().session_id == 8


def test_idle_read_drops_session(cache, clock, dropped):
    cache.establish(_envelope(clock))
    clock.advance(minutes=30)
    assert cache.get() is not None

    clock.advance(seconds=1)
    assert cache.get() is None
    assert dropped == [(7, "timeout")]
    assert not cache.timer_active


def test_expiry_is_checked_before_idle(cache, clock, dropped):
    cache.establish(_envelope(clock, expires_at=clock() + timedelta(minutes=5)))
    clock.advance(minutes=6)
    assert cache.get() is None
    assert dropped == [(7, "timeout")]


def test_interaction_extends_idle_window(cache, clock):
    cache.establish(_envelope(clock))
    clock.advance(minutes=20)
    assert cache.record_interaction("keydown")

    clock.advance(minutes=20)
    assert cache.get() is not None
    assert len(FakeTimer.created) == 2
    assert FakeTimer.created[0].cancelled


def test_unconfigured_signal_is_ignored(clock):
    cache = ClientSessionCache(clock=clock, timer_factory=FakeTimer, signals=["keydown"])
    cache.establish(_envelope(clock))
    assert not cache.record_interaction("scroll")
    assert not cache.record_interaction("wheel")
    assert cache.record_interaction("keydown")


def test_timer_fire_logs_out(cache, clock, dropped):
    cache.establish(_envelope(clock))
    FakeTimer.created[0].fire()
    assert cache.get() is None
    assert dropped == [(7, "timeout")]


def test_clear_cancels_timer_and_notifies(cache, clock, dropped):
    cache.establish(_envelope(clock))
    cache.clear()
    assert FakeTimer.created[0].cancelled
    assert dropped == [(7, "manual")]

    cache.clear()
    assert dropped == [(7, "manual")]


@pytest.mark.parametrize("trigger", ["clear", "idle_read", "timer"])
def test_logout_callback_runs_outside_the_lock(clock, trigger):
    lock_free = []

    def on_logout(envelope, reason):
        # another thread must be able to take the lock while the callback runs
        def try_lock():
            got = cache._lock.acquire(blocking=False)
            if got:
                cache._lock.release()
            lock_free.append(got)

        worker = threading.Thread(target=try_lock)
        worker.start()
        worker.join()

    cache = ClientSessionCache(on_logout=on_logout, clock=clock, timer_factory=FakeTimer)
    cache.establish(_envelope(clock))

    if trigger == "clear":
        cache.clear()
    elif trigger == "idle_read":
        clock.advance(minutes=31)
        assert not cache.record_interaction("keydown")
    else:
        FakeTimer.created[0].fire()

    assert lock_free == [True]


def test_unreadable_storage_is_discarded(clock):
    storage = {STORAGE_KEY: "{not json"}
    cache = ClientSessionCache(storage=storage, clock=clock, timer_factory=FakeTimer)
    assert cache.get() is None
    assert STORAGE_KEY not in storage


def test_client_login_validate_and_logout(app, client, clock):
    http = FlaskHttp(client)
    lms = LmsClient(BASE_URL, http=http)
    lms.cache = ClientSessionCache(on_logout=lms._notify_server_logout, clock=clock, timer_factory=FakeTimer)

    envelope = lms.login("EMP001", "employee-pass-1")
    assert envelope.employee["emp_id"] == "EMP001"
    assert not envelope.is_admin
    assert lms.validate()

    resp = lms.request("GET", "/api/health")
    assert resp.status_code == 200

    lms.logout()
    assert ("POST", "/api/auth/logout") in http.calls
    assert get_session(app, envelope.session_id).logout_reason == "manual"
    with pytest.raises(SessionExpired):
        lms.request("GET", "/api/health")


def test_client_idle_timer_ends_server_session(app, client, clock):
    http = FlaskHttp(client)
    lms = LmsClient(BASE_URL, http=http)
    lms.cache = ClientSessionCache(on_logout=lms._notify_server_logout, clock=clock, timer_factory=FakeTimer)

    envelope = lms.login("EMP001", "employee-pass-1")
    FakeTimer.created[-1].fire()

    sess = get_session(app, envelope.session_id)
    assert not sess.is_active
    assert sess.logout_reason == "timeout"


def test_client_privileged_request_revalidates(app, client, clock):
    http = FlaskHttp(client)
    lms = LmsClient(BASE_URL, http=http)
    lms.cache = ClientSessionCache(on_logout=lms._notify_server_logout, clock=clock, timer_factory=FakeTimer)

    lms.login("ADMIN001", "admin-pass-1")
    resp = lms.request("GET", "/api/admin/employees", privileged=True)
    assert resp.status_code == 200
    assert ("GET", "/api/auth/validate") in http.calls

    # a server-side termination surfaces as SessionExpired and clears the cache
    client.post("/api/auth/logout", headers={"Authorization": f"Bearer {lms.cache.get().token}"})
    with pytest.raises(SessionExpired):
        lms.request("GET", "/api/admin/employees", privileged=True)
    assert lms.cache.get() is None


def test_client_login_failure(client):
    lms = LmsClient(BASE_URL, http=FlaskHttp(client))
    with pytest.raises(LoginFailed, match="Invalid credentials"):
        lms.login("EMP001", "wrong")


def test_client_offline_validation_keeps_session(clock):
    cache = ClientSessionCache(clock=clock, timer_factory=FakeTimer)
    lms = LmsClient(BASE_URL, cache=cache, http=OfflineHttp())
    cache.establish(_envelope(clock))
    assert lms.validate() is False
    assert cache.get() is not None

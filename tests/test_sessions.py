import threading
import time

import pytest

from sablier.instance import State, Status, not_ready_state, unrecoverable_state, error_state
from sablier.provider import Provider
from sablier.sessions import (
    InstanceState,
    RequestCancelledError,
    SessionNotReadyError,
    SessionState,
    SessionsManager,
)
from sablier.store import ExpiringStore


class FakeProvider(Provider):
    def __init__(self, states=None, groups=None, stopped=(), fail_start=()):
        self.states = dict(states or {})
        self.groups = dict(groups or {})
        self.stopped = list(stopped)
        self.fail_start = set(fail_start)
        self.started = []
        self.checked = []

    def start(self, name):
        self.started.append(name)
        if name in self.fail_start:
            raise error_state(name, RuntimeError("cannot start"), 1)
        return not_ready_state(name, 0, 1)

    def stop(self, name):
        return not_ready_state(name, 0, 1)

    def get_state(self, name):
        self.checked.append(name)
        return self.states.get(name, not_ready_state(name, 0, 1))

    def get_groups(self):
        return dict(self.groups)

    def watch_stopped(self, stop):
        yield from self.stopped


@pytest.fixture
def make_manager():
    managers = []

    def build(store, provider):
        manager = SessionsManager(store, provider, 60)
        managers.append(manager)
        return manager

    yield build
    for manager in managers:
        manager.stop()


def create_map(states):
    return {state.name: InstanceState(state) for state in states}


@pytest.mark.parametrize(
    "states, want",
    [
        ([State("nginx", status=Status.READY), State("apache", status=Status.READY)], True),
        ([State("nginx", status=Status.READY), State("apache", status=Status.NOT_READY)], False),
        ([], True),
        (
            [
                State("nginx-error", status=Status.UNRECOVERABLE, message="connection timeout"),
                State("apache", status=Status.READY),
            ],
            False,
        ),
    ],
)
def test_session_state_is_ready(states, want):
    session = SessionState(create_map(states))
    assert session.is_ready() is want
    assert session.status() == ("ready" if want else "not-ready")


def test_session_with_error_is_not_ready():
    session = SessionState({"nginx": InstanceState(None, RuntimeError("boom"))})
    assert session.is_ready() is False


def test_session_to_dict():
    session = SessionState(create_map([State("nginx", 0, 1, Status.NOT_READY)]))
    assert session.to_dict() == {
        "instances": [
            {
                "instance": {
                    "name": "nginx",
                    "currentReplicas": 0,
                    "desiredReplicas": 1,
                    "status": "not-ready",
                },
                "error": None,
            }
        ],
        "status": "not-ready",
    }


@pytest.mark.parametrize("stopped", [["nginx"], ["nginx", "apache", "whoami"]])
def test_stopped_instances_are_removed_from_store(make_manager, stopped):
    store = ExpiringStore(0)
    for name in stopped:
        store.put(name, not_ready_state(name, 0, 1), 60)
    make_manager(store, FakeProvider(stopped=stopped))

    deadline = time.monotonic() + 2
    while len(store) and time.monotonic() < deadline:
        time.sleep(0.01)
    for name in stopped:
        assert store.get(name) is None


def _not_ready_store():
    store = ExpiringStore(0)
    for name in ("nginx", "whoami"):
        store.put(name, not_ready_state(name, 0, 1), 60)
    return store


def test_request_ready_session_cancelled_by_user(make_manager):
    manager = make_manager(_not_ready_store(), FakeProvider())
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RequestCancelledError, match="request cancelled by user"):
        manager.request_ready_session(["nginx", "whoami"], 60, 60, cancel)


def test_request_ready_session_cancelled_by_timeout(make_manager):
    manager = make_manager(_not_ready_store(), FakeProvider())
    with pytest.raises(SessionNotReadyError, match="session was not ready after 1s"):
        manager.request_ready_session(["nginx", "whoami"], 60, 1)


def test_request_ready_session_is_ready(make_manager):
    store = ExpiringStore(0)
    for name in ("nginx", "whoami"):
        store.put(name, State(name, 1, 1, Status.READY), 60)
    provider = FakeProvider()
    manager = make_manager(store, provider)
    session = manager.request_ready_session(["nginx", "whoami"], 60, 1)
    assert session.is_ready()
    assert provider.started == []
    assert provider.checked == []


def test_request_session_starts_unknown_instances(make_manager):
    store = ExpiringStore(0)
    provider = FakeProvider()
    manager = make_manager(store, provider)
    session = manager.request_session(["nginx"], 60)
    assert provider.started == ["nginx"]
    assert session.instances["nginx"].instance == not_ready_state("nginx", 0, 1)
    assert store.get("nginx") == not_ready_state("nginx", 0, 1)


def test_request_session_checks_not_ready_instances(make_manager):
    store = _not_ready_store()
    provider = FakeProvider(states={"nginx": State("nginx", 1, 1, Status.READY)})
    manager = make_manager(store, provider)
    session = manager.request_session(["nginx"], 60)
    assert provider.checked == ["nginx"]
    assert session.is_ready()
    assert store.get("nginx").is_ready()


def test_request_session_provider_error_gives_unrecoverable(make_manager):
    provider = FakeProvider(fail_start={"nginx"})
    manager = make_manager(ExpiringStore(0), provider)
    session = manager.request_session(["nginx"], 60)
    state = session.instances["nginx"].instance
    assert state.status is Status.UNRECOVERABLE
    assert state.message == "cannot start"
    assert not session.is_ready()


def test_request_session_without_names(make_manager):
    manager = make_manager(ExpiringStore(0), FakeProvider())
    assert manager.request_session([], 60) is None


def test_request_session_group(make_manager):
    provider = FakeProvider(groups={"web": ["nginx", "apache"]})
    manager = make_manager(ExpiringStore(0), provider)
    session = manager.request_session_group("web", 60)
    assert sorted(session.instances) == ["apache", "nginx"]
    assert manager.request_session_group("", 60) is None
    assert manager.request_session_group("missing", 60) is None


def test_request_ready_session_group_errors(make_manager):
    manager = make_manager(ExpiringStore(0), FakeProvider())
    with pytest.raises(ValueError, match="group is mandatory"):
        manager.request_ready_session_group("", 60, 1)
    with pytest.raises(ValueError, match="group has no member"):
        manager.request_ready_session_group("missing", 60, 1)


def test_save_and_load_sessions(make_manager, tmp_path):
    path = tmp_path / "sessions.json"
    store = ExpiringStore(0)
    manager = make_manager(store, FakeProvider())
    manager.expires_after(unrecoverable_state("nginx", "broken", 1), 60)
    manager.save_sessions(path.open("w"))

    other_store = ExpiringStore(0)
    other = make_manager(other_store, FakeProvider())
    other.load_sessions(path.open("r"))
    assert other_store.get("nginx") == unrecoverable_state("nginx", "broken", 1)
    assert other_store.dump() == store.dump()


def test_load_empty_sessions(make_manager, tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("{}")
    store = ExpiringStore(0)
    make_manager(store, FakeProvider()).load_sessions(path.open("r"))
    assert len(store) == 0


def test_groups_are_refreshed_by_watcher():
    provider = FakeProvider()
    manager = SessionsManager(ExpiringStore(0), provider, 0.01)
    try:
        assert manager.request_session_group("web", 60) is None
        provider.groups = {"web": ["nginx"]}

        session = None
        deadline = time.monotonic() + 2
        while session is None and time.monotonic() < deadline:
            session = manager.request_session_group("web", 60)
            if session is None:
                time.sleep(0.01)

        assert session is not None
        assert sorted(session.instances) == ["nginx"]
    finally:
        manager.stop()
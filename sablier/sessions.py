"""Session management: starting instances on demand and tracking readiness."""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Sequence

from sablier.instance import InstanceError, State
from sablier.provider import Provider
from sablier.store import ExpiringStore

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_FREQUENCY = 2.0
READY_POLL_INTERVAL = 5.0


class SessionNotReadyError(Exception):
    """The session did not become ready before the timeout."""


class RequestCancelledError(Exception):
    """The caller cancelled the request."""


@dataclass
class InstanceState:
    instance: State | None
    error: Exception | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance": self.instance.to_dict() if self.instance is not None else None,
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass
class SessionState:
    instances: dict[str, InstanceState] = field(default_factory=dict)

    def is_ready(self) -> bool:
        return all(
            entry.error is None and entry.instance is not None and entry.instance.is_ready()
            for entry in self.instances.values()
        )

    def status(self) -> str:
        return "ready" if self.is_ready() else "not-ready"

    def to_dict(self) -> dict[str, Any]:
        return {
            "instances": [entry.to_dict() for entry in self.instances.values()],
            "status": self.status(),
        }


def watch_groups(
    provider: Provider,
    frequency: float,
    stop: threading.Event,
    on_groups: Callable[[dict[str, list[str]]], None],
) -> None:
    """Refresh the provider's groups every ``frequency`` seconds until ``stop`` is set."""
    while not stop.wait(frequency):
        try:
            groups = provider.get_groups()
        except Exception as exc:
            logger.warning("could not get groups: %s", exc)
        else:
            on_groups(groups)


def _format_duration(seconds: float) -> str:
    hours, rest = divmod(float(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    text = f"{secs:g}s"
    if hours:
        return f"{int(hours)}h{int(minutes)}m{text}"
    if minutes:
        return f"{int(minutes)}m{text}"
    return text


class SessionsManager:
    """Requests sessions for instances and keeps them alive in the store."""

    def __init__(
        self,
        store: ExpiringStore[State],
        provider: Provider,
        refresh_frequency: float = DEFAULT_REFRESH_FREQUENCY,
    ) -> None:
        self._store = store
        self._provider = provider
        self._stop_event = threading.Event()
        try:
            self._groups: dict[str, list[str]] = provider.get_groups()
        except Exception as exc:
            logger.warning("could not get groups: %s", exc)
            self._groups = {}

        self._threads = [
            threading.Thread(
                target=watch_groups,
                args=(provider, refresh_frequency, self._stop_event, self._set_groups),
                name="groups-watcher",
                daemon=True,
            ),
            threading.Thread(target=self._consume_stopped, name="stopped-watcher", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    @property
    def groups(self) -> dict[str, list[str]]:
        return dict(self._groups)

    def _set_groups(self, groups: dict[str, list[str]]) -> None:
        self._groups = groups

    def _consume_stopped(self) -> None:
        try:
            for name in self._provider.watch_stopped(self._stop_event):
                # Entries may already be gone if the expiration stopped them.
                logger.debug("received event instance %s is stopped, removing from store", name)
                self._store.delete(name)
        except Exception as exc:
            logger.warning("stopped instances watcher failed: %s", exc)

    def _call_provider(self, action: Callable[[str], State], name: str, what: str) -> State:
        try:
            return action(name)
        except InstanceError as exc:
            logger.error("an error occurred %s %s: %s", what, name, exc)
            return exc.state

    def _request_instance(self, name: str, duration: float) -> State:
        state = self._store.get(name)
        if state is None:
            logger.debug("starting %s...", name)
            state = self._call_provider(self._provider.start, name, "starting")
            logger.debug("status for %s=%s", name, state.status)
        elif not state.is_ready():
            logger.debug("checking %s...", name)
            state = self._call_provider(self._provider.get_state, name, "checking state")
            logger.debug("status for %s=%s", name, state.status)
        self.expires_after(state, duration)
        return state

    def request_session(self, names: Sequence[str], duration: float) -> SessionState | None:
        """Start or refresh every named instance; None when no name is given."""
        unique = list(dict.fromkeys(names))
        if not unique:
            return None
        with ThreadPoolExecutor(max_workers=len(unique)) as pool:
            futures = {name: pool.submit(self._request_instance, name, duration) for name in unique}
        session = SessionState()
        for name, future in futures.items():
            try:
                session.instances[name] = InstanceState(future.result())
            except Exception as exc:
                session.instances[name] = InstanceState(None, exc)
        return session

    def request_session_group(self, group: str, duration: float) -> SessionState | None:
        if not group:
            return None
        names = self._groups.get(group)
        if not names:
            return None
        return self.request_session(names, duration)

    def request_ready_session(
        self,
        names: Sequence[str],
        duration: float,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> SessionState:
        """Wait until every instance is ready, polling the provider."""
        session = self.request_session(names, duration)
        if session is None:
            raise ValueError("names are mandatory")
        if session.is_ready():
            return session

        cancel = cancel if cancel is not None else threading.Event()
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SessionNotReadyError(f"session was not ready after {_format_duration(timeout)}")
            if cancel.wait(min(READY_POLL_INTERVAL, remaining)):
                logger.debug("request cancelled by user, stopping timeout")
                raise RequestCancelledError("request cancelled by user")
            if time.monotonic() >= deadline:
                continue
            session = self.request_session(names, duration)
            if session is not None and session.is_ready():
                return session

    def request_ready_session_group(
        self,
        group: str,
        duration: float,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> SessionState:
        if not group:
            raise ValueError("group is mandatory")
        names = self._groups.get(group)
        if not names:
            raise ValueError("group has no member")
        return self.request_ready_session(names, duration, timeout, cancel)

    def expires_after(self, state: State, duration: float) -> None:
        self._store.put(state.name, state, duration)

    def load_sessions(self, reader: IO[str]) -> None:
        """Load sessions from a JSON stream and close it."""
        with reader:
            data = json.load(reader)
        self._store.load(
            {
                key: {"value": State.from_dict(item["value"]), "expires_at": item["expires_at"]}
                for key, item in data.items()
            }
        )

    def save_sessions(self, writer: IO[str]) -> None:
        """Write sessions to a JSON stream and close it."""
        payload = {
            key: {"value": item["value"].to_dict(), "expires_at": item["expires_at"]}
            for key, item in self._store.dump().items()
        }
        with writer:
            json.dump(payload, writer, indent=2, ensure_ascii=False)
            writer.write("\n")

    def stop(self) -> None:
        """Stop the watchers and the store."""
        self._stop_event.set()
        self._store.stop()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=1)
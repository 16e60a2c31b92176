"""Provider for plain Docker containers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Iterator, Mapping, Protocol

from sablier.instance import (
    State,
    error_state,
    not_ready_state,
    ready_state,
    unrecoverable_state,
)
from sablier.provider import ENABLE_LABEL, Provider, group_by_label

logger = logging.getLogger(__name__)


class _DockerClient(Protocol):
    """The Docker Engine calls this provider needs, in Engine API JSON form."""

    def containers(self, all: bool = ..., filters: Mapping[str, Any] | None = ...) -> list[dict[str, Any]]:
        ...

    def start(self, container: str) -> Any:
        ...

    def stop(self, container: str) -> Any:
        ...

    def inspect_container(self, container: str) -> dict[str, Any]:
        ...

    def events(self, filters: Mapping[str, Any] | None = ..., decode: bool = ...) -> Iterable[dict[str, Any]]:
        ...


class DockerClassicProvider(Provider):
    """Starts and stops standalone containers."""

    def __init__(self, client: _DockerClient, desired_replicas: int = 1) -> None:
        self.client = client
        self.desired_replicas = desired_replicas

    def get_groups(self) -> dict[str, list[str]]:
        containers = self.client.containers(all=True, filters={"label": f"{ENABLE_LABEL}=true"})
        groups = group_by_label(
            (container.get("Labels"), container["Names"][0].removeprefix("/"))
            for container in containers
        )
        logger.debug("%s", groups)
        return groups

    def start(self, name: str) -> State:
        try:
            self.client.start(name)
        except Exception as exc:
            raise error_state(name, exc, self.desired_replicas) from exc
        return not_ready_state(name, 0, self.desired_replicas)

    def stop(self, name: str) -> State:
        try:
            self.client.stop(name)
        except Exception as exc:
            raise error_state(name, exc, self.desired_replicas) from exc
        return not_ready_state(name, 0, self.desired_replicas)

    def get_state(self, name: str) -> State:
        try:
            spec = self.client.inspect_container(name)
        except Exception as exc:
            raise error_state(name, exc, self.desired_replicas) from exc

        state = spec.get("State") or {}
        status = state.get("Status", "")
        desired = self.desired_replicas

        if status in ("created", "paused", "restarting", "removing"):
            return not_ready_state(name, 0, desired)
        if status == "running":
            health = state.get("Health")
            if not health:
                return ready_state(name, desired)
            health_status = health.get("Status")
            if health_status == "healthy":
                return ready_state(name, desired)
            if health_status == "unhealthy":
                logs = health.get("Log") or []
                if logs:
                    last = logs[-1]
                    return unrecoverable_state(
                        name,
                        f"container is unhealthy: {last.get('Output', '')} ({last.get('ExitCode', 0)})",
                        desired,
                    )
                return unrecoverable_state(name, "container is unhealthy: no log available", desired)
            return not_ready_state(name, 0, desired)
        if status == "exited":
            exit_code = state.get("ExitCode", 0)
            if exit_code != 0:
                return unrecoverable_state(name, f'container exited with code "{exit_code}"', desired)
            return not_ready_state(name, 0, desired)
        if status == "dead":
            return unrecoverable_state(name, 'container in "dead" state cannot be restarted', desired)
        return unrecoverable_state(name, f'container status "{status}" not handled', desired)

    def watch_stopped(self, stop: threading.Event) -> Iterator[str]:
        """Yield the names of containers that die, until ``stop`` is set."""
        filters = {"scope": "local", "type": "container", "event": "die"}
        try:
            for event in self.client.events(filters=filters, decode=True):
                if stop.is_set():
                    return
                attributes = (event.get("Actor") or {}).get("Attributes") or {}
                yield attributes.get("name", "").removeprefix("/")
        except Exception as exc:
            logger.warning("provider event stream failed: %s", exc)
            return
        logger.debug("provider event stream closed")
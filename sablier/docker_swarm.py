"""Provider for Docker Swarm services."""

from __future__ import annotations

import copy
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

_NOT_REPLICATED = 'swarm service is not in "replicated" mode'


class _SwarmClient(Protocol):
    """The Docker Engine calls this provider needs, in Engine API JSON form."""

    def services(self, filters: Mapping[str, Any] | None = ..., status: bool | None = ...) -> list[dict[str, Any]]:
        ...

    def update_service(self, service_id: str, version: int, spec: dict[str, Any]) -> dict[str, Any]:
        ...

    def events(self, filters: Mapping[str, Any] | None = ..., decode: bool = ...) -> Iterable[dict[str, Any]]:
        ...


class DockerSwarmProvider(Provider):
    """Scales replicated swarm services up and down."""

    def __init__(self, client: _SwarmClient, desired_replicas: int = 1) -> None:
        self.client = client
        self.desired_replicas = desired_replicas

    def start(self, name: str) -> State:
        return self._scale(name, self.desired_replicas)

    def stop(self, name: str) -> State:
        return self._scale(name, 0)

    def _scale(self, name: str, replicas: int) -> State:
        try:
            service = self._service_by_name(name)
        except Exception as exc:
            raise error_state(name, exc, self.desired_replicas) from exc

        found_name = self._instance_name(name, service)
        spec = copy.deepcopy(service["Spec"])
        replicated = (spec.get("Mode") or {}).get("Replicated")
        if replicated is None:
            return unrecoverable_state(found_name, _NOT_REPLICATED, self.desired_replicas)
        replicated["Replicas"] = replicas

        try:
            response = self.client.update_service(
                service["ID"], service["Version"]["Index"], spec
            )
        except Exception as exc:
            raise error_state(found_name, exc, self.desired_replicas) from exc

        warnings = (response or {}).get("Warnings") or []
        if warnings:
            return unrecoverable_state(found_name, ", ".join(warnings), self.desired_replicas)
        return not_ready_state(found_name, 0, self.desired_replicas)

    def get_groups(self) -> dict[str, list[str]]:
        services = self.client.services(filters={"label": f"{ENABLE_LABEL}=true"})
        return group_by_label(
            (service["Spec"].get("Labels"), service["Spec"]["Name"]) for service in services
        )

    def get_state(self, name: str) -> State:
        try:
            service = self._service_by_name(name)
        except Exception as exc:
            raise error_state(name, exc, self.desired_replicas) from exc

        found_name = self._instance_name(name, service)
        if (service["Spec"].get("Mode") or {}).get("Replicated") is None:
            return unrecoverable_state(found_name, _NOT_REPLICATED, self.desired_replicas)

        status = service.get("ServiceStatus") or {}
        desired = status.get("DesiredTasks", 0)
        running = status.get("RunningTasks", 0)
        if desired != running or desired == 0:
            return not_ready_state(found_name, 0, self.desired_replicas)
        return ready_state(found_name, self.desired_replicas)

    def _service_by_name(self, name: str) -> dict[str, Any]:
        services = self.client.services(filters={"name": name}, status=True)
        if not services:
            raise LookupError(f"service with name {name} was not found")
        for service in services:
            if service["Spec"]["Name"] == name:
                return service
        raise LookupError(
            f"service {name} was not found because it did not match exactly or on suffix"
        )

    @staticmethod
    def _instance_name(name: str, service: Mapping[str, Any]) -> str:
        service_name = service["Spec"]["Name"]
        if name == service_name:
            return name
        return f"{name} ({service_name})"

    def watch_stopped(self, stop: threading.Event) -> Iterator[str]:
        """Yield names of services scaled to zero or removed, until ``stop`` is set."""
        filters = {"scope": "swarm", "type": "service"}
        try:
            for event in self.client.events(filters=filters, decode=True):
                if stop.is_set():
                    return
                attributes = (event.get("Actor") or {}).get("Attributes") or {}
                if attributes.get("replicas.new") == "0" or event.get("Action") == "remove":
                    yield attributes.get("name", "")
        except Exception as exc:
            logger.warning("provider event stream failed: %s", exc)
            return
        logger.debug("provider event stream closed")
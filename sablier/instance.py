"""Instance states reported by providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class Status(str, Enum):
    """Lifecycle status of an instance."""

    READY = "ready"
    NOT_READY = "not-ready"
    UNRECOVERABLE = "unrecoverable"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class State:
    """The observed state of one instance."""

    name: str
    current_replicas: int = 0
    desired_replicas: int = 0
    status: Status = Status.NOT_READY
    message: str = ""

    def is_ready(self) -> bool:
        return self.status is Status.READY

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; an empty message is left out."""
        data: dict[str, Any] = {
            "name": self.name,
            "currentReplicas": self.current_replicas,
            "desiredReplicas": self.desired_replicas,
            "status": self.status.value,
        }
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "State":
        return cls(
            name=data.get("name", ""),
            current_replicas=int(data.get("currentReplicas", 0)),
            desired_replicas=int(data.get("desiredReplicas", 0)),
            status=Status(data.get("status", Status.NOT_READY.value)),
            message=data.get("message", ""),
        )


class InstanceError(Exception):
    """A provider call failed; ``state`` describes the instance afterwards."""

    def __init__(self, state: State) -> None:
        super().__init__(state.message)
        self.state = state


def error_state(name: str, error: BaseException, desired_replicas: int) -> InstanceError:
    """Build the error to raise when a provider call fails."""
    logger.error("%s", error)
    return InstanceError(
        State(
            name=name,
            current_replicas=0,
            desired_replicas=desired_replicas,
            status=Status.UNRECOVERABLE,
            message=str(error),
        )
    )


def unrecoverable_state(name: str, message: str, desired_replicas: int) -> State:
    logger.warning("%s", message)
    return State(
        name=name,
        current_replicas=0,
        desired_replicas=desired_replicas,
        status=Status.UNRECOVERABLE,
        message=message,
    )


def ready_state(name: str, replicas: int) -> State:
    return State(
        name=name,
        current_replicas=replicas,
        desired_replicas=replicas,
        status=Status.READY,
    )


def not_ready_state(name: str, current_replicas: int, desired_replicas: int) -> State:
    return State(
        name=name,
        current_replicas=current_replicas,
        desired_replicas=desired_replicas,
        status=Status.NOT_READY,
    )
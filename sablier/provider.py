"""The interface every workload provider implements."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Mapping

from sablier.instance import State

ENABLE_LABEL = "sablier.enable"
GROUP_LABEL = "sablier.group"
DEFAULT_GROUP = "default"


class Provider(ABC):
    """Starts, stops and inspects workloads.

    ``start``, ``stop`` and ``get_state`` return the instance state and raise
    :class:`sablier.instance.InstanceError` when the underlying call fails.
    """

    @abstractmethod
    def start(self, name: str) -> State:
        ...

    @abstractmethod
    def stop(self, name: str) -> State:
        ...

    @abstractmethod
    def get_state(self, name: str) -> State:
        ...

    @abstractmethod
    def get_groups(self) -> dict[str, list[str]]:
        ...

    @abstractmethod
    def watch_stopped(self, stop: threading.Event) -> Iterator[str]:
        """Yield names of instances that stop, until ``stop`` is set."""


def group_by_label(items: Iterable[tuple[Mapping[str, str] | None, str]]) -> dict[str, list[str]]:
    """Group names by their group label, using the default group when unset."""
    groups: dict[str, list[str]] = {}
    for labels, name in items:
        group = (labels or {}).get(GROUP_LABEL) or DEFAULT_GROUP
        groups.setdefault(group, []).append(name)
    return groups
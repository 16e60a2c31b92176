"""Provider for Kubernetes deployments and statefulsets."""

from __future__ import annotations

import copy
import logging
import queue
import threading
from dataclasses import dataclass
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

DEPLOYMENT = "deployment"
STATEFULSET = "statefulset"
KINDS = (DEPLOYMENT, STATEFULSET)

_POLL_INTERVAL = 0.1


class _KubernetesClient(Protocol):
    """The Kubernetes API calls this provider needs, in API JSON form.

    ``kind`` is ``"deployment"`` or ``"statefulset"``. Listing covers every
    namespace. ``watch_workloads`` yields events such as
    ``{"type": "MODIFIED", "object": {...}}``.
    """

    def list_workloads(self, kind: str, label_selector: str) -> list[dict[str, Any]]:
        ...

    def read_workload(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        ...

    def read_scale(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        ...

    def replace_scale(self, kind: str, namespace: str, name: str, scale: dict[str, Any]) -> Any:
        ...

    def watch_workloads(self, kind: str) -> Iterable[dict[str, Any]]:
        ...


@dataclass(frozen=True)
class WorkloadConfig:
    """A workload reference decoded from an instance name."""

    original_name: str
    kind: str
    namespace: str
    name: str
    replicas: int


def _unsupported_kind(kind: str) -> str:
    return f'unsupported kind "{kind}" must be one of "deployment", "statefulset"'


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _spec_replicas(obj: Mapping[str, Any]) -> int:
    replicas = (obj.get("spec") or {}).get("replicas")
    return 1 if replicas is None else int(replicas)


def _ready_replicas(obj: Mapping[str, Any]) -> int:
    return int((obj.get("status") or {}).get("readyReplicas") or 0)


class KubernetesProvider(Provider):
    """Scales deployments and statefulsets.

    Instance names have the form ``kind<d>namespace<d>name<d>replicas`` where
    ``<d>`` is the delimiter.
    """

    def __init__(self, client: _KubernetesClient, delimiter: str = "_") -> None:
        self.client = client
        self.delimiter = delimiter

    def convert_name(self, name: str) -> WorkloadConfig:
        """Decode an instance name; raise ValueError when it is malformed."""
        parts = name.split(self.delimiter)
        if len(parts) < 4:
            d = self.delimiter
            raise ValueError(f"invalid name should be: kind{d}namespace{d}name{d}replicas")
        try:
            replicas = int(parts[3])
        except ValueError:
            raise ValueError(f'invalid replicas "{parts[3]}" in name {name}') from None
        return WorkloadConfig(
            original_name=name,
            kind=parts[0],
            namespace=parts[1],
            name=parts[2],
            replicas=replicas,
        )

    def workload_name(self, kind: str, namespace: str, name: str, replicas: int) -> str:
        """Encode a workload reference as an instance name."""
        return self.delimiter.join((kind, namespace, name, str(replicas)))

    def _object_name(self, kind: str, obj: Mapping[str, Any], replicas: int) -> str:
        meta = _metadata(obj)
        return self.workload_name(kind, meta.get("namespace", ""), meta.get("name", ""), replicas)

    def start(self, name: str) -> State:
        try:
            config = self.convert_name(name)
        except ValueError as exc:
            return unrecoverable_state(name, str(exc), 0)
        return self._scale(config, config.replicas)

    def stop(self, name: str) -> State:
        try:
            config = self.convert_name(name)
        except ValueError as exc:
            return unrecoverable_state(name, str(exc), 0)
        return self._scale(config, 0)

    def _scale(self, config: WorkloadConfig, replicas: int) -> State:
        if config.kind not in KINDS:
            return unrecoverable_state(
                config.original_name, _unsupported_kind(config.kind), config.replicas
            )
        try:
            scale = copy.deepcopy(
                self.client.read_scale(config.kind, config.namespace, config.name)
            )
            scale.setdefault("spec", {})["replicas"] = replicas
            self.client.replace_scale(config.kind, config.namespace, config.name, scale)
        except Exception as exc:
            raise error_state(config.original_name, exc, config.replicas) from exc
        return not_ready_state(config.original_name, 0, config.replicas)

    def get_groups(self) -> dict[str, list[str]]:
        items: list[tuple[Mapping[str, str] | None, str]] = []
        for kind in KINDS:
            # The replicas annotation is not read yet; every workload scales to 1.
            for obj in self.client.list_workloads(kind, ENABLE_LABEL):
                items.append((_metadata(obj).get("labels"), self._object_name(kind, obj, 1)))
        return group_by_label(items)

    def get_state(self, name: str) -> State:
        try:
            config = self.convert_name(name)
        except ValueError as exc:
            return unrecoverable_state(name, str(exc), 0)
        if config.kind not in KINDS:
            return unrecoverable_state(
                config.original_name, _unsupported_kind(config.kind), config.replicas
            )
        try:
            obj = self.client.read_workload(config.kind, config.namespace, config.name)
        except Exception as exc:
            raise error_state(config.original_name, exc, config.replicas) from exc

        ready = _ready_replicas(obj)
        if _spec_replicas(obj) == ready:
            return ready_state(config.original_name, config.replicas)
        return not_ready_state(config.original_name, ready, config.replicas)

    def _watch_kind(self, kind: str, stop: threading.Event, out: "queue.Queue[str]") -> None:
        seen: dict[tuple[str, str], Mapping[str, Any]] = {}
        try:
            for event in self.client.watch_workloads(kind):
                if stop.is_set():
                    return
                obj = event.get("object") or {}
                meta = _metadata(obj)
                key = (meta.get("namespace", ""), meta.get("name", ""))
                event_type = event.get("type")
                if event_type == "DELETED":
                    seen.pop(key, None)
                    out.put(self._object_name(kind, obj, _spec_replicas(obj)))
                elif event_type == "MODIFIED":
                    old = seen.get(key)
                    seen[key] = obj
                    if old is not None and _metadata(old).get("resourceVersion") == meta.get(
                        "resourceVersion"
                    ):
                        continue
                    if _spec_replicas(obj) == 0:
                        previous = _spec_replicas(old) if old is not None else 0
                        out.put(self._object_name(kind, obj, previous))
                else:
                    seen[key] = obj
        except Exception as exc:
            logger.warning("%s watch failed: %s", kind, exc)
            return
        logger.debug("%s watch closed", kind)

    def watch_stopped(self, stop: threading.Event) -> Iterator[str]:
        """Yield names of workloads scaled to zero or deleted, until ``stop`` is set."""
        names: "queue.Queue[str]" = queue.Queue()
        threads = [
            threading.Thread(
                target=self._watch_kind,
                args=(kind, stop, names),
                name=f"{kind}-watcher",
                daemon=True,
            )
            for kind in KINDS
        ]
        for thread in threads:
            thread.start()
        while not stop.is_set():
            try:
                yield names.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if not any(thread.is_alive() for thread in threads) and names.empty():
                    return
"""Shared fixtures: an in-memory object store and resource builders."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import ConflictError, ListError, NotFoundError, ResourceKind, StoreError


def _matches_selector(labels: dict[str, str], selector: str | None) -> bool:
    """Support the ``key=value`` and ``key`` (exists) selector forms."""
    if not selector:
        return True
    for requirement in selector.split(","):
        if "=" in requirement:
            key, value = requirement.split("=", 1)
            if labels.get(key) != value:
                return False
        elif requirement not in labels:
            return False
    return True


class FakeStore(ObjectStore):
    """Dictionary-backed ObjectStore that records every write."""

    def __init__(self) -> None:
        self.objects: dict[tuple[ResourceKind, str | None, str], dict[str, Any]] = {}
        self.applied: list[dict[str, Any]] = []
        self.deleted: list[tuple[ResourceKind, str | None, str]] = []
        self.updated: list[dict[str, Any]] = []
        self.attached: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_list: set[ResourceKind] = set()
        # (kind, name) pairs whose next write fails once
        self.fail_apply: set[tuple[str, str]] = set()
        self.fail_delete: set[tuple[str, str]] = set()
        self._version = 0

    def add(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind = ResourceKind.from_kind(obj["kind"])
        metadata = obj["metadata"]
        self._version += 1
        metadata["resourceVersion"] = str(self._version)
        self.objects[(kind, metadata.get("namespace"), metadata["name"])] = obj
        return obj

    def find(self, kind: ResourceKind, namespace: str | None, name: str) -> dict[str, Any] | None:
        return self.objects.get((kind, namespace, name))

    def of_kind(self, kind: ResourceKind) -> list[dict[str, Any]]:
        return [obj for (k, _, _), obj in self.objects.items() if k == kind]

    async def list(
        self, kind: ResourceKind, namespace: str | None = None, label_selector: str | None = None
    ) -> list[dict[str, Any]]:
        if kind in self.fail_list:
            raise ListError(f"Failed to list {kind.info.kind} resources")
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in self.objects.items()
            if k == kind
            and (namespace is None or ns == namespace)
            and _matches_selector(obj["metadata"].get("labels") or {}, label_selector)
        ]

    async def get(self, kind: ResourceKind, namespace: str | None, name: str) -> dict[str, Any]:
        obj = self.find(kind, namespace, name)
        if obj is None:
            raise NotFoundError(kind.info.kind, namespace, name)
        return copy.deepcopy(obj)

    async def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind = ResourceKind.from_kind(obj["kind"])
        metadata = obj["metadata"]
        current = self.find(kind, metadata.get("namespace"), metadata["name"])
        if current is None:
            raise NotFoundError(kind.info.kind, metadata.get("namespace"), metadata["name"])
        if metadata.get("resourceVersion") != current["metadata"].get("resourceVersion"):
            raise ConflictError(f"stale {kind.info.kind} {metadata['name']}")
        self.updated.append(copy.deepcopy(obj))
        return copy.deepcopy(self.add(copy.deepcopy(obj)))

    async def apply(self, manifest: dict[str, Any]) -> dict[str, Any]:
        target = (manifest["kind"], manifest["metadata"]["name"])
        if target in self.fail_apply:
            self.fail_apply.discard(target)
            raise StoreError(f"Failed to create {target[0]} {target[1]}")
        self.applied.append(copy.deepcopy(manifest))
        return copy.deepcopy(self.add(copy.deepcopy(manifest)))

    async def delete(self, kind: ResourceKind, namespace: str | None, name: str) -> None:
        target = (kind.info.kind, name)
        if target in self.fail_delete:
            self.fail_delete.discard(target)
            raise StoreError(f"Failed to delete {target[0]} {target[1]}")
        self.deleted.append((kind, namespace, name))
        self.objects.pop((kind, namespace, name), None)

    async def attach_ephemeral_container(self, namespace: str, name: str, container: dict[str, Any]) -> None:
        pod = self.find(ResourceKind.POD, namespace, name)
        if pod is None:
            raise NotFoundError("Pod", namespace, name)
        spec = pod.setdefault("spec", {})
        if spec.get("ephemeralContainers"):
            raise ConflictError(f"Pod {namespace}/{name} already has an ephemeral container")
        spec["ephemeralContainers"] = [container]
        self.attached.append((namespace, name, container))


def namespace(name: str, labels: dict[str, str] | None = None) -> dict[str, Any]:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name, "labels": labels or {}}}


def app_labels(app: str = "myapp", project: str = "acorn") -> dict[str, str]:
    return {"acorn.io/managed": "true", "acorn.io/app-name": app, "acorn.io/app-namespace": project}


def service(
    name: str,
    ns: str,
    ports: list[dict[str, Any]] | None = None,
    selector: dict[str, str] | None = None,
    service_type: str = "ClusterIP",
    external_name: str | None = None,
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {"type": service_type, "ports": ports or []}
    if selector is not None:
        spec["selector"] = selector
    if external_name is not None:
        spec["externalName"] = external_name
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": ns, "labels": labels or {}},
        "spec": spec,
    }


def ingress(
    name: str, ns: str, backends: list[tuple[str, dict[str, Any]]], labels: dict[str, str] | None = None
) -> dict[str, Any]:
    paths = [
        {"path": "/", "pathType": "Prefix", "backend": {"service": {"name": svc, "port": port}}}
        for svc, port in backends
    ]
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": name, "namespace": ns, "labels": labels if labels is not None else app_labels()},
        "spec": {"rules": [{"host": f"{name}.example.com", "http": {"paths": paths}}]},
    }


def node(name: str, cidrs: list[str]) -> dict[str, Any]:
    return {"apiVersion": "v1", "kind": "Node", "metadata": {"name": name}, "spec": {"podCIDRs": cidrs}}


def pod(
    name: str,
    ns: str,
    statuses: dict[str, bool],
    labels: dict[str, str] | None = None,
    ephemeral: list[str] | None = None,
) -> dict[str, Any]:
    """Build a pod; ``statuses`` maps container name to whether it has terminated."""
    container_statuses = [
        {"name": cname, "state": {"terminated": {"exitCode": 0}} if done else {"running": {}}}
        for cname, done in statuses.items()
    ]
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": ns, "labels": labels or {}},
        "spec": {
            "containers": [{"name": cname} for cname in statuses],
            "ephemeralContainers": [{"name": e} for e in ephemeral or []],
        },
        "status": {"containerStatuses": container_statuses},
    }


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def config() -> ControllerConfig:
    return ControllerConfig(debug_image="foo", ingress_controller_namespace="ingress-nginx")

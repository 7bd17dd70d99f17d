"""Read-only snapshots of the cluster resources that trigger reconciliation."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


def _parse_timestamp(timestamp_str: str | None) -> datetime | None:
    """Parse Kubernetes timestamp."""
    if not timestamp_str:
        return None
    try:
        return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class ObjectMeta:
    """The subset of Kubernetes object metadata meshwarden reads."""

    name: str
    namespace: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    resource_version: str | None = None
    deletion_timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, k8s_object: dict[str, Any]) -> "ObjectMeta":
        metadata = k8s_object.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace"),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            finalizers=list(metadata.get("finalizers") or []),
            resource_version=metadata.get("resourceVersion"),
            deletion_timestamp=_parse_timestamp(metadata.get("deletionTimestamp")),
        )

    @property
    def is_deleting(self) -> bool:
        return self.deletion_timestamp is not None

    def has_label(self, key: str, value: str | None = None) -> bool:
        """Check if the object has a specific label."""
        if value is None:
            return key in self.labels
        return self.labels.get(key) == value


@dataclass
class Namespace:
    """A tenant or project namespace."""

    metadata: ObjectMeta

    @classmethod
    def from_dict(cls, k8s_object: dict[str, Any]) -> "Namespace":
        return cls(metadata=ObjectMeta.from_dict(k8s_object))

    @property
    def name(self) -> str:
        return self.metadata.name


class ServiceKind(Enum):
    """How a service exposes its workload."""

    INTERNAL = "internal"
    EXTERNAL_ALIAS = "external-alias"
    EXTERNALLY_REACHABLE = "externally-reachable"

    @classmethod
    def from_service_type(cls, service_type: str | None) -> "ServiceKind":
        if service_type == "ExternalName":
            return cls.EXTERNAL_ALIAS
        if service_type == "LoadBalancer":
            return cls.EXTERNALLY_REACHABLE
        return cls.INTERNAL


@dataclass
class ServicePort:
    """A port declared by a service."""

    port: int
    name: str = ""
    target_port: int | str | None = None

    @classmethod
    def from_dict(cls, port: dict[str, Any]) -> "ServicePort":
        return cls(
            port=int(port.get("port", 0)),
            name=port.get("name") or "",
            target_port=port.get("targetPort"),
        )

    def resolved_target_port(self) -> int | None:
        """
        Get the numeric container port this service port forwards to.

        An absent target port defaults to the service port. A named target port
        refers to a container port name and cannot be resolved from the service
        alone, so it yields None.
        """
        if self.target_port is None:
            return self.port
        if isinstance(self.target_port, int):
            return self.target_port
        if str(self.target_port).isdigit():
            return int(self.target_port)
        return None


@dataclass
class Service:
    """A network identity for a workload."""

    metadata: ObjectMeta
    kind: ServiceKind = ServiceKind.INTERNAL
    selector: dict[str, str] = field(default_factory=dict)
    ports: list[ServicePort] = field(default_factory=list)
    external_name: str | None = None

    @classmethod
    def from_dict(cls, k8s_object: dict[str, Any]) -> "Service":
        spec = k8s_object.get("spec") or {}
        return cls(
            metadata=ObjectMeta.from_dict(k8s_object),
            kind=ServiceKind.from_service_type(spec.get("type")),
            selector=dict(spec.get("selector") or {}),
            ports=[ServicePort.from_dict(p) for p in spec.get("ports") or []],
            external_name=spec.get("externalName"),
        )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""


@dataclass(frozen=True)
class PortRef:
    """A route's reference to a service port, by name or by number."""

    name: str = ""
    number: int = 0

    @classmethod
    def from_dict(cls, port: dict[str, Any]) -> "PortRef":
        return cls(name=port.get("name") or "", number=int(port.get("number") or 0))


@dataclass(frozen=True)
class IngressBackend:
    """One path backend of an ingress rule."""

    service_name: str
    port: PortRef


@dataclass
class Ingress:
    """An externally reachable HTTP route set."""

    metadata: ObjectMeta
    backends: list[IngressBackend] = field(default_factory=list)

    @classmethod
    def from_dict(cls, k8s_object: dict[str, Any]) -> "Ingress":
        spec = k8s_object.get("spec") or {}
        backends = []
        for rule in spec.get("rules") or []:
            http = rule.get("http") or {}
            for path in http.get("paths") or []:
                service = (path.get("backend") or {}).get("service")
                if not service or not service.get("name"):
                    continue
                backends.append(
                    IngressBackend(
                        service_name=service["name"],
                        port=PortRef.from_dict(service.get("port") or {}),
                    )
                )
        return cls(metadata=ObjectMeta.from_dict(k8s_object), backends=backends)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    def ports_by_service(self) -> dict[str, list[PortRef]]:
        """Group backend port references by service name, in order of first appearance."""
        grouped: dict[str, list[PortRef]] = {}
        for backend in self.backends:
            grouped.setdefault(backend.service_name, []).append(backend.port)
        return grouped


@dataclass
class ContainerStatus:
    """Status of one container in a pod."""

    name: str
    terminated: bool = False

    @classmethod
    def from_dict(cls, status: dict[str, Any]) -> "ContainerStatus":
        state = status.get("state") or {}
        return cls(name=status.get("name", ""), terminated=bool(state.get("terminated")))


@dataclass
class Pod:
    """A unit of a workload, possibly part of a batch job."""

    metadata: ObjectMeta
    container_statuses: list[ContainerStatus] = field(default_factory=list)
    ephemeral_containers: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, k8s_object: dict[str, Any]) -> "Pod":
        spec = k8s_object.get("spec") or {}
        status = k8s_object.get("status") or {}
        return cls(
            metadata=ObjectMeta.from_dict(k8s_object),
            container_statuses=[ContainerStatus.from_dict(s) for s in status.get("containerStatuses") or []],
            ephemeral_containers=[c.get("name", "") for c in spec.get("ephemeralContainers") or []],
        )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

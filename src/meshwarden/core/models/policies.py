"""Desired mesh-policy objects produced by the synthesizer."""

from dataclasses import dataclass, field
from enum import Enum

from meshwarden.core.models.kinds import ResourceKind


class MtlsMode(Enum):
    """Mutual TLS modes for PeerAuthentication."""

    STRICT = "STRICT"
    PERMISSIVE = "PERMISSIVE"


@dataclass(frozen=True)
class ObjectRef:
    """Identity of an object in the store."""

    kind: ResourceKind
    namespace: str | None
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind.info.kind} {self.namespace}/{self.name}"
        return f"{self.kind.info.kind} {self.name}"


@dataclass
class MeshObject:
    """Common identity and labelling for every produced object."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)

    kind: ResourceKind = field(init=False, repr=False)

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(self.kind, self.namespace, self.name)


@dataclass
class PeerAuthentication(MeshObject):
    """
    Required mTLS mode for a namespace or for ports on a workload selector.

    No selector means the policy is namespace-wide.
    """

    selector: dict[str, str] | None = None
    mode: MtlsMode | None = None
    port_modes: dict[int, MtlsMode] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.kind = ResourceKind.PEER_AUTHENTICATION


@dataclass
class Source:
    """Where allowed traffic may come from."""

    namespaces: list[str] = field(default_factory=list)
    ip_blocks: list[str] = field(default_factory=list)
    not_ip_blocks: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        """Check if no source is specified (matches all sources)."""
        return not (self.namespaces or self.ip_blocks or self.not_ip_blocks)


@dataclass
class AuthorizationRule:
    """One ALLOW rule: sources times destination ports."""

    sources: list[Source] = field(default_factory=list)
    ports: list[int] = field(default_factory=list)


@dataclass
class AuthorizationPolicy(MeshObject):
    """Allowed traffic into a selector, or into the whole namespace when no selector is set."""

    selector: dict[str, str] | None = None
    rules: list[AuthorizationRule] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.kind = ResourceKind.AUTHORIZATION_POLICY

    def get_allowed_ports(self) -> set[int]:
        """Get all allowed ports from all rules."""
        ports: set[int] = set()
        for rule in self.rules:
            ports.update(rule.ports)
        return ports


@dataclass
class VirtualService(MeshObject):
    """A routing alias sending traffic for some hosts to another internal destination."""

    hosts: list[str] = field(default_factory=list)
    destination_host: str = ""
    destination_port: int = 0

    def __post_init__(self) -> None:
        self.kind = ResourceKind.VIRTUAL_SERVICE


@dataclass
class SynthesisResult:
    """Complete desired object set for one trigger, plus an optional retry request in seconds."""

    objects: list[MeshObject] = field(default_factory=list)
    retry_after: float | None = None

    def add(self, *objects: MeshObject) -> None:
        self.objects.extend(objects)

    def request_retry(self, delay: float) -> None:
        """Ask to be re-run; the shortest requested delay wins."""
        if self.retry_after is None or delay < self.retry_after:
            self.retry_after = delay

    def refs(self) -> set[ObjectRef]:
        return {obj.ref for obj in self.objects}

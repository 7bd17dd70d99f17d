"""Resource kinds read and written by meshwarden."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class KindInfo:
    """API details for a resource kind."""

    api_version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def group(self) -> str:
        """API group, empty for the core group."""
        if "/" in self.api_version:
            return self.api_version.split("/", 1)[0]
        return ""

    @property
    def version(self) -> str:
        """API version without the group."""
        return self.api_version.split("/", 1)[-1]


class ResourceKind(Enum):
    """Kinds the controller watches or produces."""

    NAMESPACE = KindInfo("v1", "Namespace", "namespaces", namespaced=False)
    NODE = KindInfo("v1", "Node", "nodes", namespaced=False)
    POD = KindInfo("v1", "Pod", "pods")
    SERVICE = KindInfo("v1", "Service", "services")
    INGRESS = KindInfo("networking.k8s.io/v1", "Ingress", "ingresses")

    # Cilium per-node IPAM records
    CILIUM_NODE = KindInfo("cilium.io/v2", "CiliumNode", "ciliumnodes", namespaced=False)

    # Istio objects produced by the synthesizer
    PEER_AUTHENTICATION = KindInfo("security.istio.io/v1beta1", "PeerAuthentication", "peerauthentications")
    AUTHORIZATION_POLICY = KindInfo("security.istio.io/v1beta1", "AuthorizationPolicy", "authorizationpolicies")
    VIRTUAL_SERVICE = KindInfo("networking.istio.io/v1beta1", "VirtualService", "virtualservices")

    @property
    def info(self) -> KindInfo:
        return self.value

    @property
    def is_core(self) -> bool:
        """Check if the kind lives in the core API group."""
        return self.info.group == ""

    @classmethod
    def from_kind(cls, kind: str) -> "ResourceKind":
        """Look up a kind by its Kubernetes ``kind`` string."""
        for member in cls:
            if member.info.kind == kind:
                return member
        raise ValueError(f"Unsupported kind: {kind}")

    @classmethod
    def mesh_kinds(cls) -> list["ResourceKind"]:
        """Kinds produced by the policy synthesizer."""
        return [cls.PEER_AUTHENTICATION, cls.AUTHORIZATION_POLICY, cls.VIRTUAL_SERVICE]

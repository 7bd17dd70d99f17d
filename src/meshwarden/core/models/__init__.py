"""Core domain models for meshwarden."""

from meshwarden.core.models.errors import (
    BadAliasError,
    ConflictError,
    ListError,
    MeshwardenError,
    NotFoundError,
    StoreError,
)
from meshwarden.core.models.kinds import KindInfo, ResourceKind
from meshwarden.core.models.policies import (
    AuthorizationPolicy,
    AuthorizationRule,
    MeshObject,
    MtlsMode,
    ObjectRef,
    PeerAuthentication,
    Source,
    SynthesisResult,
    VirtualService,
)
from meshwarden.core.models.resources import (
    ContainerStatus,
    Ingress,
    IngressBackend,
    Namespace,
    ObjectMeta,
    Pod,
    PortRef,
    Service,
    ServiceKind,
    ServicePort,
)

__all__ = [
    "AuthorizationPolicy",
    "AuthorizationRule",
    "BadAliasError",
    "ConflictError",
    "ContainerStatus",
    "Ingress",
    "IngressBackend",
    "KindInfo",
    "ListError",
    "MeshObject",
    "MeshwardenError",
    "MtlsMode",
    "Namespace",
    "NotFoundError",
    "ObjectMeta",
    "ObjectRef",
    "PeerAuthentication",
    "Pod",
    "PortRef",
    "ResourceKind",
    "Service",
    "ServiceKind",
    "ServicePort",
    "Source",
    "StoreError",
    "SynthesisResult",
    "VirtualService",
]

"""Label constants and operating switches shared by every handler."""

from dataclasses import dataclass, field
from enum import Enum


class CidrSource(Enum):
    """Where pod address ranges are read from."""

    NODES = "nodes"
    CILIUM = "cilium"


@dataclass(frozen=True)
class Labels:
    """Label keys written by the workload platform and by meshwarden."""

    # Platform labels
    project: str = "acorn.io/project"
    app_name: str = "acorn.io/app-name"
    app_namespace: str = "acorn.io/app-namespace"
    container_name: str = "acorn.io/container-name"
    job_name: str = "acorn.io/job-name"
    platform_managed: str = "acorn.io/managed"

    # Istio
    injection: str = "istio-injection"

    # meshwarden markers
    managed: str = "meshwarden.io/managed"
    owner_kind: str = "meshwarden.io/owner-kind"
    owner_namespace: str = "meshwarden.io/owner-namespace"
    # As a label the value is shortened to fit; the annotation of the same key holds it in full
    owner_name: str = "meshwarden.io/owner-name"
    handler: str = "meshwarden.io/handler"

    MANAGED_VALUE = "true"

    def managed_selector(self) -> str:
        """Label selector matching every object meshwarden produced."""
        return f"{self.managed}={self.MANAGED_VALUE}"


@dataclass
class ControllerConfig:
    """Runtime configuration, built once by the CLI and passed to every handler."""

    # Image used for the sidecar shutdown container; needs curl
    debug_image: str = "curlimages/curl:8.5.0"

    # Local/on-premises clusters serve LoadBalancer services from in-cluster pods
    local: bool = False

    ingress_controller_namespace: str = "ingress-nginx"
    allow_traffic_from_namespaces: list[str] = field(default_factory=list)

    cidr_source: CidrSource = CidrSource.NODES

    # None follows the mode: exclude pod CIDRs in cloud mode only
    exclude_pod_cidrs_from_external: bool | None = None

    proxy_container_name: str = "istio-proxy"
    proxy_admin_url: str = "http://localhost:15000/quitquitquit"
    shutdown_container_name: str = "shutdown-sidecar"

    finalizer: str = "meshwarden.io/policy-cleanup"

    # Seconds between orphan checks of each managed object
    orphan_resync_interval: float = 300.0

    # Seconds to wait before re-running when an ingress backend does not exist yet
    missing_backend_retry: float = 3.0

    labels: Labels = field(default_factory=Labels)

    @property
    def excludes_pod_cidrs(self) -> bool:
        """Whether external-exposure rules should exclude in-cluster pod ranges."""
        if self.exclude_pod_cidrs_from_external is None:
            return not self.local
        return self.exclude_pod_cidrs_from_external

    @staticmethod
    def parse_namespace_list(value: str | None) -> list[str]:
        """Split a comma-separated namespace list, dropping blanks."""
        if not value:
            return []
        return [ns.strip() for ns in value.split(",") if ns.strip()]

"""Derive the Istio security objects a piece of cluster topology calls for."""

import logging
from typing import Any

from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import (
    AuthorizationPolicy,
    AuthorizationRule,
    Ingress,
    MeshObject,
    MtlsMode,
    Namespace,
    NotFoundError,
    PeerAuthentication,
    ResourceKind,
    Service,
    ServiceKind,
    Source,
    SynthesisResult,
    VirtualService,
)
from meshwarden.mesh.cidr import collect_pod_cidrs
from meshwarden.mesh.resolver import TopologyResolver, match_target_ports
from meshwarden.utils import safe_concat_name

logger = logging.getLogger(__name__)

ANYWHERE = "0.0.0.0/0"


class PolicySynthesizer:
    """
    Computes the complete desired mesh-object set for one triggering resource.

    Every method recomputes its whole output from current state and never writes
    to the store, so running it twice on the same input gives the same objects.
    """

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config
        self.labels = config.labels
        self.resolver = TopologyResolver(store)

    async def policies_for_app(self, obj: dict[str, Any]) -> SynthesisResult:
        """
        Lock an app namespace down to its project.

        The PeerAuthentication puts the whole namespace in STRICT mTLS mode, so
        only pods in the mesh can reach it. The AuthorizationPolicy only lets in
        traffic from namespaces of the same project, the ingress controller
        namespace and the configured allow-list.
        """
        namespace = Namespace.from_dict(obj)
        project = namespace.metadata.labels.get(self.labels.app_namespace, "")
        result = SynthesisResult()

        result.add(
            PeerAuthentication(
                name=safe_concat_name(namespace.name, "strict"),
                namespace=namespace.name,
                labels=self._managed_labels(),
                mode=MtlsMode.STRICT,
            )
        )

        project_namespaces = await self.store.list(
            ResourceKind.NAMESPACE, label_selector=f"{self.labels.app_namespace}={project}"
        )
        allowed: list[str] = []
        candidates = [
            *self.config.allow_traffic_from_namespaces,
            self.config.ingress_controller_namespace,
            *(Namespace.from_dict(ns).name for ns in project_namespaces),
        ]
        for name in candidates:
            if name and name not in allowed:
                allowed.append(name)

        result.add(
            AuthorizationPolicy(
                name=safe_concat_name(namespace.name, "authorization"),
                namespace=namespace.name,
                labels=self._managed_labels(),
                rules=[AuthorizationRule(sources=[Source(namespaces=allowed)])],
            )
        )

        return result

    async def policies_for_ingress(self, obj: dict[str, Any]) -> SynthesisResult:
        """
        Open the ports an ingress publishes to traffic from inside the cluster.

        For every backend service the ingress routes to, a PeerAuthentication
        sets the published container ports to PERMISSIVE (the ingress controller
        is not in the mesh) and an AuthorizationPolicy allows those ports from the
        pod CIDRs. Both live in the namespace of the resolved backend, which
        differs from the ingress namespace when the service is an alias.

        A backend service that does not exist yet is skipped and a retry is
        requested; an alias that cannot be resolved raises BadAliasError.
        """
        ingress = Ingress.from_dict(obj)
        project = ingress.metadata.labels.get(self.labels.app_namespace, "")
        app = ingress.metadata.labels.get(self.labels.app_name, "")
        result = SynthesisResult()

        # (namespace, policy name) -> (selector, ports); an alias and its target share one entry
        groups: dict[tuple[str, str], tuple[dict[str, str], list[int]]] = {}
        for service_name, refs in ingress.ports_by_service().items():
            try:
                backend = await self.resolver.resolve_backend(ingress.namespace, service_name)
            except NotFoundError:
                # The service may not have been created yet
                logger.debug(
                    "Service %s/%s for ingress %s not found, retrying",
                    ingress.namespace,
                    service_name,
                    ingress.name,
                )
                result.request_retry(self.config.missing_backend_retry)
                continue

            target_ports = match_target_ports(refs, backend.ports)
            if not target_ports:
                logger.debug(
                    "Ingress %s/%s publishes no resolvable port of %s", ingress.namespace, ingress.name, service_name
                )
                continue

            policy_name = safe_concat_name(*(p for p in (project, app, ingress.name, backend.service_name) if p))
            _, ports = groups.setdefault((backend.namespace, policy_name), (backend.selector, []))
            ports.extend(p for p in target_ports if p not in ports)

        if not groups:
            return result

        pod_cidrs = sorted(await collect_pod_cidrs(self.store, self.config.cidr_source))
        for (namespace, policy_name), (selector, ports) in groups.items():
            result.add(*self._permissive_ports(policy_name, namespace, selector, ports, Source(ip_blocks=list(pod_cidrs))))

        return result

    async def policies_for_service(self, obj: dict[str, Any]) -> SynthesisResult:
        """
        Open the ports of a LoadBalancer service to traffic from outside the mesh.

        Other service kinds produce nothing. The AuthorizationPolicy allows any
        address; when pod CIDR exclusion is on, in-cluster pod ranges are carved
        out so only genuinely external traffic is let in.
        """
        service = Service.from_dict(obj)
        result = SynthesisResult()
        if service.kind != ServiceKind.EXTERNALLY_REACHABLE:
            return result

        project = service.metadata.labels.get(self.labels.app_namespace, "")
        app = service.metadata.labels.get(self.labels.app_name, "")
        container = service.metadata.labels.get(self.labels.container_name, "")

        target_ports: list[int] = []
        for port in service.ports:
            target = port.resolved_target_port()
            if target is not None and target not in target_ports:
                target_ports.append(target)
        if not target_ports:
            return result

        source = Source(ip_blocks=[ANYWHERE])
        if self.config.excludes_pod_cidrs:
            source.not_ip_blocks = sorted(await collect_pod_cidrs(self.store, self.config.cidr_source))

        policy_name = safe_concat_name(*(part for part in (project, app, service.name, container) if part))
        result.add(*self._permissive_ports(policy_name, service.namespace, service.selector, target_ports, source))
        return result

    async def virtual_service_for_link(self, obj: dict[str, Any]) -> SynthesisResult:
        """Route traffic for an alias service to the service it points at."""
        service = Service.from_dict(obj)
        result = SynthesisResult()
        if service.kind != ServiceKind.EXTERNAL_ALIAS or not service.ports or not service.external_name:
            return result

        destination_port = service.ports[0].resolved_target_port()
        if destination_port is None:
            return result

        result.add(
            VirtualService(
                name=service.name,
                namespace=service.namespace,
                labels=self._managed_labels(),
                hosts=[service.name],
                destination_host=service.external_name,
                destination_port=destination_port,
            )
        )
        return result

    def _permissive_ports(
        self,
        name: str,
        namespace: str,
        selector: dict[str, str],
        ports: list[int],
        source: Source,
    ) -> list[MeshObject]:
        peer_auth = PeerAuthentication(
            name=name,
            namespace=namespace,
            labels=self._managed_labels(),
            selector=dict(selector),
            port_modes={port: MtlsMode.PERMISSIVE for port in ports},
        )
        auth_policy = AuthorizationPolicy(
            name=name,
            namespace=namespace,
            labels=self._managed_labels(),
            selector=dict(selector),
            rules=[AuthorizationRule(sources=[source], ports=list(ports))],
        )
        return [peer_auth, auth_policy]

    def _managed_labels(self) -> dict[str, str]:
        return {self.labels.managed: self.labels.MANAGED_VALUE}

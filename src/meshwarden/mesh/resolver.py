"""Resolve services to the workloads that actually back them."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import (
    BadAliasError,
    NotFoundError,
    PortRef,
    ResourceKind,
    Service,
    ServiceKind,
    ServicePort,
)

logger = logging.getLogger(__name__)


@dataclass
class Backend:
    """The concrete workload behind a service."""

    selector: dict[str, str]
    namespace: str
    service_name: str
    ports: list[ServicePort] = field(default_factory=list)


def parse_alias_target(external_name: str | None) -> tuple[str, str] | None:
    """
    Parse an in-cluster alias target of the form ``<name>.<namespace>.svc[.<suffix>]``.

    Returns:
        (name, namespace), or None if the value is not an in-cluster service address.
    """
    if not external_name:
        return None
    parts = external_name.split(".")
    if len(parts) < 3 or parts[2] != "svc" or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def match_target_ports(refs: Iterable[PortRef], ports: list[ServicePort]) -> list[int]:
    """
    Map route port references onto the container ports a service forwards to.

    Each reference is matched by name first, then by exact port number. A
    reference with no match, or whose target port is named, is left out.
    Duplicate target ports are reported once, in first-match order.
    """
    target_ports: list[int] = []
    for ref in refs:
        match = None
        if ref.name:
            match = next((p for p in ports if p.name and p.name == ref.name), None)
        if match is None and ref.number:
            match = next((p for p in ports if p.port == ref.number), None)
        if match is None:
            continue

        target = match.resolved_target_port()
        if target is not None and target not in target_ports:
            target_ports.append(target)

    return target_ports


class TopologyResolver:
    """Follow a service, and at most one alias hop, to its backing selector."""

    def __init__(self, store: ObjectStore):
        self.store = store

    async def resolve_backend(self, namespace: str, service_name: str) -> Backend:
        """
        Resolve a service to its backend selector, namespace and ports.

        Raises:
            NotFoundError: if the named service does not exist.
            BadAliasError: if an alias cannot be parsed, its target does not
                exist, or its target is itself an alias.
        """
        service = await self._get_service(namespace, service_name)

        if service.kind != ServiceKind.EXTERNAL_ALIAS:
            return self._backend(service)

        target = parse_alias_target(service.external_name)
        if target is None:
            raise BadAliasError(namespace, service_name, f"cannot parse target {service.external_name!r}")

        target_name, target_namespace = target
        try:
            target_service = await self._get_service(target_namespace, target_name)
        except NotFoundError as e:
            raise BadAliasError(
                namespace, service_name, f"target {target_namespace}/{target_name} does not exist"
            ) from e

        if target_service.kind == ServiceKind.EXTERNAL_ALIAS:
            raise BadAliasError(
                namespace, service_name, f"target {target_namespace}/{target_name} is itself an alias"
            )

        logger.debug(
            "Resolved alias %s/%s to %s/%s", namespace, service_name, target_namespace, target_name
        )
        return self._backend(target_service)

    async def _get_service(self, namespace: str, name: str) -> Service:
        return Service.from_dict(await self.store.get(ResourceKind.SERVICE, namespace, name))

    def _backend(self, service: Service) -> Backend:
        return Backend(
            selector=dict(service.selector),
            namespace=service.namespace,
            service_name=service.name,
            ports=list(service.ports),
        )

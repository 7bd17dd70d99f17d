"""Istio manifest converter."""

from typing import Any

from meshwarden.core.models import (
    AuthorizationPolicy,
    AuthorizationRule,
    MeshObject,
    ObjectRef,
    PeerAuthentication,
    ResourceKind,
    Source,
    VirtualService,
)


class IstioConverter:
    """Convert meshwarden desired objects to Istio CRD manifests."""

    def export(self, obj: MeshObject) -> dict[str, Any]:
        """Export any produced object to its manifest."""
        if isinstance(obj, PeerAuthentication):
            return self.export_peer_authentication(obj)
        if isinstance(obj, AuthorizationPolicy):
            return self.export_authorization_policy(obj)
        if isinstance(obj, VirtualService):
            return self.export_virtual_service(obj)
        raise TypeError(f"Cannot export {type(obj).__name__}")

    def export_peer_authentication(self, policy: PeerAuthentication) -> dict[str, Any]:
        """
        Export a PeerAuthentication.

        Port-level modes are keyed by container port; Istio requires the keys
        to be strings in the manifest.
        """
        manifest = self._base_manifest(policy)

        if policy.selector is not None:
            manifest["spec"]["selector"] = {"matchLabels": dict(policy.selector)}
        if policy.mode is not None:
            manifest["spec"]["mtls"] = {"mode": policy.mode.value}
        if policy.port_modes:
            manifest["spec"]["portLevelMtls"] = {
                str(port): {"mode": mode.value} for port, mode in sorted(policy.port_modes.items())
            }

        return manifest

    def export_authorization_policy(self, policy: AuthorizationPolicy) -> dict[str, Any]:
        """Export an ALLOW AuthorizationPolicy."""
        manifest = self._base_manifest(policy)
        manifest["spec"]["action"] = "ALLOW"

        if policy.selector is not None:
            manifest["spec"]["selector"] = {"matchLabels": dict(policy.selector)}

        rules = [self._build_rule(rule) for rule in policy.rules]
        if rules:
            manifest["spec"]["rules"] = rules

        return manifest

    def export_virtual_service(self, service: VirtualService) -> dict[str, Any]:
        """Export a VirtualService that sends all HTTP traffic to one destination."""
        manifest = self._base_manifest(service)
        manifest["spec"] = {
            "hosts": list(service.hosts),
            "http": [
                {
                    "route": [
                        {
                            "destination": {
                                "host": service.destination_host,
                                "port": {"number": service.destination_port},
                            }
                        }
                    ]
                }
            ],
        }
        return manifest

    def _base_manifest(self, obj: MeshObject) -> dict[str, Any]:
        return {
            "apiVersion": obj.kind.info.api_version,
            "kind": obj.kind.info.kind,
            "metadata": {
                "name": obj.name,
                "namespace": obj.namespace,
                "labels": dict(obj.labels),
            },
            "spec": {},
        }

    def _build_rule(self, rule: AuthorizationRule) -> dict[str, Any]:
        built: dict[str, Any] = {}

        from_clause = [self._build_source(source) for source in rule.sources if not source.is_empty()]
        if from_clause:
            built["from"] = from_clause

        # Ports are strings in the Istio API
        if rule.ports:
            built["to"] = [{"operation": {"ports": [str(p) for p in rule.ports]}}]

        return built

    def _build_source(self, source: Source) -> dict[str, Any]:
        """Build one 'from' entry from policy source."""
        source_item: dict[str, Any] = {"source": {}}

        if source.namespaces:
            source_item["source"]["namespaces"] = list(source.namespaces)
        if source.ip_blocks:
            source_item["source"]["ipBlocks"] = list(source.ip_blocks)
        if source.not_ip_blocks:
            source_item["source"]["notIpBlocks"] = list(source.not_ip_blocks)

        return source_item


def ref_from_manifest(manifest: dict[str, Any]) -> ObjectRef:
    """Get the identity of a manifest or stored object."""
    metadata = manifest.get("metadata") or {}
    return ObjectRef(ResourceKind.from_kind(manifest["kind"]), metadata.get("namespace"), metadata.get("name", ""))

"""Mesh topology helpers."""

from meshwarden.mesh.cidr import collect_pod_cidrs
from meshwarden.mesh.resolver import Backend, TopologyResolver, match_target_ports, parse_alias_target

__all__ = ["Backend", "TopologyResolver", "collect_pod_cidrs", "match_target_ports", "parse_alias_target"]

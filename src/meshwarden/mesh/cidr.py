"""Collect the IP ranges that belong to pods inside the cluster."""

import logging
from typing import Any

from meshwarden.core.config import CidrSource
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import ResourceKind

logger = logging.getLogger(__name__)


def _node_pod_cidrs(node: dict[str, Any]) -> list[str]:
    spec = node.get("spec") or {}
    return list(spec.get("podCIDRs") or [])


def _cilium_node_pod_cidrs(cilium_node: dict[str, Any]) -> list[str]:
    # CiliumNode keeps its allocations under spec.ipam.podCIDRs
    ipam = (cilium_node.get("spec") or {}).get("ipam") or {}
    return list(ipam.get("podCIDRs") or [])


async def collect_pod_cidrs(store: ObjectStore, source: CidrSource = CidrSource.NODES) -> set[str]:
    """
    Collect the pod CIDRs allocated to every node.

    Ranges are deduplicated by exact string match; overlapping ranges are not
    merged. The result is recomputed on every call so it follows node changes.

    Raises:
        ListError: if the node records cannot be listed.
    """
    if source == CidrSource.CILIUM:
        nodes = await store.list(ResourceKind.CILIUM_NODE)
        extract = _cilium_node_pod_cidrs
    else:
        nodes = await store.list(ResourceKind.NODE)
        extract = _node_pod_cidrs

    cidrs: set[str] = set()
    for node in nodes:
        cidrs.update(extract(node))

    logger.debug("Collected %d pod CIDRs from %d %s records", len(cidrs), len(nodes), source.value)
    return cidrs

"""CLI command implementations."""

import logging
from typing import Any

import yaml
from rich.console import Console
from rich.table import Table

from meshwarden.controller import Reconciler, RouteMode, build_router, run_operator
from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import MeshObject, ObjectMeta
from meshwarden.k8s.client import K8sClient
from meshwarden.mesh.cidr import collect_pod_cidrs
from meshwarden.mesh.istio.converter import IstioConverter

console = Console()
logger = logging.getLogger(__name__)


async def run_controller_async(kubeconfig: str | None, config: ControllerConfig, workers: int) -> None:
    """Run the controller until interrupted."""
    k8s_client = K8sClient(kubeconfig)
    reconciler = Reconciler(k8s_client, config, build_router(k8s_client, config))
    try:
        await run_operator(reconciler, config, workers=workers, kubeconfig=kubeconfig)
    finally:
        await k8s_client.close()


async def collect_desired_objects(store: ObjectStore, config: ControllerConfig) -> list[MeshObject]:
    """Run every synthesizing route over the current cluster state without writing anything."""
    router = build_router(store, config)
    objects: list[MeshObject] = []

    for route in router.routes:
        if route.mode != RouteMode.SYNTHESIZE:
            continue
        for obj in await store.list(route.kind):
            meta = ObjectMeta.from_dict(obj)
            if meta.is_deleting or not route.predicate(meta):
                continue
            synthesis = await route.handler(obj)
            if synthesis.retry_after is not None:
                logger.warning(
                    "%s %s/%s references a backend that does not exist yet",
                    route.kind.info.kind,
                    meta.namespace,
                    meta.name,
                )
            objects.extend(synthesis.objects)

    return objects


async def render_policies_async(kubeconfig: str | None, config: ControllerConfig, output: str) -> None:
    """Print the desired objects for the current cluster."""
    k8s_client = K8sClient(kubeconfig)
    try:
        objects = await collect_desired_objects(k8s_client, config)
    finally:
        await k8s_client.close()

    if output == "yaml":
        _output_yaml(objects)
    else:
        _output_table(objects)


async def list_cidrs_async(kubeconfig: str | None, config: ControllerConfig) -> None:
    """Print collected pod CIDRs, one per line."""
    k8s_client = K8sClient(kubeconfig)
    try:
        cidrs = await collect_pod_cidrs(k8s_client, config.cidr_source)
    finally:
        await k8s_client.close()

    if not cidrs:
        console.print("No pod CIDRs found")
        return
    for cidr in sorted(cidrs):
        console.print(cidr)


def _output_table(objects: list[MeshObject]) -> None:
    """Output objects as a table."""
    if not objects:
        console.print("No policies would be produced")
        return

    table = Table()
    table.add_column("NAMESPACE")
    table.add_column("NAME")
    table.add_column("KIND")
    table.add_column("SELECTOR")

    for obj in objects:
        selector: Any = getattr(obj, "selector", None)
        table.add_row(
            obj.namespace,
            obj.name,
            obj.kind.info.kind,
            ",".join(f"{k}={v}" for k, v in sorted(selector.items())) if selector else "<namespace>",
        )

    console.print(table)


def _output_yaml(objects: list[MeshObject]) -> None:
    """Output objects as a multi-document YAML stream."""
    converter = IstioConverter()
    manifests = [converter.export(obj) for obj in objects]
    print(yaml.safe_dump_all(manifests, sort_keys=False), end="")

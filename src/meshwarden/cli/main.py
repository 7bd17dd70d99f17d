"""Main CLI entry point."""

import asyncio
import logging

import click
from rich.logging import RichHandler

from meshwarden.cli.commands import list_cidrs_async, render_policies_async, run_controller_async
from meshwarden.core.config import CidrSource, ControllerConfig


def setup_logging(level: str) -> None:
    """Send log records through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def config_options(fn):
    """Options shared by every command that builds a ControllerConfig."""
    options = [
        click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig (in-cluster config if unset)"),
        click.option(
            "--debug-image",
            envvar="MESHWARDEN_DEBUG_IMAGE",
            default=ControllerConfig.debug_image,
            show_default=True,
            help="Image used to kill Istio sidecars (needs curl installed)",
        ),
        click.option(
            "--local/--cloud",
            envvar="MESHWARDEN_LOCAL",
            default=False,
            help="Local clusters serve LoadBalancer services from in-cluster pods",
        ),
        click.option(
            "--ingress-controller-namespace",
            envvar="MESHWARDEN_INGRESS_CONTROLLER_NAMESPACE",
            default=ControllerConfig.ingress_controller_namespace,
            show_default=True,
            help="Namespace of the ingress controller",
        ),
        click.option(
            "--allow-traffic-from-namespaces",
            envvar="MESHWARDEN_ALLOW_TRAFFIC_FROM_NAMESPACES",
            default="",
            help="Comma-separated namespaces allowed to reach every app",
        ),
        click.option(
            "--cidr-source",
            envvar="MESHWARDEN_CIDR_SOURCE",
            type=click.Choice([source.value for source in CidrSource]),
            default=CidrSource.NODES.value,
            show_default=True,
            help="Where to read pod CIDRs from",
        ),
        click.option(
            "--exclude-pod-cidrs/--no-exclude-pod-cidrs",
            envvar="MESHWARDEN_EXCLUDE_POD_CIDRS",
            default=None,
            help="Exclude pod CIDRs from LoadBalancer allow rules (default: only in cloud mode)",
        ),
        click.option("--log-level", envvar="MESHWARDEN_LOG_LEVEL", default="info", show_default=True),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def build_config(
    debug_image: str,
    local: bool,
    ingress_controller_namespace: str,
    allow_traffic_from_namespaces: str,
    cidr_source: str,
    exclude_pod_cidrs: bool | None,
) -> ControllerConfig:
    return ControllerConfig(
        debug_image=debug_image,
        local=local,
        ingress_controller_namespace=ingress_controller_namespace,
        allow_traffic_from_namespaces=ControllerConfig.parse_namespace_list(allow_traffic_from_namespaces),
        cidr_source=CidrSource(cidr_source),
        exclude_pod_cidrs_from_external=exclude_pod_cidrs,
    )


@click.group()
@click.version_option()
def cli() -> None:
    """meshwarden - Keep Istio security policies in sync with workload topology."""
    pass


@cli.command("run")
@config_options
@click.option("--workers", envvar="MESHWARDEN_WORKERS", type=int, default=4, show_default=True)
def run(kubeconfig: str | None, log_level: str, workers: int, **kwargs) -> None:
    """Run the controller."""
    setup_logging(log_level)
    asyncio.run(run_controller_async(kubeconfig, build_config(**kwargs), workers))


@cli.command("render")
@config_options
@click.option("--output", "-o", type=click.Choice(["table", "yaml"]), default="table", help="Output format")
def render(kubeconfig: str | None, log_level: str, output: str, **kwargs) -> None:
    """Print the policies the controller would produce for the current cluster."""
    setup_logging(log_level)
    asyncio.run(render_policies_async(kubeconfig, build_config(**kwargs), output))


@cli.command("cidrs")
@config_options
def cidrs(kubeconfig: str | None, log_level: str, **kwargs) -> None:
    """Print the pod CIDRs collected from the cluster."""
    setup_logging(log_level)
    asyncio.run(list_cidrs_async(kubeconfig, build_config(**kwargs)))


if __name__ == "__main__":
    cli()

"""Static table of which handler runs for which resource."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from meshwarden.core.config import ControllerConfig, Labels
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import ObjectMeta, ResourceKind
from meshwarden.mesh.istio import OrphanCollector, PolicySynthesizer, SidecarTerminator, ensure_injection_label

Handler = Callable[[dict[str, Any]], Awaitable[Any]]
Predicate = Callable[[ObjectMeta], bool]


class RouteMode(Enum):
    """How the reconciler treats a handler's output."""

    # Handler returns a SynthesisResult; its objects are applied and the rest pruned
    SYNTHESIZE = "synthesize"
    # Handler acts on the store itself; its return value is ignored
    ACTION = "action"


@dataclass(frozen=True)
class Route:
    """One row of the dispatch table."""

    name: str
    kind: ResourceKind
    predicate: Predicate
    handler: Handler
    mode: RouteMode = RouteMode.SYNTHESIZE
    # Run the handler once more while the trigger is being deleted
    finalize: bool = False
    # Seconds between re-runs for matching objects that see no events
    resync: float | None = None


class Predicates:
    """Label predicates over resource metadata."""

    def __init__(self, labels: Labels):
        self.labels = labels

    def project_namespace(self, meta: ObjectMeta) -> bool:
        return meta.has_label(self.labels.project, "true")

    def app_namespace(self, meta: ObjectMeta) -> bool:
        return meta.has_label(self.labels.app_namespace)

    def platform_managed(self, meta: ObjectMeta) -> bool:
        return meta.has_label(self.labels.platform_managed, "true")

    def app_resource(self, meta: ObjectMeta) -> bool:
        """Managed by the platform and labelled with its app and project."""
        return (
            self.platform_managed(meta)
            and meta.has_label(self.labels.app_name)
            and meta.has_label(self.labels.app_namespace)
        )

    def job_pod(self, meta: ObjectMeta) -> bool:
        return self.app_resource(meta) and meta.has_label(self.labels.job_name)

    def mesh_managed(self, meta: ObjectMeta) -> bool:
        return meta.has_label(self.labels.managed, self.labels.MANAGED_VALUE)


class Router:
    """Routes evaluated in a fixed order; every matching route runs."""

    def __init__(self, routes: list[Route]):
        self.routes = list(routes)

    def routes_for(self, kind: ResourceKind) -> list[Route]:
        return [route for route in self.routes if route.kind == kind]

    def kinds(self) -> list[ResourceKind]:
        """Watched kinds, in order of first appearance."""
        kinds: list[ResourceKind] = []
        for route in self.routes:
            if route.kind not in kinds:
                kinds.append(route.kind)
        return kinds

    def get(self, name: str) -> Route:
        for route in self.routes:
            if route.name == name:
                return route
        raise KeyError(name)


def build_router(store: ObjectStore, config: ControllerConfig) -> Router:
    """Build the dispatch table for the controller."""
    predicates = Predicates(config.labels)
    synthesizer = PolicySynthesizer(store, config)
    terminator = SidecarTerminator(store, config)
    orphans = OrphanCollector(store, config)

    async def add_injection_label(obj: dict[str, Any]) -> bool:
        return await ensure_injection_label(store, config, obj)

    routes = [
        Route(
            "injection-label",
            ResourceKind.NAMESPACE,
            predicates.project_namespace,
            add_injection_label,
            mode=RouteMode.ACTION,
        ),
        Route("app-policies", ResourceKind.NAMESPACE, predicates.app_namespace, synthesizer.policies_for_app),
        Route(
            "ingress-policies",
            ResourceKind.INGRESS,
            predicates.app_resource,
            synthesizer.policies_for_ingress,
            finalize=True,
        ),
        Route("service-policies", ResourceKind.SERVICE, predicates.app_resource, synthesizer.policies_for_service),
        Route("link-alias", ResourceKind.SERVICE, predicates.platform_managed, synthesizer.virtual_service_for_link),
        Route("sidecar-shutdown", ResourceKind.POD, predicates.job_pod, terminator.terminate, mode=RouteMode.ACTION),
    ]
    for kind in ResourceKind.mesh_kinds():
        routes.append(
            Route(
                f"orphans-{kind.info.plural}",
                kind,
                predicates.mesh_managed,
                orphans.collect_orphans,
                mode=RouteMode.ACTION,
                resync=config.orphan_resync_interval,
            )
        )

    return Router(routes)

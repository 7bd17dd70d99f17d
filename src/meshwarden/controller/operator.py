"""Register routes as kopf handlers and run the operator."""

import copy
import logging
import os
from collections.abc import Mapping
from typing import Any

import kopf

from meshwarden.controller.reconciler import DELETED, Reconciler
from meshwarden.controller.router import Route, RouteMode
from meshwarden.core.config import ControllerConfig
from meshwarden.core.models import MeshwardenError, ObjectMeta

logger = logging.getLogger(__name__)

MODIFIED = "MODIFIED"
RESYNC = "RESYNC"

BASE_BACKOFF = 1.0
MAX_BACKOFF = 300.0


def backoff_delay(retry: int) -> float:
    """Seconds to wait after ``retry`` earlier failed attempts."""
    return min(BASE_BACKOFF * 2**retry, MAX_BACKOFF)


def _as_dict(body: Mapping[str, Any]) -> dict[str, Any]:
    """Detach an object from kopf's read-only view so handlers may modify it."""
    return copy.deepcopy(dict(body))


class RouteHandlers:
    """
    kopf callbacks for one route.

    Synthesizing routes run on resume, create and update; kopf serializes
    events per object and re-runs a handler that raised TemporaryError after
    its delay. A requested retry keeps its own delay, any other failure backs
    off exponentially. Action routes react to every raw event instead, since
    the state they act on (pod container statuses, labels) is not always part
    of what kopf diffs.
    """

    def __init__(self, reconciler: Reconciler, route: Route):
        self.reconciler = reconciler
        self.route = route

    async def on_change(self, body: Mapping[str, Any], retry: int = 0, **_: Any) -> None:
        try:
            result = await self.reconciler.run_route(self.route, MODIFIED, _as_dict(body))
        except MeshwardenError as e:
            raise kopf.TemporaryError(str(e), delay=backoff_delay(retry)) from e

        if result.retry_after is not None:
            raise kopf.TemporaryError(f"{self.route.name} requested a retry", delay=result.retry_after)

    async def on_delete(self, body: Mapping[str, Any], retry: int = 0, **_: Any) -> None:
        try:
            await self.reconciler.finalize(self.route, _as_dict(body))
        except MeshwardenError as e:
            raise kopf.TemporaryError(str(e), delay=backoff_delay(retry)) from e

    async def on_event(self, event: Mapping[str, Any], **_: Any) -> None:
        # The initial listing arrives without an event type
        event_type = event.get("type") or "ADDED"
        if self.route.mode == RouteMode.SYNTHESIZE and event_type != DELETED:
            return
        await self.reconciler.run_route(self.route, event_type, _as_dict(event["object"]))

    async def on_timer(self, body: Mapping[str, Any], **_: Any) -> None:
        await self.reconciler.run_route(self.route, RESYNC, _as_dict(body))

    def matches(self, body: Mapping[str, Any], **_: Any) -> bool:
        return self.route.predicate(ObjectMeta.from_dict(_as_dict(body)))

    def register(self, registry: kopf.OperatorRegistry) -> None:
        """Attach this route's callbacks to a registry."""
        info = self.route.kind.info
        resource = (info.group, info.version, info.plural)
        name = self.route.name

        if self.route.mode == RouteMode.ACTION:
            kopf.on.event(*resource, id=name, registry=registry)(self.on_event)
            if self.route.resync is not None:
                kopf.timer(
                    *resource,
                    id=f"{name}-resync",
                    interval=self.route.resync,
                    when=self.matches,
                    registry=registry,
                )(self.on_timer)
            return

        kopf.on.resume(*resource, id=name, registry=registry)(self.on_change)
        kopf.on.create(*resource, id=name, registry=registry)(self.on_change)
        kopf.on.update(*resource, id=name, registry=registry)(self.on_change)

        if self.route.finalize:
            # kopf holds its finalizer on matching objects until on_delete succeeds
            kopf.on.delete(*resource, id=name, when=self.matches, registry=registry)(self.on_delete)
        else:
            kopf.on.event(*resource, id=f"{name}-deleted", registry=registry)(self.on_event)


def build_registry(
    reconciler: Reconciler, config: ControllerConfig, workers: int = 4, kubeconfig: str | None = None
) -> kopf.OperatorRegistry:
    """Build a kopf registry holding every route of the reconciler's router."""
    registry = kopf.OperatorRegistry()

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
        settings.batching.worker_limit = workers
        settings.posting.enabled = False
        settings.watching.server_timeout = 300
        settings.watching.client_timeout = 310
        settings.watching.connect_timeout = 10
        settings.persistence.finalizer = config.finalizer
        settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix="meshwarden.io")
        settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix="meshwarden.io")
        logger.info("Operator configured with %d workers", workers)

    @kopf.on.login(registry=registry)
    def login(**kwargs: Any) -> kopf.ConnectionInfo | None:
        if kubeconfig:
            return kopf.login_with_kubeconfig(**kwargs)
        return kopf.login_with_service_account(**kwargs) or kopf.login_with_kubeconfig(**kwargs)

    for route in reconciler.router.routes:
        RouteHandlers(reconciler, route).register(registry)

    return registry


async def run_operator(
    reconciler: Reconciler, config: ControllerConfig, workers: int = 4, kubeconfig: str | None = None
) -> None:
    """Run every route cluster-wide until cancelled."""
    if kubeconfig:
        # kopf reads the kubeconfig location from the environment
        os.environ["KUBECONFIG"] = kubeconfig

    registry = build_registry(reconciler, config, workers, kubeconfig)
    kinds = ", ".join(kind.info.kind for kind in reconciler.router.kinds())
    logger.info("Starting operator for %s", kinds)
    await kopf.operator(registry=registry, clusterwide=True, standalone=True)

"""Apply synthesized objects and prune the ones no longer produced."""

import logging
from dataclasses import dataclass
from typing import Any

from meshwarden.controller.router import Route, RouteMode, Router
from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import MeshwardenError, ObjectMeta, ObjectRef, ResourceKind, SynthesisResult
from meshwarden.mesh.istio.converter import IstioConverter, ref_from_manifest
from meshwarden.utils import safe_concat_name

logger = logging.getLogger(__name__)

DELETED = "DELETED"


@dataclass(frozen=True)
class OwnerKey:
    """A (handler, trigger) pair that owns a set of produced objects."""

    route: str
    kind: ResourceKind
    namespace: str | None
    name: str


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation; retry_after is in seconds."""

    retry_after: float | None = None
    applied: int = 0
    deleted: int = 0

    def merge(self, other: "ReconcileResult") -> None:
        self.applied += other.applied
        self.deleted += other.deleted
        if other.retry_after is not None and (self.retry_after is None or other.retry_after < self.retry_after):
            self.retry_after = other.retry_after


class Reconciler:
    """
    Makes the store match what the routes produce for each trigger.

    For every synthesizing route the reconciler remembers which objects it
    emitted per trigger. On each pass it applies the full desired set and
    deletes whatever was emitted before but is not wanted now. The record is
    rebuilt from owner labels in the store when it is missing, e.g. after a
    restart.
    """

    def __init__(self, store: ObjectStore, config: ControllerConfig, router: Router):
        self.store = store
        self.config = config
        self.labels = config.labels
        self.router = router
        self.converter = IstioConverter()
        self._emitted: dict[OwnerKey, set[ObjectRef]] = {}

    async def reconcile(self, kind: ResourceKind, event_type: str, obj: dict[str, Any]) -> ReconcileResult:
        """Run every route registered for the object's kind."""
        result = ReconcileResult()
        for route in self.router.routes_for(kind):
            result.merge(await self.run_route(route, event_type, obj))
        return result

    async def run_route(self, route: Route, event_type: str, obj: dict[str, Any]) -> ReconcileResult:
        """Run one route for one object event."""
        meta = ObjectMeta.from_dict(obj)
        matches = route.predicate(meta)

        if route.mode == RouteMode.ACTION:
            if matches and event_type != DELETED and not meta.is_deleting:
                logger.debug("Running %s for %s/%s", route.name, meta.namespace, meta.name)
                await route.handler(obj)
            return ReconcileResult()

        if route.finalize and meta.is_deleting:
            return await self.finalize(route, obj)

        key = self._key(route, meta)
        if event_type == DELETED or meta.is_deleting or not matches:
            return await self.prune(key)

        synthesis: SynthesisResult = await route.handler(obj)
        result = await self.sync(key, synthesis)
        result.retry_after = synthesis.retry_after
        return result

    async def sync(self, key: OwnerKey, synthesis: SynthesisResult) -> ReconcileResult:
        """Apply the desired objects for an owner and delete the ones it no longer produces."""
        result = ReconcileResult()
        previous = await self._recorded(key)
        desired = synthesis.refs()

        # Recorded before writing, so objects from a pass that fails halfway are still pruned later
        record = previous | desired
        self._emitted[key] = record

        for obj in synthesis.objects:
            manifest = self.converter.export(obj)
            self._stamp_owner(manifest, key)
            await self.store.apply(manifest)
            result.applied += 1

        for ref in sorted(previous - desired, key=str):
            logger.info("Deleting %s, no longer produced by %s for %s", ref, key.route, key.name)
            await self.store.delete(ref.kind, ref.namespace, ref.name)
            record.discard(ref)
            result.deleted += 1

        return result

    async def prune(self, key: OwnerKey, extra: set[ObjectRef] | None = None) -> ReconcileResult:
        """Delete everything an owner produced."""
        result = ReconcileResult()
        refs = await self._recorded(key) | (extra or set())
        for ref in sorted(refs, key=str):
            logger.info("Deleting %s owned by %s %s", ref, key.kind.info.kind, key.name)
            await self.store.delete(ref.kind, ref.namespace, ref.name)
            result.deleted += 1
        self._emitted.pop(key, None)
        return result

    async def finalize(self, route: Route, obj: dict[str, Any]) -> ReconcileResult:
        """
        Clean up before a finalized trigger disappears.

        The synthesis runs once more so objects placed in other namespaces are
        found even without a record. A trigger that can no longer be resolved
        falls back to the record alone, so deletion is never blocked.
        """
        meta = ObjectMeta.from_dict(obj)
        extra: set[ObjectRef] = set()
        try:
            synthesis: SynthesisResult = await route.handler(obj)
            extra = synthesis.refs()
        except MeshwardenError as e:
            logger.warning(
                "Could not resolve %s %s/%s during cleanup: %s", route.kind.info.kind, meta.namespace, meta.name, e
            )

        return await self.prune(self._key(route, meta), extra)

    def _key(self, route: Route, meta: ObjectMeta) -> OwnerKey:
        return OwnerKey(route.name, route.kind, meta.namespace, meta.name)

    async def _recorded(self, key: OwnerKey) -> set[ObjectRef]:
        if key in self._emitted:
            return set(self._emitted[key])

        refs: set[ObjectRef] = set()
        selector = ",".join(f"{k}={v}" for k, v in self._owner_labels(key).items())
        for kind in ResourceKind.mesh_kinds():
            for item in await self.store.list(kind, label_selector=selector):
                refs.add(ref_from_manifest(item))
        return refs

    def _owner_labels(self, key: OwnerKey) -> dict[str, str]:
        return {
            self.labels.managed: self.labels.MANAGED_VALUE,
            self.labels.handler: key.route,
            self.labels.owner_kind: key.kind.info.kind,
            self.labels.owner_namespace: key.namespace or "",
            self.labels.owner_name: safe_concat_name(key.name),
        }

    def _stamp_owner(self, manifest: dict[str, Any], key: OwnerKey) -> None:
        metadata = manifest["metadata"]
        metadata.setdefault("labels", {}).update(self._owner_labels(key))
        metadata.setdefault("annotations", {})[self.labels.owner_name] = key.name

"""Garbage-collect managed mesh objects whose owner is gone."""

import logging
from typing import Any

from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import NotFoundError, ObjectMeta, ResourceKind
from meshwarden.mesh.istio.converter import ref_from_manifest

logger = logging.getLogger(__name__)


class OrphanCollector:
    """
    Backstop for managed objects that outlived their owner.

    The reconciler prunes objects when their trigger changes or is deleted; this
    catches objects whose owner disappeared while the controller was not
    watching, and objects from earlier rule generations that carry no owner.
    """

    OWNER_KINDS = (ResourceKind.NAMESPACE, ResourceKind.INGRESS, ResourceKind.SERVICE)

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config
        self.labels = config.labels

    async def collect_orphans(self, obj: dict[str, Any]) -> bool:
        """
        Delete a managed object if its owner no longer exists.

        Returns:
            True if the object was deleted.
        """
        metadata = ObjectMeta.from_dict(obj)
        if not metadata.has_label(self.labels.managed, self.labels.MANAGED_VALUE):
            return False

        reason = await self._orphan_reason(metadata)
        if reason is None:
            return False

        ref = ref_from_manifest(obj)
        logger.info("Deleting orphaned %s: %s", ref, reason)
        await self.store.delete(ref.kind, ref.namespace, ref.name)
        return True

    async def _orphan_reason(self, metadata: ObjectMeta) -> str | None:
        owner_kind = metadata.labels.get(self.labels.owner_kind)
        owner_name = metadata.annotations.get(self.labels.owner_name) or metadata.labels.get(self.labels.owner_name)
        if not owner_kind or not owner_name:
            return "no owner recorded"

        try:
            kind = ResourceKind.from_kind(owner_kind)
        except ValueError:
            return f"unknown owner kind {owner_kind}"
        if kind not in self.OWNER_KINDS:
            return f"unknown owner kind {owner_kind}"

        owner_namespace = metadata.labels.get(self.labels.owner_namespace) or None
        try:
            owner = ObjectMeta.from_dict(await self.store.get(kind, owner_namespace, owner_name))
        except NotFoundError:
            where = f"{owner_namespace}/{owner_name}" if owner_namespace else owner_name
            return f"owner {owner_kind} {where} no longer exists"

        # An ingress being finalized cleans up after itself
        if owner.is_deleting and kind != ResourceKind.INGRESS:
            return f"owner {owner_kind} {owner_name} is being deleted"
        return None

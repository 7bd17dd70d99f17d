"""Enable sidecar injection on project namespaces."""

import logging
from typing import Any

from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore

logger = logging.getLogger(__name__)

ENABLED = "enabled"


async def ensure_injection_label(store: ObjectStore, config: ControllerConfig, obj: dict[str, Any]) -> bool:
    """
    Add the ``istio-injection: enabled`` label to a project namespace.

    Returns:
        True if the namespace was updated.
    """
    metadata = obj.setdefault("metadata", {})
    labels = metadata.get("labels") or {}

    if labels.get(config.labels.injection) == ENABLED:
        return False

    logger.info("Updating project %s to add %s label", metadata.get("name"), config.labels.injection)
    metadata["labels"] = {**labels, config.labels.injection: ENABLED}
    await store.update(obj)
    return True

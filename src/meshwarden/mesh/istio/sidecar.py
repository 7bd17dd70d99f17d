"""Shut down the Istio sidecar of batch pods whose work has finished."""

import logging
from enum import Enum
from typing import Any

from meshwarden.core.config import ControllerConfig
from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import ConflictError, Pod

logger = logging.getLogger(__name__)


class SidecarState(Enum):
    """
    Lifecycle of a job pod's sidecar.

    Transitions only move forward: RUNNING -> AWAITING_TERMINATION ->
    TERMINATION_REQUESTED. NOT_APPLICABLE pods are never acted on.
    """

    NOT_APPLICABLE = "not-applicable"
    RUNNING = "running"
    AWAITING_TERMINATION = "awaiting-termination"
    TERMINATION_REQUESTED = "termination-requested"


class SidecarTerminator:
    """Attaches a short-lived container that asks a finished job's proxy to quit."""

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config

    def evaluate(self, pod: Pod) -> SidecarState:
        """Work out where a pod is in the sidecar lifecycle."""
        if not pod.metadata.has_label(self.config.labels.job_name):
            return SidecarState.NOT_APPLICABLE

        # Any ephemeral container means a shutdown was already requested
        if pod.ephemeral_containers:
            return SidecarState.TERMINATION_REQUESTED

        proxy_running = False
        for status in pod.container_statuses:
            if status.name == self.config.proxy_container_name:
                proxy_running = not status.terminated
            elif not status.terminated:
                return SidecarState.RUNNING

        if not proxy_running:
            return SidecarState.RUNNING
        return SidecarState.AWAITING_TERMINATION

    def shutdown_container(self) -> dict[str, Any]:
        """The ephemeral container that posts to the proxy's quit endpoint."""
        return {
            "name": self.config.shutdown_container_name,
            "image": self.config.debug_image,
            "imagePullPolicy": "Always",
            "targetContainerName": self.config.proxy_container_name,
            "command": ["curl", "-X", "POST", self.config.proxy_admin_url],
        }

    async def terminate(self, obj: dict[str, Any]) -> SidecarState:
        """
        Request sidecar shutdown for a pod whose other containers have all finished.

        Returns:
            The pod's state after this call.
        """
        pod = Pod.from_dict(obj)
        state = self.evaluate(pod)
        if state != SidecarState.AWAITING_TERMINATION:
            return state

        logger.info("Launching ephemeral container to kill pod %s/%s sidecar", pod.namespace, pod.name)
        try:
            await self.store.attach_ephemeral_container(pod.namespace, pod.name, self.shutdown_container())
        except ConflictError:
            logger.debug("Pod %s/%s already has a shutdown container", pod.namespace, pod.name)

        return SidecarState.TERMINATION_REQUESTED

"""Kubernetes object store implementation."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from meshwarden.core.interfaces import ObjectStore
from meshwarden.core.models import ConflictError, ListError, NotFoundError, ResourceKind, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class K8sClient(ObjectStore):
    """Object store backed by the Kubernetes API server."""

    def __init__(self, kubeconfig_path: str | None = None):
        """Initialize Kubernetes client."""
        self.kubeconfig_path = kubeconfig_path
        self._api_client: client.ApiClient | None = None
        self._core_v1: client.CoreV1Api | None = None
        self._dynamic: DynamicClient | None = None

    async def _ensure_connected(self) -> None:
        """Ensure client is connected."""
        if self._api_client is None:
            try:
                if self.kubeconfig_path:
                    config.load_kube_config(config_file=self.kubeconfig_path)
                else:
                    # Try in-cluster config first, then default kubeconfig
                    try:
                        config.load_incluster_config()
                    except config.ConfigException:
                        config.load_kube_config()

                self._api_client = client.ApiClient()
                self._core_v1 = client.CoreV1Api(self._api_client)
                self._dynamic = await self._run(DynamicClient, self._api_client)

            except (config.ConfigException, ApiException) as e:
                raise ConnectionError(f"Failed to connect to Kubernetes cluster: {e}") from e

    def is_connected(self) -> bool:
        """Check if client is connected to cluster."""
        return self._api_client is not None

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking Kubernetes call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def _resource(self, kind: ResourceKind) -> Any:
        """Look up the API resource for a kind; discovery may hit the server."""
        assert self._dynamic is not None
        return await self._run(self._dynamic.resources.get, api_version=kind.info.api_version, kind=kind.info.kind)

    async def list(
        self, kind: ResourceKind, namespace: str | None = None, label_selector: str | None = None
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally filtered by namespace and label selector."""
        await self._ensure_connected()

        try:
            resource = await self._resource(kind)
            response = await self._run(resource.get, namespace=namespace, label_selector=label_selector)
            return [self._with_type(kind, item) for item in response.to_dict().get("items", [])]

        except (ApiException, ResourceNotFoundError) as e:
            raise ListError(f"Failed to list {kind.info.kind} resources: {e}") from e

    async def get(self, kind: ResourceKind, namespace: str | None, name: str) -> dict[str, Any]:
        """Get one object by name."""
        await self._ensure_connected()

        try:
            resource = await self._resource(kind)
            if kind.info.namespaced:
                response = await self._run(resource.get, name=name, namespace=namespace)
            else:
                response = await self._run(resource.get, name=name)
            return self._with_type(kind, response.to_dict())

        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(kind.info.kind, namespace, name) from e
            raise StoreError(f"Failed to get {kind.info.kind} {namespace}/{name}: {e}") from e
        except ResourceNotFoundError as e:
            raise StoreError(f"No {kind.info.kind} resource on the server: {e}") from e

    async def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an object; the embedded resourceVersion guards against stale writes."""
        await self._ensure_connected()

        kind = ResourceKind.from_kind(obj["kind"])
        metadata = obj.get("metadata", {})
        try:
            resource = await self._resource(kind)
            response = await self._run(resource.replace, body=obj, namespace=metadata.get("namespace"))
            return self._with_type(kind, response.to_dict())

        except ApiException as e:
            if e.status == 409:
                raise ConflictError(f"Conflict updating {kind.info.kind} {metadata.get('name')}: {e}") from e
            if e.status == 404:
                raise NotFoundError(kind.info.kind, metadata.get("namespace"), metadata.get("name", "")) from e
            raise StoreError(f"Failed to update {kind.info.kind} {metadata.get('name')}: {e}") from e
        except ResourceNotFoundError as e:
            raise StoreError(f"No {kind.info.kind} resource on the server: {e}") from e

    async def apply(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create the object, or replace it at its current version if it exists."""
        await self._ensure_connected()

        kind = ResourceKind.from_kind(manifest["kind"])
        metadata = manifest.get("metadata", {})
        namespace = metadata.get("namespace")

        try:
            resource = await self._resource(kind)
            response = await self._run(resource.create, body=manifest, namespace=namespace)
            logger.debug("Created %s %s/%s", kind.info.kind, namespace, metadata.get("name"))
            return self._with_type(kind, response.to_dict())
        except ApiException as e:
            if e.status != 409:
                raise StoreError(f"Failed to create {kind.info.kind} {metadata.get('name')}: {e}") from e
        except ResourceNotFoundError as e:
            raise StoreError(f"No {kind.info.kind} resource on the server: {e}") from e

        existing = await self.get(kind, namespace, metadata["name"])
        body = dict(manifest)
        body["metadata"] = dict(metadata, resourceVersion=existing["metadata"].get("resourceVersion"))
        logger.debug("Replacing %s %s/%s", kind.info.kind, namespace, metadata.get("name"))
        return await self.update(body)

    async def delete(self, kind: ResourceKind, namespace: str | None, name: str) -> None:
        """Delete an object, ignoring objects that are already gone."""
        await self._ensure_connected()

        try:
            resource = await self._resource(kind)
            if kind.info.namespaced:
                await self._run(resource.delete, name=name, namespace=namespace)
            else:
                await self._run(resource.delete, name=name)

        except ApiException as e:
            if e.status == 404:
                return
            raise StoreError(f"Failed to delete {kind.info.kind} {namespace}/{name}: {e}") from e
        except ResourceNotFoundError as e:
            raise StoreError(f"No {kind.info.kind} resource on the server: {e}") from e

    async def attach_ephemeral_container(self, namespace: str, name: str, container: dict[str, Any]) -> None:
        """Attach an ephemeral container to a pod that has none yet."""
        pod = await self.get(ResourceKind.POD, namespace, name)
        if pod.get("spec", {}).get("ephemeralContainers"):
            raise ConflictError(f"Pod {namespace}/{name} already has an ephemeral container")

        try:
            assert self._core_v1 is not None
            await self._run(
                self._core_v1.patch_namespaced_pod_ephemeralcontainers,
                name=name,
                namespace=namespace,
                body={"spec": {"ephemeralContainers": [container]}},
            )

        except ApiException as e:
            if e.status == 409:
                raise ConflictError(f"Conflict attaching container to pod {namespace}/{name}: {e}") from e
            raise StoreError(f"Failed to attach container to pod {namespace}/{name}: {e}") from e

    def _with_type(self, kind: ResourceKind, obj: dict[str, Any]) -> dict[str, Any]:
        """List items come back without apiVersion/kind; fill them in."""
        obj.setdefault("apiVersion", kind.info.api_version)
        obj.setdefault("kind", kind.info.kind)
        return obj

    async def close(self) -> None:
        """Close the client connection."""
        if self._api_client and hasattr(self._api_client, "close"):
            self._api_client.close()
        self._api_client = None
        self._core_v1 = None
        self._dynamic = None

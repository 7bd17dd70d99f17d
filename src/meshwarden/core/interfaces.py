"""Core interfaces for meshwarden."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .models import ResourceKind


class ObjectStore(ABC):
    """Interface for the store holding cluster state.

    Objects are plain dictionaries in their JSON (camelCase) form.
    """

    @abstractmethod
    async def list(
        self, kind: ResourceKind, namespace: str | None = None, label_selector: str | None = None
    ) -> list[dict[str, Any]]:
        """List objects of a kind, raising ListError on failure."""
        pass

    @abstractmethod
    async def get(self, kind: ResourceKind, namespace: str | None, name: str) -> dict[str, Any]:
        """Get one object, raising NotFoundError if it does not exist."""
        pass

    @abstractmethod
    async def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an existing object, raising ConflictError on a stale version."""
        pass

    @abstractmethod
    async def apply(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create the object, or replace it if it already exists."""
        pass

    @abstractmethod
    async def delete(self, kind: ResourceKind, namespace: str | None, name: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""
        pass

    @abstractmethod
    async def attach_ephemeral_container(self, namespace: str, name: str, container: dict[str, Any]) -> None:
        """
        Attach an ephemeral container to a running pod.

        Raises:
            ConflictError: if an ephemeral container is already attached.
        """
        pass

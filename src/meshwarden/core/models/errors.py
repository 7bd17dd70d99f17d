"""Error taxonomy for reconciliation failures."""


class MeshwardenError(Exception):
    """Base class for every error raised by meshwarden."""


class StoreError(MeshwardenError):
    """An object store call failed for a reason not covered below."""


class ListError(StoreError):
    """Listing resources failed."""


class NotFoundError(StoreError):
    """A referenced resource does not exist."""

    def __init__(self, kind: str, namespace: str | None, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} not found")


class ConflictError(StoreError):
    """A write was rejected because of a stale version or an existing object."""


class BadAliasError(MeshwardenError):
    """An alias service points somewhere that cannot be resolved."""

    def __init__(self, namespace: str, name: str, reason: str):
        self.namespace = namespace
        self.name = name
        self.reason = reason
        super().__init__(f"Service {namespace}/{name} is a bad alias: {reason}")

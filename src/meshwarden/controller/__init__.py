"""Event routing and reconciliation."""

from meshwarden.controller.operator import RouteHandlers, backoff_delay, build_registry, run_operator
from meshwarden.controller.reconciler import DELETED, OwnerKey, ReconcileResult, Reconciler
from meshwarden.controller.router import Predicates, Route, RouteMode, Router, build_router

__all__ = [
    "DELETED",
    "OwnerKey",
    "Predicates",
    "ReconcileResult",
    "Reconciler",
    "Route",
    "RouteHandlers",
    "RouteMode",
    "Router",
    "backoff_delay",
    "build_registry",
    "build_router",
    "run_operator",
]

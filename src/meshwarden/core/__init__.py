"""Core domain models and interfaces for meshwarden."""

from meshwarden.core.config import CidrSource, ControllerConfig, Labels
from meshwarden.core.interfaces import ObjectStore

__all__ = ["CidrSource", "ControllerConfig", "Labels", "ObjectStore"]

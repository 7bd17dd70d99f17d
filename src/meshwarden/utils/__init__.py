"""Utility functions."""

from meshwarden.utils.names import safe_concat_name

__all__ = ["safe_concat_name"]

"""meshwarden - Keep Istio security policies in sync with workload topology."""

from meshwarden.cli import cli

__version__ = "0.1.0"
__all__ = ["cli"]

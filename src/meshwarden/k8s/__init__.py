"""Kubernetes access for meshwarden."""

from meshwarden.k8s.client import K8sClient

__all__ = ["K8sClient"]

"""Istio policy synthesis and lifecycle handlers."""

from meshwarden.mesh.istio.converter import IstioConverter, ref_from_manifest
from meshwarden.mesh.istio.injection import ensure_injection_label
from meshwarden.mesh.istio.orphans import OrphanCollector
from meshwarden.mesh.istio.sidecar import SidecarState, SidecarTerminator
from meshwarden.mesh.istio.synthesizer import PolicySynthesizer

__all__ = [
    "IstioConverter",
    "OrphanCollector",
    "PolicySynthesizer",
    "SidecarState",
    "SidecarTerminator",
    "ensure_injection_label",
    "ref_from_manifest",
]

"""Sidecar shutdown signals."""

from podwatcher.sidecar.istio import IstioStopper


__all__ = ["IstioStopper"]

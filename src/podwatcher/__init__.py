"""podwatcher - sidecar lifecycle controller.

Runs next to the containers of a single pod, waits for the pod's critical
containers to stop and then deletes the pod or shuts down its Istio proxy,
so Job-style workloads can complete.
"""

from podwatcher.version import __version__


__all__ = ["__version__"]

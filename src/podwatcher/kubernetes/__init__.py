"""podwatcher Kubernetes package.

Cluster API access: reading the governed pod and deleting it.
"""

from podwatcher.kubernetes.cleanup import PodDeleter
from podwatcher.kubernetes.client import load_config
from podwatcher.kubernetes.snapshot import KubernetesSnapshotSource


__all__ = ["KubernetesSnapshotSource", "PodDeleter", "load_config"]

"""Object stores the engine reads from and writes to."""

from ingressbridge.store.base import ObjectStore
from ingressbridge.store.kubernetes import KubernetesStore, load_kubernetes_config
from ingressbridge.store.manifests import ManifestStore

__all__ = [
    "ObjectStore",
    "KubernetesStore",
    "ManifestStore",
    "load_kubernetes_config",
]

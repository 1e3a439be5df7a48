"""ingressbridge - translate Kubernetes Ingresses into Gateway API HTTPRoutes."""

from ingressbridge.core.config import BridgeConfig, get_config
from ingressbridge.reconcile import ApplyResult, IngressReconciler, ReconcileReport
from ingressbridge.routing import RouteSynthesizer

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ApplyResult",
    "BridgeConfig",
    "IngressReconciler",
    "ReconcileReport",
    "RouteSynthesizer",
    "get_config",
]

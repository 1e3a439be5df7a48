"""Reconciliation of synthesized HTTPRoutes against stored state."""

from ingressbridge.reconcile.engine import ApplyResult, ReconciliationEngine
from ingressbridge.reconcile.reconciler import IngressReconciler, ReconcileReport

__all__ = [
    "ApplyResult",
    "ReconciliationEngine",
    "IngressReconciler",
    "ReconcileReport",
]

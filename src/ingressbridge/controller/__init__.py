"""Watch-driven controller: work queue and reconcile workers."""

from ingressbridge.controller.controller import Controller, object_key, owning_ingress_key
from ingressbridge.controller.queue import WorkQueue

__all__ = [
    "Controller",
    "WorkQueue",
    "object_key",
    "owning_ingress_key",
]

"""Resource models.

Inputs (Ingress, Gateway) are parsed into frozen dataclasses; outputs
(HTTPRoute and its parts) serialise back to Kubernetes JSON.
"""

from ingressbridge.model.resources import (
    Backend,
    Gateway,
    Ingress,
    Listener,
    NamespacePolicy,
    PathKind,
    PathRule,
    ResourceBackend,
    Rule,
    ServiceBackend,
    backend_from_dict,
    service_ports_from_dict,
)
from ingressbridge.model.route import (
    BackendRef,
    HTTPRoute,
    OwnerReference,
    ParentRef,
    PathMatch,
    PathMatchType,
    RouteRule,
)

__all__ = [
    # Inputs
    "Backend",
    "Gateway",
    "Ingress",
    "Listener",
    "NamespacePolicy",
    "PathKind",
    "PathRule",
    "ResourceBackend",
    "Rule",
    "ServiceBackend",
    "backend_from_dict",
    "service_ports_from_dict",
    # Outputs
    "BackendRef",
    "HTTPRoute",
    "OwnerReference",
    "ParentRef",
    "PathMatch",
    "PathMatchType",
    "RouteRule",
]

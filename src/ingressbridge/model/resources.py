"""Input resources read from the cluster.

Ingresses (routing declarations) and Gateways (entry points) are parsed from
their Kubernetes JSON representation into small immutable dataclasses. Only
the fields the route synthesizer reads are kept.

Example:
    ingress = Ingress.from_dict({
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": "shop", "namespace": "web", "uid": "1234"},
        "spec": {
            "rules": [{
                "host": "shop.example.com",
                "http": {"paths": [{
                    "path": "/",
                    "pathType": "Prefix",
                    "backend": {"service": {"name": "shop", "port": {"number": 80}}},
                }]},
            }],
        },
    })
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

INGRESS_API_VERSION = "networking.k8s.io/v1"
INGRESS_KIND = "Ingress"
GATEWAY_GROUP = "gateway.networking.k8s.io"
GATEWAY_KIND = "Gateway"


class PathKind(Enum):
    """Ingress path types."""

    EXACT = "Exact"
    PREFIX = "Prefix"
    IMPLEMENTATION_SPECIFIC = "ImplementationSpecific"


class NamespacePolicy(str, Enum):
    """Listener ``allowedRoutes.namespaces.from`` values."""

    SAME = "Same"
    ALL = "All"
    SELECTOR = "Selector"


@dataclass(frozen=True)
class ServiceBackend:
    """Ingress backend pointing at a Service port by number or by name."""

    name: str
    port_number: int | None = None
    port_name: str | None = None
    namespace: str | None = None

    @property
    def uses_named_port(self) -> bool:
        return not self.port_number and bool(self.port_name)


@dataclass(frozen=True)
class ResourceBackend:
    """Ingress backend pointing at an arbitrary object (``backend.resource``)."""

    kind: str
    name: str
    api_group: str | None = None


Backend = ServiceBackend | ResourceBackend


def backend_from_dict(data: dict[str, Any]) -> Backend:
    """Parse an ``IngressBackend`` object.

    Raises:
        ValueError: If the backend names neither a service nor a resource.
    """
    if data.get("resource"):
        resource = data["resource"]
        return ResourceBackend(
            kind=resource.get("kind", ""),
            name=resource.get("name", ""),
            api_group=resource.get("apiGroup"),
        )
    if data.get("service"):
        service = data["service"]
        port = service.get("port") or {}
        return ServiceBackend(
            name=service.get("name", ""),
            port_number=port.get("number") or None,
            port_name=port.get("name") or None,
            namespace=service.get("namespace"),
        )
    raise ValueError("backend must define either 'service' or 'resource'")


@dataclass(frozen=True)
class PathRule:
    """One ``http.paths`` entry of an Ingress rule."""

    path: str
    backend: Backend
    kind: PathKind | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathRule:
        path_type = data.get("pathType")
        return cls(
            path=data.get("path", ""),
            backend=backend_from_dict(data.get("backend") or {}),
            kind=PathKind(path_type) if path_type else None,
        )


@dataclass(frozen=True)
class Rule:
    """One Ingress rule: an optional hostname and its ordered paths."""

    host: str = ""
    paths: tuple[PathRule, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rule:
        http = data.get("http") or {}
        return cls(
            host=data.get("host") or "",
            paths=tuple(PathRule.from_dict(p) for p in http.get("paths") or []),
        )


@dataclass(frozen=True)
class Ingress:
    """A routing declaration owned by an application team."""

    name: str
    namespace: str
    uid: str = ""
    rules: tuple[Rule, ...] = ()
    default_backend: Backend | None = None
    api_version: str = INGRESS_API_VERSION
    kind: str = INGRESS_KIND

    @property
    def key(self) -> str:
        """Work queue key, ``namespace/name``."""
        return f"{self.namespace}/{self.name}"

    @property
    def hostnames(self) -> list[str]:
        """Distinct non-empty hostnames in declaration order."""
        seen: list[str] = []
        for rule in self.rules:
            if rule.host and rule.host not in seen:
                seen.append(rule.host)
        return seen

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ingress:
        """Create from a Kubernetes ``Ingress`` object in JSON form."""
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        default = spec.get("defaultBackend")
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "default",
            uid=metadata.get("uid", ""),
            rules=tuple(Rule.from_dict(r) for r in spec.get("rules") or []),
            default_backend=backend_from_dict(default) if default else None,
            api_version=data.get("apiVersion") or INGRESS_API_VERSION,
            kind=data.get("kind") or INGRESS_KIND,
        )


@dataclass(frozen=True)
class Listener:
    """A named slot on a Gateway that routes can attach to."""

    name: str
    hostname: str | None = None
    allowed_namespaces: NamespacePolicy | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Listener:
        allowed = (data.get("allowedRoutes") or {}).get("namespaces") or {}
        policy = allowed.get("from")
        return cls(
            name=data.get("name", ""),
            hostname=data.get("hostname") or None,
            allowed_namespaces=NamespacePolicy(policy) if policy else None,
        )


@dataclass(frozen=True)
class Gateway:
    """An administrator-owned entry point. Never modified by the engine."""

    name: str
    namespace: str
    listeners: tuple[Listener, ...] = field(default_factory=tuple)
    group: str = GATEWAY_GROUP
    kind: str = GATEWAY_KIND

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Gateway:
        """Create from a Kubernetes ``Gateway`` object in JSON form."""
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        api_version = data.get("apiVersion") or f"{GATEWAY_GROUP}/v1"
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "default",
            listeners=tuple(Listener.from_dict(item) for item in spec.get("listeners") or []),
            group=api_version.split("/", 1)[0] if "/" in api_version else "",
            kind=data.get("kind") or GATEWAY_KIND,
        )


def service_ports_from_dict(data: dict[str, Any]) -> dict[str, int]:
    """Map port names to port numbers for a Kubernetes ``Service`` object."""
    ports: dict[str, int] = {}
    for port in (data.get("spec") or {}).get("ports") or []:
        name = port.get("name")
        if name:
            ports[name] = int(port["port"])
    return ports

"""Ingress backend to HTTPRoute backend reference resolution.

Service backends that address their port by name are resolved to a port
number through a ``PortLookup`` (normally the object store). A resolver is
meant to live for one reconcile pass: it caches Service port tables so a
Service referenced by many paths is read once.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from ingressbridge.core.exceptions import BackendResolutionError, NotFoundError, StoreError
from ingressbridge.model.resources import Backend, ResourceBackend, ServiceBackend
from ingressbridge.model.route import BackendRef

logger = structlog.get_logger()

DEFAULT_WEIGHT = 1


class PortLookup(Protocol):
    async def lookup_service_ports(self, namespace: str, name: str) -> dict[str, int]:
        """Return the named ports of a Service, raising NotFoundError if it is missing."""
        ...


class BackendResolver:
    """Resolves Ingress backends into canonical backend references.

    Args:
        lookup: Source of Service port tables.
        cross_namespace: Keep a backend's own namespace when it names one.
            When False every reference is pinned to the Ingress namespace.
        soft_unresolved_ports: Emit a reference without port when the
            Service exists but exposes no port with the requested name,
            instead of failing.
    """

    def __init__(
        self,
        lookup: PortLookup,
        cross_namespace: bool = False,
        soft_unresolved_ports: bool = False,
    ) -> None:
        self.lookup = lookup
        self.cross_namespace = cross_namespace
        self.soft_unresolved_ports = soft_unresolved_ports
        self._ports: dict[tuple[str, str], dict[str, int]] = {}

    def _target_namespace(self, namespace: str, backend: ServiceBackend) -> str:
        if self.cross_namespace and backend.namespace:
            return backend.namespace
        return namespace

    async def _service_ports(self, namespace: str, name: str) -> dict[str, int]:
        key = (namespace, name)
        if key not in self._ports:
            try:
                self._ports[key] = await self.lookup.lookup_service_ports(namespace, name)
            except NotFoundError as e:
                raise BackendResolutionError(namespace, name, "service not found") from e
            except StoreError as e:
                raise BackendResolutionError(namespace, name, e.message) from e
        return self._ports[key]

    async def resolve(self, namespace: str, backend: Backend) -> BackendRef:
        """Resolve one backend for an Ingress in ``namespace``.

        Raises:
            BackendResolutionError: If a named port cannot be resolved.
        """
        if isinstance(backend, ResourceBackend):
            return BackendRef(
                name=backend.name,
                namespace=namespace,
                group=backend.api_group or "",
                kind=backend.kind,
                weight=DEFAULT_WEIGHT,
            )

        target_ns = self._target_namespace(namespace, backend)
        port: int | None = backend.port_number or None

        if backend.uses_named_port:
            ports = await self._service_ports(target_ns, backend.name)
            port = ports.get(backend.port_name or "")
            if port is None:
                if not self.soft_unresolved_ports:
                    raise BackendResolutionError(
                        target_ns, backend.name, f"service has no port named {backend.port_name!r}"
                    )
                logger.warning(
                    "Named port not found on service, emitting backend without port",
                    service=f"{target_ns}/{backend.name}",
                    port_name=backend.port_name,
                )

        return BackendRef(
            name=backend.name,
            namespace=target_ns,
            group="",
            kind="Service",
            port=port,
            weight=DEFAULT_WEIGHT,
        )

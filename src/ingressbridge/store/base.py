"""Object store interface used by the reconciler.

The engine never talks to Kubernetes directly; it reads Ingresses,
Gateways and Services and writes HTTPRoutes through an ObjectStore. Two
implementations exist: ``KubernetesStore`` for a live cluster and
``ManifestStore`` for manifests loaded from YAML files.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ingressbridge.model.resources import Gateway, Ingress
from ingressbridge.model.route import HTTPRoute


class ObjectStore(ABC):
    """Asynchronous access to the objects the engine reads and writes.

    Implementations raise ``NotFoundError`` for missing objects,
    ``ConflictError`` when a create races with another writer and
    ``StoreError`` for any other failure. Calls are single-shot; timeouts
    and transport retries belong to the implementation.
    """

    @abstractmethod
    async def get_ingress(self, namespace: str, name: str) -> Ingress:
        ...

    @abstractmethod
    async def list_ingresses(self, namespace: str | None = None) -> list[Ingress]:
        """List Ingresses in ``namespace``, or in all namespaces when None."""
        ...

    @abstractmethod
    async def list_gateways(self) -> list[Gateway]:
        """List Gateways in all namespaces."""
        ...

    @abstractmethod
    async def lookup_service_ports(self, namespace: str, name: str) -> dict[str, int]:
        """Return the named ports of a Service as ``{name: number}``."""
        ...

    @abstractmethod
    async def get_route(self, namespace: str, name: str) -> HTTPRoute:
        ...

    @abstractmethod
    async def list_routes(self, namespace: str) -> list[HTTPRoute]:
        ...

    @abstractmethod
    async def create_route(self, route: HTTPRoute) -> HTTPRoute:
        ...

    @abstractmethod
    async def update_route(self, route: HTTPRoute) -> HTTPRoute:
        """Replace a route; ``route.resource_version`` guards against lost updates."""
        ...

    @abstractmethod
    async def delete_route(self, namespace: str, name: str) -> None:
        ...

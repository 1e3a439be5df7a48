"""In-memory object store loaded from Kubernetes manifests.

Backs the offline ``render`` command: Ingresses, Gateways, Services and
existing HTTPRoutes are read from multi-document YAML files and the
reconciler runs against them exactly as it would against a cluster.
Writes stay in memory and are recorded in ``writes``.

Example:
    store = ManifestStore.from_files(["ingress.yaml", "gateways.yaml"])
    reconciler = IngressReconciler(store)
    for ingress in await store.list_ingresses():
        await reconciler.reconcile(ingress.namespace, ingress.name)
    routes = await store.list_routes("default")
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from ingressbridge.core.exceptions import ConflictError, ManifestError, NotFoundError
from ingressbridge.model.resources import Gateway, Ingress, service_ports_from_dict
from ingressbridge.model.route import ROUTE_KIND, HTTPRoute
from ingressbridge.store.base import ObjectStore

SUPPORTED_KINDS = ("Ingress", "Gateway", "Service", ROUTE_KIND)

ObjectKey = tuple[str, str, str]


def _iter_documents(documents: Iterable[Any]) -> Iterable[dict[str, Any]]:
    for doc in documents:
        if not doc:
            continue
        if not isinstance(doc, dict):
            raise ManifestError(f"expected a mapping, got {type(doc).__name__}")
        if doc.get("kind") == "List" or (doc.get("kind", "").endswith("List") and "items" in doc):
            yield from _iter_documents(doc.get("items") or [])
        else:
            yield doc


def _parse_ingress(obj: dict[str, Any]) -> Ingress:
    try:
        return Ingress.from_dict(obj)
    except ValueError as e:
        name = (obj.get("metadata") or {}).get("name", "")
        raise ManifestError(f"Ingress {name}: {e}") from e


class ManifestStore(ObjectStore):
    """ObjectStore over an in-memory set of manifests.

    Objects are kept as raw dictionaries keyed by (kind, namespace, name)
    so that routes which were never touched compare byte-for-byte equal to
    what was loaded. Kinds other than Ingress, Gateway, Service and
    HTTPRoute are ignored.
    """

    def __init__(self, objects: Iterable[dict[str, Any]] = ()) -> None:
        self._objects: dict[ObjectKey, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._version = 0
        self.writes: list[tuple[str, str]] = []
        for obj in objects:
            self.add(obj)

    @classmethod
    def from_yaml(cls, text: str) -> ManifestStore:
        """Load every document of a (multi-document) YAML string.

        Raises:
            ManifestError: If the YAML is invalid or a document is not a mapping.
        """
        try:
            documents = list(yaml.safe_load_all(text))
        except yaml.YAMLError as e:
            raise ManifestError(f"invalid YAML: {e}") from e
        return cls(_iter_documents(documents))

    @classmethod
    def from_files(cls, paths: Iterable[str | Path]) -> ManifestStore:
        store = cls()
        for path in paths:
            path = Path(path)
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ManifestError(f"cannot read {path}: {e}") from e
            try:
                documents = list(yaml.safe_load_all(content))
            except yaml.YAMLError as e:
                raise ManifestError(f"invalid YAML in {path}: {e}") from e
            for obj in _iter_documents(documents):
                store.add(obj)
        return store

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def add(self, obj: dict[str, Any]) -> None:
        """Add or replace one manifest. Unsupported kinds are ignored."""
        kind = obj.get("kind", "")
        if kind not in SUPPORTED_KINDS:
            return
        metadata = obj.setdefault("metadata", {})
        if not metadata.get("name"):
            raise ManifestError(f"{kind} without metadata.name")
        metadata.setdefault("namespace", "default")
        metadata.setdefault("resourceVersion", self._next_version())
        self._objects[(kind, metadata["namespace"], metadata["name"])] = obj

    def raw(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        """The stored dictionary for an object, for inspection in tests."""
        return self._objects.get((kind, namespace, name))

    def _get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        obj = self._objects.get((kind, namespace, name))
        if obj is None:
            raise NotFoundError(kind, namespace, name)
        return obj

    def _list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        return [
            obj
            for (obj_kind, obj_ns, _), obj in sorted(self._objects.items())
            if obj_kind == kind and (namespace is None or obj_ns == namespace)
        ]

    async def get_ingress(self, namespace: str, name: str) -> Ingress:
        async with self._lock:
            return _parse_ingress(self._get("Ingress", namespace, name))

    async def list_ingresses(self, namespace: str | None = None) -> list[Ingress]:
        async with self._lock:
            return [_parse_ingress(obj) for obj in self._list("Ingress", namespace)]

    async def list_gateways(self) -> list[Gateway]:
        async with self._lock:
            return [Gateway.from_dict(obj) for obj in self._list("Gateway")]

    async def lookup_service_ports(self, namespace: str, name: str) -> dict[str, int]:
        async with self._lock:
            return service_ports_from_dict(self._get("Service", namespace, name))

    async def get_route(self, namespace: str, name: str) -> HTTPRoute:
        async with self._lock:
            return HTTPRoute.from_dict(self._get(ROUTE_KIND, namespace, name))

    async def list_routes(self, namespace: str) -> list[HTTPRoute]:
        async with self._lock:
            return [HTTPRoute.from_dict(obj) for obj in self._list(ROUTE_KIND, namespace)]

    async def create_route(self, route: HTTPRoute) -> HTTPRoute:
        async with self._lock:
            key = (ROUTE_KIND, route.namespace, route.name)
            if key in self._objects:
                raise ConflictError(f"{ROUTE_KIND} {route.namespace}/{route.name} already exists")
            manifest = route.to_manifest()
            manifest["metadata"]["resourceVersion"] = self._next_version()
            self._objects[key] = manifest
            self.writes.append(("create", f"{route.namespace}/{route.name}"))
            return HTTPRoute.from_dict(manifest)

    async def update_route(self, route: HTTPRoute) -> HTTPRoute:
        async with self._lock:
            current = self._get(ROUTE_KIND, route.namespace, route.name)
            stored_version = current["metadata"].get("resourceVersion")
            if route.resource_version and route.resource_version != stored_version:
                raise ConflictError(
                    f"{ROUTE_KIND} {route.namespace}/{route.name} was modified concurrently"
                )
            manifest = route.to_manifest()
            manifest["metadata"]["resourceVersion"] = self._next_version()
            self._objects[(ROUTE_KIND, route.namespace, route.name)] = manifest
            self.writes.append(("update", f"{route.namespace}/{route.name}"))
            return HTTPRoute.from_dict(manifest)

    async def delete_route(self, namespace: str, name: str) -> None:
        async with self._lock:
            self._get(ROUTE_KIND, namespace, name)
            del self._objects[(ROUTE_KIND, namespace, name)]
            self.writes.append(("delete", f"{namespace}/{name}"))

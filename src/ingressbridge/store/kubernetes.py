"""Kubernetes API backed object store.

Ingresses are read through ``NetworkingV1Api``, Services through
``CoreV1Api`` and Gateway API objects through ``CustomObjectsApi``. The
kubernetes client is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

import structlog
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from ingressbridge.core.exceptions import ConflictError, NotFoundError, StoreError
from ingressbridge.model.resources import GATEWAY_GROUP, Gateway, Ingress, service_ports_from_dict
from ingressbridge.model.route import ROUTE_KIND, ROUTE_PLURAL, HTTPRoute
from ingressbridge.store.base import ObjectStore

logger = structlog.get_logger()

GATEWAY_VERSION = "v1"
GATEWAY_PLURAL = "gateways"

T = TypeVar("T")


def load_kubernetes_config(kubeconfig: str | None = None, context: str | None = None) -> None:
    """Load in-cluster configuration, falling back to a kubeconfig file."""
    if kubeconfig is None and context is None:
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
            return
        except config.ConfigException:
            pass
    config.load_kube_config(config_file=kubeconfig, context=context)
    logger.info("Loaded kubeconfig", path=kubeconfig, context=context)


def _translate(error: ApiException, kind: str, namespace: str | None, name: str) -> Exception:
    if error.status == 404:
        return NotFoundError(kind, namespace, name)
    if error.status == 409:
        ref = f"{namespace}/{name}" if namespace else name
        return ConflictError(f"{kind} {ref}: {error.reason}", status=409)
    return StoreError(f"{kind} request failed: {error.status} {error.reason}", status=error.status)


class KubernetesStore(ObjectStore):
    """ObjectStore implementation talking to the Kubernetes API server.

    Args:
        api_client: Configured API client; a default one is created when
            omitted (call load_kubernetes_config() first).
        request_timeout: Timeout in seconds for every request.
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        self.api_client = api_client or client.ApiClient()
        self.networking = client.NetworkingV1Api(self.api_client)
        self.core = client.CoreV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)
        self.request_timeout = request_timeout
        self._watches: set[watch.Watch] = set()

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        """Typed client models to the camelCase JSON layout of the API."""
        return self.api_client.sanitize_for_serialization(obj)

    async def _call(
        self,
        kind: str,
        namespace: str | None,
        name: str,
        fn: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        kwargs.setdefault("_request_timeout", self.request_timeout)
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as e:
            raise _translate(e, kind, namespace, name) from e

    async def get_ingress(self, namespace: str, name: str) -> Ingress:
        obj = await self._call(
            "Ingress", namespace, name, self.networking.read_namespaced_ingress, name, namespace
        )
        return Ingress.from_dict(self._to_dict(obj))

    async def list_ingresses(self, namespace: str | None = None) -> list[Ingress]:
        if namespace is None:
            result = await self._call(
                "Ingress", None, "", self.networking.list_ingress_for_all_namespaces
            )
        else:
            result = await self._call(
                "Ingress", namespace, "", self.networking.list_namespaced_ingress, namespace
            )
        return [Ingress.from_dict(self._to_dict(item)) for item in result.items]

    async def list_gateways(self) -> list[Gateway]:
        result = await self._call(
            "Gateway",
            None,
            "",
            self.custom.list_cluster_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            GATEWAY_PLURAL,
        )
        return [Gateway.from_dict(item) for item in result.get("items", [])]

    async def lookup_service_ports(self, namespace: str, name: str) -> dict[str, int]:
        obj = await self._call(
            "Service", namespace, name, self.core.read_namespaced_service, name, namespace
        )
        return service_ports_from_dict(self._to_dict(obj))

    async def get_route(self, namespace: str, name: str) -> HTTPRoute:
        obj = await self._call(
            ROUTE_KIND,
            namespace,
            name,
            self.custom.get_namespaced_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            namespace,
            ROUTE_PLURAL,
            name,
        )
        return HTTPRoute.from_dict(obj)

    async def list_routes(self, namespace: str) -> list[HTTPRoute]:
        result = await self._call(
            ROUTE_KIND,
            namespace,
            "",
            self.custom.list_namespaced_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            namespace,
            ROUTE_PLURAL,
        )
        return [HTTPRoute.from_dict(item) for item in result.get("items", [])]

    async def create_route(self, route: HTTPRoute) -> HTTPRoute:
        obj = await self._call(
            ROUTE_KIND,
            route.namespace,
            route.name,
            self.custom.create_namespaced_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            route.namespace,
            ROUTE_PLURAL,
            route.to_manifest(),
        )
        return HTTPRoute.from_dict(obj)

    async def update_route(self, route: HTTPRoute) -> HTTPRoute:
        obj = await self._call(
            ROUTE_KIND,
            route.namespace,
            route.name,
            self.custom.replace_namespaced_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            route.namespace,
            ROUTE_PLURAL,
            route.name,
            route.to_manifest(),
        )
        return HTTPRoute.from_dict(obj)

    async def delete_route(self, namespace: str, name: str) -> None:
        await self._call(
            ROUTE_KIND,
            namespace,
            name,
            self.custom.delete_namespaced_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            namespace,
            ROUTE_PLURAL,
            name,
        )

    # Watch streams. These block and are meant to run in a thread.

    def _stream(self, func, *args, **kwargs) -> Iterator[dict[str, Any]]:
        stream = watch.Watch()
        self._watches.add(stream)
        try:
            yield from stream.stream(func, *args, **kwargs)
        finally:
            self._watches.discard(stream)

    def stop_watches(self) -> None:
        """Ask every open watch stream to end after its next event."""
        for stream in list(self._watches):
            stream.stop()

    def watch_ingresses(
        self, namespace: str | None = None, timeout_seconds: int = 300
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield (event type, Ingress JSON) until the server closes the stream."""
        if namespace is None:
            events = self._stream(
                self.networking.list_ingress_for_all_namespaces, timeout_seconds=timeout_seconds
            )
        else:
            events = self._stream(
                self.networking.list_namespaced_ingress,
                namespace,
                timeout_seconds=timeout_seconds,
            )
        for event in events:
            yield event["type"], self._to_dict(event["object"])

    def watch_gateways(self, timeout_seconds: int = 300) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield (event type, Gateway JSON) until the server closes the stream."""
        for event in self._stream(
            self.custom.list_cluster_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            GATEWAY_PLURAL,
            timeout_seconds=timeout_seconds,
        ):
            yield event["type"], event["object"]

    def watch_routes(self, timeout_seconds: int = 300) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield (event type, HTTPRoute JSON) until the server closes the stream."""
        for event in self._stream(
            self.custom.list_cluster_custom_object,
            GATEWAY_GROUP,
            GATEWAY_VERSION,
            ROUTE_PLURAL,
            timeout_seconds=timeout_seconds,
        ):
            yield event["type"], event["object"]

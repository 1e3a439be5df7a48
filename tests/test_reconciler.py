"""End-to-end tests for reconcile passes over the manifest store."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from builders import (
    backend,
    gateway_manifest,
    http_path,
    ingress_manifest,
    listener,
    service_manifest,
)

from ingressbridge.core.config import BridgeConfig
from ingressbridge.core.exceptions import (
    BackendResolutionError,
    HostnameMismatchError,
    StoreError,
)
from ingressbridge.reconcile import ApplyResult, IngressReconciler
from ingressbridge.store.manifests import ManifestStore


def _rule(host: str, *paths) -> dict:
    return {"host": host, "http": {"paths": list(paths)}}


def _store(*ingress_rules, default_backend=None, extra=()) -> ManifestStore:
    return ManifestStore([
        ingress_manifest(rules=list(ingress_rules) or None, default_backend=default_backend),
        gateway_manifest("edge", "web", [listener("http"), listener("https", "*.example.com")]),
        service_manifest("shop", "web", {"http": 8080}),
        *extra,
    ])


def _reconciler(store: ManifestStore, **settings) -> IngressReconciler:
    return IngressReconciler(store, BridgeConfig(**settings))


class TestReconcile:
    """Tests for IngressReconciler.reconcile()."""

    @pytest.mark.asyncio
    async def test_creates_routes(self):
        store = _store(
            _rule("a.example.com", http_path("/", "shop", "http")),
            _rule("b.example.com", http_path("/", "shop", 80)),
        )

        report = await _reconciler(store).reconcile("web", "shop")

        assert report.results == {
            "shop-a-example-com": ApplyResult.CREATED,
            "shop-b-example-com": ApplyResult.CREATED,
        }
        assert report.writes == 2
        route = await store.get_route("web", "shop-a-example-com")
        assert route.rules[0].backend_refs[0].port == 8080

    @pytest.mark.asyncio
    async def test_second_pass_writes_nothing(self):
        """A converged Ingress reconciles without writes."""
        store = _store(_rule("a.example.com", http_path("/", "shop")))
        reconciler = _reconciler(store)

        await reconciler.reconcile("web", "shop")
        writes = list(store.writes)
        report = await reconciler.reconcile("web", "shop")

        assert report.results == {"shop-a-example-com": ApplyResult.UNCHANGED}
        assert report.writes == 0
        assert store.writes == writes

    @pytest.mark.asyncio
    async def test_retry_after_partial_failure(self):
        """A pass that failed halfway converges on the next one without duplicates."""
        store = _store(
            _rule("a.example.com", http_path("/", "shop")),
            _rule("b.example.com", http_path("/", "shop")),
            _rule("c.example.com", http_path("/", "shop")),
        )
        reconciler = _reconciler(store)
        create = store.create_route
        calls = []

        async def flaky_create(route):
            calls.append(route.name)
            if len(calls) == 2:
                raise StoreError("connection reset", status=500)
            return await create(route)

        with patch.object(store, "create_route", side_effect=flaky_create):
            with pytest.raises(StoreError):
                await reconciler.reconcile("web", "shop")
        assert [name for _, name in store.writes] == ["web/shop-a-example-com"]

        report = await reconciler.reconcile("web", "shop")

        assert report.results == {
            "shop-a-example-com": ApplyResult.UNCHANGED,
            "shop-b-example-com": ApplyResult.CREATED,
            "shop-c-example-com": ApplyResult.CREATED,
        }
        names = [route.name for route in await store.list_routes("web")]
        assert names == ["shop-a-example-com", "shop-b-example-com", "shop-c-example-com"]

    @pytest.mark.asyncio
    async def test_colliding_hostnames_converge(self):
        """Hostnames that differ only in dots and dashes get separate routes."""
        store = _store(
            _rule("a-b.example.com", http_path("/", "shop")),
            _rule("a.b.example.com", http_path("/", "shop")),
        )
        reconciler = _reconciler(store)

        first = await reconciler.reconcile("web", "shop")
        second = await reconciler.reconcile("web", "shop")

        assert set(first.results.values()) == {ApplyResult.CREATED}
        assert len(first.results) == 2
        assert set(second.results.values()) == {ApplyResult.UNCHANGED}
        assert second.writes == 0
        hostnames = sorted(r.hostnames[0] for r in await store.list_routes("web"))
        assert hostnames == ["a-b.example.com", "a.b.example.com"]

    @pytest.mark.asyncio
    async def test_missing_ingress(self):
        store = ManifestStore()
        report = await _reconciler(store).reconcile("web", "gone")
        assert report.missing is True
        assert report.results == {}
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_manual_edit_reverted(self):
        store = _store(_rule("a.example.com", http_path("/", "shop")))
        reconciler = _reconciler(store)
        await reconciler.reconcile("web", "shop")
        store.raw("HTTPRoute", "web", "shop-a-example-com")["spec"]["hostnames"] = ["evil.test"]

        report = await reconciler.reconcile("web", "shop")

        assert report.results["shop-a-example-com"] is ApplyResult.UPDATED
        route = await store.get_route("web", "shop-a-example-com")
        assert route.hostnames == ["a.example.com"]

    @pytest.mark.asyncio
    async def test_listener_change_updates_parents(self):
        store = _store(_rule("a.example.com", http_path("/", "shop")))
        reconciler = _reconciler(store)
        await reconciler.reconcile("web", "shop")
        store.add(gateway_manifest("edge", "web", [listener("https", "*.example.com")]))

        report = await reconciler.reconcile("web", "shop")

        assert report.results["shop-a-example-com"] is ApplyResult.UPDATED
        route = await store.get_route("web", "shop-a-example-com")
        assert [ref.section_name for ref in route.parent_refs] == ["https"]

    @pytest.mark.asyncio
    async def test_stale_route_pruned(self):
        """Dropping a hostname from the Ingress deletes its route."""
        store = _store(
            _rule("a.example.com", http_path("/", "shop")),
            _rule("b.example.com", http_path("/", "shop")),
        )
        reconciler = _reconciler(store)
        await reconciler.reconcile("web", "shop")
        store.add(ingress_manifest(rules=[_rule("a.example.com", http_path("/", "shop"))]))

        report = await reconciler.reconcile("web", "shop")

        assert report.pruned == ["shop-b-example-com"]
        assert [r.name for r in await store.list_routes("web")] == ["shop-a-example-com"]

    @pytest.mark.asyncio
    async def test_pruning_disabled(self):
        store = _store(
            _rule("a.example.com", http_path("/", "shop")),
            _rule("b.example.com", http_path("/", "shop")),
        )
        reconciler = _reconciler(store, prune_stale_routes=False)
        await reconciler.reconcile("web", "shop")
        store.add(ingress_manifest(rules=[_rule("a.example.com", http_path("/", "shop"))]))

        report = await reconciler.reconcile("web", "shop")

        assert report.pruned == []
        assert len(await store.list_routes("web")) == 2

    @pytest.mark.asyncio
    async def test_foreign_route_left_alone(self):
        foreign = {
            "apiVersion": "gateway.networking.k8s.io/v1",
            "kind": "HTTPRoute",
            "metadata": {"name": "shop-a-example-com", "namespace": "web"},
            "spec": {"rules": []},
        }
        store = _store(_rule("a.example.com", http_path("/", "shop")), extra=[foreign])

        report = await _reconciler(store).reconcile("web", "shop")

        assert report.results == {"shop-a-example-com": ApplyResult.SKIPPED}
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_unresolvable_backend_aborts_pass(self):
        """A bad backend on one hostname blocks every write for the Ingress."""
        store = _store(
            _rule("a.example.com", http_path("/", "shop")),
            _rule("b.example.com", http_path("/", "missing", "http")),
        )

        with pytest.raises(BackendResolutionError):
            await _reconciler(store).reconcile("web", "shop")

        assert store.writes == []

    @pytest.mark.asyncio
    async def test_soft_unresolved_ports(self):
        store = _store(_rule("a.example.com", http_path("/", "shop", "grpc")))
        await _reconciler(store, soft_unresolved_ports=True).reconcile("web", "shop")
        route = await store.get_route("web", "shop-a-example-com")
        assert route.rules[0].backend_refs[0].port is None

    @pytest.mark.asyncio
    async def test_default_backend_only(self):
        store = _store(default_backend=backend("shop", 8080))
        report = await _reconciler(store).reconcile("web", "shop")
        assert report.results == {"shop": ApplyResult.CREATED}

    @pytest.mark.asyncio
    async def test_require_hostname(self):
        store = _store(default_backend=backend("shop", 8080))
        report = await _reconciler(store, require_hostname=True).reconcile("web", "shop")
        assert report.results == {}
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_strict_single_host(self):
        store = _store(
            _rule("a.example.com", http_path("/", "shop")),
            _rule("b.example.com", http_path("/", "shop")),
        )
        with pytest.raises(HostnameMismatchError):
            await _reconciler(store, strict_single_host=True).reconcile("web", "shop")

    @pytest.mark.asyncio
    async def test_default_namespace_policy(self):
        store = ManifestStore([
            ingress_manifest(rules=[_rule("a.example.com", http_path("/", "shop"))]),
            gateway_manifest("edge", "infra", [listener("http")]),
        ])

        strict = await _reconciler(store).reconcile("web", "shop")
        relaxed = await _reconciler(store, default_namespace_policy="All").reconcile("web", "shop")

        assert strict.results == {}
        assert relaxed.results == {"shop-a-example-com": ApplyResult.CREATED}

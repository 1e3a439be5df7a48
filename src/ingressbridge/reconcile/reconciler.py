"""One reconcile pass for one Ingress.

Each pass starts from scratch: it reads the Ingress and every Gateway,
synthesizes the desired HTTPRoutes and applies them one by one. Nothing is
carried over between passes. Writes are not transactional across routes;
if the second of three writes fails, the next pass finds the first route
unchanged and continues from there.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from ingressbridge.core.config import BridgeConfig, get_config
from ingressbridge.core.exceptions import NotFoundError
from ingressbridge.reconcile.engine import ApplyResult, ReconciliationEngine
from ingressbridge.routing.backends import BackendResolver
from ingressbridge.routing.gateways import GatewaySelector
from ingressbridge.routing.synthesizer import RouteSynthesizer, owner_reference
from ingressbridge.store.base import ObjectStore

logger = structlog.get_logger()


@dataclass
class ReconcileReport:
    """What a reconcile pass did."""

    namespace: str
    name: str
    missing: bool = False
    results: dict[str, ApplyResult] = field(default_factory=dict)
    pruned: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def writes(self) -> int:
        """Number of store writes performed."""
        written = sum(
            1 for result in self.results.values()
            if result in (ApplyResult.CREATED, ApplyResult.UPDATED)
        )
        return written + len(self.pruned)


class IngressReconciler:
    """Drives synthesis and apply for a single Ingress per call.

    Args:
        store: Object store to read from and write to.
        config: Engine configuration; the process-wide one by default.
    """

    def __init__(self, store: ObjectStore, config: BridgeConfig | None = None) -> None:
        self.store = store
        self.config = config or get_config()
        self.engine = ReconciliationEngine(store)
        self.selector = GatewaySelector(default_policy=self.config.default_namespace_policy)

    def _synthesizer(self) -> RouteSynthesizer:
        # Fresh resolver per pass so Service port tables are never stale.
        resolver = BackendResolver(
            self.store,
            cross_namespace=self.config.cross_namespace,
            soft_unresolved_ports=self.config.soft_unresolved_ports,
        )
        return RouteSynthesizer(
            resolver,
            self.selector,
            require_hostname=self.config.require_hostname,
            strict_single_host=self.config.strict_single_host,
            implementation_specific=self.config.implementation_specific_match,
        )

    async def reconcile(self, namespace: str, name: str) -> ReconcileReport:
        """Converge the HTTPRoutes of Ingress ``namespace/name``.

        A missing Ingress ends the pass without writes; its routes are
        removed by the API server's garbage collector through their owner
        reference.

        Raises:
            BackendResolutionError: A backend port cannot be resolved.
            HostnameMismatchError: Strict single-host mode rejected the Ingress.
            StoreError: The store failed; the pass should be retried.
        """
        report = ReconcileReport(namespace=namespace, name=name)
        log = logger.bind(ingress=report.key)

        try:
            ingress = await self.store.get_ingress(namespace, name)
        except NotFoundError:
            log.debug("Ingress is gone, nothing to do")
            report.missing = True
            return report

        gateways = await self.store.list_gateways()
        routes = await self._synthesizer().synthesize(ingress, gateways)
        owner = owner_reference(ingress)

        for route in routes:
            report.results[route.name] = await self.engine.apply(route, owner)

        if self.config.prune_stale_routes:
            report.pruned = await self.engine.prune(namespace, owner, keep=set(report.results))

        log.info(
            "Reconciled ingress",
            routes=len(routes),
            writes=report.writes,
            skipped=sum(1 for r in report.results.values() if r is ApplyResult.SKIPPED),
        )
        return report

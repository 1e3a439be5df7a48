"""HTTPRoute synthesis from an Ingress and the Gateways in the cluster.

One HTTPRoute is produced per distinct Ingress hostname. Each route is
named after the Ingress and the hostname so that every reconcile pass
computes the same identity and updates the route in place:

    shop + shop.example.com  ->  shop-shop-example-com
    shop + *.example.com     ->  shop-wildcard-example-com

Hostnames of one Ingress that would share a name ('a-b.example.com' and
'a.b.example.com') each get a short hash of the hostname appended.

An Ingress without hostnamed rules but with a default backend produces a
single catch-all route named after the Ingress itself, unless hostnames
are required.

Rules are ordered by (path, first backend name) so that the emitted spec
does not depend on map iteration order; an unstable order would make every
pass look like a change.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

import structlog

from ingressbridge.core.exceptions import HostnameMismatchError
from ingressbridge.model.resources import Gateway, Ingress, Rule
from ingressbridge.model.route import (
    MANAGED_BY,
    MANAGED_BY_LABEL,
    BackendRef,
    HTTPRoute,
    OwnerReference,
    ParentRef,
    PathMatch,
    PathMatchType,
    RouteRule,
)
from ingressbridge.routing.backends import BackendResolver
from ingressbridge.routing.gateways import GatewaySelector
from ingressbridge.routing.paths import translate_path

logger = structlog.get_logger()

ROOT_MATCH = PathMatch(value="/", type=PathMatchType.PATH_PREFIX)


def route_name(ingress_name: str, hostname: str) -> str:
    """Deterministic HTTPRoute name for an Ingress and one of its hostnames.

    Examples:
        >>> route_name("shop", "")
        'shop'
        >>> route_name("shop", "*.Example.com")
        'shop-wildcard-example-com'
    """
    if not hostname:
        return ingress_name
    clean = hostname.lower().replace(".", "-").replace("*", "wildcard")
    return f"{ingress_name}-{clean}"


def route_names(ingress_name: str, hostnames: Sequence[str]) -> dict[str, str]:
    """Route name for each hostname of one Ingress, unique within it.

    ``route_name`` is not injective: ``a-b.example.com`` and
    ``a.b.example.com`` both give ``shop-a-b-example-com``. Hostnames whose
    names clash get a short hash of the hostname appended, so the result
    depends only on the set of hostnames, never on their order.

    Examples:
        >>> route_names("shop", ["a.example.com"])
        {'a.example.com': 'shop-a-example-com'}
    """
    plain = {hostname: route_name(ingress_name, hostname) for hostname in hostnames}
    counts: dict[str, int] = {}
    for name in plain.values():
        counts[name] = counts.get(name, 0) + 1

    names: dict[str, str] = {}
    for hostname, name in plain.items():
        if counts[name] > 1:
            digest = hashlib.sha256(hostname.encode()).hexdigest()[:8]
            name = f"{name}-{digest}"
        names[hostname] = name
    return names


def owner_reference(ingress: Ingress) -> OwnerReference:
    """Ownership marker placed on every route generated for ``ingress``."""
    return OwnerReference(
        api_version=ingress.api_version,
        kind=ingress.kind,
        name=ingress.name,
        uid=ingress.uid,
        controller=True,
        block_owner_deletion=True,
    )


class RouteSynthesizer:
    """Builds the desired HTTPRoutes for one Ingress.

    Args:
        resolver: Backend resolver, scoped to the current pass.
        selector: Gateway listener selector.
        require_hostname: Never emit the catch-all route for default backends.
        strict_single_host: Reject Ingresses naming more than one hostname.
        implementation_specific: Path match type for ImplementationSpecific paths.
    """

    def __init__(
        self,
        resolver: BackendResolver,
        selector: GatewaySelector | None = None,
        require_hostname: bool = False,
        strict_single_host: bool = False,
        implementation_specific: PathMatchType = PathMatchType.PATH_PREFIX,
    ) -> None:
        self.resolver = resolver
        self.selector = selector or GatewaySelector()
        self.require_hostname = require_hostname
        self.strict_single_host = strict_single_host
        self.implementation_specific = implementation_specific

    def collect_hostnames(self, ingress: Ingress) -> list[str]:
        """Distinct hostnames of the Ingress in declaration order.

        Raises:
            HostnameMismatchError: In strict mode, on a second distinct hostname.
        """
        hostnames = ingress.hostnames
        if self.strict_single_host and len(hostnames) > 1:
            raise HostnameMismatchError(hostnames[0], hostnames[1])
        return hostnames

    async def synthesize(self, ingress: Ingress, gateways: Sequence[Gateway]) -> list[HTTPRoute]:
        """Compute every HTTPRoute the Ingress should own right now.

        Hostnames that no listener serves are skipped; the Ingress is simply
        not mountable on them yet. The default backend is only resolved when
        a route will actually use it.

        Raises:
            BackendResolutionError: If a backend port cannot be resolved.
            HostnameMismatchError: In strict single-host mode.
        """
        log = logger.bind(ingress=ingress.key)
        hostnames = self.collect_hostnames(ingress)
        owner = owner_reference(ingress)
        routes: list[HTTPRoute] = []

        if not hostnames:
            if ingress.default_backend is None:
                log.debug("No hostnames and no default backend")
                return routes
            if self.require_hostname:
                log.info("Skipping catch-all route, hostnames are required")
                return routes
            parents = self.selector.select_catch_all(ingress.namespace, gateways)
            if not parents:
                log.info("No catch-all or wildcard listener accessible for default backend")
                return routes
            default_ref = await self.resolver.resolve(ingress.namespace, ingress.default_backend)
            routes.append(self._build(
                ingress.name, ingress, "", [RouteRule((ROOT_MATCH,), (default_ref,))], parents, owner
            ))
            return routes

        names = route_names(ingress.name, hostnames)
        grouped = self.selector.group_by_hostname(ingress.namespace, gateways)
        default_ref: BackendRef | None = None
        for hostname in hostnames:
            rules = await self._rules_for(ingress, [r for r in ingress.rules if r.host == hostname])
            if not rules:
                log.info("Hostname has no paths, skipping", hostname=hostname)
                continue
            parents = self.selector.select_from_groups(hostname, grouped)
            if not parents:
                log.info("No listener serves hostname, skipping", hostname=hostname)
                continue
            if ingress.default_backend is not None and not any(
                ROOT_MATCH in rule.matches for rule in rules
            ):
                if default_ref is None:
                    default_ref = await self.resolver.resolve(
                        ingress.namespace, ingress.default_backend
                    )
                rules.append(RouteRule((ROOT_MATCH,), (default_ref,)))
            rules.sort(key=lambda rule: rule.sort_key)
            routes.append(self._build(names[hostname], ingress, hostname, rules, parents, owner))

        return routes

    async def _rules_for(self, ingress: Ingress, rules: list[Rule]) -> list[RouteRule]:
        collected: dict[RouteRule, None] = {}
        for rule in rules:
            for path in rule.paths:
                match = translate_path(path.path, path.kind, self.implementation_specific)
                ref = await self.resolver.resolve(ingress.namespace, path.backend)
                collected.setdefault(RouteRule((match,), (ref,)), None)
        return list(collected)

    def _build(
        self,
        name: str,
        ingress: Ingress,
        hostname: str,
        rules: list[RouteRule],
        parents: list[ParentRef],
        owner: OwnerReference,
    ) -> HTTPRoute:
        return HTTPRoute(
            name=name,
            namespace=ingress.namespace,
            hostnames=[hostname] if hostname else [],
            rules=rules,
            parent_refs=parents,
            owner_references=[owner],
            labels={MANAGED_BY_LABEL: MANAGED_BY},
        )

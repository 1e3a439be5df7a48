"""Gateway listener selection.

For each Ingress hostname the selector finds every Gateway listener that
(a) accepts routes from the Ingress namespace and (b) serves the hostname,
and turns them into HTTPRoute parent references.

Example:
    selector = GatewaySelector()
    parents = selector.select("web", "shop.example.com", gateways)
    if not parents:
        # nothing can serve this hostname yet
        ...
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from ingressbridge.model.resources import Gateway, Listener, NamespacePolicy
from ingressbridge.model.route import ParentRef
from ingressbridge.routing.hostnames import MatchRank, is_wildcard_pattern, rank_listeners


def create_parent_ref(gateway: Gateway, listener: Listener) -> ParentRef:
    """Parent reference attaching a route to one listener of a Gateway."""
    return ParentRef(
        group=gateway.group,
        kind=gateway.kind,
        namespace=gateway.namespace,
        name=gateway.name,
        section_name=listener.name,
    )


def sort_parent_refs(refs: Iterable[ParentRef]) -> list[ParentRef]:
    """Deduplicate and order parent refs by group, kind, namespace, name, section."""
    unique = {ref.sort_key: ref for ref in refs}
    return [unique[key] for key in sorted(unique)]


class GatewaySelector:
    """Selects the listeners an Ingress hostname can attach to.

    Args:
        default_policy: Namespace policy assumed for listeners without an
            explicit ``allowedRoutes.namespaces.from``. Gateway API defaults
            to ``Same``.
    """

    def __init__(self, default_policy: NamespacePolicy = NamespacePolicy.SAME) -> None:
        self.default_policy = default_policy

    def is_accessible(self, listener: Listener, gateway: Gateway, namespace: str) -> bool:
        """Whether routes in ``namespace`` may attach to ``listener``.

        ``Selector`` policies are never satisfied; Namespace labels are not
        evaluated.
        """
        policy = listener.allowed_namespaces or self.default_policy
        if policy is NamespacePolicy.ALL:
            return True
        if policy is NamespacePolicy.SAME:
            return gateway.namespace == namespace
        return False

    def accessible_listeners(
        self, namespace: str, gateways: Sequence[Gateway]
    ) -> Iterator[tuple[Gateway, Listener]]:
        for gateway in gateways:
            for listener in gateway.listeners:
                if self.is_accessible(listener, gateway, namespace):
                    yield gateway, listener

    def group_by_hostname(
        self, namespace: str, gateways: Sequence[Gateway]
    ) -> dict[str, list[ParentRef]]:
        """Accessible parent refs indexed by listener hostname ("" for catch-all).

        Built once per reconcile pass and reused for every Ingress hostname.
        """
        grouped: dict[str, list[ParentRef]] = {}
        for gateway, listener in self.accessible_listeners(namespace, gateways):
            grouped.setdefault(listener.hostname or "", []).append(
                create_parent_ref(gateway, listener)
            )
        return grouped

    @staticmethod
    def rank_groups(
        hostname: str, grouped: dict[str, list[ParentRef]]
    ) -> list[tuple[MatchRank, list[ParentRef]]]:
        """Listener groups serving ``hostname``, most specific pattern first."""
        return rank_listeners(hostname, grouped.items())

    def select_from_groups(
        self, hostname: str, grouped: dict[str, list[ParentRef]]
    ) -> list[ParentRef]:
        """Like select(), over an index returned by group_by_hostname()."""
        return sort_parent_refs(
            ref for _, refs in self.rank_groups(hostname, grouped) for ref in refs
        )

    def select(self, namespace: str, hostname: str, gateways: Sequence[Gateway]) -> list[ParentRef]:
        """All listeners serving ``hostname`` for an Ingress in ``namespace``.

        Every matching listener is kept regardless of rank so that a route
        attaches to, e.g., both the HTTP and the HTTPS listener. The result
        is deduplicated and sorted; it is empty when nothing matches.
        """
        return self.select_from_groups(hostname, self.group_by_hostname(namespace, gateways))

    def select_catch_all(self, namespace: str, gateways: Sequence[Gateway]) -> list[ParentRef]:
        """Listeners suitable for a route without hostnames.

        Only catch-all and wildcard listeners qualify; a bare default route
        must not attach to a listener that serves a single exact hostname.
        """
        return sort_parent_refs(
            create_parent_ref(gateway, listener)
            for gateway, listener in self.accessible_listeners(namespace, gateways)
            if not listener.hostname or is_wildcard_pattern(listener.hostname)
        )

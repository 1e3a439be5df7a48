"""Ingress to HTTPRoute translation.

Turns an Ingress plus the Gateways visible to it into the HTTPRoutes it
should own:

- hostnames:   listener hostname matching (exact, wildcard, catch-all)
- paths:       Ingress pathType to HTTPRoute path match
- backends:    Service/resource backends to backend refs, named ports resolved
- gateways:    listener selection with namespace access rules
- synthesizer: one ordered, deterministically named HTTPRoute per hostname

Usage:
    from ingressbridge.routing import BackendResolver, RouteSynthesizer

    synthesizer = RouteSynthesizer(BackendResolver(store))
    routes = await synthesizer.synthesize(ingress, gateways)
"""

from ingressbridge.routing.backends import BackendResolver, PortLookup
from ingressbridge.routing.gateways import GatewaySelector, create_parent_ref, sort_parent_refs
from ingressbridge.routing.hostnames import (
    MatchRank,
    get_base_domain,
    is_wildcard_pattern,
    match_hostname,
    rank_listeners,
)
from ingressbridge.routing.paths import translate_path
from ingressbridge.routing.synthesizer import (
    RouteSynthesizer,
    owner_reference,
    route_name,
    route_names,
)

__all__ = [
    "BackendResolver",
    "PortLookup",
    "GatewaySelector",
    "create_parent_ref",
    "sort_parent_refs",
    "MatchRank",
    "get_base_domain",
    "is_wildcard_pattern",
    "match_hostname",
    "rank_listeners",
    "translate_path",
    "RouteSynthesizer",
    "owner_reference",
    "route_name",
    "route_names",
]

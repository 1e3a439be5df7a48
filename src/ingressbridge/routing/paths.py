"""Ingress path to HTTPRoute path match translation."""

from __future__ import annotations

from ingressbridge.model.resources import PathKind
from ingressbridge.model.route import PathMatch, PathMatchType

_DIRECT = {
    PathKind.EXACT: PathMatchType.EXACT,
    PathKind.PREFIX: PathMatchType.PATH_PREFIX,
}


def translate_path(
    path: str,
    kind: PathKind | None,
    implementation_specific: PathMatchType = PathMatchType.PATH_PREFIX,
) -> PathMatch:
    """Translate one Ingress path into an HTTPRoute path match.

    The path string is passed through untouched; leading and trailing
    slashes are not normalised.

    Args:
        path: The Ingress path.
        kind: The Ingress pathType, None when the Ingress omitted it.
        implementation_specific: Match type used for ImplementationSpecific
            paths. Prefix matching unless configured otherwise.

    Examples:
        >>> translate_path("/api", PathKind.PREFIX)
        PathMatch(value='/api', type=<PathMatchType.PATH_PREFIX: 'PathPrefix'>)
        >>> translate_path("/raw", None)
        PathMatch(value='/raw', type=None)
    """
    if kind is None:
        return PathMatch(value=path, type=None)
    if kind is PathKind.IMPLEMENTATION_SPECIFIC:
        return PathMatch(value=path, type=implementation_specific)
    return PathMatch(value=path, type=_DIRECT[kind])

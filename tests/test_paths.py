"""Tests for Ingress path translation."""

from __future__ import annotations

from ingressbridge.model.resources import PathKind
from ingressbridge.model.route import PathMatch, PathMatchType
from ingressbridge.routing.paths import translate_path


class TestTranslatePath:
    """Tests for translate_path()."""

    def test_exact(self):
        assert translate_path("/login", PathKind.EXACT) == PathMatch("/login", PathMatchType.EXACT)

    def test_prefix(self):
        assert translate_path("/api", PathKind.PREFIX) == PathMatch(
            "/api", PathMatchType.PATH_PREFIX
        )

    def test_implementation_specific_defaults_to_prefix(self):
        match = translate_path("/static", PathKind.IMPLEMENTATION_SPECIFIC)
        assert match.type is PathMatchType.PATH_PREFIX

    def test_implementation_specific_configurable(self):
        """ImplementationSpecific can be mapped to regular expression matches."""
        match = translate_path(
            "/v[0-9]+/.*",
            PathKind.IMPLEMENTATION_SPECIFIC,
            implementation_specific=PathMatchType.REGULAR_EXPRESSION,
        )
        assert match == PathMatch("/v[0-9]+/.*", PathMatchType.REGULAR_EXPRESSION)

    def test_missing_path_type(self):
        """Paths without pathType produce a match without type."""
        match = translate_path("/raw", None)
        assert match.type is None
        assert match.to_dict() == {"value": "/raw"}

    def test_path_is_not_normalised(self):
        assert translate_path("/api/", PathKind.PREFIX).value == "/api/"
        assert translate_path("", PathKind.PREFIX).value == ""

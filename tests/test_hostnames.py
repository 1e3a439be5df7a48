"""Tests for listener hostname matching."""

from __future__ import annotations

import pytest

from ingressbridge.routing.hostnames import (
    MatchRank,
    get_base_domain,
    is_wildcard_pattern,
    match_hostname,
    rank_listeners,
)


class TestWildcardHelpers:
    """Tests for wildcard pattern helpers."""

    def test_is_wildcard_pattern(self):
        """Only '*.' prefixed patterns are wildcards."""
        assert is_wildcard_pattern("*.example.com") is True
        assert is_wildcard_pattern("api.example.com") is False
        assert is_wildcard_pattern("*example.com") is False
        assert is_wildcard_pattern("") is False
        assert is_wildcard_pattern(None) is False

    def test_get_base_domain(self):
        """Test base domain extraction."""
        assert get_base_domain("*.example.com") == "example.com"
        assert get_base_domain("*.a.b.example.com") == "a.b.example.com"

    def test_get_base_domain_rejects_exact(self):
        """Exact patterns have no base domain."""
        with pytest.raises(ValueError):
            get_base_domain("example.com")


class TestMatchHostname:
    """Tests for match_hostname()."""

    def test_exact(self):
        assert match_hostname("a.example.com", "a.example.com") is MatchRank.EXACT

    def test_exact_is_case_insensitive(self):
        assert match_hostname("A.Example.COM", "a.example.com") is MatchRank.EXACT

    def test_exact_mismatch(self):
        assert match_hostname("b.example.com", "a.example.com") is MatchRank.NONE

    def test_wildcard_single_label(self):
        assert match_hostname("a.example.com", "*.example.com") is MatchRank.WILDCARD

    def test_wildcard_multiple_labels(self):
        """Wildcards cover any depth below the base domain."""
        assert match_hostname("a.b.example.com", "*.example.com") is MatchRank.WILDCARD

    def test_wildcard_never_matches_bare_domain(self):
        assert match_hostname("example.com", "*.example.com") is MatchRank.NONE

    def test_wildcard_requires_label_boundary(self):
        """A shared suffix that is not a whole label does not match."""
        assert match_hostname("badexample.com", "*.example.com") is MatchRank.NONE

    def test_wildcard_case_insensitive(self):
        assert match_hostname("API.example.com", "*.EXAMPLE.com") is MatchRank.WILDCARD

    def test_catch_all(self):
        """Listeners without hostname serve every host."""
        assert match_hostname("anything.test", None) is MatchRank.CATCH_ALL
        assert match_hostname("anything.test", "") is MatchRank.CATCH_ALL

    def test_rank_order(self):
        assert MatchRank.EXACT > MatchRank.WILDCARD > MatchRank.CATCH_ALL > MatchRank.NONE


class TestRankListeners:
    """Tests for rank_listeners()."""

    CANDIDATES = [
        (None, "catch-all"),
        ("*.example.com", "wildcard"),
        ("a.example.com", "exact"),
        ("other.test", "other"),
    ]

    def test_exact_host_matches_everything_applicable(self):
        """An exact host is served by exact, wildcard and catch-all listeners."""
        ranked = rank_listeners("a.example.com", self.CANDIDATES)
        assert ranked == [
            (MatchRank.EXACT, "exact"),
            (MatchRank.WILDCARD, "wildcard"),
            (MatchRank.CATCH_ALL, "catch-all"),
        ]

    def test_subdomain_matches_wildcard_and_catch_all(self):
        ranked = rank_listeners("x.example.com", self.CANDIDATES)
        assert [item for _, item in ranked] == ["wildcard", "catch-all"]

    def test_bare_domain_matches_catch_all_only(self):
        ranked = rank_listeners("example.com", self.CANDIDATES)
        assert ranked == [(MatchRank.CATCH_ALL, "catch-all")]

    def test_equal_ranks_keep_input_order(self):
        ranked = rank_listeners("a.example.com", [(None, "http"), (None, "https")])
        assert [item for _, item in ranked] == ["http", "https"]

    def test_no_candidates(self):
        assert rank_listeners("a.example.com", []) == []

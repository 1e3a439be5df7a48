"""Hostname matching between Ingress hosts and Gateway listener patterns.

Listener hostnames come in three shapes:
    - exact:     api.example.com matches only api.example.com
    - wildcard:  *.example.com matches api.example.com and a.b.example.com,
                 but never example.com itself
    - catch-all: a listener without hostname matches every host

Matches are ranked EXACT > WILDCARD > CATCH_ALL so callers can order
listeners by specificity. All comparisons are case-insensitive.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum
from typing import TypeVar

T = TypeVar("T")


class MatchRank(IntEnum):
    """How specifically a listener pattern matches a host."""

    NONE = 0
    CATCH_ALL = 1
    WILDCARD = 2
    EXACT = 3


def is_wildcard_pattern(pattern: str | None) -> bool:
    """Check if a listener hostname is a wildcard pattern.

    Examples:
        >>> is_wildcard_pattern("*.example.com")
        True
        >>> is_wildcard_pattern("api.example.com")
        False
        >>> is_wildcard_pattern(None)
        False
    """
    return bool(pattern) and pattern.startswith("*.")


def get_base_domain(wildcard_pattern: str) -> str:
    """Extract the base domain from a wildcard pattern.

    Raises:
        ValueError: If pattern is not a wildcard.

    Examples:
        >>> get_base_domain("*.example.com")
        'example.com'
    """
    if not is_wildcard_pattern(wildcard_pattern):
        raise ValueError(f"Not a wildcard pattern: {wildcard_pattern}")
    return wildcard_pattern[2:]


def match_hostname(host: str, pattern: str | None) -> MatchRank:
    """Rank how a listener hostname pattern matches an Ingress host.

    Args:
        host: Hostname requested by the Ingress rule.
        pattern: Listener hostname; None or empty for a catch-all listener.

    Returns:
        The match rank, MatchRank.NONE if the listener does not serve host.

    Examples:
        >>> match_hostname("a.example.com", "A.example.com")
        <MatchRank.EXACT: 3>
        >>> match_hostname("a.example.com", "*.example.com")
        <MatchRank.WILDCARD: 2>
        >>> match_hostname("example.com", "*.example.com")
        <MatchRank.NONE: 0>
        >>> match_hostname("example.com", None)
        <MatchRank.CATCH_ALL: 1>
    """
    if not pattern:
        return MatchRank.CATCH_ALL

    host = host.lower()
    pattern = pattern.lower()

    if is_wildcard_pattern(pattern):
        base = get_base_domain(pattern)
        # Suffix must start on a label boundary: *.example.com never matches badexample.com
        if host != base and host.endswith("." + base):
            return MatchRank.WILDCARD
        return MatchRank.NONE

    return MatchRank.EXACT if host == pattern else MatchRank.NONE


def rank_listeners(
    host: str,
    candidates: Iterable[tuple[str | None, T]],
) -> list[tuple[MatchRank, T]]:
    """Rank (pattern, item) pairs against a host, most specific first.

    Non-matching pairs are dropped. Equally ranked items are all kept, in
    input order, so a host can attach to an HTTP and an HTTPS listener at
    the same time.
    """
    ranked = [(match_hostname(host, pattern), item) for pattern, item in candidates]
    matched = [(rank, item) for rank, item in ranked if rank is not MatchRank.NONE]
    matched.sort(key=lambda pair: pair[0], reverse=True)
    return matched

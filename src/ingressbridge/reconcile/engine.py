"""Idempotent apply of synthesized HTTPRoutes.

The engine compares a desired route with the stored object of the same
name and performs at most one write:

    not found            -> create (with owner reference)
    owned, spec differs  -> replace spec, keep the rest of the object
    owned, spec equal    -> nothing
    not owned            -> nothing, logged as a conflict

The stored spec is compared as a whole, including fields the engine
never sets, so a filter added by hand counts as drift and is removed.

Routes owned by someone else, or by no one, are never modified.
"""

from __future__ import annotations

from collections.abc import Collection
from enum import Enum

import structlog

from ingressbridge.core.exceptions import NotFoundError
from ingressbridge.model.route import HTTPRoute, OwnerReference
from ingressbridge.store.base import ObjectStore

logger = structlog.get_logger()


class ApplyResult(Enum):
    """Outcome of applying one route."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


class ReconciliationEngine:
    """Applies desired HTTPRoutes to an object store."""

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def apply(self, desired: HTTPRoute, owner: OwnerReference | None = None) -> ApplyResult:
        """Create or update ``desired`` if, and only if, it is ours to write.

        Args:
            desired: The route to converge to. Its name and namespace are
                the identity looked up in the store.
            owner: Ownership marker to check against; defaults to the first
                owner reference on ``desired``.

        Raises:
            StoreError: If reading or writing the store fails.
            ValueError: If no ownership marker is available.
        """
        if owner is None:
            if not desired.owner_references:
                raise ValueError(f"route {desired.namespace}/{desired.name} has no owner")
            owner = desired.owner_references[0]

        log = logger.bind(route=f"{desired.namespace}/{desired.name}")

        try:
            existing = await self.store.get_route(desired.namespace, desired.name)
        except NotFoundError:
            if owner not in desired.owner_references:
                desired.owner_references = [owner, *desired.owner_references]
            await self.store.create_route(desired)
            log.info("Created HTTPRoute")
            return ApplyResult.CREATED

        if not existing.is_owned_by(owner):
            log.warning(
                "HTTPRoute exists and is not owned by this Ingress, leaving it alone",
                owner=f"{owner.kind}/{owner.name}",
            )
            return ApplyResult.SKIPPED

        if existing.spec_equals(desired):
            log.debug("HTTPRoute is up to date")
            return ApplyResult.UNCHANGED

        existing.replace_spec(desired)
        await self.store.update_route(existing)
        log.info("Updated HTTPRoute")
        return ApplyResult.UPDATED

    async def prune(
        self, namespace: str, owner: OwnerReference, keep: Collection[str]
    ) -> list[str]:
        """Delete routes owned by ``owner`` whose name is not in ``keep``.

        Used when a hostname disappears from an Ingress. Routes not owned by
        ``owner`` are never deleted. Returns the names that were deleted.
        """
        deleted: list[str] = []
        for route in await self.store.list_routes(namespace):
            if route.name in keep or not route.is_owned_by(owner):
                continue
            try:
                await self.store.delete_route(namespace, route.name)
            except NotFoundError:
                continue
            logger.info("Deleted stale HTTPRoute", route=f"{namespace}/{route.name}")
            deleted.append(route.name)
        return deleted

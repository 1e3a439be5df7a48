"""Gateway API objects produced by the engine.

HTTPRoutes are modelled as plain dataclasses that serialise to, and parse
from, the JSON layout of ``gateway.networking.k8s.io/v1`` objects. The
serialised ``spec`` is what the reconciliation engine compares, so
``spec_dict()`` must be deterministic: absent optional fields are omitted,
never emitted as ``null``.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ingressbridge.model.resources import GATEWAY_GROUP

ROUTE_API_VERSION = f"{GATEWAY_GROUP}/v1"
ROUTE_KIND = "HTTPRoute"
ROUTE_PLURAL = "httproutes"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "ingressbridge"


class PathMatchType(str, Enum):
    """HTTPRoute path match types."""

    EXACT = "Exact"
    PATH_PREFIX = "PathPrefix"
    REGULAR_EXPRESSION = "RegularExpression"


def canonical_spec(spec: dict[str, Any]) -> str:
    """Canonical JSON of an HTTPRoute spec.

    Path matches without a type are compared as PathPrefix, the type the
    API server fills in when storing them.
    """
    spec = copy.deepcopy(spec)
    for rule in spec.get("rules") or []:
        for match in rule.get("matches") or []:
            path = match.get("path")
            if isinstance(path, dict) and not path.get("type"):
                path["type"] = PathMatchType.PATH_PREFIX.value
    return json.dumps(spec, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class PathMatch:
    """A path match. ``type`` is None when the Ingress path had no pathType."""

    value: str
    type: PathMatchType | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.type is not None:
            data["type"] = self.type.value
        data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathMatch:
        match_type = data.get("type")
        return cls(
            value=data.get("value", ""),
            type=PathMatchType(match_type) if match_type else None,
        )


@dataclass(frozen=True)
class BackendRef:
    """A resolved backend reference.

    ``port`` is always numeric; it is only None for resource backends or
    when unresolved named ports are tolerated.
    """

    name: str
    namespace: str
    group: str = ""
    kind: str = "Service"
    port: int | None = None
    weight: int = 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "group": self.group,
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
        }
        if self.port is not None:
            data["port"] = self.port
        data["weight"] = self.weight
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], namespace: str = "") -> BackendRef:
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace") or namespace,
            group=data.get("group", ""),
            kind=data.get("kind", "Service"),
            port=data.get("port"),
            weight=data.get("weight", 1),
        )


@dataclass(frozen=True)
class ParentRef:
    """Attachment of a route to one listener of one Gateway."""

    name: str
    namespace: str | None = None
    group: str | None = GATEWAY_GROUP
    kind: str | None = "Gateway"
    section_name: str | None = None

    @property
    def sort_key(self) -> tuple[str, str, str, str, str]:
        """Lexicographic ordering key; absent fields sort as empty strings."""
        return (
            self.group or "",
            self.kind or "",
            self.namespace or "",
            self.name,
            self.section_name or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.group is not None:
            data["group"] = self.group
        if self.kind is not None:
            data["kind"] = self.kind
        data["name"] = self.name
        if self.namespace is not None:
            data["namespace"] = self.namespace
        if self.section_name is not None:
            data["sectionName"] = self.section_name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParentRef:
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace"),
            group=data.get("group"),
            kind=data.get("kind"),
            section_name=data.get("sectionName"),
        )


@dataclass(frozen=True)
class RouteRule:
    """One HTTPRoute rule: path matches and the backends they forward to."""

    matches: tuple[PathMatch, ...] = ()
    backend_refs: tuple[BackendRef, ...] = ()

    @property
    def sort_key(self) -> tuple[str, str]:
        """(first path value, first backend name), empty when absent."""
        path = self.matches[0].value if self.matches else ""
        backend = self.backend_refs[0].name if self.backend_refs else ""
        return path, backend

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.matches:
            data["matches"] = [{"path": m.to_dict()} for m in self.matches]
        data["backendRefs"] = [ref.to_dict() for ref in self.backend_refs]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], namespace: str = "") -> RouteRule:
        return cls(
            matches=tuple(
                PathMatch.from_dict(m["path"]) for m in data.get("matches") or [] if m.get("path")
            ),
            backend_refs=tuple(
                BackendRef.from_dict(b, namespace) for b in data.get("backendRefs") or []
            ),
        )


@dataclass(frozen=True)
class OwnerReference:
    """Back-reference from a generated route to the Ingress that produced it."""

    api_version: str
    kind: str
    name: str
    uid: str = ""
    controller: bool = True
    block_owner_deletion: bool = True

    def matches(self, other: OwnerReference) -> bool:
        """Same owner: api version, kind and name equal, uid too when both have one."""
        if (self.api_version, self.kind, self.name) != (other.api_version, other.kind, other.name):
            return False
        if self.uid and other.uid:
            return self.uid == other.uid
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OwnerReference:
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
            controller=bool(data.get("controller", False)),
            block_owner_deletion=bool(data.get("blockOwnerDeletion", False)),
        )


@dataclass
class HTTPRoute:
    """A generated HTTPRoute (or one read back from the store).

    Routes read back from a store keep the object they were parsed from in
    ``raw``. Comparisons use its ``spec`` verbatim, so fields this model
    does not know about (filters, timeouts, header matches) still count as
    differences, and writes start from it so that metadata such as
    finalizers survives an update.
    """

    name: str
    namespace: str
    hostnames: list[str] = field(default_factory=list)
    rules: list[RouteRule] = field(default_factory=list)
    parent_refs: list[ParentRef] = field(default_factory=list)
    owner_references: list[OwnerReference] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None
    raw: dict[str, Any] | None = field(default=None, repr=False, compare=False)

    def is_owned_by(self, owner: OwnerReference) -> bool:
        return any(ref.matches(owner) for ref in self.owner_references)

    def spec_dict(self) -> dict[str, Any]:
        """The ``spec`` block, the only part the engine ever writes on update."""
        spec: dict[str, Any] = {
            "parentRefs": [ref.to_dict() for ref in self.parent_refs],
        }
        if self.hostnames:
            spec["hostnames"] = list(self.hostnames)
        spec["rules"] = [rule.to_dict() for rule in self.rules]
        return spec

    def stored_spec(self) -> dict[str, Any]:
        """The spec as stored, falling back to ``spec_dict()`` for new routes."""
        if self.raw is not None:
            return self.raw.get("spec") or {}
        return self.spec_dict()

    def spec_fingerprint(self) -> str:
        """Canonical serialisation of the spec used for equality checks."""
        return canonical_spec(self.stored_spec())

    def spec_equals(self, other: HTTPRoute) -> bool:
        return self.spec_fingerprint() == other.spec_fingerprint()

    def replace_spec(self, desired: HTTPRoute) -> None:
        """Take over the spec of ``desired``, dropping anything else in it."""
        self.hostnames = list(desired.hostnames)
        self.rules = list(desired.rules)
        self.parent_refs = list(desired.parent_refs)
        if self.raw is not None:
            self.raw["spec"] = self.spec_dict()

    def to_manifest(self) -> dict[str, Any]:
        """Full Kubernetes object, suitable for create, replace or printing."""
        if self.raw is not None:
            manifest = copy.deepcopy(self.raw)
        else:
            manifest = {"spec": self.spec_dict()}
        manifest["apiVersion"] = ROUTE_API_VERSION
        manifest["kind"] = ROUTE_KIND

        metadata = manifest.setdefault("metadata", {})
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        for key, value in (
            ("labels", dict(self.labels)),
            ("annotations", dict(self.annotations)),
            ("ownerReferences", [ref.to_dict() for ref in self.owner_references]),
        ):
            if value:
                metadata[key] = value
            else:
                metadata.pop(key, None)
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        else:
            metadata.pop("resourceVersion", None)

        return {
            "apiVersion": manifest.pop("apiVersion"),
            "kind": manifest.pop("kind"),
            "metadata": manifest.pop("metadata"),
            "spec": manifest.pop("spec", {}),
            **manifest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HTTPRoute:
        """Create from a Kubernetes ``HTTPRoute`` object in JSON form."""
        data = copy.deepcopy(data)
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        namespace = metadata.get("namespace") or "default"
        return cls(
            name=metadata.get("name", ""),
            namespace=namespace,
            hostnames=list(spec.get("hostnames") or []),
            rules=[RouteRule.from_dict(r, namespace) for r in spec.get("rules") or []],
            parent_refs=[ParentRef.from_dict(p) for p in spec.get("parentRefs") or []],
            owner_references=[
                OwnerReference.from_dict(o) for o in metadata.get("ownerReferences") or []
            ],
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            resource_version=metadata.get("resourceVersion"),
            raw=data,
        )

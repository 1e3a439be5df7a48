"""Error types raised by the route synthesis and reconciliation engine.

Every error carries a short machine-readable ``code`` and a human readable
``message``. The reconciler treats ``NotFoundError`` as benign; every other
error aborts the pass for the declaration being reconciled and is handed
back to the work queue for retry.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all ingressbridge errors."""

    code: str = "bridge_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class NotFoundError(BridgeError):
    """A referenced object does not exist in the store."""

    code = "not_found"

    def __init__(self, kind: str, namespace: str | None, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        ref = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {ref} not found")


class BackendResolutionError(BridgeError):
    """A backend reference could not be turned into a numeric port."""

    code = "backend_resolution"

    def __init__(self, namespace: str, service: str, reason: str) -> None:
        self.namespace = namespace
        self.service = service
        self.reason = reason
        super().__init__(f"cannot resolve backend {namespace}/{service}: {reason}")


class HostnameMismatchError(BridgeError):
    """A declaration names several hostnames where only one is accepted."""

    code = "hostname_mismatch"

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"hostname mismatch, expected {expected} but got {actual}")


class StoreError(BridgeError):
    """The object store rejected or failed a request."""

    code = "store_error"

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class ConflictError(StoreError):
    """An object with the same identity was created concurrently."""

    code = "conflict"


class ManifestError(BridgeError):
    """A manifest file could not be read or has an unexpected shape."""

    code = "invalid_manifest"


def format_error_for_user(error: BaseException) -> str:
    """Render an exception as a single line suitable for terminal output."""
    if isinstance(error, BridgeError):
        return f"[{error.code}] {error.message}"
    text = str(error).strip()
    if not text:
        return type(error).__name__
    return f"{type(error).__name__}: {text}"

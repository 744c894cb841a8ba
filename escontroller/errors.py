# escontroller/errors.py
from typing import Optional


class ReconcileError(Exception):
    """Base class for errors raised while reconciling a resource."""


class MalformedVersion(ReconcileError, ValueError):
    def __init__(self, text, reason: str = ""):
        self.text = text
        msg = f"malformed version '{text}'"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class ValidationError(ReconcileError):
    """The declared spec fails semantic checks. Retrying cannot help."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class HintsError(ReconcileError):
    pass


class AssociationNotFound(ReconcileError):
    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class UnacceptableStatus(ReconcileError):
    def __init__(self, method: str, url: str, status_code: int, body: Optional[str] = None):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        msg = f"status unacceptable: {method} {url} returned {status_code}"
        if body:
            msg = f"{msg}: {body}"
        super().__init__(msg)


class TransientError(ReconcileError):
    """Timeouts and connection failures, always eligible for retry."""

"""
core/errors.py -- Domain error taxonomy shared by every layer.

Stores, the token codec, and the cluster client raise these; api/main.py maps
them to HTTP responses through a single exception handler. Each class carries
its HTTP status and a machine-readable code so the mapping lives in one place.

Layer rule: core/ is the kernel -- no imports from api/, auth/, storage/, or clusters/.
"""

from __future__ import annotations


class KsmsError(Exception):
    """Base class for all expected failures.

    message is safe to show to API clients. detail is optional extra context
    (e.g. the underlying cause) that is appended to the error envelope.
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(KsmsError):
    status_code = 400
    code = "validation_error"


class Conflict(KsmsError):
    status_code = 409
    code = "conflict"


class Unauthorized(KsmsError):
    status_code = 401
    code = "unauthorized"


class Forbidden(KsmsError):
    status_code = 403
    code = "forbidden"


class NotFound(KsmsError):
    status_code = 404
    code = "not_found"


class InvalidCredentials(KsmsError):
    """The kube-config payload could not be turned into a client configuration."""

    status_code = 400
    code = "invalid_credentials"


class Unreachable(KsmsError):
    """A remote cluster probe failed (network, TLS, or API auth error)."""

    status_code = 400
    code = "unreachable"


class InternalError(KsmsError):
    status_code = 500
    code = "internal_error"

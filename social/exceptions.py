"""
Error taxonomy for the 5ocial API.

Every service-level failure is a ServiceError subclass carrying a stable
``kind`` and the HTTP status it maps to. ApiErrorMiddleware turns them into
``{"error": true, "kind": ..., "message": ...}`` responses.
"""


class ServiceError(Exception):
    kind = "internal"
    status = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_envelope(self):
        return {"error": True, "kind": self.kind, "message": self.message}


class Unauthorized(ServiceError):
    kind = "unauthorized"
    status = 401
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    kind = "forbidden"
    status = 403
    default_message = "Forbidden"


class NotFound(ServiceError):
    kind = "not_found"
    status = 404
    default_message = "Not found"


class InvalidInput(ServiceError):
    kind = "invalid_input"
    status = 400
    default_message = "Invalid input"


class Conflict(ServiceError):
    kind = "conflict"
    status = 409
    default_message = "Conflict"


class DependencyFailure(ServiceError):
    kind = "dependency_failure"
    status = 503
    default_message = "A backing service is unavailable"

"""Service-layer error taxonomy.

Routers translate these into HTTP responses via the handler registered in
``everease.main``. Expected lookup states (unknown token, expired invite,
already accepted) are returned as typed outcomes by the services and only
raised where a caller asked for a mutation that cannot proceed.
"""


class EverEaseError(Exception):
    """Base exception for service errors."""

    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(EverEaseError):
    """Token, trigger, executor or document absent."""

    status_code = 404
    default_message = "Not found"


class ExpiredError(EverEaseError):
    """Invitation past its time-to-live."""

    status_code = 410
    default_message = "This invitation has expired"


class AlreadyProcessedError(EverEaseError):
    """Idempotent no-op, e.g. revoking an already revoked executor."""

    status_code = 409
    default_message = "Already processed"


class EmailMismatchError(EverEaseError):
    """Signed-in identity is not the invited identity."""

    status_code = 403
    default_message = (
        "This invitation was sent to a different email address. "
        "Sign in with the invited account to accept it."
    )


class AccessDeniedError(EverEaseError):
    """Caller is not allowed to see or change the resource."""

    status_code = 403
    default_message = "Access denied"


class ValidationError(EverEaseError):
    """Bad input: short password, oversized file, missing evidence."""

    status_code = 400
    default_message = "Invalid request"


class DependencyError(EverEaseError):
    """Identity, store, blob or mail collaborator failure."""

    status_code = 502
    default_message = "An upstream service failed. Please try again."


class ConfigurationError(EverEaseError):
    """Required environment configuration is missing."""

    status_code = 503
    default_message = "Service is not configured"

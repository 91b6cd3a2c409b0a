"""
Platform-wide exception hierarchy.

Every service raises one of these types; the single app-level error handler
(``pmo_platform.utils.errors``) turns them into the uniform error envelope.
Services never build HTTP responses themselves.

Usage:
    from pmo_platform.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=project_id)
    raise ValidationError("comments are required for rejection")
"""


class PlatformError(Exception):
    """Base class for expected (operational) failures.

    Attributes:
        status_code: HTTP status the error handler responds with.
        code: Machine-readable error code placed in the envelope.
        details: Optional structured payload for API consumers.
        is_operational: True for expected failures (logged as warnings).
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    is_operational = True

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(PlatformError):
    """Raised when input is missing or malformed, or breaks a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """Raised when a lifecycle move is not in the allowed-successor set.

    The allowed successors travel in ``details["allowed"]`` so the UI can
    offer the valid next steps.
    """

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str, allowed: list[str]) -> None:
        self.current = current
        self.target = target
        self.allowed = list(allowed)
        allowed_msg = ", ".join(allowed) if allowed else "none (terminal status)"
        super().__init__(
            f"Cannot transition from '{current}' to '{target}'. Allowed: {allowed_msg}",
            details={"current": current, "target": target, "allowed": self.allowed},
        )


class AuthenticationError(PlatformError):
    """Raised when no verified principal is attached to the request."""

    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required", details: dict | None = None) -> None:
        super().__init__(message, details)


class AuthorizationError(PlatformError):
    """Raised when the principal lacks the required role or relationship."""

    status_code = 403
    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Permission denied", details: dict | None = None) -> None:
        super().__init__(message, details)


class NotFoundError(PlatformError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Signoff").
        resource_id: The PK that was looked up.
    """

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" with id '{resource_id}'"
        msg += " not found"
        super().__init__(msg)


class ConflictError(PlatformError):
    """Raised when the entity is in the wrong state for the operation, or on duplicates.

    Maps to HTTP 409.
    """

    status_code = 409
    code = "CONFLICT"


class ExternalServiceError(PlatformError):
    """Raised when a downstream API fails. Maps to HTTP 502.

    ``details["retryable"]`` is True for timeouts and 5xx responses; the
    platform never retries on its own, the caller decides.
    """

    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str, details: dict | None = None) -> None:
        self.service = service
        super().__init__(f"{service} error: {message}", details)


class GitHubError(ExternalServiceError):
    """Raised when the GitHub REST API call fails or times out."""

    code = "GITHUB_ERROR"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__("GitHub", message, details)

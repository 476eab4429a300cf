"""
Generation error taxonomy.

Every failure a session can end in is one of these. They are raised by the
adapters and services, then recorded on the session and delivered to the UI
as a terminal notification.
"""

from typing import Optional


class GenerationError(Exception):
    """Base class for generation-engine errors."""

    def __init__(self, message: str, code: str = "GENERATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class TemplateNotFoundError(GenerationError):
    """Raised when a template id is unknown to the template source."""

    def __init__(self, template_id: str):
        super().__init__(f"Template {template_id} not found", "TEMPLATE_NOT_FOUND")
        self.template_id = template_id


class TemplateInvalidError(GenerationError):
    """Raised when a fetched template record is malformed or inactive."""

    def __init__(self, template_id: str, reason: str):
        super().__init__(
            f"Template {template_id} is invalid: {reason}", "TEMPLATE_INVALID"
        )
        self.template_id = template_id
        self.reason = reason


class AuthMissingError(GenerationError):
    """Raised when no credential is available for the backend."""

    def __init__(
        self, message: str = "Authentication token not found. Please log in again."
    ):
        super().__init__(message, "AUTH_MISSING")


class TransportError(GenerationError):
    """Network or protocol failure while talking to the backend."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason, "TRANSPORT_ERROR")
        self.reason = reason
        self.status_code = status_code


class EmptyResultError(GenerationError):
    """The stream completed without producing usable content."""

    def __init__(self, length: int, min_length: int = 1):
        if length == 0:
            message = "No content generated"
        else:
            message = f"Generated content too short ({length} < {min_length} chars)"
        super().__init__(message, "EMPTY_RESULT")
        self.length = length
        self.min_length = min_length


class PersistenceFailureError(GenerationError):
    """Create/update of the generated document was rejected or failed."""

    def __init__(self, target_id: str, reason: str):
        super().__init__(
            f"Failed to save document for {target_id}: {reason}",
            "PERSISTENCE_FAILURE",
        )
        self.target_id = target_id
        self.reason = reason


class InvalidSessionStateError(GenerationError):
    """An operation is not allowed in the session's current state."""

    def __init__(self, message: str):
        super().__init__(message, "INVALID_SESSION_STATE")


class TemplateCacheClosedError(GenerationError):
    """The template cache was torn down and no longer resolves templates."""

    def __init__(self):
        super().__init__("Template cache has been torn down", "TEMPLATE_CACHE_CLOSED")

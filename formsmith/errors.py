"""Structured error types for Formsmith.

Every failure the runtime reports is a FormsmithError subclass carrying an
ErrorType category. Validation failures additionally carry a mapping of
field-scoped FieldError objects keyed by element id, which the public form
renders next to each input.

Authorization and not-found errors deliberately use generic messages so that
callers cannot probe which forms exist.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from formsmith.types import ErrorType, FieldErrorCode, FormStatus, UpstreamKind


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error details.

    Attributes:
        element_id: Id of the form element (or ``"email"`` for the submitter email)
        code: Specific validation error code
        message: Human-readable message shown to the person filling the form

    Examples:
        >>> err = FieldError(
        ...     element_id="el_email",
        ...     code=FieldErrorCode.REQUIRED,
        ...     message="Email Address is required",
        ... )
        >>> err.to_dict()["code"]
        'required'
    """
    element_id: str
    code: FieldErrorCode
    message: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "elementId": self.element_id,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data["code"]
        if isinstance(code, str):
            code = FieldErrorCode(code)
        return cls(element_id=data["elementId"], code=code, message=data["message"])


class FormsmithError(Exception):
    """Base class for all errors raised by the runtime."""

    error_type: ErrorType = ErrorType.INVALID_REQUEST
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidRequestError(FormsmithError):
    """Raised when a request is malformed before any domain rule applies."""


class ValidationFailed(FormsmithError):
    """Raised when submitted or edited data fails field validation.

    Attributes:
        errors: Field errors keyed by element id
    """

    error_type = ErrorType.VALIDATION

    def __init__(self, errors: Mapping[str, FieldError], message: str = "Validation failed"):
        self.errors: Dict[str, FieldError] = dict(errors)
        super().__init__(message)

    def messages(self) -> Dict[str, str]:
        """Return the ``{element_id: message}`` map shown to the user."""
        return {key: err.message for key, err in self.errors.items()}

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["errors"] = self.messages()
        return result


class SchemaError(ValidationFailed):
    """Raised when a form definition itself is structurally invalid."""


class PublishError(ValidationFailed):
    """Raised when a form does not meet the preconditions for publishing."""


class AuthorizationError(FormsmithError):
    """Raised when the caller may not perform the requested operation."""

    error_type = ErrorType.AUTHORIZATION

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class NotFoundError(FormsmithError):
    """Raised when a record does not resolve for the caller.

    Missing forms and unpublished forms raise the same message.
    """

    error_type = ErrorType.NOT_FOUND

    def __init__(self, message: str = "Form not found"):
        super().__init__(message)


class InvalidStateTransitionError(FormsmithError):
    """Raised when attempting a publication transition the state machine forbids.

    Attributes:
        current_state: The current state before the attempted transition
        target_state: The target state that was attempted
    """

    error_type = ErrorType.CONFLICT

    def __init__(self, current_state: FormStatus, target_state: FormStatus, message: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message)


class UpstreamError(FormsmithError):
    """Raised when an external dependency fails.

    Attributes:
        kind: What went wrong upstream
        retryable: True when trying again later may succeed
    """

    error_type = ErrorType.UPSTREAM

    def __init__(
        self,
        kind: UpstreamKind,
        message: str,
        retryable: Optional[bool] = None,
    ):
        self.kind = kind
        if retryable is None:
            retryable = kind != UpstreamKind.MALFORMED
        self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind.value
        return result


__all__ = [
    "FieldError",
    "FormsmithError",
    "InvalidRequestError",
    "ValidationFailed",
    "SchemaError",
    "PublishError",
    "AuthorizationError",
    "NotFoundError",
    "InvalidStateTransitionError",
    "UpstreamError",
]

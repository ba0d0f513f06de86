"""Core type definitions for Formsmith.

This module defines the fundamental types used throughout the form model:
- ElementType: The closed set of supported form field kinds
- FormStatus: Publication lifecycle states for a form
- SubmissionStatus: Owner-side triage states for a submission
- ErrorType: Categories of errors surfaced to callers
- FieldErrorCode: Validation error codes for individual fields
- EventType: Audit event types emitted on form transitions
- Identity: The caller as reported by the identity provider

These types form the contract between the HTTP surface, the runtime and the
persistent store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ElementType(str, Enum):
    """Supported form element kinds.

    The set is closed. Ingestion maps anything else onto one of these values
    (see formsmith.ingestion).
    """
    TEXT = "text"
    EMAIL = "email"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    NUMBER = "number"

    @property
    def is_choice(self) -> bool:
        """Whether elements of this kind need an options list."""
        return self in CHOICE_TYPES


CHOICE_TYPES = frozenset({ElementType.SELECT, ElementType.RADIO})


class FormStatus(str, Enum):
    """Form publication states.

    Only PUBLISHED forms accept submissions.
    """
    DRAFT = "draft"
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"


class SubmissionStatus(str, Enum):
    """Triage state of a submission, changed only by the form owner."""
    NEW = "new"
    REVIEWED = "reviewed"
    ARCHIVED = "archived"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ErrorType(str, Enum):
    """Error categories for FormsmithError responses."""
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_REQUEST = "invalid_request"
    UPSTREAM = "upstream"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures."""
    REQUIRED = "required"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INVALID_FORMAT = "invalid_format"
    INVALID_VALUE = "invalid_value"
    INVALID_TYPE = "invalid_type"


class UpstreamKind(str, Enum):
    """Classification of external dependency failures.

    QUOTA means the caller may try again later (billing, rate limits).
    MALFORMED means the dependency answered with something unusable.
    UNAVAILABLE covers connection failures and server errors.
    """
    QUOTA = "quota"
    MALFORMED = "malformed"
    UNAVAILABLE = "unavailable"


class EventType(str, Enum):
    """Audit event types for form and submission activity."""
    FORM_CREATED = "form.created"
    FORM_UPDATED = "form.updated"
    FORM_PUBLISHED = "form.published"
    FORM_UNPUBLISHED = "form.unpublished"
    FORM_DELETED = "form.deleted"
    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_REJECTED = "submission.rejected"
    SUBMISSION_STATUS_CHANGED = "submission.status_changed"
    SUBMISSION_DELETED = "submission.deleted"


@dataclass(frozen=True)
class Identity:
    """The caller of a request as reported by the identity provider.

    The runtime only asks two things of an identity: is there a caller, and
    who are they. Ownership checks compare ``token_identifier`` against the
    stored user record.

    Attributes:
        authenticated: Whether the request carries a verified session
        subject: Provider-side subject identifier (empty when anonymous)
        email: Optional primary email address
        name: Optional display name

    Examples:
        >>> alice = Identity(authenticated=True, subject="user_2abc", email="alice@example.com")
        >>> alice.token_identifier
        'clerk_user_2abc'
        >>> ANONYMOUS.authenticated
        False
    """
    authenticated: bool
    subject: str = ""
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def token_identifier(self) -> str:
        """Stable key used to look up the matching user record."""
        return f"clerk_{self.subject}"

    @classmethod
    def from_claims(cls, claims: Optional[Dict[str, Any]]) -> "Identity":
        """Build an Identity from verified token claims.

        ``None`` or claims without a subject produce the anonymous identity.
        """
        if not claims or not claims.get("sub"):
            return ANONYMOUS
        return cls(
            authenticated=True,
            subject=str(claims["sub"]),
            email=claims.get("email"),
            name=claims.get("name"),
        )


ANONYMOUS = Identity(authenticated=False)


__all__ = [
    "ElementType",
    "CHOICE_TYPES",
    "FormStatus",
    "SubmissionStatus",
    "UserRole",
    "ErrorType",
    "FieldErrorCode",
    "UpstreamKind",
    "EventType",
    "Identity",
    "ANONYMOUS",
]

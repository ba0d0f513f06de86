"""Record types for forms, submissions and users.

Each record is a dataclass with ``to_dict``/``from_dict`` helpers that use the
camelCase shape the store and the HTTP surface exchange. Timestamps are kept as
timezone-aware ``datetime`` objects and written as ISO 8601 strings; reading
accepts either ISO strings or epoch milliseconds.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as date_parser

from formsmith.types import ElementType, FormStatus, SubmissionStatus, UserRole

MAX_ELEMENTS = 50

Timestamp = Union[datetime, str, int, float, None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Normalize a stored timestamp to an aware UTC datetime.

    Examples:
        >>> parse_timestamp(0).isoformat()
        '1970-01-01T00:00:00+00:00'
        >>> parse_timestamp("2025-03-01T12:00:00Z").hour
        12
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        ts = date_parser.isoparse(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ElementValidation:
    """Optional constraints applied to non-empty string values.

    Attributes:
        min_length: Inclusive lower bound on length
        max_length: Inclusive upper bound on length
        pattern: Regular expression source the value must match
    """
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.min_length is not None:
            result["minLength"] = self.min_length
        if self.max_length is not None:
            result["maxLength"] = self.max_length
        if self.pattern is not None:
            result["pattern"] = self.pattern
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ElementValidation"]:
        if not data:
            return None
        return cls(
            min_length=data.get("minLength"),
            max_length=data.get("maxLength"),
            pattern=data.get("pattern"),
        )


@dataclass(frozen=True)
class FormElement:
    """A single field definition within a form.

    Attributes:
        id: Identifier, unique within the owning form
        type: One of the seven element kinds
        label: Display label, also used in error messages
        required: Whether an answer must be supplied
        placeholder: Optional input hint
        options: Choices for select and radio elements
        validation: Optional length and pattern constraints

    Examples:
        >>> el = FormElement(id="name", type=ElementType.TEXT, label="Full Name", required=True)
        >>> el.to_dict()
        {'id': 'name', 'type': 'text', 'label': 'Full Name', 'required': True}
    """
    id: str
    type: ElementType
    label: str
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None
    validation: Optional[ElementValidation] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value if isinstance(self.type, ElementType) else self.type,
            "label": self.label,
            "required": self.required,
        }
        if self.placeholder is not None:
            result["placeholder"] = self.placeholder
        if self.options is not None:
            result["options"] = list(self.options)
        if self.validation is not None:
            result["validation"] = self.validation.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormElement":
        """Create FormElement from a structurally valid dict."""
        element_type = data["type"]
        if isinstance(element_type, str):
            element_type = ElementType(element_type)
        options = data.get("options")
        return cls(
            id=data["id"],
            type=element_type,
            label=data["label"],
            required=bool(data.get("required", False)),
            placeholder=data.get("placeholder"),
            options=list(options) if options is not None else None,
            validation=ElementValidation.from_dict(data.get("validation")),
        )


@dataclass
class FormSchema:
    """A form definition and its publication settings.

    ``share_url`` and ``embed_code`` are set when the form is first published
    and kept across unpublish so a republish reuses the same links.
    """
    id: str
    title: str
    created_by: str
    description: Optional[str] = None
    elements: List[FormElement] = field(default_factory=list)
    status: FormStatus = FormStatus.DRAFT
    published_at: Optional[datetime] = None
    share_url: Optional[str] = None
    embed_code: Optional[str] = None
    allow_anonymous: bool = True
    collect_emails: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == FormStatus.PUBLISHED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "elements": [e.to_dict() for e in self.elements],
            "status": self.status.value,
            "allowAnonymous": self.allow_anonymous,
            "collectEmails": self.collect_emails,
            "createdBy": self.created_by,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.description is not None:
            result["description"] = self.description
        if self.published_at is not None:
            result["publishedAt"] = format_timestamp(self.published_at)
        if self.share_url is not None:
            result["shareUrl"] = self.share_url
        if self.embed_code is not None:
            result["embedCode"] = self.embed_code
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormSchema":
        """Create FormSchema from a stored record."""
        return cls(
            id=data["id"],
            title=data["title"],
            created_by=data["createdBy"],
            description=data.get("description"),
            elements=[FormElement.from_dict(e) for e in data.get("elements", [])],
            status=FormStatus(data.get("status", FormStatus.DRAFT.value)),
            published_at=parse_timestamp(data.get("publishedAt")),
            share_url=data.get("shareUrl"),
            embed_code=data.get("embedCode"),
            # Older records predate these settings
            allow_anonymous=data.get("allowAnonymous", True),
            collect_emails=data.get("collectEmails", False),
            created_at=parse_timestamp(data.get("createdAt")) or utcnow(),
            updated_at=parse_timestamp(data.get("updatedAt")) or utcnow(),
        )


@dataclass
class Submission:
    """One set of answers recorded against a published form.

    ``submitted_by`` is the submitting user's record id, or ``None`` for an
    anonymous submission.
    """
    id: str
    form_id: str
    data: Dict[str, Any]
    submitted_at: datetime
    submitted_by: Optional[str] = None
    submitter_email: Optional[str] = None
    submitter_name: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.NEW
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.submitted_by is None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "formId": self.form_id,
            "data": dict(self.data),
            "submittedBy": self.submitted_by,
            "submittedAt": format_timestamp(self.submitted_at),
            "status": self.status.value,
        }
        for key, value in (
            ("submitterEmail", self.submitter_email),
            ("submitterName", self.submitter_name),
            ("ipAddress", self.ip_address),
            ("userAgent", self.user_agent),
        ):
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Submission":
        return cls(
            id=data["id"],
            form_id=data["formId"],
            data=data.get("data") or {},
            submitted_at=parse_timestamp(data["submittedAt"]),
            submitted_by=data.get("submittedBy"),
            submitter_email=data.get("submitterEmail"),
            submitter_name=data.get("submitterName"),
            status=SubmissionStatus(data.get("status") or SubmissionStatus.NEW.value),
            ip_address=data.get("ipAddress"),
            user_agent=data.get("userAgent"),
        )


@dataclass
class User:
    """A person known to the application, mirrored from the identity provider."""
    id: str
    token_identifier: str
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: datetime = field(default_factory=utcnow)
    deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "tokenIdentifier": self.token_identifier,
            "name": self.name,
            "role": self.role.value,
            "createdAt": format_timestamp(self.created_at),
            "deleted": self.deleted,
        }
        if self.email is not None:
            result["email"] = self.email
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            token_identifier=data["tokenIdentifier"],
            name=data["name"],
            email=data.get("email"),
            role=UserRole(data.get("role", UserRole.USER.value)),
            created_at=parse_timestamp(data.get("createdAt")) or utcnow(),
            deleted=bool(data.get("deleted", False)),
        )


__all__ = [
    "MAX_ELEMENTS",
    "ElementValidation",
    "FormElement",
    "FormSchema",
    "Submission",
    "User",
    "parse_timestamp",
    "format_timestamp",
    "utcnow",
]

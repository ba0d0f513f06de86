"""Field and submission validation for Formsmith forms.

Two layers live here:

- ``validate_field`` / ``validate_submission`` check what a person typed into a
  published form against each element's rules. These are pure functions and
  produce the messages shown next to each input.
- ``ElementSchemaValidator`` checks that a form definition received from the
  editor is structurally sound before it is stored, using a JSON Schema
  (Draft 7) for the element shape and translating jsonschema errors into
  FieldError objects.
"""

import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern

import jsonschema
from jsonschema import Draft7Validator

from formsmith.errors import (
    AuthorizationError,
    FieldError,
    NotFoundError,
    SchemaError,
)
from formsmith.models import MAX_ELEMENTS, FormElement, FormSchema
from formsmith.types import ElementType, FieldErrorCode, Identity

logger = logging.getLogger(__name__)

EMAIL_ERROR_KEY = "email"


def is_empty(value: Any) -> bool:
    """Whether a submitted value counts as "no answer".

    ``None``, ``False`` (an unticked checkbox), blank strings and empty lists
    are empty. Numeric zero is an answer.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


@functools.lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        # An uncompilable pattern is treated as no constraint
        logger.debug(f"Ignoring invalid validation pattern {pattern!r}: {exc}")
        return None


def validate_field(element: FormElement, value: Any) -> Optional[FieldError]:
    """Validate one submitted value against its element.

    Rules are applied in order and the first failure wins:

    1. Required elements reject empty values.
    2. ``minLength`` / ``maxLength`` apply to non-empty strings.
    3. ``pattern`` applies to non-empty strings; an invalid pattern is skipped.

    Args:
        element: The element definition
        value: The submitted value (string, boolean, or None when absent)

    Returns:
        A FieldError, or None if the value is acceptable

    Examples:
        >>> el = FormElement(id="email", type=ElementType.EMAIL, label="Email Address", required=True)
        >>> validate_field(el, "").message
        'Email Address is required'
        >>> validate_field(el, "a@b.co") is None
        True
    """
    if element.required and is_empty(value):
        return FieldError(
            element_id=element.id,
            code=FieldErrorCode.REQUIRED,
            message=f"{element.label} is required",
        )

    rules = element.validation
    if rules is None or not isinstance(value, str) or not value:
        return None

    if rules.min_length is not None and len(value) < rules.min_length:
        return FieldError(
            element_id=element.id,
            code=FieldErrorCode.TOO_SHORT,
            message=f"{element.label} must be at least {rules.min_length} characters",
        )

    if rules.max_length is not None and len(value) > rules.max_length:
        return FieldError(
            element_id=element.id,
            code=FieldErrorCode.TOO_LONG,
            message=f"{element.label} must be no more than {rules.max_length} characters",
        )

    if rules.pattern:
        regex = _compile_pattern(rules.pattern)
        if regex is not None and regex.search(value) is None:
            return FieldError(
                element_id=element.id,
                code=FieldErrorCode.INVALID_FORMAT,
                message=f"{element.label} format is invalid",
            )

    return None


def validate_submission(
    schema: FormSchema,
    values: Mapping[str, Any],
    submitter_email: Optional[str] = None,
) -> Dict[str, FieldError]:
    """Validate a whole submission against a form.

    Every element is checked in form order. When the form collects emails, a
    missing submitter email adds an error under the ``"email"`` key regardless
    of the per-field results.

    Returns:
        Errors keyed by element id; empty when the data is valid
    """
    errors: Dict[str, FieldError] = {}
    for element in schema.elements:
        error = validate_field(element, values.get(element.id))
        if error is not None:
            errors[element.id] = error

    if schema.collect_emails and is_empty(submitter_email):
        errors[EMAIL_ERROR_KEY] = FieldError(
            element_id=EMAIL_ERROR_KEY,
            code=FieldErrorCode.REQUIRED,
            message="Email is required",
        )
    return errors


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of checking a submission against a form.

    Attributes:
        is_valid: Whether every field passed
        errors: Field errors keyed by element id (empty if valid)
    """
    is_valid: bool
    errors: Dict[str, FieldError] = field(default_factory=dict)

    def messages(self) -> Dict[str, str]:
        return {key: err.message for key, err in self.errors.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "isValid": self.is_valid,
            "errors": self.messages(),
        }


class SubmissionValidator:
    """Applies every acceptance gate for a new submission.

    A submission is accepted only when all of these hold:

    - the form is published (otherwise NotFoundError, same as a missing form)
    - the form allows anonymous submissions or the caller is authenticated
      (otherwise AuthorizationError)
    - the field data validates (otherwise an invalid ValidationResult)

    Examples:
        >>> from formsmith.types import ANONYMOUS, FormStatus
        >>> form = FormSchema(id="f1", title="Contact", created_by="u1", status=FormStatus.PUBLISHED)
        >>> SubmissionValidator().check(form, {}, ANONYMOUS).is_valid
        True
    """

    def check(
        self,
        schema: FormSchema,
        values: Mapping[str, Any],
        identity: Identity,
        submitter_email: Optional[str] = None,
    ) -> ValidationResult:
        """Run all gates.

        Raises:
            NotFoundError: If the form is not published
            AuthorizationError: If anonymous submission is not allowed
        """
        if not schema.is_published:
            raise NotFoundError()
        if not schema.allow_anonymous and not identity.authenticated:
            raise AuthorizationError()

        errors = validate_submission(schema, values, submitter_email)
        return ValidationResult(is_valid=not errors, errors=errors)


ELEMENT_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"enum": [t.value for t in ElementType]},
        "label": {"type": "string"},
        "required": {"type": "boolean"},
        "placeholder": {"type": "string"},
        "options": {"type": "array", "items": {"type": "string"}},
        "validation": {
            "type": "object",
            "properties": {
                "minLength": {"type": "integer", "minimum": 0},
                "maxLength": {"type": "integer", "minimum": 0},
                "pattern": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
    "required": ["id", "type", "label", "required"],
    "additionalProperties": False,
    "if": {
        "required": ["type"],
        "properties": {"type": {"enum": ["select", "radio"]}},
    },
    "then": {
        "required": ["options"],
        "properties": {"options": {"minItems": 1}},
    },
}


class ElementSchemaValidator:
    """Structural validator for element lists coming from the form editor.

    Attributes:
        max_elements: Upper bound on the number of elements in one form
        validator: The underlying jsonschema validator instance

    Examples:
        >>> checker = ElementSchemaValidator()
        >>> elements = checker.check([{"id": "a", "type": "text", "label": "A", "required": False}])
        >>> elements[0].type
        <ElementType.TEXT: 'text'>
    """

    def __init__(self, max_elements: int = MAX_ELEMENTS) -> None:
        self.max_elements = max_elements
        self.schema: Dict[str, Any] = {
            "type": "array",
            "items": ELEMENT_JSON_SCHEMA,
            "maxItems": max_elements,
        }
        Draft7Validator.check_schema(self.schema)
        self.validator = Draft7Validator(self.schema)

    def check(self, raw_elements: Any) -> List[FormElement]:
        """Validate raw element dicts and build FormElement objects.

        Raises:
            SchemaError: With one FieldError per problem found
        """
        errors: Dict[str, FieldError] = {}
        for error in self.validator.iter_errors(raw_elements):
            field_error = self._translate_error(error, raw_elements)
            errors.setdefault(field_error.element_id, field_error)

        if not errors:
            seen = set()
            for raw in raw_elements:
                if raw["id"] in seen:
                    errors[raw["id"]] = FieldError(
                        element_id=raw["id"],
                        code=FieldErrorCode.INVALID_VALUE,
                        message=f"Element id '{raw['id']}' is used more than once",
                    )
                seen.add(raw["id"])

        if errors:
            raise SchemaError(errors, message="Form definition is invalid")
        return [FormElement.from_dict(raw) for raw in raw_elements]

    def _translate_error(self, error: jsonschema.ValidationError, raw_elements: Any) -> FieldError:
        """Translate a jsonschema ValidationError into a FieldError.

        Errors inside an element are keyed by that element's id when it has
        one, otherwise by ``elements.<index>``.
        """
        path = list(error.absolute_path)
        if not path:
            if error.validator == "maxItems":
                return FieldError(
                    element_id="elements",
                    code=FieldErrorCode.TOO_LONG,
                    message=f"A form can have at most {self.max_elements} elements",
                )
            return FieldError(
                element_id="elements",
                code=FieldErrorCode.INVALID_TYPE,
                message="Elements must be a list",
            )

        index = path[0]
        raw = raw_elements[index]
        key = f"elements.{index}"
        if isinstance(raw, dict) and isinstance(raw.get("id"), str) and raw["id"]:
            key = raw["id"]
        where = ".".join(str(p) for p in path[1:]) or "element"

        if error.validator == "required":
            return FieldError(
                element_id=key,
                code=FieldErrorCode.REQUIRED,
                message=f"Element {key}: {error.message}",
            )
        if error.validator in ("type", "enum"):
            return FieldError(
                element_id=key,
                code=FieldErrorCode.INVALID_TYPE if error.validator == "type" else FieldErrorCode.INVALID_VALUE,
                message=f"Element {key}: '{where}' {error.message}",
            )
        return FieldError(
            element_id=key,
            code=FieldErrorCode.INVALID_VALUE,
            message=f"Element {key}: '{where}' validation failed: {error.message}",
        )


__all__ = [
    "EMAIL_ERROR_KEY",
    "ELEMENT_JSON_SCHEMA",
    "ElementSchemaValidator",
    "SubmissionValidator",
    "ValidationResult",
    "is_empty",
    "validate_field",
    "validate_submission",
]

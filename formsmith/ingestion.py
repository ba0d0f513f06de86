"""Coercion of untrusted form drafts into FormElement objects.

Drafts produced by the text-generation provider are free-form JSON. Nothing in
them is trusted: every field goes through ``coerce_element``, which always
returns a renderable element and records each fix it had to make. Ingestion
never rejects an individual field; only a payload with no usable ``fields``
list is refused.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from typing_extensions import NotRequired, TypedDict

from formsmith.errors import UpstreamError
from formsmith.models import MAX_ELEMENTS, FormElement
from formsmith.types import ElementType, UpstreamKind

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "AI Generated Form"
DEFAULT_OPTIONS = ["Option 1", "Option 2", "Option 3"]

TYPE_SYNONYMS: Dict[str, ElementType] = {
    "text": ElementType.TEXT,
    "string": ElementType.TEXT,
    "input": ElementType.TEXT,
    "short_text": ElementType.TEXT,
    "email": ElementType.EMAIL,
    "e-mail": ElementType.EMAIL,
    "mail": ElementType.EMAIL,
    "textarea": ElementType.TEXTAREA,
    "paragraph": ElementType.TEXTAREA,
    "long_text": ElementType.TEXTAREA,
    "multiline": ElementType.TEXTAREA,
    "select": ElementType.SELECT,
    "dropdown": ElementType.SELECT,
    "radio": ElementType.RADIO,
    "choice": ElementType.RADIO,
    "multiple_choice": ElementType.RADIO,
    "checkbox": ElementType.CHECKBOX,
    "boolean": ElementType.CHECKBOX,
    "bool": ElementType.CHECKBOX,
    "number": ElementType.NUMBER,
    "integer": ElementType.NUMBER,
    "int": ElementType.NUMBER,
    "float": ElementType.NUMBER,
    "decimal": ElementType.NUMBER,
}

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class GeneratedField(TypedDict):
    """Shape the generation prompt asks for. Providers do not always comply."""
    label: str
    type: str
    required: bool
    placeholder: NotRequired[str]
    options: NotRequired[List[str]]


class GeneratedForm(TypedDict):
    title: NotRequired[str]
    description: NotRequired[str]
    fields: List[GeneratedField]


@dataclass(frozen=True)
class Coercion:
    """A single adjustment made while ingesting a draft.

    Attributes:
        index: Position of the field in the draft (-1 for form-level changes)
        field: Which attribute was adjusted
        original: The value found in the draft
        applied: The value used instead
    """
    index: int
    field: str
    original: Any
    applied: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "field": self.field,
            "original": self.original,
            "applied": self.applied,
        }


@dataclass
class IngestionResult:
    """A draft form ready to be loaded into the editor."""
    title: str
    description: str
    elements: List[FormElement]
    coercions: List[Coercion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "elements": [e.to_dict() for e in self.elements],
            "coercions": [c.to_dict() for c in self.coercions],
        }


def coerce_type(label: Any) -> ElementType:
    """Map an arbitrary type label onto the closed element set.

    Examples:
        >>> coerce_type("Dropdown")
        <ElementType.SELECT: 'select'>
        >>> coerce_type("signature")
        <ElementType.TEXT: 'text'>
        >>> coerce_type(None)
        <ElementType.TEXT: 'text'>
    """
    if not isinstance(label, str):
        return ElementType.TEXT
    return TYPE_SYNONYMS.get(label.strip().lower(), ElementType.TEXT)


def _is_true(value: Any) -> bool:
    return value is True or (isinstance(value, str) and value.strip().lower() == "true")


def _clean_options(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    options = []
    for option in value:
        if option is None:
            continue
        text = str(option).strip()
        if text:
            options.append(text)
    return options


def coerce_element(raw: Any, index: int) -> Tuple[FormElement, List[Coercion]]:
    """Turn one untrusted field description into a FormElement.

    Never raises. Missing ids and labels get generated fallbacks, unknown
    types become ``text`` and choice elements without usable options get
    DEFAULT_OPTIONS.

    Args:
        raw: The field as found in the draft
        index: Its position in the draft, used for fallbacks

    Returns:
        The element and the list of coercions applied to it
    """
    coercions: List[Coercion] = []
    if not isinstance(raw, dict):
        coercions.append(Coercion(index, "field", raw, {}))
        raw = {}

    raw_type = raw.get("type", "text")
    element_type = coerce_type(raw_type)
    if raw_type != element_type.value:
        coercions.append(Coercion(index, "type", raw_type, element_type.value))

    element_id = raw.get("id")
    if not isinstance(element_id, str) or not element_id.strip():
        element_id = f"element-{int(time.time() * 1000)}-{index}"

    label = raw.get("label") or raw.get("name")
    if not isinstance(label, str) or not label.strip():
        label = f"Field {index + 1}"
        coercions.append(Coercion(index, "label", raw.get("label"), label))

    placeholder = raw.get("placeholder")
    if placeholder is not None and not isinstance(placeholder, str):
        placeholder = str(placeholder)
    placeholder = placeholder or None

    options: Optional[List[str]] = None
    if element_type.is_choice:
        options = _clean_options(raw.get("options"))
        if not options:
            options = list(DEFAULT_OPTIONS)
            coercions.append(Coercion(index, "options", raw.get("options"), options))
    elif raw.get("options") is not None:
        coercions.append(Coercion(index, "options", raw.get("options"), None))

    element = FormElement(
        id=element_id,
        type=element_type,
        label=label,
        required=_is_true(raw.get("required")),
        placeholder=placeholder,
        options=options,
    )
    return element, coercions


def ingest_generated_form(payload: Any) -> IngestionResult:
    """Build a draft form from a parsed generation payload.

    Raises:
        UpstreamError: (kind MALFORMED) if the payload has no ``fields`` list
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("fields"), list):
        raise UpstreamError(
            UpstreamKind.MALFORMED,
            "AI response missing 'fields' array. Please try again.",
        )

    coercions: List[Coercion] = []
    raw_fields = payload["fields"]
    if len(raw_fields) > MAX_ELEMENTS:
        coercions.append(Coercion(-1, "fields", len(raw_fields), MAX_ELEMENTS))
        raw_fields = raw_fields[:MAX_ELEMENTS]

    elements: List[FormElement] = []
    seen_ids = set()
    for index, raw in enumerate(raw_fields):
        element, applied = coerce_element(raw, index)
        coercions.extend(applied)
        if element.id in seen_ids:
            new_id = f"{element.id}-{index}"
            suffix = index
            while new_id in seen_ids:
                suffix += 1
                new_id = f"{element.id}-{suffix}"
            coercions.append(Coercion(index, "id", element.id, new_id))
            element = FormElement(
                id=new_id,
                type=element.type,
                label=element.label,
                required=element.required,
                placeholder=element.placeholder,
                options=element.options,
            )
        seen_ids.add(element.id)
        elements.append(element)

    title = payload.get("title")
    description = payload.get("description")
    if coercions:
        logger.info(f"Applied {len(coercions)} coercions to generated form draft")
    return IngestionResult(
        title=title if isinstance(title, str) and title.strip() else DEFAULT_TITLE,
        description=description if isinstance(description, str) else "",
        elements=elements,
        coercions=coercions,
    )


def extract_json(text: str) -> str:
    """Pull the JSON document out of a model response.

    Looks for a fenced code block first, then the outermost ``{...}`` span.

    Examples:
        >>> extract_json('Sure! ```json\\n{"fields": []}\\n```')
        '{"fields": []}'
    """
    match = _CODE_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    match = _JSON_OBJECT.search(text)
    if match:
        return match.group(0)
    return text.strip()


def parse_generated_text(text: str) -> IngestionResult:
    """Parse raw model output into a draft form.

    Raises:
        UpstreamError: (kind MALFORMED) if no JSON object can be read
    """
    candidate = extract_json(text or "")
    try:
        payload = json.loads(candidate)
    except ValueError as exc:
        logger.warning(f"Generated form is not valid JSON: {exc}")
        raise UpstreamError(
            UpstreamKind.MALFORMED,
            "Failed to parse AI response as JSON. Please try again.",
        ) from exc
    return ingest_generated_form(payload)


__all__ = [
    "DEFAULT_OPTIONS",
    "DEFAULT_TITLE",
    "TYPE_SYNONYMS",
    "Coercion",
    "GeneratedField",
    "GeneratedForm",
    "IngestionResult",
    "coerce_element",
    "coerce_type",
    "extract_json",
    "ingest_generated_form",
    "parse_generated_text",
]

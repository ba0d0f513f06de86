"""Draft a form from a natural-language description.

The generator sends the description to a chat-completion model, then hands
the reply to the ingestion layer, which turns whatever came back into valid
FormElements. The OpenAI client is passed in, so tests and alternative
deployments can substitute their own.
"""

import json
import logging
from typing import Any, Optional

from openai import APIConnectionError, OpenAI, OpenAIError

from formsmith.config import Settings
from formsmith.errors import InvalidRequestError, UpstreamError
from formsmith.ingestion import GeneratedForm, IngestionResult, parse_generated_text
from formsmith.types import ElementType, UpstreamKind

logger = logging.getLogger(__name__)

QUOTA_MARKERS = ("quota", "credit", "billing", "insufficient", "exceeded")

EXAMPLE_FORM: GeneratedForm = {
    "title": "Form Title",
    "description": "Form description",
    "fields": [
        {"label": "Full Name", "type": "text", "required": True, "placeholder": "Enter your full name"},
        {"label": "Email Address", "type": "email", "required": True, "placeholder": "Enter your email"},
        {"label": "Country", "type": "select", "required": False, "options": ["USA", "Canada", "UK", "Other"]},
        {"label": "Message", "type": "textarea", "required": False, "placeholder": "Enter your message"},
    ],
}

SYSTEM_PROMPT = f"""You are a form generation assistant. Generate a JSON object for a form based on the user's description.

Available field types: {", ".join(t.value for t in ElementType)}

Rules:
1. Return ONLY valid JSON, no markdown and no explanations
2. Each field must have "label", "type" and "required" (boolean)
3. Optional field attributes: "placeholder", and "options" for select and radio fields
4. Select and radio fields MUST include an "options" array with at least 2 options
5. Use the field type that fits the data (email addresses use "email")
6. Mark important fields such as contact details as required

Example:
{json.dumps(EXAMPLE_FORM, indent=2)}
"""


def classify_upstream_error(exc: Exception) -> UpstreamError:
    """Map a provider exception onto an UpstreamError kind.

    Quota and billing problems are QUOTA (try again later); everything else
    from the provider is UNAVAILABLE.
    """
    message = str(getattr(exc, "message", None) or exc)
    code = getattr(exc, "code", None)
    status = getattr(exc, "status_code", None)

    if code == "insufficient_quota" or status == 429 or any(m in message.lower() for m in QUOTA_MARKERS):
        return UpstreamError(
            UpstreamKind.QUOTA,
            "Out of credits. Please check your OpenAI account billing and credits.",
        )
    if isinstance(exc, APIConnectionError) or (status is not None and status >= 500):
        return UpstreamError(UpstreamKind.UNAVAILABLE, "Form generation service is unavailable")
    return UpstreamError(
        UpstreamKind.UNAVAILABLE,
        message or "Failed to generate form",
        retryable=False,
    )


class FormGenerator:
    """Turns a prompt into a draft form via a chat-completion model.

    Attributes:
        client: OpenAI client (or compatible object)
        model: Model name sent with each request
        temperature: Sampling temperature
    """

    def __init__(self, client: Any, model: str = "gpt-4o-mini", temperature: float = 0.7):
        self.client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "FormGenerator":
        """Build a generator with a real OpenAI client.

        Raises:
            UpstreamError: If no API key is configured
        """
        if not settings.openai_api_key:
            raise UpstreamError(
                UpstreamKind.UNAVAILABLE,
                "OpenAI API key is not configured. Set FORMSMITH_OPENAI_API_KEY.",
                retryable=False,
            )
        return cls(
            OpenAI(api_key=settings.openai_api_key),
            model=settings.openai_model,
            temperature=settings.generation_temperature,
        )

    def generate(self, prompt: Optional[str]) -> IngestionResult:
        """Draft a form from a description.

        Raises:
            InvalidRequestError: If the prompt is empty
            UpstreamError: If the provider fails or returns unusable output
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidRequestError("Prompt is required")

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt.strip()},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error(f"Form generation request failed: {exc}")
            raise classify_upstream_error(exc) from exc

        text = ""
        if completion.choices:
            text = completion.choices[0].message.content or ""
        result = parse_generated_text(text)
        logger.info(f"Generated form draft with {len(result.elements)} elements")
        return result


__all__ = [
    "FormGenerator",
    "SYSTEM_PROMPT",
    "classify_upstream_error",
]

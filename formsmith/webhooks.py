"""Identity-provider webhooks.

The identity provider posts user and session lifecycle events signed with
Svix. Each request is verified before anything is read from it; events are
then mapped onto the local user directory:

- ``user.created`` / ``user.updated``: upsert the user record
- ``user.deleted``: mark the user record deleted
- ``session.created``: upsert the user's session record

Unknown event types are acknowledged and ignored.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

from svix.webhooks import Webhook, WebhookVerificationError

from formsmith.errors import InvalidRequestError
from formsmith.models import parse_timestamp
from formsmith.users import UserDirectory, display_name

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


class WebhookSignatureError(InvalidRequestError):
    """Raised when a webhook request is unsigned or its signature is wrong."""


def _token_identifier(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id:
        raise InvalidRequestError("Webhook event is missing a user id")
    return f"clerk_{user_id}"


def _primary_email(data: Mapping[str, Any]) -> Optional[str]:
    addresses = data.get("email_addresses") or []
    if addresses and isinstance(addresses[0], dict):
        return addresses[0].get("email_address") or None
    return None


def _full_name(data: Mapping[str, Any], email: Optional[str]) -> str:
    name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
    return display_name(name, email)


class IdentityWebhookHandler:
    """Verifies and applies identity lifecycle events.

    Examples:
        >>> from formsmith.store import MemoryStore
        >>> handler = IdentityWebhookHandler(UserDirectory(MemoryStore()), "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw")
        >>> handler.handle(b"{}", {})
        Traceback (most recent call last):
        ...
        formsmith.webhooks.WebhookSignatureError: Missing svix signature headers
    """

    def __init__(self, users: UserDirectory, secret: Optional[str]):
        self.users = users
        self.secret = secret

    def verify(self, body: Union[bytes, str], headers: Mapping[str, str]) -> Dict[str, Any]:
        """Check the Svix signature and return the decoded event.

        The body is parsed here rather than taken from ``Webhook.verify``,
        whose return value differs between svix releases.

        Raises:
            WebhookSignatureError: If headers are missing, the signature is
                invalid or the signed body is not a JSON object
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        if not all(lowered.get(h) for h in SIGNATURE_HEADERS):
            raise WebhookSignatureError("Missing svix signature headers")
        if not self.secret:
            raise RuntimeError("Webhook secret is not configured; set FORMSMITH_WEBHOOK_SECRET")

        try:
            payload = body.decode("utf-8") if isinstance(body, bytes) else body
        except UnicodeDecodeError as exc:
            raise WebhookSignatureError("Webhook body is not valid UTF-8") from exc
        try:
            Webhook(self.secret).verify(payload, {h: lowered[h] for h in SIGNATURE_HEADERS})
        except WebhookVerificationError as exc:
            logger.warning(f"Rejected webhook {lowered.get('svix-id')}: {exc}")
            raise WebhookSignatureError("Invalid webhook signature") from exc

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise WebhookSignatureError("Webhook payload must be a JSON object") from exc
        if not isinstance(event, dict):
            raise WebhookSignatureError("Webhook payload must be a JSON object")
        return event

    def handle(self, body: Union[bytes, str], headers: Mapping[str, str]) -> Dict[str, Any]:
        event = self.verify(body, headers)
        return self.dispatch(event)

    def dispatch(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply an already-verified event."""
        event_type = event.get("type")
        data = event.get("data") or {}

        if event_type in ("user.created", "user.updated"):
            email = _primary_email(data)
            token = _token_identifier(data.get("id"))
            logger.info(f"Syncing user {token} from {event_type}")
            result = self.users.sync(
                token,
                name=_full_name(data, email),
                email=email,
                created_at=parse_timestamp(data.get("created_at")) if event_type == "user.created" else None,
            )
        elif event_type == "user.deleted":
            token = _token_identifier(data.get("id"))
            logger.info(f"Marking user {token} as deleted")
            result = {"deleted": self.users.mark_deleted(token)}
        elif event_type == "session.created":
            token = _token_identifier(data.get("user_id"))
            result = self.users.sync_session(
                token,
                last_active_at=parse_timestamp(data.get("last_active_at")),
                expires_at=parse_timestamp(data.get("expire_at")),
            )
        else:
            logger.info(f"Unhandled webhook event type: {event_type}")
            result = {}

        return {"received": True, "type": event_type, "result": result}


__all__ = [
    "IdentityWebhookHandler",
    "WebhookSignatureError",
]

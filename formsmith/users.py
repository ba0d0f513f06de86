"""User records mirrored from the identity provider.

Users are created in two ways: by the identity webhook when an account is
created upstream, or lazily by ``UserDirectory.ensure`` the first time an
authenticated caller touches a form (the webhook may arrive late or never).
Deletion upstream only marks the local record as deleted.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from formsmith.errors import AuthorizationError
from formsmith.models import User, format_timestamp, utcnow
from formsmith.store import SESSIONS, USERS, Store
from formsmith.types import Identity, UserRole

logger = logging.getLogger(__name__)


def display_name(name: Optional[str], email: Optional[str]) -> str:
    """Pick a display name, falling back to the email's local part.

    Examples:
        >>> display_name(None, "jane.doe@example.com")
        'jane.doe'
        >>> display_name("  ", None)
        'User'
    """
    if name and name.strip():
        return name.strip()
    if email and "@" in email:
        return email.split("@")[0]
    return "User"


class UserDirectory:
    """Lookup and upsert of user records keyed by token identifier."""

    def __init__(self, store: Store, session_ttl_days: int = 7):
        self.store = store
        self.session_ttl = timedelta(days=session_ttl_days)

    def find(self, token_identifier: str) -> Optional[User]:
        rows = self.store.query("by_token", token_identifier)
        return User.from_dict(rows[0]) if rows else None

    def ensure(self, identity: Identity) -> User:
        """Return the caller's user record, creating it on first use.

        Raises:
            AuthorizationError: If the caller is not authenticated or the
                user has been deleted upstream
        """
        if not identity.authenticated:
            raise AuthorizationError("Not authenticated")

        user = self.find(identity.token_identifier)
        if user is None:
            user = User(
                id="",
                token_identifier=identity.token_identifier,
                name=display_name(identity.name, identity.email),
                email=identity.email,
                role=UserRole.USER,
            )
            record = user.to_dict()
            del record["id"]
            user.id = self.store.insert(USERS, record)
            logger.info(f"Created user {user.id} for {identity.token_identifier}")
        if user.deleted:
            raise AuthorizationError()
        return user

    def sync(
        self,
        token_identifier: str,
        name: str,
        email: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Create or update a user from an upstream profile."""
        existing = self.find(token_identifier)
        if existing is not None:
            self.store.patch(USERS, existing.id, {"email": email, "name": name})
            return {"userId": existing.id, "created": False}

        user = User(
            id="",
            token_identifier=token_identifier,
            name=name,
            email=email,
            created_at=created_at or utcnow(),
        )
        record = user.to_dict()
        del record["id"]
        user_id = self.store.insert(USERS, record)
        return {"userId": user_id, "created": True}

    def mark_deleted(self, token_identifier: str) -> bool:
        user = self.find(token_identifier)
        if user is None:
            return False
        self.store.patch(USERS, user.id, {"deleted": True})
        return True

    def sync_session(
        self,
        token_identifier: str,
        last_active_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Record the latest session for a user. One session row per user."""
        user = self.find(token_identifier)
        if user is None:
            logger.warning(f"User not found for tokenIdentifier: {token_identifier}")
            return {"synced": False}

        last_active_at = last_active_at or utcnow()
        expires_at = expires_at or last_active_at + self.session_ttl
        fields = {
            "userId": user.id,
            "lastActiveAt": format_timestamp(last_active_at),
            "expiresAt": format_timestamp(expires_at),
        }
        sessions = self.store.query("by_user", user.id)
        if sessions:
            self.store.patch(SESSIONS, sessions[0]["id"], fields)
            return {"sessionId": sessions[0]["id"], "created": False}
        session_id = self.store.insert(SESSIONS, fields)
        return {"sessionId": session_id, "created": True}


__all__ = [
    "UserDirectory",
    "display_name",
]

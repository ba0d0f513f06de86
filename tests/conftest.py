from datetime import datetime, timedelta, timezone

import pytest

from formsmith.config import Settings
from formsmith.events import EventEmitter
from formsmith.runtime import FormRuntime
from formsmith.store import MemoryStore
from formsmith.types import ANONYMOUS, Identity


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


CONTACT_ELEMENTS = [
    {"id": "name", "type": "text", "label": "Full Name", "required": True,
     "validation": {"minLength": 2, "maxLength": 40}},
    {"id": "email", "type": "email", "label": "Email Address", "required": True},
    {"id": "topic", "type": "select", "label": "Topic", "required": False,
     "options": ["Sales", "Support"]},
    {"id": "agree", "type": "checkbox", "label": "Terms", "required": True},
]

VALID_CONTACT = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "topic": "Sales",
    "agree": True,
}


@pytest.fixture
def settings():
    return Settings(_env_file=None, base_url="https://forms.test", webhook_secret=None)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def runtime(store, settings, emitter, clock):
    return FormRuntime(store, settings=settings, emitter=emitter, clock=clock)


@pytest.fixture
def owner():
    return Identity(authenticated=True, subject="user_owner", email="owner@example.com", name="Olive Owner")


@pytest.fixture
def stranger():
    return Identity(authenticated=True, subject="user_stranger", email="stranger@example.com")


@pytest.fixture
def anonymous():
    return ANONYMOUS


@pytest.fixture
def contact_form(runtime, owner):
    """A draft contact form owned by ``owner``."""
    return runtime.create_form(owner, "Contact", "Get in touch", CONTACT_ELEMENTS)


@pytest.fixture
def published_form(runtime, owner, contact_form):
    return runtime.publish_form(contact_form.id, owner)

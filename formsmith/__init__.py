"""Formsmith form schema and submission runtime.

Formsmith provides:
- A closed model of form elements and forms
- Field and submission validation with user-facing messages
- A publication state machine (draft, published, unpublished)
- Coercion of AI-drafted forms into valid elements
- An HTTP surface for owners, public submitters and identity webhooks

Basic usage:
    >>> from formsmith import FormRuntime
    >>> from formsmith.store import MemoryStore
    >>> from formsmith.types import Identity
    >>> runtime = FormRuntime(MemoryStore())
    >>> owner = Identity(authenticated=True, subject="user_1")
    >>> form = runtime.create_form(owner, "Feedback")
    >>> print(form.status.value)
    draft
"""

__version__ = "0.1.0"
__author__ = "Formsmith Team"

VERSION = (0, 1, 0)

from formsmith.runtime import FormRuntime

__all__ = [
    "__version__",
    "VERSION",
    "FormRuntime",
]

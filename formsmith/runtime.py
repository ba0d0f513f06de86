"""FormRuntime orchestrator for Formsmith.

The runtime ties together the store, the user directory, the validators and
the publication state machine. Every public method is one synchronous
request: it either completes fully or leaves the store unchanged.

Usage:
    >>> from formsmith.runtime import FormRuntime
    >>> from formsmith.store import MemoryStore
    >>> from formsmith.types import Identity
    >>> runtime = FormRuntime(MemoryStore())
    >>> owner = Identity(authenticated=True, subject="user_2abc", email="owner@example.com")
    >>> form = runtime.create_form(owner, "Contact", elements=[
    ...     {"id": "name", "type": "text", "label": "Name", "required": True},
    ... ])
    >>> runtime.publish_form(form.id, owner).status.value
    'published'
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from formsmith.analytics import SubmissionStats, date_range, in_range, summarize
from formsmith.config import Settings, get_settings
from formsmith.errors import (
    AuthorizationError,
    FieldError,
    InvalidRequestError,
    NotFoundError,
    PublishError,
    ValidationFailed,
)
from formsmith.events import EventEmitter, FormEvent
from formsmith.models import FormElement, FormSchema, Submission, User, format_timestamp, utcnow
from formsmith.state_machine import PublicationStateMachine, share_links
from formsmith.store import FORMS, SUBMISSIONS, Store
from formsmith.types import EventType, FieldErrorCode, FormStatus, Identity, SubmissionStatus
from formsmith.users import UserDirectory
from formsmith.validation import ElementSchemaValidator, SubmissionValidator

logger = logging.getLogger(__name__)

ElementInput = Union[FormElement, Mapping[str, Any]]


@dataclass(frozen=True)
class FormPage:
    """One page of a user's forms, most recently updated first."""
    page: List[FormSchema]
    is_done: bool
    continue_cursor: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": [f.to_dict() for f in self.page],
            "isDone": self.is_done,
            "continueCursor": self.continue_cursor,
        }


class FormRuntime:
    """Entry point for every form, publication and submission operation.

    Collaborators are passed in so tests can swap them for fakes.

    Attributes:
        store: Persistent store for forms, submissions, users and sessions
        settings: Runtime configuration
        emitter: Receives an event for every state change
        users: Directory used for identity to user-record resolution
    """

    def __init__(
        self,
        store: Store,
        settings: Optional[Settings] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.emitter = emitter or EventEmitter()
        self._clock = clock or utcnow
        self.users = UserDirectory(store, session_ttl_days=self.settings.session_ttl_days)
        self._element_validator = ElementSchemaValidator(self.settings.max_elements)
        self._submission_validator = SubmissionValidator()

    # -- helpers ---------------------------------------------------------

    def _emit(
        self,
        event_type: EventType,
        form_id: str,
        actor_id: Optional[str],
        submission_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.emitter.emit(FormEvent(
            event_id=f"evt_{uuid.uuid4().hex[:16]}",
            type=event_type,
            form_id=form_id,
            ts=self._clock(),
            actor_id=actor_id,
            submission_id=submission_id,
            payload=payload,
        ))

    def _load_form(self, form_id: str) -> FormSchema:
        record = self.store.get(FORMS, form_id)
        if record is None:
            raise NotFoundError()
        return FormSchema.from_dict(record)

    def _owned_form(self, form_id: str, identity: Identity) -> Tuple[FormSchema, User]:
        user = self.users.ensure(identity)
        form = self._load_form(form_id)
        if form.created_by != user.id:
            logger.warning(f"User {user.id} attempted to modify form {form_id} they do not own")
            raise AuthorizationError()
        return form, user

    def _owned_submission(self, submission_id: str, user: User) -> Submission:
        record = self.store.get(SUBMISSIONS, submission_id)
        if record is None:
            raise NotFoundError("Submission not found")
        submission = Submission.from_dict(record)
        form = self.store.get(FORMS, submission.form_id)
        if form is None or form["createdBy"] != user.id:
            raise AuthorizationError()
        return submission

    def _check_elements(self, elements: Iterable[ElementInput]) -> List[FormElement]:
        raw = [
            e.to_dict() if isinstance(e, FormElement) else {k: v for k, v in e.items() if v is not None}
            for e in elements
        ]
        return self._element_validator.check(raw)

    # -- forms -----------------------------------------------------------

    def create_form(
        self,
        identity: Identity,
        title: str,
        description: Optional[str] = None,
        elements: Sequence[ElementInput] = (),
    ) -> FormSchema:
        """Create a new draft form owned by the caller.

        Raises:
            AuthorizationError: If the caller is not authenticated
            SchemaError: If the element list is invalid or too long
        """
        user = self.users.ensure(identity)
        checked = self._check_elements(elements)
        now = self._clock()
        form = FormSchema(
            id="",
            title=title,
            description=description,
            elements=checked,
            created_by=user.id,
            created_at=now,
            updated_at=now,
        )
        record = form.to_dict()
        del record["id"]
        form.id = self.store.insert(FORMS, record)
        logger.info(f"Form {form.id} created by {user.id}")
        self._emit(EventType.FORM_CREATED, form.id, user.id)
        return form

    def update_form(
        self,
        form_id: str,
        identity: Identity,
        title: Optional[str] = None,
        description: Optional[str] = None,
        elements: Optional[Sequence[ElementInput]] = None,
    ) -> FormSchema:
        """Edit a form's content. Publication status is never changed here.

        Only the arguments that are not None are written.
        """
        form, user = self._owned_form(form_id, identity)
        fields: Dict[str, Any] = {"updatedAt": format_timestamp(self._clock())}
        if title is not None:
            fields["title"] = title
        if description is not None:
            fields["description"] = description
        if elements is not None:
            fields["elements"] = [e.to_dict() for e in self._check_elements(elements)]
        self.store.patch(FORMS, form.id, fields)
        self._emit(EventType.FORM_UPDATED, form.id, user.id, payload={"fields": sorted(fields)})
        return self._load_form(form.id)

    def delete_form(self, form_id: str, identity: Identity) -> None:
        """Permanently delete a form together with its submissions."""
        form, user = self._owned_form(form_id, identity)
        submissions = self.store.query("by_form", form.id)
        for record in submissions:
            self.store.delete(SUBMISSIONS, record["id"])
        self.store.delete(FORMS, form.id)
        logger.info(f"Form {form.id} deleted by {user.id} ({len(submissions)} submissions removed)")
        self._emit(EventType.FORM_DELETED, form.id, user.id)

    def get_form(self, form_id: str, identity: Identity) -> FormSchema:
        """Fetch a form for its owner, whatever its status."""
        form, _ = self._owned_form(form_id, identity)
        return form

    def get_published_form(self, form_id: str) -> FormSchema:
        """Fetch a form for public rendering.

        Raises:
            NotFoundError: If the form does not exist or is not published;
                both cases look the same to the caller
        """
        form = self._load_form(form_id)
        if not form.is_published:
            raise NotFoundError()
        return form

    def list_forms(
        self,
        identity: Identity,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> FormPage:
        """List the caller's forms, most recently updated first.

        ``cursor`` is the id of the last form on the previous page; an unknown
        cursor restarts from the beginning.
        """
        user = self.users.ensure(identity)
        limit = limit or self.settings.default_page_size
        forms = [FormSchema.from_dict(r) for r in self.store.query("by_creator", user.id)]
        forms.sort(key=lambda f: f.updated_at, reverse=True)

        start = 0
        if cursor:
            ids = [f.id for f in forms]
            start = ids.index(cursor) + 1 if cursor in ids else 0
        end = start + limit
        page = forms[start:end]
        is_done = end >= len(forms)
        return FormPage(
            page=page,
            is_done=is_done,
            continue_cursor=page[-1].id if page and not is_done else None,
        )

    # -- publication -----------------------------------------------------

    def publish_form(
        self,
        form_id: str,
        identity: Identity,
        allow_anonymous: bool = True,
        collect_emails: bool = False,
    ) -> FormSchema:
        """Publish a draft or unpublished form.

        Sets ``published_at``, assigns the share links (reusing existing ones
        on republish) and stores the submission settings, in a single write.

        Raises:
            AuthorizationError: If the caller does not own the form
            PublishError: If the form has no elements
            InvalidStateTransitionError: If the form is already published
        """
        form, user = self._owned_form(form_id, identity)
        if not form.elements:
            raise PublishError(
                {"elements": FieldError(
                    element_id="elements",
                    code=FieldErrorCode.REQUIRED,
                    message="Add at least one element before publishing",
                )},
                message="Cannot publish a form without elements",
            )

        machine = PublicationStateMachine(form_id=form.id, state=form.status)
        event = machine.transition_to(
            FormStatus.PUBLISHED,
            actor_id=user.id,
            payload={"allowAnonymous": allow_anonymous, "collectEmails": collect_emails},
        )

        share_url, embed_code = share_links(form.id, self.settings.base_url)
        now = format_timestamp(self._clock())
        self.store.patch(FORMS, form.id, {
            "status": machine.state.value,
            "publishedAt": now,
            "shareUrl": form.share_url or share_url,
            "embedCode": form.embed_code or embed_code,
            "allowAnonymous": allow_anonymous,
            "collectEmails": collect_emails,
            "updatedAt": now,
        })
        logger.info(f"Form {form.id} published by {user.id}")
        self.emitter.emit(event)
        return self._load_form(form.id)

    def unpublish_form(self, form_id: str, identity: Identity) -> FormSchema:
        """Stop accepting submissions. Share links are kept for a later republish."""
        form, user = self._owned_form(form_id, identity)
        machine = PublicationStateMachine(form_id=form.id, state=form.status)
        event = machine.transition_to(FormStatus.UNPUBLISHED, actor_id=user.id)
        self.store.patch(FORMS, form.id, {
            "status": machine.state.value,
            "updatedAt": format_timestamp(self._clock()),
        })
        logger.info(f"Form {form.id} unpublished by {user.id}")
        self.emitter.emit(event)
        return self._load_form(form.id)

    # -- submissions -----------------------------------------------------

    def submit(
        self,
        form_id: str,
        data: Mapping[str, Any],
        identity: Identity,
        submitter_email: Optional[str] = None,
        submitter_name: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Submission:
        """Validate and record a submission against a published form.

        Only values for the form's own elements are stored.

        Raises:
            InvalidRequestError: If ``data`` is not a mapping
            NotFoundError: If the form is missing or not published
            AuthorizationError: If the form requires a signed-in submitter
            ValidationFailed: With the per-field error map
        """
        if not isinstance(data, Mapping):
            raise InvalidRequestError("Submission data must be an object")

        form = self._load_form(form_id)
        result = self._submission_validator.check(form, data, identity, submitter_email)
        if not result.is_valid:
            logger.info(f"Rejected submission to form {form.id}: {sorted(result.errors)}")
            self._emit(
                EventType.SUBMISSION_REJECTED,
                form.id,
                None,
                payload={"errors": sorted(result.errors)},
            )
            raise ValidationFailed(result.errors)

        submitted_by: Optional[str] = None
        if identity.authenticated:
            user = self.users.find(identity.token_identifier)
            submitted_by = user.id if user is not None else identity.subject

        submission = Submission(
            id="",
            form_id=form.id,
            data={e.id: data[e.id] for e in form.elements if e.id in data},
            submitted_at=self._clock(),
            submitted_by=submitted_by,
            submitter_email=(submitter_email or "").strip() or None,
            submitter_name=(submitter_name or "").strip() or None,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        record = submission.to_dict()
        del record["id"]
        submission.id = self.store.insert(SUBMISSIONS, record)
        logger.info(f"Recorded submission {submission.id} for form {form.id}")
        self._emit(EventType.SUBMISSION_CREATED, form.id, submitted_by, submission_id=submission.id)
        return submission

    def list_submissions(
        self,
        identity: Identity,
        form_id: Optional[str] = None,
        status: Optional[SubmissionStatus] = None,
        period: str = "all",
    ) -> List[Submission]:
        """List submissions to the caller's forms, newest first.

        Args:
            identity: The form owner
            form_id: Restrict to one form
            status: Restrict to one triage status
            period: Named date window (see formsmith.analytics.date_range)
        """
        user = self.users.ensure(identity)
        bounds = date_range(period, self._clock())
        if form_id is not None:
            self._owned_form(form_id, identity)
            form_ids = [form_id]
        else:
            form_ids = [r["id"] for r in self.store.query("by_creator", user.id)]

        submissions: List[Submission] = []
        for fid in form_ids:
            submissions.extend(Submission.from_dict(r) for r in self.store.query("by_form", fid))
        submissions = [
            s for s in submissions
            if in_range(s, bounds) and (status is None or s.status == status)
        ]
        submissions.sort(key=lambda s: s.submitted_at, reverse=True)
        return submissions

    def update_submission_status(
        self,
        submission_id: str,
        identity: Identity,
        status: SubmissionStatus,
    ) -> Submission:
        user = self.users.ensure(identity)
        submission = self._owned_submission(submission_id, user)
        self.store.patch(SUBMISSIONS, submission.id, {"status": status.value})
        self._emit(
            EventType.SUBMISSION_STATUS_CHANGED,
            submission.form_id,
            user.id,
            submission_id=submission.id,
            payload={"from": submission.status.value, "to": status.value},
        )
        submission.status = status
        return submission

    def bulk_update_submission_status(
        self,
        submission_ids: Iterable[str],
        identity: Identity,
        status: SubmissionStatus,
    ) -> int:
        """Update many submissions, skipping ids that are missing or not owned.

        Returns:
            Number of submissions updated
        """
        self.users.ensure(identity)
        updated = 0
        for submission_id in submission_ids:
            try:
                self.update_submission_status(submission_id, identity, status)
            except (NotFoundError, AuthorizationError):
                continue
            updated += 1
        return updated

    def delete_submission(self, submission_id: str, identity: Identity) -> None:
        user = self.users.ensure(identity)
        submission = self._owned_submission(submission_id, user)
        self.store.delete(SUBMISSIONS, submission.id)
        self._emit(EventType.SUBMISSION_DELETED, submission.form_id, user.id, submission_id=submission.id)

    def bulk_delete_submissions(self, submission_ids: Iterable[str], identity: Identity) -> int:
        """Delete many submissions, skipping ids that are missing or not owned."""
        self.users.ensure(identity)
        deleted = 0
        for submission_id in submission_ids:
            try:
                self.delete_submission(submission_id, identity)
            except (NotFoundError, AuthorizationError):
                continue
            deleted += 1
        return deleted

    def submission_stats(self, identity: Identity) -> SubmissionStats:
        """Dashboard counts across all of the caller's forms."""
        user = self.users.ensure(identity)
        forms = self.store.query("by_creator", user.id)
        titles = {r["id"]: r["title"] for r in forms}
        submissions = self.list_submissions(identity)
        return summarize(submissions, titles, now=self._clock())


__all__ = [
    "FormPage",
    "FormRuntime",
]

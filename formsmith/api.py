"""HTTP surface for formsmith.

Owner routes manage forms and triage submissions. Public routes serve
published forms and accept answers. Formsmith errors are mapped to JSON
responses by ``status_for``.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from formsmith.config import Settings, get_settings
from formsmith.errors import (
    AuthorizationError,
    FormsmithError,
    InvalidRequestError,
    InvalidStateTransitionError,
    NotFoundError,
    UpstreamError,
    ValidationFailed,
)
from formsmith.generation import FormGenerator
from formsmith.runtime import FormRuntime
from formsmith.store import MemoryStore
from formsmith.types import Identity, SubmissionStatus, UpstreamKind
from formsmith.webhooks import IdentityWebhookHandler

logger = logging.getLogger(__name__)

IdentityResolver = Callable[[Request], Identity]

UPSTREAM_STATUS = {
    UpstreamKind.QUOTA: 402,
    UpstreamKind.MALFORMED: 502,
    UpstreamKind.UNAVAILABLE: 503,
}


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FormRequest(ApiModel):
    title: str
    description: Optional[str] = None
    elements: List[Dict[str, Any]] = []


class UpdateFormRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    elements: Optional[List[Dict[str, Any]]] = None


class PublishRequest(ApiModel):
    allow_anonymous: bool = Field(True, alias="allowAnonymous")
    collect_emails: bool = Field(False, alias="collectEmails")


class SubmitRequest(ApiModel):
    form_id: str = Field(alias="formId")
    data: Dict[str, Any] = {}
    submitter_email: Optional[str] = Field(None, alias="submitterEmail")
    submitter_name: Optional[str] = Field(None, alias="submitterName")


class StatusRequest(ApiModel):
    status: SubmissionStatus


class BulkStatusRequest(ApiModel):
    ids: List[str]
    status: SubmissionStatus


class BulkDeleteRequest(ApiModel):
    ids: List[str]


class GenerateRequest(ApiModel):
    prompt: Optional[str] = None


def request_identity(request: Request) -> Identity:
    """Default resolver for identities set by auth middleware.

    Middleware may place either an Identity on ``request.state.identity`` or
    verified token claims on ``request.state.claims``. Anything else is anonymous.
    """
    identity = getattr(request.state, "identity", None)
    if isinstance(identity, Identity):
        return identity
    return Identity.from_claims(getattr(request.state, "claims", None))


def status_for(exc: FormsmithError) -> int:
    if isinstance(exc, ValidationFailed):
        return 422
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InvalidStateTransitionError):
        return 409
    if isinstance(exc, UpstreamError):
        return UPSTREAM_STATUS[exc.kind]
    if isinstance(exc, InvalidRequestError):
        return 400
    return 500


def create_app(
    runtime: Optional[FormRuntime] = None,
    settings: Optional[Settings] = None,
    generator: Optional[FormGenerator] = None,
    identity_resolver: IdentityResolver = request_identity,
) -> FastAPI:
    """Build the HTTP application around a runtime.

    Without arguments the app runs on an in-memory store and reads settings
    from the environment. The text generator is created on first use so a
    missing API key only affects the generation endpoint.
    """
    settings = settings or get_settings()
    logging.getLogger("formsmith").setLevel(settings.log_level.upper())
    runtime = runtime or FormRuntime(MemoryStore(), settings=settings)
    webhooks = IdentityWebhookHandler(runtime.users, settings.webhook_secret)
    generators: Dict[str, FormGenerator] = {}
    if generator is not None:
        generators["default"] = generator

    def get_generator() -> FormGenerator:
        if "default" not in generators:
            generators["default"] = FormGenerator.from_settings(settings)
        return generators["default"]

    api = FastAPI(title="Formsmith", version="0.1.0")

    @api.exception_handler(FormsmithError)
    async def formsmith_error_handler(request: Request, exc: FormsmithError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    # --- Forms (owner) ---

    @api.post("/api/forms", status_code=201)
    def create_form(req: FormRequest, request: Request) -> dict:
        form = runtime.create_form(
            identity_resolver(request), req.title, req.description, req.elements
        )
        return form.to_dict()

    @api.get("/api/forms")
    def list_forms(request: Request, limit: Optional[int] = None, cursor: Optional[str] = None) -> dict:
        return runtime.list_forms(identity_resolver(request), limit=limit, cursor=cursor).to_dict()

    @api.get("/api/forms/{form_id}")
    def get_form(form_id: str, request: Request) -> dict:
        return runtime.get_form(form_id, identity_resolver(request)).to_dict()

    @api.put("/api/forms/{form_id}")
    def update_form(form_id: str, req: UpdateFormRequest, request: Request) -> dict:
        form = runtime.update_form(
            form_id,
            identity_resolver(request),
            title=req.title,
            description=req.description,
            elements=req.elements,
        )
        return form.to_dict()

    @api.delete("/api/forms/{form_id}", status_code=204)
    def delete_form(form_id: str, request: Request) -> None:
        runtime.delete_form(form_id, identity_resolver(request))

    @api.post("/api/forms/{form_id}/publish")
    def publish_form(form_id: str, req: PublishRequest, request: Request) -> dict:
        form = runtime.publish_form(
            form_id,
            identity_resolver(request),
            allow_anonymous=req.allow_anonymous,
            collect_emails=req.collect_emails,
        )
        return form.to_dict()

    @api.post("/api/forms/{form_id}/unpublish")
    def unpublish_form(form_id: str, request: Request) -> dict:
        return runtime.unpublish_form(form_id, identity_resolver(request)).to_dict()

    # --- Public ---

    @api.get("/api/public/forms/{form_id}")
    def get_published_form(form_id: str) -> dict:
        return runtime.get_published_form(form_id).to_dict()

    @api.post("/api/submissions")
    def submit(req: SubmitRequest, request: Request) -> dict:
        submission = runtime.submit(
            req.form_id,
            req.data,
            identity_resolver(request),
            submitter_email=req.submitter_email,
            submitter_name=req.submitter_name,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        return {"submissionId": submission.id}

    # --- Submissions (owner) ---

    @api.get("/api/submissions")
    def list_submissions(
        request: Request,
        form_id: Optional[str] = None,
        status: Optional[SubmissionStatus] = None,
        period: str = "all",
    ) -> dict:
        submissions = runtime.list_submissions(
            identity_resolver(request), form_id=form_id, status=status, period=period
        )
        return {"submissions": [s.to_dict() for s in submissions]}

    @api.get("/api/submissions/stats")
    def submission_stats(request: Request) -> dict:
        return runtime.submission_stats(identity_resolver(request)).to_dict()

    @api.patch("/api/submissions/{submission_id}")
    def update_submission_status(submission_id: str, req: StatusRequest, request: Request) -> dict:
        submission = runtime.update_submission_status(
            submission_id, identity_resolver(request), req.status
        )
        return submission.to_dict()

    @api.delete("/api/submissions/{submission_id}", status_code=204)
    def delete_submission(submission_id: str, request: Request) -> None:
        runtime.delete_submission(submission_id, identity_resolver(request))

    @api.post("/api/submissions/bulk-status")
    def bulk_update_status(req: BulkStatusRequest, request: Request) -> dict:
        count = runtime.bulk_update_submission_status(req.ids, identity_resolver(request), req.status)
        return {"updated": count}

    @api.post("/api/submissions/bulk-delete")
    def bulk_delete(req: BulkDeleteRequest, request: Request) -> dict:
        count = runtime.bulk_delete_submissions(req.ids, identity_resolver(request))
        return {"deleted": count}

    # --- Generation ---

    @api.post("/api/generate-form")
    def generate_form(req: GenerateRequest) -> dict:
        if not req.prompt or not req.prompt.strip():
            raise InvalidRequestError("Prompt is required")
        result = get_generator().generate(req.prompt)
        return result.to_dict()

    # --- Webhooks ---

    @api.post("/api/webhooks/identity")
    async def identity_webhook(request: Request) -> dict:
        body = await request.body()
        return webhooks.handle(body, dict(request.headers))

    return api


def run():
    settings = get_settings()
    uvicorn.run(
        "formsmith.api:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()

"""HTTP surface tests using FastAPI's TestClient.

Identity comes from an ``X-Test-Subject`` header so each request can act as
a different caller.
"""

import base64
import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from formsmith.api import create_app, request_identity, status_for
from formsmith.errors import FormsmithError, UpstreamError
from formsmith.generation import FormGenerator
from formsmith.types import ANONYMOUS, Identity, UpstreamKind

from .conftest import CONTACT_ELEMENTS, VALID_CONTACT

OWNER = {"X-Test-Subject": "user_owner"}
STRANGER = {"X-Test-Subject": "user_stranger"}


def header_identity(request):
    subject = request.headers.get("x-test-subject")
    if not subject:
        return ANONYMOUS
    return Identity(authenticated=True, subject=subject, email=f"{subject}@example.com")


@pytest.fixture
def openai_client(mocker):
    return mocker.MagicMock()


@pytest.fixture
def client(runtime, settings, openai_client):
    app = create_app(
        runtime=runtime,
        settings=settings,
        generator=FormGenerator(openai_client),
        identity_resolver=header_identity,
    )
    return TestClient(app)


@pytest.fixture
def form_id(client):
    response = client.post("/api/forms", json={"title": "Contact", "elements": CONTACT_ELEMENTS}, headers=OWNER)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def published_id(client, form_id):
    response = client.post(f"/api/forms/{form_id}/publish", json={}, headers=OWNER)
    assert response.status_code == 200
    return form_id


class TestForms:

    def test_create_and_fetch(self, client, form_id):
        body = client.get(f"/api/forms/{form_id}", headers=OWNER).json()

        assert body["status"] == "draft"
        assert body["elements"][0]["label"] == "Full Name"

    def test_anonymous_create_is_forbidden(self, client):
        response = client.post("/api/forms", json={"title": "X"})

        assert response.status_code == 403
        assert response.json() == {"type": "authorization", "message": "Not authenticated", "retryable": False}

    def test_invalid_elements(self, client):
        response = client.post(
            "/api/forms",
            json={"title": "X", "elements": [{"id": "a", "type": "select", "label": "A", "required": False}]},
            headers=OWNER,
        )
        assert response.status_code == 422
        assert "a" in response.json()["errors"]

    def test_stranger_gets_403(self, client, form_id):
        assert client.get(f"/api/forms/{form_id}", headers=STRANGER).status_code == 403

    def test_missing_form(self, client):
        assert client.get("/api/forms/form_nope", headers=OWNER).status_code == 404

    def test_update(self, client, form_id):
        response = client.put(f"/api/forms/{form_id}", json={"title": "Renamed"}, headers=OWNER)

        assert response.status_code == 200
        assert response.json()["title"] == "Renamed"
        assert len(response.json()["elements"]) == len(CONTACT_ELEMENTS)

    def test_list(self, client, form_id):
        body = client.get("/api/forms", params={"limit": 5}, headers=OWNER).json()

        assert [f["id"] for f in body["page"]] == [form_id]
        assert body["isDone"] is True

    def test_delete(self, client, form_id):
        assert client.delete(f"/api/forms/{form_id}", headers=OWNER).status_code == 204
        assert client.get(f"/api/forms/{form_id}", headers=OWNER).status_code == 404


class TestPublication:

    def test_publish_empty_form(self, client):
        form_id = client.post("/api/forms", json={"title": "Empty"}, headers=OWNER).json()["id"]
        response = client.post(f"/api/forms/{form_id}/publish", json={}, headers=OWNER)

        assert response.status_code == 422
        assert response.json()["message"] == "Cannot publish a form without elements"

    def test_publish_with_settings(self, client, form_id):
        response = client.post(
            f"/api/forms/{form_id}/publish",
            json={"allowAnonymous": False, "collectEmails": True},
            headers=OWNER,
        )
        body = response.json()

        assert body["status"] == "published"
        assert body["allowAnonymous"] is False
        assert body["collectEmails"] is True
        assert body["shareUrl"] == f"https://forms.test/forms/{form_id}"

    def test_double_publish_conflicts(self, client, published_id):
        response = client.post(f"/api/forms/{published_id}/publish", json={}, headers=OWNER)

        assert response.status_code == 409
        assert response.json()["type"] == "conflict"

    def test_public_view(self, client, form_id):
        assert client.get(f"/api/public/forms/{form_id}").status_code == 404
        client.post(f"/api/forms/{form_id}/publish", json={}, headers=OWNER)
        assert client.get(f"/api/public/forms/{form_id}").status_code == 200

    def test_unpublish(self, client, published_id):
        response = client.post(f"/api/forms/{published_id}/unpublish", headers=OWNER)

        assert response.json()["status"] == "unpublished"
        assert client.get(f"/api/public/forms/{published_id}").status_code == 404


class TestSubmissions:

    def submit(self, client, form_id, data=VALID_CONTACT, **extra):
        return client.post("/api/submissions", json={"formId": form_id, "data": data, **extra})

    def test_submit_and_list(self, client, published_id):
        response = self.submit(client, published_id)
        assert response.status_code == 200
        submission_id = response.json()["submissionId"]

        listed = client.get("/api/submissions", params={"form_id": published_id}, headers=OWNER).json()
        assert [s["id"] for s in listed["submissions"]] == [submission_id]
        assert listed["submissions"][0]["userAgent"] == "testclient"

    def test_submit_to_draft(self, client, form_id):
        assert self.submit(client, form_id).status_code == 404

    def test_invalid_submission(self, client, published_id):
        response = self.submit(client, published_id, data={"name": "Ada"})
        body = response.json()

        assert response.status_code == 422
        assert body["type"] == "validation"
        assert body["errors"]["email"] == "Email Address is required"

    def test_triage(self, client, published_id):
        ids = [self.submit(client, published_id).json()["submissionId"] for _ in range(2)]

        patched = client.patch(f"/api/submissions/{ids[0]}", json={"status": "reviewed"}, headers=OWNER)
        assert patched.json()["status"] == "reviewed"

        bulk = client.post("/api/submissions/bulk-status", json={"ids": ids, "status": "archived"}, headers=OWNER)
        assert bulk.json() == {"updated": 2}

        stats = client.get("/api/submissions/stats", headers=OWNER).json()
        assert stats["byStatus"]["archived"] == 2

        deleted = client.post("/api/submissions/bulk-delete", json={"ids": ids}, headers=STRANGER)
        assert deleted.json() == {"deleted": 0}
        assert client.delete(f"/api/submissions/{ids[0]}", headers=OWNER).status_code == 204

    def test_bad_status_value(self, client, published_id):
        submission_id = self.submit(client, published_id).json()["submissionId"]
        response = client.patch(f"/api/submissions/{submission_id}", json={"status": "spam"}, headers=OWNER)
        assert response.status_code == 422

    def test_unknown_period(self, client):
        response = client.get("/api/submissions", params={"period": "eon"}, headers=OWNER)
        assert response.status_code == 400


class TestGeneration:

    def test_generate(self, client, openai_client):
        openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[
            SimpleNamespace(message=SimpleNamespace(content=json.dumps({
                "title": "RSVP",
                "fields": [{"label": "Attending", "type": "boolean", "required": True}],
            })))
        ])

        body = client.post("/api/generate-form", json={"prompt": "wedding rsvp"}).json()

        assert body["title"] == "RSVP"
        assert body["elements"][0]["type"] == "checkbox"

    def test_empty_prompt(self, client, openai_client):
        assert client.post("/api/generate-form", json={"prompt": " "}).status_code == 400
        openai_client.chat.completions.create.assert_not_called()

    def test_malformed_reply(self, client, openai_client):
        openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[
            SimpleNamespace(message=SimpleNamespace(content="sorry, I can't"))
        ])
        response = client.post("/api/generate-form", json={"prompt": "survey"})

        assert response.status_code == 502
        assert response.json()["kind"] == "malformed"

    def test_missing_api_key(self, runtime, settings):
        """Without a key only the generation endpoint fails."""
        app = create_app(runtime=runtime, settings=settings, identity_resolver=header_identity)
        client = TestClient(app)

        assert client.post("/api/generate-form", json={"prompt": "x"}).status_code == 503
        assert client.get("/api/forms", headers=OWNER).status_code == 200


class TestWebhookRoute:

    def test_unsigned_request(self, client):
        response = client.post("/api/webhooks/identity", content=b"{}")
        assert response.status_code == 400

    def test_undecodable_body_is_rejected(self, runtime, settings):
        secret = "whsec_" + base64.b64encode(b"formsmith-test-webhook-secret-32").decode()
        app = create_app(
            runtime=runtime,
            settings=settings.model_copy(update={"webhook_secret": secret}),
            identity_resolver=header_identity,
        )
        headers = {"svix-id": "msg_1", "svix-timestamp": "1700000000", "svix-signature": "v1,c2lnbmF0dXJl"}

        response = TestClient(app).post("/api/webhooks/identity", content=b"\xff\xfe{}", headers=headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Webhook body is not valid UTF-8"


class TestStatusFor:

    @pytest.mark.parametrize("kind,code", [
        (UpstreamKind.QUOTA, 402),
        (UpstreamKind.MALFORMED, 502),
        (UpstreamKind.UNAVAILABLE, 503),
    ])
    def test_upstream(self, kind, code):
        assert status_for(UpstreamError(kind, "x")) == code

    def test_base_error(self):
        assert status_for(FormsmithError("x")) == 500


class TestRequestIdentity:
    """The default resolver reads what auth middleware left on request.state."""

    def make_request(self, **state):
        return SimpleNamespace(state=SimpleNamespace(**state))

    def test_identity_object(self):
        caller = Identity(authenticated=True, subject="u1")
        assert request_identity(self.make_request(identity=caller)) is caller

    def test_claims(self):
        identity = request_identity(self.make_request(claims={"sub": "u2", "email": "u2@example.com"}))

        assert identity.authenticated is True
        assert identity.token_identifier == "clerk_u2"
        assert identity.email == "u2@example.com"

    def test_nothing_is_anonymous(self):
        assert request_identity(self.make_request()) == ANONYMOUS

    def test_claims_without_subject(self):
        assert request_identity(self.make_request(claims={"email": "x@example.com"})) == ANONYMOUS

"""
Endpoint Tests

Exercises the routers through TestClient with a mocked service container
attached to app.state. The lifespan is not entered, so no database or model
client is created.

Tests:
- Job trigger endpoints return 202 with the job key, or 400/404/409 errors
- Status and document polling endpoints
- Synchronous analysis endpoints map failures to 400/502
- Missing container returns 503
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from main import app
from models.db_models import GeneratedDocumentModel, OpportunityModel, SalesCallModel
from models.insight_models import ParsedCallInsight
from models.job_models import DocumentType, GenerationStatus
from models.results import AIResult


def handle(key, accepted=True):
    return SimpleNamespace(key=key, accepted=accepted)


@pytest.fixture
def container():
    """Service container with AsyncMock repository methods."""
    container = MagicMock()
    container.repository.get_call = AsyncMock(return_value=None)
    container.repository.get_opportunity = AsyncMock(return_value=None)
    container.repository.get_document = AsyncMock(return_value=None)
    container.repository.create_document = AsyncMock()
    container.repository.update_document = AsyncMock()
    container.transcript_parser.parse = AsyncMock()
    container.risk_analyzer.analyze = AsyncMock()
    container.runner.in_flight.return_value = []
    app.state.container = container
    yield container
    del app.state.container


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def call():
    return SalesCallModel(
        opportunity_id=uuid.uuid4(),
        meeting_date=datetime(2025, 3, 1, tzinfo=timezone.utc),
        transcript="Customer: onboarding takes 45 days.",
    )


@pytest.fixture
def opportunity():
    return OpportunityModel(name="Northwind Expansion", account_name="Northwind Health")


@pytest.fixture
def document(opportunity):
    return GeneratedDocumentModel(
        opportunity_id=opportunity.id,
        document_type=DocumentType.business_case,
        status=GenerationStatus.failed,
        error_message="Model overloaded",
    )


class TestHealth:
    """Tests for the health endpoint."""

    def test_health_with_container(self, client, container):
        container.runner.in_flight.return_value = ["parse_transcript:abc"]

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "services_ready": True, "jobs_in_flight": 1}

    def test_health_without_container(self, client):
        response = client.get("/health")

        assert response.json()["services_ready"] is False

    def test_missing_container_returns_503(self, client):
        response = client.post(f"/calls/{uuid.uuid4()}/parse")

        assert response.status_code == 503


class TestCallEndpoints:
    """Tests for /calls endpoints."""

    def test_parse_accepted(self, client, container, call):
        container.repository.get_call.return_value = call
        container.jobs.trigger_parse_transcript.return_value = handle(f"parse_transcript:{call.id}")

        response = client.post(f"/calls/{call.id}/parse")

        assert response.status_code == 202
        body = response.json()
        assert body["job_key"] == f"parse_transcript:{call.id}"
        assert body["kind"] == "parse_transcript"
        assert body["status"] == "pending"
        assert body["accepted"] is True
        container.jobs.trigger_parse_transcript.assert_called_once_with(str(call.id))

    def test_coalesced_trigger_reports_generating(self, client, container, call):
        container.repository.get_call.return_value = call
        container.jobs.trigger_risk_analysis.return_value = handle(f"analyze_risk:{call.id}", accepted=False)

        response = client.post(f"/calls/{call.id}/analyze-risk")

        assert response.status_code == 202
        assert response.json()["status"] == "generating"
        assert response.json()["accepted"] is False

    def test_invalid_id(self, client, container):
        response = client.post("/calls/not-a-uuid/parse")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid call ID format"

    def test_unknown_call(self, client, container):
        response = client.post(f"/calls/{uuid.uuid4()}/parse")

        assert response.status_code == 404
        container.jobs.trigger_parse_transcript.assert_not_called()

    def test_call_without_transcript(self, client, container, call):
        call.transcript = None
        container.repository.get_call.return_value = call

        response = client.post(f"/calls/{call.id}/analyze-risk")

        assert response.status_code == 400
        assert response.json()["detail"] == "Sales call has no transcript"

    def test_status(self, client, container, call):
        call.parsing_status = GenerationStatus.completed
        call.parsed_insights = {"painPoints": ["Slow onboarding"]}
        call.risk_status = GenerationStatus.failed
        call.risk_error = "Model overloaded"
        container.repository.get_call.return_value = call

        response = client.get(f"/calls/{call.id}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["parsing_status"] == "completed"
        assert body["parsed_insights"] == {"painPoints": ["Slow onboarding"]}
        assert body["risk_status"] == "failed"
        assert body["risk_error"] == "Model overloaded"


class TestOpportunityEndpoints:
    """Tests for /opportunities endpoints."""

    def test_consolidate(self, client, container, opportunity):
        container.repository.get_opportunity.return_value = opportunity
        container.jobs.trigger_consolidation.return_value = handle(f"consolidate_insights:{opportunity.id}")

        response = client.post(f"/opportunities/{opportunity.id}/consolidate")

        assert response.status_code == 202
        assert response.json()["kind"] == "consolidate_insights"

    def test_insights(self, client, container, opportunity):
        opportunity.consolidation_status = GenerationStatus.completed
        opportunity.risk_history = "03/01/2025\n- Risk Level: HIGH"
        container.repository.get_opportunity.return_value = opportunity

        response = client.get(f"/opportunities/{opportunity.id}/insights")

        assert response.status_code == 200
        assert response.json()["risk_history"] == "03/01/2025\n- Risk Level: HIGH"

    def test_create_document(self, client, container, opportunity, document):
        container.repository.get_opportunity.return_value = opportunity
        container.repository.create_document.return_value = document
        container.jobs.trigger_document_generation.return_value = handle(f"generate_document:{document.id}")

        response = client.post(
            f"/opportunities/{opportunity.id}/documents",
            json={"document_type": "business_case", "template_body": "## House style"},
        )

        assert response.status_code == 202
        assert response.json()["record_id"] == str(document.id)
        container.repository.create_document.assert_awaited_once_with(
            opportunity.id,
            DocumentType.business_case,
            title=None,
            template_body="## House style",
            generation_options=None,
        )

    def test_meeting_brief_requires_account(self, client, container, opportunity):
        opportunity.account_name = None
        container.repository.get_opportunity.return_value = opportunity

        response = client.post(
            f"/opportunities/{opportunity.id}/documents",
            json={"document_type": "meeting_brief"},
        )

        assert response.status_code == 400
        container.repository.create_document.assert_not_awaited()

    def test_template_content_requires_template(self, client, container, opportunity):
        container.repository.get_opportunity.return_value = opportunity

        response = client.post(
            f"/opportunities/{opportunity.id}/documents",
            json={"document_type": "template_content"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Template is required for template content"
        container.repository.create_document.assert_not_awaited()

    def test_template_content_stores_options(self, client, container, opportunity, document):
        container.repository.get_opportunity.return_value = opportunity
        container.repository.create_document.return_value = document
        container.jobs.trigger_document_generation.return_value = handle(f"generate_document:{document.id}")

        response = client.post(
            f"/opportunities/{opportunity.id}/documents",
            json={
                "document_type": "template_content",
                "template": {
                    "name": "Exec Recap",
                    "systemInstruction": "Write a recap for executives.",
                    "sections": [{"title": "Summary", "required": True}],
                },
                "context": {"callIds": ["call-1"], "includeMeetingTranscripts": True},
            },
        )

        assert response.status_code == 202
        options = container.repository.create_document.await_args.kwargs["generation_options"]
        assert options["template"]["name"] == "Exec Recap"
        assert options["template"]["sections"] == [{"title": "Summary", "description": None, "required": True}]
        assert options["context"]["callIds"] == ["call-1"]
        assert options["context"]["includeMeetingTranscripts"] is True
        assert options["context"]["includeConsolidatedInsights"] is True

    def test_unknown_document_type(self, client, container, opportunity):
        container.repository.get_opportunity.return_value = opportunity

        response = client.post(
            f"/opportunities/{opportunity.id}/documents",
            json={"document_type": "press_release"},
        )

        assert response.status_code == 422


class TestDocumentEndpoints:
    """Tests for /documents endpoints."""

    def test_get_document(self, client, container, document):
        container.repository.get_document.return_value = document

        response = client.get(f"/documents/{document.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "failed"
        assert body["error_message"] == "Model overloaded"
        assert body["document_type"] == "business_case"

    def test_get_unknown_document(self, client, container):
        response = client.get(f"/documents/{uuid.uuid4()}")

        assert response.status_code == 404

    def test_retry_resets_and_triggers(self, client, container, document):
        container.repository.get_document.return_value = document
        container.jobs.trigger_document_generation.return_value = handle(f"generate_document:{document.id}")

        response = client.post(f"/documents/{document.id}/retry")

        assert response.status_code == 202
        container.repository.update_document.assert_awaited_once_with(
            document.id, status=GenerationStatus.pending, error_message=None
        )
        container.jobs.trigger_document_generation.assert_called_once_with(str(document.id))

    def test_retry_while_generating_conflicts(self, client, container, document):
        document.status = GenerationStatus.generating
        container.repository.get_document.return_value = document

        response = client.post(f"/documents/{document.id}/retry")

        assert response.status_code == 409
        container.jobs.trigger_document_generation.assert_not_called()


class TestAnalysisEndpoints:
    """Tests for the synchronous /analysis endpoints."""

    def test_transcript_success_uses_camel_case(self, client, container):
        container.transcript_parser.parse.return_value = AIResult.succeeded(
            ParsedCallInsight(pain_points=["Slow onboarding"], goals=[], people=[], next_steps=[])
        )

        response = client.post(
            "/analysis/transcript",
            json={"transcript": "Customer: onboarding is slow.", "organization_name": "Acme"},
        )

        assert response.status_code == 200
        assert response.json()["painPoints"] == ["Slow onboarding"]
        container.transcript_parser.parse.assert_awaited_once_with("Customer: onboarding is slow.", "Acme")

    def test_invalid_input_is_400(self, client, container):
        container.transcript_parser.parse.return_value = AIResult.failed(
            "Transcript too short", "INVALID_INPUT"
        )

        response = client.post("/analysis/transcript", json={"transcript": "hi"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Transcript too short"

    def test_model_failure_is_502(self, client, container):
        container.risk_analyzer.analyze.return_value = AIResult.failed("Model overloaded", "MODEL_ERROR")

        response = client.post("/analysis/risk", json={"transcript": "Customer: budget is frozen."})

        assert response.status_code == 502

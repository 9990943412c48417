"""
Integration Tests for background generation jobs

Runs the trigger wrappers against an in-memory repository with the same
interface as CRMRepository and mocked generators, then checks what the jobs
wrote back to each record.
"""

import asyncio
import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from models.db_models import (
    ContactModel,
    GeneratedDocumentModel,
    OpportunityModel,
    SalesCallModel,
)
from models.document_models import BusinessCaseDraft, MutualActionPlan, TemplateContent
from models.insight_models import ConsolidatedInsight, ParsedCallInsight, RiskAssessment
from models.job_models import DocumentType, GenerationStatus
from models.results import AIResult
from services.background_jobs import BackgroundJobRunner
from services.generation_jobs import MAX_CONTENT_LENGTH, MAX_ERROR_LENGTH, GenerationJobs
from utils.brief_formatter import format_meeting_brief
from utils.exceptions import RecordNotFoundError


class InMemoryRepository:
    """Dict-backed stand-in for CRMRepository that records every update."""

    def __init__(self):
        self.opportunities = {}
        self.calls = {}
        self.contacts = []
        self.documents = {}
        self.updates = []
        self.fail_on_status = None

    def add(self, record):
        table = {
            OpportunityModel: self.opportunities,
            SalesCallModel: self.calls,
            GeneratedDocumentModel: self.documents,
        }.get(type(record))
        if table is None:
            self.contacts.append(record)
        else:
            table[str(record.id)] = record
        return record

    async def get_call(self, call_id):
        return self.calls.get(str(call_id))

    async def get_opportunity(self, opportunity_id):
        return self.opportunities.get(str(opportunity_id))

    async def get_document(self, document_id):
        return self.documents.get(str(document_id))

    async def list_contacts(self, opportunity_id):
        return [c for c in self.contacts if str(c.opportunity_id) == str(opportunity_id)]

    async def list_calls(self, opportunity_id):
        calls = [c for c in self.calls.values() if str(c.opportunity_id) == str(opportunity_id)]
        return sorted(calls, key=lambda c: c.meeting_date)

    async def list_prior_business_cases(self, exclude_opportunity_id, limit=3):
        return []

    async def list_reference_documents(self, opportunity_id, document_ids):
        wanted = {str(i) for i in document_ids}
        return [
            d for d in self.documents.values()
            if str(d.id) in wanted and str(d.opportunity_id) == str(opportunity_id) and d.content
        ]

    async def update_call(self, call_id, **fields):
        return self._update(self.calls, call_id, fields)

    async def update_opportunity(self, opportunity_id, **fields):
        return self._update(self.opportunities, opportunity_id, fields)

    async def update_document(self, document_id, **fields):
        return self._update(self.documents, document_id, fields)

    def _update(self, table, record_id, fields):
        if self.fail_on_status is not None and self.fail_on_status in fields.values():
            raise ConnectionError("database unavailable")
        record = table.get(str(record_id))
        if record is None:
            raise RecordNotFoundError(f"Record not found: {record_id}")
        self.updates.append((str(record_id), dict(fields)))
        for name, value in fields.items():
            setattr(record, name, value)
        return record

    def statuses(self, record_id, column):
        return [fields[column] for rid, fields in self.updates if rid == str(record_id) and column in fields]


RISK = RiskAssessment.model_validate({
    "riskLevel": "high",
    "riskFactors": [
        {"category": "budget", "severity": "high", "description": "Budget frozen", "evidence": "no budget"},
    ],
    "overallSummary": "Blocked on budget.",
})


def parsed_insight(*pain_points):
    return ParsedCallInsight(pain_points=list(pain_points), goals=[], people=[], next_steps=[])


BRIEF_TEXT = (
    "**Key Insight:** Northwind is consolidating vendors.\n\n"
    "## 1. Business Overview\n- Regional health plans\n\n"
    '## 9. Discovery Questions\n1. "How long does onboarding take?"\n'
)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def opportunity(repository):
    return repository.add(OpportunityModel(
        name="Northwind Expansion",
        amount_arr=250000,
        account_name="Northwind Health",
        seller_organization_name="Acme Software",
    ))


@pytest.fixture
def generators():
    """Mocked pipeline services keyed by GenerationJobs argument name."""
    services = {
        name: MagicMock()
        for name in (
            "transcript_parser",
            "risk_analyzer",
            "insight_consolidator",
            "business_case_generator",
            "proposal_generator",
            "map_generator",
            "meeting_brief_generator",
            "template_generator",
        )
    }
    services["transcript_parser"].parse = AsyncMock(
        return_value=AIResult.succeeded(parsed_insight("Slow onboarding"))
    )
    services["risk_analyzer"].analyze = AsyncMock(return_value=AIResult.succeeded(RISK))
    services["insight_consolidator"].consolidate = AsyncMock(
        return_value=AIResult.succeeded(
            ConsolidatedInsight(pain_points=["Slow onboarding"], goals=[], risk_assessment=RISK)
        )
    )
    services["business_case_generator"].generate = AsyncMock(
        return_value=AIResult.succeeded(BusinessCaseDraft(business_case="## Case", questions="1. Why?"))
    )
    services["proposal_generator"].generate = AsyncMock()
    services["map_generator"].generate = AsyncMock(
        return_value=AIResult.succeeded(MutualActionPlan.model_validate({
            "title": "Northwind + Acme | Partnership Project Plan",
            "actionItems": [
                {"description": "Discovery", "targetDate": "2025-01-05", "status": "completed", "owner": "Both"},
            ],
        }))
    )
    services["meeting_brief_generator"].generate = AsyncMock(
        return_value=AIResult.succeeded(
            format_meeting_brief(BRIEF_TEXT, "Northwind Health", generated_on=date(2025, 3, 1))
        )
    )
    services["template_generator"].generate = AsyncMock(
        return_value=AIResult.succeeded(TemplateContent(content="# Recap", missing_sections=["Next Steps"]))
    )
    return services


@pytest.fixture
def jobs(repository, generators):
    return GenerationJobs(repository, BackgroundJobRunner(), history_timezone="UTC", **generators)


def add_call(repository, opportunity, day, parsed=False):
    call = SalesCallModel(
        opportunity_id=opportunity.id,
        title=f"Call {day}",
        meeting_date=datetime(2025, 3, day, tzinfo=timezone.utc),
        transcript="Customer: onboarding a new site takes us 45 days and costs too much.",
    )
    if parsed:
        call.parsed_insights = parsed_insight("Cost").model_dump(mode="json", by_alias=True)
    return repository.add(call)


def add_document(repository, opportunity, document_type, **fields):
    return repository.add(GeneratedDocumentModel(
        opportunity_id=opportunity.id,
        document_type=document_type,
        **fields,
    ))


class TestTranscriptParsingJob:
    """Tests for the parse transcript job."""

    @pytest.mark.asyncio
    async def test_success_persists_insight(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)

        handle = jobs.trigger_parse_transcript(str(call.id))
        await handle.task

        assert handle.accepted
        assert repository.statuses(call.id, "parsing_status") == [
            GenerationStatus.generating,
            GenerationStatus.completed,
        ]
        assert call.parsed_insights["painPoints"] == ["Slow onboarding"]
        assert call.parsing_error is None
        assert call.parsed_at is not None
        generators["transcript_parser"].parse.assert_awaited_once_with(call.transcript, "Acme Software")

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_truncated(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)
        generators["transcript_parser"].parse.return_value = AIResult.failed("x" * 800, "MODEL_ERROR")

        await jobs.trigger_parse_transcript(str(call.id)).task

        assert call.parsing_status == GenerationStatus.failed
        assert call.parsing_error == "x" * MAX_ERROR_LENGTH
        assert call.parsed_insights is None

    @pytest.mark.asyncio
    async def test_missing_transcript_fails_without_model_call(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)
        call.transcript = "   "

        await jobs.trigger_parse_transcript(str(call.id)).task

        assert call.parsing_status == GenerationStatus.failed
        assert call.parsing_error == "Sales call has no transcript"
        generators["transcript_parser"].parse.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_status_write_is_swallowed(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)
        generators["transcript_parser"].parse.return_value = AIResult.failed("boom", "MODEL_ERROR")
        repository.fail_on_status = GenerationStatus.failed

        handle = jobs.trigger_parse_transcript(str(call.id))
        await handle.task

        assert handle.task.exception() is None
        assert call.parsing_status == GenerationStatus.generating

    @pytest.mark.asyncio
    async def test_unknown_call_does_not_crash_runner(self, jobs):
        handle = jobs.trigger_parse_transcript(str(uuid4()))
        await handle.task

        assert handle.done
        assert jobs.runner.in_flight() == []

    @pytest.mark.asyncio
    async def test_second_parsed_call_triggers_consolidation(self, jobs, repository, opportunity, generators):
        add_call(repository, opportunity, 1, parsed=True)
        call = add_call(repository, opportunity, 8)

        await jobs.trigger_parse_transcript(str(call.id)).task
        await jobs.runner.drain()

        inputs = generators["insight_consolidator"].consolidate.await_args.args[0]
        assert len(inputs) == 2
        assert opportunity.consolidation_status == GenerationStatus.completed
        assert opportunity.consolidated_insights["painPoints"] == ["Slow onboarding"]
        assert opportunity.consolidated_at is not None

    @pytest.mark.asyncio
    async def test_single_parsed_call_does_not_consolidate(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)

        await jobs.trigger_parse_transcript(str(call.id)).task
        await jobs.runner.drain()

        generators["insight_consolidator"].consolidate.assert_not_awaited()
        assert opportunity.consolidation_status is None

    @pytest.mark.asyncio
    async def test_duplicate_trigger_is_coalesced_into_one_rerun(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)

        first = jobs.trigger_parse_transcript(str(call.id))
        second = jobs.trigger_parse_transcript(str(call.id))
        third = jobs.trigger_parse_transcript(str(call.id))
        await first.task

        assert first.accepted
        assert not second.accepted and not third.accepted
        assert second.task is first.task
        assert generators["transcript_parser"].parse.await_count == 2
        assert call.parsing_status == GenerationStatus.completed


class TestRiskAnalysisJob:
    """Tests for the risk analysis job."""

    @pytest.mark.asyncio
    async def test_success_updates_call_and_history(self, jobs, repository, opportunity):
        opportunity.risk_history = "Champion on leave until April."
        call = add_call(repository, opportunity, 1)

        await jobs.trigger_risk_analysis(str(call.id)).task

        assert call.risk_status == GenerationStatus.completed
        assert call.risk_assessment["riskLevel"] == "high"
        assert call.risk_analyzed_at is not None
        assert opportunity.risk_history == (
            "Champion on leave until April.\n\n"
            "03/01/2025\n"
            "- Risk Level: HIGH\n"
            '- [Budget - High] Budget frozen: "no budget"'
        )

    @pytest.mark.asyncio
    async def test_history_uses_meeting_day_in_configured_zone(self, repository, opportunity, generators):
        jobs = GenerationJobs(
            repository, BackgroundJobRunner(), history_timezone="America/Los_Angeles", **generators
        )
        call = add_call(repository, opportunity, 2)
        call.meeting_date = datetime(2025, 3, 2, 3, 0, tzinfo=timezone.utc)

        await jobs.trigger_risk_analysis(str(call.id)).task

        assert opportunity.risk_history.startswith("03/01/2025\n- Risk Level: HIGH")

    @pytest.mark.asyncio
    async def test_failure_leaves_history_untouched(self, jobs, repository, opportunity, generators):
        call = add_call(repository, opportunity, 1)
        generators["risk_analyzer"].analyze.return_value = AIResult.failed("Invalid response", "INVALID_RESPONSE")

        await jobs.trigger_risk_analysis(str(call.id)).task

        assert call.risk_status == GenerationStatus.failed
        assert call.risk_error == "Invalid response"
        assert opportunity.risk_history is None


class TestConsolidationJob:
    """Tests for the consolidation job."""

    @pytest.mark.asyncio
    async def test_call_parsed_during_consolidation_is_included(self, jobs, repository, opportunity, generators):
        first = add_call(repository, opportunity, 1, parsed=True)
        second = add_call(repository, opportunity, 8, parsed=True)
        late = add_call(repository, opportunity, 15)

        consolidate = generators["insight_consolidator"].consolidate
        completed = consolidate.return_value
        entered = asyncio.Event()
        release = asyncio.Event()

        async def hold_first_run(inputs):
            if consolidate.await_count == 1:
                entered.set()
                await release.wait()
            return completed

        consolidate.side_effect = hold_first_run

        jobs.trigger_consolidation(str(opportunity.id))
        await entered.wait()
        await jobs.trigger_parse_transcript(str(late.id)).task
        release.set()
        await jobs.runner.drain()

        runs = [call.args[0] for call in consolidate.await_args_list]
        assert [len(inputs) for inputs in runs] == [2, 3]
        assert [item.call_id for item in runs[-1]] == [str(first.id), str(second.id), str(late.id)]
        assert opportunity.consolidation_status == GenerationStatus.completed

    @pytest.mark.asyncio
    async def test_too_few_calls_is_recorded(self, jobs, repository, opportunity, generators):
        add_call(repository, opportunity, 1, parsed=True)
        generators["insight_consolidator"].consolidate.return_value = AIResult.failed(
            "Consolidation requires at least 2 calls", "INVALID_INPUT"
        )

        await jobs.trigger_consolidation(str(opportunity.id)).task

        assert opportunity.consolidation_status == GenerationStatus.failed
        assert opportunity.consolidation_error == "Consolidation requires at least 2 calls"


class TestDocumentJob:
    """Tests for document generation jobs."""

    @pytest.mark.asyncio
    async def test_business_case(self, jobs, repository, opportunity):
        repository.add(ContactModel(opportunity_id=opportunity.id, first_name="Dana", role="champion"))
        document = add_document(repository, opportunity, DocumentType.business_case)

        await jobs.trigger_document_generation(str(document.id)).task

        assert repository.statuses(document.id, "status") == [
            GenerationStatus.generating,
            GenerationStatus.completed,
        ]
        assert document.title == "Business Case: Northwind Expansion"
        assert document.content == "## Case"
        assert document.questions == "1. Why?"
        assert document.generated_at is not None

    @pytest.mark.asyncio
    async def test_content_is_capped(self, jobs, repository, opportunity, generators):
        generators["business_case_generator"].generate.return_value = AIResult.succeeded(
            BusinessCaseDraft(business_case="x" * (MAX_CONTENT_LENGTH + 100))
        )
        document = add_document(repository, opportunity, DocumentType.business_case)

        await jobs.trigger_document_generation(str(document.id)).task

        assert len(document.content) == MAX_CONTENT_LENGTH

    @pytest.mark.asyncio
    async def test_mutual_action_plan(self, jobs, repository, opportunity):
        add_call(repository, opportunity, 1)
        document = add_document(repository, opportunity, DocumentType.mutual_action_plan)

        await jobs.trigger_document_generation(str(document.id)).task

        assert document.status == GenerationStatus.completed
        assert document.title == "Northwind + Acme | Partnership Project Plan"
        assert json.loads(document.content)["actionItems"][0]["targetDate"] == "2025-01-05"
        assert document.metadata_json["actionItems"][0]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_meeting_brief_refreshes_account_research(self, jobs, repository, opportunity):
        document = add_document(repository, opportunity, DocumentType.meeting_brief)

        await jobs.trigger_document_generation(str(document.id)).task

        assert document.status == GenerationStatus.completed
        assert "EXECUTIVE SUMMARY" in document.content
        assert document.metadata_json["mobileCheatSheet"].startswith("📱 MOBILE CHEAT SHEET")
        assert opportunity.account_research == document.content

    @pytest.mark.asyncio
    async def test_generator_failure_marks_document_failed(self, jobs, repository, opportunity, generators):
        generators["proposal_generator"].generate.return_value = AIResult.failed(
            "Failed to generate Business Impact Proposal content", "INVALID_RESPONSE"
        )
        document = add_document(repository, opportunity, DocumentType.business_impact_proposal)

        await jobs.trigger_document_generation(str(document.id)).task

        assert document.status == GenerationStatus.failed
        assert document.error_message == "Failed to generate Business Impact Proposal content"
        assert document.content is None
        assert opportunity.account_research is None

    @pytest.mark.asyncio
    async def test_template_content_uses_selected_context(self, jobs, repository, opportunity, generators):
        first = add_call(repository, opportunity, 1, parsed=True)
        add_call(repository, opportunity, 2, parsed=True)
        reference = add_document(
            repository, opportunity, DocumentType.business_case, title="Last quarter recap", content="## Recap"
        )
        document = add_document(
            repository,
            opportunity,
            DocumentType.template_content,
            generation_options={
                "template": {"name": "Exec Recap", "systemInstruction": "Write a recap."},
                "context": {"callIds": [str(first.id)], "referenceDocumentIds": [str(reference.id)]},
            },
        )

        await jobs.trigger_document_generation(str(document.id)).task

        assert document.status == GenerationStatus.completed
        assert document.title == "Exec Recap"
        assert document.content == "# Recap"
        assert document.metadata_json == {"templateName": "Exec Recap", "missingSections": ["Next Steps"]}

        template, context = generators["template_generator"].generate.await_args.args
        assert template.system_instruction == "Write a recap."
        assert [m.title for m in context.meetings] == ["Call 1"]
        assert context.meetings[0].pain_points == ["Cost"]
        assert context.meetings[0].transcript is None
        assert [r.title for r in context.reference_documents] == ["Last quarter recap"]

    @pytest.mark.asyncio
    async def test_template_content_without_options_fails(self, jobs, repository, opportunity, generators):
        document = add_document(repository, opportunity, DocumentType.template_content)

        await jobs.trigger_document_generation(str(document.id)).task

        assert document.status == GenerationStatus.failed
        assert document.error_message == "Template content document has no template"
        generators["template_generator"].generate.assert_not_awaited()

"""Background generation jobs.

Every trigger returns a ``JobHandle`` immediately and runs the work in a task.
The job owns the status column of the record it writes to:

    1. status = generating, previous error cleared
    2. build context from the CRM rows and run the generator
    3. persist result fields and status = completed in one write
    4. on any exception: status = failed with a truncated error message

Failures while recording the failure are logged and swallowed.
"""
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from models.db_models import GeneratedDocumentModel, OpportunityModel
from models.document_models import TemplateGenerationOptions
from models.job_models import DocumentType, GenerationStatus, JobKind
from models.results import AIResult
from services.background_jobs import BackgroundJobRunner, JobHandle, job_key
from services.business_case_generator import BusinessCaseGenerator
from services.business_impact_proposal_generator import BusinessImpactProposalGenerator
from services.context_builder import (
    build_business_case_context,
    build_map_context,
    build_meeting_brief_context,
    build_proposal_context,
    build_template_context,
    call_insight_input,
)
from services.crm_repository import CRMRepository
from services.insight_consolidator import MIN_CALLS, InsightConsolidator
from services.meeting_brief_generator import MeetingBriefGenerator
from services.mutual_action_plan_generator import MutualActionPlanGenerator
from services.risk_analyzer import RiskAnalyzer
from services.template_content_generator import TemplateContentGenerator
from services.transcript_parser import TranscriptParser
from utils.exceptions import InputValidationError, PipelineError, RecordNotFoundError
from utils.risk_history import format_risk_for_history, meeting_day, update_history_for_date

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500
MAX_CONTENT_LENGTH = 50_000
DEFAULT_HISTORY_TIMEZONE = "UTC"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def unwrap(result: AIResult):
    """Return ``result.data`` or raise the failure so the job records it."""
    if not result.success:
        raise PipelineError(result.error or "Generation failed", result.error_code or "GENERATION_FAILED")
    return result.data


@dataclass(frozen=True)
class _StatusColumns:
    update: Callable[..., Awaitable]
    status: str
    error: str


class GenerationJobs:
    """Trigger wrappers that run pipeline operations against persisted records."""

    def __init__(
        self,
        repository: CRMRepository,
        runner: BackgroundJobRunner,
        transcript_parser: TranscriptParser,
        risk_analyzer: RiskAnalyzer,
        insight_consolidator: InsightConsolidator,
        business_case_generator: BusinessCaseGenerator,
        proposal_generator: BusinessImpactProposalGenerator,
        map_generator: MutualActionPlanGenerator,
        meeting_brief_generator: MeetingBriefGenerator,
        template_generator: TemplateContentGenerator,
        history_timezone: Optional[str] = None,
    ):
        self.repository = repository
        self.runner = runner
        self.transcript_parser = transcript_parser
        self.risk_analyzer = risk_analyzer
        self.insight_consolidator = insight_consolidator
        self.business_case_generator = business_case_generator
        self.proposal_generator = proposal_generator
        self.map_generator = map_generator
        self.meeting_brief_generator = meeting_brief_generator
        self.template_generator = template_generator
        # Risk history blocks are keyed by the meeting's calendar day in this zone
        self.history_zone = ZoneInfo(
            history_timezone or os.getenv("RISK_HISTORY_TIMEZONE", DEFAULT_HISTORY_TIMEZONE)
        )

    # --- Triggers ---

    def trigger_parse_transcript(self, call_id: str) -> JobHandle:
        return self._submit(JobKind.parse_transcript, call_id, self._parse_transcript_job)

    def trigger_risk_analysis(self, call_id: str) -> JobHandle:
        return self._submit(JobKind.analyze_risk, call_id, self._risk_analysis_job)

    def trigger_consolidation(self, opportunity_id: str) -> JobHandle:
        return self._submit(JobKind.consolidate_insights, opportunity_id, self._consolidation_job)

    def trigger_document_generation(self, document_id: str) -> JobHandle:
        return self._submit(JobKind.generate_document, document_id, self._document_job)

    def _submit(self, kind: JobKind, record_id: str, job: Callable[[str], Awaitable[None]]) -> JobHandle:
        record_id = str(record_id)
        return self.runner.submit(job_key(kind.value, record_id), lambda: job(record_id))

    # --- Lifecycle ---

    async def _run_tracked(
        self,
        kind: JobKind,
        record_id: str,
        columns: _StatusColumns,
        work: Callable[[], Awaitable[None]],
    ) -> bool:
        """Run ``work`` between the generating and terminal status writes.

        ``work`` is responsible for the completed write. Returns True on success.
        """
        logger.info(f"Job starting: kind={kind.value}, record_id={record_id}")
        try:
            await columns.update(record_id, **{columns.status: GenerationStatus.generating, columns.error: None})
            await work()
        except Exception as e:
            logger.error(f"Job failed: kind={kind.value}, record_id={record_id}, error={e}", exc_info=True)
            try:
                await columns.update(
                    record_id,
                    **{columns.status: GenerationStatus.failed, columns.error: str(e)[:MAX_ERROR_LENGTH]},
                )
            except Exception as update_error:
                logger.error(
                    f"Failed to update job status: kind={kind.value}, "
                    f"record_id={record_id}, error={update_error}"
                )
            return False

        logger.info(f"Job completed: kind={kind.value}, record_id={record_id}")
        return True

    # --- Sales call jobs ---

    async def _parse_transcript_job(self, call_id: str) -> None:
        columns = _StatusColumns(self.repository.update_call, "parsing_status", "parsing_error")
        opportunity_id: Optional[str] = None

        async def work() -> None:
            nonlocal opportunity_id
            call = await self.repository.get_call(call_id)
            if call is None:
                raise RecordNotFoundError(f"Sales call not found: {call_id}")
            if not call.transcript or not call.transcript.strip():
                raise InputValidationError("Sales call has no transcript")

            opportunity = await self.repository.get_opportunity(call.opportunity_id)
            organization_name = opportunity.seller_organization_name if opportunity else None
            insight = unwrap(await self.transcript_parser.parse(call.transcript, organization_name))

            await self.repository.update_call(
                call_id,
                parsed_insights=insight.model_dump(mode="json", by_alias=True),
                parsing_status=GenerationStatus.completed,
                parsing_error=None,
                parsed_at=_utcnow(),
            )
            opportunity_id = str(call.opportunity_id)

        if await self._run_tracked(JobKind.parse_transcript, call_id, columns, work):
            await self._maybe_consolidate(opportunity_id)

    async def _maybe_consolidate(self, opportunity_id: Optional[str]) -> None:
        """Re-consolidate once the opportunity has enough parsed calls."""
        if not opportunity_id:
            return
        try:
            calls = await self.repository.list_calls(opportunity_id)
        except Exception as e:
            logger.error(f"Auto-consolidation check failed: opportunity_id={opportunity_id}, error={e}")
            return

        parsed = sum(1 for call in calls if call.parsed_insights)
        if parsed >= MIN_CALLS:
            logger.info(f"Auto-consolidating: opportunity_id={opportunity_id}, parsed_calls={parsed}")
            self.trigger_consolidation(opportunity_id)

    async def _risk_analysis_job(self, call_id: str) -> None:
        columns = _StatusColumns(self.repository.update_call, "risk_status", "risk_error")
        analyzed = {}

        async def work() -> None:
            call = await self.repository.get_call(call_id)
            if call is None:
                raise RecordNotFoundError(f"Sales call not found: {call_id}")
            if not call.transcript or not call.transcript.strip():
                raise InputValidationError("Sales call has no transcript")

            assessment = unwrap(await self.risk_analyzer.analyze(call.transcript))
            await self.repository.update_call(
                call_id,
                risk_assessment=assessment.model_dump(mode="json", by_alias=True),
                risk_status=GenerationStatus.completed,
                risk_error=None,
                risk_analyzed_at=_utcnow(),
            )
            analyzed.update(call=call, assessment=assessment)

        if await self._run_tracked(JobKind.analyze_risk, call_id, columns, work):
            await self._record_risk_history(analyzed["call"], analyzed["assessment"])

    async def _record_risk_history(self, call, assessment) -> None:
        try:
            opportunity = await self.repository.get_opportunity(call.opportunity_id)
            if opportunity is None:
                return
            history = update_history_for_date(
                opportunity.risk_history,
                meeting_day(call.meeting_date, self.history_zone),
                format_risk_for_history(assessment),
            )
            await self.repository.update_opportunity(opportunity.id, risk_history=history)
        except Exception as e:
            logger.error(f"Failed to update risk history: call_id={call.id}, error={e}", exc_info=True)

    # --- Opportunity jobs ---

    async def _consolidation_job(self, opportunity_id: str) -> None:
        columns = _StatusColumns(
            self.repository.update_opportunity, "consolidation_status", "consolidation_error"
        )

        async def work() -> None:
            opportunity = await self.repository.get_opportunity(opportunity_id)
            if opportunity is None:
                raise RecordNotFoundError(f"Opportunity not found: {opportunity_id}")

            calls = await self.repository.list_calls(opportunity_id)
            inputs = [item for item in (call_insight_input(call) for call in calls) if item]
            insight = unwrap(await self.insight_consolidator.consolidate(inputs))

            await self.repository.update_opportunity(
                opportunity_id,
                consolidated_insights=insight.model_dump(mode="json", by_alias=True),
                consolidation_status=GenerationStatus.completed,
                consolidation_error=None,
                consolidated_at=_utcnow(),
            )

        await self._run_tracked(JobKind.consolidate_insights, opportunity_id, columns, work)

    # --- Document jobs ---

    async def _document_job(self, document_id: str) -> None:
        columns = _StatusColumns(self.repository.update_document, "status", "error_message")
        generated = {}

        async def work() -> None:
            document = await self.repository.get_document(document_id)
            if document is None:
                raise RecordNotFoundError(f"Document not found: {document_id}")
            opportunity = await self.repository.get_opportunity(document.opportunity_id)
            if opportunity is None:
                raise RecordNotFoundError(f"Opportunity not found: {document.opportunity_id}")

            fields = await self._generate_document(document, opportunity)
            if fields.get("content"):
                fields["content"] = fields["content"][:MAX_CONTENT_LENGTH]

            await self.repository.update_document(
                document_id,
                status=GenerationStatus.completed,
                error_message=None,
                generated_at=_utcnow(),
                **fields,
            )
            generated.update(document=document, opportunity=opportunity, fields=fields)

        if await self._run_tracked(JobKind.generate_document, document_id, columns, work):
            if generated["document"].document_type == DocumentType.meeting_brief:
                await self._refresh_account_research(generated["opportunity"], generated["fields"]["content"])

    async def _generate_document(
        self,
        document: GeneratedDocumentModel,
        opportunity: OpportunityModel,
    ) -> dict:
        """Run the generator for ``document.document_type``; returns document fields to persist."""
        document_type = document.document_type

        if document_type == DocumentType.business_case:
            contacts = await self.repository.list_contacts(opportunity.id)
            prior = await self.repository.list_prior_business_cases(opportunity.id)
            draft = unwrap(await self.business_case_generator.generate(
                build_business_case_context(opportunity, contacts, prior)
            ))
            return {
                "title": document.title or f"Business Case: {opportunity.name}",
                "content": draft.business_case,
                "questions": draft.questions,
            }

        if document_type == DocumentType.business_impact_proposal:
            contacts = await self.repository.list_contacts(opportunity.id)
            proposal = unwrap(await self.proposal_generator.generate(
                build_proposal_context(opportunity, contacts, document)
            ))
            return {
                "title": document.title or f"Business Impact Proposal: {opportunity.name}",
                "content": proposal.proposal,
                "metadata_json": {"dataNeeded": proposal.data_needed},
            }

        if document_type == DocumentType.mutual_action_plan:
            contacts = await self.repository.list_contacts(opportunity.id)
            calls = await self.repository.list_calls(opportunity.id)
            plan = unwrap(await self.map_generator.generate(
                build_map_context(opportunity, contacts, calls, document)
            ))
            payload = plan.model_dump(mode="json", by_alias=True)
            return {
                "title": document.title or plan.title,
                "content": json.dumps(payload, indent=2),
                "metadata_json": payload,
            }

        if document_type == DocumentType.meeting_brief:
            brief = unwrap(await self.meeting_brief_generator.generate(
                build_meeting_brief_context(opportunity)
            ))
            return {
                "title": document.title or f"Meeting Brief: {opportunity.account_name}",
                "content": brief.full_brief,
                "metadata_json": {
                    "mobileCheatSheet": brief.mobile_cheat_sheet,
                    **brief.metadata.model_dump(mode="json"),
                },
            }

        if document_type == DocumentType.template_content:
            options = self._template_options(document)
            contacts = await self.repository.list_contacts(opportunity.id)
            calls = await self.repository.list_calls(opportunity.id)
            references = await self.repository.list_reference_documents(
                opportunity.id, options.context.reference_document_ids
            )
            generated = unwrap(await self.template_generator.generate(
                options.template,
                build_template_context(opportunity, contacts, calls, references, options),
            ))
            return {
                "title": document.title or options.template.name,
                "content": generated.content,
                "metadata_json": {
                    "templateName": options.template.name,
                    "missingSections": generated.missing_sections,
                },
            }

        raise InputValidationError(f"Unsupported document type: {document_type}")

    @staticmethod
    def _template_options(document: GeneratedDocumentModel) -> TemplateGenerationOptions:
        if not document.generation_options:
            raise InputValidationError("Template content document has no template")
        try:
            return TemplateGenerationOptions.model_validate(document.generation_options)
        except ValidationError as e:
            raise InputValidationError(f"Invalid template options: {e.error_count()} errors") from e

    async def _refresh_account_research(self, opportunity: OpportunityModel, full_brief: str) -> None:
        try:
            await self.repository.update_opportunity(opportunity.id, account_research=full_brief)
            logger.info(f"Account research refreshed: opportunity_id={opportunity.id}")
        except Exception as e:
            logger.error(
                f"Failed to refresh account research: opportunity_id={opportunity.id}, error={e}",
                exc_info=True,
            )

"""Builds generator context models from persisted CRM rows."""
import logging
from typing import Optional, Sequence

from pydantic import ValidationError

from models.db_models import (
    ContactModel,
    GeneratedDocumentModel,
    OpportunityModel,
    SalesCallModel,
)
from models.document_models import (
    AccountContext,
    AggregatedContext,
    BusinessCaseContext,
    BusinessImpactProposalContext,
    ContactContext,
    MAPContact,
    MAPGenerationContext,
    MeetingBriefContext,
    MeetingContext,
    MeetingSummary,
    OpportunityContext,
    ReferenceDocument,
    TemplateGenerationOptions,
)
from models.insight_models import (
    CallInsightInput,
    ConsolidatedInsight,
    ParsedCallInsight,
    RiskAssessment,
)

logger = logging.getLogger(__name__)


def load_consolidated_insight(opportunity: OpportunityModel) -> Optional[ConsolidatedInsight]:
    """Read the stored consolidated insight; unreadable JSON counts as absent."""
    if not opportunity.consolidated_insights:
        return None
    try:
        return ConsolidatedInsight.model_validate(opportunity.consolidated_insights)
    except ValidationError as e:
        logger.warning(
            f"Stored consolidated insight unreadable: opportunity_id={opportunity.id}, error={e}"
        )
        return None


def opportunity_context(opportunity: OpportunityModel) -> OpportunityContext:
    consolidated = load_consolidated_insight(opportunity)
    context = OpportunityContext(
        name=opportunity.name,
        amount_arr=opportunity.amount_arr or 0,
        stage=opportunity.stage,
        confidence_level=opportunity.confidence_level,
        close_date=opportunity.close_date,
        competition=opportunity.competition,
        platform_type=opportunity.platform_type,
        account_research=opportunity.account_research,
    )
    if consolidated:
        context.consolidated_pain_points = consolidated.pain_points
        context.consolidated_goals = consolidated.goals
        context.consolidated_why_and_why_now = consolidated.why_and_why_now
        context.consolidated_metrics = consolidated.quantifiable_metrics
        context.consolidated_risk_assessment = consolidated.risk_assessment
    return context


def account_context(opportunity: OpportunityModel) -> Optional[AccountContext]:
    if not opportunity.account_name:
        return None
    return AccountContext(
        name=opportunity.account_name,
        industry=opportunity.account_industry,
        website=opportunity.account_website,
        ticker=opportunity.account_ticker,
    )


def contact_context(contact: ContactModel) -> ContactContext:
    return ContactContext(
        first_name=contact.first_name,
        last_name=contact.last_name,
        title=contact.title,
        role=contact.role,
        sentiment=contact.sentiment,
    )


def build_business_case_context(
    opportunity: OpportunityModel,
    contacts: Sequence[ContactModel],
    prior_cases: Sequence[GeneratedDocumentModel],
) -> BusinessCaseContext:
    return BusinessCaseContext(
        opportunity=opportunity_context(opportunity),
        account=account_context(opportunity),
        contacts=[contact_context(c) for c in contacts],
        prior_business_cases=[
            ReferenceDocument(title=doc.title or "Business Case", body=doc.content)
            for doc in prior_cases
            if doc.content
        ],
    )


def build_proposal_context(
    opportunity: OpportunityModel,
    contacts: Sequence[ContactModel],
    document: GeneratedDocumentModel,
) -> BusinessImpactProposalContext:
    template = None
    if document.template_body:
        template = ReferenceDocument(title=document.title or "Template", body=document.template_body)
    return BusinessImpactProposalContext(
        opportunity=opportunity_context(opportunity),
        account=account_context(opportunity),
        contacts=[contact_context(c) for c in contacts],
        template=template,
    )


def build_map_context(
    opportunity: OpportunityModel,
    contacts: Sequence[ContactModel],
    calls: Sequence[SalesCallModel],
    document: GeneratedDocumentModel,
) -> MAPGenerationContext:
    return MAPGenerationContext(
        opportunity_id=str(opportunity.id),
        opportunity_name=opportunity.name,
        account_name=opportunity.account_name,
        stage=opportunity.stage,
        close_date=opportunity.close_date,
        meetings=[
            MeetingSummary(title=call.title, date=call.meeting_date, type=call.meeting_type)
            for call in calls
        ],
        contacts=[
            MAPContact(
                name=f"{c.first_name} {c.last_name}".strip(),
                title=c.title,
                role=c.role,
            )
            for c in contacts
        ],
        template_body=document.template_body,
    )


def build_meeting_brief_context(opportunity: OpportunityModel) -> MeetingBriefContext:
    return MeetingBriefContext(
        account_name=opportunity.account_name or "",
        company_website=opportunity.account_website,
        stage=opportunity.stage,
        industry=opportunity.account_industry,
        opportunity_value=opportunity.amount_arr or None,
    )


def build_template_context(
    opportunity: OpportunityModel,
    contacts: Sequence[ContactModel],
    calls: Sequence[SalesCallModel],
    references: Sequence[GeneratedDocumentModel],
    options: TemplateGenerationOptions,
) -> AggregatedContext:
    """Gather the opportunity data a template generation asked for."""
    selection = options.context
    if selection.call_ids is not None:
        wanted = set(selection.call_ids)
        calls = [call for call in calls if str(call.id) in wanted]

    return AggregatedContext(
        opportunity=opportunity_context(opportunity),
        account=account_context(opportunity),
        contacts=[contact_context(c) for c in contacts],
        consolidated_insight=(
            load_consolidated_insight(opportunity) if selection.include_consolidated_insights else None
        ),
        meetings=[
            meeting_context(call, include_transcript=selection.include_meeting_transcripts)
            for call in sorted(calls, key=lambda c: c.meeting_date)
        ],
        account_research=opportunity.account_research if selection.include_account_research else None,
        additional_context=selection.additional_context,
        reference_documents=[
            ReferenceDocument(title=doc.title or doc.document_type.value, body=doc.content)
            for doc in references
            if doc.content
        ],
    )


def meeting_context(call: SalesCallModel, include_transcript: bool = False) -> MeetingContext:
    """A call as template context; unparsed calls contribute title and date only."""
    context = MeetingContext(
        title=call.title,
        date=call.meeting_date,
        meeting_type=call.meeting_type,
        transcript=call.transcript if include_transcript else None,
    )
    if not call.parsed_insights:
        return context
    try:
        parsed = ParsedCallInsight.model_validate(call.parsed_insights)
    except ValidationError as e:
        logger.warning(f"Stored call insight unreadable: call_id={call.id}, error={e}")
        return context

    return context.model_copy(update={
        "pain_points": parsed.pain_points,
        "goals": parsed.goals,
        "next_steps": parsed.next_steps,
        "key_quotes": parsed.key_quotes,
        "objections": parsed.objections,
        "competition_mentions": parsed.competition_mentions,
        "decision_process": parsed.decision_process,
        "call_sentiment": parsed.call_sentiment,
    })


def call_insight_input(call: SalesCallModel) -> Optional[CallInsightInput]:
    """Merge a call's parsed insight and risk assessment; None if the call is unparsed."""
    if not call.parsed_insights:
        return None
    try:
        parsed = ParsedCallInsight.model_validate(call.parsed_insights)
        risk = RiskAssessment.model_validate(call.risk_assessment) if call.risk_assessment else None
    except ValidationError as e:
        logger.warning(f"Stored call insight unreadable: call_id={call.id}, error={e}")
        return None

    return CallInsightInput(
        call_id=str(call.id),
        meeting_date=call.meeting_date,
        pain_points=parsed.pain_points,
        goals=parsed.goals,
        risk_assessment=risk,
        why_and_why_now=parsed.why_and_why_now,
        quantifiable_metrics=parsed.quantifiable_metrics,
        key_quotes=parsed.key_quotes,
        objections=parsed.objections,
        competition_mentions=parsed.competition_mentions,
        decision_process=parsed.decision_process,
        call_sentiment=parsed.call_sentiment,
    )

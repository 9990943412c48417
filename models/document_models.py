"""Context and output models for the document generators.

Context models hold already-persisted opportunity data in the shape the
prompt builders render. Output models hold the parsed generator results.
"""
import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, Field

from models.field_policies import RequiredText, default_bool, default_text, is_blank
from models.insight_models import (
    CallSentiment,
    CamelModel,
    CompetitionMention,
    ConsolidatedInsight,
    DecisionProcess,
    RiskAssessment,
)

ISO_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


# --- Shared context ---

class ContactContext(BaseModel):
    """A customer contact as rendered into prompts."""
    first_name: str
    last_name: str = ""
    title: Optional[str] = None
    role: str = "end_user"
    sentiment: str = "neutral"


class AccountContext(BaseModel):
    name: str
    industry: Optional[str] = None
    website: Optional[str] = None
    ticker: Optional[str] = None


class OpportunityContext(BaseModel):
    """Opportunity fields plus the consolidated insight slices generators use."""
    name: str
    amount_arr: float = 0
    stage: str = "discovery"
    confidence_level: int = 3
    close_date: Optional[date] = None
    competition: Optional[str] = None
    platform_type: Optional[str] = None
    consolidated_pain_points: List[str] = Field(default_factory=list)
    consolidated_goals: List[str] = Field(default_factory=list)
    consolidated_why_and_why_now: List[str] = Field(default_factory=list)
    consolidated_metrics: List[str] = Field(default_factory=list)
    consolidated_risk_assessment: Optional[RiskAssessment] = None
    account_research: Optional[str] = None


class ReferenceDocument(BaseModel):
    """A prior example or user template: title plus markdown body."""
    title: str
    body: str


# --- Business case ---

class BusinessCaseContext(BaseModel):
    opportunity: OpportunityContext
    account: Optional[AccountContext] = None
    contacts: List[ContactContext] = Field(default_factory=list)
    prior_business_cases: List[ReferenceDocument] = Field(default_factory=list)


class BusinessCaseDraft(BaseModel):
    business_case: str
    questions: Optional[str] = None


# --- Business impact proposal ---

class BusinessImpactProposalContext(BaseModel):
    opportunity: OpportunityContext
    account: Optional[AccountContext] = None
    contacts: List[ContactContext] = Field(default_factory=list)
    template: Optional[ReferenceDocument] = None


class BusinessImpactProposal(BaseModel):
    """Markdown proposal plus the ``[DATA NEEDED: ...]`` gaps it calls out."""
    proposal: str
    data_needed: List[str] = Field(default_factory=list)


# --- Mutual action plan ---

class MAPStatus(str, Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"
    delayed = "delayed"


class MeetingSummary(BaseModel):
    title: str
    date: datetime
    type: str = "meeting"


class MAPContact(BaseModel):
    name: str
    title: Optional[str] = None
    role: str = "end_user"


class MAPGenerationContext(BaseModel):
    opportunity_id: str
    opportunity_name: str
    account_name: Optional[str] = None
    stage: str = "discovery"
    close_date: Optional[date] = None
    meetings: List[MeetingSummary] = Field(default_factory=list)
    contacts: List[MAPContact] = Field(default_factory=list)
    template_body: Optional[str] = None


def _iso_date_or_none(value: Any) -> Any:
    """Optional, but a present date must be written YYYY-MM-DD."""
    if is_blank(value):
        return None
    if isinstance(value, str) and not ISO_DATE_PATTERN.fullmatch(value.strip()):
        raise ValueError(f"does not match the expected format YYYY-MM-DD: {value!r}")
    return value.strip() if isinstance(value, str) else value


class MAPActionItem(CamelModel):
    description: RequiredText
    target_date: Annotated[Optional[date], BeforeValidator(_iso_date_or_none)] = None
    status: MAPStatus
    owner: RequiredText
    notes: Annotated[str, default_text("")] = ""
    is_weekly_sync: Annotated[bool, default_bool(False)] = False


class MutualActionPlan(CamelModel):
    title: RequiredText
    action_items: List[MAPActionItem]


# --- Meeting brief ---

class MeetingBriefContext(BaseModel):
    account_name: str
    company_website: Optional[str] = None
    stage: Optional[str] = None
    industry: Optional[str] = None
    opportunity_value: Optional[float] = None


class KeyMetric(BaseModel):
    metric: str
    value: str
    talking_point: str


class DiscoveryQuestion(BaseModel):
    priority: str
    question: str
    why_ask: str
    listen_for: List[str] = Field(default_factory=list)


class FinancialFigure(BaseModel):
    metric: str
    value: str
    yoy_change: str = ""
    how_to_use: str


class ExecutiveSummary(BaseModel):
    critical_insight: str
    top_questions: List[str] = Field(default_factory=list)
    key_metrics: List[KeyMetric] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    opening_line: str = ""


class QuickReference(BaseModel):
    conversation_starters: List[str] = Field(default_factory=list)
    discovery_questions: List[DiscoveryQuestion] = Field(default_factory=list)
    financials: List[FinancialFigure] = Field(default_factory=list)


class MeetingBriefMetadata(BaseModel):
    executive_summary: ExecutiveSummary
    quick_reference: QuickReference


class FormattedMeetingBrief(BaseModel):
    """Meeting brief in all delivered formats."""
    full_brief: str
    mobile_cheat_sheet: str
    metadata: MeetingBriefMetadata


# --- Template content ---

class TemplateSection(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    required: bool = False


class ContentTemplate(CamelModel):
    """A user-defined document template: instructions plus the sections to produce."""
    name: str = Field(min_length=1, max_length=255)
    system_instruction: str = Field(min_length=1)
    output_format: Optional[str] = None
    sections: List[TemplateSection] = Field(default_factory=list)


class ContextSelection(CamelModel):
    """Which opportunity data is fed to a template.

    ``call_ids`` of None selects every call on the opportunity.
    """
    call_ids: Optional[List[str]] = None
    include_consolidated_insights: bool = True
    include_account_research: bool = True
    include_meeting_transcripts: bool = False
    reference_document_ids: List[str] = Field(default_factory=list)
    additional_context: Optional[str] = None


class TemplateGenerationOptions(CamelModel):
    """Stored on the document row when a template generation is requested."""
    template: ContentTemplate
    context: ContextSelection = Field(default_factory=ContextSelection)


class MeetingContext(BaseModel):
    """One call's parsed insight as rendered into a template prompt."""
    title: str
    date: datetime
    meeting_type: str = "call"
    pain_points: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    key_quotes: List[str] = Field(default_factory=list)
    objections: List[str] = Field(default_factory=list)
    competition_mentions: List[CompetitionMention] = Field(default_factory=list)
    decision_process: Optional[DecisionProcess] = None
    call_sentiment: Optional[CallSentiment] = None
    transcript: Optional[str] = None


class AggregatedContext(BaseModel):
    """Everything selected about an opportunity for template generation."""
    opportunity: OpportunityContext
    account: Optional[AccountContext] = None
    contacts: List[ContactContext] = Field(default_factory=list)
    consolidated_insight: Optional[ConsolidatedInsight] = None
    meetings: List[MeetingContext] = Field(default_factory=list)
    account_research: Optional[str] = None
    additional_context: Optional[str] = None
    reference_documents: List[ReferenceDocument] = Field(default_factory=list)


class TemplateContent(BaseModel):
    """Generated markdown plus any required template sections it left out."""
    content: str
    missing_sections: List[str] = Field(default_factory=list)

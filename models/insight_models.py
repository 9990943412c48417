"""Pydantic models for call insights, risk assessments and consolidated insights.

The model is prompted to return camelCase JSON (``painPoints``, ``whyAndWhyNow``).
Python attributes are snake_case; every model accepts either form on input and
``model_dump(by_alias=True)`` reproduces the camelCase shape for persistence.

The annotated field types from ``models.field_policies`` say how each field of
model output is handled when it is absent or malformed.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.field_policies import (
    DefaultObject,
    DefaultStringList,
    OptionalText,
    RequiredStringList,
    RequiredText,
    default_choice,
    default_text,
    drop_invalid,
)

NO_COMPETITION_INFO = "No competition information available"
NO_SENTIMENT_TREND = "Insufficient data to assess sentiment trend"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Enums ---

class ContactRole(str, Enum):
    """Buying-committee role a free-text title is classified into."""
    decision_maker = "decision_maker"
    influencer = "influencer"
    champion = "champion"
    blocker = "blocker"
    end_user = "end_user"


class MentionSentiment(str, Enum):
    """How the customer spoke about a competitor."""
    positive = "positive"
    neutral = "neutral"
    negative = "negative"


class CallMomentum(str, Enum):
    accelerating = "accelerating"
    steady = "steady"
    stalling = "stalling"


class EnthusiasmLevel(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class RiskLevel(str, Enum):
    """Overall deal risk."""
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class RiskCategory(str, Enum):
    budget = "budget"
    timeline = "timeline"
    competition = "competition"
    technical = "technical"
    alignment = "alignment"
    resistance = "resistance"


class RiskSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class SentimentTrajectory(str, Enum):
    """Direction of customer sentiment across calls."""
    improving = "improving"
    stable = "stable"
    declining = "declining"


# --- Per-call insight ---

class PersonExtracted(CamelModel):
    """A participant or person mentioned in the call."""
    name: RequiredText = Field(description="Full name of the person")
    organization: Annotated[str, default_text("Unknown")] = Field(
        default="Unknown", description="Company the person works for"
    )
    role: Annotated[str, default_text("Unknown")] = Field(default="Unknown", description="Free-text role or title")
    classified_role: Annotated[Optional[ContactRole], default_choice(ContactRole, None)] = Field(
        default=None,
        description="Buying-committee role, set only when classification succeeded"
    )


class CompetitionMention(CamelModel):
    competitor: RequiredText
    context: Annotated[str, default_text("")] = ""
    sentiment: Annotated[MentionSentiment, default_choice(MentionSentiment, MentionSentiment.neutral)] = (
        MentionSentiment.neutral
    )


class DecisionProcess(CamelModel):
    """What was learned about how the customer will decide."""
    timeline: OptionalText = None
    stakeholders: DefaultStringList = Field(default_factory=list)
    budget_context: OptionalText = None
    approval_steps: DefaultStringList = Field(default_factory=list)


class CallSentiment(CamelModel):
    overall: Annotated[MentionSentiment, default_choice(MentionSentiment, MentionSentiment.neutral)] = (
        MentionSentiment.neutral
    )
    momentum: Annotated[CallMomentum, default_choice(CallMomentum, CallMomentum.steady)] = CallMomentum.steady
    enthusiasm: Annotated[EnthusiasmLevel, default_choice(EnthusiasmLevel, EnthusiasmLevel.medium)] = (
        EnthusiasmLevel.medium
    )


class ParsedCallInsight(CamelModel):
    """Structured insight extracted from a single sales call transcript.

    The four core lists are REQUIRED. Enrichment fields were added to the
    prompt later and fall back to empty or neutral values independently.
    """
    pain_points: RequiredStringList
    goals: RequiredStringList
    people: List[PersonExtracted]
    next_steps: RequiredStringList
    why_and_why_now: DefaultStringList = Field(default_factory=list)
    quantifiable_metrics: DefaultStringList = Field(default_factory=list)
    key_quotes: DefaultStringList = Field(default_factory=list)
    objections: DefaultStringList = Field(default_factory=list)
    competition_mentions: Annotated[List[CompetitionMention], drop_invalid(CompetitionMention)] = Field(
        default_factory=list
    )
    decision_process: Annotated[DecisionProcess, DefaultObject] = Field(default_factory=DecisionProcess)
    call_sentiment: Annotated[CallSentiment, DefaultObject] = Field(default_factory=CallSentiment)


# --- Risk ---

class RiskFactor(CamelModel):
    category: RiskCategory
    severity: RiskSeverity
    description: RequiredText
    evidence: RequiredText


class RiskAssessment(CamelModel):
    """Deal risk for one call or consolidated across calls.

    Every field is REQUIRED: one enum value outside its closed set anywhere in
    the factor list rejects the whole assessment.
    """
    risk_level: RiskLevel
    risk_factors: List[RiskFactor]
    overall_summary: RequiredText


# --- Consolidation ---

class CallInsightInput(CamelModel):
    """One call's insights as fed into consolidation."""
    call_id: str
    meeting_date: datetime
    pain_points: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    risk_assessment: Optional[RiskAssessment] = None
    why_and_why_now: List[str] = Field(default_factory=list)
    quantifiable_metrics: List[str] = Field(default_factory=list)
    key_quotes: List[str] = Field(default_factory=list)
    objections: List[str] = Field(default_factory=list)
    competition_mentions: List[CompetitionMention] = Field(default_factory=list)
    decision_process: Optional[DecisionProcess] = None
    call_sentiment: Optional[CallSentiment] = None


class ConsolidatedCompetition(CamelModel):
    competitors: DefaultStringList = Field(default_factory=list)
    primary_threat: OptionalText = None
    customer_sentiment: Annotated[str, default_text(NO_COMPETITION_INFO)] = NO_COMPETITION_INFO


class ConsolidatedDecisionProcess(CamelModel):
    timeline: OptionalText = None
    key_stakeholders: DefaultStringList = Field(default_factory=list)
    budget_status: OptionalText = None
    remaining_steps: DefaultStringList = Field(default_factory=list)


class SentimentTrend(CamelModel):
    trajectory: Annotated[SentimentTrajectory, default_choice(SentimentTrajectory, SentimentTrajectory.stable)] = (
        SentimentTrajectory.stable
    )
    current_state: Annotated[MentionSentiment, default_choice(MentionSentiment, MentionSentiment.neutral)] = (
        MentionSentiment.neutral
    )
    summary: Annotated[str, default_text(NO_SENTIMENT_TREND)] = NO_SENTIMENT_TREND


class ConsolidatedInsight(CamelModel):
    """Deduplicated synthesis of two or more calls on one opportunity.

    Core fields (painPoints, goals, riskAssessment) are REQUIRED; every
    enrichment field is DEFAULT.
    """
    pain_points: RequiredStringList
    goals: RequiredStringList
    risk_assessment: RiskAssessment
    why_and_why_now: DefaultStringList = Field(default_factory=list)
    quantifiable_metrics: DefaultStringList = Field(default_factory=list)
    key_quotes: DefaultStringList = Field(default_factory=list)
    objections: DefaultStringList = Field(default_factory=list)
    competition_summary: Annotated[ConsolidatedCompetition, DefaultObject] = Field(
        default_factory=ConsolidatedCompetition
    )
    decision_process_summary: Annotated[ConsolidatedDecisionProcess, DefaultObject] = Field(
        default_factory=ConsolidatedDecisionProcess
    )
    sentiment_trend: Annotated[SentimentTrend, DefaultObject] = Field(default_factory=SentimentTrend)

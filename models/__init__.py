"""Data models for the deal intelligence service."""
from .insight_models import (
    ContactRole,
    PersonExtracted,
    CompetitionMention,
    DecisionProcess,
    CallSentiment,
    ParsedCallInsight,
    RiskLevel,
    RiskCategory,
    RiskSeverity,
    RiskFactor,
    RiskAssessment,
    CallInsightInput,
    SentimentTrend,
    ConsolidatedInsight,
)
from .results import AIResult
from .job_models import GenerationStatus, JobKind, DocumentType
from .db_models import (
    OpportunityModel,
    ContactModel,
    SalesCallModel,
    GeneratedDocumentModel,
)

__all__ = [
    # Insight models
    "ContactRole",
    "PersonExtracted",
    "CompetitionMention",
    "DecisionProcess",
    "CallSentiment",
    "ParsedCallInsight",
    "RiskLevel",
    "RiskCategory",
    "RiskSeverity",
    "RiskFactor",
    "RiskAssessment",
    "CallInsightInput",
    "SentimentTrend",
    "ConsolidatedInsight",
    # Result envelope
    "AIResult",
    # Job status
    "GenerationStatus",
    "JobKind",
    "DocumentType",
    # Database models
    "OpportunityModel",
    "ContactModel",
    "SalesCallModel",
    "GeneratedDocumentModel",
]

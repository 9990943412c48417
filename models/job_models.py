"""Generation job status and API models.

A generation job is not a table of its own. It is the status and error columns
on the record that owns the generated artifact (a sales call, an opportunity,
or a generated document).

Job Lifecycle:
    pending -> generating -> completed | failed

A retry starts a fresh generating -> terminal cycle on the same record.
"""
import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from models.document_models import ContentTemplate, ContextSelection


class GenerationStatus(str, enum.Enum):
    """Status of the generation job owned by a record.

    Lifecycle: pending -> generating -> completed | failed
    """
    pending = "pending"
    generating = "generating"
    completed = "completed"
    failed = "failed"


class JobKind(str, enum.Enum):
    """Kind of background generation job."""
    parse_transcript = "parse_transcript"
    analyze_risk = "analyze_risk"
    consolidate_insights = "consolidate_insights"
    generate_document = "generate_document"


class DocumentType(str, enum.Enum):
    """Documents the generators can produce."""
    business_case = "business_case"
    business_impact_proposal = "business_impact_proposal"
    mutual_action_plan = "mutual_action_plan"
    meeting_brief = "meeting_brief"
    template_content = "template_content"


# --- Pydantic models for API requests/responses ---

class JobAcceptedResponse(BaseModel):
    """Response model for job trigger endpoints.

    ``accepted`` is False when an identical job was already in flight and the
    trigger was coalesced into it.
    """
    job_key: str
    kind: JobKind
    record_id: str
    status: GenerationStatus
    accepted: bool


class CallStatusResponse(BaseModel):
    """Response model for GET /calls/{call_id}/status"""
    call_id: str
    parsing_status: Optional[GenerationStatus] = None
    parsing_error: Optional[str] = None
    parsed_insights: Optional[dict[str, Any]] = None
    risk_status: Optional[GenerationStatus] = None
    risk_error: Optional[str] = None
    risk_assessment: Optional[dict[str, Any]] = None


class OpportunityInsightsResponse(BaseModel):
    """Response model for GET /opportunities/{opportunity_id}/insights"""
    opportunity_id: str
    consolidation_status: Optional[GenerationStatus] = None
    consolidation_error: Optional[str] = None
    consolidated_insights: Optional[dict[str, Any]] = None
    consolidated_at: Optional[datetime] = None
    risk_history: Optional[str] = None


class CreateDocumentRequest(BaseModel):
    """Request model for POST /opportunities/{opportunity_id}/documents"""
    document_type: DocumentType
    title: Optional[str] = Field(default=None, max_length=255)
    template_body: Optional[str] = None
    # Required for template_content, ignored otherwise
    template: Optional[ContentTemplate] = None
    context: Optional[ContextSelection] = None


class DocumentResponse(BaseModel):
    """Response model for document status polling."""
    document_id: str
    opportunity_id: str
    document_type: DocumentType
    status: GenerationStatus
    title: Optional[str] = None
    content: Optional[str] = None
    questions: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: datetime
    generated_at: Optional[datetime] = None


class TranscriptAnalysisRequest(BaseModel):
    """Request model for POST /analysis/transcript"""
    transcript: str
    organization_name: Optional[str] = None


class RiskAnalysisRequest(BaseModel):
    """Request model for POST /analysis/risk"""
    transcript: str

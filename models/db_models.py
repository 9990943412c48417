"""SQLModel table definitions mirroring the CRM Postgres schema.

These models use the Mirror Pattern - they match tables owned by the CRM
application without running migrations. The pipeline reads context rows from
them and writes generated artifacts plus job status back to the owning record.
"""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Text, DateTime, Date, Float, JSON, Index
from typing import Any, Optional
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from models.job_models import GenerationStatus, DocumentType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OpportunityModel(SQLModel, table=True):
    """Mirror of opportunities table.

    Holds deal fields, denormalized account fields, and the consolidated
    insight owned by the consolidation job.
    """
    __tablename__ = "opportunities"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(sa_column=Column(Text, name="name", nullable=False))
    amount_arr: float = Field(default=0, sa_column=Column(Float, name="amount_arr", nullable=False))
    stage: str = Field(default="discovery")
    confidence_level: int = Field(default=3, sa_column_kwargs={"name": "confidence_level"})
    close_date: Optional[date] = Field(default=None, sa_column=Column(Date, name="close_date"))
    competition: Optional[str] = Field(default=None, sa_column=Column(Text, name="competition"))
    platform_type: Optional[str] = Field(default=None, sa_column=Column(Text, name="platform_type"))

    # Account fields
    account_name: Optional[str] = Field(default=None, sa_column=Column(Text, name="account_name"))
    account_industry: Optional[str] = Field(default=None, sa_column=Column(Text, name="account_industry"))
    account_website: Optional[str] = Field(default=None, sa_column=Column(Text, name="account_website"))
    account_ticker: Optional[str] = Field(default=None, sa_column=Column(Text, name="account_ticker"))
    account_research: Optional[str] = Field(default=None, sa_column=Column(Text, name="account_research"))

    # Seller organization, used to drop internal participants from parsed calls
    seller_organization_name: Optional[str] = Field(
        default=None, sa_column=Column(Text, name="seller_organization_name")
    )

    # Consolidation job
    consolidated_insights: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, name="consolidated_insights")
    )
    consolidation_status: Optional[GenerationStatus] = Field(default=None, index=True)
    consolidation_error: Optional[str] = Field(default=None, sa_column=Column(Text, name="consolidation_error"))
    consolidated_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), name="consolidated_at", nullable=True)
    )

    # Dated risk blocks, newest first
    risk_history: Optional[str] = Field(default=None, sa_column=Column(Text, name="risk_history"))

    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="created_at", nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="updated_at", nullable=False)
    )


class ContactModel(SQLModel, table=True):
    """Mirror of contacts table."""
    __tablename__ = "contacts"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    opportunity_id: UUID = Field(index=True, sa_column_kwargs={"name": "opportunity_id"})
    first_name: str = Field(sa_column=Column(Text, name="first_name", nullable=False))
    last_name: str = Field(default="", sa_column=Column(Text, name="last_name", nullable=False))
    title: Optional[str] = Field(default=None, sa_column=Column(Text, name="title"))
    role: str = Field(default="end_user")
    sentiment: str = Field(default="neutral")
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="created_at", nullable=False)
    )


class SalesCallModel(SQLModel, table=True):
    """Mirror of sales_calls table.

    Owns two independent jobs: transcript parsing and risk analysis.
    """
    __tablename__ = "sales_calls"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    opportunity_id: UUID = Field(index=True, sa_column_kwargs={"name": "opportunity_id"})
    title: str = Field(default="Sales call", sa_column=Column(Text, name="title", nullable=False))
    meeting_type: str = Field(default="call", sa_column_kwargs={"name": "meeting_type"})
    meeting_date: datetime = Field(
        sa_column=Column(DateTime(timezone=True), name="meeting_date", nullable=False)
    )
    transcript: Optional[str] = Field(default=None, sa_column=Column(Text, name="transcript"))

    # Parsing job
    parsed_insights: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, name="parsed_insights")
    )
    parsing_status: Optional[GenerationStatus] = Field(default=None, index=True)
    parsing_error: Optional[str] = Field(default=None, sa_column=Column(Text, name="parsing_error"))
    parsed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), name="parsed_at", nullable=True)
    )

    # Risk analysis job
    risk_assessment: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, name="risk_assessment")
    )
    risk_status: Optional[GenerationStatus] = Field(default=None, index=True)
    risk_error: Optional[str] = Field(default=None, sa_column=Column(Text, name="risk_error"))
    risk_analyzed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), name="risk_analyzed_at", nullable=True)
    )

    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="created_at", nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="updated_at", nullable=False)
    )


class GeneratedDocumentModel(SQLModel, table=True):
    """Mirror of generated_documents table.

    One row per generation request; the row's status is the job status.
    """
    __tablename__ = "generated_documents"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    opportunity_id: UUID = Field(sa_column_kwargs={"name": "opportunity_id"})
    document_type: DocumentType = Field(sa_column_kwargs={"name": "document_type"})
    status: GenerationStatus = Field(default=GenerationStatus.pending, index=True)

    title: Optional[str] = Field(default=None, sa_column=Column(Text, name="title"))
    template_body: Optional[str] = Field(default=None, sa_column=Column(Text, name="template_body"))
    # TemplateGenerationOptions for template_content documents
    generation_options: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, name="generation_options")
    )

    # Result/error storage
    content: Optional[str] = Field(default=None, sa_column=Column(Text, name="content"))
    questions: Optional[str] = Field(default=None, sa_column=Column(Text, name="questions"))
    metadata_json: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, name="metadata_json")
    )
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text, name="error_message"))

    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="created_at", nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), name="updated_at", nullable=False)
    )
    generated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), name="generated_at", nullable=True)
    )

    __table_args__ = (
        Index("ix_generated_documents_opportunity_type", "opportunity_id", "document_type"),
    )

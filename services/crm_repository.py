"""Async data access for the CRM tables the pipeline reads and writes.

Generation jobs never touch SQLAlchemy directly; they go through this
repository so they can run against an in-memory fake in tests.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Type
from uuid import UUID

from sqlmodel import SQLModel, select

from models.db_models import (
    ContactModel,
    GeneratedDocumentModel,
    OpportunityModel,
    SalesCallModel,
)
from models.job_models import DocumentType, GenerationStatus
from services.database import Database
from utils.exceptions import RecordNotFoundError

logger = logging.getLogger(__name__)

STUCK_JOB_ERROR = "Job timed out (server restart or crash)"

# (model, status column, error column) for every record that owns a job
_JOB_COLUMNS = (
    (SalesCallModel, "parsing_status", "parsing_error"),
    (SalesCallModel, "risk_status", "risk_error"),
    (OpportunityModel, "consolidation_status", "consolidation_error"),
    (GeneratedDocumentModel, "status", "error_message"),
)


def _as_uuid(record_id: str | UUID) -> UUID:
    return record_id if isinstance(record_id, UUID) else UUID(str(record_id))


class CRMRepository:
    """Repository over opportunities, contacts, sales calls and generated documents."""

    def __init__(self, database: Database):
        self.database = database

    # --- Reads ---

    async def get_call(self, call_id: str | UUID) -> Optional[SalesCallModel]:
        return await self._get(SalesCallModel, call_id)

    async def get_opportunity(self, opportunity_id: str | UUID) -> Optional[OpportunityModel]:
        return await self._get(OpportunityModel, opportunity_id)

    async def get_document(self, document_id: str | UUID) -> Optional[GeneratedDocumentModel]:
        return await self._get(GeneratedDocumentModel, document_id)

    async def list_contacts(self, opportunity_id: str | UUID) -> list[ContactModel]:
        async with self.database.session() as session:
            stmt = (
                select(ContactModel)
                .where(ContactModel.opportunity_id == _as_uuid(opportunity_id))
                .order_by(ContactModel.created_at)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_calls(self, opportunity_id: str | UUID) -> list[SalesCallModel]:
        """Calls for an opportunity, oldest meeting first."""
        async with self.database.session() as session:
            stmt = (
                select(SalesCallModel)
                .where(SalesCallModel.opportunity_id == _as_uuid(opportunity_id))
                .order_by(SalesCallModel.meeting_date)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_prior_business_cases(
        self,
        exclude_opportunity_id: str | UUID,
        limit: int = 3,
    ) -> list[GeneratedDocumentModel]:
        """Most recent completed business cases from other opportunities."""
        async with self.database.session() as session:
            stmt = (
                select(GeneratedDocumentModel)
                .where(
                    GeneratedDocumentModel.document_type == DocumentType.business_case,
                    GeneratedDocumentModel.status == GenerationStatus.completed,
                    GeneratedDocumentModel.opportunity_id != _as_uuid(exclude_opportunity_id),
                    GeneratedDocumentModel.content.is_not(None),
                )
                .order_by(GeneratedDocumentModel.generated_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_reference_documents(
        self,
        opportunity_id: str | UUID,
        document_ids: list[str],
    ) -> list[GeneratedDocumentModel]:
        """Completed documents on this opportunity with the given ids, oldest first."""
        if not document_ids:
            return []
        async with self.database.session() as session:
            stmt = (
                select(GeneratedDocumentModel)
                .where(
                    GeneratedDocumentModel.id.in_([_as_uuid(i) for i in document_ids]),
                    GeneratedDocumentModel.opportunity_id == _as_uuid(opportunity_id),
                    GeneratedDocumentModel.content.is_not(None),
                )
                .order_by(GeneratedDocumentModel.created_at)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # --- Writes ---

    async def update_call(self, call_id: str | UUID, **fields: Any) -> SalesCallModel:
        return await self._update(SalesCallModel, call_id, fields)

    async def update_opportunity(self, opportunity_id: str | UUID, **fields: Any) -> OpportunityModel:
        return await self._update(OpportunityModel, opportunity_id, fields)

    async def update_document(self, document_id: str | UUID, **fields: Any) -> GeneratedDocumentModel:
        return await self._update(GeneratedDocumentModel, document_id, fields)

    async def create_document(
        self,
        opportunity_id: str | UUID,
        document_type: DocumentType,
        title: Optional[str] = None,
        template_body: Optional[str] = None,
        generation_options: Optional[dict[str, Any]] = None,
    ) -> GeneratedDocumentModel:
        """Insert a pending document row for a new generation request."""
        async with self.database.session() as session:
            document = GeneratedDocumentModel(
                opportunity_id=_as_uuid(opportunity_id),
                document_type=document_type,
                status=GenerationStatus.pending,
                title=title,
                template_body=template_body,
                generation_options=generation_options,
            )
            session.add(document)
            await session.commit()
            await session.refresh(document)

        logger.info(
            f"Document created: document_id={document.id}, "
            f"opportunity_id={opportunity_id}, type={document_type.value}"
        )
        return document

    async def reap_stuck_jobs(self, max_age_minutes: int = 30) -> int:
        """Mark records stuck in 'generating' beyond max_age as failed.

        Called on app startup to recover from crashes or unexpected restarts.

        Returns:
            Number of records reaped.
        """
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=max_age_minutes)
        reaped = 0

        async with self.database.session() as session:
            for model_cls, status_column, error_column in _JOB_COLUMNS:
                stmt = select(model_cls).where(
                    getattr(model_cls, status_column) == GenerationStatus.generating,
                    model_cls.updated_at < cutoff,
                )
                result = await session.execute(stmt)
                for record in result.scalars().all():
                    logger.warning(
                        f"Reaping stuck job: table={model_cls.__tablename__}, "
                        f"record_id={record.id}, column={status_column}, "
                        f"updated_at={record.updated_at}"
                    )
                    setattr(record, status_column, GenerationStatus.failed)
                    setattr(record, error_column, STUCK_JOB_ERROR)
                    record.updated_at = now
                    reaped += 1

            await session.commit()

        if reaped:
            logger.info(f"Reaped {reaped} stuck jobs")
        else:
            logger.info("No stuck jobs found during startup reaper run")
        return reaped

    # --- Helpers ---

    async def _get(self, model_cls: Type[SQLModel], record_id: str | UUID):
        async with self.database.session() as session:
            return await session.get(model_cls, _as_uuid(record_id))

    async def _update(self, model_cls: Type[SQLModel], record_id: str | UUID, fields: dict):
        async with self.database.session() as session:
            record = await session.get(model_cls, _as_uuid(record_id))
            if record is None:
                raise RecordNotFoundError(
                    f"{model_cls.__tablename__} record not found: {record_id}"
                )

            for name, value in fields.items():
                setattr(record, name, value)
            if hasattr(record, "updated_at"):
                record.updated_at = datetime.now(timezone.utc)

            await session.commit()
            await session.refresh(record)
            return record

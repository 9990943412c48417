"""
Generated document router.

Status polling and retry for document generation jobs.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from models.db_models import GeneratedDocumentModel
from models.job_models import DocumentResponse, GenerationStatus, JobAcceptedResponse, JobKind
from routers.calls import accepted_response
from utils.context_utils import get_container, parse_record_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def to_response(document: GeneratedDocumentModel) -> DocumentResponse:
    return DocumentResponse(
        document_id=str(document.id),
        opportunity_id=str(document.opportunity_id),
        document_type=document.document_type,
        status=document.status,
        title=document.title,
        content=document.content,
        questions=document.questions,
        metadata=document.metadata_json,
        error_message=document.error_message,
        created_at=document.created_at,
        generated_at=document.generated_at,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str, request: Request):
    """Get document status, and content once generation has completed."""
    container = get_container(request)
    document = await container.repository.get_document(parse_record_id(document_id, "document"))
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return to_response(document)


@router.post("/{document_id}/retry", response_model=JobAcceptedResponse, status_code=202)
async def retry_document(document_id: str, request: Request):
    """
    Regenerate a document.

    Raises:
        HTTPException 404: Document not found
        HTTPException 409: Document is currently generating
    """
    container = get_container(request)
    document = await container.repository.get_document(parse_record_id(document_id, "document"))
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    if document.status == GenerationStatus.generating:
        raise HTTPException(status_code=409, detail="Document is already generating")

    logger.info(f"Retrying document: document_id={document.id}, previous_status={document.status}")
    await container.repository.update_document(
        document.id, status=GenerationStatus.pending, error_message=None
    )
    handle = container.jobs.trigger_document_generation(str(document.id))
    return accepted_response(handle, JobKind.generate_document, str(document.id))

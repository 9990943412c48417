"""
Opportunity router.

Triggers insight consolidation and document generation for an opportunity.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from models.document_models import ContextSelection, TemplateGenerationOptions
from models.job_models import (
    CreateDocumentRequest,
    DocumentType,
    JobAcceptedResponse,
    JobKind,
    OpportunityInsightsResponse,
)
from routers.calls import accepted_response
from utils.context_utils import get_container, parse_record_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/opportunities", tags=["opportunities"])


async def _get_opportunity(request: Request, opportunity_id: str):
    container = get_container(request)
    opportunity = await container.repository.get_opportunity(
        parse_record_id(opportunity_id, "opportunity")
    )
    if opportunity is None:
        raise HTTPException(status_code=404, detail="Opportunity not found")
    return container, opportunity


@router.post("/{opportunity_id}/consolidate", response_model=JobAcceptedResponse, status_code=202)
async def consolidate_opportunity(opportunity_id: str, request: Request):
    """Start consolidation of every parsed call on the opportunity."""
    container, opportunity = await _get_opportunity(request, opportunity_id)
    handle = container.jobs.trigger_consolidation(str(opportunity.id))
    logger.info(f"Consolidation triggered: opportunity_id={opportunity.id}, accepted={handle.accepted}")
    return accepted_response(handle, JobKind.consolidate_insights, str(opportunity.id))


@router.get("/{opportunity_id}/insights", response_model=OpportunityInsightsResponse)
async def opportunity_insights(opportunity_id: str, request: Request):
    """Get the consolidated insight, its job status, and the risk history."""
    _, opportunity = await _get_opportunity(request, opportunity_id)
    return OpportunityInsightsResponse(
        opportunity_id=str(opportunity.id),
        consolidation_status=opportunity.consolidation_status,
        consolidation_error=opportunity.consolidation_error,
        consolidated_insights=opportunity.consolidated_insights,
        consolidated_at=opportunity.consolidated_at,
        risk_history=opportunity.risk_history,
    )


@router.post("/{opportunity_id}/documents", response_model=JobAcceptedResponse, status_code=202)
async def create_document(opportunity_id: str, body: CreateDocumentRequest, request: Request):
    """
    Create a document record and start generating it.

    Poll GET /documents/{document_id} with the returned record_id.
    """
    container, opportunity = await _get_opportunity(request, opportunity_id)
    if body.document_type == DocumentType.meeting_brief and not opportunity.account_name:
        raise HTTPException(status_code=400, detail="Opportunity has no account name")

    generation_options = None
    if body.document_type == DocumentType.template_content:
        if body.template is None:
            raise HTTPException(status_code=400, detail="Template is required for template content")
        generation_options = TemplateGenerationOptions(
            template=body.template,
            context=body.context or ContextSelection(),
        ).model_dump(mode="json", by_alias=True)

    document = await container.repository.create_document(
        opportunity.id,
        body.document_type,
        title=body.title,
        template_body=body.template_body,
        generation_options=generation_options,
    )
    handle = container.jobs.trigger_document_generation(str(document.id))
    logger.info(
        f"Document generation triggered: document_id={document.id}, "
        f"opportunity_id={opportunity.id}, type={body.document_type.value}"
    )
    return accepted_response(handle, JobKind.generate_document, str(document.id))

"""
Sales call router.

Triggers transcript parsing and risk analysis for persisted calls and exposes
their job status for polling.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from models.job_models import CallStatusResponse, GenerationStatus, JobAcceptedResponse, JobKind
from services.background_jobs import JobHandle
from utils.context_utils import get_container, parse_record_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])


def accepted_response(handle: JobHandle, kind: JobKind, record_id: str) -> JobAcceptedResponse:
    return JobAcceptedResponse(
        job_key=handle.key,
        kind=kind,
        record_id=record_id,
        status=GenerationStatus.pending if handle.accepted else GenerationStatus.generating,
        accepted=handle.accepted,
    )


async def _get_call_with_transcript(request: Request, call_id: str):
    container = get_container(request)
    call = await container.repository.get_call(parse_record_id(call_id, "call"))
    if call is None:
        raise HTTPException(status_code=404, detail="Sales call not found")
    if not call.transcript or not call.transcript.strip():
        raise HTTPException(status_code=400, detail="Sales call has no transcript")
    return container, call


@router.post("/{call_id}/parse", response_model=JobAcceptedResponse, status_code=202)
async def parse_call(call_id: str, request: Request):
    """Start transcript parsing for a call. Returns before parsing finishes."""
    container, call = await _get_call_with_transcript(request, call_id)
    handle = container.jobs.trigger_parse_transcript(str(call.id))
    logger.info(f"Parse triggered: call_id={call.id}, accepted={handle.accepted}")
    return accepted_response(handle, JobKind.parse_transcript, str(call.id))


@router.post("/{call_id}/analyze-risk", response_model=JobAcceptedResponse, status_code=202)
async def analyze_call_risk(call_id: str, request: Request):
    """Start risk analysis for a call. Returns before analysis finishes."""
    container, call = await _get_call_with_transcript(request, call_id)
    handle = container.jobs.trigger_risk_analysis(str(call.id))
    logger.info(f"Risk analysis triggered: call_id={call.id}, accepted={handle.accepted}")
    return accepted_response(handle, JobKind.analyze_risk, str(call.id))


@router.get("/{call_id}/status", response_model=CallStatusResponse)
async def call_status(call_id: str, request: Request):
    """Get parsing and risk job status (and results, once completed) for a call."""
    container = get_container(request)
    call = await container.repository.get_call(parse_record_id(call_id, "call"))
    if call is None:
        raise HTTPException(status_code=404, detail="Sales call not found")

    return CallStatusResponse(
        call_id=str(call.id),
        parsing_status=call.parsing_status,
        parsing_error=call.parsing_error,
        parsed_insights=call.parsed_insights,
        risk_status=call.risk_status,
        risk_error=call.risk_error,
        risk_assessment=call.risk_assessment,
    )

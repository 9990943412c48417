"""
Synchronous analysis router.

Runs the transcript parser or risk analyzer on posted text and returns the
result in the request. Nothing is persisted.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from models.insight_models import ParsedCallInsight, RiskAssessment
from models.job_models import RiskAnalysisRequest, TranscriptAnalysisRequest
from models.results import AIResult
from utils.context_utils import get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])


def raise_for_failure(result: AIResult) -> None:
    """Map a failed AIResult to an HTTP error: input errors are 400, the rest 502."""
    if result.success:
        return
    status_code = 400 if result.error_code == "INVALID_INPUT" else 502
    raise HTTPException(status_code=status_code, detail=result.error)


@router.post("/transcript", response_model=ParsedCallInsight)
async def analyze_transcript(body: TranscriptAnalysisRequest, request: Request):
    """
    Extract structured insights from a transcript.

    Raises:
        HTTPException 400: Transcript missing or too short
        HTTPException 502: Model failure or unusable model response
    """
    container = get_container(request)
    logger.info(f"Transcript analysis requested: transcript_length={len(body.transcript)}")

    result = await container.transcript_parser.parse(body.transcript, body.organization_name)
    raise_for_failure(result)
    return result.data


@router.post("/risk", response_model=RiskAssessment)
async def analyze_risk(body: RiskAnalysisRequest, request: Request):
    """
    Score deal risk for a transcript.

    Raises:
        HTTPException 400: Transcript missing, too short or too long
        HTTPException 502: Model failure or unusable model response
    """
    container = get_container(request)
    logger.info(f"Risk analysis requested: transcript_length={len(body.transcript)}")

    result = await container.risk_analyzer.analyze(body.transcript)
    raise_for_failure(result)
    return result.data

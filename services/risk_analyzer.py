"""Risk Analyzer for scoring deal risk from a call transcript.

Unlike the transcript parser, every field of ``RiskAssessment`` is REQUIRED: a
single enum value outside its closed set anywhere in the factor list rejects
the whole result.
"""
import logging

from models.insight_models import RiskAssessment
from models.results import AIResult
from services.model_client import ModelClient
from utils.exceptions import InputValidationError, ModelInvocationError, PipelineError
from utils.response_utils import build_model, parse_json_response

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_LENGTH = 100
MAX_TRANSCRIPT_LENGTH = 80_000

RISK_JSON_SHAPE = """{
  "riskLevel": "low" | "medium" | "high" | "critical",
  "riskFactors": [
    {
      "category": "budget" | "timeline" | "competition" | "technical" | "alignment" | "resistance",
      "severity": "low" | "medium" | "high",
      "description": "string",
      "evidence": "verbatim quote or specific reference from the transcript"
    }
  ],
  "overallSummary": "2-3 sentence summary of deal health"
}"""


def validate_risk_assessment(payload: dict) -> RiskAssessment:
    """Build a RiskAssessment from decoded model output.

    Raises:
        ResponseShapeError: If any field is missing or outside its closed set.
    """
    return build_model(RiskAssessment, payload)


class RiskAnalyzer:
    """Service for producing a ``RiskAssessment`` from a single transcript."""

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def analyze(self, transcript: str) -> AIResult[RiskAssessment]:
        try:
            assessment = await self._analyze(transcript)
        except PipelineError as e:
            logger.warning(f"Risk analysis failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected risk analysis error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        logger.info(
            f"Risk analyzed: risk_level={assessment.risk_level.value}, "
            f"factors={len(assessment.risk_factors)}"
        )
        return AIResult.succeeded(assessment)

    async def _analyze(self, transcript: str) -> RiskAssessment:
        if not transcript or not transcript.strip():
            raise InputValidationError("Transcript text is required")
        if len(transcript) < MIN_TRANSCRIPT_LENGTH:
            raise InputValidationError(
                f"Transcript appears too short to analyze "
                f"(minimum {MIN_TRANSCRIPT_LENGTH} characters)"
            )
        if len(transcript) > MAX_TRANSCRIPT_LENGTH:
            raise InputValidationError(
                f"Transcript is too long to analyze (maximum {MAX_TRANSCRIPT_LENGTH} characters)"
            )

        prompt = (
            "Analyze the following sales call transcript for deal risk.\n\n"
            f"TRANSCRIPT:\n{transcript}\n\n"
            "Return your risk assessment as JSON only."
        )
        response = await self.model_client.invoke(
            prompt, self._get_system_prompt(), model=self.model_client.reasoning_model
        )
        if not response.ok:
            raise ModelInvocationError(response.error)

        return validate_risk_assessment(parse_json_response(response.text))

    def _get_system_prompt(self) -> str:
        return f"""You are a sales risk analyst. Identify risks that could delay or derail this deal.

Risk categories:
- **budget**: Pricing concerns, budget constraints, unclear funding
- **timeline**: Delays, pushed dates, no clear decision date
- **competition**: Competitors in the evaluation, incumbent vendor loyalty
- **technical**: Integration concerns, security reviews, feature gaps
- **alignment**: Missing stakeholders, unclear champion, misaligned priorities
- **resistance**: Status quo bias, internal pushback, change aversion

Risk level guidance:
- **low**: Healthy deal with minor concerns
- **medium**: Notable concerns that need attention
- **high**: Significant risks likely to delay the deal
- **critical**: Deal is in jeopardy without immediate action

RULES:
- Every risk factor must cite evidence from the transcript
- Use ONLY the category, severity and level values listed above
- If there are no risks, return an empty riskFactors array with riskLevel "low"
- Return ONLY valid JSON matching this exact structure:
{RISK_JSON_SHAPE}
- Do NOT add commentary outside the JSON structure"""

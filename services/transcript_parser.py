"""Transcript Parser for extracting structured sales insights from call transcripts.

Flow:
    1. Reject blank or too-short transcripts (no model call)
    2. One structured-extraction call on the reasoning model
    3. Strip code fences, parse JSON, validate against ParsedCallInsight
    4. Drop people from the seller's own organization
    5. Classify each remaining person's role concurrently
"""
import logging
from typing import Optional

from models.insight_models import ParsedCallInsight, PersonExtracted
from models.results import AIResult
from services.model_client import ModelClient
from services.role_classifier import RoleClassifier
from utils.exceptions import InputValidationError, ModelInvocationError, PipelineError
from utils.response_utils import build_model, parse_json_response

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_LENGTH = 100


class TranscriptParser:
    """Service for extracting a ``ParsedCallInsight`` from a call transcript."""

    def __init__(self, model_client: ModelClient, role_classifier: RoleClassifier):
        self.model_client = model_client
        self.role_classifier = role_classifier

    async def parse(
        self,
        transcript: str,
        organization_name: Optional[str] = None,
    ) -> AIResult[ParsedCallInsight]:
        """Parse a transcript into structured insights.

        Args:
            transcript: Raw call transcript text.
            organization_name: Seller organization; its people are excluded.

        Returns:
            AIResult with the ParsedCallInsight, or the error that stopped parsing.
        """
        try:
            insight = await self._parse(transcript, organization_name)
        except PipelineError as e:
            logger.warning(f"Transcript parsing failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected transcript parsing error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        logger.info(
            f"Transcript parsed: pain_points={len(insight.pain_points)}, "
            f"goals={len(insight.goals)}, people={len(insight.people)}, "
            f"next_steps={len(insight.next_steps)}"
        )
        return AIResult.succeeded(insight)

    async def _parse(self, transcript: str, organization_name: Optional[str]) -> ParsedCallInsight:
        if not transcript or not transcript.strip():
            raise InputValidationError("Transcript text is required")
        if len(transcript) < MIN_TRANSCRIPT_LENGTH:
            raise InputValidationError(
                f"Transcript appears too short to analyze "
                f"(minimum {MIN_TRANSCRIPT_LENGTH} characters)"
            )

        response = await self.model_client.invoke(
            self._build_prompt(transcript),
            self._get_system_prompt(),
            model=self.model_client.reasoning_model,
        )
        if not response.ok:
            raise ModelInvocationError(response.error)

        insight = build_model(ParsedCallInsight, parse_json_response(response.text))

        if organization_name and organization_name.strip():
            insight.people = exclude_organization(insight.people, organization_name)

        await self._classify_people(insight.people)
        return insight

    async def _classify_people(self, people: list[PersonExtracted]) -> None:
        """Attach classified roles in place; a failed classification leaves the role unset."""
        if not people:
            return

        results = await self.role_classifier.classify_many([person.role for person in people])
        for person, result in zip(people, results):
            if result.success:
                person.classified_role = result.data
            else:
                logger.info(f"Role left unclassified: name={person.name}, error_code={result.error_code}")

    def _build_prompt(self, transcript: str) -> str:
        return (
            "Analyze the following sales call transcript and extract pain points, goals, "
            "people, next steps, business drivers, metrics, quotes, objections, competition, "
            "decision process and call sentiment.\n\n"
            f"TRANSCRIPT:\n{transcript}\n\n"
            "Return your analysis as JSON only."
        )

    def _get_system_prompt(self) -> str:
        return """You are a sales call analyzer specializing in extracting actionable insights from sales call transcripts.

Extract the following from the transcript:

1. **PAIN POINTS** - Current problems, frustrations and challenges the prospect is facing
2. **GOALS** - What they want to achieve, the desired future state
3. **PEOPLE** - Everyone on the call plus people mentioned who are relevant to the deal (full name, organization, role/title)
4. **NEXT STEPS** - Action items, follow-ups, timelines; preserve dates and times mentioned
5. **WHY AND WHY NOW** - Business drivers and the reasons this is urgent now
6. **QUANTIFIABLE METRICS** - Numbers, costs, volumes, durations the customer states (e.g. "$2M/year", "45 days")
7. **KEY QUOTES** - Short verbatim customer quotes worth repeating
8. **OBJECTIONS** - Concerns or pushback raised
9. **COMPETITION MENTIONS** - Competitors named, the context, and the customer's sentiment toward them
10. **DECISION PROCESS** - Timeline, stakeholders, budget context, approval steps
11. **CALL SENTIMENT** - Overall tone, deal momentum, customer enthusiasm

IMPORTANT RULES:
- Return ONLY valid JSON matching this exact structure:
{
  "painPoints": ["string"],
  "goals": ["string"],
  "people": [{ "name": "string", "organization": "string", "role": "string" }],
  "nextSteps": ["string"],
  "whyAndWhyNow": ["string"],
  "quantifiableMetrics": ["string"],
  "keyQuotes": ["string"],
  "objections": ["string"],
  "competitionMentions": [{ "competitor": "string", "context": "string", "sentiment": "positive" | "neutral" | "negative" }],
  "decisionProcess": { "timeline": "string or null", "stakeholders": ["string"], "budgetContext": "string or null", "approvalSteps": ["string"] },
  "callSentiment": { "overall": "positive" | "neutral" | "negative", "momentum": "accelerating" | "steady" | "stalling", "enthusiasm": "high" | "medium" | "low" }
}
- If a category has no clear information, return an empty array (or null for timeline/budgetContext)
- For people, if organization or role is unclear, use "Unknown" instead of leaving it empty
- Never invent numbers; metrics must appear in the transcript
- Do NOT add commentary or explanations outside the JSON structure"""


def exclude_organization(people: list[PersonExtracted], organization_name: str) -> list[PersonExtracted]:
    """Drop people whose organization matches ``organization_name`` (case-insensitive, trimmed)."""
    normalized_org = organization_name.strip().lower()
    return [p for p in people if p.organization.strip().lower() != normalized_org]

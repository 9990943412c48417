"""Insight Consolidator for synthesizing insights across an opportunity's calls.

Calls are ordered oldest to newest before the prompt is built so the model can
reason about trends (escalating risk, improving sentiment). Core fields
(painPoints, goals, riskAssessment) are REQUIRED; every enrichment field is
DEFAULT and falls back to an empty or neutral value independently.
"""
import logging
from datetime import datetime, timezone
from typing import Sequence

from models.insight_models import CallInsightInput, ConsolidatedInsight
from models.results import AIResult
from services.model_client import ModelClient
from services.risk_analyzer import RISK_JSON_SHAPE
from utils.exceptions import InputValidationError, ModelInvocationError, PipelineError
from utils.prompt_formatting import bullet_list, format_display_date
from utils.response_utils import build_model, parse_json_response

logger = logging.getLogger(__name__)

MIN_CALLS = 2


def _sort_key(call: CallInsightInput) -> datetime:
    meeting_date = call.meeting_date
    if meeting_date.tzinfo is None:
        return meeting_date.replace(tzinfo=timezone.utc)
    return meeting_date


def order_calls(calls: Sequence[CallInsightInput]) -> list[CallInsightInput]:
    """Return calls sorted by meeting date, oldest first."""
    return sorted(calls, key=_sort_key)


def format_call_block(call: CallInsightInput, index: int) -> str:
    """Render one call's insights as a compact markdown block."""
    if call.competition_mentions:
        competition = "\n".join(
            f"- {c.competitor} ({c.sentiment.value}): {c.context}" for c in call.competition_mentions
        )
    else:
        competition = "- None mentioned"

    process = call.decision_process
    if process:
        decision = (
            f"- Timeline: {process.timeline or 'Not specified'}\n"
            f"- Stakeholders: {', '.join(process.stakeholders) or 'Not identified'}\n"
            f"- Budget: {process.budget_context or 'Not discussed'}\n"
            f"- Approval Steps: {', '.join(process.approval_steps) or 'Not specified'}"
        )
    else:
        decision = "- Not available"

    sentiment = call.call_sentiment
    if sentiment:
        sentiment_text = (
            f"- Overall: {sentiment.overall.value}, Momentum: {sentiment.momentum.value}, "
            f"Enthusiasm: {sentiment.enthusiasm.value}"
        )
    else:
        sentiment_text = "- Not assessed"

    risk = call.risk_assessment
    if risk:
        factors = "; ".join(
            f"{f.category.value} ({f.severity.value}): {f.description}" for f in risk.risk_factors
        ) or "None"
        risk_text = (
            f"- Risk Level: {risk.risk_level.value}\n"
            f"- Risk Factors: {factors}\n"
            f"- Summary: {risk.overall_summary}"
        )
    else:
        risk_text = "- Not available"

    return f"""
### Call {index} ({format_display_date(call.meeting_date)})

**Pain Points:**
{bullet_list(call.pain_points, "- None identified")}

**Goals:**
{bullet_list(call.goals, "- None identified")}

**Why and Why Now:**
{bullet_list(call.why_and_why_now, "- None identified")}

**Quantifiable Metrics:**
{bullet_list(call.quantifiable_metrics, "- None identified")}

**Key Quotes:**
{bullet_list(call.key_quotes, "- None captured", quote=True)}

**Objections:**
{bullet_list(call.objections, "- None raised")}

**Competition Mentions:**
{competition}

**Decision Process:**
{decision}

**Call Sentiment:**
{sentiment_text}

**Risk Assessment:**
{risk_text}
"""


def build_consolidation_prompt(calls: Sequence[CallInsightInput]) -> str:
    ordered = order_calls(calls)
    blocks = [format_call_block(call, i) for i, call in enumerate(ordered, start=1)]
    return (
        f"Consolidate the following insights from {len(ordered)} sales calls "
        f"into a single deduplicated summary.\n\n"
        + "\n".join(blocks)
        + "\n\nReturn your consolidated analysis as JSON only."
    )


class InsightConsolidator:
    """Service for consolidating two or more calls into one ``ConsolidatedInsight``."""

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def consolidate(self, calls: Sequence[CallInsightInput]) -> AIResult[ConsolidatedInsight]:
        """Consolidate per-call insights.

        Args:
            calls: Per-call insights, each with its meeting date. Order does not matter.

        Returns:
            AIResult with the ConsolidatedInsight, or the error that stopped it.
        """
        try:
            insight = await self._consolidate(calls)
        except PipelineError as e:
            logger.warning(f"Consolidation failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected consolidation error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        logger.info(
            f"Insights consolidated: calls={len(calls)}, "
            f"pain_points={len(insight.pain_points)}, goals={len(insight.goals)}, "
            f"risk_level={insight.risk_assessment.risk_level.value}"
        )
        return AIResult.succeeded(insight)

    async def _consolidate(self, calls: Sequence[CallInsightInput]) -> ConsolidatedInsight:
        if not calls:
            raise InputValidationError("At least one call insight is required")
        if len(calls) < MIN_CALLS:
            raise InputValidationError(f"Consolidation requires at least {MIN_CALLS} calls")

        response = await self.model_client.invoke_with_fallback(
            build_consolidation_prompt(calls),
            self._get_system_prompt(),
            model=self.model_client.reasoning_model,
            fallback_model=self.model_client.fast_model,
        )
        if not response.ok:
            raise ModelInvocationError(response.error)

        return build_model(ConsolidatedInsight, parse_json_response(response.text))

    def _get_system_prompt(self) -> str:
        return f"""You are a sales intelligence analyst consolidating insights from multiple sales calls on the same opportunity.

Calls are listed oldest to newest. Use the ordering to identify trends.

Your task:
1. **Deduplicate** pain points, goals, business drivers, metrics and objections; merge items that say the same thing
2. **Preserve specifics**: keep numbers, dates and names exactly as stated
3. **Assess risk across calls**: set riskLevel from the most recent call's trends and cumulative concerns
4. **Summarize competition** from the customer's perspective
5. **Summarize the decision process**: latest known timeline, stakeholders, budget status, remaining steps
6. **Describe the sentiment trend**: improving, stable or declining, and the current state

Return ONLY valid JSON matching this exact structure:
{{
  "painPoints": ["string"],
  "goals": ["string"],
  "riskAssessment": {RISK_JSON_SHAPE},
  "whyAndWhyNow": ["string"],
  "quantifiableMetrics": ["string"],
  "keyQuotes": ["string"],
  "objections": ["string"],
  "competitionSummary": {{ "competitors": ["string"], "primaryThreat": "string or null", "customerSentiment": "string" }},
  "decisionProcessSummary": {{ "timeline": "string or null", "keyStakeholders": ["string"], "budgetStatus": "string or null", "remainingSteps": ["string"] }},
  "sentimentTrend": {{ "trajectory": "improving" | "stable" | "declining", "currentState": "positive" | "neutral" | "negative", "summary": "string" }}
}}

Do NOT add commentary outside the JSON structure."""

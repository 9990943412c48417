"""
Unit Tests for InsightConsolidator

Calls are ordered oldest first before prompting; core fields are REQUIRED and
enrichment fields default independently.
"""

import json
from datetime import datetime, timezone

import pytest

from models.insight_models import (
    CallInsightInput,
    MentionSentiment,
    RiskAssessment,
    RiskLevel,
    SentimentTrajectory,
)
from services.insight_consolidator import (
    InsightConsolidator,
    build_consolidation_prompt,
    order_calls,
)


RISK = {"riskLevel": "medium", "riskFactors": [], "overallSummary": "Timeline uncertain."}


def call(call_id, month, pain=None):
    return CallInsightInput(
        call_id=call_id,
        meeting_date=datetime(2025, month, 1, tzinfo=timezone.utc),
        pain_points=[pain or f"pain from {call_id}"],
    )


MARCH, JANUARY, FEBRUARY = call("march", 3), call("january", 1), call("february", 2)


class TestOrdering:
    """Calls are consolidated oldest to newest."""

    def test_order_calls(self):
        ordered = order_calls([MARCH, JANUARY, FEBRUARY])
        assert [c.call_id for c in ordered] == ["january", "february", "march"]

    def test_naive_and_aware_dates_sort_together(self):
        naive = CallInsightInput(call_id="naive", meeting_date=datetime(2025, 1, 15))
        ordered = order_calls([MARCH, naive, JANUARY])
        assert [c.call_id for c in ordered] == ["january", "naive", "march"]

    def test_prompt_lists_calls_chronologically(self):
        prompt = build_consolidation_prompt([MARCH, JANUARY, FEBRUARY])

        jan = prompt.index("### Call 1 (Jan 1, 2025)")
        feb = prompt.index("### Call 2 (Feb 1, 2025)")
        mar = prompt.index("### Call 3 (Mar 1, 2025)")
        assert jan < feb < mar
        assert "insights from 3 sales calls" in prompt
        assert prompt.index("pain from january") < prompt.index("pain from march")

    def test_prompt_renders_risk(self):
        with_risk = CallInsightInput(
            call_id="r",
            meeting_date=datetime(2025, 4, 1, tzinfo=timezone.utc),
            risk_assessment=RiskAssessment.model_validate(RISK),
        )
        prompt = build_consolidation_prompt([JANUARY, with_risk])
        assert "- Risk Level: medium" in prompt
        assert "- Not available" in prompt


class TestConsolidate:
    """Tests for InsightConsolidator.consolidate."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("calls", [[], [JANUARY]])
    async def test_fewer_than_two_calls_makes_no_model_call(self, model_client, calls):
        result = await InsightConsolidator(model_client).consolidate(calls)

        assert not result.success
        assert result.error_code == "INVALID_INPUT"
        model_client.invoke_with_fallback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enrichment_fields_default(self, model_client, reply):
        model_client.invoke_with_fallback.return_value = reply(json.dumps({
            "painPoints": ["Slow onboarding"],
            "goals": ["Faster onboarding"],
            "riskAssessment": RISK,
            "sentimentTrend": {"trajectory": "sideways", "currentState": "positive"},
        }))

        result = await InsightConsolidator(model_client).consolidate([MARCH, JANUARY])

        assert result.success
        insight = result.data
        assert insight.risk_assessment.risk_level == RiskLevel.medium
        assert insight.key_quotes == []
        assert insight.competition_summary.competitors == []
        assert insight.competition_summary.customer_sentiment == "No competition information available"
        assert insight.decision_process_summary.remaining_steps == []
        assert insight.sentiment_trend.trajectory == SentimentTrajectory.stable
        assert insight.sentiment_trend.current_state == MentionSentiment.positive

    @pytest.mark.asyncio
    async def test_missing_risk_assessment_fails(self, model_client, reply):
        model_client.invoke_with_fallback.return_value = reply(json.dumps({
            "painPoints": [], "goals": [],
        }))

        result = await InsightConsolidator(model_client).consolidate([MARCH, JANUARY])

        assert result.error_code == "INVALID_RESPONSE"
        assert "riskAssessment" in result.error

    @pytest.mark.asyncio
    async def test_uses_reasoning_model_with_fast_fallback(self, model_client, reply):
        model_client.invoke_with_fallback.return_value = reply(json.dumps({
            "painPoints": [], "goals": [], "riskAssessment": RISK,
        }))

        await InsightConsolidator(model_client).consolidate([MARCH, JANUARY])

        kwargs = model_client.invoke_with_fallback.await_args.kwargs
        assert kwargs["model"] == "reasoning-model"
        assert kwargs["fallback_model"] == "fast-model"

    @pytest.mark.asyncio
    async def test_model_error(self, model_client, failure):
        model_client.invoke_with_fallback.return_value = failure("503 overloaded")

        result = await InsightConsolidator(model_client).consolidate([MARCH, JANUARY])

        assert result.error_code == "MODEL_ERROR"

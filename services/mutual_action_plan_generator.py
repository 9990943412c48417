"""Mutual Action Plan generator.

Builds a buyer/seller project plan working backward from the target close
date. Output is JSON with per-item status enum and date format validation.
"""
import logging
from datetime import date
from typing import Callable, Optional

from models.document_models import MAPGenerationContext, MutualActionPlan
from models.results import AIResult
from services.model_client import ModelClient
from utils.exceptions import InputValidationError, ModelInvocationError, PipelineError
from utils.prompt_formatting import format_display_date, stage_label
from utils.response_utils import build_model, parse_json_response

logger = logging.getLogger(__name__)


def build_map_prompt(context: MAPGenerationContext, today: date) -> str:
    if context.meetings:
        meetings = "\n".join(
            f"- {m.title} ({format_display_date(m.date)}) - {m.type}" for m in context.meetings
        )
    else:
        meetings = "No meetings recorded yet"

    if context.contacts:
        contacts = "\n".join(
            f"- {c.name}{f' ({c.title})' if c.title else ''} - {c.role}" for c in context.contacts
        )
    else:
        contacts = "No contacts identified"

    prompt = f"""Generate a Mutual Action Plan for the following opportunity:

**OPPORTUNITY DETAILS:**
- Name: {context.opportunity_name}
- Account: {context.account_name or "Unknown"}
- Current Stage: {stage_label(context.stage)}
- Target Close Date: {context.close_date.isoformat() if context.close_date else "Not set"}
- Today's Date: {today.isoformat()}

**MEETINGS HISTORY:**
{meetings}

**KEY CONTACTS:**
{contacts}
"""
    if context.template_body:
        prompt += f"""
**TEMPLATE TO FOLLOW:**
Use this template structure as a guide for the MAP. Adapt the phases, milestones, and style while customizing for this specific opportunity:

{context.template_body}
"""
    prompt += "\nGenerate a comprehensive Mutual Action Plan as JSON only."
    return prompt


class MutualActionPlanGenerator:
    """Service for generating a Mutual Action Plan from meetings and contacts."""

    def __init__(self, model_client: ModelClient, today: Optional[Callable[[], date]] = None):
        self.model_client = model_client
        self._today = today or date.today

    async def generate(self, context: MAPGenerationContext) -> AIResult[MutualActionPlan]:
        try:
            plan = await self._generate(context)
        except PipelineError as e:
            logger.warning(f"MAP generation failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected MAP generation error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        logger.info(
            f"MAP generated: opportunity_id={context.opportunity_id}, "
            f"action_items={len(plan.action_items)}"
        )
        return AIResult.succeeded(plan)

    async def _generate(self, context: MAPGenerationContext) -> MutualActionPlan:
        if not context.opportunity_id or not context.opportunity_name:
            raise InputValidationError("Opportunity ID and name are required")
        if not context.meetings:
            raise InputValidationError("At least one meeting is required to generate a MAP")

        response = await self.model_client.invoke(
            build_map_prompt(context, self._today()),
            self._get_system_prompt(),
            model=self.model_client.reasoning_model,
        )
        if not response.ok:
            raise ModelInvocationError(response.error)

        return build_model(MutualActionPlan, parse_json_response(response.text))

    def _get_system_prompt(self) -> str:
        return """You are an expert sales acceleration specialist creating Mutual Action Plans (MAPs) for enterprise sales opportunities.

A Mutual Action Plan is a collaborative document that outlines the specific steps, owners, and timelines needed to close a deal.

**YOUR ROLE:**
1. Work backward from the target close date to create realistic timelines
2. Include tasks for both customer and seller
3. Account for known stakeholders
4. Follow the sales process: Discovery, Demo, Technical Review, Security Review, Legal, Contract
5. Include regular weekly check-in meetings

**MAP STRUCTURE:**
Each action item must have:
- description: Clear, specific task description
- targetDate: Target completion date (YYYY-MM-DD)
- status: One of "not_started", "in_progress", "completed", "delayed"
- owner: Company name, "Customer", "Both", or a specific person's name
- notes: Additional context or agenda items (optional)
- isWeeklySync: true for recurring weekly check-in meetings

**TIMELINE RULES:**
- Allow 2-4 weeks for security review and 2-4 weeks for legal/contract review
- Mark past meetings/milestones as "completed" and current phase items as "in_progress"

**IF A TEMPLATE IS PROVIDED:**
Match the template's phases, milestones, and style while customizing dates, owners, and items.

**OUTPUT FORMAT:**
Return ONLY valid JSON matching this exact structure:
{
  "title": "[Account Name] + [Your Company] | Partnership Project Plan",
  "actionItems": [
    {
      "description": "Introduction & Use Case Discovery",
      "targetDate": "2025-01-15",
      "status": "completed",
      "owner": "Both",
      "notes": "",
      "isWeeklySync": false
    }
  ]
}

**IMPORTANT RULES:**
- Generate 10-20 action items for a typical enterprise deal
- Weekly syncs should have "Agenda:" in notes
- Do NOT add commentary outside the JSON structure
- Dates must be in YYYY-MM-DD format"""

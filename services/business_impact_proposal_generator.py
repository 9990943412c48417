"""Business Impact Proposal generator.

Produces an 8-section executive proposal in markdown. Missing data is marked
with ``[DATA NEEDED: ...]`` placeholders, which are collected from the output
so callers can show the rep what still has to be gathered.
"""
import logging
import re

from models.document_models import BusinessImpactProposal, BusinessImpactProposalContext
from models.insight_models import RiskAssessment
from models.results import AIResult
from services.model_client import ModelClient
from utils.exceptions import ModelInvocationError, PipelineError, ResponseShapeError
from utils.prompt_formatting import (
    contacts_with_role,
    format_contact_list,
    format_money,
    numbered_list,
    stage_label,
    truncate,
)
from utils.response_utils import strip_code_fences

logger = logging.getLogger(__name__)

ACCOUNT_RESEARCH_LIMIT = 3000
TEMPLATE_LIMIT = 5000

DATA_NEEDED_PATTERN = re.compile(r"\[DATA NEEDED:\s*([^\]]+)\]")


def find_data_needed(text: str) -> list[str]:
    """Return the distinct ``[DATA NEEDED: ...]`` descriptions in order of appearance."""
    seen: list[str] = []
    for match in DATA_NEEDED_PATTERN.finditer(text):
        description = match.group(1).strip()
        if description not in seen:
            seen.append(description)
    return seen


def format_risk_summary(risk: RiskAssessment | None) -> str:
    if risk is None:
        return "No risk assessment available."
    text = f"Overall Risk Level: {risk.risk_level.value}"
    if risk.risk_factors:
        reasons = [f"{f.description} ({f.category.value}, {f.severity.value})" for f in risk.risk_factors]
        text += "\nRisk Factors:\n" + numbered_list(reasons, "")
    if risk.overall_summary:
        text += f"\nSummary: {risk.overall_summary}"
    return text


def build_proposal_prompt(context: BusinessImpactProposalContext) -> str:
    opportunity = context.opportunity
    account = context.account

    lines = [
        "Generate a Business Impact Proposal for the following opportunity.",
        "",
        "## Opportunity Overview",
        "",
        f"**Opportunity Name:** {opportunity.name}",
        f"**Account:** {account.name if account else 'Unknown'}",
        f"**Industry:** {(account.industry if account else None) or 'Not specified'}",
        f"**Website:** {(account.website if account else None) or 'Not provided'}",
    ]
    if account and account.ticker:
        lines.append(f"**Stock Ticker:** {account.ticker}")
    lines += [
        f"**Deal Size:** {format_money(opportunity.amount_arr)} ARR",
        f"**Stage:** {stage_label(opportunity.stage)}",
        f"**Confidence Level:** {opportunity.confidence_level}/5",
        f"**Close Date:** {opportunity.close_date.isoformat() if opportunity.close_date else 'Not set'}",
    ]
    if opportunity.platform_type:
        lines.append(f"**Platform Type:** {opportunity.platform_type.upper()}")
    if opportunity.competition:
        lines.append(f"**Competition:** {opportunity.competition}")

    lines += [
        "",
        "## Customer Pain Points (from Sales Conversations)",
        numbered_list(opportunity.consolidated_pain_points, "No pain points documented yet."),
        "",
        "## Customer Goals (from Sales Conversations)",
        numbered_list(opportunity.consolidated_goals, "No goals documented yet."),
        "",
        "## Business Drivers / Urgency Factors (Why Now)",
        numbered_list(opportunity.consolidated_why_and_why_now, "No urgency factors documented yet."),
        "",
        "## Quantifiable Metrics & ROI Data",
        numbered_list(opportunity.consolidated_metrics, "No quantifiable metrics documented yet."),
        "",
        "## Risk Assessment",
        format_risk_summary(opportunity.consolidated_risk_assessment),
        "",
        "## Key Stakeholders",
        "",
        "**Decision Makers:**",
        format_contact_list(contacts_with_role(context.contacts, "decision_maker")),
        "",
        "**Champions:**",
        format_contact_list(contacts_with_role(context.contacts, "champion")),
        "",
    ]

    research = truncate(opportunity.account_research, ACCOUNT_RESEARCH_LIMIT)
    if research:
        lines += ["## Account Research", "", research, ""]

    if context.template:
        lines += [
            "## Reference Template",
            "The following template structure was provided by the user. "
            "Use it as a guide for formatting and tone:",
            "---",
            truncate(context.template.body, TEMPLATE_LIMIT, suffix="\n... (truncated)"),
            "---",
            "**IMPORTANT:** Follow the 8-section structure defined in your system instructions, "
            "but you may adapt the style and tone from this template.",
            "",
        ]

    lines += [
        "---",
        "",
        "Generate the Business Impact Proposal now, following the exact 8-section structure "
        "specified in your instructions. Remember to use [DATA NEEDED: description] "
        "placeholders for any missing information.",
    ]
    return "\n".join(lines)


class BusinessImpactProposalGenerator:
    """Service for drafting an 8-section Business Impact Proposal."""

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def generate(
        self,
        context: BusinessImpactProposalContext,
    ) -> AIResult[BusinessImpactProposal]:
        try:
            response = await self.model_client.invoke(
                build_proposal_prompt(context),
                self._get_system_prompt(),
                model=self.model_client.reasoning_model,
            )
            if not response.ok:
                raise ModelInvocationError(response.error)

            proposal = strip_code_fences(response.text)
            if not proposal:
                raise ResponseShapeError("Failed to generate Business Impact Proposal content")
        except PipelineError as e:
            logger.warning(f"Proposal generation failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected proposal generation error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        data_needed = find_data_needed(proposal)
        logger.info(
            f"Business impact proposal generated: opportunity={context.opportunity.name}, "
            f"length={len(proposal)}, data_needed={len(data_needed)}"
        )
        return AIResult.succeeded(BusinessImpactProposal(proposal=proposal, data_needed=data_needed))

    def _get_system_prompt(self) -> str:
        return """You are a sales document specialist who creates compelling Business Impact Proposals for enterprise software deals.

Generate a single output: a Business Impact Proposal following an 8-section structure designed to help executives make a quick decision.

## OUTPUT FORMAT

Generate the proposal in clean markdown with these EXACT 8 sections. Use ## for section headers.

## 1. Headline
1-2 compelling sentences that summarize the transformation opportunity.

## 2. Problem Statement
1-3 sentences describing the current challenge with measurable pain points.

## 3. Recommended Approach
High-level summary of the proposed solution in 2-4 sentences or bullet points.

## 4. Target Outcomes
A markdown table of 3-5 SMART metrics:
| Metric | Current State (Baseline) | Target State (After Change) | Expected Impact |

## 5. Cost of Inaction
**Risk:** / **Cost:** / **Opportunity Cost:**

## 6. Value Proposition
**Financial Impact:** / **Strategic Impact:** / **Operational Impact:**

## 7. Urgency & Timeline
**Time-Sensitive Factor:** / **Dependency/Window:** / **ROI Acceleration:**

## 8. Required Investment
*[Investment details to be completed by sales representative]*

## DATA HANDLING RULES - CRITICAL

1. Use actual data from the opportunity context when available:
   - Pain points for the Problem Statement and Cost of Inaction
   - Goals for Target Outcomes and Value Proposition
   - Metrics for the Target Outcomes table
   - Why/Why Now for the Urgency section
   - Risk data for Cost of Inaction
2. For missing data, use this exact placeholder format:
   [DATA NEEDED: brief description of what information is missing]
3. Never fabricate specific numbers - only use what is provided in the context
4. Be explicit about gaps - it is better to show [DATA NEEDED] than to guess

## STYLE GUIDELINES
- Professional, executive-ready tone; concise and scannable
- Focus on business outcomes, not product features
- Tailor language to the customer's industry when known"""

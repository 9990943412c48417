"""Meeting brief generator.

Produces pre-meeting account intelligence in ten numbered sections, then
formats the raw text into a full brief, a mobile cheat sheet, and structured
metadata. The reasoning model fails fast (2 attempts) and degrades to the fast
model when overloaded.
"""
import logging
import os
from typing import Optional

from models.document_models import FormattedMeetingBrief, MeetingBriefContext
from models.results import AIResult
from services.model_client import ModelClient
from utils.brief_formatter import format_meeting_brief
from utils.exceptions import InputValidationError, ModelInvocationError, PipelineError
from utils.prompt_formatting import format_money, stage_label

logger = logging.getLogger(__name__)

PRIMARY_MAX_RETRIES = 2
FALLBACK_MAX_RETRIES = 3


def build_meeting_brief_prompt(context: MeetingBriefContext, seller_company_name: str) -> str:
    account = context.account_name
    lines = [
        f"Generate comprehensive pre-meeting sales intelligence for an enterprise sales call with: {account}",
        "",
    ]
    if context.company_website:
        lines += [
            f"Company Website: {context.company_website}",
            "Use the company website to gather accurate, current information about their "
            "products, services, and positioning.",
        ]
    if context.industry:
        lines.append(f"Industry: {context.industry}")
    if context.stage:
        lines.append(f"Opportunity Stage: {stage_label(context.stage)}")
    if context.opportunity_value:
        lines.append(f"Estimated Deal Value: {format_money(context.opportunity_value)}")

    lines.append(f"""
Please research and provide the following sections:

## 1. Business Overview
- How does {account} make money? (revenue model, key products/services)
- Latest financials: revenue, growth rate, profitability trends
- Strategic goals and initiatives (from recent earnings calls, press releases, or public statements)
- Company size (employees, market cap if public)

## 2. Operating Footprint
- Scale of the operations relevant to this deal (sites, regions, customers served)
- Geographic footprint
- Business units that would be affected by a purchase

## 3. Recent News & Events (Last 12 Months)
- M&A activity, partnerships, or expansions
- Leadership changes (new executives often drive new vendor selections)
- Regulatory pressures or compliance issues
- Major strategic announcements

## 4. Pain Points & Challenges
- Industry-specific challenges they're likely facing
- Public mentions of operational issues or inefficiencies
- Technology modernization needs

## 5. Tech Stack & Current Vendors (if publicly available)
- Current systems in the problem space
- Recent technology investments or digital transformation initiatives
- Integration requirements (known platforms they use)

## 6. Competitive Position
- Market position vs. competitors in their industry
- Differentiation strategy
- Growth trajectory and expansion plans

## 7. Decision-Making Context
- Typical buying committee structure for a company of their size/industry
- Key stakeholder titles and roles to engage
- Budget cycles and procurement timing considerations

## 8. {seller_company_name} Fit
- Why is {seller_company_name} relevant NOW for {account}?
- Specific pain points {seller_company_name} solves for companies like them
- Estimated ROI for an organization of their size
- Integration considerations with their likely tech stack

## 9. Discovery Questions
Provide 5-7 intelligent questions as a numbered list with each question in double quotes, based on:
- Their recent activity and news
- Current processes and vendor satisfaction
- Strategic initiatives that {seller_company_name} could support

## 10. Conversation Starters & Social Proof
- Relevant industry trends affecting them
- Similar companies (peer organizations) and relevant case studies
- **Opening Line:** "a one-sentence opener that references their recent news or initiatives"

---

**Research Instructions:**
- Prioritize recent, factual information
- If exact data isn't available, provide educated estimates with caveats
- Highlight timing factors that make this a good time to engage
- Start with a **Key Insight:** line summarizing the single most important takeaway

Generate comprehensive, actionable intelligence that prepares the sales rep for a consultative, value-driven conversation.""")
    return "\n".join(lines)


class MeetingBriefGenerator:
    """Service for generating and formatting pre-meeting account briefs."""

    def __init__(self, model_client: ModelClient, seller_company_name: Optional[str] = None):
        self.model_client = model_client
        self.seller_company_name = (
            seller_company_name or os.getenv("SELLER_COMPANY_NAME") or "our company"
        )

    async def generate(self, context: MeetingBriefContext) -> AIResult[FormattedMeetingBrief]:
        """Generate a meeting brief for an account.

        Args:
            context: Account and opportunity fields rendered into the prompt.

        Returns:
            AIResult with the brief in full, mobile and metadata formats.
        """
        try:
            brief = await self._generate(context)
        except PipelineError as e:
            logger.warning(f"Meeting brief generation failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected meeting brief generation error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        logger.info(
            f"Meeting brief generated: account={context.account_name}, "
            f"length={len(brief.full_brief)}, "
            f"questions={len(brief.metadata.quick_reference.discovery_questions)}"
        )
        return AIResult.succeeded(brief)

    async def _generate(self, context: MeetingBriefContext) -> FormattedMeetingBrief:
        if not context.account_name or not context.account_name.strip():
            raise InputValidationError("Account name is required")

        response = await self.model_client.invoke_with_fallback(
            build_meeting_brief_prompt(context, self.seller_company_name),
            self._get_system_prompt(),
            model=self.model_client.reasoning_model,
            fallback_model=self.model_client.fast_model,
            max_retries=PRIMARY_MAX_RETRIES,
            fallback_retries=FALLBACK_MAX_RETRIES,
        )
        if not response.ok:
            raise ModelInvocationError(response.error)

        return format_meeting_brief(response.text, context.account_name)

    def _get_system_prompt(self) -> str:
        return f"""You are a sales intelligence assistant for {self.seller_company_name}.

YOUR ROLE:
Generate comprehensive pre-meeting intelligence for enterprise sales calls.
Focus on actionable insights that help sales reps have informed, consultative conversations.
Research should be current, specific, and directly relevant to the account's challenges.

OUTPUT FORMAT:
- Use simple headers (## only, no ###) and keep the numbered section titles exactly as given
- Use bullet points (-) for lists
- Use bold sparingly: only for critical numbers, labels such as **Key Insight:** and **Opening Line:**, and key takeaways
- Keep it concise but thorough, a 2-3 minute read
- Focus on facts over speculation; mark estimates as estimates
- Where data is unavailable write [DATA NEEDED: description] instead of inventing values"""

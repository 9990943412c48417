"""Business case generator.

Produces two outputs from one model call: a business case draft and a set of
discovery questions that help the rep fill gaps in the ROI story. The model is
asked to wrap each in literal markers; a header-based split is the fallback.
"""
import logging
import re

from models.document_models import BusinessCaseContext, BusinessCaseDraft
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
from utils.response_utils import extract_delimited_section

logger = logging.getLogger(__name__)

BUSINESS_CASE_START = "===BUSINESS_CASE_START==="
BUSINESS_CASE_END = "===BUSINESS_CASE_END==="
QUESTIONS_START = "===QUESTIONS_START==="
QUESTIONS_END = "===QUESTIONS_END==="

PRIOR_EXAMPLE_LIMIT = 4000
ACCOUNT_RESEARCH_LIMIT = 3000

_QUESTIONS_HEADER = re.compile(r"##\s*(Discovery Questions|Business Case Questions)", re.IGNORECASE)


def split_business_case_response(text: str) -> BusinessCaseDraft:
    """Split model output into business case and questions.

    Tries the literal markers first, then a questions header, then treats the
    whole text as the business case.
    """
    business_case = extract_delimited_section(text, BUSINESS_CASE_START, BUSINESS_CASE_END)
    questions = extract_delimited_section(text, QUESTIONS_START, QUESTIONS_END)

    if not business_case and not questions:
        separator = _QUESTIONS_HEADER.search(text)
        if separator and separator.start() > 0:
            business_case = text[:separator.start()].strip()
            questions = text[separator.start():].strip()
        else:
            business_case = text.strip()

    return BusinessCaseDraft(business_case=business_case, questions=questions or None)


def build_business_case_prompt(context: BusinessCaseContext) -> str:
    opportunity = context.opportunity
    account = context.account

    prior_cases = "\n\n---\n\n".join(
        f"### Example {i}: {example.title}\n\n{truncate(example.body, PRIOR_EXAMPLE_LIMIT)}"
        for i, example in enumerate(context.prior_business_cases, start=1)
    )
    research = truncate(opportunity.account_research, ACCOUNT_RESEARCH_LIMIT)

    lines = [
        "Generate a business case and discovery questions for the following opportunity.",
        "",
        "## Opportunity Overview",
        "",
        f"**Opportunity Name:** {opportunity.name}",
        f"**Account:** {account.name if account else 'Unknown'}",
        f"**Industry:** {(account.industry if account else None) or 'Not specified'}",
        f"**Website:** {(account.website if account else None) or 'Not provided'}",
        f"**Deal Size:** {format_money(opportunity.amount_arr)} ARR",
        f"**Stage:** {stage_label(opportunity.stage)}",
        f"**Confidence Level:** {opportunity.confidence_level}/5",
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
        "## Key Stakeholders",
        "",
        "**Decision Makers:**",
        format_contact_list(contacts_with_role(context.contacts, "decision_maker")),
        "",
        "**Champions:**",
        format_contact_list(contacts_with_role(context.contacts, "champion")),
        "",
        "**Influencers:**",
        format_contact_list(contacts_with_role(context.contacts, "influencer")),
        "",
    ]
    if research:
        lines += ["## Account Research", "", research, ""]

    if prior_cases:
        lines += [
            "## Prior Business Case Examples (for style/structure reference)",
            "",
            prior_cases,
            "",
            "**IMPORTANT:** Use these examples to learn the style, structure, and product "
            "details. DO NOT copy content directly - create original content tailored to "
            "this specific opportunity.",
        ]
    else:
        lines += [
            "## Note",
            "",
            "No prior business case examples are available. Generate a generic business "
            "case structure that the user can customize with their product details.",
        ]

    lines += [
        "",
        "---",
        "",
        "Generate the business case and discovery questions now, following the exact "
        "output format specified in your instructions.",
    ]
    return "\n".join(lines)


class BusinessCaseGenerator:
    """Service for drafting a business case plus ROI discovery questions."""

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def generate(self, context: BusinessCaseContext) -> AIResult[BusinessCaseDraft]:
        try:
            response = await self.model_client.invoke(
                build_business_case_prompt(context),
                self._get_system_prompt(),
                model=self.model_client.reasoning_model,
            )
            if not response.ok:
                raise ModelInvocationError(response.error)

            draft = split_business_case_response(response.text)
            if not draft.business_case:
                raise ResponseShapeError("Failed to generate business case content")
        except PipelineError as e:
            logger.warning(f"Business case generation failed: code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected business case generation error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        logger.info(
            f"Business case generated: opportunity={context.opportunity.name}, "
            f"length={len(draft.business_case)}, has_questions={draft.questions is not None}"
        )
        return AIResult.succeeded(draft)

    def _get_system_prompt(self) -> str:
        return f"""You are a sales document specialist who creates compelling business cases for enterprise software deals.

Generate TWO separate outputs based on:
1. Prior business case examples (learn the style, structure, and product details from these)
2. Customer-specific context (pain points, goals, stakeholders)

## OUTPUT FORMAT

You MUST return your response in the following exact format with these exact separators:

{BUSINESS_CASE_START}
[Your business case content here in markdown]
{BUSINESS_CASE_END}

{QUESTIONS_START}
[Your discovery questions here in markdown]
{QUESTIONS_END}

## BUSINESS CASE REQUIREMENTS

- Clean markdown; ## for section headers; bullet points (-) for lists
- Use **bold** sparingly for key numbers only
- Total length: 800-1200 words

Sections:
1. Executive Summary
2. Current State & Challenges
3. Proposed Solution
4. Expected Business Outcomes
5. ROI Analysis (include a markdown table with metrics)
6. Implementation Roadmap
7. Next Steps

## DISCOVERY QUESTIONS REQUIREMENTS

Generate questions that help the sales rep gather ROI data and quantify pain points, grouped by
category with ## headers (Quantifying Current Pain, Financial Impact, Time & Efficiency, Risk & Compliance),
3-5 questions per category, each with brief context for why it matters.

## DATA HANDLING

- Never fabricate specific numbers; only use figures present in the context
- Where a figure is missing, write [DATA NEEDED: brief description of the missing information]
- Tailor all content to the customer's documented pain points, goals and stakeholders"""

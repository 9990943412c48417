"""Template content generator.

Renders a user-defined template (instructions plus a list of sections) against
the aggregated opportunity context and returns the generated markdown. Required
sections the model left out are reported, not treated as a failure.
"""
import logging
from typing import Sequence

from models.document_models import (
    AggregatedContext,
    ContentTemplate,
    MeetingContext,
    TemplateContent,
    TemplateSection,
)
from models.results import AIResult
from services.model_client import ModelClient
from utils.exceptions import ModelInvocationError, PipelineError, ResponseShapeError
from utils.prompt_formatting import format_display_date, format_money, stage_label, truncate
from utils.response_utils import strip_code_fences

logger = logging.getLogger(__name__)

TRANSCRIPT_LIMIT = 115_000
REFERENCE_LIMIT = 10_000
CONTEXT_SEPARATOR = "\n\n---\n\n"


def _field_lines(pairs: Sequence[tuple[str, object]]) -> list[str]:
    return [f"- **{label}:** {value}" for label, value in pairs if value]


def _format_insights(context: AggregatedContext) -> str:
    insight = context.consolidated_insight
    parts = []

    def add_list(heading: str, items: Sequence[str], quote: bool = False) -> None:
        if items:
            rendered = "\n".join(f'- "{item}"' if quote else f"- {item}" for item in items)
            parts.append(f"### {heading}\n{rendered}")

    add_list("Pain Points", insight.pain_points)
    add_list("Customer Goals", insight.goals)
    add_list("Why & Why Now", insight.why_and_why_now)
    add_list("Quantifiable Metrics", insight.quantifiable_metrics)
    add_list("Key Customer Quotes", insight.key_quotes, quote=True)
    add_list("Objections & Concerns", insight.objections)

    risk = insight.risk_assessment
    parts.append(f"### Risk Assessment\n- **Risk Level:** {risk.risk_level.value}\n- **Summary:** {risk.overall_summary}")

    competition = _field_lines([
        ("Competitors", ", ".join(insight.competition_summary.competitors)),
        ("Primary Threat", insight.competition_summary.primary_threat),
        ("Customer Sentiment", insight.competition_summary.customer_sentiment),
    ])
    parts.append("### Competitive Landscape\n" + "\n".join(competition))

    process = insight.decision_process_summary
    decision = _field_lines([
        ("Timeline", process.timeline),
        ("Key Stakeholders", ", ".join(process.key_stakeholders)),
        ("Budget Status", process.budget_status),
        ("Remaining Steps", "; ".join(process.remaining_steps)),
    ])
    if decision:
        parts.append("### Decision Process\n" + "\n".join(decision))

    trend = insight.sentiment_trend
    parts.append(
        f"### Sentiment Trend\n- **Trajectory:** {trend.trajectory.value}\n"
        f"- **Current State:** {trend.current_state.value}\n- **Summary:** {trend.summary}"
    )
    return "## Consolidated Call Insights\n" + "\n\n".join(parts)


def _format_meeting(meeting: MeetingContext) -> str:
    lines = [f"### {meeting.title} ({format_display_date(meeting.date)}) - {meeting.meeting_type.upper()}"]
    if meeting.pain_points:
        lines.append(f"**Pain Points:** {'; '.join(meeting.pain_points)}")
    if meeting.goals:
        lines.append(f"**Goals:** {'; '.join(meeting.goals)}")
    if meeting.next_steps:
        lines.append(f"**Next Steps:** {'; '.join(meeting.next_steps)}")
    if meeting.key_quotes:
        quotes = "; ".join(f'"{q}"' for q in meeting.key_quotes)
        lines.append(f"**Key Quotes:** {quotes}")
    if meeting.objections:
        lines.append(f"**Objections:** {'; '.join(meeting.objections)}")
    if meeting.competition_mentions:
        mentions = "; ".join(
            f"{c.competitor} ({c.sentiment.value}): {c.context}" for c in meeting.competition_mentions
        )
        lines.append(f"**Competition Mentions:** {mentions}")
    if meeting.decision_process:
        process = meeting.decision_process
        details = [
            text for text in (
                f"Timeline: {process.timeline}" if process.timeline else "",
                f"Stakeholders: {', '.join(process.stakeholders)}" if process.stakeholders else "",
                f"Budget: {process.budget_context}" if process.budget_context else "",
            ) if text
        ]
        if details:
            lines.append(f"**Decision Process:** {'; '.join(details)}")
    if meeting.call_sentiment:
        sentiment = meeting.call_sentiment
        lines.append(
            f"**Sentiment:** {sentiment.overall.value} (Momentum: {sentiment.momentum.value}, "
            f"Enthusiasm: {sentiment.enthusiasm.value})"
        )
    if meeting.transcript:
        lines.append(f"**Transcript:** {truncate(meeting.transcript, TRANSCRIPT_LIMIT, suffix='...')}")
    return "\n".join(lines)


def format_context_for_prompt(context: AggregatedContext) -> str:
    """Render the aggregated context as markdown sections separated by rules."""
    opportunity = context.opportunity
    sections = ["## Opportunity Details\n" + "\n".join(_field_lines([
        ("Name", opportunity.name),
        ("ARR", format_money(opportunity.amount_arr)),
        ("Stage", stage_label(opportunity.stage)),
        ("Confidence Level", f"{opportunity.confidence_level}/5"),
        ("Close Date", format_display_date(opportunity.close_date) if opportunity.close_date else None),
        ("Competition", opportunity.competition),
        ("Platform Type", opportunity.platform_type),
    ]))]

    if context.account:
        account = context.account
        sections.append("## Account Information\n" + "\n".join(_field_lines([
            ("Company", account.name),
            ("Industry", account.industry),
            ("Website", account.website),
            ("Ticker", account.ticker),
        ])))

    if context.contacts:
        contacts = "\n".join(
            f"- **{f'{c.first_name} {c.last_name}'.strip()}**"
            + (f" ({c.title})" if c.title else "")
            + f" - {c.role}, Sentiment: {c.sentiment}"
            for c in context.contacts
        )
        sections.append(f"## Key Contacts\n{contacts}")

    if context.consolidated_insight:
        sections.append(_format_insights(context))

    if context.meetings:
        sections.append("## Meeting Notes\n" + "\n\n".join(_format_meeting(m) for m in context.meetings))

    if context.account_research:
        sections.append(f"## Account Research\n{context.account_research}")

    if context.additional_context:
        sections.append(f"## Additional Context from User\n{context.additional_context}")

    return CONTEXT_SEPARATOR.join(sections)


def build_system_instruction(template: ContentTemplate, context: AggregatedContext) -> str:
    section_guide = "\n".join(
        f"{i}. **{s.title}**{' (Required)' if s.required else ''}{f': {s.description}' if s.description else ''}"
        for i, s in enumerate(template.sections, start=1)
    ) or "Choose a structure that fits the document."

    instruction = f"""{template.system_instruction}

## Document Structure
Your output should include the following sections:
{section_guide}

## Output Guidelines
- Write in professional, clear language appropriate for sales documents
- Use specific details from the provided context whenever possible
- Be concise but thorough - every statement should add value
- Reference specific meetings, contacts, and data points to make the content authentic
- If information for a section is not available in the context, provide a reasonable placeholder or skip the section

## Markdown Formatting Requirements
- Start bullet points with a dash and a space: "- item text"
- For bold labels within bullets: "- **Bold label**: description text"
- Use # symbols for headers and "1." style numbered lists
- Leave a blank line before and after lists"""

    if template.output_format:
        instruction += f"\n\n## Output Format\n{template.output_format}"

    if context.reference_documents:
        examples = "\n\n---\n\n".join(
            f"### Example {i}: {doc.title}\n\n{truncate(doc.body, REFERENCE_LIMIT, suffix='...')}"
            for i, doc in enumerate(context.reference_documents, start=1)
        )
        instruction += (
            "\n\n## Reference Examples\nThe following show the desired tone and structure:\n\n"
            f"{examples}\n\nAdapt to each situation. Do not copy these verbatim."
        )
    return instruction


def build_template_prompt(template: ContentTemplate, context: AggregatedContext) -> str:
    return f"""Generate a "{template.name}" document for the following opportunity.

# Context
{format_context_for_prompt(context)}

# Instructions
Based on the context above, generate a comprehensive {template.name} document.
Focus on actionable, specific content that leverages the actual data and insights provided.
Make sure the document is ready for customer or internal use."""


def find_missing_sections(content: str, sections: Sequence[TemplateSection]) -> list[str]:
    """Titles of required sections that do not appear in ``content`` (case-insensitive)."""
    lowered = content.lower()
    return [s.title for s in sections if s.required and s.title.lower() not in lowered]


class TemplateContentGenerator:
    """Service for generating a document from a user-defined template."""

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def generate(
        self,
        template: ContentTemplate,
        context: AggregatedContext,
    ) -> AIResult[TemplateContent]:
        try:
            response = await self.model_client.invoke(
                build_template_prompt(template, context),
                build_system_instruction(template, context),
                model=self.model_client.reasoning_model,
            )
            if not response.ok:
                raise ModelInvocationError(response.error)

            content = strip_code_fences(response.text)
            if not content:
                raise ResponseShapeError(f"Failed to generate {template.name} content")
        except PipelineError as e:
            logger.warning(f"Template generation failed: template={template.name}, code={e.code}, error={e.message}")
            return AIResult.failed(e.message, e.code)
        except Exception as e:
            logger.error(f"Unexpected template generation error: {e}", exc_info=True)
            return AIResult.failed(str(e), "UNEXPECTED_ERROR")

        missing = find_missing_sections(content, template.sections)
        if missing:
            logger.warning(f"Generated content is missing required sections: template={template.name}, missing={missing}")
        logger.info(
            f"Template content generated: template={template.name}, "
            f"opportunity={context.opportunity.name}, length={len(content)}"
        )
        return AIResult.succeeded(TemplateContent(content=content, missing_sections=missing))

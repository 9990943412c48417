"""Formatting for generated meeting briefs.

The model returns a numbered markdown brief (``## 1. Business Overview`` through
``## 10. Conversation Starters``). These helpers lift the parts a rep needs in
the room into structured metadata, a short mobile cheat sheet, and an
executive summary inserted ahead of section 1.
"""
import re
from datetime import date
from typing import Optional

from models.document_models import (
    DiscoveryQuestion,
    ExecutiveSummary,
    FinancialFigure,
    FormattedMeetingBrief,
    KeyMetric,
    MeetingBriefMetadata,
    QuickReference,
)

_KEY_INSIGHT = re.compile(r"\*\*Key Insight:\*\*\s*(.+?)(?:\n\n|$)", re.IGNORECASE | re.DOTALL)
_OPENING_LINE = re.compile(
    r"##\s*10\.\s*Conversation Starters.+?-\s*\*\*Opening Line:\*\*\s*\"(.+?)\"",
    re.IGNORECASE | re.DOTALL,
)
_QUESTIONS_SECTION = re.compile(
    r"##\s*9\.\s*Discovery Questions.+?((?:\d+\..+?\n)+)", re.IGNORECASE | re.DOTALL
)
_QUESTION_BLOCKS_SECTION = re.compile(
    r"##\s*9\.\s*Discovery Questions[^\n]*\n([\s\S]+?)(?=\n##|\Z)", re.IGNORECASE
)
_QUOTED_QUESTION = re.compile(r"\d+\.\s*\"(.+?)\"")
_FINANCIALS = re.compile(r"Latest Financials.+?:([\s\S]+?)(?=\n-|\n\n##)", re.IGNORECASE)
_PAIN_POINTS = re.compile(r"##\s*4\.\s*Pain Points.+?([\s\S]+?)(?=\n##)", re.IGNORECASE)
_STARTERS = re.compile(r"##\s*10\.\s*Conversation Starters.+?([\s\S]+?)(?=\n##|\Z)", re.IGNORECASE)
_BOLD_LABEL = re.compile(r"\*\*(.+?):\*\*\s*(.+)")
_BULLET_LABEL = re.compile(r"^-\s*\*\*(.+?):\*\*\s*")
_FINANCIAL_FIGURE = re.compile(
    r"\*\*(.+?):\*\*\s*\$?([\d.]+[BMK]?(?:\s+billion|\s+million)?)\s*(?:\((.+?)\))?",
    re.IGNORECASE,
)
_FIRST_SECTION = re.compile(r"(^[\s\S]+?)(## 1\.|## Business Overview)", re.IGNORECASE)

MAX_TOP_QUESTIONS = 3
MAX_KEY_METRICS = 3
MAX_RISKS = 3
MAX_DISCOVERY_QUESTIONS = 6
MAX_FINANCIALS = 4
MAX_STARTERS = 3


def extract_executive_summary(full_brief: str) -> ExecutiveSummary:
    insight_match = _KEY_INSIGHT.search(full_brief)
    critical_insight = (
        insight_match.group(1).strip().replace("**", "")
        if insight_match
        else "Review full brief for context"
    )

    starters_match = _OPENING_LINE.search(full_brief)
    opening_line = starters_match.group(1).strip() if starters_match else ""

    top_questions: list[str] = []
    questions_match = _QUESTIONS_SECTION.search(full_brief)
    if questions_match:
        for match in _QUOTED_QUESTION.finditer(questions_match.group(1)):
            top_questions.append(match.group(1).strip())
            if len(top_questions) >= MAX_TOP_QUESTIONS:
                break

    key_metrics: list[KeyMetric] = []
    financials_match = _FINANCIALS.search(full_brief)
    if financials_match:
        for line in financials_match.group(1).split("\n"):
            metric_match = _BOLD_LABEL.search(line)
            if metric_match and len(key_metrics) < MAX_KEY_METRICS:
                metric = metric_match.group(1).strip()
                key_metrics.append(KeyMetric(
                    metric=metric,
                    value=metric_match.group(2).strip(),
                    talking_point=f"Reference {metric.lower()} in conversation",
                ))

    risks: list[str] = []
    pain_match = _PAIN_POINTS.search(full_brief)
    if pain_match:
        for line in pain_match.group(1).split("\n"):
            if line.strip().startswith("-") and len(risks) < MAX_RISKS:
                risks.append(_BULLET_LABEL.sub("", line.strip()).lstrip("- ").strip())

    return ExecutiveSummary(
        critical_insight=critical_insight,
        top_questions=top_questions,
        key_metrics=key_metrics,
        risks=risks,
        opening_line=opening_line,
    )


def parse_discovery_questions(full_brief: str) -> list[DiscoveryQuestion]:
    """Pull quoted questions from section 9 and assign priorities.

    The first two questions are HIGH, the next two MEDIUM, the rest OPTIONAL.
    """
    questions: list[DiscoveryQuestion] = []
    section = _QUESTION_BLOCKS_SECTION.search(full_brief)
    if not section:
        return questions

    blocks = re.split(r"(?:^|\n)\d+\.\s+", section.group(1))
    numbered = [block.strip() for block in blocks[1:]]

    for index, block in enumerate(numbered):
        if len(questions) >= MAX_DISCOVERY_QUESTIONS:
            break
        question_match = re.search(r"\"(.+?)\"", block)
        if not question_match:
            continue
        priority = "HIGH" if index < 2 else "MEDIUM" if index < 4 else "OPTIONAL"
        questions.append(DiscoveryQuestion(
            priority=priority,
            question=question_match.group(1).strip(),
            why_ask="Uncovers key information for this stage",
            listen_for=["Specific timelines", "Pain points", "Decision criteria"],
        ))

    return questions


def extract_conversation_starters(full_brief: str) -> list[str]:
    starters: list[str] = []
    section = _STARTERS.search(full_brief)
    if not section:
        return starters

    for line in section.group(1).split("\n"):
        if line.strip().startswith("-") and len(starters) < MAX_STARTERS:
            cleaned = _BULLET_LABEL.sub("", line.strip()).replace('"', "").strip()
            if cleaned.startswith("-"):
                cleaned = cleaned[1:].strip()
            # Short bullets are labels, not usable lines
            if len(cleaned) > 20:
                starters.append(cleaned)

    return starters


def extract_financials(full_brief: str) -> list[FinancialFigure]:
    financials: list[FinancialFigure] = []
    financials_match = _FINANCIALS.search(full_brief)
    if not financials_match:
        return financials

    for line in financials_match.group(1).split("\n"):
        figure = _FINANCIAL_FIGURE.search(line)
        if figure and len(financials) < MAX_FINANCIALS:
            metric = figure.group(1).strip()
            financials.append(FinancialFigure(
                metric=metric,
                value=f"${figure.group(2).strip()}",
                yoy_change=figure.group(3) or "",
                how_to_use=f"Reference {metric.lower()} growth",
            ))

    return financials


def parse_full_brief_to_metadata(full_brief: str) -> MeetingBriefMetadata:
    return MeetingBriefMetadata(
        executive_summary=extract_executive_summary(full_brief),
        quick_reference=QuickReference(
            conversation_starters=extract_conversation_starters(full_brief),
            discovery_questions=parse_discovery_questions(full_brief),
            financials=extract_financials(full_brief),
        ),
    )


def generate_mobile_cheat_sheet(
    metadata: MeetingBriefMetadata,
    account_name: str,
    generated_on: Optional[date] = None,
) -> str:
    summary = metadata.executive_summary
    starters = metadata.quick_reference.conversation_starters[:2]
    generated_on = generated_on or date.today()

    questions = "\n".join(f'{i}. "{q}"' for i, q in enumerate(summary.top_questions, start=1))
    stats = "\n".join(f"• {m.metric}: {m.value}" for m in summary.key_metrics)
    risks = "\n".join(f"• {r}" for r in summary.risks)
    starter_lines = "\n\n".join(f"{i}. {s}" for i, s in enumerate(starters, start=1))

    return (
        f"📱 MOBILE CHEAT SHEET: {account_name}\n\n"
        f"⚡ CRITICAL INSIGHT\n{summary.critical_insight}\n\n"
        f"💬 OPENING LINE\n\"{summary.opening_line}\"\n\n"
        f"❓ TOP 3 QUESTIONS\n{questions}\n\n"
        f"📊 KEY STATS\n{stats}\n\n"
        f"🚩 RISKS/DON'TS\n{risks}\n\n"
        f"💡 CONVERSATION STARTERS\n{starter_lines}\n\n"
        f"---\nGenerated: {generated_on.isoformat()}"
    )


def enhance_full_brief(full_brief: str, metadata: MeetingBriefMetadata) -> str:
    """Insert an executive summary block ahead of the first numbered section."""
    summary = metadata.executive_summary
    metrics = "\n".join(
        f"- **{m.metric}:** {m.value} → *{m.talking_point}*" for m in summary.key_metrics
    )
    questions = "\n".join(f'{i}. ✅ "{q}"' for i, q in enumerate(summary.top_questions, start=1))
    risks = "\n".join(f"- {r}" for r in summary.risks)

    exec_summary = (
        "\n## 🎯 EXECUTIVE SUMMARY (Read This First)\n\n"
        f"**🔴 Critical Insight:**\n{summary.critical_insight}\n\n"
        f"**💬 Your Opening Line:**\n> \"{summary.opening_line}\"\n\n"
        f"**📊 Key Data Points to Reference:**\n{metrics}\n\n"
        f"**⚡ Top 3 Questions to Ask:**\n{questions}\n\n"
        f"**🚩 Risks to Address:**\n{risks}\n\n"
        "---\n"
    )

    return _FIRST_SECTION.sub(
        lambda m: f"{m.group(1)}{exec_summary}\n{m.group(2)}", full_brief, count=1
    )


def format_meeting_brief(
    full_brief: str,
    account_name: str,
    generated_on: Optional[date] = None,
) -> FormattedMeetingBrief:
    """Convert raw brief text into the full, mobile and metadata formats."""
    metadata = parse_full_brief_to_metadata(full_brief)
    return FormattedMeetingBrief(
        full_brief=enhance_full_brief(full_brief, metadata),
        mobile_cheat_sheet=generate_mobile_cheat_sheet(metadata, account_name, generated_on),
        metadata=metadata,
    )

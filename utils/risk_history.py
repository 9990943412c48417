"""Rendering risk assessments into an opportunity's running risk history.

History is plain text: optional free-form notes at the top, then one block per
meeting date (newest first)::

    03/01/2025
    - Risk Level: HIGH
    - [Budget - High] Pricing concern: "that's well above what we budgeted"
"""
import re
from datetime import date, datetime, timezone, tzinfo

from models.insight_models import RiskAssessment

_DATE_HEADER = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def format_risk_for_history(assessment: RiskAssessment) -> list[str]:
    """Format a risk assessment as history lines.

    Output:
        Risk Level: HIGH
        [Budget - High] Customer expressed concern about pricing: "quote"
    """
    items = [f"Risk Level: {assessment.risk_level.value.upper()}"]
    for factor in assessment.risk_factors:
        category = factor.category.value.capitalize()
        severity = factor.severity.value.capitalize()
        items.append(f'[{category} - {severity}] {factor.description}: "{factor.evidence}"')
    return items


def format_date_us(value: date | datetime) -> str:
    return value.strftime("%m/%d/%Y")


def meeting_day(value: date | datetime, zone: tzinfo) -> date:
    """Calendar day of ``value`` as seen in ``zone``. Naive datetimes are read as UTC."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(zone).date()


def _parse_history(history: str | None) -> tuple[list[str], list[tuple[str, list[str]]]]:
    manual_notes: list[str] = []
    entries: list[tuple[str, list[str]]] = []
    if not history:
        return manual_notes, entries

    for block in re.split(r"\n\s*\n", history.strip()):
        lines = [line.rstrip() for line in block.strip().split("\n")]
        if lines and _DATE_HEADER.match(lines[0].strip()):
            items = [re.sub(r"^-\s*", "", line.strip()) for line in lines[1:] if line.strip()]
            entries.append((lines[0].strip(), items))
        else:
            manual_notes.append(block.strip())
    return manual_notes, entries


def update_history_for_date(history: str | None, meeting_date: date | datetime, items: list[str]) -> str:
    """Insert or replace the block for ``meeting_date`` and keep blocks newest first."""
    manual_notes, entries = _parse_history(history)
    date_key = format_date_us(meeting_date)

    entries = [(d, i) for d, i in entries if d != date_key]
    entries.append((date_key, items))
    entries.sort(key=lambda entry: datetime.strptime(entry[0], "%m/%d/%Y"), reverse=True)

    blocks = list(manual_notes)
    for entry_date, entry_items in entries:
        blocks.append("\n".join([entry_date] + [f"- {item}" for item in entry_items]))
    return "\n\n".join(blocks)

"""Deterministic text rendering shared by the prompt builders."""
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

STAGE_LABELS: dict[str, str] = {
    "discovery": "Discovery",
    "demo": "Demo",
    "validateSolution": "Validate Solution",
    "decisionMakerApproval": "Decision Maker Approval",
    "contracting": "Contracting",
    "closedWon": "Closed Won",
    "closedLost": "Closed Lost",
}

TRUNCATION_SUFFIX = "\n\n... (truncated)"


def stage_label(stage: Optional[str]) -> str:
    if not stage:
        return "Not specified"
    return STAGE_LABELS.get(stage, stage)


def numbered_list(items: Optional[Sequence[str]], empty_text: str) -> str:
    """Render ``1. item`` lines, or ``empty_text`` when there is nothing to list."""
    if not items:
        return empty_text
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def bullet_list(items: Optional[Iterable[str]], empty_text: str, quote: bool = False) -> str:
    rendered = [f'- "{item}"' if quote else f"- {item}" for item in (items or [])]
    return "\n".join(rendered) if rendered else empty_text


def truncate(text: Optional[str], limit: int, suffix: str = TRUNCATION_SUFFIX) -> str:
    """Cut ``text`` to ``limit`` characters and mark the cut."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def format_money(amount: Optional[float]) -> str:
    """Format an ARR amount as ``$1,250,000``."""
    if amount is None:
        return "Not specified"
    if float(amount).is_integer():
        return f"${int(amount):,}"
    return f"${amount:,.2f}"


def format_display_date(value: date | datetime | str) -> str:
    """Render a date as ``Jan 5, 2025``."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def format_contact_list(contacts: Sequence, empty_text: str = "- Not identified yet") -> str:
    """Render contacts as ``- First Last (Title) - sentiment`` lines."""
    if not contacts:
        return empty_text
    return "\n".join(
        f"- {c.first_name} {c.last_name} ({c.title or 'No title'}) - {c.sentiment}"
        for c in contacts
    )


def contacts_with_role(contacts: Sequence, role: str) -> list:
    return [c for c in contacts if c.role == role]

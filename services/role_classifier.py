"""Classifies free-text job titles into buying-committee roles."""
import asyncio
import logging
from typing import Sequence

from models.insight_models import ContactRole
from models.results import AIResult
from services.model_client import ModelClient

logger = logging.getLogger(__name__)

VALID_ROLES = {role.value for role in ContactRole}


class RoleClassifier:
    """Maps a role/title string to one of the five ``ContactRole`` values.

    Uses the fast model and accepts only a bare enum token as the answer.
    Anything else is an error; the reply is never coerced.
    """

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def classify(self, role_text: str) -> AIResult[ContactRole]:
        if not role_text or not role_text.strip():
            return AIResult.failed("Role text is required", "INVALID_INPUT")

        response = await self.model_client.invoke(
            f"Classify this role: {role_text.strip()}",
            self._get_system_prompt(),
            model=self.model_client.fast_model,
        )
        if not response.ok:
            return AIResult.failed(response.error, "MODEL_ERROR")

        token = response.text.strip().lower()
        if token not in VALID_ROLES:
            logger.warning(f"Invalid role classification: role_text={role_text!r}, reply={token!r}")
            return AIResult.failed(f"Invalid role classification: {token}", "INVALID_RESPONSE")

        return AIResult.succeeded(ContactRole(token))

    async def classify_many(self, roles: Sequence[str]) -> list[AIResult[ContactRole]]:
        """Classify several titles concurrently, preserving input order.

        An exception from one title becomes a failed result for that title only.
        """
        outcomes = await asyncio.gather(*(self.classify(role) for role in roles), return_exceptions=True)
        results = []
        for role, outcome in zip(roles, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Role classification raised: role_text={role!r}, error={outcome}")
                outcome = AIResult.failed(str(outcome), "UNEXPECTED_ERROR")
            results.append(outcome)
        return results

    def _get_system_prompt(self) -> str:
        return """You are a sales role classifier. Classify job titles and roles into one of these 5 categories for B2B sales tracking:

1. **decision_maker** - Final purchase approvers
   - C-level executives, VPs, Directors with budget authority
   - Owners, Founders, Partners, Procurement leads
   - Anyone with an explicit "Head of" title
   Examples: "CTO", "VP Engineering", "Director of IT", "Head of Product", "CFO"

2. **influencer** - People who shape the decision but don't make the final call
   - Managers, Team Leads, Tech Leads
   - Senior individual contributors with influence (Principal or Staff Engineer)
   - Committee or evaluation team members
   Examples: "Engineering Manager", "Senior Product Manager", "Tech Lead"

3. **champion** - Internal advocates actively pushing for the solution
   - Use ONLY if the role text mentions "champion", "advocate", "sponsor" or "supporter"

4. **blocker** - People opposing or creating obstacles
   - Use ONLY if the role text mentions "blocker", "opponent" or "resistant"

5. **end_user** - Individual contributors who will use the product
   - Engineers, Analysts, Coordinators, Specialists, junior roles
   - Any role not fitting the categories above

CLASSIFICATION RULES:
1. Return ONLY the enum value as plain text: decision_maker, influencer, champion, blocker, or end_user
2. NO JSON, NO explanation, NO quotes - just the enum value
3. When uncertain between two categories, prefer the higher authority level
4. "Manager" in a title means influencer, unless it is an IC role such as "Account Manager"
5. "Unknown" or empty context means end_user"""

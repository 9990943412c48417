"""Wires the pipeline services together for one application instance."""
import logging
from dataclasses import dataclass
from typing import Optional

from services.background_jobs import BackgroundJobRunner
from services.business_case_generator import BusinessCaseGenerator
from services.business_impact_proposal_generator import BusinessImpactProposalGenerator
from services.crm_repository import CRMRepository
from services.database import Database
from services.generation_jobs import GenerationJobs
from services.insight_consolidator import InsightConsolidator
from services.meeting_brief_generator import MeetingBriefGenerator
from services.model_client import ModelClient
from services.mutual_action_plan_generator import MutualActionPlanGenerator
from services.risk_analyzer import RiskAnalyzer
from services.role_classifier import RoleClassifier
from services.template_content_generator import TemplateContentGenerator
from services.transcript_parser import TranscriptParser

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Services shared by the routers, held on ``app.state.container``."""
    model_client: ModelClient
    repository: CRMRepository
    runner: BackgroundJobRunner
    transcript_parser: TranscriptParser
    risk_analyzer: RiskAnalyzer
    jobs: GenerationJobs
    database: Optional[Database] = None

    async def close(self) -> None:
        await self.runner.drain()
        if self.database is not None:
            await self.database.close()


def build_container(
    model_client: Optional[ModelClient] = None,
    database: Optional[Database] = None,
) -> ServiceContainer:
    """Build every service from environment configuration unless overridden."""
    model_client = model_client or ModelClient()
    database = database or Database()
    repository = CRMRepository(database)
    runner = BackgroundJobRunner()

    transcript_parser = TranscriptParser(model_client, RoleClassifier(model_client))
    risk_analyzer = RiskAnalyzer(model_client)
    jobs = GenerationJobs(
        repository=repository,
        runner=runner,
        transcript_parser=transcript_parser,
        risk_analyzer=risk_analyzer,
        insight_consolidator=InsightConsolidator(model_client),
        business_case_generator=BusinessCaseGenerator(model_client),
        proposal_generator=BusinessImpactProposalGenerator(model_client),
        map_generator=MutualActionPlanGenerator(model_client),
        meeting_brief_generator=MeetingBriefGenerator(model_client),
        template_generator=TemplateContentGenerator(model_client),
    )

    logger.info("Service container built")
    return ServiceContainer(
        model_client=model_client,
        repository=repository,
        runner=runner,
        transcript_parser=transcript_parser,
        risk_analyzer=risk_analyzer,
        jobs=jobs,
        database=database,
    )

from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI
import os
import logging
from services.container import build_container
from routers import analysis, calls, opportunities, documents

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Validate required environment variables
REQUIRED_ENV_VARS = ["OPENAI_API_KEY", "DATABASE_URL"]


def validate_environment() -> bool:
    """Log any required environment variables that are not set."""
    missing = [var for var in REQUIRED_ENV_VARS if not os.getenv(var)]
    if missing:
        logger.error(f"Missing required environment variables: {missing}")
        return False
    logger.info("Environment validation passed")
    return True


def log_configuration():
    logger.info("=" * 60)
    logger.info("Deal intelligence service configuration")
    logger.info(f"  Reasoning model: {os.getenv('OPENAI_MODEL', 'gpt-4o')}")
    logger.info(f"  Fast model: {os.getenv('OPENAI_FAST_MODEL', 'gpt-4o-mini')}")
    logger.info(f"  Seller company: {os.getenv('SELLER_COMPANY_NAME', 'not set')}")
    logger.info(f"  Risk history timezone: {os.getenv('RISK_HISTORY_TIMEZONE', 'UTC')}")
    logger.info("=" * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_environment()
    log_configuration()

    container = build_container()
    app.state.container = container

    # Recover records left in 'generating' by a crash or restart
    try:
        await container.repository.reap_stuck_jobs(max_age_minutes=30)
    except Exception as e:
        logger.error(f"Failed to reap stuck jobs: {e}", exc_info=True)

    yield

    await container.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Deal Intelligence Service", lifespan=lifespan)

# Include routers
app.include_router(analysis.router)
app.include_router(calls.router)
app.include_router(opportunities.router)
app.include_router(documents.router)


@app.get("/health")
async def health():
    container = getattr(app.state, "container", None)
    return {
        "status": "ok",
        "services_ready": container is not None,
        "jobs_in_flight": len(container.runner.in_flight()) if container else 0,
    }

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadflow.core.config import settings
from leadflow.core.database import async_session
from leadflow.core.errors import InsufficientDataError, NotFoundError, StateError, ValidationError
from leadflow.routers import analytics, campaigns, events, experiments, health, leads, scoring
from leadflow.services.scoring_queue import ScoringQueue

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.scoring_queue = ScoringQueue(
        async_session,
        max_retries=settings.SCORING_MAX_RETRIES,
        base_delay=settings.SCORING_RETRY_BASE_DELAY,
    )
    app.state.scoring_queue.start()
    logger.info("%s API started", settings.PROJECT_NAME)
    yield
    await app.state.scoring_queue.stop()
    logger.info("%s API shut down", settings.PROJECT_NAME)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


app.add_exception_handler(ValidationError, _error_handler(422))
app.add_exception_handler(StateError, _error_handler(status.HTTP_409_CONFLICT))
app.add_exception_handler(NotFoundError, _error_handler(status.HTTP_404_NOT_FOUND))
app.add_exception_handler(InsufficientDataError, _error_handler(422))

# Routers
app.include_router(health.router)
app.include_router(experiments.router, prefix=settings.API_V1_PREFIX)
app.include_router(events.router, prefix=settings.API_V1_PREFIX)
app.include_router(scoring.router, prefix=settings.API_V1_PREFIX)
app.include_router(analytics.router, prefix=settings.API_V1_PREFIX)
app.include_router(campaigns.router, prefix=settings.API_V1_PREFIX)
app.include_router(leads.router, prefix=settings.API_V1_PREFIX)

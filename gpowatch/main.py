from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from gpowatch.api.routes import drift as drift_router
from gpowatch.core.config import settings
from gpowatch.core.database import create_db_and_tables, get_db
from gpowatch.core.drift.store import SnapshotStore
from gpowatch.core.observability import initialize_metrics, setup_tracing, get_component_health

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler("gpowatch.log"),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    logger.info(f"{settings.PROJECT_NAME} started, watching {settings.WATCHED_ROOT}")
    yield


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Group Policy drift detection API",
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Set up observability
initialize_metrics(app)
tracer = setup_tracing()
if tracer is not None:
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def log_request_duration(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.debug(f"{request.method} {request.url.path} -> {response.status_code} in {duration:.3f}s")
    return response


app.include_router(drift_router.router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health(
    db: AsyncSession = Depends(get_db),
    store: SnapshotStore = Depends(drift_router.get_snapshot_store)
):
    """Component health of the service"""
    report = await get_component_health(db, store)
    status_code = 503 if report["status"] == "down" else 200
    return JSONResponse(content=report, status_code=status_code)

from contextlib import asynccontextmanager
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from healthtrack.core.config import settings
from healthtrack.core.exceptions import InvalidInput, NotFound, StorageFailure, Unauthenticated
from healthtrack.api import deps
from healthtrack.api.v1.api import api_router

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def _ensure_tables():
    from healthtrack.db.base import Base
    from healthtrack.db.session import engine
    import healthtrack.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info(f"✅ [Startup] Tables ready: {sorted(Base.metadata.tables)}")


def _reconcile_dirty_months():
    from healthtrack.services.reconciliation import RollupReconciler

    service = deps.get_activity_service()
    reconciler = RollupReconciler(service.store, service.aggregator)
    stats = reconciler.process_dirty_months(limit=settings.RECONCILE_BATCH_SIZE)
    if stats.failed:
        logger.warning(f"⚠️ [Startup] {stats.failed} dirty month(s) still pending recompute")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"🚀 Starting up {settings.PROJECT_NAME} ({settings.ENVIRONMENT}, storage={settings.STORAGE_BACKEND})")

    if settings.STORAGE_BACKEND == "sql" and settings.uses_sqlite:
        # Postgres schemas are managed by alembic
        _ensure_tables()

    if settings.RECONCILE_ON_STARTUP:
        try:
            _reconcile_dirty_months()
        except StorageFailure as e:
            logger.error(f"❌ [Startup] Dirty month reconciliation skipped: {e}")
    else:
        logger.info("⏸️ [Startup] Dirty month reconciliation disabled")

    yield

    logger.info(f"✅ {settings.PROJECT_NAME} shutdown complete")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_errors(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return JSONResponse(
        status_code=401,
        content={"detail": exc.message},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    logger.error(f"❌ [API] {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable, please retry"})


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health_check():
    return {"status": "ok", "service": settings.PROJECT_NAME, "version": settings.VERSION}


if __name__ == "__main__":
    uvicorn.run(
        "healthtrack.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.is_development,
    )

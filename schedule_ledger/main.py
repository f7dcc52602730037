import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from . import models  # noqa: F401 - registers tables on Base
from .cache import cache
from .config import CORS_ORIGINS
from .database import Base, SessionLocal, engine
from .domain.appointments.router import router as appointments_router
from .domain.appointments.router import rules_router
from .domain.clients.router import router as clients_router
from .domain.finance.router import router as finance_router
from .domain.reports.router import router as reports_router
from .exceptions import DatastoreUnavailable, RecurrenceValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    if cache._get_client() is None:
        logger.warning("Redis not available - reconcile cooldowns are disabled")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Schedule Ledger API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc.errors())})


@app.exception_handler(RecurrenceValidationError)
async def recurrence_validation_handler(request: Request, exc: RecurrenceValidationError):
    logger.warning(f"⚠️ Rejected recurrence for {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


@app.exception_handler(DatastoreUnavailable)
async def datastore_unavailable_handler(request: Request, exc: DatastoreUnavailable):
    logger.error(f"❌ Datastore unavailable for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Datastore temporarily unavailable, please retry"},
        headers={"Retry-After": "5"},
    )


def jsonable_errors(errors: list) -> list:
    """Pydantic error dicts may carry exception objects in `ctx`"""
    cleaned = []
    for error in errors:
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        cleaned.append(error)
    return cleaned


# Log CORS configuration for debugging
logger.info(f"CORS allowed origins: {CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(clients_router)
app.include_router(rules_router)
app.include_router(appointments_router)
app.include_router(finance_router)
app.include_router(reports_router)


@app.get("/health")
def health():
    """Liveness plus datastore reachability"""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error(f"❌ Health check database error: {e}")
        database = "unavailable"
    finally:
        db.close()
    return {"status": "healthy" if database == "ok" else "degraded", "database": database}

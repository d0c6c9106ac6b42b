"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from api.routes import health, raffles
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.exceptions import IndexerException
from core.logging import setup_logging
from indexer.service import IndexerService
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Raffle Indexer API",
    description="Read-only query API over indexed raffle events",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(raffles.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed path or query values are client errors"""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
        message = f"invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = "invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Log store failures, never expose their detail"""
    request_id = getattr(request.state, "request_id", None)
    logger.error(f"[{request_id}] Database error on {request.url.path}: {type(exc).__name__}")
    return JSONResponse(status_code=500, content={"error": "internal error"})


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Raffle Indexer API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.redacted_database_url()}")

    app.state.indexer = None
    if not settings.INDEXER_ENABLED:
        logger.info("In-process indexer disabled")
        return

    indexer = IndexerService(settings)
    try:
        await indexer.start()
    except IndexerException as e:
        # The API keeps serving whatever is already indexed
        logger.error(
            f"Indexer failed to start: {e.message}",
            extra={"error_context": e.to_dict()}
        )
        return
    app.state.indexer = indexer


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Raffle Indexer API")
    indexer = getattr(app.state, "indexer", None)
    if indexer is not None:
        await indexer.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Raffle Indexer API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "raffles": "/v1/raffles",
            "raffle": "/v1/raffles/{raffle_id}",
            "purchases": "/v1/raffles/{raffle_id}/purchases",
            "proof": "/v1/raffles/{raffle_id}/proof"
        }
    }

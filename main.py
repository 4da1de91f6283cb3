from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import logging
import structlog
import sys
import time
from contextlib import asynccontextmanager

from config import Settings, get_settings
from errors import AccountNotFoundError, LedgerError
from models import (
    ErrorResponse,
    HealthResponse,
    StatementResponse,
    TransactionRequest,
    TransactionResponse,
)
from repositories import get_account_repository
from services import LedgerService, get_ledger_service

settings = get_settings()


def configure_logging(settings: Settings) -> None:
    """Configure structured logging (JSON, or console output in text mode)."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level.upper(),
    )
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "text"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging(settings)
logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
RATE_LIMIT = f"{settings.rate_limit_per_minute}/minute"

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Credit Ledger API", accounts=get_account_repository().count())
    yield
    # Shutdown
    logger.info("Shutting down Credit Ledger API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Ledger of fixed accounts with credit limits, recent-history statements and atomic credit/debit transactions",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Bound fields are merged into every log line emitted for this request
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
    )
    started = time.perf_counter()

    response = await call_next(request)

    logger.info(
        "Request completed",
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response

# Dependency injection
def get_service(account_repo=Depends(get_account_repository)) -> LedgerService:
    return get_ledger_service(account_repo)

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get ledger statistics"
)
async def health_check(service: LedgerService = Depends(get_service)):
    try:
        accounts_count, transactions_count = await service.health()

        return HealthResponse(
            status="healthy",
            accounts_count=accounts_count,
            transactions_processed=transactions_count
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(
            status_code=500,
            detail="Health check failed"
        )

# Transaction endpoint
@app.post(
    "/accounts/{account_id}/transactions",
    response_model=TransactionResponse,
    summary="Apply Transaction",
    description="Credit or debit an account without letting its balance drop below the negative credit limit",
    responses={
        200: {"description": "Transaction applied"},
        404: {"description": "Account not found"},
        422: {"description": "Invalid transaction or credit limit exceeded"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"}
    }
)
@limiter.limit(RATE_LIMIT)
async def create_transaction(
    request: Request,
    account_id: str,
    transaction_request: TransactionRequest,
    service: LedgerService = Depends(get_service)
):
    try:
        result = await service.apply_transaction(account_id, transaction_request)
        return TransactionResponse.from_result(result)

    except LedgerError:
        # Expected outcome, already logged by the service
        raise

    except Exception as e:
        logger.error(
            "Transaction request failed with unexpected error",
            error=str(e),
            account_id=account_id,
            exc_info=True
        )
        raise HTTPException(
            status_code=500,
            detail="Internal server error"
        )

# Statement endpoint
@app.get(
    "/accounts/{account_id}/statement",
    response_model=StatementResponse,
    summary="Account Statement",
    description="Balance snapshot and the most recent transactions, newest first",
    responses={
        200: {"description": "Statement generated"},
        404: {"description": "Account not found"},
        429: {"description": "Rate limit exceeded"}
    }
)
@limiter.limit(RATE_LIMIT)
async def get_statement(
    request: Request,
    account_id: str,
    service: LedgerService = Depends(get_service)
):
    statement = await service.get_statement(account_id)
    return StatementResponse.from_statement(statement)

# Exception handlers
def error_response(status_code: int, detail: str, error_code: str, reasons=()) -> JSONResponse:
    body = ErrorResponse(detail=detail, error_code=error_code, reasons=list(reasons))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    status_code = 404 if isinstance(exc, AccountNotFoundError) else 422
    return error_response(status_code, exc.detail, exc.error_code, exc.reasons)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    reasons = [
        ".".join(str(part) for part in error["loc"]) + ": " + error["msg"]
        for error in exc.errors()
    ]
    return error_response(422, "Invalid request body", "INVALID_REQUEST", reasons)

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception", error=str(exc), exc_info=True)
    return error_response(500, "Internal server error", "INTERNAL_ERROR")

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )

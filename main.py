from fastapi import FastAPI, Request, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.concurrency import run_in_threadpool
from typing import Literal, Optional
import io
import structlog
import time
from contextlib import asynccontextmanager

from codec import read_operations, snapshot_to_csv
from config import get_settings
from exceptions import DecodeError, MalformedInput, PaymentsError
from logging_config import configure_logging
from models import BatchResponse, ErrorResponse, HealthResponse
from repositories import get_account_repository
from services import LedgerService, get_ledger_service

settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)


def batch_rate_limit() -> str:
    return f"{get_settings().rate_limit_per_minute}/minute"


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Payments Engine API")
    yield
    logger.info("Shutting down Payments Engine API")

app = FastAPI(
    title="Payments Engine API",
    description="Replays CSV batches of deposits, withdrawals, disputes, resolves and chargebacks "
                "and returns the final balance of every account",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

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
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Dependency injection: every request gets its own, empty registry
def get_service(account_repo=Depends(get_account_repository)) -> LedgerService:
    return get_ledger_service(account_repo)

@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health"
)
async def health_check():
    return HealthResponse(status="healthy", version=get_settings().app_version)

@app.post(
    "/batches",
    response_model=BatchResponse,
    summary="Process Batch",
    description="Apply a CSV stream (type, client, tx, amount) to a fresh set of accounts",
    responses={
        200: {"description": "Batch processed; rejected operations are listed in the body"},
        400: {"description": "Malformed header or non UTF-8 body"},
        413: {"description": "Body larger than the configured limit"},
        422: {"description": "Undecodable row while strict decoding is on"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"}
    }
)
@limiter.limit(batch_rate_limit)
async def process_batch(
    request: Request,
    output: Literal["json", "csv"] = Query("json", alias="format"),
    strict: Optional[bool] = Query(None, description="Abort on the first undecodable row"),
    service: LedgerService = Depends(get_service)
):
    current = get_settings()
    body = await request.body()
    if len(body) > current.max_request_size:
        raise HTTPException(status_code=413, detail="Request body too large")

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Request body must be UTF-8 encoded CSV")

    logger.info("Batch request received", size=len(body), output=output)

    # The replay is CPU bound; keep it off the event loop
    report = await run_in_threadpool(
        service.process,
        read_operations(io.StringIO(text, newline=""), trim=current.csv_trim),
        strict=current.strict_decoding if strict is None else strict,
    )

    if output == "csv":
        return PlainTextResponse(snapshot_to_csv(report.accounts), media_type="text/csv")
    return report

# Domain errors that abort a whole batch
@app.exception_handler(PaymentsError)
async def payments_exception_handler(request: Request, exc: PaymentsError):
    if isinstance(exc, MalformedInput):
        status_code = 400
    elif isinstance(exc, DecodeError):
        status_code = 422
    else:
        status_code = 500

    logger.warning("Batch rejected", error_code=exc.error_code, detail=exc.detail)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=exc.error_code
        ).model_dump(mode="json")
    )

# Global exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}"
        ).model_dump(mode="json")
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR"
        ).model_dump(mode="json")
    )

@app.get("/", include_in_schema=False)
async def root():
    return {"message": get_settings().app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )

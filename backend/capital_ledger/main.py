from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from capital_ledger.core.config import settings
from capital_ledger.core.exceptions import (
    ConflictError,
    NotFoundError,
    StoreError,
    SyncError,
    ValidationError,
)
from capital_ledger.api.endpoints import commitments, capital_calls, funds, calendar
import uvicorn
import logging

# Set up logging
logger = logging.getLogger("capital_ledger")
logger.setLevel(logging.INFO)
ch = logging.StreamHandler()
ch.setLevel(logging.INFO)
formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
ch.setFormatter(formatter)
logger.addHandler(ch)

# Dependency to log each request
def log_request(request: Request):
    logger.info(f"Handling request: {request.method} {request.url.path}")
    return logger

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Fund Commitment and Capital Call Ledger API",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    logger.error(
        f"Rescale failed on {request.url.path}; completed calls {exc.completed_call_ids}, "
        f"completed closing events {exc.completed_event_ids}"
    )
    return JSONResponse(status_code=500, content={
        "detail": exc.message,
        "completed_call_ids": exc.completed_call_ids,
        "completed_event_ids": exc.completed_event_ids,
    })


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc.__cause__!r}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Include routers
app.include_router(commitments.router, prefix="/api/commitments", tags=["commitments"])
app.include_router(capital_calls.router, prefix="/api/capital-calls", tags=["capital-calls"])
app.include_router(funds.router, prefix="/api/funds", tags=["funds"])
app.include_router(calendar.router, prefix="/api/calendar", tags=["calendar"])

@app.get("/")
async def root(logger: logging.Logger = Depends(log_request)):
    logger.info("Root endpoint hit.")
    return {
        "message": "Fund Commitment and Capital Call Ledger API",
        "version": settings.VERSION,
        "docs": "/docs",
    }

@app.get("/health")
async def health_check(logger: logging.Logger = Depends(log_request)):
    logger.info("Health check endpoint hit.")
    return {"status": "healthy"}

if __name__ == "__main__":
    from capital_ledger.db.session import init_db, wait_for_database
    wait_for_database()
    init_db()
    uvicorn.run(app, host="0.0.0.0", port=8000)

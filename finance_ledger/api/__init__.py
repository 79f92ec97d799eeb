"""
Finance Ledger API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import ConflictError, LedgerError, NotFoundError, StorageError, ValidationError
from ..logging_config import get_logger, log_action
from .loans import router as loans_router
from .debts import router as debts_router
from .expenses import router as expenses_router


ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    StorageError: 503,
}

logger = get_logger("finance_ledger.api")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Finance Ledger API",
        description="Loan amortization and monthly expense ledger synchronization",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            500
        )
        if status_code >= 500:
            log_action(
                logger, "error", exc.message,
                user_id=request.headers.get("x-user-id"),
                action=f"{request.method} {request.url.path}"
            )
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.message, "retryable": exc.retryable}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # Malformed bodies are input errors like any other ValidationError
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors()), "retryable": False}
        )

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(debts_router, prefix="/debts", tags=["Debts"])
    app.include_router(expenses_router, prefix="/expenses", tags=["Expenses"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "finance_ledger_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Finance Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "debts": "/debts",
                "expenses": "/expenses/monthly",
            }
        }

    return app


app = create_app()

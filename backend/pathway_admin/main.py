"""
Pathway Admin - FastAPI Application

Back end of the Pathway admin console.

Architecture:
- Document store (SQL documents table or Firestore) holds users, letters,
  articles, videos, chats and support threads
- Services normalize documents once and compute the small report shapes the
  console renders
- Identity accounts, reset requests and content drafts live in SQL tables
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import CORS_ORIGINS, LOG_LEVEL
from .database import init_db
from .errors import (
    TOO_MANY_REQUESTS,
    USER_NOT_FOUND,
    WRONG_PASSWORD,
    DocumentNotFoundError,
    IdentityError,
    ServiceError,
    StoreError,
    ValidationError,
)
from .routers import (
    analytics_router,
    auth_router,
    content_router,
    dashboard_router,
    reports_router,
    support_router,
    users_router,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Pathway Admin",
    description="""
    Pathway Admin - Credit Repair Console API

    ## Areas
    1. **Dashboard**: headline stats, daily usage, recent activity
    2. **Analytics**: active users, membership, engagement, top articles, export
    3. **Reports**: disputes, mailing logs, user journeys, support issues
    4. **Users**: list, details, create, edit
    5. **Content**: articles, videos, drafts
    6. **Support**: ticket threads and replies

    Every date range is computed in DASHBOARD_TIMEZONE.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(dashboard_router)
app.include_router(analytics_router)
app.include_router(reports_router)
app.include_router(users_router)
app.include_router(content_router)
app.include_router(support_router)


# =============================================================================
# ERROR TRANSLATION
# =============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(DocumentNotFoundError)
async def not_found_handler(request: Request, exc: DocumentNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError):
    if exc.code == TOO_MANY_REQUESTS:
        code = status.HTTP_429_TOO_MANY_REQUESTS
    elif exc.code in (WRONG_PASSWORD, USER_NOT_FOUND):
        code = status.HTTP_401_UNAUTHORIZED
    else:
        code = status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content={"detail": str(exc), "code": exc.code})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "The data store is unavailable. Please try again."},
    )


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Pathway Admin",
        "version": __version__,
        "description": "Credit Repair Console API",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m pathway_admin.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)

"""
AskEdith Backend API
FastAPI application for sending elder-care outreach emails to providers.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from app import db, settings
from app.dependencies import get_config_service
from app.routers import direct, email, nylas

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="AskEdith API",
    description="Outreach email to elder-care providers via SendGrid or a linked mailbox",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local dev servers:
    - http://localhost:5000  (Express-compatible dev port)
    - http://localhost:5173  (Vite dev server)

    Additional origins are read from the CORS_ORIGINS environment variable
    as a comma-separated list, e.g.:
        CORS_ORIGINS=https://askedith.org,https://preview.askedith.org

    Duplicates are removed while preserving order.
    """
    always_included = [
        "http://localhost:5000",
        "http://localhost:5173",
    ]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    # Deduplicate while preserving order
    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


# CORS configuration: credentials are required for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Signed-cookie session holding the Nylas grant id
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    max_age=settings.SESSION_MAX_AGE,
    same_site="lax",
    https_only=settings.is_production(),
)

# Include routers
app.include_router(email.router, prefix="/api/email", tags=["email"])
app.include_router(nylas.router, prefix="/api/nylas", tags=["nylas"])
app.include_router(direct.router, prefix="/api/direct", tags=["direct"])


@app.on_event("startup")
async def log_startup_config() -> None:
    """Load (or create) the email config and log which provider is active."""
    if settings.SESSION_SECRET == settings.DEV_SESSION_SECRET:
        logger.warning("SESSION_SECRET is not set; using the development default")

    config = await get_config_service().get()
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        f"AskEdith API running at http://localhost:{host_port} "
        f"(email provider: {config.email_service.provider})"
    )


@app.get("/")
async def root():
    return {"message": "AskEdith API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase connection used for the email audit log.

    Returns 503 when the client is not configured or the email_logs table
    cannot be queried.
    """
    if db.supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_URL / SUPABASE_SERVICE_KEY not configured",
        )

    try:
        db.supabase_admin.table("email_logs").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )

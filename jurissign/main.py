"""
JurisSign - Digital Signature & Document Certification Service
FastAPI application for the legal CRM's signing workflow.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as PydanticValidationError

from jurissign.config import get_cors_origins, get_settings
from jurissign.exceptions import (
    AppException,
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from jurissign.routers import health, requests, signing, verification
from jurissign.utils.logging import RequestIdMiddleware, get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        environment=settings.environment,
        level=logging.DEBUG if settings.debug else logging.INFO,
    )
    logger.info(
        f"Starting JurisSign v1.0.0 ({settings.environment}, "
        f"storage={settings.storage_backend}, persistence={settings.persistence_backend})"
    )
    yield
    logger.info("Shutting down JurisSign")


app = FastAPI(
    title="JurisSign",
    description="""Signature and certification service for the legal CRM.

## Authentication

### 1. Admin Secret + User ID (Edge Function calls)
CRM endpoints under `/v1/requests` require:
- `X-Admin-Secret`: Admin API secret
- `X-User-ID`: Acting user's Supabase UUID
- `X-User-Email`, `X-User-Name`: optional

### 2. Signing link token
`/v1/signing/sessions/{token}` endpoints are authorized by the token in the path.

### 3. Public
`/v1/verify` endpoints are public and rate-limited per IP.
""",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "requests", "description": "Signature request management (CRM)"},
        {"name": "signing", "description": "Signing workflow (public, token-based)"},
        {"name": "verification", "description": "Public signature verification"},
        {"name": "health", "description": "Health check endpoints"},
    ],
)

# Middleware
app.add_middleware(RequestIdMiddleware)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_origin_regex=settings.allowed_origin_regex or None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(PydanticValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(health.router)
app.include_router(requests.router)
app.include_router(signing.router)
app.include_router(verification.router)


# Run with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jurissign.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )

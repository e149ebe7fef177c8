# apps/backend/linguista/main.py
from __future__ import annotations

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import init_db

from .billing_stripe import router as billing_router
from .routes_verification import router as verification_router
from .cors import json_response
from .errors import InvalidArgument, LinguistaError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(_: FastAPI):
    if AUTO_CREATE_TABLES:
        init_db()
    yield


app = FastAPI(
    title="Linguista Entitlements API",
    version=os.getenv("APP_VERSION", "0.1.0"),
    lifespan=lifespan,
)

# CORS: OPTIONS routes answer preflights, json_response adds CORS_HEADERS
app.include_router(billing_router)
app.include_router(verification_router)


# =========================================================
# Errors -> {"error": message}
# =========================================================
@app.exception_handler(LinguistaError)
async def linguista_error_handler(request: Request, exc: LinguistaError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return json_response({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return json_response({"error": str(exc.detail)}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    err = InvalidArgument("Invalid request body")
    return json_response({"error": err.message}, status_code=err.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return json_response({"error": "Internal server error"}, status_code=500)


# =========================================================
# Health / Version
# =========================================================
@app.get("/", response_class=PlainTextResponse)
def root():
    return "linguista-entitlements OK"


@app.get("/health")
def health():
    return {"status": "healthy"}

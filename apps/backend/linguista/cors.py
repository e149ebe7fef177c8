# apps/backend/linguista/cors.py
from __future__ import annotations

from typing import Any

from fastapi import Response
from fastapi.responses import JSONResponse

# Sent on every response, errors included, so browser callers can read them.
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def json_response(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content, status_code=status_code, headers=CORS_HEADERS)


def preflight() -> Response:
    """Empty 200 for OPTIONS."""
    return Response(status_code=200, headers=CORS_HEADERS)

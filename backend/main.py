from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path

from dotenv import load_dotenv

# Load .env from backend directory so DOCUMENT_BRAND_ID, CLAUSES_CONFIG_PATH etc. are available
load_dotenv(Path(__file__).resolve().parent / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from errors import (
    CalculationError,
    DocumentError,
    PayloadError,
    RenderError,
    UnknownDocumentTypeError,
)
from reporting.pdf_builder import check_pdf_runtime
from routes.api import router as api_router

VERSION = (os.environ.get("APP_VERSION") or "").strip() or "0.1.0"

_LOG = logging.getLogger("uvicorn.error")

app = FastAPI(title="Rental Document Engine", version="0.1.0")

# CORS: use ALLOWED_ORIGINS env (comma-separated) if set, else default
_origins_env = os.environ.get("ALLOWED_ORIGINS", "").strip()
if _origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Document-Number", "X-Page-Count", "X-Document-Warnings", "Content-Disposition"],
)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logging.getLogger("uvicorn.error").info(
            "request_id=%s method=%s path=%s status=%s duration_ms=%.0f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers["X-Request-Id"] = request_id
        return response


app.add_middleware(RequestLogMiddleware)
app.include_router(api_router)


def _status_for(exc: DocumentError) -> int:
    if isinstance(exc, UnknownDocumentTypeError):
        return 404
    if isinstance(exc, (PayloadError, CalculationError)):
        return 422
    if isinstance(exc, RenderError):
        return 503
    return 400


@app.exception_handler(DocumentError)
async def document_error_handler(request: Request, exc: DocumentError) -> JSONResponse:
    status = _status_for(exc)
    rid = getattr(request.state, "request_id", "")
    if status >= 500:
        _LOG.error("DOCUMENT_FAILED rid=%s code=%s err=%s", rid, exc.code, exc)
    else:
        _LOG.info("DOCUMENT_REJECTED rid=%s code=%s err=%s", rid, exc.code, exc)
    return JSONResponse(
        status_code=status,
        content={"error": exc.code, "detail": str(exc), "field": getattr(exc, "field", None)},
    )


@app.exception_handler(ValidationError)
async def payload_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Prepared payloads that fail their schema (raised inside the engine, not by request parsing)."""
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())) or None
    _LOG.info("PAYLOAD_INVALID rid=%s field=%s", getattr(request.state, "request_id", ""), field)
    return JSONResponse(
        status_code=422,
        content={
            "error": "payload_invalid",
            "detail": first.get("msg", "Invalid payload"),
            "field": field,
            "errors": errors,
        },
    )


@app.get("/health")
def health():
    return {"status": "ok", "version": VERSION}


@app.get("/health/pdf")
def health_pdf():
    """
    Runtime check for Playwright PDF dependencies.
    Returns 200 only when Chromium can launch successfully.
    """
    try:
        check_pdf_runtime()
    except RenderError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"status": "ok", "pdf_runtime": "ready"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8010,
        reload=True,
    )

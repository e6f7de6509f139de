# creativedesk/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from creativedesk.api.routes import (
    health,
    board,
    me,
    tickets,
)

from creativedesk.core.config import settings
from creativedesk.core.errors import AppError
from creativedesk.core.logging import setup_logging, RequestIdMiddleware, log_extra

setup_logging(settings.log_level)
log = logging.getLogger("creativedesk")

app = FastAPI(
    title="Creative Desk",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url=None,
    openapi_url="/api/openapi.json",
)

# ==== Middlewares ====
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


# ==== Помилки -> {detail, code} ====
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    log.log(level, "app_error", extra=log_extra(
        request,
        path=request.url.path,
        code=exc.code,
        status=exc.status_code,
        detail=exc.message,
    ))
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{field}: {message}" if field else message
    log.info("request_invalid", extra=log_extra(request, path=request.url.path, detail=detail))
    return JSONResponse(status_code=400, content={"detail": detail, "code": "validation"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled_error", extra=log_extra(request, path=request.url.path))
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "server_error"})


# ==== API під /api ====
app.include_router(health.router,  prefix="/api",         tags=["health"])
app.include_router(me.router,      prefix="/api/me",      tags=["me"])
app.include_router(board.router,   prefix="/api/board",   tags=["board"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["tickets"])

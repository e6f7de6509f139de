# creativedesk/core/logging.py
import contextvars
import logging
import logging.config
import uuid
from typing import Any, Mapping
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# id поточного HTTP-запиту; поза запитом (воркер, скрипти) — "-"
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")

# атрибути, які є в кожному LogRecord; все інше прийшло через extra=
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id"}


class RequestIdFilter(logging.Filter):
    """Ставить request_id у кожен запис, навіть із сервісного шару без доступу до Request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get()
        return True


class KeyValueFormatter(logging.Formatter):
    """Plain-рядок + поля з extra у вигляді key=value (події логуються snake_case-ім'ям)."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")}
        if not fields:
            return line
        return line + " " + " ".join(f"{k}={v}" for k, v in sorted(fields.items()))


def setup_logging(level: str = "INFO") -> None:
    """Єдина конфігурація логів для апки, воркера та Uvicorn."""
    LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "kv": {"()": KeyValueFormatter, "format": LOG_FORMAT},
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "kv", "filters": ["request_id"]},
        },
        "loggers": {
            "": {"handlers": ["default"], "level": level},
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["default"], "level": level, "propagate": False},
            # SQL-логи лише на DEBUG, інакше забивають stdout
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    X-Request-ID: береться з вхідного заголовка або генерується, повертається
    у відповіді й живе в contextvar на час обробки запиту.
    """

    header_name = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response: Response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[self.header_name] = request_id
        return response


def log_extra(request: Request, **fields: Any) -> Mapping[str, Any]:
    """
    Хелпер для роутерів і обробників помилок:
    log.info("status_change_request", extra=log_extra(request, ticket_id=t.id))
    """
    extra = dict(fields)
    rid = getattr(request.state, "request_id", None)
    if rid:
        extra["request_id"] = rid
    return extra

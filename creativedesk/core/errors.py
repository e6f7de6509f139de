"""
Помилки застосунку.

Сервіси кидають ці винятки, main.py перетворює їх на JSON {detail, code}.
Клієнтська бібліотека (creativedesk.client) мапить HTTP-статуси назад
на ті самі класи, тож UI-код обробляє однакові типи з обох боків.
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for application errors."""
    status_code: int = 500
    code: str = "server_error"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(AppError):
    """Актор автентифікований, але його роль не дає такої можливості."""
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class WorkflowValidationError(AppError):
    """Не вистачає даних для переходу (наприклад, фідбеку)."""
    status_code = 400
    code = "validation"


class IllegalTransitionError(AppError):
    """Сам статус не дозволяє такого переходу."""
    status_code = 409
    code = "illegal_transition"


class LimitReachedError(AppError):
    status_code = 409
    code = "limit_reached"


class TransportError(AppError):
    """Мережа, 5xx або відповідь, що не пройшла схему — стан на сервері невідомий."""
    status_code = 502
    code = "transport"


ERRORS_BY_CODE: dict[str, type[AppError]] = {
    cls.code: cls
    for cls in (
        AuthenticationError,
        AuthorizationError,
        NotFoundError,
        WorkflowValidationError,
        IllegalTransitionError,
        LimitReachedError,
        TransportError,
    )
}

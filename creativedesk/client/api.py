"""
HTTP-клієнт workflow API (httpx).

Кожна відповідь проходить сувору схему (pydantic) на межі: все, що не
збігається зі схемою, — TransportError, як і мережеві помилки та 5xx.
HTTP-помилки 4xx мапляться на ті самі класи AppError, що кидає сервер.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from creativedesk.core.errors import (
    ERRORS_BY_CODE,
    AppError,
    AuthenticationError,
    AuthorizationError,
    IllegalTransitionError,
    NotFoundError,
    TransportError,
    WorkflowValidationError,
)
from creativedesk.db.models import TicketStatusEnum as Status
from creativedesk.schemas.revisions import AssetIn, RevisionOut
from creativedesk.schemas.tickets import BoardOut, BulkStatusOut, StatusChangeOut, TicketOut
from creativedesk.schemas.users import CapabilitiesOut

log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_REVISIONS = TypeAdapter(list[RevisionOut])

# якщо сервер не віддав code — вгадуємо клас за статусом
_ERRORS_BY_STATUS: dict[int, type[AppError]] = {
    400: WorkflowValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: IllegalTransitionError,
    422: WorkflowValidationError,
}


def error_from_response(response: httpx.Response) -> AppError:
    detail: Optional[str] = None
    code: Optional[str] = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if isinstance(body.get("detail"), str):
            detail = body["detail"]
        if isinstance(body.get("code"), str):
            code = body["code"]

    if response.status_code >= 500:
        return TransportError(detail or f"Server error ({response.status_code})")

    cls = ERRORS_BY_CODE.get(code or "") or _ERRORS_BY_STATUS.get(response.status_code)
    if cls is None:
        return TransportError(detail or f"Unexpected response ({response.status_code})")
    return cls(detail or f"Request failed ({response.status_code})")


class WorkflowApiClient:
    def __init__(
        self,
        base_url: str = "",
        *,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
            timeout=timeout,
        )
        if client is not None and token:
            self._client.headers.update(headers)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WorkflowApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            log.warning("request_failed", extra={"method": method, "path": path, "error": str(e)})
            raise TransportError(f"Network error: {e}") from e

        if response.status_code >= 400:
            err = error_from_response(response)
            log.info("request_rejected", extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "code": err.code,
            })
            raise err

        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Malformed JSON in server response") from e

    @staticmethod
    def _parse(model: type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"Unexpected {model.__name__} payload from server") from e

    # ---- reads ----

    async def fetch_board(self) -> BoardOut:
        return self._parse(BoardOut, await self._request("GET", "/api/board"))

    async def fetch_ticket(self, ticket_id: int) -> TicketOut:
        return self._parse(TicketOut, await self._request("GET", f"/api/tickets/{ticket_id}"))

    async def fetch_capabilities(self) -> CapabilitiesOut:
        return self._parse(CapabilitiesOut, await self._request("GET", "/api/me/capabilities"))

    async def fetch_revisions(self, ticket_id: int) -> list[RevisionOut]:
        data = await self._request("GET", f"/api/tickets/{ticket_id}/revisions")
        try:
            return _REVISIONS.validate_python(data)
        except ValidationError as e:
            raise TransportError("Unexpected revisions payload from server") from e

    # ---- mutations ----

    async def change_status(
        self,
        ticket_id: int,
        status: Status,
        *,
        feedback_message: Optional[str] = None,
        creative_message: Optional[str] = None,
        assets: Sequence[AssetIn] = (),
    ) -> StatusChangeOut:
        body: dict[str, Any] = {"status": Status(status).value}
        if feedback_message is not None:
            body["feedbackMessage"] = feedback_message
        if creative_message is not None:
            body["creativeMessage"] = creative_message
        if assets:
            body["assets"] = [a.model_dump(by_alias=True) for a in assets]
        data = await self._request("PATCH", f"/api/tickets/{ticket_id}/status", json=body)
        return self._parse(StatusChangeOut, data)

    async def bulk_change_status(self, ticket_ids: Iterable[int], status: Status) -> BulkStatusOut:
        body = {"ticketIds": list(ticket_ids), "status": Status(status).value}
        return self._parse(BulkStatusOut, await self._request("PATCH", "/api/tickets/bulk-status", json=body))

    async def attach_assets(self, ticket_id: int, revision_id: int, assets: Sequence[AssetIn]) -> RevisionOut:
        body = {"assets": [a.model_dump(by_alias=True) for a in assets]}
        data = await self._request("POST", f"/api/tickets/{ticket_id}/revisions/{revision_id}/assets", json=body)
        return self._parse(RevisionOut, data)

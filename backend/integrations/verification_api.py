"""
Verification Service Client

HTTP client for the remote verification API. Serves both seams:
  - status snapshots for capability checks (GET, retried on transport/5xx)
  - bulk transitions and export rows (POST, never retried: not idempotent)

Credential failures on the bulk endpoints mean the whole channel is unusable
and surface as OrchestrationFault; anything else is confined to the requested
ids and surfaces as PerItemTransitionError.
"""

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from bulk.models import OperationType
from core.config import Settings, get_settings
from core.errors import OrchestrationFault, PerItemTransitionError, TransientFetchError
from integrations.base import BulkTransitionBackend, TransitionResult, VerificationStatusProvider
from verification.status import BusinessStatus

logger = structlog.get_logger()

# operation -> (path, extra body fields)
OPERATION_ENDPOINTS: dict[OperationType, tuple[str, dict[str, str]]] = {
    OperationType.APPROVE: ("/admin/verification/bulk/approve", {}),
    OperationType.REJECT: ("/admin/verification/bulk/reject", {}),
    OperationType.ACTIVATE: ("/admin/accounts/bulk/status", {"status": "active"}),
    OperationType.SUSPEND: ("/admin/accounts/bulk/status", {"status": "suspended"}),
    OperationType.MESSAGE: ("/admin/messages/bulk", {}),
}

EXPORT_ROWS_PATH = "/admin/entities/export-rows"

CHANNEL_BROKEN_STATUSES = {401, 403}


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def _unwrap(payload: Any) -> Any:
    """Responses may come wrapped as ``{"success": true, "data": ...}``."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _error_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "reason", "error"):
            if isinstance(body.get(key), str) and body[key].strip():
                return body[key].strip()
    return f"HTTP {response.status_code}"


class VerificationApiClient(VerificationStatusProvider, BulkTransitionBackend):
    """Client for the verification service API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout_seconds: float = 10.0,
        retries: int = 3,
        retry_backoff_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self.timeout_seconds = timeout_seconds
        self.retries = max(retries, 1)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.transport = transport
        self.logger = logger.bind(client="verification_api", base_url=self.base_url)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "VerificationApiClient":
        settings = settings or get_settings()
        return cls(
            settings.verification_api_url,
            settings.verification_api_token,
            timeout_seconds=settings.verification_api_timeout_seconds,
            retries=settings.status_fetch_retries,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )

    # ── Status snapshots ──────────────────────────────────────────────────

    async def _get_status_payload(self, user_id: str) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=self.retry_backoff_seconds, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                async with self._client() as client:
                    response = await client.get(f"/users/{quote(user_id, safe='')}/business-status")
                    response.raise_for_status()
                    return response.json()

    async def fetch(self, user_id: str) -> BusinessStatus:
        """Fetch the business status snapshot for ``user_id``."""
        try:
            payload = await self._get_status_payload(user_id)
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.warning("verification.status.fetch_failed", user_id=user_id, error=str(exc))
            raise TransientFetchError(f"Could not fetch business status for {user_id}") from exc

        data = _unwrap(payload)
        if not isinstance(data, dict):
            self.logger.warning("verification.status.malformed", user_id=user_id)
            raise TransientFetchError(f"Malformed business status for {user_id}")
        try:
            return BusinessStatus.from_payload(data, user_id=user_id)
        except (TypeError, ValueError, AttributeError) as exc:
            self.logger.warning("verification.status.malformed", user_id=user_id, error=str(exc))
            raise TransientFetchError(f"Malformed business status for {user_id}") from exc

    # ── Bulk transitions ──────────────────────────────────────────────────

    async def _post(self, path: str, body: dict[str, Any], label: str) -> Any:
        try:
            async with self._client() as client:
                response = await client.post(path, json=body)
        except httpx.TransportError as exc:
            raise PerItemTransitionError(label, f"transport error: {exc.__class__.__name__}") from exc

        if response.status_code in CHANNEL_BROKEN_STATUSES:
            self.logger.error("verification.bulk.channel_refused", path=path, status=response.status_code)
            raise OrchestrationFault(f"verification service refused bulk request ({response.status_code})")
        if response.is_error:
            raise PerItemTransitionError(label, _error_reason(response))
        try:
            return _unwrap(response.json())
        except ValueError as exc:
            raise PerItemTransitionError(label, "malformed response") from exc

    async def transition(
        self,
        operation: OperationType,
        entity_ids: list[str],
        *,
        reason: str | None = None,
        message: str | None = None,
        notify: bool = True,
    ) -> TransitionResult:
        endpoint = OPERATION_ENDPOINTS.get(operation)
        if endpoint is None:
            raise OrchestrationFault(f"No bulk endpoint for operation: {operation.value}")
        path, extra = endpoint

        body: dict[str, Any] = {"entityIds": list(entity_ids), "notify": notify, **extra}
        if reason:
            body["reason"] = reason
        if message:
            body["message"] = message

        data = await self._post(path, body, ",".join(entity_ids))
        if not isinstance(data, dict):
            raise PerItemTransitionError(",".join(entity_ids), "malformed response")
        return TransitionResult.from_payload(data, list(entity_ids))

    async def fetch_export_rows(self, entity_ids: list[str]) -> list[dict[str, Any]]:
        data = await self._post(EXPORT_ROWS_PATH, {"entityIds": list(entity_ids)}, "export")
        rows = data.get("rows") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise PerItemTransitionError("export", "malformed response")
        return [row for row in rows if isinstance(row, dict)]

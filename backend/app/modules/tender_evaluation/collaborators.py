"""Contracts for the services that feed an evaluation, plus an HTTP implementation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from backend.app.common.http_retry import create_http_retry_decorator, safe_timeout, with_http_logging
from backend.app.core.config import Settings

from .domain import Firm
from .errors import CollaboratorError
from .schemas import FeeScheduleNode, FirmSchema, SubmittedPrice

logger = logging.getLogger(__name__)


class FirmRegistry(Protocol):
    def list_shortlisted_firms(self, project_id: str, discipline_id: str) -> List[Firm]: ...


class FeeStructureSource(Protocol):
    def get_fee_structure(self, project_id: str, discipline_id: str) -> List[FeeScheduleNode]: ...


class TenderSubmissionStore(Protocol):
    def get_submitted_prices(self, project_id: str, discipline_id: str) -> List[SubmittedPrice]: ...


_firms_adapter = TypeAdapter(List[Dict[str, Any]])
_fee_adapter = TypeAdapter(List[FeeScheduleNode])
_prices_adapter = TypeAdapter(List[SubmittedPrice])


def _unwrap_items(payload: Any) -> Any:
    if isinstance(payload, dict):
        for key in ("items", "data", "firms"):
            if key in payload:
                return payload[key]
    return payload


class HttpCollaboratorClient:
    """Talk to the project directory API that owns firms, fee structures and submissions.

    Connection errors, timeouts and 5xx responses are retried; anything still
    failing surfaces as ``CollaboratorError``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: Any = 15.0,
        max_attempts: int = 3,
        retry_wait_seconds: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=safe_timeout(timeout),
            transport=transport,
        )
        self._send = create_http_retry_decorator(
            max_attempts=max(1, max_attempts),
            min_wait_seconds=retry_wait_seconds,
            max_wait_seconds=max(retry_wait_seconds * 16, retry_wait_seconds),
        )(self._send_once)

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["HttpCollaboratorClient"]:
        if not settings.collaborator_base_url:
            return None
        return cls(
            settings.collaborator_base_url,
            api_key=settings.collaborator_api_key,
            timeout=settings.collaborator_timeout_seconds,
            max_attempts=settings.collaborator_max_attempts,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ protocol methods
    def list_shortlisted_firms(self, project_id: str, discipline_id: str) -> List[Firm]:
        rows = self._get_items(f"/projects/{project_id}/disciplines/{discipline_id}/firms", _firms_adapter)
        firms: List[Firm] = []
        for row in rows:
            if row.get("shortListed", row.get("shortlisted", True)) is False:
                continue
            try:
                schema = FirmSchema.model_validate(row)
            except PydanticValidationError as exc:
                raise CollaboratorError(f"Malformed firm record from registry: {row!r}") from exc
            firms.append(Firm(id=schema.id, name=schema.name))
        return firms

    def get_fee_structure(self, project_id: str, discipline_id: str) -> List[FeeScheduleNode]:
        return self._get_items(f"/projects/{project_id}/disciplines/{discipline_id}/fee-structure", _fee_adapter)

    def get_submitted_prices(self, project_id: str, discipline_id: str) -> List[SubmittedPrice]:
        return self._get_items(
            f"/projects/{project_id}/disciplines/{discipline_id}/tender-submissions/prices",
            _prices_adapter,
        )

    # ------------------------------------------------------------------ internal
    def _get_items(self, path: str, adapter: TypeAdapter) -> Sequence[Any]:
        try:
            response = self._send("GET", path)
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"Request to {path} failed: {exc}") from exc
        try:
            return adapter.validate_python(_unwrap_items(response.json()))
        except (ValueError, PydanticValidationError) as exc:
            raise CollaboratorError(f"Unexpected payload from {path}") from exc

    @with_http_logging("project_directory")
    def _send_once(self, method: str, url: str) -> httpx.Response:
        response = self._client.request(method, url)
        response.raise_for_status()
        return response

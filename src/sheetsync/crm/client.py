"""Authorized HTTP access to the Pipedrive REST API.

PipedriveClient is the request capability the entity adapters consume. It
sends Bearer-authenticated JSON requests through httpx and, on a 401,
refreshes the access token once and retries once (tenacity). Nothing else is
retried: other failures surface immediately as TransportError.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from src.sheetsync.config import Settings
from src.sheetsync.errors import AuthError, TransportError
from src.sheetsync.fields.schemas import EntityKind, FieldDefinition

logger = structlog.get_logger(__name__)

FIELD_ENDPOINTS: dict[EntityKind, str] = {
    EntityKind.DEAL: "dealFields",
    EntityKind.PERSON: "personFields",
    EntityKind.ORGANIZATION: "organizationFields",
    EntityKind.ACTIVITY: "activityFields",
    EntityKind.LEAD: "dealFields",  # leads share deal custom fields
    EntityKind.PRODUCT: "productFields",
}

FIELDS_PAGE_SIZE = 500


class TokenProvider(Protocol):
    """Supplies and refreshes OAuth access tokens."""

    def access_token(self) -> str | None: ...

    def refresh(self) -> bool: ...


class StaticTokenProvider:
    """Token provider for a fixed token that cannot be refreshed."""

    def __init__(self, token: str) -> None:
        self._token = token

    def access_token(self) -> str | None:
        return self._token or None

    def refresh(self) -> bool:
        return False


class _TokenExpired(Exception):
    """Internal signal: the server answered 401."""


class PipedriveClient:
    """Synchronous Pipedrive API client with a single 401 refresh-and-retry.

    Args:
        base_url: API base, e.g. https://acme.pipedrive.com/v1.
        tokens: Access token provider.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenProvider,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = tokens
        self._http = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        tokens: TokenProvider | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> PipedriveClient:
        return cls(
            base_url=settings.api_base_url,
            tokens=tokens or StaticTokenProvider(settings.PIPEDRIVE_API_TOKEN),
            timeout=settings.REQUEST_TIMEOUT,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> PipedriveClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _refresh_before_retry(self, retry_state: RetryCallState) -> None:
        logger.info("crm.token_refresh", attempt=retry_state.attempt_number)
        if not self._tokens.refresh():
            raise AuthError("Authentication failed. Please reconnect to Pipedrive.")

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authorized request and return the parsed JSON body.

        Raises:
            AuthError: No token, refresh failed, or still 401 after refresh.
            TransportError: Network failure, non-2xx status, unusable body,
                or a body with success=false.
        """
        retrying = Retrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(_TokenExpired),
            before_sleep=self._refresh_before_retry,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._send(method, path, json, params)
        except _TokenExpired as exc:
            logger.error("crm.auth_failed", method=method, path=path)
            raise AuthError("Authentication failed. Please reconnect to Pipedrive.") from exc
        raise AuthError("Authentication failed. Please reconnect to Pipedrive.")

    def _send(
        self,
        method: str,
        path: str,
        json: Any,
        params: dict[str, Any] | None,
    ) -> dict[str, Any]:
        token = self._tokens.access_token()
        if not token:
            raise AuthError("Not authenticated with Pipedrive. Please connect your account first.")

        url = self.url(path)
        try:
            response = self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("crm.transport_error", method=method, url=url, error=str(exc))
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        logger.debug("crm.response", method=method, url=url, status_code=response.status_code)

        if response.status_code == 401:
            raise _TokenExpired()

        try:
            data = response.json()
        except ValueError as exc:
            text = response.text
            if "<!doctype html" in text[:200].lower() or "<html" in text[:200].lower():
                raise AuthError("Authentication error. Please reconnect to Pipedrive.") from exc
            raise TransportError(
                f"Invalid response from Pipedrive API: {text[:100]}",
                status_code=response.status_code,
                body=text[:1000],
            ) from exc

        failed = isinstance(data, dict) and data.get("success") is False
        if not response.is_success or failed:
            error = data.get("error") if isinstance(data, dict) else None
            raise TransportError(
                error or f"API request failed with status {response.status_code}",
                status_code=response.status_code,
                body=data,
            )
        return data

    def fetch_field_definitions(self, kind: EntityKind) -> list[FieldDefinition]:
        """Fetch every field definition for an entity kind, following pagination."""
        endpoint = FIELD_ENDPOINTS[kind]
        definitions: list[FieldDefinition] = []
        start = 0
        while True:
            body = self.request("GET", endpoint, params={"start": start, "limit": FIELDS_PAGE_SIZE})
            for item in body.get("data") or []:
                definitions.append(FieldDefinition.model_validate(item))

            pagination = (body.get("additional_data") or {}).get("pagination") or {}
            if not pagination.get("more_items_in_collection"):
                break
            start = pagination.get("next_start", start + FIELDS_PAGE_SIZE)

        logger.info("crm.field_definitions_fetched", entity_kind=kind.value, count=len(definitions))
        return definitions

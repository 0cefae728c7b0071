from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
UNIQUE_VIOLATION_CODE = "23505"


class RestRequestError(RuntimeError):
    """Raised when the REST backend cannot be reached or answers with an error."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        if self.code:
            return self.code == UNIQUE_VIOLATION_CODE
        return self.status_code == 409


class PostgrestClient:
    """Minimal client for a Supabase/PostgREST ``/rest/v1`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/rest/v1"
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def select(self, table: str, *, params: Mapping[str, str]) -> list[dict[str, Any]]:
        response = self._send("GET", table, params=dict(params))
        try:
            data = response.json()
        except ValueError as exc:
            raise RestRequestError(f"Unexpected response from {table}.", status_code=response.status_code) from exc
        if not isinstance(data, list):
            raise RestRequestError(f"Unexpected response from {table}.", status_code=response.status_code)
        return data

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        response = self._send(
            "POST",
            table,
            json=dict(row),
            headers={"Prefer": "return=representation"},
        )
        try:
            data = response.json()
        except ValueError:
            logger.debug("POST %s answered %s without a JSON body", table, response.status_code)
            return dict(row)
        if isinstance(data, list):
            return data[0] if data else dict(row)
        return data if isinstance(data, dict) else dict(row)

    def _send(self, method: str, table: str, **kwargs: Any) -> requests.Response:
        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", {}) or {})
        url = f"{self._base_url}/{table}"

        try:
            response = self._session.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, table, type(exc).__name__)
            raise RestRequestError(f"Could not reach the server ({type(exc).__name__}).") from exc

        if response.status_code >= 400:
            code: str | None = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    code = body.get("code")
            except ValueError:
                body = None
            logger.warning("%s %s answered %s (code=%s)", method, table, response.status_code, code)
            raise RestRequestError(
                f"Server rejected the request ({response.status_code}).",
                status_code=response.status_code,
                code=code,
            )

        return response

"""Ports for the hosted backend and an httpx client for Supabase.

The core never imports a shared backend instance; every component receives
the identity provider, data store, or change feed it needs in its constructor.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from tasksync.core.config import constants
from tasksync.core.errors import AuthError, ErrorCode, NetworkError, NotFoundError, PersistenceError


logger = logging.getLogger(__name__)


class AuthSession(BaseModel):
    """Authenticated identity returned by the identity provider."""

    user_id: str
    email: str
    access_token: str | None = None


class ChangeEvent(BaseModel):
    """Row change notification from the change feed."""

    event: str = Field(..., description="INSERT, UPDATE or DELETE")
    schema_name: str = Field(default="public", alias="schema")
    table: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


@dataclass(frozen=True)
class SubscriptionHandle:
    """Cancellable handle for one change-feed channel."""

    channel: str
    table: str
    event: str = "*"
    key: int = 0


class IdentityProvider(Protocol):
    """Hosted authentication provider."""

    async def sign_in(self, email: str, password: str) -> AuthSession: ...

    async def sign_up(self, email: str, password: str, attributes: dict[str, Any]) -> AuthSession: ...

    async def sign_out(self) -> None: ...

    async def delete_user(self, user_id: str) -> None: ...


class DataStore(Protocol):
    """Column-filtered CRUD over the relational store."""

    async def select(
        self, table: str, *, filters: dict[str, Any] | None = None, order: str | None = None
    ) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, table: str, values: dict[str, Any], *, filters: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def upsert(self, table: str, rows: list[dict[str, Any]], *, on_conflict: str) -> list[dict[str, Any]]: ...

    async def delete(self, table: str, *, filters: dict[str, Any]) -> None: ...


ChangeCallback = Callable[[ChangeEvent], None]


class ChangeFeed(Protocol):
    """Change-notification channel source."""

    def subscribe(self, channel: str, *, table: str, event: str, callback: ChangeCallback) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


def _filters_to_params(filters: dict[str, Any] | None) -> dict[str, str]:
    """Convert equality filters into PostgREST query parameters."""
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if isinstance(value, bool):
            value = str(value).lower()
        params[column] = f"eq.{value}"
    return params


def _error_message(response: httpx.Response) -> str:
    """Extract a human-readable error message from a Supabase error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("msg") or body.get("message") or body.get("error_description") or body.get("error") or body)
    return str(body)


class SupabaseClient:
    """Identity provider and data store backed by the Supabase REST APIs."""

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        service_role_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._service_role_key = service_role_key
        self._access_token: str | None = None
        self._transport = transport

    def _headers(self, *, privileged: bool = False) -> dict[str, str]:
        key = self._service_role_key if privileged and self._service_role_key else self._api_key
        token = key if privileged else (self._access_token or self._api_key)
        return {
            "apikey": key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        privileged: bool = False,
    ) -> httpx.Response:
        request_headers = {**self._headers(privileged=privileged), **(headers or {})}
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS, transport=self._transport) as client:
                return await client.request(
                    method, f"{self._url}{path}", params=params, json=json, headers=request_headers
                )
        except httpx.HTTPError as e:
            logger.error("supabase_request_failed", extra={"method": method, "path": path, "error": str(e)})
            raise NetworkError(f"Request to {path} failed: {e}") from e

    # Identity provider

    async def sign_in(self, email: str, password: str) -> AuthSession:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if not response.is_success:
            raise AuthError(_error_message(response) or "Invalid login credentials")

        body = response.json()
        self._access_token = body.get("access_token")
        user = body.get("user") or {}
        return AuthSession(user_id=user["id"], email=user.get("email", email), access_token=self._access_token)

    async def sign_up(self, email: str, password: str, attributes: dict[str, Any]) -> AuthSession:
        response = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": attributes},
        )
        if not response.is_success:
            message = _error_message(response)
            raise AuthError(message, already_registered="already registered" in message.lower())

        body = response.json()
        user = body.get("user") or body
        return AuthSession(user_id=user["id"], email=user.get("email", email), access_token=body.get("access_token"))

    async def sign_out(self) -> None:
        if self._access_token is None:
            return
        response = await self._request("POST", "/auth/v1/logout")
        self._access_token = None
        if not response.is_success:
            logger.warning("supabase_sign_out_failed", extra={"status": response.status_code})

    async def delete_user(self, user_id: str) -> None:
        response = await self._request("DELETE", f"/auth/v1/admin/users/{user_id}", privileged=True)
        if response.status_code == constants.HTTP_NOT_FOUND:
            raise NotFoundError(f"User not found: {user_id}", code=ErrorCode.ERR_USER_NOT_FOUND)
        if not response.is_success:
            raise AuthError(f"Failed to delete user: {_error_message(response)}")

    # Data store

    async def _rest(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        headers = {"Prefer": prefer} if prefer else None
        response = await self._request(method, f"/rest/v1/{table}", params=params, json=json, headers=headers)
        if not response.is_success:
            message = _error_message(response)
            logger.error("supabase_rest_failed", extra={"table": table, "method": method, "error": message})
            raise PersistenceError(f"{method} {table} failed: {message}")
        if not response.content:
            return []
        body = response.json()
        return body if isinstance(body, list) else [body]

    async def select(
        self, table: str, *, filters: dict[str, Any] | None = None, order: str | None = None
    ) -> list[dict[str, Any]]:
        params = {"select": "*", **_filters_to_params(filters)}
        if order:
            params["order"] = order
        return await self._rest("GET", table, params=params)

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self._rest("POST", table, json=row, prefer="return=representation")
        return rows[0] if rows else row

    async def update(self, table: str, values: dict[str, Any], *, filters: dict[str, Any]) -> list[dict[str, Any]]:
        return await self._rest(
            "PATCH", table, params=_filters_to_params(filters), json=values, prefer="return=representation"
        )

    async def upsert(self, table: str, rows: list[dict[str, Any]], *, on_conflict: str) -> list[dict[str, Any]]:
        if not rows:
            return []
        return await self._rest(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=rows,
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def delete(self, table: str, *, filters: dict[str, Any]) -> None:
        await self._rest("DELETE", table, params=_filters_to_params(filters))

"""Client for invoking the privileged request handlers over HTTP."""

import logging

import httpx

from tasksync.core.config import constants
from tasksync.core.errors import AuthError, ErrorCode, NetworkError, NotFoundError
from tasksync.interface.email_sender import SendEmailResult


logger = logging.getLogger(__name__)


class FunctionsClient:
    """Calls /functions/* on a trusted server from an unprivileged context."""

    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _post(self, name: str, body: dict[str, object]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS, transport=self._transport) as client:
                return await client.post(f"{self._base_url}/functions/{name}", json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Function call failed", extra={"function": name, "error": str(e)})
            raise NetworkError(f"Call to {name} failed: {e}") from e

    async def send_approval_email(self, *, name: str, email: str, role: str) -> SendEmailResult:
        """Ask the server to send the approval email; failures are returned, not raised."""
        try:
            response = await self._post("send-approval-email", {"name": name, "email": email, "role": role})
        except NetworkError as e:
            return SendEmailResult(success=False, error=e.message)

        body = response.json()
        if response.is_success and body.get("success"):
            return SendEmailResult(success=True)
        return SendEmailResult(success=False, error=body.get("error") or f"HTTP {response.status_code}")

    async def delete_user(self, user_id: str) -> None:
        """Ask the server to delete a user.

        Raises:
            NotFoundError: If the user does not exist
            AuthError: If the server refused or failed the deletion
            NetworkError: If the server could not be reached
        """
        response = await self._post("delete-user", {"userId": user_id})
        if response.is_success:
            return

        error = response.json().get("error") or f"HTTP {response.status_code}"
        if response.status_code == constants.HTTP_NOT_FOUND:
            raise NotFoundError(error, code=ErrorCode.ERR_USER_NOT_FOUND)
        raise AuthError(error)

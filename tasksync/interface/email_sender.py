"""Approval email sender with retry logic using the Resend API."""

import asyncio
import html
import logging

import httpx
from pydantic import BaseModel, Field

from tasksync.core.config import constants, settings


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class SendEmailResult(BaseModel):
    """Result of sending an email."""

    success: bool = Field(..., description="Whether the email was accepted for delivery")
    email_id: str | None = Field(None, description="Resend email ID if successful")
    error: str | None = Field(None, description="Error message if failed")


def approval_email_html(*, name: str, role: str) -> str:
    """Render the approval email body."""
    name, role = html.escape(name), html.escape(role)
    return (
        f"<h1>Welcome to TaskSync, {name}!</h1>"
        f"<p>Your account has been approved with the role of {role}.</p>"
        "<p>You can now log in to your account and start using TaskSync.</p>"
        "<p>Best regards,<br>The TaskSync Team</p>"
    )


async def send_approval_email(
    *,
    name: str,
    email: str,
    role: str,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SendEmailResult:
    """Send the account-approved email via Resend with retry logic.

    Client errors (4xx) are returned immediately; server errors and transport
    failures are retried with exponential backoff.
    """
    try:
        api_key = settings.require_credential("resend_api_key", "Resend")
    except ValueError as e:
        logger.error("Approval email not sent: %s", e)
        return SendEmailResult(success=False, error=str(e))

    payload = {
        "from": settings.approval_email_from,
        "to": [email],
        "subject": "Your account has been approved!",
        "html": approval_email_html(name=name, role=role),
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS, transport=transport) as client:
                response = await client.post(constants.RESEND_API_URL, json=payload, headers=headers)

                if response.is_success:
                    email_id = response.json().get("id")
                    logger.info("Sent approval email", extra={"email_id": email_id, "role": role})
                    return SendEmailResult(success=True, email_id=email_id)

                if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                    logger.warning("Approval email rejected: %s", response.text)
                    return SendEmailResult(success=False, error=f"Client error: {response.text}")

                raise httpx.HTTPStatusError(
                    f"Server error: {response.status_code}", request=response.request, response=response
                )
        except httpx.HTTPError as e:
            logger.warning("Approval email attempt %d/%d failed: %s", attempt + 1, max_retries, e)
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))
            else:
                return SendEmailResult(success=False, error=f"Failed after retries: {e!s}")

    return SendEmailResult(success=False, error="Max retries exceeded")

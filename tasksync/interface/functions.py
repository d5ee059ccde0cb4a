"""Privileged request handlers: approval email and user deletion.

These run in a trusted context holding the service role key and the email
API key, which clients never see. Every response carries permissive CORS
headers, and OPTIONS preflight requests are answered directly.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from tasksync.core.backend import SupabaseClient
from tasksync.core.config import constants, settings
from tasksync.core.errors import TaskSyncError
from tasksync.interface import email_sender
from tasksync.models.service_models import FunctionResult
from tasksync.services.user_service import PROFILES_TABLE, ApprovalEmailSender


router = APIRouter(prefix="/functions", tags=["functions"])
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


class ApprovalEmailRequest(BaseModel):
    """Body of an approval email request."""

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: str = Field(..., min_length=1)


def get_admin_client() -> SupabaseClient:
    """Supabase client authorized with the service role key.

    Raises:
        ValueError: If the Supabase URL or service role key is not configured
    """
    url = settings.require_credential("supabase_url", "Supabase URL")
    service_key = settings.require_credential("supabase_service_role_key", "Supabase service role")
    return SupabaseClient(url=url, api_key=service_key, service_role_key=service_key)


def get_email_sender() -> ApprovalEmailSender:
    return email_sender.send_approval_email


def _respond(result: FunctionResult, status_code: int) -> JSONResponse:
    return JSONResponse(content=result.model_dump(exclude_none=True), status_code=status_code, headers=CORS_HEADERS)


async def _read_json(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@router.options("/send-approval-email")
@router.options("/delete-user")
async def preflight() -> Response:
    """Answer CORS preflight requests."""
    return Response(content="ok", headers=CORS_HEADERS)


@router.post("/send-approval-email")
async def send_approval_email(
    request: Request,
    sender: ApprovalEmailSender = Depends(get_email_sender),  # noqa: B008
) -> JSONResponse:
    """Email a user that their account was approved.

    Returns:
        200 with {"success": true}, 400 for a malformed body, 500 if sending failed
    """
    body = await _read_json(request)
    try:
        payload = ApprovalEmailRequest.model_validate(body)
    except PydanticValidationError:
        logger.warning("Rejected approval email request with invalid body")
        return _respond(FunctionResult(error="name, email and role are required"), constants.HTTP_BAD_REQUEST)

    logger.info("Sending approval email", extra={"role": payload.role})
    result = await sender(name=payload.name, email=payload.email, role=payload.role)
    if not result.success:
        logger.error("Error sending approval email: %s", result.error)
        return _respond(FunctionResult(error=result.error or "Failed to send email"), constants.HTTP_SERVER_ERROR)

    return _respond(FunctionResult(success=True), constants.HTTP_OK)


@router.post("/delete-user")
async def delete_user(
    request: Request,
    admin: SupabaseClient = Depends(get_admin_client),  # noqa: B008
) -> JSONResponse:
    """Delete a user account with the service role.

    Returns:
        200 on success, 400 without a user id, 404 if no profile exists, 500 on failure
    """
    body = await _read_json(request) or {}
    user_id = body.get("userId")
    if not isinstance(user_id, str) or not user_id.strip():
        return _respond(FunctionResult(error="User ID is required"), constants.HTTP_BAD_REQUEST)

    logger.info("Attempting to delete user", extra={"user_id": user_id})

    try:
        profiles = await admin.select(PROFILES_TABLE, filters={"id": user_id})
    except TaskSyncError as e:
        logger.error("Error checking if user exists", extra={"user_id": user_id, "error": str(e)})
        return _respond(FunctionResult(error="Error checking if user exists"), constants.HTTP_SERVER_ERROR)

    if not profiles:
        return _respond(FunctionResult(error="User not found"), constants.HTTP_NOT_FOUND)

    try:
        await admin.delete_user(user_id)
    except TaskSyncError as e:
        logger.error("Error deleting user", extra={"user_id": user_id, "error": str(e)})
        return _respond(FunctionResult(error=f"Failed to delete user: {e.message}"), constants.HTTP_SERVER_ERROR)

    logger.info("Deleted user", extra={"user_id": user_id})
    return _respond(FunctionResult(success=True, message="User deleted successfully"), constants.HTTP_OK)

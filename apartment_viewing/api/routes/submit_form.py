"""Submission relay endpoint"""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import structlog

from apartment_viewing.schemas import ViewingRequest
from apartment_viewing.services.relay_service import relay_viewing_request
from apartment_viewing.services.telegram_service import TelegramService, get_telegram_service

logger = structlog.get_logger()
router = APIRouter()

FAILURE_MESSAGE = "Failed to process form submission"


def _failure() -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": FAILURE_MESSAGE})


@router.post("/submit-form")
async def submit_form(
    request: Request,
    telegram: TelegramService = Depends(get_telegram_service),
):
    """
    Relay a completed viewing request to the landlord

    Responds {"success": true} once Telegram accepts the message and
    {"error": ...} with status 500 on any failure.
    """
    try:
        payload_bytes = await request.body()
        data = json.loads(payload_bytes.decode("utf-8"))
        viewing_request = ViewingRequest.model_validate(data)
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        logger.error("submit_form_payload_invalid", error=str(e))
        return _failure()

    logger.info(
        "viewing_request_received",
        applicant=viewing_request.name,
        email=viewing_request.email,
    )

    if not await relay_viewing_request(viewing_request, telegram):
        return _failure()

    return {"success": True}

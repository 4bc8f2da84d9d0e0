"""Forwards viewing requests to the landlord's Telegram chat"""

import structlog

from apartment_viewing.schemas import ViewingRequest
from apartment_viewing.services.message_templates import render_viewing_message
from apartment_viewing.services.telegram_service import TelegramError, TelegramService

logger = structlog.get_logger()


async def relay_viewing_request(request: ViewingRequest, telegram: TelegramService) -> bool:
    """
    Render the request and send it to Telegram exactly once.

    Nothing is stored, so a failed relay is lost unless the caller
    retries. Retries may produce duplicate messages downstream.

    Returns:
        True if Telegram accepted the message, False otherwise
    """
    text = render_viewing_message(request)

    try:
        await telegram.send_message(text)
    except TelegramError as e:
        logger.error(
            "viewing_request_relay_failed",
            applicant=request.name,
            email=request.email,
            error=str(e),
        )
        return False

    logger.info(
        "viewing_request_relayed",
        applicant=request.name,
        email=request.email,
        scheduling_reference=request.scheduling_reference,
    )
    return True

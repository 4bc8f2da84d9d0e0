"""HTTP client the form wizard uses to reach the submission relay"""

from typing import Any, Dict, Optional

import httpx
import structlog

from apartment_viewing.config import settings

logger = structlog.get_logger()


class RelayError(Exception):
    """Raised when the relay did not acknowledge a submission"""
    pass


class RelayClient:
    """POSTs viewing request payloads to ``/api/submit-form``"""

    def __init__(
        self,
        relay_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.relay_url = relay_url or settings.relay_url
        self._transport = transport

    async def submit(self, payload: Dict[str, Any]) -> None:
        """
        Send one payload to the relay.

        Raises:
            RelayError: On a non-success status or a transport failure
        """
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(self.relay_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("relay_request_failed", relay_url=self.relay_url, error=str(e))
            raise RelayError(str(e)) from e

        if not response.is_success:
            logger.error("relay_rejected_submission", status_code=response.status_code)
            raise RelayError(f"Relay responded with HTTP {response.status_code}")

"""Message templates for outbound notifications

The relay sends plain text, so values are embedded exactly as the
applicant typed them.
"""

import re
from typing import Any, Dict

from apartment_viewing.schemas import ViewingRequest


# ============================================================================
# VIEWING REQUEST NOTIFICATION
# ============================================================================

VIEWING_REQUEST_TEMPLATE = """🏠 New Apartment Viewing Request

👤 Name: {name}
📧 Email: {email}
📱 Phone: {phone}
📅 Age: {age}
💼 Job: {job}
👥 Living Arrangement: {living_arrangement}
📅 Calendly Event: {scheduling_reference}
✅ Agreed to Terms: {agreed}

Please check your Calendly dashboard for the scheduled viewing time."""


def format_message(template: str, context: Dict[str, Any]) -> str:
    """Fill a template, leaving a visible marker for any missing key"""
    def replace_known(match):
        key = match.group(1)
        return str(context.get(key, f"{{MISSING:{key}}}"))

    # single pass: substituted values are never re-scanned
    return re.sub(r"\{(\w+)\}", replace_known, template)


def render_viewing_message(request: ViewingRequest) -> str:
    """Render the human-readable summary sent to the landlord's chat"""
    context = request.model_dump()
    context["agreed"] = "Yes" if request.agreed_to_all else "No"
    return format_message(VIEWING_REQUEST_TEMPLATE, context)

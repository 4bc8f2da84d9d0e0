"""Scheduling widget providers

A provider is mounted once per visit to step 2 and hands back a session
token. Completion callbacks are registered per token and are detached
when the subscription is closed or the widget is unmounted, so a torn
down widget can never reach a live wizard.
"""

import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode
from uuid import uuid4

import structlog

from apartment_viewing.schemas import Prefill

logger = structlog.get_logger()

CompletionCallback = Callable[[str, str], None]

CALENDLY_NAMESPACE = "calendly."
CALENDLY_EVENT_SCHEDULED = "calendly.event_scheduled"


class SchedulingError(Exception):
    """Raised for operations on an unknown widget or an invalid booking"""
    pass


class Subscription:
    """Handle for one completion callback; closing it is idempotent"""

    def __init__(self, widget: "SchedulingWidget", session_token: str, callback: CompletionCallback):
        self.widget = widget
        self.session_token = session_token
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.widget._detach(self.session_token, self.callback)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SchedulingWidget:
    """Token bookkeeping shared by every scheduling provider"""

    def __init__(self):
        self._mounts: Dict[str, Prefill] = {}
        self._listeners: Dict[str, List[CompletionCallback]] = {}

    def mount(self, prefill: Prefill) -> str:
        """Mount a fresh widget instance and return its session token"""
        session_token = uuid4().hex
        self._mounts[session_token] = prefill
        self._listeners[session_token] = []
        logger.info("scheduling_widget_mounted", session_token=session_token)
        return session_token

    def unmount(self, session_token: str) -> None:
        self._mounts.pop(session_token, None)
        self._listeners.pop(session_token, None)
        logger.info("scheduling_widget_unmounted", session_token=session_token)

    def is_mounted(self, session_token: str) -> bool:
        return session_token in self._mounts

    def prefill_for(self, session_token: str) -> Prefill:
        try:
            return self._mounts[session_token]
        except KeyError:
            raise SchedulingError(f"No widget mounted for token {session_token}")

    def on_complete(self, session_token: str, callback: CompletionCallback) -> Subscription:
        """Register a callback invoked with (session_token, reference) on booking"""
        if not self.is_mounted(session_token):
            raise SchedulingError(f"No widget mounted for token {session_token}")
        self._listeners[session_token].append(callback)
        return Subscription(self, session_token, callback)

    def _detach(self, session_token: str, callback: CompletionCallback) -> None:
        listeners = self._listeners.get(session_token)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def listener_count(self, session_token: str) -> int:
        return len(self._listeners.get(session_token, []))

    def notify(self, session_token: str, reference: str) -> int:
        """Deliver a completion to listeners of this token; returns how many ran"""
        listeners = list(self._listeners.get(session_token, []))
        if not listeners:
            logger.warning("scheduling_notification_unrouted", session_token=session_token)
        for callback in listeners:
            callback(session_token, reference)
        return len(listeners)

    def describe(self, session_token: str) -> Dict[str, Any]:
        """Data the page needs to render this widget instance"""
        return {
            "provider": "base",
            "session_token": session_token,
            "prefill": self.prefill_for(session_token).model_dump(),
        }


class CalendlyWidget(SchedulingWidget):
    """Inline Calendly embed driven by the page's ``message`` events"""

    def __init__(self, scheduling_url: str):
        super().__init__()
        self.scheduling_url = scheduling_url

    def embed_url(self, session_token: str) -> str:
        prefill = self.prefill_for(session_token)
        query = urlencode({"name": prefill.name, "email": prefill.email, "a1": prefill.phone})
        separator = "&" if "?" in self.scheduling_url else "?"
        return f"{self.scheduling_url}{separator}{query}"

    def handle_message(self, session_token: str, message: Dict[str, Any]) -> Optional[str]:
        """
        Handle a browser ``postMessage`` payload forwarded by the page.

        Returns the booking URI for ``calendly.event_scheduled`` events,
        None for anything else.
        """
        event = message.get("event") if isinstance(message, dict) else None
        if not isinstance(event, str) or not event.startswith(CALENDLY_NAMESPACE):
            return None

        if event != CALENDLY_EVENT_SCHEDULED:
            logger.info("calendly_event_ignored", calendly_event=event, session_token=session_token)
            return None

        payload = message.get("payload")
        scheduled = payload.get("event") if isinstance(payload, dict) else None
        uri = scheduled.get("uri") if isinstance(scheduled, dict) else None
        if not uri or not isinstance(uri, str):
            logger.warning("calendly_event_missing_uri", session_token=session_token)
            return None

        self.notify(session_token, uri)
        return uri

    def describe(self, session_token: str) -> Dict[str, Any]:
        info = super().describe(session_token)
        info["provider"] = "calendly"
        info["embed_url"] = self.embed_url(session_token)
        return info


MOCK_TIME_SLOTS = [
    {"date": "2024-03-25", "slots": ["10:00", "14:00", "16:00"]},
    {"date": "2024-03-26", "slots": ["09:00", "11:00", "15:00"]},
    {"date": "2024-03-27", "slots": ["10:30", "13:30", "17:00"]},
]


class MockCalendly(SchedulingWidget):
    """Development stand-in for Calendly with a fixed set of slots"""

    def __init__(self, time_slots: Optional[List[Dict[str, Any]]] = None):
        super().__init__()
        self.time_slots = time_slots if time_slots is not None else MOCK_TIME_SLOTS

    def confirm(self, session_token: str, date: str, slot: str) -> str:
        """Book a mock slot and emit a completion for it"""
        if not self.is_mounted(session_token):
            raise SchedulingError(f"No widget mounted for token {session_token}")

        day = next((d for d in self.time_slots if d["date"] == date), None)
        if day is None or slot not in day["slots"]:
            raise SchedulingError(f"No mock slot at {date} {slot}")

        reference = f"mock-calendly-event-{int(time.time() * 1000)}"
        logger.info("mock_booking_confirmed", date=date, time=slot, reference=reference)
        self.notify(session_token, reference)
        return reference

    def describe(self, session_token: str) -> Dict[str, Any]:
        info = super().describe(session_token)
        info["provider"] = "mock"
        info["time_slots"] = self.time_slots
        return info


def build_scheduling_widget(mode: str, calendly_url: str) -> SchedulingWidget:
    """Provider for the configured scheduling mode"""
    if mode == "mock":
        return MockCalendly()
    return CalendlyWidget(calendly_url)

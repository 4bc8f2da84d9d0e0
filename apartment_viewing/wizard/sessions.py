"""In-process registry of wizard sessions, one per page load"""

import time
from typing import Callable, Dict, Optional
from uuid import uuid4

import structlog

from apartment_viewing.config import settings
from apartment_viewing.wizard.orchestrator import FormWizard
from apartment_viewing.wizard.relay_client import RelayClient
from apartment_viewing.wizard.scheduling import build_scheduling_widget

logger = structlog.get_logger()


def default_wizard_factory() -> FormWizard:
    return FormWizard(
        scheduler=build_scheduling_widget(settings.scheduling_mode, settings.calendly_url),
        relay=RelayClient(settings.relay_url),
    )


class WizardSessionStore:
    """
    Keeps each page's wizard until the page discards it.

    Pages that navigate away never say so, so sessions idle for longer
    than ``ttl_seconds`` are closed and dropped. The sweep runs whenever
    a session is created; an expired session looked up directly is
    dropped on the spot.
    """

    def __init__(
        self,
        factory: Optional[Callable[[], FormWizard]] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory or default_wizard_factory
        self.ttl_seconds = settings.wizard_session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._sessions: Dict[str, FormWizard] = {}
        self._last_seen: Dict[str, float] = {}

    def _is_expired(self, session_id: str, now: float) -> bool:
        return now - self._last_seen.get(session_id, now) > self.ttl_seconds

    def evict_idle(self) -> int:
        """Close every session idle past the TTL; returns how many went"""
        now = self.clock()
        expired = [session_id for session_id in self._sessions if self._is_expired(session_id, now)]
        for session_id in expired:
            self.discard(session_id)
        if expired:
            logger.info("wizard_sessions_evicted", count=len(expired))
        return len(expired)

    def create(self) -> str:
        self.evict_idle()
        session_id = uuid4().hex
        self._sessions[session_id] = self.factory()
        self._last_seen[session_id] = self.clock()
        logger.info("wizard_session_created", session_id=session_id)
        return session_id

    def get(self, session_id: str) -> Optional[FormWizard]:
        wizard = self._sessions.get(session_id)
        if wizard is None:
            return None
        now = self.clock()
        if self._is_expired(session_id, now):
            self.discard(session_id)
            return None
        self._last_seen[session_id] = now
        return wizard

    def discard(self, session_id: str) -> bool:
        wizard = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if wizard is None:
            return False
        wizard.close()
        logger.info("wizard_session_discarded", session_id=session_id)
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


# Global session store
wizard_sessions = WizardSessionStore()


def get_wizard_sessions() -> WizardSessionStore:
    """FastAPI dependency for the session store"""
    return wizard_sessions

"""Viewing request wizard endpoints

The page keeps only a session id. Field input and the scheduling
widget's ``postMessage`` payloads are forwarded here and the wizard
decides what happens next.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import structlog

from apartment_viewing.config import settings
from apartment_viewing.wizard.orchestrator import FormWizard, WizardTransitionError
from apartment_viewing.wizard.scheduling import CalendlyWidget, MockCalendly, SchedulingError
from apartment_viewing.wizard.sessions import WizardSessionStore, get_wizard_sessions

logger = structlog.get_logger()
router = APIRouter()


class Step1Request(BaseModel):
    """Raw step 1 form values, keyed by field name"""
    fields: Dict[str, Any]


class SchedulingEventRequest(BaseModel):
    """A ``message`` event captured by the page around the widget"""
    session_token: str
    message: Dict[str, Any]


class MockBookingRequest(BaseModel):
    """Slot picked in the mock scheduling widget"""
    session_token: str
    date: str
    time: str


def _get_wizard(session_id: str, sessions: WizardSessionStore) -> FormWizard:
    wizard = sessions.get(session_id)
    if wizard is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    return wizard


def _conflict(e: WizardTransitionError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


@router.post("/wizard/sessions", status_code=201)
async def create_session(sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    """Start a fresh form for a page load"""
    session_id = sessions.create()
    return {"session_id": session_id, **sessions.get(session_id).snapshot()}


@router.get("/wizard/sessions/{session_id}")
async def get_session(session_id: str, sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    return _get_wizard(session_id, sessions).snapshot()


@router.delete("/wizard/sessions/{session_id}")
async def discard_session(session_id: str, sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    """Page is going away: detach the widget and drop the session"""
    if not sessions.discard(session_id):
        raise HTTPException(status_code=404, detail="Wizard session not found")
    return {"status": "discarded"}


@router.post("/wizard/sessions/{session_id}/step1")
async def complete_step1(
    session_id: str,
    request: Step1Request,
    sessions: WizardSessionStore = Depends(get_wizard_sessions),
):
    """
    Validate step 1 and mount the scheduling widget

    Responds 422 with per-field errors when validation fails.
    """
    wizard = _get_wizard(session_id, sessions)
    try:
        advanced = wizard.complete_step1(request.fields)
    except WizardTransitionError as e:
        raise _conflict(e)

    if not advanced:
        return JSONResponse(status_code=422, content=wizard.snapshot())
    return wizard.snapshot()


@router.post("/wizard/sessions/{session_id}/back")
async def go_back(session_id: str, sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    wizard = _get_wizard(session_id, sessions)
    try:
        wizard.go_back()
    except WizardTransitionError as e:
        raise _conflict(e)
    return wizard.snapshot()


@router.post("/wizard/sessions/{session_id}/scheduling-events")
async def scheduling_event(
    session_id: str,
    request: SchedulingEventRequest,
    sessions: WizardSessionStore = Depends(get_wizard_sessions),
):
    """Forward a scheduling widget ``message`` event to the mounted widget"""
    wizard = _get_wizard(session_id, sessions)
    if not isinstance(wizard.scheduler, CalendlyWidget):
        raise HTTPException(status_code=400, detail="Scheduling widget does not accept message events")

    reference: Optional[str] = wizard.scheduler.handle_message(request.session_token, request.message)
    return {"accepted": reference is not None and wizard.scheduling_reference == reference, **wizard.snapshot()}


@router.post("/wizard/sessions/{session_id}/mock-booking")
async def mock_booking(
    session_id: str,
    request: MockBookingRequest,
    sessions: WizardSessionStore = Depends(get_wizard_sessions),
):
    """Confirm a slot in the development scheduling widget"""
    wizard = _get_wizard(session_id, sessions)
    if not isinstance(wizard.scheduler, MockCalendly):
        raise HTTPException(status_code=404, detail="Mock scheduling is disabled")

    try:
        wizard.scheduler.confirm(request.session_token, request.date, request.time)
    except SchedulingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return wizard.snapshot()


@router.post("/wizard/sessions/{session_id}/submit")
async def submit(session_id: str, sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    """Submit (or retry) the completed request"""
    wizard = _get_wizard(session_id, sessions)
    try:
        await wizard.submit()
    except WizardTransitionError as e:
        raise _conflict(e)
    return wizard.snapshot()


@router.post("/wizard/sessions/{session_id}/start-over")
async def start_over(session_id: str, sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    wizard = _get_wizard(session_id, sessions)
    try:
        wizard.start_over()
    except WizardTransitionError as e:
        raise _conflict(e)
    return wizard.snapshot()


@router.post("/wizard/sessions/{session_id}/fill-test-data")
async def fill_test_data(session_id: str, sessions: WizardSessionStore = Depends(get_wizard_sessions)):
    """Development helper that fills step 1 with a sample applicant"""
    if not settings.is_development:
        raise HTTPException(status_code=404, detail="Not found")

    wizard = _get_wizard(session_id, sessions)
    try:
        wizard.fill_test_data()
    except WizardTransitionError as e:
        raise _conflict(e)
    return wizard.snapshot()

"""Two-step viewing request wizard

Step 1 collects and validates the applicant's details. Step 2 mounts the
scheduling widget pre-filled with the contact fields and submits to the
relay on its own once the widget reports a booking.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError
import structlog

from apartment_viewing.config import settings
from apartment_viewing.schemas import (
    AGE_NOT_NUMERIC,
    FIELD_ERRORS,
    FIELD_NAMES,
    ApplicantDetails,
    Prefill,
    ViewingRequest,
    empty_fields,
)
from apartment_viewing.wizard.relay_client import RelayClient, RelayError
from apartment_viewing.wizard.scheduling import SchedulingWidget, Subscription

logger = structlog.get_logger()


SCHEDULE_FIRST_MESSAGE = "Please schedule a viewing time first."
SUBMIT_FAILED_MESSAGE = "Failed to submit form. Please try again."

TEST_DATA = {
    "name": "John Doe",
    "email": "john@example.com",
    "phone": "+972501234567",
    "age": "30",
    "job": "Software Engineer",
    "livingArrangement": "Single, no pets",
    "agreementFee": True,
    "agreementDeposit": True,
    "agreementChecks": True,
}

# pydantic reports aliased fields by alias, the rest by attribute name
_WIRE_NAMES = {
    "living_arrangement": "livingArrangement",
    "agreement_fee": "agreementFee",
    "agreement_deposit": "agreementDeposit",
    "agreement_checks": "agreementChecks",
}


class WizardState(str, Enum):
    """Where the applicant is in the form"""
    STEP1_COLLECTING = "step1_collecting"
    STEP2_SCHEDULING = "step2_scheduling"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


# Error is shown on top of step 2, so both accept step 2 actions
STEP2_STATES = (WizardState.STEP2_SCHEDULING, WizardState.ERROR)


class WizardTransitionError(Exception):
    """Raised when an action is not valid in the wizard's current state"""
    pass


def validate_step1(fields: Dict[str, Any]) -> Dict[str, str]:
    """
    Apply the step 1 field rules.

    Returns:
        Mapping of field name to error message; empty when every rule passes
    """
    try:
        ApplicantDetails.model_validate(fields)
    except ValidationError as e:
        errors: Dict[str, str] = {}
        for error in e.errors():
            if not error["loc"]:
                continue
            field = str(error["loc"][0])
            field = _WIRE_NAMES.get(field, field)
            if field in errors or field not in FIELD_ERRORS:
                continue
            if field == "age" and error["type"] == "value_error":
                errors[field] = AGE_NOT_NUMERIC
            else:
                errors[field] = FIELD_ERRORS[field]
        return errors
    return {}


class FormWizard:
    """
    State machine behind the viewing request form.

    One instance lives for one page load. The scheduling provider and the
    relay client are injected so either can be replaced by a test double.
    """

    def __init__(
        self,
        scheduler: SchedulingWidget,
        relay: Optional[RelayClient] = None,
        submit_debounce_seconds: Optional[float] = None,
    ):
        self.scheduler = scheduler
        self.relay = relay or RelayClient()
        self.submit_debounce_seconds = (
            settings.submit_debounce_seconds
            if submit_debounce_seconds is None
            else submit_debounce_seconds
        )

        self.state = WizardState.STEP1_COLLECTING
        self.fields: Dict[str, Any] = empty_fields()
        self.errors: Dict[str, str] = {}
        self.submit_error: Optional[str] = None
        self.prefill: Optional[Prefill] = None
        self.scheduling_reference: Optional[str] = None
        self.session_token: Optional[str] = None

        self._subscription: Optional[Subscription] = None
        self._pending_submit: Optional[asyncio.Task] = None
        self.closed = False

    @property
    def is_busy(self) -> bool:
        return self.state == WizardState.SUBMITTING

    def _require(self, *states: WizardState) -> None:
        if self.closed:
            raise WizardTransitionError("Wizard has been closed")
        if self.state not in states:
            raise WizardTransitionError(f"Not allowed while {self.state.value}")

    # ===== STEP 1 =====

    def update_fields(self, values: Dict[str, Any]) -> None:
        """Store step 1 input; unknown keys are dropped"""
        self._require(WizardState.STEP1_COLLECTING)
        for name in FIELD_NAMES:
            if name in values:
                self.fields[name] = values[name]

    def fill_test_data(self) -> None:
        self.update_fields(TEST_DATA)

    def complete_step1(self, values: Optional[Dict[str, Any]] = None) -> bool:
        """
        Validate step 1 and advance to scheduling.

        On success the contact fields become the widget's pre-fill and a
        new widget instance is mounted. On failure the wizard stays on
        step 1 with ``errors`` populated.
        """
        self._require(WizardState.STEP1_COLLECTING)
        if values:
            self.update_fields(values)

        self.errors = validate_step1(self.fields)
        if self.errors:
            logger.info("step1_validation_failed", fields=sorted(self.errors))
            return False

        self.prefill = Prefill(
            name=self.fields["name"],
            email=self.fields["email"],
            phone=self.fields["phone"],
        )
        self.session_token = self.scheduler.mount(self.prefill)
        self._subscription = self.scheduler.on_complete(self.session_token, self.on_scheduling_confirmed)
        self.state = WizardState.STEP2_SCHEDULING
        logger.info("step1_completed", applicant=self.prefill.name, session_token=self.session_token)
        return True

    # ===== STEP 2 =====

    def on_scheduling_confirmed(self, session_token: str, reference: str) -> bool:
        """
        Record a booking from the scheduling widget and queue a submission.

        Notifications from a widget instance other than the mounted one are
        dropped, as are any that arrive while not on step 2. Repeated
        notifications restart the debounce timer.

        Returns:
            True if the notification was accepted
        """
        if self.closed or session_token != self.session_token:
            logger.info("scheduling_notification_ignored", reason="stale_token", session_token=session_token)
            return False
        if self.state not in STEP2_STATES:
            logger.info("scheduling_notification_ignored", reason=self.state.value, session_token=session_token)
            return False

        self.scheduling_reference = reference
        self.submit_error = None
        logger.info("scheduling_confirmed", session_token=session_token, scheduling_reference=reference)
        self._schedule_submit()
        return True

    def _schedule_submit(self) -> None:
        self._cancel_pending()
        loop = asyncio.get_running_loop()
        self._pending_submit = loop.create_task(self._submit_after_delay())

    async def _submit_after_delay(self) -> None:
        await asyncio.sleep(self.submit_debounce_seconds)
        if self.closed or self.state not in STEP2_STATES:
            return
        await self.submit()

    def _cancel_pending(self) -> None:
        task = self._pending_submit
        self._pending_submit = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def wait_for_pending_submission(self) -> None:
        """Wait until a queued automatic submission has run"""
        task = self._pending_submit
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def submit(self) -> WizardState:
        """
        Send the completed request to the relay.

        Without a scheduling reference this only sets a local error and no
        request is made. A failed relay leaves every field and the
        reference in place so a retry sends the same payload.
        """
        self._require(*STEP2_STATES)

        if not self.scheduling_reference:
            self.submit_error = SCHEDULE_FIRST_MESSAGE
            logger.info("submit_blocked_not_scheduled", session_token=self.session_token)
            return self.state

        payload = ViewingRequest.from_fields(self.fields, self.scheduling_reference).to_payload()
        self._cancel_pending()
        self.state = WizardState.SUBMITTING
        self.submit_error = None
        logger.info("submitting_viewing_request", applicant=payload["name"], scheduling_reference=self.scheduling_reference)

        try:
            await self.relay.submit(payload)
        except RelayError as e:
            self.state = WizardState.ERROR
            self.submit_error = SUBMIT_FAILED_MESSAGE
            logger.warning("viewing_request_submit_failed", error=str(e))
            return self.state
        except Exception as e:
            self.state = WizardState.ERROR
            self.submit_error = SUBMIT_FAILED_MESSAGE
            logger.error("viewing_request_submit_crashed", error=str(e), exc_info=True)
            return self.state

        self._teardown_widget()
        self._reset_record()
        self.state = WizardState.SUCCESS
        logger.info("viewing_request_submitted")
        return self.state

    def go_back(self) -> None:
        """Return to step 1, discarding the widget and any booking reference"""
        self._require(*STEP2_STATES)
        self._cancel_pending()
        self._teardown_widget()
        self.scheduling_reference = None
        self.submit_error = None
        self.state = WizardState.STEP1_COLLECTING
        logger.info("wizard_went_back")

    # ===== AFTER SUBMISSION =====

    def start_over(self) -> None:
        """Dismiss the success dialog and show an empty form"""
        self._require(WizardState.SUCCESS)
        self.state = WizardState.STEP1_COLLECTING

    def close(self) -> None:
        """Tear the wizard down; pending work is cancelled and listeners detached"""
        if self.closed:
            return
        self._cancel_pending()
        self._teardown_widget()
        self.closed = True

    def _teardown_widget(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self.session_token is not None:
            self.scheduler.unmount(self.session_token)
            self.session_token = None

    def _reset_record(self) -> None:
        self._cancel_pending()
        self.fields = empty_fields()
        self.errors = {}
        self.submit_error = None
        self.prefill = None
        self.scheduling_reference = None

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the wizard for the page"""
        widget = None
        if self.session_token is not None and self.scheduler.is_mounted(self.session_token):
            widget = self.scheduler.describe(self.session_token)
        return {
            "state": self.state.value,
            "fields": dict(self.fields),
            "errors": dict(self.errors),
            "submit_error": self.submit_error,
            "is_busy": self.is_busy,
            "scheduling_reference": self.scheduling_reference,
            "widget": widget,
        }

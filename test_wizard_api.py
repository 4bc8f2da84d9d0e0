"""Test the wizard HTTP endpoints"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from apartment_viewing.main import app
from apartment_viewing.schemas import FIELD_ERRORS, empty_fields
from apartment_viewing.wizard.orchestrator import SCHEDULE_FIRST_MESSAGE, TEST_DATA, FormWizard
from apartment_viewing.wizard.relay_client import RelayClient
from apartment_viewing.wizard.scheduling import CalendlyWidget, MockCalendly
from apartment_viewing.wizard.sessions import WizardSessionStore, get_wizard_sessions


@pytest.fixture
def relay_calls():
    return []


@pytest.fixture
def make_client(relay_calls):
    clients = []

    def build(scheduler_factory=MockCalendly):
        def handler(request):
            relay_calls.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        def factory():
            return FormWizard(
                scheduler_factory(),
                RelayClient("http://relay.test/api/submit-form", transport=httpx.MockTransport(handler)),
                submit_debounce_seconds=60,
            )

        store = WizardSessionStore(factory)
        app.dependency_overrides[get_wizard_sessions] = lambda: store
        # one event loop for the whole test so queued submissions stay valid
        client = TestClient(app).__enter__()
        clients.append(client)
        return client, store

    yield build
    for client in clients:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()


def start_session(client):
    response = client.post("/api/v1/wizard/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


def test_new_session_starts_on_step1(make_client):
    client, store = make_client()

    response = client.post("/api/v1/wizard/sessions")

    body = response.json()
    assert body["state"] == "step1_collecting"
    assert body["fields"] == empty_fields()
    assert body["widget"] is None
    assert len(store) == 1


def test_step1_validation_errors_are_returned_per_field(make_client):
    client, _ = make_client()
    session_id = start_session(client)

    response = client.post(
        f"/api/v1/wizard/sessions/{session_id}/step1",
        json={"fields": {**TEST_DATA, "name": "J", "agreementChecks": False}},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["state"] == "step1_collecting"
    assert body["errors"] == {
        "name": FIELD_ERRORS["name"],
        "agreementChecks": FIELD_ERRORS["agreementChecks"],
    }


def test_step1_success_mounts_prefilled_widget(make_client):
    client, _ = make_client()
    session_id = start_session(client)

    response = client.post(f"/api/v1/wizard/sessions/{session_id}/step1", json={"fields": TEST_DATA})

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "step2_scheduling"
    assert body["widget"]["provider"] == "mock"
    assert body["widget"]["prefill"] == {
        "name": TEST_DATA["name"],
        "email": TEST_DATA["email"],
        "phone": TEST_DATA["phone"],
    }


def test_submit_before_booking_asks_to_schedule_first(make_client, relay_calls):
    client, _ = make_client()
    session_id = start_session(client)
    client.post(f"/api/v1/wizard/sessions/{session_id}/step1", json={"fields": TEST_DATA})

    response = client.post(f"/api/v1/wizard/sessions/{session_id}/submit")

    assert response.json()["submit_error"] == SCHEDULE_FIRST_MESSAGE
    assert relay_calls == []


def test_mock_booking_then_submit_reaches_success(make_client, relay_calls):
    client, _ = make_client()
    session_id = start_session(client)
    step2 = client.post(f"/api/v1/wizard/sessions/{session_id}/step1", json={"fields": TEST_DATA}).json()
    token = step2["widget"]["session_token"]

    booked = client.post(
        f"/api/v1/wizard/sessions/{session_id}/mock-booking",
        json={"session_token": token, "date": "2024-03-25", "time": "14:00"},
    )
    reference = booked.json()["scheduling_reference"]
    submitted = client.post(f"/api/v1/wizard/sessions/{session_id}/submit")

    assert reference.startswith("mock-calendly-event-")
    assert submitted.json()["state"] == "success"
    assert submitted.json()["fields"] == empty_fields()
    assert relay_calls == [{**TEST_DATA, "schedulingReference": reference}]

    restarted = client.post(f"/api/v1/wizard/sessions/{session_id}/start-over")
    assert restarted.json()["state"] == "step1_collecting"


def test_back_discards_widget_and_rejects_stale_booking(make_client):
    client, _ = make_client()
    session_id = start_session(client)
    step2 = client.post(f"/api/v1/wizard/sessions/{session_id}/step1", json={"fields": TEST_DATA}).json()
    stale_token = step2["widget"]["session_token"]

    back = client.post(f"/api/v1/wizard/sessions/{session_id}/back")
    stale = client.post(
        f"/api/v1/wizard/sessions/{session_id}/mock-booking",
        json={"session_token": stale_token, "date": "2024-03-25", "time": "14:00"},
    )

    assert back.json()["state"] == "step1_collecting"
    assert back.json()["widget"] is None
    assert back.json()["fields"] == TEST_DATA
    assert stale.status_code == 400
    assert client.get(f"/api/v1/wizard/sessions/{session_id}").json()["scheduling_reference"] is None


def test_calendly_message_events_are_forwarded(make_client):
    client, _ = make_client(lambda: CalendlyWidget("https://calendly.com/landlord/viewing"))
    session_id = start_session(client)
    step2 = client.post(f"/api/v1/wizard/sessions/{session_id}/step1", json={"fields": TEST_DATA}).json()
    token = step2["widget"]["session_token"]
    assert step2["widget"]["embed_url"].startswith("https://calendly.com/landlord/viewing?")

    ignored = client.post(
        f"/api/v1/wizard/sessions/{session_id}/scheduling-events",
        json={"session_token": token, "message": {"event": "calendly.profile_page_viewed"}},
    )
    scheduled = client.post(
        f"/api/v1/wizard/sessions/{session_id}/scheduling-events",
        json={
            "session_token": token,
            "message": {
                "event": "calendly.event_scheduled",
                "payload": {"event": {"uri": "https://api.calendly.com/scheduled_events/evt-123"}},
            },
        },
    )

    assert ignored.json()["accepted"] is False
    assert scheduled.json()["accepted"] is True
    assert scheduled.json()["scheduling_reference"] == "https://api.calendly.com/scheduled_events/evt-123"


def test_malformed_calendly_payload_is_ignored(make_client):
    client, _ = make_client(lambda: CalendlyWidget("https://calendly.com/landlord/viewing"))
    session_id = start_session(client)
    step2 = client.post(f"/api/v1/wizard/sessions/{session_id}/step1", json={"fields": TEST_DATA}).json()
    token = step2["widget"]["session_token"]

    response = client.post(
        f"/api/v1/wizard/sessions/{session_id}/scheduling-events",
        json={"session_token": token, "message": {"event": "calendly.event_scheduled", "payload": "oops"}},
    )

    assert response.status_code == 200
    assert response.json()["accepted"] is False
    assert response.json()["state"] == "step2_scheduling"
    assert response.json()["scheduling_reference"] is None


def test_invalid_transitions_and_unknown_sessions(make_client):
    client, _ = make_client()
    session_id = start_session(client)

    assert client.post(f"/api/v1/wizard/sessions/{session_id}/back").status_code == 409
    assert client.post(f"/api/v1/wizard/sessions/{session_id}/submit").status_code == 409
    assert client.get("/api/v1/wizard/sessions/unknown").status_code == 404


def test_fill_test_data_and_discard(make_client):
    client, store = make_client()
    session_id = start_session(client)

    filled = client.post(f"/api/v1/wizard/sessions/{session_id}/fill-test-data")
    discarded = client.delete(f"/api/v1/wizard/sessions/{session_id}")

    assert filled.json()["fields"] == TEST_DATA
    assert discarded.json() == {"status": "discarded"}
    assert len(store) == 0
    assert client.delete(f"/api/v1/wizard/sessions/{session_id}").status_code == 404

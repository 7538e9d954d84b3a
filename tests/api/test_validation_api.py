"""
Tests for the door validation endpoint.

Door-level refusals are ordinary answers (200, accepted=false); only auth,
scoping and malformed requests produce error statuses.
"""

from tests.utils.auth import get_staff_authentication_headers
from tests.utils.event import DEFAULT_ORG, create_event
from tests.utils.registration import register

URL = "/api/v1/validation"


class TestValidationEndpoint:
    def setup_method(self):
        self.headers = get_staff_authentication_headers(DEFAULT_ORG, user_id="door_1")

    def test_requires_auth(self, client, db):
        event = create_event(db)
        issued = register(db, event.id)

        response = client.post(
            URL, json={"event_id": event.id, "method": "qr", "credential": issued.qr_code}
        )

        assert response.status_code == 401

    def test_other_organization(self, client, db):
        event = create_event(db)
        issued = register(db, event.id)

        response = client.post(
            URL,
            json={"event_id": event.id, "method": "qr", "credential": issued.qr_code},
            headers=get_staff_authentication_headers("org_other"),
        )

        assert response.status_code == 403

    def test_unknown_event(self, client):
        response = client.post(
            URL,
            json={"event_id": "evt_missing", "method": "qr", "credential": "a.b.c"},
            headers=self.headers,
        )

        assert response.status_code == 404

    def test_qr_admission_then_reuse(self, client, db, outbox_relay):
        event = create_event(db)
        issued = register(db, event.id)
        body = {"event_id": event.id, "method": "qr", "credential": issued.qr_code}

        first = client.post(URL, json=body, headers=self.headers)
        second = client.post(URL, json=body, headers=self.headers)

        assert first.status_code == 200
        assert first.json()["accepted"] is True
        assert first.json()["validated_by"] == "door_1"
        assert second.status_code == 200
        assert second.json()["accepted"] is False
        assert second.json()["reason"] == "already_validated"
        # Only the admission publishes
        outbox_relay.assert_called_once()

    def test_manual_code_two_step(self, client, db):
        event = create_event(db)
        issued = register(db, event.id)
        body = {"event_id": event.id, "method": "manual_code", "credential": issued.manual_code}

        held = client.post(URL, json=body, headers=self.headers).json()
        confirmed = client.post(
            URL,
            json={**body, "confirmation_token": held["confirmation_token"]},
            headers=self.headers,
        ).json()

        assert held["requires_staff_confirmation"] is True
        assert held["reason"] == "staff_confirmation_required"
        assert confirmed["accepted"] is True

    def test_photo_requires_live_image(self, client, db):
        event = create_event(db)
        issued = register(db, event.id)

        response = client.post(
            URL,
            json={"event_id": event.id, "method": "photo", "credential": issued.identifier},
            headers=self.headers,
        )

        assert response.status_code == 422

    def test_unknown_method(self, client, db):
        event = create_event(db)

        response = client.post(
            URL,
            json={"event_id": event.id, "method": "fingerprint", "credential": "x"},
            headers=self.headers,
        )

        assert response.status_code == 422

"""DELETE /api/v1/availability/{availability_id}."""

from app.models.availability import CoachAvailability
from app.models.private_session import PrivateSession, SessionStatus

BASE = "/api/v1/availability"


class TestDeleteAvailability:
    def test_coach_deletes_own_slot(
        self, client, db, auth_headers, coach, student, make_slot, make_session
    ):
        slot = make_slot(coach)
        pending = make_session(coach, student, availability=slot)

        response = client.delete(f"{BASE}/{slot.id}", headers=auth_headers(coach))

        assert response.status_code == 204
        db.expire_all()
        assert db.get(CoachAvailability, slot.id) is None
        assert db.get(PrivateSession, pending.id).availability_id is None

    def test_confirmed_session_blocks_delete(
        self, client, db, auth_headers, coach, student, make_slot, make_session
    ):
        slot = make_slot(coach)
        make_session(coach, student, SessionStatus.CONFIRMED, price_cad=80.0, availability=slot)

        response = client.delete(f"{BASE}/{slot.id}", headers=auth_headers(coach))

        assert response.status_code == 409
        assert response.json()["code"] == "AVAILABILITY_HAS_CONFIRMED_SESSION"
        db.expire_all()
        assert db.get(CoachAvailability, slot.id) is not None

    def test_admin_may_delete_any_slot(self, client, auth_headers, admin, coach, make_slot):
        slot = make_slot(coach)
        assert client.delete(f"{BASE}/{slot.id}", headers=auth_headers(admin)).status_code == 204

    def test_other_coach_is_403(self, client, auth_headers, coach, other_coach, make_slot):
        slot = make_slot(coach)
        response = client.delete(f"{BASE}/{slot.id}", headers=auth_headers(other_coach))
        assert response.status_code == 403

    def test_student_is_403(self, client, auth_headers, coach, student, make_slot):
        slot = make_slot(coach)
        response = client.delete(f"{BASE}/{slot.id}", headers=auth_headers(student))
        assert response.status_code == 403
        assert response.json()["code"] == "ROLE_NOT_PERMITTED"

    def test_unknown_slot_is_404(self, client, auth_headers, coach):
        response = client.delete(f"{BASE}/01J00000000000000000000000", headers=auth_headers(coach))
        assert response.status_code == 404

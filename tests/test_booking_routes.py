from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from app.store.schema import audit_log, notifications, payouts, transactions
from db import get_conn


def _create(client, organizer, talent, **overrides):
    body = {
        "talent_id": str(talent.user_id),
        "event_title": "Jazz Night",
        "event_date": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
        "duration_hours": 3,
        "amount_cents": 20000,
    }
    body.update(overrides)
    return client.post("/api/bookings", json=body, headers=organizer.headers)


def test_create_booking_computes_platform_fee(client, organizer, talent):
    r = _create(client, organizer, talent, amount_cents=20000)
    assert r.status_code == 201, r.text
    b = r.json()
    assert b["status"] == "PENDING"
    assert b["platform_fee_cents"] == 2000
    assert b["talent_amount_cents"] == 18000

    with get_conn() as conn:
        n = conn.execute(
            select(func.count()).select_from(notifications).where(notifications.c.user_id == talent.user_id)
        ).scalar_one()
    assert n == 1


def test_talent_cannot_create_booking(client, talent):
    r = _create(client, talent, talent)
    assert r.status_code == 403, r.text
    assert r.json()["detail"] == "ROLE_NOT_ALLOWED"


def test_unauthenticated_request_rejected(client, talent):
    r = client.get(f"/api/bookings/{talent.user_id}")
    assert r.status_code == 401


def test_talent_accepts_then_organizer_pays(client, provider, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent)
    provider.register_payment("pay_ref_001", 20000)

    r = client.patch(f"/api/talent/bookings/{booking_id}", json={"status": "ACCEPTED"}, headers=talent.headers)
    assert r.status_code == 200, r.text
    assert r.json()["booking"]["status"] == "ACCEPTED"
    assert r.json()["booking"]["accepted_at"]

    r = client.put(
        f"/api/organizer/bookings/{booking_id}",
        json={"action": "pay", "payment_reference": "pay_ref_001"},
        headers=organizer.headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["booking"]["status"] == "IN_PROGRESS"
    assert body["payment_transaction_id"]
    assert body["payment_state"] == "verified"

    with get_conn() as conn:
        tx = conn.execute(select(transactions).where(transactions.c.reference == "pay_ref_001")).mappings().one()
    assert tx["type"] == "BOOKING_PAYMENT"
    assert tx["amount_cents"] == 20000


def test_pay_requires_payment_reference_and_writes_nothing(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    r = client.put(f"/api/organizer/bookings/{booking_id}", json={"action": "pay"}, headers=organizer.headers)
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "PAYMENT_REFERENCE_REQUIRED"

    r = client.get(f"/api/bookings/{booking_id}", headers=organizer.headers)
    assert r.json()["status"] == "ACCEPTED"


def test_duplicate_payment_reference_conflicts(client, provider, organizer, talent, make_booking):
    provider.register_payment("same-ref", 20000)
    first = make_booking(organizer, talent, status="ACCEPTED")
    second = make_booking(organizer, talent, status="ACCEPTED")
    payload = {"action": "pay", "payment_reference": "same-ref"}

    assert client.put(f"/api/organizer/bookings/{first}", json=payload, headers=organizer.headers).status_code == 200
    r = client.put(f"/api/organizer/bookings/{second}", json=payload, headers=organizer.headers)
    assert r.status_code == 409, r.text
    assert r.json()["detail"] == "DUPLICATE_REFERENCE"

    # whole transition rolled back
    assert client.get(f"/api/bookings/{second}", headers=organizer.headers).json()["status"] == "ACCEPTED"


def _transaction_count() -> int:
    with get_conn() as conn:
        return conn.execute(select(func.count()).select_from(transactions)).scalar_one()


def test_pay_with_unknown_gateway_reference_is_rejected(client, provider, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    r = client.put(
        f"/api/organizer/bookings/{booking_id}",
        json={"action": "pay", "payment_reference": "made-up-ref"},
        headers=organizer.headers,
    )
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "PAYMENT_NOT_VERIFIED"
    assert r.json()["payment_state"] == "failed"
    assert provider.verify_calls == 1

    assert client.get(f"/api/bookings/{booking_id}", headers=organizer.headers).json()["status"] == "ACCEPTED"
    assert _transaction_count() == 0


def test_pay_with_failed_gateway_charge_is_rejected(client, provider, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    provider.register_payment("declined-card", 20000, status="FAILED")
    r = client.put(
        f"/api/organizer/bookings/{booking_id}",
        json={"action": "pay", "payment_reference": "declined-card"},
        headers=organizer.headers,
    )
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "PAYMENT_NOT_VERIFIED"
    assert _transaction_count() == 0


def test_pay_amount_mismatch_is_rejected(client, provider, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED", amount_cents=20000)
    provider.register_payment("short-pay", 100)
    r = client.put(
        f"/api/organizer/bookings/{booking_id}",
        json={"action": "pay", "payment_reference": "short-pay"},
        headers=organizer.headers,
    )
    assert r.status_code == 422, r.text
    body = r.json()
    assert body["detail"] == "PAYMENT_AMOUNT_MISMATCH"
    assert body["expected_cents"] == 20000
    assert body["paid_cents"] == 100
    assert body["payment_state"] == "failed"

    assert client.get(f"/api/bookings/{booking_id}", headers=organizer.headers).json()["status"] == "ACCEPTED"
    assert _transaction_count() == 0


def test_pay_currency_mismatch_is_rejected(client, provider, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    provider.register_payment("usd-pay", 20000, currency="USD")
    r = client.put(
        f"/api/organizer/bookings/{booking_id}",
        json={"action": "pay", "payment_reference": "usd-pay"},
        headers=organizer.headers,
    )
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "PAYMENT_CURRENCY_MISMATCH"
    assert _transaction_count() == 0


def test_pay_while_charge_is_settling_returns_pending(client, provider, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    provider.register_payment("settling", 20000, status="PENDING")
    payload = {"action": "pay", "payment_reference": "settling"}

    r = client.put(f"/api/organizer/bookings/{booking_id}", json=payload, headers=organizer.headers)
    assert r.status_code == 202, r.text
    assert r.json()["payment_state"] == "pending"
    assert r.json()["booking"]["status"] == "ACCEPTED"
    assert r.json()["payment_transaction_id"] is None
    assert _transaction_count() == 0

    # once the gateway settles, the same reference goes through
    provider.register_payment("settling", 20000)
    r = client.put(f"/api/organizer/bookings/{booking_id}", json=payload, headers=organizer.headers)
    assert r.status_code == 200, r.text
    assert r.json()["payment_state"] == "verified"
    assert r.json()["booking"]["status"] == "IN_PROGRESS"
    assert _transaction_count() == 1


def test_complete_creates_pending_payout(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="IN_PROGRESS", amount_cents=20000)
    r = client.put(f"/api/organizer/bookings/{booking_id}", json={"action": "complete"}, headers=organizer.headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["booking"]["status"] == "COMPLETED"
    assert body["payout_id"]

    with get_conn() as conn:
        payout = conn.execute(select(payouts).where(payouts.c.booking_id == booking_id)).mappings().one()
    assert payout["status"] == "PENDING"
    assert payout["amount_cents"] == 18000


def test_complete_before_event_end_is_conflict(client, organizer, talent, make_booking):
    booking_id = make_booking(
        organizer, talent, status="IN_PROGRESS", event_date=datetime.now(timezone.utc) - timedelta(hours=1)
    )
    r = client.put(f"/api/organizer/bookings/{booking_id}", json={"action": "complete"}, headers=organizer.headers)
    assert r.status_code == 409, r.text
    assert r.json()["detail"] == "INVALID_TRANSITION"
    assert r.json()["current_status"] == "IN_PROGRESS"


def test_invalid_transition_leaves_no_side_effects(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="DECLINED")
    r = client.put(
        f"/api/organizer/bookings/{booking_id}",
        json={"action": "pay", "payment_reference": "late-pay"},
        headers=organizer.headers,
    )
    assert r.status_code == 409, r.text
    body = r.json()
    assert body["current_status"] == "DECLINED"
    assert body["requested"] == "IN_PROGRESS"

    with get_conn() as conn:
        assert conn.execute(select(func.count()).select_from(transactions)).scalar_one() == 0
        assert conn.execute(select(func.count()).select_from(audit_log)).scalar_one() == 0


def test_cancel_by_delete(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    r = client.delete(f"/api/organizer/bookings/{booking_id}", headers=organizer.headers)
    assert r.status_code == 200, r.text
    assert r.json()["booking"]["status"] == "CANCELLED"


def test_other_organizer_cannot_view_booking(client, organizer, talent, make_booking, make_user):
    from app.users.model import Role

    booking_id = make_booking(organizer, talent)
    other = make_user(Role.ORGANIZER)
    r = client.get(f"/api/bookings/{booking_id}", headers=other.headers)
    assert r.status_code == 403, r.text


def test_dispute_opens_and_notifies(client, organizer, talent, admin, make_booking):
    booking_id = make_booking(organizer, talent, status="IN_PROGRESS")
    r = client.post(
        f"/api/bookings/{booking_id}/dispute",
        json={"reason": "TALENT_NO_SHOW", "explanation": "Talent never arrived at the venue."},
        headers=organizer.headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["booking"]["status"] == "DISPUTED"
    assert r.json()["dispute_id"]

    with get_conn() as conn:
        types = conn.execute(
            select(notifications.c.user_id, notifications.c.type).where(notifications.c.type == "DISPUTE_RAISED")
        ).all()
    recipients = {row[0] for row in types}
    assert talent.user_id in recipients
    assert admin.user_id in recipients


def test_dispute_reason_must_match_role(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="IN_PROGRESS")
    r = client.post(
        f"/api/bookings/{booking_id}/dispute",
        json={"reason": "ORGANIZER_UNRESPONSIVE", "explanation": "This is a talent-side reason."},
        headers=organizer.headers,
    )
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "INVALID_DISPUTE_REASON"


def test_dispute_explanation_too_short(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="IN_PROGRESS")
    r = client.post(
        f"/api/bookings/{booking_id}/dispute",
        json={"reason": "OTHER", "explanation": "short"},
        headers=talent.headers,
    )
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "EXPLANATION_TOO_SHORT"

from __future__ import annotations

import threading
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from app.errors import ExternalProviderError, InvalidTransition
from app.payouts import repository as payouts_repo
from app.payouts import service as payouts_service
from app.store.schema import bookings, payouts, talent_profiles, transactions, users, utcnow
from app.users.model import Role
from db import get_conn


def _ledger_rows(booking_id):
    with get_conn() as conn:
        return conn.execute(
            select(transactions).where(transactions.c.booking_id == booking_id, transactions.c.type == "TALENT_PAYOUT")
        ).mappings().all()


def _initiate(client, admin, booking_id):
    return client.post("/api/admin/payouts/process", json={"booking_id": str(booking_id)}, headers=admin.headers)


def _finalize(client, admin, transfer_code, otp="123456"):
    return client.patch(
        "/api/admin/payouts/process", json={"transfer_code": transfer_code, "otp": otp}, headers=admin.headers
    )


def test_initiate_then_finalize_completes_payout(client, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED", amount_cents=20000)

    r = _initiate(client, admin, booking_id)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["payout"]["status"] == "PROCESSING"
    assert body["requires_otp"] is True
    assert body["transfer_code"]
    assert body["payout"]["reference"]

    r = _finalize(client, admin, body["transfer_code"])
    assert r.status_code == 200, r.text
    done = r.json()
    assert done["state"] == "verified"
    assert done["payout"]["status"] == "COMPLETED"
    assert done["payout"]["amount_cents"] == 18000
    assert done["payout"]["processed_at"]

    rows = _ledger_rows(booking_id)
    assert len(rows) == 1
    assert rows[0]["amount_cents"] == 18000

    with get_conn() as conn:
        assert conn.execute(select(bookings.c.is_paid_out).where(bookings.c.id == booking_id)).scalar_one() is True


def test_finalize_twice_records_one_ledger_row(client, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    code = _initiate(client, admin, booking_id).json()["transfer_code"]

    assert _finalize(client, admin, code).status_code == 200
    r = _finalize(client, admin, code)
    assert r.status_code == 200, r.text
    assert r.json()["already_completed"] is True
    assert r.json()["state"] == "verified"

    assert len(_ledger_rows(booking_id)) == 1
    assert provider.finalize_calls == 1


def test_second_initiate_does_not_send_second_transfer(client, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    first = _initiate(client, admin, booking_id).json()

    r = _initiate(client, admin, booking_id)
    assert r.status_code == 200, r.text
    assert r.json()["already_initiated"] is True
    assert r.json()["transfer_code"] == first["transfer_code"]
    assert provider.initiate_calls == 1


def test_wrong_otp_keeps_payout_processing(client, admin, organizer, payable_talent, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    code = _initiate(client, admin, booking_id).json()["transfer_code"]

    r = _finalize(client, admin, code, otp="000000")
    assert r.status_code == 502, r.text
    assert r.json()["retryable"] is True

    with get_conn() as conn:
        row = conn.execute(select(payouts).where(payouts.c.booking_id == booking_id)).mappings().one()
    assert row["status"] == "PROCESSING"
    assert row["last_error"] == "Invalid OTP"
    assert _ledger_rows(booking_id) == []

    assert _finalize(client, admin, code).json()["payout"]["status"] == "COMPLETED"


def test_finalize_unknown_transfer_code(client, admin):
    r = _finalize(client, admin, "TRF_does_not_exist")
    assert r.status_code == 404
    assert r.json()["detail"] == "PAYOUT_NOT_FOUND"


def test_initiate_requires_completed_booking(client, admin, organizer, payable_talent, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="IN_PROGRESS")
    r = _initiate(client, admin, booking_id)
    assert r.status_code == 422
    assert r.json()["detail"] == "BOOKING_NOT_COMPLETED"


def test_prerequisites_checked_in_order(client, admin, organizer, make_user, make_booking):
    talent = make_user(Role.TALENT)
    booking_id = make_booking(organizer, talent, status="COMPLETED")

    r = _initiate(client, admin, booking_id)
    assert r.status_code == 422, r.text
    assert r.json()["prerequisite"] == "mpesa_number"

    with get_conn() as conn:
        conn.execute(
            update(talent_profiles).where(talent_profiles.c.user_id == talent.user_id)
            .values(mpesa_phone_number="0712345678")
        )
    assert _initiate(client, admin, booking_id).json()["prerequisite"] == "mpesa_verified"

    with get_conn() as conn:
        conn.execute(
            update(talent_profiles).where(talent_profiles.c.user_id == talent.user_id).values(mpesa_verified=True)
        )
    assert _initiate(client, admin, booking_id).json()["prerequisite"] == "kyc_verified"

    with get_conn() as conn:
        conn.execute(update(users).where(users.c.id == talent.user_id).values(verification_status="VERIFIED"))
    r = _initiate(client, admin, booking_id)
    assert r.status_code == 200, r.text


def test_failed_prerequisite_leaves_payout_pending(client, admin, organizer, make_user, make_booking):
    talent = make_user(Role.TALENT)
    booking_id = make_booking(organizer, talent, status="IN_PROGRESS")
    assert client.put(f"/api/organizer/bookings/{booking_id}", json={"action": "complete"},
                      headers=organizer.headers).status_code == 200
    assert _initiate(client, admin, booking_id).status_code == 422

    with get_conn() as conn:
        row = conn.execute(select(payouts).where(payouts.c.booking_id == booking_id)).mappings().one()
    assert row["status"] == "PENDING"
    assert row["reference"] is None


def test_gateway_outage_then_retry_reuses_reference(client, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    provider.fail_initiate = True

    r = _initiate(client, admin, booking_id)
    assert r.status_code == 502, r.text
    with get_conn() as conn:
        first = conn.execute(select(payouts).where(payouts.c.booking_id == booking_id)).mappings().one()
    assert first["status"] == "PROCESSING"
    assert first["transfer_code"] is None
    assert first["last_error"] == "Gateway timeout"

    provider.fail_initiate = False
    r = _initiate(client, admin, booking_id)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["payout"]["reference"] == first["reference"]
    assert body["payout"]["attempt_count"] == 2
    assert body["payout"]["last_error"] is None
    assert len(provider.transfers) == 1


def test_verify_maps_gateway_states(config, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    res = payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)
    payout = res["payout"]

    pending = payouts_service.verify_payout(config, provider, payout_id=payout["id"], actor=admin.actor)
    assert pending["state"] == "pending"
    assert pending["payout"]["status"] == "PROCESSING"

    provider.set_transfer_status(payout["reference"], "SUCCESS")
    verified = payouts_service.verify_payout(config, provider, payout_id=payout["id"], actor=admin.actor)
    assert verified["state"] == "verified"
    assert verified["payout"]["status"] == "COMPLETED"
    assert len(_ledger_rows(booking_id)) == 1

    again = payouts_service.verify_payout(config, provider, payout_id=payout["id"], actor=admin.actor)
    assert again["state"] == "verified"
    assert len(_ledger_rows(booking_id)) == 1


def test_verify_failed_transfer_marks_payout_failed(config, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    payout = payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)["payout"]

    provider.set_transfer_status(payout["reference"], "FAILED")
    res = payouts_service.verify_payout(config, provider, payout_id=payout["id"])
    assert res["state"] == "failed"
    assert res["payout"]["status"] == "FAILED"
    assert _ledger_rows(booking_id) == []

    with get_conn() as conn:
        assert conn.execute(select(bookings.c.is_paid_out).where(bookings.c.id == booking_id)).scalar_one() is False


def test_verify_route(client, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    payout = _initiate(client, admin, booking_id).json()["payout"]
    provider.set_transfer_status(payout["reference"], "SUCCESS")

    r = client.post(f"/api/admin/payouts/{payout['id']}/verify", headers=admin.headers)
    assert r.status_code == 200, r.text
    assert r.json()["state"] == "verified"


def test_list_payouts_groups_by_status(client, admin, organizer, payable_talent, make_booking):
    ready_booking = make_booking(organizer, payable_talent, status="IN_PROGRESS")
    assert client.put(f"/api/organizer/bookings/{ready_booking}", json={"action": "complete"},
                      headers=organizer.headers).status_code == 200

    r = client.get("/api/admin/payouts/process", headers=admin.headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert set(body) == {"pending", "processing", "completed", "failed"}
    assert len(body["pending"]) == 1
    assert body["pending"][0]["ready"] is True
    assert body["pending"][0]["prerequisites"] == {
        "mpesa_number": True, "mpesa_verified": True, "kyc_verified": True,
    }


def test_payout_routes_are_admin_only(client, talent):
    r = client.post("/api/admin/payouts/process", json={"booking_id": str(uuid.uuid4())}, headers=talent.headers)
    assert r.status_code == 403


def test_non_admin_cannot_initiate_in_service(config, provider, organizer, payable_talent, make_booking):
    from app.errors import Forbidden

    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    with pytest.raises(Forbidden):
        payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=organizer.actor)
    with get_conn() as conn:
        assert conn.execute(select(func.count()).select_from(payouts)).scalar_one() == 0


class _HoldingProvider:
    """Parks initiate_transfer until the test releases it."""

    def __init__(self, inner):
        self.inner = inner
        self.entered = threading.Event()
        self.release = threading.Event()

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def initiate_transfer(self, req):
        self.entered.set()
        assert self.release.wait(5)
        return self.inner.initiate_transfer(req)


def _payout_row(booking_id):
    with get_conn() as conn:
        return conn.execute(select(payouts).where(payouts.c.booking_id == booking_id)).mappings().one()


def test_retry_while_another_retry_is_at_the_gateway_is_refused(
    config, admin, organizer, payable_talent, provider, make_booking
):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    provider.fail_initiate = True
    with pytest.raises(ExternalProviderError):
        payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)
    provider.fail_initiate = False
    calls_before = provider.initiate_calls

    holding = _HoldingProvider(provider)
    outcome = {}

    def first_retry():
        try:
            outcome["result"] = payouts_service.initiate_payout(
                config, holding, booking_id=booking_id, actor=admin.actor
            )
        except Exception as e:  # surfaced by the assertions below
            outcome["error"] = e

    worker = threading.Thread(target=first_retry)
    worker.start()
    try:
        assert holding.entered.wait(5)
        with pytest.raises(InvalidTransition) as exc:
            payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)
        assert exc.value.current == "PROCESSING"
        assert "in progress" in exc.value.message
    finally:
        holding.release.set()
        worker.join(5)

    assert "error" not in outcome, outcome.get("error")
    assert outcome["result"]["payout"]["transfer_code"]
    assert provider.initiate_calls - calls_before == 1
    assert len(provider.transfers) == 1
    assert _payout_row(booking_id)["attempt_count"] == 2


def test_stale_retry_claim_loses_to_the_first(config, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    provider.fail_initiate = True
    with pytest.raises(ExternalProviderError):
        payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)

    row = _payout_row(booking_id)
    claim = dict(
        payout_id=row["id"],
        from_status="PROCESSING",
        new_status="PROCESSING",
        reference=row["reference"],
        attempt_count=row["attempt_count"] + 1,
        last_error=None,
        expected_attempt_count=row["attempt_count"],
        expected_no_transfer=True,
    )
    with get_conn() as conn:
        assert payouts_repo.update_status(conn, **claim) is True
        # both read the same attempt_count; only one claim may land
        assert payouts_repo.update_status(conn, **claim) is False

    assert _payout_row(booking_id)["attempt_count"] == row["attempt_count"] + 1


def test_claim_never_overwrites_a_submitted_transfer(config, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    payout = payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)["payout"]
    assert payout["transfer_code"]

    with get_conn() as conn:
        assert payouts_repo.update_status(
            conn,
            payout_id=payout["id"],
            from_status="PROCESSING",
            new_status="PROCESSING",
            attempt_count=payout["attempt_count"] + 1,
            expected_attempt_count=payout["attempt_count"],
            expected_no_transfer=True,
        ) is False


def test_abandoned_claim_is_retryable_after_lease(config, admin, organizer, payable_talent, provider, make_booking):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    # a worker claimed the payout and died before reaching the gateway
    with get_conn() as conn:
        payout = payouts_repo.create_pending(
            conn, booking_id=booking_id, talent_id=payable_talent.user_id, amount_cents=18000
        )
        conn.execute(
            update(payouts)
            .where(payouts.c.id == payout["id"])
            .values(status="PROCESSING", reference="abandoned-ref", attempt_count=1, updated_at=utcnow())
        )

    with pytest.raises(InvalidTransition):
        payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)
    assert provider.initiate_calls == 0

    later = utcnow() + timedelta(seconds=config.payout_inflight_lease_s + 1)
    res = payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor, now=later)
    assert res["payout"]["reference"] == "abandoned-ref"
    assert res["payout"]["attempt_count"] == 2
    assert provider.initiate_calls == 1


def test_unexpected_provider_crash_is_recorded_and_retryable(
    config, admin, organizer, payable_talent, provider, make_booking
):
    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")

    class _Broken:
        def initiate_transfer(self, req):
            raise RuntimeError("recipient cache corrupted")

    with pytest.raises(RuntimeError):
        payouts_service.initiate_payout(config, _Broken(), booking_id=booking_id, actor=admin.actor)

    row = _payout_row(booking_id)
    assert row["status"] == "PROCESSING"
    assert row["transfer_code"] is None
    assert "RuntimeError" in row["last_error"]

    res = payouts_service.initiate_payout(config, provider, booking_id=booking_id, actor=admin.actor)
    assert res["payout"]["reference"] == row["reference"]
    assert res["payout"]["last_error"] is None

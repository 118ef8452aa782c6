from __future__ import annotations

import logging

from sqlalchemy import select

from app.store.schema import audit_log
from db import get_conn


def test_request_id_added_when_missing(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-Id")


def test_request_id_echoed_when_present(client):
    resp = client.get("/healthz", headers={"X-Request-Id": "client-request-id"})
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-Id") == "client-request-id"


def test_request_log_includes_method_path_status(client, caplog):
    caplog.set_level(logging.INFO, logger="gigsec.http")
    resp = client.get("/healthz")
    assert resp.status_code == 200, resp.text
    assert any(
        "http_request" in record.message
        and "method=GET" in record.message
        and "path=/healthz" in record.message
        and "status=200" in record.message
        and "duration_ms=" in record.message
        for record in caplog.records
    )


def test_request_id_recorded_in_audit_log(client, organizer, talent, make_booking):
    booking_id = make_booking(organizer, talent, status="ACCEPTED")
    resp = client.delete(
        f"/api/organizer/bookings/{booking_id}",
        headers={**organizer.headers, "X-Request-Id": "req-audit-1"},
    )
    assert resp.status_code == 200, resp.text

    with get_conn() as conn:
        row = conn.execute(select(audit_log).where(audit_log.c.action == "BOOKING_CANCEL")).mappings().one()
    assert row["request_id"] == "req-audit-1"
    assert row["target_id"] == str(booking_id)
    assert row["metadata"] == {"from": "ACCEPTED", "to": "CANCELLED"}

from __future__ import annotations


def test_healthz_reports_db_and_provider(client):
    r = client.get("/healthz")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["db_ok"] is True
    assert body["db_error"] is None
    assert body["payout_provider"] == "sandbox"

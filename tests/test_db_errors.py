

# tests/test_db_errors.py
import pytest
from sqlalchemy.exc import IntegrityError

import routes.bookings as bookings_routes
from app.errors import Conflict
from services.db_errors import raise_for_db_error


class _Orig(Exception):
    pass


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, _Orig(message))


def test_known_unique_violation_maps_to_business_code():
    with pytest.raises(Conflict) as exc:
        raise_for_db_error(_integrity("UNIQUE constraint failed: transactions.reference"))
    assert exc.value.code == "DUPLICATE_REFERENCE"


def test_postgres_constraint_name_maps_to_business_code():
    orig = _Orig('duplicate key value violates unique constraint "users_email_key"')
    with pytest.raises(Conflict) as exc:
        raise_for_db_error(IntegrityError("INSERT ...", {}, orig))
    assert exc.value.code == "EMAIL_TAKEN"


def test_unknown_integrity_error_is_generic_conflict():
    with pytest.raises(Conflict) as exc:
        raise_for_db_error(_integrity("NOT NULL constraint failed: bookings.event_title"))
    assert exc.value.code == "DB_CONFLICT"


def test_non_integrity_errors_are_reraised():
    with pytest.raises(RuntimeError):
        raise_for_db_error(RuntimeError("boom"))


def test_unknown_db_error_returns_500(client, organizer, monkeypatch):
    """
    Force an unknown DB exception inside a route and assert we fail closed:
      - status_code = 500
      - detail = "Internal server error"
      - no raw exception details leaked
    """

    class DummyConn:
        def __enter__(self):  # pragma: no cover
            raise Exception("SOME_RANDOM_DB_BLOWUP_123")

        def __exit__(self, exc_type, exc, tb):  # pragma: no cover
            return False

    monkeypatch.setattr(bookings_routes, "get_conn", lambda: DummyConn(), raising=True)

    r = client.get(
        "/api/bookings/00000000-0000-0000-0000-000000000000",
        headers=organizer.headers,
    )

    assert r.status_code == 500, r.text
    assert r.json().get("detail") == "Internal server error"
    assert "SOME_RANDOM_DB_BLOWUP_123" not in r.text

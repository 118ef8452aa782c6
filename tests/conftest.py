# tests/conftest.py

import os
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

# must be set before settings/db are imported
_TMP_DIR = tempfile.mkdtemp(prefix="gigsec-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["PAYOUT_PROVIDER_MODE"] = "sandbox"
os.environ["KYC_UPLOAD_DIR"] = os.path.join(_TMP_DIR, "kyc")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert, update

from app.config import KycUploadConfig, WorkflowConfig
from app.providers.sandbox import SandboxProvider
from app.store.schema import bookings, metadata, talent_profiles
from app.users import repository as users_repo
from app.users.model import Actor, Role
from db import create_all, get_conn
from deps.workflow import get_transfer_provider, get_workflow_config
from main import app
from security import create_access_token, hash_password


@dataclass
class AuthedUser:
    email: str
    token: str
    user_id: uuid.UUID
    role: Role

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role)

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


# ---------------------------
# Database
# ---------------------------

@pytest.fixture(scope="session", autouse=True)
def _schema():
    create_all()
    yield


@pytest.fixture(autouse=True)
def _clean_tables(_schema):
    yield
    with get_conn() as conn:
        for table in reversed(metadata.sorted_tables):
            conn.execute(table.delete())


# ---------------------------
# Workflow collaborators
# ---------------------------

@pytest.fixture()
def config(tmp_path) -> WorkflowConfig:
    return WorkflowConfig(kyc=KycUploadConfig(upload_dir=str(tmp_path / "kyc")))


@pytest.fixture()
def provider() -> SandboxProvider:
    return SandboxProvider(otp="123456")


@pytest.fixture()
def client(config, provider) -> TestClient:
    app.dependency_overrides[get_workflow_config] = lambda: config
    app.dependency_overrides[get_transfer_provider] = lambda: provider
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ---------------------------
# Users
# ---------------------------

def _make_user(
    role: Role,
    *,
    name: Optional[str] = None,
    verification_status: str = "UNVERIFIED",
    mpesa: Optional[str] = None,
    mpesa_verified: bool = False,
) -> AuthedUser:
    email = f"{role.value.lower()}-{uuid.uuid4().hex[:8]}@gigsec.test"
    with get_conn() as conn:
        user_id = users_repo.insert_user(
            conn,
            email=email,
            name=name or f"{role.value.title()} User",
            role=role.value,
            password_hash=hash_password("password123"),
            verification_status=verification_status,
        )
        if role == Role.TALENT and mpesa:
            conn.execute(
                update(talent_profiles)
                .where(talent_profiles.c.user_id == user_id)
                .values(mpesa_phone_number=mpesa, mpesa_verified=mpesa_verified)
            )
    token = create_access_token(sub=str(user_id), role=role.value)
    return AuthedUser(email=email, token=token, user_id=user_id, role=role)


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def admin() -> AuthedUser:
    return _make_user(Role.ADMIN)


@pytest.fixture()
def organizer() -> AuthedUser:
    return _make_user(Role.ORGANIZER)


@pytest.fixture()
def talent() -> AuthedUser:
    return _make_user(Role.TALENT)


@pytest.fixture()
def payable_talent() -> AuthedUser:
    return _make_user(Role.TALENT, verification_status="VERIFIED", mpesa="0712345678", mpesa_verified=True)


# ---------------------------
# Bookings
# ---------------------------

def _make_booking(
    organizer: AuthedUser,
    talent: AuthedUser,
    *,
    amount_cents: int = 20000,
    status: str = "PENDING",
    event_date: Optional[datetime] = None,
    duration_hours: int = 4,
    completed_at: Optional[datetime] = None,
) -> uuid.UUID:
    now = datetime.now(timezone.utc)
    booking_id = uuid.uuid4()
    fee = amount_cents // 10
    with get_conn() as conn:
        conn.execute(
            insert(bookings).values(
                id=booking_id,
                organizer_id=organizer.user_id,
                talent_id=talent.user_id,
                event_title="Friday Night Live",
                event_date=event_date or (now - timedelta(days=1)),
                duration_hours=duration_hours,
                amount_cents=amount_cents,
                platform_fee_cents=fee,
                talent_amount_cents=amount_cents - fee,
                status=status,
                is_paid_out=False,
                created_at=now,
                updated_at=now,
                completed_at=completed_at,
            )
        )
    return booking_id


@pytest.fixture()
def make_booking():
    return _make_booking

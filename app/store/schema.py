# app/store/schema.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)


class UTCDateTime(TypeDecorator):
    """
    timestamptz on Postgres; on SQLite the tzinfo is lost on the way back,
    so naive values read from the DB are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


metadata = MetaData()


users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("name", String(200)),
    Column("role", String(16), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("verification_status", String(16), nullable=False, default="UNVERIFIED"),
    Column("referral_code", String(32), unique=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
)

talent_profiles = Table(
    "talent_profiles",
    metadata,
    Column("user_id", Uuid, ForeignKey("users.id"), primary_key=True),
    Column("mpesa_phone_number", String(20)),
    Column("mpesa_verified", Boolean, nullable=False, default=False),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
)

bookings = Table(
    "bookings",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("organizer_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("talent_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("event_title", String(200), nullable=False),
    Column("event_date", UTCDateTime, nullable=False),
    Column("duration_hours", Integer, nullable=False, default=0),
    Column("event_end_at", UTCDateTime),
    Column("amount_cents", BigInteger, nullable=False),
    Column("platform_fee_cents", BigInteger, nullable=False),
    Column("talent_amount_cents", BigInteger, nullable=False),
    Column("status", String(16), nullable=False),
    Column("notes", Text),
    Column("is_paid_out", Boolean, nullable=False, default=False),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("accepted_at", UTCDateTime),
    Column("completed_at", UTCDateTime),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
    Index("ix_bookings_organizer", "organizer_id"),
    Index("ix_bookings_talent", "talent_id"),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("type", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("user_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("booking_id", Uuid, ForeignKey("bookings.id")),
    Column("amount_cents", BigInteger, nullable=False),
    Column("currency", String(3), nullable=False, default="KES"),
    Column("reference", String(128), nullable=False, unique=True),
    Column("metadata", JSON),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Index("ix_transactions_booking", "booking_id"),
)

payouts = Table(
    "payouts",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("booking_id", Uuid, ForeignKey("bookings.id"), nullable=False, unique=True),
    Column("talent_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("amount_cents", BigInteger, nullable=False),
    Column("status", String(16), nullable=False),
    Column("reference", String(64), unique=True),
    Column("transfer_code", String(64), unique=True),
    Column("mpesa_number", String(20)),
    Column("last_error", Text),
    Column("provider_response", JSON),
    Column("attempt_count", Integer, nullable=False, default=0),
    Column("processed_at", UTCDateTime),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
    Index("ix_payouts_status", "status"),
)

disputes = Table(
    "disputes",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("booking_id", Uuid, ForeignKey("bookings.id"), nullable=False),
    Column("raised_by_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("reason", String(64), nullable=False),
    Column("explanation", Text, nullable=False),
    Column("status", String(32), nullable=False),
    Column("resolution_notes", Text),
    Column("refund_cents", BigInteger),
    Column("payout_cents", BigInteger),
    Column("resolution_fee_cents", BigInteger),
    Column("provider_refund_id", String(64)),
    Column("resolved_by_id", Uuid, ForeignKey("users.id")),
    Column("resolved_at", UTCDateTime),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
    Index("ix_disputes_booking", "booking_id"),
)

kyc_submissions = Table(
    "kyc_submissions",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("document_type", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("rejection_reason", Text),
    Column("admin_notes", Text),
    Column("reviewed_by_id", Uuid, ForeignKey("users.id")),
    Column("submitted_at", UTCDateTime, nullable=False, default=utcnow),
    Column("reviewed_at", UTCDateTime),
    Index("ix_kyc_submissions_user", "user_id"),
)

kyc_documents = Table(
    "kyc_documents",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("submission_id", Uuid, ForeignKey("kyc_submissions.id"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("document_type", String(32), nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("file_path", Text, nullable=False),
    Column("mime_type", String(64), nullable=False),
    Column("file_size", BigInteger, nullable=False),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    UniqueConstraint("submission_id", "position", name="ux_kyc_documents_position"),
)

referrals = Table(
    "referrals",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("referrer_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("referred_id", Uuid, ForeignKey("users.id"), nullable=False, unique=True),
    Column("referral_code", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("reward_status", String(16), nullable=False),
    Column("referrer_reward_cents", BigInteger),
    Column("referred_reward_cents", BigInteger),
    Column("conversion_type", String(32)),
    Column("conversion_booking_id", Uuid, ForeignKey("bookings.id")),
    Column("reward_failure_reason", Text),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("converted_at", UTCDateTime),
    Column("reward_credited_at", UTCDateTime),
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("type", String(48), nullable=False),
    Column("title", String(200), nullable=False),
    Column("message", Text, nullable=False),
    Column("booking_id", Uuid),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Index("ix_notifications_user", "user_id"),
)

audit_log = Table(
    "audit_log",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("actor_user_id", Uuid, nullable=False),
    Column("action", String(64), nullable=False),
    Column("target_id", String(64)),
    Column("metadata", JSON),
    Column("request_id", String(64)),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
)

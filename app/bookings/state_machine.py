# app/bookings/state_machine.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from app.bookings.model import BookingAction, BookingStatus, Effect
from app.config import WorkflowConfig
from app.errors import Forbidden, InvalidTransition
from app.users.model import Actor, Role

S = BookingStatus
A = BookingAction
E = Effect

ORG = frozenset({Role.ORGANIZER})
TAL = frozenset({Role.TALENT})
ORG_ADMIN = frozenset({Role.ORGANIZER, Role.ADMIN})
PARTIES = frozenset({Role.ORGANIZER, Role.TALENT})
ADMIN = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class Rule:
    to: BookingStatus
    roles: frozenset
    effects: tuple[Effect, ...] = ()


_DISPUTE = Rule(S.DISPUTED, PARTIES, (E.OPEN_DISPUTE, E.NOTIFY_COUNTERPARTY, E.NOTIFY_ADMINS))

# Every status has an entry; a missing action means "not allowed from here".
TRANSITIONS: dict[BookingStatus, dict[BookingAction, Rule]] = {
    S.PENDING: {
        A.ACCEPT: Rule(S.ACCEPTED, TAL, (E.STAMP_ACCEPTED, E.NOTIFY_ORGANIZER)),
        A.DECLINE: Rule(S.DECLINED, TAL, (E.NOTIFY_ORGANIZER,)),
        A.CANCEL: Rule(S.CANCELLED, ORG_ADMIN, (E.NOTIFY_TALENT,)),
    },
    S.ACCEPTED: {
        A.PAY: Rule(S.IN_PROGRESS, ORG, (E.RECORD_PAYMENT, E.CHECK_REFERRALS, E.NOTIFY_TALENT)),
        A.CANCEL: Rule(S.CANCELLED, ORG_ADMIN, (E.NOTIFY_TALENT,)),
    },
    S.IN_PROGRESS: {
        A.COMPLETE: Rule(S.COMPLETED, ORG_ADMIN, (E.STAMP_COMPLETED, E.CREATE_PAYOUT, E.NOTIFY_TALENT)),
        A.DISPUTE: _DISPUTE,
    },
    S.COMPLETED: {
        A.DISPUTE: _DISPUTE,
    },
    S.DISPUTED: {
        A.RESOLVE_CANCEL: Rule(S.CANCELLED, ADMIN),
        A.RESOLVE_COMPLETE: Rule(S.COMPLETED, ADMIN, (E.STAMP_COMPLETED,)),
    },
    S.DECLINED: {},
    S.CANCELLED: {},
}

# nominal target of each action, used to name the requested status in errors
ACTION_TARGET: dict[BookingAction, BookingStatus] = {
    A.ACCEPT: S.ACCEPTED,
    A.DECLINE: S.DECLINED,
    A.CANCEL: S.CANCELLED,
    A.PAY: S.IN_PROGRESS,
    A.COMPLETE: S.COMPLETED,
    A.DISPUTE: S.DISPUTED,
    A.RESOLVE_CANCEL: S.CANCELLED,
    A.RESOLVE_COMPLETE: S.COMPLETED,
}


@dataclass(frozen=True)
class Decision:
    current: BookingStatus
    action: BookingAction
    new_status: BookingStatus
    effects: tuple[Effect, ...]


def event_end(booking: Mapping[str, Any]) -> datetime:
    if booking.get("event_end_at"):
        return booking["event_end_at"]
    return booking["event_date"] + timedelta(hours=int(booking.get("duration_hours") or 0))


def _assert_actor(booking: Mapping[str, Any], rule: Rule, actor: Actor) -> None:
    if actor.role not in rule.roles:
        raise Forbidden(f"{actor.role.value} may not perform this action", code="ROLE_NOT_ALLOWED")
    if actor.role == Role.ORGANIZER and booking["organizer_id"] != actor.user_id:
        raise Forbidden("Not the organizer of this booking", code="NOT_BOOKING_PARTY")
    if actor.role == Role.TALENT and booking["talent_id"] != actor.user_id:
        raise Forbidden("Not the talent of this booking", code="NOT_BOOKING_PARTY")


def decide(
    booking: Mapping[str, Any],
    action: BookingAction,
    actor: Actor,
    *,
    config: WorkflowConfig,
    now: datetime,
    payout_status: Optional[str] = None,
) -> Decision:
    """
    Pure transition check. Raises InvalidTransition / Forbidden;
    never touches storage.
    """
    current = BookingStatus(booking["status"])
    action = BookingAction(action)
    rule = TRANSITIONS[current].get(action)
    if rule is None:
        raise InvalidTransition("booking", current.value, ACTION_TARGET[action].value)

    _assert_actor(booking, rule, actor)

    if action == A.COMPLETE:
        end = event_end(booking)
        if now < end:
            raise InvalidTransition(
                "booking",
                current.value,
                rule.to.value,
                message=f"Booking cannot be completed before the event ends at {end.isoformat()}",
            )

    if action == A.DISPUTE:
        if now < booking["event_date"]:
            raise InvalidTransition(
                "booking", current.value, rule.to.value, message="Disputes can only be raised after the event date"
            )
        if current == S.COMPLETED:
            completed_at = booking.get("completed_at") or now
            if now > completed_at + config.dispute_window:
                raise InvalidTransition(
                    "booking",
                    current.value,
                    rule.to.value,
                    message=f"Dispute window of {config.dispute_window_days} days has closed",
                )
            if booking.get("is_paid_out") or (payout_status and payout_status != "PENDING"):
                raise InvalidTransition(
                    "booking", current.value, rule.to.value, message="Payout already released for this booking"
                )

    return Decision(current=current, action=action, new_status=rule.to, effects=rule.effects)

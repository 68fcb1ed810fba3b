"""Conversion between table rows and the camelCase JSON used on the wire."""
from math import isfinite
from typing import Optional

from errors import InvalidRequest
from models import (
    User, Trip, Notification, Message, CreditLog, StudyGroup,
    ROLES, NOTIFICATION_TYPES, load_list, dump_list, new_id, now_iso,
)


def require(payload: dict, keys):
    if not isinstance(payload, dict):
        raise InvalidRequest("expected a JSON object")
    for k in keys:
        if payload.get(k) in (None, ""):
            raise InvalidRequest(f"missing {k}")


def _int(payload: dict, key: str, default: Optional[int] = None) -> int:
    value = payload.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{key} must be an integer")


def _float(payload: dict, key: str, default: Optional[float] = None) -> float:
    value = payload.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{key} must be a number")
    if not isfinite(number):
        raise InvalidRequest(f"{key} must be a finite number")
    return number


def _finite(value) -> float:
    number = float(value)
    if not isfinite(number):
        raise ValueError(value)
    return number


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ── users ───────────────────────────────────────────────────

def user_out(u: User) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "role": u.role,
        "skills": load_list(u.skills),
        "accessibilityNeeds": load_list(u.accessibility_needs),
        "credits": u.credits,
    }


def _role(value) -> str:
    role = value or "both"
    if role not in ROLES:
        raise InvalidRequest(f"role must be one of {', '.join(ROLES)}")
    return role


def user_in(payload: dict) -> User:
    require(payload, ["id"])
    return User(
        id=normalize_email(payload["id"]),
        name=payload.get("name") or "",
        role=_role(payload.get("role")),
        skills=dump_list(payload.get("skills")),
        accessibility_needs=dump_list(payload.get("accessibilityNeeds")),
        credits=_int(payload, "credits", 0),
        password=payload.get("password"),
    )


# wire key -> (column, converter) for partial user updates
USER_UPDATABLE = {
    "name": ("name", lambda v: v or ""),
    "role": ("role", _role),
    "skills": ("skills", dump_list),
    "accessibilityNeeds": ("accessibility_needs", dump_list),
    "credits": ("credits", int),
    "password": ("password", lambda v: v or None),
}


def user_changes(payload: dict) -> dict:
    return _changes(payload, USER_UPDATABLE)


# ── trips ───────────────────────────────────────────────────

def trip_out(t: Trip) -> dict:
    return {
        "id": t.id,
        "driverId": t.driver_id,
        "driverName": t.driver_name,
        "from": t.from_loc,
        "to": t.to_loc,
        "departureTime": t.departure_time,
        "seatsAvailable": t.seats_available,
        "distanceKm": t.distance_km,
        "co2Saved": t.co2_saved,
        "tutoringSubject": t.tutoring_subject,
        "assistanceOffered": bool(t.assistance_offered),
        "specialEquipment": load_list(t.special_equipment),
        "passengerIds": load_list(t.passenger_ids),
    }


def trip_in(payload: dict) -> Trip:
    require(payload, ["driverId", "from", "to"])
    seats = _int(payload, "seatsAvailable", 0)
    distance = _float(payload, "distanceKm", 0.0)
    if seats < 0 or distance < 0:
        raise InvalidRequest("seatsAvailable and distanceKm must not be negative")
    return Trip(
        id=payload.get("id") or new_id(),
        driver_id=normalize_email(payload["driverId"]),
        driver_name=payload.get("driverName") or "",
        from_loc=payload["from"],
        to_loc=payload["to"],
        departure_time=payload.get("departureTime") or "",
        seats_available=seats,
        distance_km=distance,
        co2_saved=_float(payload, "co2Saved", 0.0),
        tutoring_subject=payload.get("tutoringSubject") or None,
        assistance_offered=bool(payload.get("assistanceOffered")),
        special_equipment=dump_list(payload.get("specialEquipment")),
        passenger_ids=dump_list(payload.get("passengerIds")),
    )


# wire key -> (column, converter) for partial trip updates
TRIP_UPDATABLE = {
    "driverName": ("driver_name", str),
    "from": ("from_loc", str),
    "to": ("to_loc", str),
    "departureTime": ("departure_time", str),
    "seatsAvailable": ("seats_available", int),
    "distanceKm": ("distance_km", _finite),
    "co2Saved": ("co2_saved", _finite),
    "tutoringSubject": ("tutoring_subject", lambda v: v or None),
    "assistanceOffered": ("assistance_offered", bool),
    "specialEquipment": ("special_equipment", dump_list),
    "passengerIds": ("passenger_ids", dump_list),
}


def trip_changes(payload: dict) -> dict:
    return _changes(payload, TRIP_UPDATABLE)


def _changes(payload: dict, updatable: dict) -> dict:
    if not isinstance(payload, dict):
        raise InvalidRequest("expected a JSON object")
    changes = {}
    for key, value in payload.items():
        if key not in updatable:
            continue
        column, convert = updatable[key]
        try:
            changes[column] = convert(value)
        except (TypeError, ValueError):
            raise InvalidRequest(f"invalid value for {key}")
    return changes


# ── notifications / messages / credit logs ─────────────────

def notification_out(n: Notification) -> dict:
    return {
        "id": n.id,
        "userId": n.user_id,
        "text": n.text,
        "read": bool(n.read),
        "type": n.type,
        "timestamp": n.timestamp,
    }


def notification_in(payload: dict) -> Notification:
    require(payload, ["userId", "text"])
    ntype = payload.get("type") or "info"
    if ntype not in NOTIFICATION_TYPES:
        raise InvalidRequest(f"type must be one of {', '.join(NOTIFICATION_TYPES)}")
    return Notification(
        id=payload.get("id") or new_id(),
        user_id=payload["userId"],
        text=payload["text"],
        read=bool(payload.get("read", False)),
        type=ntype,
        timestamp=payload.get("timestamp") or now_iso(),
    )


def message_out(m: Message) -> dict:
    return {
        "id": m.id,
        "tripId": m.trip_id,
        "senderId": m.sender_id,
        "senderName": m.sender_name,
        "text": m.text,
        "timestamp": m.timestamp,
    }


def message_in(payload: dict) -> Message:
    require(payload, ["tripId", "senderId", "text"])
    return Message(
        id=payload.get("id") or new_id(),
        trip_id=payload["tripId"],
        sender_id=payload["senderId"],
        sender_name=payload.get("senderName") or "",
        text=payload["text"],
        timestamp=payload.get("timestamp") or now_iso(),
    )


def credit_log_out(log: CreditLog) -> dict:
    return {
        "id": log.id,
        "userId": log.user_id,
        "amount": log.amount,
        "reason": log.reason,
        "timestamp": log.timestamp,
    }


def credit_log_in(payload: dict) -> CreditLog:
    require(payload, ["userId", "amount"])
    return CreditLog(
        id=payload.get("id") or new_id(),
        user_id=payload["userId"],
        amount=_int(payload, "amount"),
        reason=payload.get("reason") or "",
        timestamp=payload.get("timestamp") or now_iso(),
    )


# ── study groups ────────────────────────────────────────────

def study_group_out(g: StudyGroup) -> dict:
    return {
        "id": g.id,
        "trainNumber": g.train_number,
        "trainLine": g.train_line,
        "departureTime": g.departure_time,
        "subject": g.subject,
        "from": g.from_loc,
        "creatorId": g.creator_id,
        "members": load_list(g.members),
        "maxMembers": g.max_members,
    }


def study_group_in(payload: dict) -> StudyGroup:
    require(payload, ["trainNumber", "creatorId"])
    max_members = _int(payload, "maxMembers", 4)
    if max_members < 1:
        raise InvalidRequest("maxMembers must be at least 1")
    creator_id = normalize_email(payload["creatorId"])
    members = payload.get("members")
    if members is None:
        members = [creator_id]
    return StudyGroup(
        id=payload.get("id") or new_id(),
        train_number=str(payload["trainNumber"]),
        train_line=payload.get("trainLine") or "",
        departure_time=payload.get("departureTime") or "",
        subject=payload.get("subject") or "",
        from_loc=payload.get("from") or "",
        creator_id=creator_id,
        members=dump_list(members),
        max_members=max_members,
    )

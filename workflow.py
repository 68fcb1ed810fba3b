"""Booking, credit and study-group workflows.

Each operation runs inside one repository transaction and locks the rows it
reads before writing them back, so concurrent bookings or joins cannot
overwrite each other and a failure part-way leaves nothing behind.
"""
from dataclasses import dataclass
from math import floor
from typing import List, Optional, Tuple

from sqlmodel import select

from co2 import estimate_trip_co2
from db import get_repository
from errors import AuthError, InvalidRequest, NotFound
from logger import get_logger
from models import (
    User, Trip, Notification, CreditLog, StudyGroup,
    load_list, dump_list,
)
from serializers import normalize_email

logger = get_logger(__name__)

WELCOME_CREDITS = 500
OFFER_REWARD = 50
CANCEL_PARTICIPATION_PENALTY = -30
CANCEL_TRIP_PENALTY = -100


@dataclass
class BookingResult:
    trip: Trip
    user: User
    earned: int


def earned_credits(distance_km: float, seats: int) -> int:
    return floor(distance_km * 2 * seats)


def _seat_label(seats: int) -> str:
    return "seat" if seats == 1 else "seats"


def _locked(repo, session, model, key, label):
    row = repo.for_update(session, model, key)
    if row is None:
        raise NotFound(f"{label} not found")
    return row


def _credit(session, user: User, amount: int, reason: Optional[str]):
    user.credits += amount
    session.add(user)
    if reason:
        session.add(CreditLog(user_id=user.id, amount=amount, reason=reason))


def _notify(session, user_id: str, text: str, kind: str):
    session.add(Notification(user_id=user_id, text=text, type=kind))


def save_user(user: User, changes: dict) -> User:
    """Insert ``user``, or apply only the sent ``changes`` to the stored row.

    Fields the payload left out (password, credits) keep their stored values.
    """
    repo = get_repository()
    with repo.transaction() as session:
        existing = repo.for_update(session, User, user.id)
        if existing is None:
            session.add(user)
        else:
            for column, value in changes.items():
                setattr(existing, column, value)
            session.add(existing)
            user = existing
    return user


def update_user(user_id: str, changes: dict) -> User:
    user_id = normalize_email(user_id)
    repo = get_repository()
    with repo.transaction() as session:
        user = _locked(repo, session, User, user_id, "user")
        for column, value in changes.items():
            setattr(user, column, value)
        session.add(user)
    logger.info(f"Profile updated for {user_id}: {', '.join(sorted(changes)) or 'no changes'}")
    return user


def adjust_credits(user_id: str, amount: int, reason: Optional[str] = None) -> User:
    user_id = normalize_email(user_id)
    repo = get_repository()
    with repo.transaction() as session:
        user = _locked(repo, session, User, user_id, "user")
        _credit(session, user, amount, reason)
    logger.info(f"Credits {amount:+d} for {user_id} (now {user.credits})")
    return user


def offer_trip(trip: Trip) -> Tuple[Trip, User]:
    """Publish a trip and reward the driver with the offer bonus."""
    repo = get_repository()
    if not trip.co2_saved:
        trip.co2_saved = estimate_trip_co2(trip.distance_km)
    with repo.transaction() as session:
        driver = _locked(repo, session, User, trip.driver_id, "driver")
        if not trip.driver_name:
            trip.driver_name = driver.name
        trip = session.merge(trip)
        _credit(session, driver, OFFER_REWARD, f"Trip offer bonus: {trip.to_loc}")
    logger.info(f"Trip {trip.id} offered by {driver.id} to {trip.to_loc}")
    return trip, driver


def book_trip(trip_id: str, user_id: str, seats: int = 1) -> BookingResult:
    if seats < 1:
        raise InvalidRequest("seats must be at least 1")
    user_id = normalize_email(user_id)
    repo = get_repository()
    with repo.transaction() as session:
        trip = _locked(repo, session, Trip, trip_id, "trip")
        user = _locked(repo, session, User, user_id, "user")
        if trip.driver_id == user.id:
            raise InvalidRequest("drivers cannot book their own trip")
        passengers = load_list(trip.passenger_ids)
        if user.id in passengers:
            raise InvalidRequest("already booked")
        if trip.seats_available < seats:
            raise InvalidRequest("not enough seats available")

        trip.seats_available -= seats
        passengers.append(user.id)
        trip.passenger_ids = dump_list(passengers)
        session.add(trip)

        earned = earned_credits(trip.distance_km, seats)
        _credit(session, user, earned, f"Booked {seats} {_seat_label(seats)} to {trip.to_loc}")
        _notify(
            session, trip.driver_id,
            f"{user.name or user.id} booked {seats} {_seat_label(seats)} on your trip to {trip.to_loc}",
            "success",
        )
    logger.info(f"{user_id} booked {seats} seat(s) on trip {trip_id}, earned {earned}")
    return BookingResult(trip=trip, user=user, earned=earned)


def cancel_participation(trip_id: str, user_id: str) -> Tuple[Trip, User]:
    """Leave a trip: one seat back, fixed penalty, driver is told."""
    user_id = normalize_email(user_id)
    repo = get_repository()
    with repo.transaction() as session:
        trip = _locked(repo, session, Trip, trip_id, "trip")
        user = _locked(repo, session, User, user_id, "user")
        passengers = load_list(trip.passenger_ids)
        if user.id not in passengers:
            raise InvalidRequest("not a passenger of this trip")

        # one seat regardless of how many were booked
        trip.seats_available += 1
        trip.passenger_ids = dump_list(p for p in passengers if p != user.id)
        session.add(trip)

        _credit(session, user, CANCEL_PARTICIPATION_PENALTY, f"Cancelled booking to {trip.to_loc}")
        _notify(
            session, trip.driver_id,
            f"{user.name or user.id} cancelled their booking for {trip.to_loc}",
            "warning",
        )
    logger.info(f"{user_id} left trip {trip_id}")
    return trip, user


def cancel_trip(trip_id: str, user_id: str) -> Tuple[User, List[str]]:
    """Driver withdraws a trip; every former passenger is notified."""
    user_id = normalize_email(user_id)
    repo = get_repository()
    with repo.transaction() as session:
        trip = _locked(repo, session, Trip, trip_id, "trip")
        if trip.driver_id != user_id:
            raise InvalidRequest("only the driver can cancel this trip")
        driver = _locked(repo, session, User, trip.driver_id, "driver")
        passengers = load_list(trip.passenger_ids)
        session.delete(trip)

        _credit(session, driver, CANCEL_TRIP_PENALTY, f"Cancelled trip to {trip.to_loc}")
        for pid in passengers:
            _notify(session, pid, f"The trip to {trip.to_loc} was cancelled by the driver", "warning")
    logger.info(f"Trip {trip_id} cancelled by {user_id}, {len(passengers)} passenger(s) notified")
    return driver, passengers


def join_study_group(group_id: str, user_id: str) -> Tuple[bool, List[str]]:
    """Returns (joined, members); joined is False when already a member."""
    user_id = normalize_email(user_id)
    repo = get_repository()
    with repo.transaction() as session:
        group = _locked(repo, session, StudyGroup, group_id, "Group")
        members = load_list(group.members)
        if user_id in members:
            return False, members
        if len(members) >= group.max_members:
            raise InvalidRequest("Group full")
        members.append(user_id)
        group.members = dump_list(members)
        session.add(group)
    logger.info(f"{user_id} joined study group {group_id}")
    return True, members


def leaderboard(limit: int = 5) -> List[dict]:
    with get_repository().session() as session:
        users = session.exec(select(User).order_by(User.credits.desc()).limit(limit)).all()
    return [
        {
            "rank": idx,
            "id": u.id,
            "name": u.name,
            "credits": u.credits,
            "level": u.credits // 1000 + 1,
        }
        for idx, u in enumerate(users, start=1)
    ]


def authenticate(email: str, password: str) -> User:
    user = get_repository().get(User, normalize_email(email))
    if user is None:
        raise AuthError("user not found")
    # passwords are stored as given
    if user.password and user.password != password:
        raise AuthError("wrong password")
    return user

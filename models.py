from typing import Optional, List
from sqlmodel import SQLModel, Field
from datetime import datetime
import json
import uuid


ROLES = ("driver", "passenger", "both")
NOTIFICATION_TYPES = ("info", "success", "warning")


def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


def load_list(raw: Optional[str]) -> List:
    # array columns are stored as JSON text
    if not raw:
        return []
    return json.loads(raw)


def dump_list(values) -> str:
    return json.dumps(list(values or []))


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)  # normalized email
    name: str = ""
    role: str = "both"  # driver, passenger, both
    skills: str = "[]"
    accessibility_needs: str = "[]"
    credits: int = 0
    password: Optional[str] = None


class Trip(SQLModel, table=True):
    __tablename__ = "trips"

    id: str = Field(default_factory=new_id, primary_key=True)
    driver_id: str = Field(index=True)
    driver_name: str = ""
    from_loc: str = ""
    to_loc: str = ""
    departure_time: str = ""
    seats_available: int = 0
    distance_km: float = 0.0
    co2_saved: float = 0.0
    tutoring_subject: Optional[str] = None
    assistance_offered: bool = False
    special_equipment: str = "[]"
    passenger_ids: str = "[]"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    text: str = ""
    read: bool = False
    type: str = "info"  # info, success, warning
    timestamp: str = Field(default_factory=now_iso)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: str = Field(default_factory=new_id, primary_key=True)
    trip_id: str = Field(index=True)  # trip id or study group id
    sender_id: str
    sender_name: str = ""
    text: str = ""
    timestamp: str = Field(default_factory=now_iso)


class CreditLog(SQLModel, table=True):
    __tablename__ = "credit_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    amount: int
    reason: str = ""
    timestamp: str = Field(default_factory=now_iso)


class StudyGroup(SQLModel, table=True):
    __tablename__ = "study_groups"

    id: str = Field(default_factory=new_id, primary_key=True)
    train_number: str = ""
    train_line: str = ""
    departure_time: str = ""
    subject: str = ""
    from_loc: str = ""
    creator_id: str = ""
    members: str = "[]"
    max_members: int = 4

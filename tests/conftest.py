import os
import sys

import pytest

# ensure project root in sys.path so the flat modules import
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import config
import db as db_mod
from db import SQLiteRepository
from models import User, Trip, StudyGroup, dump_list


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    """Each test runs against a fresh SQLite database file."""
    repo = SQLiteRepository(f"sqlite:///{tmp_path}/test.db")
    monkeypatch.setattr(db_mod, "repository", repo)
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    repo.create_all()
    yield repo
    repo.drop_all()
    repo.engine.dispose()


@pytest.fixture
def make_user(fresh_db):
    def _make(user_id="alice@uni.example", name="Alice", credits=500, password=None,
              skills=(), needs=(), role="both"):
        return fresh_db.save(User(
            id=user_id, name=name, credits=credits, password=password, role=role,
            skills=dump_list(skills), accessibility_needs=dump_list(needs),
        ))
    return _make


@pytest.fixture
def make_trip(fresh_db):
    def _make(driver_id, trip_id="trip1", seats=3, distance=10.0, to="Politecnico",
              passengers=(), subject=None):
        return fresh_db.save(Trip(
            id=trip_id, driver_id=driver_id, driver_name="Driver", from_loc="Monza",
            to_loc=to, departure_time="2026-11-03T08:00", seats_available=seats,
            distance_km=distance, tutoring_subject=subject,
            passenger_ids=dump_list(passengers),
        ))
    return _make


@pytest.fixture
def make_group(fresh_db):
    def _make(creator_id, group_id="group1", max_members=4, members=None):
        return fresh_db.save(StudyGroup(
            id=group_id, train_number="2615", train_line="Milano - Bergamo",
            departure_time="2026-11-03T07:45", subject="Fisica", from_loc="Milano Centrale",
            creator_id=creator_id, members=dump_list(members if members is not None else [creator_id]),
            max_members=max_members,
        ))
    return _make

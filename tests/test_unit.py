"""
Unit tests for the CO2 calculator, the booking/credit workflow, study groups,
serializers, AI fallback and the train proxy helpers.
"""
from datetime import datetime, timezone

import httpx
import pytest

import ai
import config
import trains
import workflow
from co2 import calculate_co2, estimate_trip_co2
from db import get_repository, create_repository, query, SQLiteRepository, PostgresRepository
from errors import AuthError, InvalidRequest, NotFound, UpstreamError
from models import User, Trip, Notification, CreditLog, StudyGroup, load_list
from serializers import (
    user_in, user_out, user_changes, trip_in, trip_changes, notification_in, study_group_in,
)


def get(model, key):
    return get_repository().get(model, key)


def notifications_for(user_id):
    return get_repository().list(Notification, Notification.user_id == user_id)


# ────────────────────────── co2 calculator ──────────────────────────────────

def test_co2_one_passenger_car():
    res = calculate_co2(distance_km=10, passengers=1, vehicle_type="car")
    assert res["savedKg"] == 1.2
    assert res["credits"] == 2


def test_co2_van_uses_higher_factor():
    car = calculate_co2(10, 2, "car")
    van = calculate_co2(10, 2, "van")
    assert van["savedKg"] > car["savedKg"]
    assert van["savedKg"] == 3.6


def test_co2_no_passengers_saves_nothing():
    res = calculate_co2(25, 0)
    assert res == {"savedKg": 0.0, "credits": 0, "formula": res["formula"]}


def test_co2_rejects_unknown_vehicle():
    with pytest.raises(InvalidRequest):
        calculate_co2(10, 1, "bus")


def test_co2_rejects_negative_distance():
    with pytest.raises(InvalidRequest):
        calculate_co2(-1, 1)


def test_co2_rejects_non_finite_distance():
    for distance in (float("nan"), float("inf"), 1e308):
        with pytest.raises(InvalidRequest):
            calculate_co2(distance, 1)


def test_estimate_trip_co2():
    assert estimate_trip_co2(10) == 3.0
    assert estimate_trip_co2(7) == 2.1


# ────────────────────────── credits ─────────────────────────────────────────

def test_earned_credits_formula():
    assert workflow.earned_credits(10.0, 1) == 20
    assert workflow.earned_credits(10.4, 2) == 41
    assert workflow.earned_credits(0.2, 1) == 0


def test_adjust_credits_is_additive(make_user):
    make_user()
    workflow.adjust_credits("alice@uni.example", 25)
    user = workflow.adjust_credits("alice@uni.example", -40)
    assert user.credits == 485
    assert get(User, "alice@uni.example").credits == 485


def test_adjust_credits_with_reason_logs(make_user):
    make_user()
    workflow.adjust_credits("alice@uni.example", 10, "bonus")
    logs = get_repository().list(CreditLog, CreditLog.user_id == "alice@uni.example")
    assert [(log.amount, log.reason) for log in logs] == [(10, "bonus")]


def test_adjust_credits_unknown_user():
    with pytest.raises(NotFound):
        workflow.adjust_credits("ghost@uni.example", 10)


def test_offer_trip_rewards_driver(make_user):
    make_user("drv@uni.example", name="Dina")
    trip = Trip(id="t9", driver_id="drv@uni.example", from_loc="Como", to_loc="Bicocca",
                seats_available=3, distance_km=20.0)
    saved, driver = workflow.offer_trip(trip)
    assert driver.credits == 500 + workflow.OFFER_REWARD
    assert saved.co2_saved == 6.0
    assert saved.driver_name == "Dina"
    logs = get_repository().list(CreditLog, CreditLog.user_id == "drv@uni.example")
    assert logs[0].reason == "Trip offer bonus: Bicocca"


def test_offer_trip_unknown_driver():
    trip = Trip(id="t9", driver_id="nobody@uni.example", to_loc="Bicocca")
    with pytest.raises(NotFound):
        workflow.offer_trip(trip)
    assert get(Trip, "t9") is None


# ────────────────────────── booking workflow ────────────────────────────────

def test_booking_reduces_seats_and_credits(make_user, make_trip):
    make_user("drv@uni.example", name="Dina")
    make_user("bob@uni.example", name="Bob")
    make_trip("drv@uni.example", seats=3, distance=10.4)
    result = workflow.book_trip("trip1", "bob@uni.example", seats=2)
    assert result.earned == 41
    assert result.trip.seats_available == 1
    assert result.user.credits == 541
    stored = get(Trip, "trip1")
    assert stored.seats_available == 1
    assert load_list(stored.passenger_ids) == ["bob@uni.example"]


def test_booking_notifies_driver_and_logs(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example", name="Bob")
    make_trip("drv@uni.example", to="Bicocca")
    workflow.book_trip("trip1", "bob@uni.example", seats=1)
    notifs = notifications_for("drv@uni.example")
    assert len(notifs) == 1
    assert notifs[0].type == "success"
    assert "Bob" in notifs[0].text and "Bicocca" in notifs[0].text
    logs = get_repository().list(CreditLog, CreditLog.user_id == "bob@uni.example")
    assert logs[0].amount == 20


def test_booking_twice_does_not_duplicate_passenger(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example")
    make_trip("drv@uni.example", seats=3)
    workflow.book_trip("trip1", "bob@uni.example", 1)
    with pytest.raises(InvalidRequest, match="already booked"):
        workflow.book_trip("trip1", "bob@uni.example", 1)
    stored = get(Trip, "trip1")
    assert load_list(stored.passenger_ids) == ["bob@uni.example"]
    assert stored.seats_available == 2
    assert get(User, "bob@uni.example").credits == 520


def test_booking_more_seats_than_available(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example")
    make_trip("drv@uni.example", seats=1)
    with pytest.raises(InvalidRequest):
        workflow.book_trip("trip1", "bob@uni.example", 2)
    stored = get(Trip, "trip1")
    assert stored.seats_available == 1
    assert load_list(stored.passenger_ids) == []
    assert get(User, "bob@uni.example").credits == 500
    assert notifications_for("drv@uni.example") == []


def test_driver_cannot_book_own_trip(make_user, make_trip):
    make_user("drv@uni.example")
    make_trip("drv@uni.example")
    with pytest.raises(InvalidRequest):
        workflow.book_trip("trip1", "drv@uni.example", 1)


def test_booking_zero_seats_rejected(make_user, make_trip):
    with pytest.raises(InvalidRequest):
        workflow.book_trip("trip1", "bob@uni.example", 0)


def test_booking_unknown_trip(make_user):
    make_user("bob@uni.example")
    with pytest.raises(NotFound):
        workflow.book_trip("missing", "bob@uni.example", 1)


def test_workflows_normalize_user_ids(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example")
    make_trip("drv@uni.example", seats=3)
    result = workflow.book_trip("trip1", "Bob@Uni.example", 1)
    assert load_list(result.trip.passenger_ids) == ["bob@uni.example"]
    workflow.cancel_participation("trip1", " BOB@uni.example ")
    assert workflow.adjust_credits("Bob@Uni.example", 5).credits == 500 + 20 - 30 + 5
    driver, _ = workflow.cancel_trip("trip1", "Drv@Uni.example")
    assert driver.credits == 400


def test_cancel_participation_restores_one_seat(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example", name="Bob")
    make_trip("drv@uni.example", seats=3, distance=10.0)
    workflow.book_trip("trip1", "bob@uni.example", 2)
    trip, user = workflow.cancel_participation("trip1", "bob@uni.example")
    # one seat back even though two were booked
    assert trip.seats_available == 2
    assert user.credits == 500 + 40 - 30
    assert load_list(get(Trip, "trip1").passenger_ids) == []
    warnings = [n for n in notifications_for("drv@uni.example") if n.type == "warning"]
    assert len(warnings) == 1


def test_cancel_participation_requires_passenger(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example")
    make_trip("drv@uni.example", seats=3)
    with pytest.raises(InvalidRequest):
        workflow.cancel_participation("trip1", "bob@uni.example")
    assert get(Trip, "trip1").seats_available == 3
    assert get(User, "bob@uni.example").credits == 500


def test_cancel_trip_penalizes_driver_and_notifies_passengers(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example")
    make_user("eve@uni.example")
    make_trip("drv@uni.example", seats=1, passengers=["bob@uni.example", "eve@uni.example"])
    driver, notified = workflow.cancel_trip("trip1", "drv@uni.example")
    assert driver.credits == 400
    assert notified == ["bob@uni.example", "eve@uni.example"]
    assert get(Trip, "trip1") is None
    for pid in notified:
        notifs = notifications_for(pid)
        assert len(notifs) == 1
        assert notifs[0].type == "warning"


def test_cancel_trip_only_by_driver(make_user, make_trip):
    make_user("drv@uni.example")
    make_user("bob@uni.example")
    make_trip("drv@uni.example")
    with pytest.raises(InvalidRequest):
        workflow.cancel_trip("trip1", "bob@uni.example")
    assert get(Trip, "trip1") is not None
    assert get(User, "drv@uni.example").credits == 500


# ────────────────────────── study groups ────────────────────────────────────

def test_join_study_group(make_user, make_group):
    make_group("alice@uni.example")
    joined, members = workflow.join_study_group("group1", "bob@uni.example")
    assert joined
    assert members == ["alice@uni.example", "bob@uni.example"]
    assert load_list(get(StudyGroup, "group1").members) == members


def test_join_study_group_twice_is_idempotent(make_group):
    make_group("alice@uni.example")
    workflow.join_study_group("group1", "bob@uni.example")
    joined, members = workflow.join_study_group("group1", "bob@uni.example")
    assert not joined
    assert members.count("bob@uni.example") == 1


def test_join_full_study_group(make_group):
    make_group("alice@uni.example", max_members=2, members=["alice@uni.example", "bob@uni.example"])
    with pytest.raises(InvalidRequest, match="Group full"):
        workflow.join_study_group("group1", "eve@uni.example")
    assert load_list(get(StudyGroup, "group1").members) == ["alice@uni.example", "bob@uni.example"]


def test_join_missing_group():
    with pytest.raises(NotFound, match="Group not found"):
        workflow.join_study_group("nope", "bob@uni.example")


# ────────────────────────── profiles ────────────────────────────────────────

def test_save_user_keeps_omitted_password_and_credits(make_user):
    make_user("alice@uni.example", password="secret", credits=730)
    payload = {"id": "Alice@uni.example", "name": "Alice", "skills": ["Fisica"]}
    user = workflow.save_user(user_in(payload), user_changes(payload))
    assert load_list(user.skills) == ["Fisica"]
    stored = get(User, "alice@uni.example")
    assert stored.password == "secret"
    assert stored.credits == 730


def test_save_user_inserts_new_row():
    payload = {"id": "new@uni.example", "name": "New", "credits": 500, "password": "pw"}
    workflow.save_user(user_in(payload), user_changes(payload))
    assert get(User, "new@uni.example").password == "pw"


def test_update_user_merges_changes(make_user):
    make_user("alice@uni.example", password="secret", skills=["Chimica"])
    user = workflow.update_user("ALICE@uni.example", user_changes({"name": "Alice B.", "role": "driver"}))
    assert (user.name, user.role) == ("Alice B.", "driver")
    assert load_list(user.skills) == ["Chimica"]
    assert get(User, "alice@uni.example").password == "secret"


def test_update_user_unknown():
    with pytest.raises(NotFound):
        workflow.update_user("ghost@uni.example", {"name": "Ghost"})


# ────────────────────────── leaderboard / auth ──────────────────────────────

def test_leaderboard_orders_by_credits(make_user):
    make_user("a@uni.example", credits=300)
    make_user("b@uni.example", credits=2500)
    make_user("c@uni.example", credits=1200)
    board = workflow.leaderboard(limit=2)
    assert [row["id"] for row in board] == ["b@uni.example", "c@uni.example"]
    assert board[0]["rank"] == 1
    assert board[0]["level"] == 3
    assert board[1]["level"] == 2


def test_authenticate(make_user):
    make_user("alice@uni.example", password="secret")
    assert workflow.authenticate("  Alice@Uni.example ", "secret").id == "alice@uni.example"
    with pytest.raises(AuthError):
        workflow.authenticate("alice@uni.example", "wrong")
    with pytest.raises(AuthError):
        workflow.authenticate("ghost@uni.example", "secret")


# ────────────────────────── serializers ─────────────────────────────────────

def test_user_roundtrip_hides_password():
    user = user_in({"id": " Bob@Uni.example", "name": "Bob", "skills": ["Fisica"], "password": "pw"})
    assert user.id == "bob@uni.example"
    out = user_out(user)
    assert out["skills"] == ["Fisica"]
    assert out["accessibilityNeeds"] == []
    assert "password" not in out


def test_user_in_rejects_bad_role():
    with pytest.raises(InvalidRequest):
        user_in({"id": "bob@uni.example", "role": "pilot"})


def test_trip_in_requires_fields():
    with pytest.raises(InvalidRequest, match="missing from"):
        trip_in({"driverId": "drv@uni.example", "to": "Bicocca"})


def test_trip_changes_maps_wire_keys():
    changes = trip_changes({"seatsAvailable": "2", "passengerIds": ["a"], "unknown": 1})
    assert changes == {"seats_available": 2, "passenger_ids": '["a"]'}


def test_changes_reject_bad_values():
    with pytest.raises(InvalidRequest):
        user_changes({"role": "pilot"})
    with pytest.raises(InvalidRequest):
        trip_changes({"distanceKm": "nan"})
    with pytest.raises(InvalidRequest):
        trip_in({"driverId": "drv@uni.example", "from": "Monza", "to": "Bicocca", "distanceKm": "inf"})


def test_notification_in_validates_type():
    with pytest.raises(InvalidRequest):
        notification_in({"userId": "a", "text": "hi", "type": "danger"})


def test_study_group_in_defaults_members_to_creator():
    group = study_group_in({"trainNumber": 2615, "creatorId": "alice@uni.example"})
    assert load_list(group.members) == ["alice@uni.example"]
    assert group.train_number == "2615"
    assert group.max_members == 4


# ────────────────────────── persistence adapter ─────────────────────────────

def test_raw_query_select_and_update(make_user):
    make_user()
    count = query("UPDATE users SET credits = credits + :amount WHERE id = :id",
                  {"amount": 5, "id": "alice@uni.example"})
    assert count == 1
    rows = query("SELECT id, credits FROM users WHERE id = :id", {"id": "alice@uni.example"})
    assert rows == [{"id": "alice@uni.example", "credits": 505}]


def test_save_replaces_existing_row(make_user):
    make_user(name="Alice")
    make_user(name="Alice B.")
    users = get_repository().list(User)
    assert len(users) == 1
    assert users[0].name == "Alice B."


def test_create_repository_selects_backend(tmp_path):
    assert isinstance(create_repository(f"sqlite:///{tmp_path}/x.db"), SQLiteRepository)
    assert isinstance(create_repository("postgresql://u:p@localhost/ecoshift"), PostgresRepository)
    with pytest.raises(ValueError):
        create_repository("mysql://u:p@localhost/ecoshift")


# ────────────────────────── ai fallback ─────────────────────────────────────

def test_fallback_assistance_wins():
    user = {"skills": ["Fisica"], "accessibilityNeeds": ["wheelchair"]}
    trip = {"tutoringSubject": "Fisica", "assistanceOffered": True}
    assert "Missione 5" in ai.fallback_reason(user, trip)


def test_fallback_skill_match():
    reason = ai.fallback_reason({"skills": ["fisica"]}, {"tutoringSubject": "Fisica 2"})
    assert reason.startswith("Match perfetto")
    assert "Fisica 2" in reason


def test_fallback_tutoring_and_default():
    assert "Peer Tutoring" in ai.fallback_reason({"skills": []}, {"tutoringSubject": "Chimica"})
    assert ai.fallback_reason({}, {}) == ai.DEFAULT_REASON


def test_fallback_english_and_unknown_lang():
    assert "Mission 3" in ai.fallback_reason({}, {}, lang="en")
    assert ai.fallback_reason({}, {}, lang="xx") == ai.DEFAULT_REASON


def test_match_reason_without_key_uses_fallback(monkeypatch):
    def boom(prompt):
        raise AssertionError("should not be called")
    monkeypatch.setattr(ai, "_generate", boom)
    assert ai.match_reason({}, {}) == ai.DEFAULT_REASON


def test_match_reason_uses_model(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "key")
    prompts = []

    def fake(prompt):
        prompts.append(prompt)
        return "Viaggio perfetto."
    monkeypatch.setattr(ai, "_generate", fake)
    reason = ai.match_reason({"name": "Bob", "skills": ["Fisica"]}, {"from": "Monza", "to": "Bicocca"})
    assert reason == "Viaggio perfetto."
    assert "Bob" in prompts[0] and "Monza" in prompts[0]


def test_match_reason_falls_back_on_error(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "key")

    def fail(prompt):
        raise RuntimeError("quota exceeded")
    monkeypatch.setattr(ai, "_generate", fail)
    assert ai.match_reason({}, {"tutoringSubject": "Chimica"}).startswith("Interessante")


def test_match_reason_falls_back_on_empty_answer(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "key")
    monkeypatch.setattr(ai, "_generate", lambda prompt: "")
    assert ai.match_reason({}, {}) == ai.DEFAULT_REASON


# ────────────────────────── train proxy ─────────────────────────────────────

def test_parse_time_variants():
    assert trains.parse_time("1700000000000") == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert trains.parse_time("2024-12-02T15:35:00Z") == datetime(2024, 12, 2, 15, 35, tzinfo=timezone.utc)
    assert trains.parse_time("not a date").tzinfo is not None


def test_format_timestamp_like_js_date():
    when = datetime(2024, 12, 2, 15, 35, tzinfo=timezone.utc)
    assert trains.format_timestamp(when) == "Mon Dec 02 2024 15:35:00 GMT+0000"


@pytest.mark.asyncio
async def test_fetch_departures_success():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json=[{"numeroTreno": 2615}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        data = await trains.fetch_departures("S01700", datetime(2024, 12, 2, 15, 35, tzinfo=timezone.utc), client)
    assert data == [{"numeroTreno": 2615}]
    assert "/partenze/S01700/Mon%20Dec%2002%202024" in seen[0]


@pytest.mark.asyncio
async def test_fetch_departures_upstream_failure():
    def handler(request):
        return httpx.Response(503, text="down")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamError):
            await trains.fetch_departures("S01700", client=client)


# ────────────────────────── logging ─────────────────────────────────────────

@pytest.mark.skipif(config.DEBUG, reason="DEBUG leaves library loggers alone")
def test_library_loggers_are_quieted():
    import logging
    import logger

    logger.get_logger(__name__)
    expected = logger._level(config.LIBRARY_LOG_LEVEL, logging.WARNING)
    for name in logger.NOISY_LOGGERS:
        assert logging.getLogger(name).level == expected

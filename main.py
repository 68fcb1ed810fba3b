from contextlib import asynccontextmanager
import json

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

import ai
import config
import trains
import workflow
from co2 import calculate_co2
from db import init_db, get_repository
from errors import InvalidRequest, NotFound, json_errors
from logger import get_logger
from models import User, Trip, Notification, Message, CreditLog, StudyGroup
from serializers import (
    require, user_in, user_out, user_changes, trip_in, trip_out, trip_changes,
    notification_in, notification_out, message_in, message_out,
    credit_log_in, credit_log_out, study_group_in, study_group_out,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app):
    init_db()
    logger.info("Database tables initialized.")
    yield


async def read_json(request: Request) -> dict:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        raise InvalidRequest("invalid JSON body")
    if not isinstance(payload, dict):
        raise InvalidRequest("expected a JSON object")
    return payload


def int_param(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{name} must be an integer")


# ── users ───────────────────────────────────────────────────

@json_errors
async def list_users(request: Request):
    users = get_repository().list(User)
    return JSONResponse([user_out(u) for u in users])


@json_errors
async def save_user(request: Request):
    payload = await read_json(request)
    user = workflow.save_user(user_in(payload), user_changes(payload))
    return JSONResponse({"message": "User saved", "id": user.id, "user": user_out(user)})


@json_errors
async def update_user(request: Request):
    user = workflow.update_user(request.path_params["user_id"], user_changes(await read_json(request)))
    return JSONResponse(user_out(user))


@json_errors
async def add_credits(request: Request):
    payload = await read_json(request)
    require(payload, ["amount"])
    user = workflow.adjust_credits(
        request.path_params["user_id"],
        int_param(payload["amount"], "amount"),
        payload.get("reason"),
    )
    return JSONResponse(user_out(user))


@json_errors
async def login(request: Request):
    payload = await read_json(request)
    require(payload, ["email"])
    user = workflow.authenticate(payload["email"], payload.get("password") or "")
    return JSONResponse(user_out(user))


@json_errors
async def get_leaderboard(request: Request):
    limit = int_param(request.query_params.get("limit", 5), "limit")
    return JSONResponse(workflow.leaderboard(limit))


# ── trips ───────────────────────────────────────────────────

@json_errors
async def list_trips(request: Request):
    trips = get_repository().list(Trip, order_by=Trip.departure_time)
    return JSONResponse([trip_out(t) for t in trips])


@json_errors
async def save_trip(request: Request):
    trip = get_repository().save(trip_in(await read_json(request)))
    return JSONResponse({"message": "Trip saved", "id": trip.id})


@json_errors
async def update_trip(request: Request):
    changes = trip_changes(await read_json(request))
    repo = get_repository()
    with repo.transaction() as session:
        trip = repo.for_update(session, Trip, request.path_params["trip_id"])
        if trip is None:
            raise NotFound("trip not found")
        for column, value in changes.items():
            setattr(trip, column, value)
        session.add(trip)
    return JSONResponse(trip_out(trip))


@json_errors
async def delete_trip(request: Request):
    if not get_repository().delete(Trip, request.path_params["trip_id"]):
        raise NotFound("trip not found")
    return JSONResponse({"message": "Trip deleted"})


@json_errors
async def offer_trip(request: Request):
    trip, driver = workflow.offer_trip(trip_in(await read_json(request)))
    return JSONResponse({"trip": trip_out(trip), "user": user_out(driver), "earnedCredits": workflow.OFFER_REWARD})


@json_errors
async def book_trip(request: Request):
    payload = await read_json(request)
    require(payload, ["userId"])
    result = workflow.book_trip(
        request.path_params["trip_id"],
        payload["userId"],
        int_param(payload.get("seats", 1), "seats"),
    )
    return JSONResponse({
        "trip": trip_out(result.trip),
        "user": user_out(result.user),
        "earnedCredits": result.earned,
    })


@json_errors
async def leave_trip(request: Request):
    payload = await read_json(request)
    require(payload, ["userId"])
    trip, user = workflow.cancel_participation(request.path_params["trip_id"], payload["userId"])
    return JSONResponse({
        "trip": trip_out(trip),
        "user": user_out(user),
        "penalty": workflow.CANCEL_PARTICIPATION_PENALTY,
    })


@json_errors
async def cancel_trip(request: Request):
    payload = await read_json(request)
    require(payload, ["userId"])
    driver, notified = workflow.cancel_trip(request.path_params["trip_id"], payload["userId"])
    return JSONResponse({
        "user": user_out(driver),
        "notified": notified,
        "penalty": workflow.CANCEL_TRIP_PENALTY,
    })


# ── notifications ───────────────────────────────────────────

@json_errors
async def list_notifications(request: Request):
    user_id = request.query_params.get("userId")
    if not user_id:
        return JSONResponse([])
    rows = get_repository().list(
        Notification, Notification.user_id == user_id, order_by=Notification.timestamp.desc()
    )
    return JSONResponse([notification_out(n) for n in rows])


@json_errors
async def add_notification(request: Request):
    get_repository().save(notification_in(await read_json(request)))
    return JSONResponse({"message": "Notification added"})


@json_errors
async def mark_notification_read(request: Request):
    repo = get_repository()
    with repo.transaction() as session:
        notif = repo.for_update(session, Notification, request.path_params["notification_id"])
        if notif is None:
            raise NotFound("notification not found")
        notif.read = True
        session.add(notif)
    return JSONResponse({"message": "Marked as read"})


# ── chat messages ───────────────────────────────────────────

@json_errors
async def list_messages(request: Request):
    rows = get_repository().list(
        Message, Message.trip_id == request.path_params["trip_id"], order_by=Message.timestamp
    )
    return JSONResponse([message_out(m) for m in rows])


@json_errors
async def send_message(request: Request):
    get_repository().save(message_in(await read_json(request)))
    return JSONResponse({"message": "Message sent"})


# ── credit logs ─────────────────────────────────────────────

@json_errors
async def list_credit_logs(request: Request):
    rows = get_repository().list(
        CreditLog, CreditLog.user_id == request.path_params["user_id"], order_by=CreditLog.timestamp.desc()
    )
    return JSONResponse([credit_log_out(log) for log in rows])


@json_errors
async def add_credit_log(request: Request):
    get_repository().save(credit_log_in(await read_json(request)))
    return JSONResponse({"message": "Log added"})


# ── study groups ────────────────────────────────────────────

@json_errors
async def list_study_groups(request: Request):
    groups = get_repository().list(StudyGroup, order_by=StudyGroup.departure_time)
    return JSONResponse([study_group_out(g) for g in groups])


@json_errors
async def create_study_group(request: Request):
    group = get_repository().save(study_group_in(await read_json(request)))
    return JSONResponse({"message": "Study group created", "id": group.id})


@json_errors
async def join_study_group(request: Request):
    payload = await read_json(request)
    require(payload, ["userId"])
    joined, members = workflow.join_study_group(request.path_params["group_id"], payload["userId"])
    if not joined:
        return JSONResponse({"message": "Already joined", "members": members})
    return JSONResponse({"message": "Joined group", "members": members})


# ── external services ───────────────────────────────────────

@json_errors
async def train_departures(request: Request):
    when = trains.parse_time(request.query_params.get("time"))
    data = await trains.fetch_departures(request.path_params["station_id"], when)
    return JSONResponse(data)


@json_errors
async def match_reason(request: Request):
    payload = await read_json(request)
    user = payload.get("user") or {}
    trip = payload.get("trip") or {}
    reason = ai.match_reason(user, trip, payload.get("lang") or ai.DEFAULT_LANG)
    return JSONResponse({"reason": reason})


@json_errors
async def co2_estimate(request: Request):
    payload = await read_json(request)
    require(payload, ["distanceKm"])
    try:
        distance = float(payload["distanceKm"])
    except (TypeError, ValueError):
        raise InvalidRequest("distanceKm must be a number")
    passengers = int_param(payload.get("passengers", 1), "passengers")
    return JSONResponse(calculate_co2(distance, passengers, payload.get("vehicleType") or "car"))


routes = [
    Route("/api/users", list_users, methods=["GET"]),
    Route("/api/users", save_user, methods=["POST"]),
    Route("/api/users/{user_id}", update_user, methods=["PATCH"]),
    Route("/api/users/{user_id}/credits", add_credits, methods=["POST"]),
    Route("/api/auth/login", login, methods=["POST"]),
    Route("/api/leaderboard", get_leaderboard, methods=["GET"]),
    Route("/api/trips", list_trips, methods=["GET"]),
    Route("/api/trips", save_trip, methods=["POST"]),
    Route("/api/trips/offer", offer_trip, methods=["POST"]),
    Route("/api/trips/{trip_id}", update_trip, methods=["PATCH"]),
    Route("/api/trips/{trip_id}", delete_trip, methods=["DELETE"]),
    Route("/api/trips/{trip_id}/book", book_trip, methods=["POST"]),
    Route("/api/trips/{trip_id}/leave", leave_trip, methods=["POST"]),
    Route("/api/trips/{trip_id}/cancel", cancel_trip, methods=["POST"]),
    Route("/api/notifications", list_notifications, methods=["GET"]),
    Route("/api/notifications", add_notification, methods=["POST"]),
    Route("/api/notifications/{notification_id}/read", mark_notification_read, methods=["PUT"]),
    Route("/api/messages", send_message, methods=["POST"]),
    Route("/api/messages/{trip_id}", list_messages, methods=["GET"]),
    Route("/api/credit-logs", add_credit_log, methods=["POST"]),
    Route("/api/credit-logs/{user_id}", list_credit_logs, methods=["GET"]),
    Route("/api/study-groups", list_study_groups, methods=["GET"]),
    Route("/api/study-groups", create_study_group, methods=["POST"]),
    Route("/api/study-groups/{group_id}/join", join_study_group, methods=["POST"]),
    Route("/api/trains/departures/{station_id}", train_departures, methods=["GET"]),
    Route("/api/ai/match-reason", match_reason, methods=["POST"]),
    Route("/api/calculate-co2", co2_estimate, methods=["POST"]),
]

middleware = [
    Middleware(CORSMiddleware, allow_origins=config.CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"]),
]

app = Starlette(debug=config.DEBUG, routes=routes, middleware=middleware, lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT)

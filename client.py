"""
client.py
---------
Python client for the EcoShift REST API.

Responsibilities:
    - Wrap every REST call and raise ApiError on non-2xx responses.
    - Keep the logged-in user as a session.
    - Cache AI match reasons per (user, trip) for the session.
    - Publish a sync event on an injected EventBus after every mutation so
      views can refresh without a global event.
    - Provide Poller, the fixed-interval refetch used for chat, notification
      badges and train departures.
"""

from collections import defaultdict
from typing import Callable, Optional
import threading

import httpx

import config
from ai import DEFAULT_REASON
from logger import get_logger
from serializers import normalize_email
from workflow import WELCOME_CREDITS

logger = get_logger(__name__)

SYNC_EVENT = "sync"

# refetch intervals in seconds
TRIP_CHAT_INTERVAL = 2.0
GROUP_CHAT_INTERVAL = 3.0
TRAINS_INTERVAL = 30.0


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class EventBus:
    """Explicit publish/subscribe used in place of a browser-wide event."""

    def __init__(self):
        self._subscribers = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callable) -> Callable[[], None]:
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[topic]:
                    self._subscribers[topic].remove(callback)
        return unsubscribe

    def publish(self, topic: str, payload=None):
        with self._lock:
            callbacks = list(self._subscribers[topic])
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Subscriber for {topic!r} failed")


class Poller:
    """Calls ``fn`` every ``interval`` seconds on a background thread.

    A failing call is logged and simply tried again on the next tick.
    """

    def __init__(self, fn: Callable, interval: float, name: str = "poller"):
        self.fn = fn
        self.interval = interval
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is not None:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def _run(self):
        while not self._stop.is_set():
            try:
                self.fn()
            except Exception as e:
                logger.warning(f"{self.name} tick failed: {e}")
            self._stop.wait(self.interval)

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class EcoShiftClient:
    def __init__(self, http: Optional[httpx.Client] = None, base_url: str = config.API_URL,
                 bus: Optional[EventBus] = None):
        self.http = http or httpx.Client(base_url=base_url, timeout=10.0)
        self.bus = bus or EventBus()
        self.current_user: Optional[dict] = None
        self._ai_cache = {}

    # ── plumbing ───────────────────────────────────────────

    def _request(self, method: str, path: str, **kwargs):
        resp = self.http.request(method, f"/api{path}", **kwargs)
        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", resp.text)
            except ValueError:
                message = resp.text
            raise ApiError(resp.status_code, message)
        return resp.json()

    def _mutate(self, method: str, path: str, **kwargs):
        data = self._request(method, path, **kwargs)
        self.bus.publish(SYNC_EVENT, {"method": method, "path": path})
        return data

    def _refresh_session(self, user: dict):
        if self.current_user and user and self.current_user.get("id") == user.get("id"):
            self.current_user = user

    # ── session ────────────────────────────────────────────

    def login(self, email: str, password: str) -> dict:
        user = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.current_user = user
        return user

    def signup(self, email: str, password: str, name: str, role: str = "both") -> dict:
        user_id = normalize_email(email)
        if any(u["id"] == user_id for u in self.get_users()):
            raise ApiError(400, "user already exists")
        user = {
            "id": user_id,
            "name": name,
            "role": role,
            "skills": [],
            "accessibilityNeeds": [],
            "credits": WELCOME_CREDITS,
            "password": password,
        }
        self._mutate("POST", "/users", json=user)
        self.current_user = {k: v for k, v in user.items() if k != "password"}
        return self.current_user

    def logout(self):
        self.current_user = None
        self._ai_cache.clear()

    # ── users / leaderboard ────────────────────────────────

    def get_users(self):
        return self._request("GET", "/users")

    def save_user(self, user: dict):
        data = self._mutate("POST", "/users", json=user)
        self._refresh_session(data["user"])
        return data

    def update_user(self, user_id: str, changes: dict) -> dict:
        user = self._mutate("PATCH", f"/users/{user_id}", json=changes)
        self._refresh_session(user)
        return user

    def update_user_credits(self, user_id: str, amount: int, reason: Optional[str] = None) -> dict:
        user = self._mutate("POST", f"/users/{user_id}/credits", json={"amount": amount, "reason": reason})
        self._refresh_session(user)
        return user

    def get_leaderboard(self, limit: int = 5):
        return self._request("GET", "/leaderboard", params={"limit": limit})

    # ── trips ──────────────────────────────────────────────

    def get_trips(self):
        return self._request("GET", "/trips")

    def save_trip(self, trip: dict):
        return self._mutate("POST", "/trips", json=trip)

    def update_trip(self, trip_id: str, changes: dict) -> dict:
        return self._mutate("PATCH", f"/trips/{trip_id}", json=changes)

    def delete_trip(self, trip_id: str):
        return self._mutate("DELETE", f"/trips/{trip_id}")

    def offer_trip(self, trip: dict) -> dict:
        data = self._mutate("POST", "/trips/offer", json=trip)
        self._refresh_session(data["user"])
        return data

    def book_trip(self, trip_id: str, seats: int = 1, user_id: Optional[str] = None) -> dict:
        data = self._mutate("POST", f"/trips/{trip_id}/book",
                            json={"userId": user_id or self._user_id(), "seats": seats})
        self._refresh_session(data["user"])
        return data

    def cancel_participation(self, trip_id: str, user_id: Optional[str] = None) -> dict:
        data = self._mutate("POST", f"/trips/{trip_id}/leave", json={"userId": user_id or self._user_id()})
        self._refresh_session(data["user"])
        return data

    def cancel_trip(self, trip_id: str, user_id: Optional[str] = None) -> dict:
        data = self._mutate("POST", f"/trips/{trip_id}/cancel", json={"userId": user_id or self._user_id()})
        self._refresh_session(data["user"])
        return data

    def _user_id(self) -> str:
        if not self.current_user:
            raise ApiError(401, "not logged in")
        return self.current_user["id"]

    # ── notifications / chat / credit logs ─────────────────

    def get_notifications(self, user_id: str):
        return self._request("GET", "/notifications", params={"userId": user_id})

    def add_notification(self, notification: dict):
        return self._mutate("POST", "/notifications", json=notification)

    def mark_notification_read(self, notification_id: str):
        return self._mutate("PUT", f"/notifications/{notification_id}/read")

    def get_messages(self, thread_id: str):
        return self._request("GET", f"/messages/{thread_id}")

    def send_message(self, message: dict):
        return self._mutate("POST", "/messages", json=message)

    def get_credit_logs(self, user_id: str):
        return self._request("GET", f"/credit-logs/{user_id}")

    def add_credit_log(self, log: dict):
        return self._mutate("POST", "/credit-logs", json=log)

    # ── study groups / trains ──────────────────────────────

    def get_study_groups(self):
        return self._request("GET", "/study-groups")

    def create_study_group(self, group: dict):
        return self._mutate("POST", "/study-groups", json=group)

    def join_study_group(self, group_id: str, user_id: Optional[str] = None) -> dict:
        return self._mutate("POST", f"/study-groups/{group_id}/join", json={"userId": user_id or self._user_id()})

    def get_departures(self, station_id: str, time: Optional[str] = None):
        params = {"time": time} if time else None
        return self._request("GET", f"/trains/departures/{station_id}", params=params)

    # ── derived ────────────────────────────────────────────

    def calculate_co2(self, distance_km: float, passengers: int, vehicle_type: str = "car") -> dict:
        return self._request("POST", "/calculate-co2", json={
            "distanceKm": distance_km, "passengers": passengers, "vehicleType": vehicle_type,
        })

    def get_match_reason(self, user: dict, trip: dict) -> str:
        key = (user["id"], trip["id"])
        if key in self._ai_cache:
            return self._ai_cache[key]
        try:
            reason = self._request("POST", "/ai/match-reason", json={"user": user, "trip": trip})["reason"]
        except (httpx.HTTPError, ApiError, KeyError, ValueError) as e:
            logger.warning(f"AI backend error: {e}")
            return DEFAULT_REASON
        self._ai_cache[key] = reason
        return reason

    def poll(self, fn: Callable, interval: float, name: str = "poller") -> Poller:
        return Poller(fn, interval, name=name).start()

    def close(self):
        self.http.close()

"""
Integration tests for the HTTP API using TestClient.
Each test gets its own SQLite file and a bare FastAPI app with the routers.
"""
import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.messages import messages
from app.core.rate_limiter import limiter
from app.core.security import create_access_token
from app.database import Base, get_db
from app.domain.availability import BusyInterval
from app.domain.calendar import PROPERTY_TZ
from app.domain.feed import build_feed, parse_feed
from app.models import Booking, BookingStatus, CalendarSync, Profile
from app.services.booking_service import BookingService
from app.services.payment_service import PaymentError, payment_service
from app.state.calendar import calendar_states
from app.web.routers import availability_web, booking_web, calendar_sync_web, feed_web


def auth(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.mark.integration
class TestApi:
    @pytest.fixture
    def env(self, tmp_path, monkeypatch):
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool
        )
        Session = async_sessionmaker(engine, expire_on_commit=False)

        async def prepare():
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with Session() as session:
                session.add(Profile(id="owner-1", email="dono@example.com", is_owner=True))
                session.add(Profile(id="guest-1", email="maria@example.com"))
                await session.commit()

        asyncio.run(prepare())

        async def override_get_db():
            async with Session() as session:
                yield session

        app = FastAPI()
        app.state.limiter = limiter
        for module in (availability_web, booking_web, calendar_sync_web, feed_web):
            app.include_router(module.router)
        app.dependency_overrides[get_db] = override_get_db

        monkeypatch.setattr(limiter, "enabled", False)
        monkeypatch.setattr(settings, "feed_source", str(tmp_path / "export.ics"))

        def run(fn):
            async def wrapper():
                async with Session() as session:
                    return await fn(session)

            return asyncio.run(wrapper())

        yield TestClient(app), run, tmp_path

        asyncio.run(engine.dispose())

    @staticmethod
    def add_booking(run, check_in, check_out, status=BookingStatus.CONFIRMED, price="1000"):
        async def insert(session):
            booking = Booking(
                guest_name="Ana",
                guest_email="ana@example.com",
                check_in=check_in,
                check_out=check_out,
                number_of_guests=2,
                total_price=Decimal(price),
                status=status,
            )
            session.add(booking)
            await session.commit()
            return booking.id

        return run(insert)

    # -- session gating ------------------------------------------------

    def test_anonymous_is_rejected(self, env):
        client, _, _ = env
        response = client.get("/api/calendar")
        assert response.status_code == 401
        assert response.json()["detail"] == messages.LOGIN_REQUIRED

    def test_invalid_token_is_rejected(self, env):
        client, _, _ = env
        response = client.get("/api/calendar", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_non_owner_is_forbidden(self, env):
        client, _, _ = env
        response = client.get("/api/calendar", headers=auth("guest-1"))
        assert response.status_code == 403
        assert response.json()["detail"] == messages.OWNER_ONLY

    def test_token_from_cookie(self, env):
        client, _, _ = env
        client.cookies.set("access_token", create_access_token("owner-1"))
        assert client.get("/api/bookings/stats").status_code == 200

    def test_owner_flag_read_on_every_request(self, env):
        client, run, _ = env
        assert client.get("/api/bookings/stats", headers=auth("owner-1")).status_code == 200

        async def revoke(session):
            profile = await session.get(Profile, "owner-1")
            profile.is_owner = False
            await session.commit()

        run(revoke)
        assert client.get("/api/bookings/stats", headers=auth("owner-1")).status_code == 403

    # -- owner calendar ------------------------------------------------

    def test_initial_feed_load(self, env, sample_feed):
        client, _, tmp_path = env
        (tmp_path / "export.ics").write_text(sample_feed, encoding="utf-8")

        response = client.get("/api/calendar?year=2024&month=6", headers=auth("owner-1"))

        assert response.status_code == 200
        body = response.json()
        assert body["intervals_count"] == 2
        assert body["feed_error"] is None
        occupied = [d["day"] for d in body["days"] if d["occupied"]]
        assert occupied == [
            "2024-06-01", "2024-06-02", "2024-06-03", "2024-06-04",
            "2024-06-10", "2024-06-11",
        ]

    def test_missing_feed_still_renders(self, env):
        client, _, _ = env
        response = client.get("/api/calendar?year=2024&month=6", headers=auth("owner-1"))

        assert response.status_code == 200
        body = response.json()
        assert body["feed_error"] == messages.FEED_NOT_FOUND
        assert body["intervals_count"] == 0
        assert len(body["days"]) == 30

    def test_feed_reload_keeps_intervals_on_failure(self, env, sample_feed):
        client, _, tmp_path = env
        feed = tmp_path / "export.ics"
        feed.write_text(sample_feed, encoding="utf-8")
        client.get("/api/calendar", headers=auth("owner-1"))

        feed.unlink()
        response = client.post("/api/calendar/feed/reload", headers=auth("owner-1"))

        assert response.json() == {
            "ok": False,
            "intervals_count": 2,
            "error": messages.FEED_NOT_FOUND,
        }

    def test_feed_upload(self, env, sample_feed):
        client, _, _ = env
        response = client.post(
            "/api/calendar/feed/upload",
            headers=auth("owner-1"),
            files={"file": ("airbnb.ics", sample_feed.encode("utf-8"), "text/calendar")},
        )
        assert response.json() == {"ok": True, "intervals_count": 2, "error": None}

    def test_bookings_merge_into_owner_calendar(self, env):
        client, run, _ = env
        self.add_booking(run, date(2024, 6, 20), date(2024, 6, 23))
        self.add_booking(run, date(2024, 6, 25), date(2024, 6, 27), BookingStatus.CANCELLED)

        body = client.get("/api/calendar?year=2024&month=6", headers=auth("owner-1")).json()

        occupied = [d["day"] for d in body["days"] if d["occupied"]]
        assert occupied == ["2024-06-20", "2024-06-21", "2024-06-22"]

    def test_availability_override_and_switch(self, env):
        client, _, _ = env
        headers = auth("owner-1")
        response = client.post(
            "/api/calendar/availability",
            headers=headers,
            json={"from": "2024-07-10", "to": "2024-07-12", "available": False},
        )
        assert response.json() == {"days_updated": 3}

        selection = client.get(
            "/api/calendar/selection?from=2024-07-09&to=2024-07-10", headers=headers
        ).json()
        assert selection == {"available": False, "days": 2}

        body = client.get("/api/calendar?year=2024&month=7", headers=headers).json()
        unavailable = [d["day"] for d in body["days"] if d["unavailable"]]
        assert unavailable == ["2024-07-10", "2024-07-11", "2024-07-12"]

    def test_open_selection_is_noop(self, env):
        client, _, _ = env
        response = client.post(
            "/api/calendar/availability",
            headers=auth("owner-1"),
            json={"from": "2024-07-10", "available": False},
        )
        assert response.json() == {"days_updated": 0}

    def test_reversed_selection_rejected(self, env):
        client, _, _ = env
        response = client.post(
            "/api/calendar/block",
            headers=auth("owner-1"),
            json={"from": "2024-07-12", "to": "2024-07-10"},
        )
        assert response.status_code == 422

    def test_block_and_note(self, env):
        client, _, _ = env
        headers = auth("owner-1")

        blocked = client.post(
            "/api/calendar/block", headers=headers, json={"from": "2024-08-01", "to": "2024-08-03"}
        ).json()
        assert blocked == {"blocked": {"start": "2024-08-01", "end": "2024-08-03"}, "intervals_count": 1}

        noted = client.post(
            "/api/calendar/notes",
            headers=headers,
            json={"from": "2024-08-02", "to": "2024-08-02", "text": " manutenção "},
        ).json()
        assert noted == {"days_updated": 1}

        body = client.get("/api/calendar?year=2024&month=8", headers=headers).json()
        day = next(d for d in body["days"] if d["day"] == "2024-08-02")
        assert day["occupied"] and day["noted"]
        assert day["note"] == "manutenção"

    def test_compact(self, env):
        client, _, _ = env
        headers = auth("owner-1")
        client.post(
            "/api/calendar/availability",
            headers=headers,
            json={"from": "2024-01-01", "to": "2024-01-02", "available": False},
        )
        response = client.post("/api/calendar/compact?before=2024-01-02", headers=headers)
        assert response.json() == {"removed": 1}
        assert list(calendar_states["owner-1"].overrides) == ["2024-01-02"]

    # -- guest view ----------------------------------------------------

    def test_guest_disabled_days(self, env):
        client, run, _ = env
        today = datetime.now(PROPERTY_TZ).date()
        self.add_booking(run, today + timedelta(days=2), today + timedelta(days=4))

        response = client.get(
            f"/api/availability?from={today - timedelta(days=1)}&to={today + timedelta(days=5)}"
        )

        assert response.status_code == 200
        disabled = response.json()["disabled"]
        assert disabled == [
            str(today - timedelta(days=1)),
            str(today + timedelta(days=2)),
            str(today + timedelta(days=3)),
        ]

    def test_guest_sees_owner_blocks(self, env):
        client, _, _ = env
        today = datetime.now(PROPERTY_TZ).date()
        day = today + timedelta(days=3)
        client.post(
            "/api/calendar/availability",
            headers=auth("owner-1"),
            json={"from": str(day), "to": str(day), "available": False},
        )

        disabled = client.get(f"/api/availability?from={today}&to={day}").json()["disabled"]
        assert disabled == [str(day)]

    def test_guest_sees_published_feed_without_owner_session(self, env):
        client, _, tmp_path = env
        today = datetime.now(PROPERTY_TZ).date()
        busy = BusyInterval(today + timedelta(days=5), today + timedelta(days=6))
        (tmp_path / "export.ics").write_bytes(build_feed([busy], "Casa de Praia"))

        disabled = client.get(
            f"/api/availability?from={today}&to={today + timedelta(days=7)}"
        ).json()["disabled"]

        assert disabled == [str(today + timedelta(days=5)), str(today + timedelta(days=6))]
        assert calendar_states == {}

    def test_booking_rejected_on_owner_blocked_night(self, env, sample_booking_data):
        client, _, _ = env
        blocked = sample_booking_data["check_in"] + timedelta(days=1)
        client.post(
            "/api/calendar/availability",
            headers=auth("owner-1"),
            json={"from": str(blocked), "to": str(blocked), "available": False},
        )

        disabled = client.get(
            f"/api/availability?from={sample_booking_data['check_in']}"
            f"&to={sample_booking_data['check_out']}"
        ).json()["disabled"]
        assert disabled == [str(blocked)]

        response = client.post(
            "/api/bookings",
            headers=auth("guest-1"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )
        assert response.status_code == 409
        assert response.json()["detail"] == messages.DATES_UNAVAILABLE

    def test_booking_rejected_on_published_feed_night(self, env, sample_booking_data):
        client, run, tmp_path = env
        check_in = sample_booking_data["check_in"]
        (tmp_path / "export.ics").write_bytes(
            build_feed([BusyInterval(check_in, check_in)], "Casa de Praia")
        )

        response = client.post(
            "/api/bookings",
            headers=auth("guest-1"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )

        assert response.status_code == 409
        assert run(lambda session: BookingService.list_bookings(session)) == []

    # -- bookings ------------------------------------------------------

    def test_create_booking_redirects_to_payment(self, env, sample_booking_data, monkeypatch):
        client, _, _ = env
        calls = []

        def fake_checkout(booking_id, amount):
            calls.append((booking_id, amount))
            return {"url": f"https://pay.example/s/{booking_id}", "reference": "cs_1"}

        monkeypatch.setattr(payment_service, "create_checkout", fake_checkout)

        response = client.post(
            "/api/bookings",
            headers=auth("guest-1"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )

        assert response.status_code == 201
        body = response.json()
        booking_id = body["booking"]["id"]
        assert body["payment_url"] == f"https://pay.example/s/{booking_id}"
        assert body["message"] == messages.BOOKING_CREATED
        assert body["booking"]["status"] == "pending"
        assert body["booking"]["nights"] == 3
        assert Decimal(body["booking"]["total_price"]) == Decimal("1500")
        assert calls == [(booking_id, Decimal("1500"))]

        mine = client.get("/api/bookings/mine", headers=auth("guest-1")).json()
        assert [b["id"] for b in mine] == [booking_id]

    def test_create_booking_creates_profile(self, env, sample_booking_data, monkeypatch):
        client, run, _ = env
        monkeypatch.setattr(
            payment_service, "create_checkout", lambda booking_id, amount: {"url": "https://pay.example", "reference": None}
        )

        response = client.post(
            "/api/bookings",
            headers=auth("new-user"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )
        assert response.status_code == 201
        assert run(lambda session: session.get(Profile, "new-user")) is not None

    def test_anonymous_booking_rejected(self, env, sample_booking_data):
        client, _, _ = env
        response = client.post(
            "/api/bookings", json={k: str(v) for k, v in sample_booking_data.items()}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == messages.LOGIN_REQUIRED

    def test_overlapping_booking_rejected(self, env, sample_booking_data):
        client, run, _ = env
        self.add_booking(run, sample_booking_data["check_in"], sample_booking_data["check_out"])

        response = client.post(
            "/api/bookings",
            headers=auth("guest-1"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )
        assert response.status_code == 409
        assert response.json()["detail"] == messages.DATES_UNAVAILABLE

    def test_past_booking_rejected(self, env, sample_booking_data):
        client, _, _ = env
        sample_booking_data["check_in"] = date.today() - timedelta(days=10)
        sample_booking_data["check_out"] = date.today() - timedelta(days=8)

        response = client.post(
            "/api/bookings",
            headers=auth("guest-1"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )
        assert response.status_code == 422

    def test_payment_failure_keeps_pending_booking(self, env, sample_booking_data, monkeypatch):
        client, run, _ = env

        def failing_checkout(booking_id, amount):
            raise PaymentError("provider down")

        monkeypatch.setattr(payment_service, "create_checkout", failing_checkout)

        response = client.post(
            "/api/bookings",
            headers=auth("guest-1"),
            json={k: str(v) for k, v in sample_booking_data.items()},
        )

        assert response.status_code == 502
        body = response.json()
        assert body["payment_url"] is None
        assert body["message"] == messages.PAYMENT_FAILED

        booking = run(lambda session: session.get(Booking, body["booking"]["id"]))
        assert booking.status == BookingStatus.PENDING

    def test_owner_dashboard(self, env):
        client, run, _ = env
        headers = auth("owner-1")
        self.add_booking(run, date(2024, 6, 1), date(2024, 6, 3), BookingStatus.CONFIRMED, "1000")
        self.add_booking(run, date(2024, 6, 5), date(2024, 6, 7), BookingStatus.COMPLETED, "1000")
        pending_id = self.add_booking(run, date(2024, 6, 10), date(2024, 6, 11), BookingStatus.PENDING, "500")

        assert len(client.get("/api/bookings", headers=headers).json()) == 3

        stats = client.get("/api/bookings/stats", headers=headers).json()
        assert stats["total"] == 3
        assert stats["confirmed"] == 1
        assert Decimal(stats["revenue"]) == Decimal("2000")

        response = client.patch(
            f"/api/bookings/{pending_id}/status", headers=headers, json={"status": "confirmed"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

        stats = client.get("/api/bookings/stats", headers=headers).json()
        assert stats["confirmed"] == 2

    def test_invalid_status_change(self, env):
        client, run, _ = env
        booking_id = self.add_booking(run, date(2024, 6, 1), date(2024, 6, 3), BookingStatus.CANCELLED)

        response = client.patch(
            f"/api/bookings/{booking_id}/status",
            headers=auth("owner-1"),
            json={"status": "confirmed"},
        )
        assert response.status_code == 409

        response = client.patch(
            "/api/bookings/999/status", headers=auth("owner-1"), json={"status": "confirmed"}
        )
        assert response.status_code == 404

    def test_guest_cannot_see_dashboard(self, env):
        client, _, _ = env
        assert client.get("/api/bookings", headers=auth("guest-1")).status_code == 403
        assert client.get("/api/bookings/stats", headers=auth("guest-1")).status_code == 403

    def test_booking_month_calendar(self, env):
        client, run, _ = env
        booking_id = self.add_booking(run, date(2024, 6, 1), date(2024, 6, 3))

        body = client.get(
            "/api/bookings/calendar?year=2024&month=6", headers=auth("owner-1")
        ).json()

        assert body["leading_blanks"] == 6
        assert len(body["days"]) == 30
        first, second, third = body["days"][:3]
        assert first["bookings"] == [
            {"id": booking_id, "guest_name": "Ana", "status": "confirmed", "is_check_in": True, "is_check_out": False}
        ]
        assert second["bookings"][0]["is_check_in"] is False
        assert third["bookings"][0]["is_check_out"] is True
        assert body["days"][3]["bookings"] == []

    # -- calendar sync -------------------------------------------------

    def test_calendar_sync_crud(self, env):
        client, run, _ = env
        headers = auth("owner-1")

        created = client.post(
            "/api/calendar-sync",
            headers=headers,
            json={"platform": "Airbnb", "ical_url": "https://airbnb.example/cal.ics"},
        )
        assert created.status_code == 201
        sync_id = created.json()["id"]

        assert [s["id"] for s in client.get("/api/calendar-sync", headers=headers).json()] == [sync_id]

        synced = client.post(f"/api/calendar-sync/{sync_id}/sync", headers=headers).json()
        assert synced["ok"] is True
        assert synced["message"] == messages.SYNC_STARTED
        assert synced["sync"]["last_synced_at"] is not None

        assert client.delete(f"/api/calendar-sync/{sync_id}", headers=headers).status_code == 204
        assert client.delete(f"/api/calendar-sync/{sync_id}", headers=headers).status_code == 404
        assert run(lambda session: session.get(CalendarSync, sync_id)) is None

    def test_calendar_sync_blank_fields(self, env):
        client, _, _ = env
        response = client.post(
            "/api/calendar-sync", headers=auth("owner-1"), json={"platform": "", "ical_url": " "}
        )
        assert response.status_code == 422

    def test_sync_now_loads_feed_for_fresh_calendar(self, env, sample_feed, monkeypatch):
        client, _, tmp_path = env
        (tmp_path / "export.ics").write_text(sample_feed, encoding="utf-8")
        monkeypatch.setattr(settings, "calendar_sync_mode", "stamp")
        headers = auth("owner-1")
        sync_id = client.post(
            "/api/calendar-sync",
            headers=headers,
            json={"platform": "Airbnb", "ical_url": "https://airbnb.example/cal.ics"},
        ).json()["id"]

        client.post(f"/api/calendar-sync/{sync_id}/sync", headers=headers)

        calendar = calendar_states["owner-1"]
        assert len(calendar.intervals) == 2
        assert calendar.feed_loaded_at is not None
        assert client.get("/api/calendar", headers=headers).json()["intervals_count"] == 2

    def test_sync_missing_entry(self, env):
        client, _, _ = env
        response = client.post("/api/calendar-sync/42/sync", headers=auth("owner-1"))
        assert response.status_code == 404

    # -- messages ------------------------------------------------------

    @staticmethod
    def add_guest_booking(run, user_id="guest-1"):
        async def insert(session):
            booking = Booking(
                user_id=user_id,
                guest_name="Maria",
                guest_email="maria@example.com",
                check_in=date(2024, 6, 1),
                check_out=date(2024, 6, 3),
                number_of_guests=2,
                total_price=Decimal("1000"),
                status=BookingStatus.CONFIRMED,
            )
            session.add(booking)
            await session.commit()
            return booking.id

        return run(insert)

    def test_booking_message_thread(self, env):
        client, run, _ = env
        booking_id = self.add_guest_booking(run)
        url = f"/api/bookings/{booking_id}/messages"

        sent = client.post(
            url, headers=auth("guest-1"), json={"message": " Que horas é o check-in? ", "is_from_owner": True}
        )
        assert sent.status_code == 201
        assert sent.json()["is_from_owner"] is False
        assert sent.json()["message"] == "Que horas é o check-in?"

        reply = client.post(url, headers=auth("owner-1"), json={"message": "A partir das 14h"})
        assert reply.json()["is_from_owner"] is True
        assert reply.json()["sender_id"] == "owner-1"

        thread = client.get(url, headers=auth("guest-1")).json()
        assert [(m["message"], m["is_from_owner"]) for m in thread] == [
            ("Que horas é o check-in?", False),
            ("A partir das 14h", True),
        ]
        assert len(client.get(url, headers=auth("owner-1")).json()) == 2

    def test_booking_messages_scoped_to_participants(self, env):
        client, run, _ = env
        booking_id = self.add_guest_booking(run)
        url = f"/api/bookings/{booking_id}/messages"

        response = client.get(url, headers=auth("guest-2"))
        assert response.status_code == 403
        assert response.json()["detail"] == messages.BOOKING_ACCESS_DENIED
        assert client.post(url, headers=auth("guest-2"), json={"message": "oi"}).status_code == 403
        assert client.get(url).status_code == 401

        missing = client.get("/api/bookings/999/messages", headers=auth("owner-1"))
        assert missing.status_code == 404
        assert missing.json()["detail"] == messages.BOOKING_NOT_FOUND

    def test_blank_message_rejected(self, env):
        client, run, _ = env
        booking_id = self.add_guest_booking(run)
        response = client.post(
            f"/api/bookings/{booking_id}/messages", headers=auth("guest-1"), json={"message": "   "}
        )
        assert response.status_code == 422

    # -- export --------------------------------------------------------

    def test_export_feed(self, env):
        client, run, _ = env
        self.add_booking(run, date(2024, 6, 1), date(2024, 6, 4))
        self.add_booking(run, date(2024, 6, 10), date(2024, 6, 12), BookingStatus.CANCELLED)

        response = client.get("/export.ics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        [interval] = parse_feed(response.text)
        assert (interval.first_day, interval.last_day) == (date(2024, 6, 1), date(2024, 6, 3))

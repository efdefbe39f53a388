"""
Pytest configuration for rental tests
"""
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Ensure app is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import Base  # noqa: E402
import app.models  # noqa: E402,F401


SAMPLE_FEED = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Airbnb Inc//Hosting Calendar//EN
BEGIN:VEVENT
DTSTART;VALUE=DATE:20240601
DTEND;VALUE=DATE:20240605
SUMMARY:Reserved
END:VEVENT
BEGIN:VEVENT
DTSTART;VALUE=DATE:20240610
DTEND;VALUE=DATE:20240612
SUMMARY:Not available
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_feed():
    """Two all-day events: Jun 1-4 and Jun 10-11, 2024"""
    return SAMPLE_FEED


@pytest_asyncio.fixture
async def db_session():
    """Fresh in-memory database per test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with Session() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def future_stay():
    """Check-in a month from now, 3 nights"""
    check_in = date.today() + timedelta(days=30)
    return check_in, check_in + timedelta(days=3)


@pytest.fixture
def sample_booking_data(future_stay):
    """Sample data for booking creation"""
    check_in, check_out = future_stay
    return {
        "guest_name": "Maria Silva",
        "guest_email": "maria@example.com",
        "guest_phone": "+55 11 91234-5678",
        "check_in": check_in,
        "check_out": check_out,
        "number_of_guests": 2,
    }


@pytest.fixture(autouse=True)
def reset_calendar_states():
    """Calendars live in process memory; isolate them per test"""
    from app.state.calendar import calendar_states, property_states

    calendar_states.clear()
    property_states.clear()
    yield
    calendar_states.clear()
    property_states.clear()

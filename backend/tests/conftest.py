"""
Pytest configuration and fixtures for backend tests.

Reference week: 2026-10-19 is a Monday. Tenant 1 books Monday lunch from
11:00 to 11:30 and serves it from 12:30 to 13:30.
"""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from meal_booking.models import Base, MealWindowSetting, Student, Tenant
from meal_booking.services.meal_service import MealService
from shared.config.constants import MealType, Weekday


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

MEAL_TZ = ZoneInfo("Asia/Kolkata")
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)


def at(hour: int, minute: int, day: date = MONDAY) -> datetime:
    """Aware instant in the meal timezone."""
    return datetime.combine(day, time(hour, minute), tzinfo=MEAL_TZ)


class FixedClock:
    """Injectable clock; tests move it explicitly."""

    def __init__(self, moment: datetime):
        self.now = moment

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, day: date = MONDAY) -> None:
        self.now = at(hour, minute, day)


def add_window(
    db,
    tenant_id: int,
    weekday: str,
    meal_type: str,
    booking: tuple[str, str] | None = ("11:00", "11:30"),
    serving: tuple[str, str] | None = ("12:30", "13:30"),
    enabled: bool = True,
) -> MealWindowSetting:
    def parse(value):
        return time.fromisoformat(value) if value else None

    booking = booking or (None, None)
    serving = serving or (None, None)
    row = MealWindowSetting(
        tenant_id=tenant_id,
        weekday=weekday,
        meal_type=meal_type,
        enabled=enabled,
        booking_start=parse(booking[0]),
        booking_end=parse(booking[1]),
        serving_start=parse(serving[0]),
        serving_end=parse(serving[1]),
    )
    db.add(row)
    db.commit()
    return row


def add_student(db, tenant_id: int, student_id: int, name: str, **fields) -> Student:
    student = Student(
        id=student_id,
        tenant_id=tenant_id,
        name=name,
        reg_no=fields.pop("reg_no", f"REG{student_id:04d}"),
        mobile=fields.pop("mobile", f"98765{student_id:05d}"),
        course=fields.pop("course", "B.Tech"),
        hostel=fields.pop("hostel", "North Block"),
        **fields,
    )
    db.add(student)
    db.commit()
    return student


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    """Monday 11:05, inside the lunch booking window."""
    return FixedClock(at(11, 5))


@pytest.fixture
def seed_tenant(db_session):
    """Create a test tenant."""
    tenant = Tenant(id=1, name="Green Valley Hostel")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def other_tenant(db_session):
    """A second tenant with its own student and no meal settings."""
    tenant = Tenant(id=2, name="Riverside Hostel")
    db_session.add(tenant)
    db_session.commit()
    add_student(db_session, 2, 201, "Other Tenant Student")
    return tenant


@pytest.fixture
def seed_students(db_session, seed_tenant):
    """
    S1, S2, S3, S4: active regular students.
    105 is a day boarder, 106 is inactive.
    """
    return {
        "S1": add_student(db_session, 1, 101, "Aarav Sharma"),
        "S2": add_student(db_session, 1, 102, "Diya Patel"),
        "S3": add_student(db_session, 1, 103, "Kabir Singh"),
        "S4": add_student(db_session, 1, 104, "Meera Iyer"),
        "day_boarder": add_student(db_session, 1, 105, "Rohan Das", is_day_boarder=True),
        "inactive": add_student(db_session, 1, 106, "Zoya Khan", is_active=False),
    }


@pytest.fixture
def seed_windows(db_session, seed_tenant):
    """Monday lunch enabled, Monday dinner disabled, Tuesday lunch 10:00-10:30."""
    add_window(db_session, 1, Weekday.MONDAY, MealType.LUNCH)
    add_window(db_session, 1, Weekday.MONDAY, MealType.DINNER, enabled=False)
    add_window(db_session, 1, Weekday.TUESDAY, MealType.LUNCH, booking=("10:00", "10:30"))


@pytest.fixture
def service(db_session, clock, seed_students, seed_windows):
    """MealService over the seeded tenant with a fixed clock."""
    return MealService(db_session, clock=clock)


@pytest.fixture
def session_factory(db_session):
    """Session factory on the test engine, for code that opens its own sessions."""
    return TestingSessionLocal

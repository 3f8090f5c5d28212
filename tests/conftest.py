"""
Shared pytest fixtures for all tests.

This module provides the in-memory database, the API client, role users with
their auth headers and the clinic data most tests book against.
"""

import os
import tempfile
from datetime import timedelta

# Ensure test environment before the application reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMS_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["BACKUP_DIR"] = tempfile.mkdtemp(prefix="clinic-backups-")
os.environ["ADMIN_NOTIFICATION_EMAIL"] = "owner@example.com"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("BACKUP_ENCRYPTION_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from kreative_clinic.database import Base, get_db  # noqa: E402
from kreative_clinic.main import app  # noqa: E402
from kreative_clinic.models import (  # noqa: E402
    Appointment,
    DentistSchedule,
    Patient,
    Payment,
    Service,
    User,
)
from kreative_clinic.models_visit import PatientVisit  # noqa: E402
from kreative_clinic.security_utils import create_access_token, hash_password  # noqa: E402
from kreative_clinic.shared.timeutils import clinic_now, clinic_today, weekday_index  # noqa: E402

PASSWORD = "password123"


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def engine():
    """Create a fresh in-memory database shared by every connection."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    """
    Database session for one test.

    The same session backs the API client, so rows created here are
    visible to requests and vice versa.
    """
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db) -> TestClient:
    """API client bound to the test session (lifespan is not started)."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# USER FIXTURES
# ============================================================================


def make_user(db, role: str, email: str, name: str, status: str = "activated") -> User:
    user = User(
        name=name,
        email=email,
        password=hash_password(PASSWORD),
        role=role,
        status=status,
        contact_number="09171234567",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db) -> User:
    return make_user(db, "admin", "admin@example.com", "Clinic Admin")


@pytest.fixture
def staff_user(db) -> User:
    return make_user(db, "staff", "staff@example.com", "Front Desk")


@pytest.fixture
def patient_user(db) -> User:
    return make_user(db, "patient", "juan@example.com", "Juan Dela Cruz")


@pytest.fixture
def patient(db, patient_user) -> Patient:
    """Patient record linked to patient_user."""
    record = Patient(
        first_name="Juan",
        last_name="Dela Cruz",
        contact_number="09171234567",
        user_id=patient_user.id,
        is_linked=True,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return auth_headers(admin_user)


@pytest.fixture
def staff_headers(staff_user) -> dict:
    return auth_headers(staff_user)


@pytest.fixture
def patient_headers(patient_user, patient) -> dict:
    return auth_headers(patient_user)


# ============================================================================
# CLINIC DATA FIXTURES
# ============================================================================


@pytest.fixture
def dentist(db) -> DentistSchedule:
    """Active dentist working every day of the week without custom hours."""
    schedule = DentistSchedule(
        dentist_code="DR-001",
        dentist_name="Dr. Maria Reyes",
        is_pseudonymous=False,
        status="active",
        email="dr.reyes@example.com",
        sun=True,
        mon=True,
        tue=True,
        wed=True,
        thu=True,
        fri=True,
        sat=True,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


@pytest.fixture
def cleaning_service(db) -> Service:
    service = Service(name="Oral Prophylaxis", price=1000, estimated_minutes=30)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def filling_service(db) -> Service:
    service = Service(
        name="Tooth Filling",
        price=800,
        estimated_minutes=30,
        per_teeth_service=True,
        per_tooth_minutes=30,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def next_open_day():
    """First day inside the patient booking window that is not a Sunday."""
    day = clinic_today() + timedelta(days=1)
    while weekday_index(day) == 0:
        day += timedelta(days=1)
    return day


# ============================================================================
# FACTORY FIXTURES
# ============================================================================


@pytest.fixture
def make_appointment(db):
    """Insert an appointment directly, bypassing booking rules."""

    def _make(patient, service, day=None, time_slot="09:00-09:30", status="approved", **kwargs):
        appointment = Appointment(
            patient_id=patient.id,
            service_id=service.id,
            date=day or clinic_today(),
            time_slot=time_slot,
            status=status,
            payment_method=kwargs.pop("payment_method", "cash"),
            payment_status=kwargs.pop("payment_status", "unpaid"),
            reference_code=kwargs.pop("reference_code", "ABCD2345"),
            created_at=clinic_now(),
            **kwargs,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


@pytest.fixture
def make_visit(db):
    """Insert a patient visit directly."""

    def _make(patient, service=None, status="completed", day=None, **kwargs):
        now = clinic_now()
        visit = PatientVisit(
            patient_id=patient.id,
            service_id=service.id if service else None,
            visit_date=day or clinic_today(),
            start_time=kwargs.pop("start_time", now - timedelta(hours=1)),
            end_time=kwargs.pop("end_time", now if status == "completed" else None),
            status=status,
            **kwargs,
        )
        db.add(visit)
        db.commit()
        db.refresh(visit)
        return visit

    return _make


@pytest.fixture
def make_payment(db):
    def _make(amount: float = 1000, method: str = "maya", status: str = "paid", **kwargs):
        payment = Payment(
            method=method,
            status=status,
            amount_due=amount,
            amount_paid=amount if status == "paid" else 0,
            paid_at=kwargs.pop("paid_at", clinic_now() if status == "paid" else None),
            created_at=clinic_now(),
            **kwargs,
        )
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    return _make

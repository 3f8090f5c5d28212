from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

DAY_KEYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash
    role = Column(String(20), nullable=False, default="patient", index=True)  # admin, staff, dentist, patient
    status = Column(String(20), nullable=False, default="activated")  # activated, deactivated
    contact_number = Column(String(20), nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    token_version = Column(Integer, nullable=False, default=0)  # bumped on logout to revoke issued tokens
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship(
        "Patient", back_populates="user", uselist=False, foreign_keys="Patient.user_id"
    )


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    middle_name = Column(String(100), nullable=True)
    birthdate = Column(Date, nullable=True)
    sex = Column(String(10), nullable=True)
    contact_number = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    is_linked = Column(Boolean, default=False, nullable=False)
    flag_manual_review = Column(Boolean, default=False, nullable=False)
    # Archival (inactive for PATIENT_ARCHIVE_YEARS)
    archived_at = Column(DateTime, nullable=True, index=True)
    archived_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    archived_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="patient", foreign_keys=[user_id])
    hmos = relationship("PatientHmo", back_populates="patient", cascade="all, delete-orphan")
    manager = relationship("PatientManager", back_populates="patient", uselist=False)
    appointments = relationship("Appointment", back_populates="patient")
    visits = relationship("PatientVisit", back_populates="patient")


class PatientHmo(Base):
    __tablename__ = "patient_hmos"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    provider_name = Column(String(255), nullable=False)
    member_id = Column(String(100), nullable=True)
    holder_name = Column(String(255), nullable=True)
    valid_until = Column(Date, nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    patient = relationship("Patient", back_populates="hmos")


class PatientManager(Base):
    """No-show tracking and booking restrictions per patient"""

    __tablename__ = "patient_managers"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), unique=True, nullable=False)
    no_show_count = Column(Integer, default=0, nullable=False)
    warning_count = Column(Integer, default=0, nullable=False)
    block_status = Column(String(20), default="active", nullable=False, index=True)  # active, warning, blocked
    block_type = Column(String(20), nullable=True)  # account, ip, both
    block_reason = Column(Text, nullable=True)
    blocked_at = Column(DateTime, nullable=True)
    blocked_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_no_show_at = Column(DateTime, nullable=True)
    last_warning_sent_at = Column(DateTime, nullable=True)
    last_warning_message = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="manager")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0)
    estimated_minutes = Column(Integer, nullable=False, default=30)  # multiple of 30
    per_teeth_service = Column(Boolean, default=False, nullable=False)
    per_tooth_minutes = Column(Integer, nullable=True)
    is_special = Column(Boolean, default=False, nullable=False)
    special_start_date = Column(Date, nullable=True)
    special_end_date = Column(Date, nullable=True)
    is_excluded_from_analytics = Column(Boolean, default=False, nullable=False)
    is_follow_up = Column(Boolean, default=False, nullable=False)
    follow_up_parent_service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    follow_up_max_gap_weeks = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    follow_up_parent = relationship("Service", remote_side=[id], back_populates="follow_up_children")
    follow_up_children = relationship("Service", back_populates="follow_up_parent")
    discounts = relationship("ServiceDiscount", back_populates="service", cascade="all, delete-orphan")


class ServiceDiscount(Base):
    """Promo: planned -> launched -> canceled"""

    __tablename__ = "service_discounts"

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    discounted_price = Column(Float, nullable=False)
    status = Column(String(20), default="planned", nullable=False, index=True)
    activated_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    service = relationship("Service", back_populates="discounts")


class DentistSchedule(Base):
    __tablename__ = "dentist_schedules"

    id = Column(Integer, primary_key=True, index=True)
    dentist_code = Column(String(32), unique=True, nullable=False, index=True)
    dentist_name = Column(String(255), nullable=True)
    is_pseudonymous = Column(Boolean, default=True, nullable=False)
    employment_type = Column(String(20), default="full_time", nullable=False)  # full_time, part_time, locum
    contract_end_date = Column(Date, nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, inactive
    email = Column(String(255), unique=True, nullable=False)
    password_changed = Column(Boolean, default=False, nullable=False)

    sun = Column(Boolean, default=False, nullable=False)
    mon = Column(Boolean, default=True, nullable=False)
    tue = Column(Boolean, default=True, nullable=False)
    wed = Column(Boolean, default=True, nullable=False)
    thu = Column(Boolean, default=True, nullable=False)
    fri = Column(Boolean, default=True, nullable=False)
    sat = Column(Boolean, default=False, nullable=False)

    # Optional custom hours per weekday ("HH:MM"); both or neither
    sun_start_time = Column(String(5), nullable=True)
    sun_end_time = Column(String(5), nullable=True)
    mon_start_time = Column(String(5), nullable=True)
    mon_end_time = Column(String(5), nullable=True)
    tue_start_time = Column(String(5), nullable=True)
    tue_end_time = Column(String(5), nullable=True)
    wed_start_time = Column(String(5), nullable=True)
    wed_end_time = Column(String(5), nullable=True)
    thu_start_time = Column(String(5), nullable=True)
    thu_end_time = Column(String(5), nullable=True)
    fri_start_time = Column(String(5), nullable=True)
    fri_end_time = Column(String(5), nullable=True)
    sat_start_time = Column(String(5), nullable=True)
    sat_end_time = Column(String(5), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ClinicWeeklySchedule(Base):
    __tablename__ = "clinic_weekly_schedules"

    id = Column(Integer, primary_key=True, index=True)
    weekday = Column(Integer, unique=True, nullable=False)  # 0 = Sunday .. 6 = Saturday
    is_open = Column(Boolean, default=False, nullable=False)
    open_time = Column(String(5), nullable=True)
    close_time = Column(String(5), nullable=True)
    note = Column(String(255), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ClinicCalendar(Base):
    """Per-date override of the weekly schedule"""

    __tablename__ = "clinic_calendar"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, nullable=False, index=True)
    is_open = Column(Boolean, default=True, nullable=False)
    open_time = Column(String(5), nullable=True)
    close_time = Column(String(5), nullable=True)
    note = Column(String(255), nullable=True)
    max_per_block = Column(Integer, nullable=True)  # capacity cap, admin only
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    patient_hmo_id = Column(Integer, ForeignKey("patient_hmos.id"), nullable=True)
    dentist_schedule_id = Column(Integer, ForeignKey("dentist_schedules.id"), nullable=True)
    date = Column(Date, nullable=False, index=True)
    time_slot = Column(String(11), nullable=False)  # HH:MM-HH:MM
    status = Column(String(20), default="pending", nullable=False, index=True)
    payment_method = Column(String(10), nullable=False, default="cash")  # cash, maya, hmo
    payment_status = Column(String(20), nullable=False, default="unpaid")  # unpaid, awaiting_payment, paid
    reference_code = Column(String(16), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    teeth_count = Column(Integer, nullable=True)
    teeth = Column(String(255), nullable=True)
    honor_preferred_dentist = Column(Boolean, default=True, nullable=False)
    booked_by_staff = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(String(50), nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    reminded_at = Column(DateTime, nullable=True)  # manual SMS reminder
    email_reminded_at = Column(DateTime, nullable=True)  # day-before email job
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="appointments")
    service = relationship("Service")
    dentist = relationship("DentistSchedule")
    patient_hmo = relationship("PatientHmo")
    payments = relationship("Payment", back_populates="appointment")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)
    patient_visit_id = Column(Integer, ForeignKey("patient_visits.id"), nullable=True, index=True)
    method = Column(String(10), nullable=False)  # cash, maya, hmo
    status = Column(String(20), nullable=False, default="unpaid")  # unpaid, awaiting_payment, paid, cancelled
    amount_due = Column(Float, nullable=False, default=0)
    amount_paid = Column(Float, nullable=False, default=0)
    currency = Column(String(3), default="PHP")
    reference_no = Column(String(100), nullable=True, index=True)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="payments")
    visit = relationship("PatientVisit", back_populates="payments")


class RefundRequest(Base):
    """pending -> approved -> processed -> completed, or rejected"""

    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    original_amount = Column(Float, nullable=False, default=0)
    cancellation_fee = Column(Float, nullable=False, default=0)
    refund_amount = Column(Float, nullable=False, default=0)
    reason = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False, index=True)
    admin_notes = Column(Text, nullable=True)
    requested_at = Column(DateTime, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    deadline_at = Column(DateTime, nullable=True)
    deadline_extended_at = Column(DateTime, nullable=True)
    deadline_extension_reason = Column(Text, nullable=True)
    deadline_notified_at = Column(DateTime, nullable=True)

    patient = relationship("Patient")
    appointment = relationship("Appointment")
    payment = relationship("Payment")

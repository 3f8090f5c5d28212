"""
Patient visit, visit note and feedback models
Visits are the on-site record (walk-in or from an approved appointment)
"""

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class PatientVisit(Base):
    __tablename__ = "patient_visits"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    dentist_schedule_id = Column(Integer, ForeignKey("dentist_schedules.id"), nullable=True)

    visit_date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)

    # pending, completed, rejected, inquiry
    status = Column(String(20), default="pending", nullable=False, index=True)

    visit_code = Column(String(6), nullable=True, unique=True)
    visit_code_sent_at = Column(DateTime, nullable=True)

    medical_history_status = Column(String(20), nullable=True)  # pending, completed
    medical_history = Column(JSON, nullable=True)

    note = Column(Text, nullable=True)
    teeth_treated = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="visits")
    service = relationship("Service")
    appointment = relationship("Appointment")
    dentist = relationship("DentistSchedule")
    payments = relationship("Payment", back_populates="visit")
    feedback = relationship("PatientFeedback", back_populates="visit", uselist=False)
    notes = relationship("VisitNote", back_populates="visit", uselist=False, cascade="all, delete-orphan")


class VisitNote(Base):
    """Dentist notes for a visit; free-text fields are Fernet-encrypted at rest"""

    __tablename__ = "visit_notes"

    id = Column(Integer, primary_key=True, index=True)
    patient_visit_id = Column(Integer, ForeignKey("patient_visits.id"), unique=True, nullable=False)

    dentist_notes_encrypted = Column(Text, nullable=True)
    findings_encrypted = Column(Text, nullable=True)
    treatment_plan_encrypted = Column(Text, nullable=True)
    teeth_treated = Column(String(255), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_accessed_at = Column(DateTime, nullable=True)
    last_accessed_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    visit = relationship("PatientVisit", back_populates="notes")

class PatientFeedback(Base):
    __tablename__ = "patient_feedbacks"

    id = Column(Integer, primary_key=True, index=True)
    patient_visit_id = Column(Integer, ForeignKey("patient_visits.id"), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    dentist_schedule_id = Column(Integer, ForeignKey("dentist_schedules.id"), nullable=True, index=True)

    answers = Column(JSON, nullable=False)  # {question_key: 1..5}
    average_score = Column(Float, nullable=True)
    dentist_rating = Column(Integer, nullable=True)  # 1..5
    comment = Column(Text, nullable=True)

    submitted_at = Column(DateTime, nullable=False)
    editable_until = Column(DateTime, nullable=True)
    last_edited_at = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    locked_reason = Column(String(50), nullable=True)

    visit = relationship("PatientVisit", back_populates="feedback")
    patient = relationship("Patient")
    dentist = relationship("DentistSchedule")

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class NotificationLog(Base):
    """Every outbound SMS attempt, including the blocked and duplicate ones"""

    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    channel = Column(String(10), nullable=False, default="sms")
    to = Column(String(30), nullable=False, index=True)
    message = Column(Text, nullable=False)
    # pending, sent, failed, duplicate, blocked_sandbox, seeding
    status = Column(String(20), nullable=False, default="pending", index=True)
    provider_message_id = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SmsWhitelist(Base):
    __tablename__ = "sms_whitelist"

    id = Column(Integer, primary_key=True, index=True)
    phone_e164 = Column(String(20), unique=True, nullable=False)
    label = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class EmailLog(Base):
    """Outbound email queue (queued -> sent | failed)"""

    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    to = Column(String(255), nullable=False, index=True)
    subject = Column(String(255), nullable=False)
    html = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="queued", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Notification(Base):
    """In-app notification shown in the bell, for listed users or broadcast to roles"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False, index=True)  # visit_code, low_stock
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    severity = Column(String(10), nullable=False, default="info")  # info, warning, danger
    scope = Column(String(10), nullable=False, default="targeted")  # targeted, broadcast
    audience_roles = Column(JSON, nullable=True)  # broadcast only; null reaches every role
    effective_from = Column(DateTime, nullable=True)
    effective_until = Column(DateTime, nullable=True)
    data = Column(JSON, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    targets = relationship("NotificationTarget", back_populates="notification", cascade="all, delete-orphan")


class NotificationTarget(Base):
    """Recipient row; also records read state for broadcasts once a user marks them read"""

    __tablename__ = "notification_targets"
    __table_args__ = (UniqueConstraint("notification_id", "user_id", name="uq_notification_target"),)

    id = Column(Integer, primary_key=True, index=True)
    notification_id = Column(Integer, ForeignKey("notifications.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_email = Column(String(255), nullable=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    notification = relationship("Notification", back_populates="targets")

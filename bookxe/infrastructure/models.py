"""SQLAlchemy models for database tables.

Provides ORM models for the bookings and notifications tables.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from bookxe.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Booking Models
# ============================================================================


class BookingModel(Base):
    """Booking request row.

    ``status`` is the optimistic-concurrency column: every transition is
    written with ``WHERE id = :id AND status = :expected``.
    """

    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    requester_id = Column(String(100), nullable=False, index=True)
    requester_name = Column(String(255), nullable=False, default="")
    requester_department = Column(String(255), nullable=False, default="")
    destination = Column(String(500), nullable=False)
    travel_time = Column(DateTime(timezone=True), nullable=False, index=True)
    reason = Column(Text, nullable=False)

    # Advisory cargo info
    cargo_type = Column(String(100), nullable=True)
    cargo_weight = Column(String(100), nullable=True)

    # Vehicle display join
    vehicle_id = Column(String(36), nullable=True)
    vehicle_name = Column(String(255), nullable=True)
    driver_info = Column(String(255), nullable=True)

    # Approval chain
    status = Column(String(20), nullable=False, default="pending_viet", index=True)
    viet_approval_status = Column(String(20), nullable=False, default="pending")
    korea_approval_status = Column(String(20), nullable=False, default="pending")
    admin_approval_status = Column(String(20), nullable=False, default="pending")
    approver_viet_id = Column(String(100), nullable=True)
    approver_korea_id = Column(String(100), nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(100), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_bookings_status_created_at", "status", "created_at"),
    )


# ============================================================================
# Notification Models
# ============================================================================


class NotificationModel(Base):
    """Notification row addressed to one user or one role."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(100), nullable=True, index=True)
    target_role = Column(String(50), nullable=True, index=True)
    booking_id = Column(String(36), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False, default="")
    type = Column(String(20), nullable=False, default="info")
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

"""API schemas for the booking approval service.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


# ============================================================================
# Booking Schemas
# ============================================================================


class BookingStatusEnum(str, Enum):
    """Booking status values."""

    PENDING = "pending"
    PENDING_VIET = "pending_viet"
    PENDING_KOREA = "pending_korea"
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class StageStatusEnum(str, Enum):
    """Per-stage approval values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BookingCreateRequest(BaseModel):
    """Request to create a booking."""

    destination: str = Field(..., min_length=1, max_length=500, description="Destination")
    travel_time: datetime = Field(..., description="Requested travel time, with timezone")
    reason: str = Field(..., min_length=1, description="Why the vehicle is needed")
    requester_name: str = Field(default="", max_length=255)
    requester_department: str = Field(default="", max_length=255)
    cargo_type: str | None = Field(default=None, max_length=100)
    cargo_weight: str | None = Field(default=None, max_length=100)
    vehicle_id: str | None = Field(default=None, max_length=36)
    vehicle_name: str | None = Field(default=None, max_length=255)
    driver_info: str | None = Field(default=None, max_length=255)


class ApprovalStagesSchema(BaseModel):
    """The three stage flags."""

    viet: StageStatusEnum
    korea: StageStatusEnum
    admin: StageStatusEnum


class BookingResponse(BaseModel):
    """Booking response."""

    id: str
    requester_id: str
    requester_name: str
    requester_department: str
    destination: str
    travel_time: datetime
    reason: str
    cargo_type: str | None = None
    cargo_weight: str | None = None
    vehicle_id: str | None = None
    vehicle_name: str | None = None
    driver_info: str | None = None
    status: BookingStatusEnum
    stages: ApprovalStagesSchema
    approver_viet_id: str | None = None
    approver_korea_id: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    cancelled_at: datetime | None = None
    resolved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class BookingActionResponse(BaseModel):
    """Response to a create, approve or reject call."""

    booking: BookingResponse
    warnings: list[str] = Field(default_factory=list)


class BookingsListResponse(BaseModel):
    """List of bookings."""

    items: list[BookingResponse]
    total: int


# ============================================================================
# Sweep Schemas
# ============================================================================


class SweepErrorSchema(BaseModel):
    """A booking the sweep could not cancel."""

    booking_id: str
    error_code: str
    message: str


class SweepReportResponse(BaseModel):
    """Outcome of one expiry sweep."""

    cancelled_count: int
    skipped_count: int
    errors: list[SweepErrorSchema]
    started_at: datetime


# ============================================================================
# Notification Schemas
# ============================================================================


class NotificationSeverityEnum(str, Enum):
    """Notification presentation hint."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationResponse(BaseModel):
    """Notification response."""

    id: str
    title: str
    message: str
    severity: NotificationSeverityEnum
    target_user_id: str | None = None
    target_role: str | None = None
    booking_id: str | None = None
    is_read: bool
    created_at: datetime


class NotificationsListResponse(BaseModel):
    """Inbox listing."""

    items: list[NotificationResponse]
    unread_count: int


class MarkAllReadResponse(BaseModel):
    """Result of marking the inbox read."""

    updated: int

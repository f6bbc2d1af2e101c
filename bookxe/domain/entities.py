"""Domain entities.

- BookingRequest: aggregate root for a vehicle booking and its approval chain
- NotificationEvent: a persisted notice addressed to one user or one role
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Self
from uuid import uuid4

from bookxe.domain.base import AggregateRoot, DomainEvent, Entity, utcnow
from bookxe.domain.events import (
    BookingApproved,
    BookingExpired,
    BookingRejected,
    BookingStageApproved,
    BookingSubmitted,
)
from bookxe.domain.exceptions import ConflictError, InvalidTransitionError, ValidationError
from bookxe.domain.state_machines import (
    ApprovalAction,
    ApprovalStage,
    BookingSnapshot,
    BookingStatus,
    StageFlags,
    StageStatus,
    TransitionDecision,
    status_is_consistent,
)
from bookxe.domain.value_objects import Actor

# Fields written by a transition. Nothing else on a booking changes after creation.
TRANSITION_FIELDS: tuple[str, ...] = (
    "status",
    "viet_stage",
    "korea_stage",
    "admin_stage",
    "approver_viet_id",
    "approver_korea_id",
    "approved_by",
    "approved_at",
    "rejected_by",
    "cancelled_at",
    "resolved_at",
    "updated_at",
)


def _require_text(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(name, "must not be empty")
    return value.strip()


# ============================================================================
# Booking Request Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class BookingRequest(AggregateRoot):
    """Booking request aggregate root.

    ``status`` is a cached value of the three stage flags (plus the
    cancellation marker). It only changes through :meth:`apply`, which
    takes a decision produced by the state machine.

    Attributes:
        id: Booking identifier.
        requester_id: Identity of the employee who created the request.
        requester_name: Display name, denormalised.
        requester_department: Department, denormalised.
        destination: Where the vehicle goes.
        travel_time: Requested travel time (timezone-aware).
        reason: Free-text justification.
        cargo_type: Advisory cargo descriptor.
        cargo_weight: Advisory cargo weight.
        vehicle_id: Requested vehicle, if one was picked.
        vehicle_name: Vehicle display name, denormalised.
        driver_info: Driver display string, denormalised.
        status: Current status.
        viet_stage: Vietnamese manager stage flag.
        korea_stage: Korean manager stage flag.
        admin_stage: Admin stage flag.
        approver_viet_id: Who actioned the Vietnamese stage.
        approver_korea_id: Who actioned the Korean stage.
        approved_by: Admin who gave final approval.
        approved_at: When final approval was given.
        rejected_by: Who rejected the request, at any stage.
        cancelled_at: When the expiry sweeper cancelled the request.
        resolved_at: When the request reached a terminal status.
    """

    requester_id: str
    destination: str
    travel_time: datetime
    reason: str
    requester_name: str = ""
    requester_department: str = ""
    cargo_type: str | None = None
    cargo_weight: str | None = None
    vehicle_id: str | None = None
    vehicle_name: str | None = None
    driver_info: str | None = None
    status: BookingStatus = BookingStatus.PENDING_VIET
    viet_stage: StageStatus = StageStatus.PENDING
    korea_stage: StageStatus = StageStatus.PENDING
    admin_stage: StageStatus = StageStatus.PENDING
    approver_viet_id: str | None = None
    approver_korea_id: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    cancelled_at: datetime | None = None
    resolved_at: datetime | None = None

    @classmethod
    def create(
        cls,
        requester: Actor,
        destination: str,
        travel_time: datetime,
        reason: str,
        requester_name: str = "",
        requester_department: str = "",
        cargo_type: str | None = None,
        cargo_weight: str | None = None,
        vehicle_id: str | None = None,
        vehicle_name: str | None = None,
        driver_info: str | None = None,
        booking_id: str | None = None,
        now: datetime | None = None,
    ) -> Self:
        """Create a new booking request waiting on the first stage.

        Args:
            requester: Actor submitting the request.
            destination: Destination.
            travel_time: Requested travel time, timezone-aware.
            reason: Justification.
            requester_name: Display name.
            requester_department: Department.
            cargo_type: Optional cargo type.
            cargo_weight: Optional cargo weight.
            vehicle_id: Optional vehicle reference.
            vehicle_name: Optional vehicle display name.
            driver_info: Optional driver display string.
            booking_id: Optional pre-generated ID.
            now: Creation time (defaults to current UTC time).

        Returns:
            New BookingRequest in PENDING_VIET.

        Raises:
            ValidationError: If a required field is missing or travel_time is naive.
        """
        if requester.is_system:
            raise ValidationError("requester", "system actor cannot submit bookings")
        if travel_time.tzinfo is None or travel_time.utcoffset() is None:
            raise ValidationError("travel_time", "must be timezone-aware")

        created = now or utcnow()
        booking = cls(
            id=booking_id or str(uuid4()),
            requester_id=requester.identity,
            requester_name=(requester_name or "").strip(),
            requester_department=(requester_department or "").strip(),
            destination=_require_text("destination", destination),
            travel_time=travel_time,
            reason=_require_text("reason", reason),
            cargo_type=cargo_type,
            cargo_weight=cargo_weight,
            vehicle_id=vehicle_id,
            vehicle_name=vehicle_name,
            driver_info=driver_info,
            created_at=created,
            updated_at=created,
        )
        booking._record_event(
            BookingSubmitted(
                aggregate_id=booking.id,
                aggregate_type="BookingRequest",
                booking_id=booking.id,
                requester_id=booking.requester_id,
                requester_name=booking.requester_name,
                destination=booking.destination,
                travel_time=booking.travel_time,
            )
        )
        return booking

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def flags(self) -> StageFlags:
        """Current stage flags."""
        return StageFlags(
            viet=self.viet_stage,
            korea=self.korea_stage,
            admin=self.admin_stage,
        )

    @property
    def is_terminal(self) -> bool:
        """Whether the booking is resolved."""
        return self.status.is_terminal()

    @property
    def is_consistent(self) -> bool:
        """Whether the cached status agrees with the stage flags."""
        return status_is_consistent(
            self.status, self.flags, cancelled=self.cancelled_at is not None
        )

    def snapshot(self) -> BookingSnapshot:
        """State the approval state machine decides on."""
        return BookingSnapshot(
            booking_id=self.id,
            status=self.status,
            flags=self.flags,
            travel_time=self.travel_time,
            cancelled=self.cancelled_at is not None,
        )

    def transition_changes(self) -> dict[str, Any]:
        """Field values a transition writes, keyed by attribute name."""
        return {name: getattr(self, name) for name in TRANSITION_FIELDS}

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def apply(self, decision: TransitionDecision, actor: Actor, now: datetime | None = None) -> None:
        """Apply a decided transition.

        Args:
            decision: Decision produced by the state machine for this booking.
            actor: Actor the decision was made for.
            now: Transition time.

        Raises:
            InvalidTransitionError: If the decision belongs to another booking or actor.
            ConflictError: If the booking moved since the decision was made.
        """
        if decision.booking_id != self.id or decision.actor_role != actor.role:
            raise InvalidTransitionError(
                booking_id=self.id,
                current_status=self.status.value,
                action=decision.action.value,
                reason="decision was made for a different booking or actor",
            )
        if decision.from_status != self.status:
            raise ConflictError(self.id, decision.from_status.value, self.status.value)

        at = now or utcnow()
        previous_status = self.status

        self.viet_stage = decision.flags.viet
        self.korea_stage = decision.flags.korea
        self.admin_stage = decision.flags.admin
        self.status = decision.to_status

        if decision.action == ApprovalAction.FORCE_CANCEL:
            self.cancelled_at = at
        elif decision.stage == ApprovalStage.VIET:
            self.approver_viet_id = actor.identity
        elif decision.stage == ApprovalStage.KOREA:
            self.approver_korea_id = actor.identity
        elif decision.stage == ApprovalStage.ADMIN and decision.action == ApprovalAction.APPROVE:
            self.approved_by = actor.identity
            self.approved_at = at

        if decision.action == ApprovalAction.REJECT:
            self.rejected_by = actor.identity
        if decision.is_final:
            self.resolved_at = at
        self._touch(at)

        self._record_event(self._event_for(decision, actor, previous_status))

    def _event_for(
        self,
        decision: TransitionDecision,
        actor: Actor,
        previous_status: BookingStatus,
    ) -> DomainEvent:
        common = {
            "aggregate_id": self.id,
            "aggregate_type": "BookingRequest",
            "booking_id": self.id,
            "requester_id": self.requester_id,
            "destination": self.destination,
        }
        if decision.action == ApprovalAction.FORCE_CANCEL:
            return BookingExpired(
                previous_status=previous_status.value,
                travel_time=self.travel_time,
                **common,
            )
        stage = decision.stage.value if decision.stage else ""
        if decision.action == ApprovalAction.REJECT:
            return BookingRejected(stage=stage, rejected_by=actor.identity, **common)
        if decision.is_final:
            return BookingApproved(
                approved_by=actor.identity,
                approved_at=self.approved_at or self.updated_at,
                **common,
            )
        next_stage = decision.next_stage
        return BookingStageApproved(
            stage=stage,
            approved_by=actor.identity,
            next_stage=next_stage.value if next_stage else "",
            next_role=next_stage.role.value if next_stage else "",
            **common,
        )


# ============================================================================
# Notification Entity
# ============================================================================


class NotificationSeverity(str, Enum):
    """Presentation hint for a notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(kw_only=True, eq=False)
class NotificationEvent(Entity):
    """A notification addressed to exactly one user or one role.

    Attributes:
        id: Notification identifier.
        title: Short title.
        message: Body text.
        severity: Presentation hint.
        target_user_id: Addressed user, mutually exclusive with target_role.
        target_role: Addressed role, mutually exclusive with target_user_id.
        booking_id: Booking the notification is about, if any.
        is_read: Read flag.
        created_at: Creation time.
    """

    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    target_user_id: str | None = None
    target_role: str | None = None
    booking_id: str | None = None
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate addressing mode."""
        if (self.target_user_id is None) == (self.target_role is None):
            raise ValidationError(
                "target",
                "exactly one of target_user_id or target_role must be set",
            )

    @classmethod
    def create(
        cls,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        target_user_id: str | None = None,
        target_role: str | None = None,
        booking_id: str | None = None,
    ) -> Self:
        """Create a new unread notification.

        Raises:
            ValidationError: If the addressing is ambiguous or the title is empty.
        """
        return cls(
            id=str(uuid4()),
            title=_require_text("title", title),
            message=message,
            severity=severity,
            target_user_id=target_user_id,
            target_role=target_role,
            booking_id=booking_id,
        )

    def is_addressed_to(self, actor: Actor) -> bool:
        """Whether the actor should see this notification."""
        if self.target_user_id is not None:
            return self.target_user_id == actor.identity
        return self.target_role == actor.role.value

    def mark_read(self) -> None:
        """Mark the notification as read."""
        self.is_read = True

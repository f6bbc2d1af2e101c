"""Booking approval state machine.

Deterministic decision logic for the three-stage booking approval chain.
Given a booking snapshot, an actor role and a requested action, the state
machine either returns the legal next state or raises a domain error. It
never touches storage; the orchestrator persists whatever it decides.

State diagram:
    PENDING_VIET ──approve──► PENDING_KOREA ──approve──► PENDING_ADMIN ──approve──► APPROVED
      │    ▲                    │                          │
      │    └─ PENDING (legacy)  │                          │
      │                         │                          │
      ├──reject─────────────────┴──────────reject──────────┴──────────────────────► REJECTED
      │
      └──force_cancel (system, from any pending status)────────────────────────────► CANCELLED
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from bookxe.domain.exceptions import (
    AuthorizationError,
    InconsistentBookingError,
    InvalidTransitionError,
)

DEFAULT_EXPIRY_GRACE = timedelta(hours=24)


# ============================================================================
# Booking Status
# ============================================================================


class BookingStatus(str, Enum):
    """Booking request lifecycle states.

    ``PENDING`` is a legacy value written by an older, unstaged creation
    path. It is treated as ``PENDING_VIET`` everywhere a gating decision
    is made.
    """

    PENDING = "pending"
    PENDING_VIET = "pending_viet"
    PENDING_KOREA = "pending_korea"
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "BookingStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _BOOKING_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["BookingStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return list(_BOOKING_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_BOOKING_TRANSITIONS.get(self, set())) == 0

    def is_pending(self) -> bool:
        """Check if the booking is still waiting on an approval stage."""
        return not self.is_terminal()

    def normalized(self) -> "BookingStatus":
        """Map the legacy ``PENDING`` value onto ``PENDING_VIET``."""
        if self == BookingStatus.PENDING:
            return BookingStatus.PENDING_VIET
        return self


PENDING_STATUSES: tuple[BookingStatus, ...] = (
    BookingStatus.PENDING,
    BookingStatus.PENDING_VIET,
    BookingStatus.PENDING_KOREA,
    BookingStatus.PENDING_ADMIN,
)

_BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.PENDING_KOREA,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.PENDING_VIET: {
        BookingStatus.PENDING_KOREA,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.PENDING_KOREA: {
        BookingStatus.PENDING_ADMIN,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.PENDING_ADMIN: {
        BookingStatus.APPROVED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.APPROVED: set(),  # Terminal state
    BookingStatus.REJECTED: set(),  # Terminal state
    BookingStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Stages, Roles and Actions
# ============================================================================


class StageStatus(str, Enum):
    """Outcome of a single approval stage."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStage(str, Enum):
    """The three sequential approval gates, in order."""

    VIET = "viet"
    KOREA = "korea"
    ADMIN = "admin"

    @property
    def gating_status(self) -> BookingStatus:
        """Status a booking has while waiting on this stage."""
        return _STAGE_GATING_STATUS[self]

    @property
    def role(self) -> "ActorRole":
        """Role allowed to act on this stage."""
        return _STAGE_ROLE[self]

    def next_stage(self) -> "ApprovalStage | None":
        """Stage that follows this one, or None for the last stage."""
        stages = list(ApprovalStage)
        index = stages.index(self)
        if index + 1 < len(stages):
            return stages[index + 1]
        return None


class ActorRole(str, Enum):
    """Roles consumed from the identity provider.

    ``SYSTEM`` is never issued to a person; it is the synthetic actor used
    by the expiry sweeper.
    """

    STAFF = "staff"
    MANAGER_VIET = "manager_viet"
    MANAGER_KOREA = "manager_korea"
    ADMIN = "admin"
    SYSTEM = "system"

    def gated_stage(self) -> ApprovalStage | None:
        """Approval stage this role gates, if any."""
        for stage, role in _STAGE_ROLE.items():
            if role == self:
                return stage
        return None

    def gating_statuses(self) -> list[BookingStatus]:
        """Stored status values this role may act on.

        Returns:
            Empty for roles that gate nothing.
        """
        stage = self.gated_stage()
        if stage is None:
            return []
        statuses = [stage.gating_status]
        if stage.gating_status == BookingStatus.PENDING_VIET:
            statuses.append(BookingStatus.PENDING)
        return statuses

    def is_approver(self) -> bool:
        """Check if this role gates an approval stage."""
        return self.gated_stage() is not None


class ApprovalAction(str, Enum):
    """Actions that move a booking through the chain."""

    APPROVE = "approve"
    REJECT = "reject"
    FORCE_CANCEL = "force_cancel"


_STAGE_GATING_STATUS: dict[ApprovalStage, BookingStatus] = {
    ApprovalStage.VIET: BookingStatus.PENDING_VIET,
    ApprovalStage.KOREA: BookingStatus.PENDING_KOREA,
    ApprovalStage.ADMIN: BookingStatus.PENDING_ADMIN,
}

_STAGE_ROLE: dict[ApprovalStage, ActorRole] = {
    ApprovalStage.VIET: ActorRole.MANAGER_VIET,
    ApprovalStage.KOREA: ActorRole.MANAGER_KOREA,
    ApprovalStage.ADMIN: ActorRole.ADMIN,
}


# ============================================================================
# Stage Flags
# ============================================================================


@dataclass(frozen=True)
class StageFlags:
    """The three per-stage approval flags of a booking.

    Attributes:
        viet: Vietnamese manager stage.
        korea: Korean manager stage.
        admin: Admin stage.
    """

    viet: StageStatus = StageStatus.PENDING
    korea: StageStatus = StageStatus.PENDING
    admin: StageStatus = StageStatus.PENDING

    def for_stage(self, stage: ApprovalStage) -> StageStatus:
        """Get the flag for a stage."""
        return getattr(self, stage.value)

    def with_stage(self, stage: ApprovalStage, value: StageStatus) -> "StageFlags":
        """Return a copy with one stage flag replaced."""
        return replace(self, **{stage.value: value})

    def in_order(self) -> list[StageStatus]:
        """Flags in approval order."""
        return [self.for_stage(stage) for stage in ApprovalStage]

    def is_ordered(self) -> bool:
        """Check the flags describe a reachable sequence.

        A reachable sequence is zero or more approvals, then at most one
        rejection, then only pending stages.
        """
        closed = False
        for value in self.in_order():
            if closed and value != StageStatus.PENDING:
                return False
            if value != StageStatus.APPROVED:
                closed = True
        return True


def derive_status(flags: StageFlags, cancelled: bool = False) -> BookingStatus:
    """Compute the booking status implied by the stage flags.

    Args:
        flags: Current stage flags.
        cancelled: Whether the booking was force-cancelled.

    Returns:
        The derived status.

    Raises:
        ValueError: If the flags are not a reachable sequence.
    """
    if not flags.is_ordered():
        raise ValueError(f"Stage flags out of order: {flags.in_order()}")

    if StageStatus.REJECTED in flags.in_order():
        return BookingStatus.REJECTED
    if cancelled:
        return BookingStatus.CANCELLED

    for stage in ApprovalStage:
        if flags.for_stage(stage) == StageStatus.PENDING:
            return stage.gating_status
    return BookingStatus.APPROVED


def status_is_consistent(
    status: BookingStatus,
    flags: StageFlags,
    cancelled: bool = False,
) -> bool:
    """Check a stored status agrees with its stage flags."""
    if not flags.is_ordered():
        return False
    return status.normalized() == derive_status(flags, cancelled)


# ============================================================================
# Transition Decision
# ============================================================================


@dataclass(frozen=True)
class BookingSnapshot:
    """The subset of a booking the state machine decides on.

    Attributes:
        booking_id: Booking identifier.
        status: Stored status.
        flags: Stored stage flags.
        travel_time: Requested travel time (timezone-aware).
        cancelled: Whether the booking carries a cancellation timestamp.
    """

    booking_id: str
    status: BookingStatus
    flags: StageFlags
    travel_time: datetime
    cancelled: bool = False


@dataclass(frozen=True)
class TransitionDecision:
    """A legal transition, ready to be applied and persisted.

    Attributes:
        booking_id: Booking identifier.
        action: Action that was decided.
        actor_role: Role that requested it.
        from_status: Status read before deciding (the write precondition).
        to_status: New status.
        flags: New stage flags.
        stage: Stage that was actioned, None for a force-cancel.
    """

    booking_id: str
    action: ApprovalAction
    actor_role: ActorRole
    from_status: BookingStatus
    to_status: BookingStatus
    flags: StageFlags
    stage: ApprovalStage | None = None

    @property
    def is_final(self) -> bool:
        """Whether the booking is resolved after this transition."""
        return self.to_status.is_terminal()

    @property
    def next_stage(self) -> ApprovalStage | None:
        """Stage now waiting for action, if the booking is still pending."""
        for stage in ApprovalStage:
            if stage.gating_status == self.to_status:
                return stage
        return None


def validate_booking_transition(
    booking_id: str,
    current_status: BookingStatus,
    target_status: BookingStatus,
    action: ApprovalAction,
) -> None:
    """Validate and raise if booking state transition is invalid.

    Args:
        booking_id: Booking identifier for error message.
        current_status: Current booking status.
        target_status: Target booking status.
        action: Action being attempted.

    Raises:
        InvalidTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidTransitionError(
            booking_id=booking_id,
            current_status=current_status.value,
            action=action.value,
            reason=(
                f"'{target_status.value}' is not reachable; allowed: "
                f"{sorted(s.value for s in current_status.allowed_transitions())}"
            ),
        )


def decide_transition(
    snapshot: BookingSnapshot,
    actor_role: ActorRole,
    action: ApprovalAction,
    now: datetime,
    grace: timedelta = DEFAULT_EXPIRY_GRACE,
) -> TransitionDecision:
    """Decide whether an actor may apply an action to a booking.

    Args:
        snapshot: Booking state as read from the store.
        actor_role: Role of the acting user (or SYSTEM).
        action: Requested action.
        now: Current time, timezone-aware.
        grace: How long after travel time a pending booking survives.

    Returns:
        The decided transition.

    Raises:
        InconsistentBookingError: If the stored status disagrees with the flags.
        InvalidTransitionError: If no actor could apply the action now.
        AuthorizationError: If this actor's role does not gate the status.
    """
    status = snapshot.status

    if not status_is_consistent(status, snapshot.flags, snapshot.cancelled):
        derived = (
            derive_status(snapshot.flags, snapshot.cancelled).value
            if snapshot.flags.is_ordered()
            else "unreachable flag sequence"
        )
        raise InconsistentBookingError(snapshot.booking_id, status.value, derived)

    if status.is_terminal():
        raise InvalidTransitionError(
            booking_id=snapshot.booking_id,
            current_status=status.value,
            action=action.value,
            reason="booking is already resolved",
        )

    if action == ApprovalAction.FORCE_CANCEL:
        if actor_role != ActorRole.SYSTEM:
            raise AuthorizationError(
                snapshot.booking_id, actor_role.value, status.value, action.value
            )
        if snapshot.travel_time >= now - grace:
            raise InvalidTransitionError(
                booking_id=snapshot.booking_id,
                current_status=status.value,
                action=action.value,
                reason="travel time is inside the expiry grace period",
            )
        validate_booking_transition(
            snapshot.booking_id, status, BookingStatus.CANCELLED, action
        )
        return TransitionDecision(
            booking_id=snapshot.booking_id,
            action=action,
            actor_role=actor_role,
            from_status=status,
            to_status=BookingStatus.CANCELLED,
            flags=snapshot.flags,
        )

    stage = actor_role.gated_stage()
    if stage is None or stage.gating_status != status.normalized():
        raise AuthorizationError(
            snapshot.booking_id, actor_role.value, status.value, action.value
        )

    if action == ApprovalAction.APPROVE:
        flags = snapshot.flags.with_stage(stage, StageStatus.APPROVED)
        to_status = derive_status(flags)
    else:
        flags = snapshot.flags.with_stage(stage, StageStatus.REJECTED)
        to_status = BookingStatus.REJECTED

    validate_booking_transition(snapshot.booking_id, status, to_status, action)
    return TransitionDecision(
        booking_id=snapshot.booking_id,
        action=action,
        actor_role=actor_role,
        from_status=status,
        to_status=to_status,
        flags=flags,
        stage=stage,
    )

"""Domain layer - Entities, value objects, state machine, domain events.

- **Entities**: BookingRequest (aggregate root), NotificationEvent
- **Value Objects**: Actor
- **State Machine**: BookingStatus, StageFlags, decide_transition
- **Domain Events**: emitted on every booking transition
- **Exceptions**: typed errors carrying machine-readable codes

Example usage:
    from bookxe.domain import Actor, ActorRole, ApprovalAction, BookingRequest, decide_transition

    requester = Actor(identity="u-1", role=ActorRole.STAFF)
    booking = BookingRequest.create(requester, "Hai Phong port", travel_time, "Deliver samples")

    manager = Actor(identity="u-2", role=ActorRole.MANAGER_VIET)
    decision = decide_transition(booking.snapshot(), manager.role, ApprovalAction.APPROVE, now)
    booking.apply(decision, manager)
"""

from bookxe.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject, utcnow
from bookxe.domain.entities import (
    TRANSITION_FIELDS,
    BookingRequest,
    NotificationEvent,
    NotificationSeverity,
)
from bookxe.domain.events import (
    BookingApproved,
    BookingExpired,
    BookingRejected,
    BookingStageApproved,
    BookingSubmitted,
)
from bookxe.domain.exceptions import (
    AuthorizationError,
    BookingNotFoundError,
    ConflictError,
    DomainError,
    InconsistentBookingError,
    InvalidTransitionError,
    PersistenceError,
    ValidationError,
)
from bookxe.domain.state_machines import (
    DEFAULT_EXPIRY_GRACE,
    PENDING_STATUSES,
    ActorRole,
    ApprovalAction,
    ApprovalStage,
    BookingSnapshot,
    BookingStatus,
    StageFlags,
    StageStatus,
    TransitionDecision,
    decide_transition,
    derive_status,
    status_is_consistent,
    validate_booking_transition,
)
from bookxe.domain.value_objects import SYSTEM_IDENTITY, Actor

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    "utcnow",
    # Entities
    "BookingRequest",
    "NotificationEvent",
    "NotificationSeverity",
    "TRANSITION_FIELDS",
    # Value objects
    "Actor",
    "SYSTEM_IDENTITY",
    # State machine
    "ActorRole",
    "ApprovalAction",
    "ApprovalStage",
    "BookingSnapshot",
    "BookingStatus",
    "DEFAULT_EXPIRY_GRACE",
    "PENDING_STATUSES",
    "StageFlags",
    "StageStatus",
    "TransitionDecision",
    "decide_transition",
    "derive_status",
    "status_is_consistent",
    "validate_booking_transition",
    # Events
    "BookingApproved",
    "BookingExpired",
    "BookingRejected",
    "BookingStageApproved",
    "BookingSubmitted",
    # Exceptions
    "AuthorizationError",
    "BookingNotFoundError",
    "ConflictError",
    "DomainError",
    "InconsistentBookingError",
    "InvalidTransitionError",
    "PersistenceError",
    "ValidationError",
]

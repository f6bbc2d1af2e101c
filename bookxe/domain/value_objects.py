"""Value objects for the domain layer."""

from dataclasses import dataclass
from typing import Self

from bookxe.domain.base import ValueObject
from bookxe.domain.exceptions import ValidationError
from bookxe.domain.state_machines import ActorRole

SYSTEM_IDENTITY = "system"


@dataclass(frozen=True)
class Actor(ValueObject):
    """The authenticated caller of an orchestrator operation.

    Identity comes from the external auth provider; this service only
    consumes the resolved role claim.

    Attributes:
        identity: Stable user identifier.
        role: Resolved role.
    """

    identity: str
    role: ActorRole

    def __post_init__(self) -> None:
        """Validate actor."""
        if not self.identity:
            raise ValidationError("identity", "must not be empty")

    @classmethod
    def system(cls) -> Self:
        """Synthetic actor used by background jobs."""
        return cls(identity=SYSTEM_IDENTITY, role=ActorRole.SYSTEM)

    @property
    def is_system(self) -> bool:
        """Whether this is the synthetic system actor."""
        return self.role == ActorRole.SYSTEM

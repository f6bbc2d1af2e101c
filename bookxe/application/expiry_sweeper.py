"""Expiry sweeper.

Cancels pending bookings whose travel time is more than the grace period
in the past. Each candidate goes through ``BookingService.expire`` so the
same state machine and conditional write apply; running several sweepers
at once is safe.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from bookxe.application.booking_service import BookingService
from bookxe.domain.base import utcnow
from bookxe.domain.state_machines import PENDING_STATUSES, BookingStatus
from bookxe.infrastructure.config import settings

logger = structlog.get_logger()


# ============================================================================
# Sweep Report
# ============================================================================


@dataclass
class SweepError:
    """A booking the sweep could not cancel."""

    booking_id: str
    error_code: str
    message: str


@dataclass
class SweepReport:
    """Outcome of one sweep.

    Attributes:
        cancelled_count: Bookings cancelled by this sweep.
        skipped_count: Bookings another writer resolved first.
        errors: Bookings that failed for any other reason.
    """

    cancelled_count: int = 0
    skipped_count: int = 0
    errors: list[SweepError] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)

    @property
    def candidate_count(self) -> int:
        """Number of bookings the sweep looked at."""
        return self.cancelled_count + self.skipped_count + len(self.errors)


def _lost_race(error_code: str | None, details: dict) -> bool:
    if error_code == "CONFLICT":
        return True
    # Resolved by someone else between the query and the re-read.
    if error_code == "INVALID_TRANSITION":
        current = details.get("current_status")
        return current is not None and BookingStatus(current).is_terminal()
    return False


# ============================================================================
# Expiry Sweeper
# ============================================================================


class ExpirySweeper:
    """Periodic job that force-cancels stale pending bookings."""

    def __init__(
        self,
        service: BookingService | None = None,
        interval: timedelta | None = None,
    ) -> None:
        """Initialize sweeper.

        Args:
            service: Booking service used to expire bookings.
            interval: Time between sweeps in ``run_forever``.
        """
        self.service = service or BookingService(request_id="expiry-sweeper")
        self.interval = interval or timedelta(minutes=settings.sweep_interval_minutes)
        self._stop = asyncio.Event()

    async def run_sweep(self, now: datetime | None = None) -> SweepReport:
        """Cancel every pending booking past the grace period.

        Args:
            now: Reference time, defaults to current UTC time.

        Returns:
            SweepReport for this run.

        Raises:
            PersistenceError: If the candidate query fails.
        """
        now = now or utcnow()
        report = SweepReport(started_at=now)
        cutoff = now - self.service.grace

        candidates = await self.service.store.query_expired(PENDING_STATUSES, cutoff)

        for booking in candidates:
            try:
                result = await self.service.expire(booking.id, now)
            except Exception as e:
                logger.error(
                    "Failed to expire booking",
                    booking_id=booking.id,
                    error=str(e),
                )
                report.errors.append(
                    SweepError(
                        booking_id=booking.id,
                        error_code=getattr(e, "error_code", "UNEXPECTED"),
                        message=str(e),
                    )
                )
                continue

            if result.success:
                report.cancelled_count += 1
            elif _lost_race(result.error_code, result.details):
                report.skipped_count += 1
            else:
                report.errors.append(
                    SweepError(
                        booking_id=booking.id,
                        error_code=result.error_code or "UNEXPECTED",
                        message=result.error or "",
                    )
                )

        logger.info(
            "Expiry sweep completed",
            cutoff=cutoff.isoformat(),
            candidates=report.candidate_count,
            cancelled=report.cancelled_count,
            skipped=report.skipped_count,
            errors=len(report.errors),
        )
        return report

    async def run_forever(self) -> None:
        """Sweep once now, then every interval until ``stop()`` is called."""
        self._stop.clear()
        logger.info("Expiry sweeper started", interval_seconds=self.interval.total_seconds())

        while not self._stop.is_set():
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error("Expiry sweep failed", error=str(e))

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval.total_seconds())
            except asyncio.TimeoutError:
                pass

        logger.info("Expiry sweeper stopped")

    def stop(self) -> None:
        """Signal ``run_forever`` to exit after the current sweep."""
        self._stop.set()


# Global sweeper instance
_sweeper: ExpirySweeper | None = None


def get_expiry_sweeper() -> ExpirySweeper:
    """Get expiry sweeper singleton."""
    global _sweeper
    if _sweeper is None:
        _sweeper = ExpirySweeper()
    return _sweeper


def reset_expiry_sweeper() -> None:
    """Reset expiry sweeper (for testing)."""
    global _sweeper
    _sweeper = None

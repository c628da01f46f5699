"""Expiry sweeper — persists lazy expiry in batches.

Reads already treat a donation past its spoil deadline as Expired. The
sweeper makes that durable: Available or Claimed donations past their
deadline move to Expired through the same conditional update as every
other transition, and a request holding an expired claim goes back to
Pending. Paid donations past their deadline cannot expire; they are
reported as stranded for an operator (or a cancellation) to resolve.
"""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from surplus.claims.coordinator import ClaimCoordinator, with_retry
from surplus.config import Settings, load_settings
from surplus.donation.donation import DonationStatus
from surplus.errors import ConflictError
from surplus.store.mapping import from_row
from surplus.store.port import EntityStore, RecordKind

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    expired: list[str] = field(default_factory=list)
    released_requests: list[str] = field(default_factory=list)
    stranded: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)


class ExpirySweeper:
    def __init__(self, store: EntityStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or load_settings()
        self.claims = ClaimCoordinator(store)

    def _overdue(self, statuses: tuple[DonationStatus, ...], now: datetime) -> list[str]:
        rows = self.store.find(
            RecordKind.DONATION,
            order_by="spoil_deadline",
            limit=self.settings.sweep_batch_size,
            status=tuple(status.value for status in statuses),
        )
        overdue = []
        for row in rows:
            donation = from_row(RecordKind.DONATION, row)
            if not donation.is_past_deadline(now):
                break
            overdue.append(str(donation.id))
        return overdue

    def _expire_one(self, donation_id: str, now: datetime, report: SweepReport) -> None:
        # Re-read on every attempt; another writer may have moved the donation on
        donation = self.claims.donation(donation_id)
        if DonationStatus(donation.status) not in (DonationStatus.AVAILABLE, DonationStatus.CLAIMED):
            return
        request = self.claims.request(donation.claimant_request_id) if donation.claimant_request_id else None
        self.claims.expire(donation, request, now)
        report.expired.append(donation_id)
        if request is not None:
            report.released_requests.append(str(request.id))

    def sweep(self, now: datetime) -> SweepReport:
        report = SweepReport()

        for donation_id in self._overdue((DonationStatus.AVAILABLE, DonationStatus.CLAIMED), now):
            try:
                with_retry(
                    lambda donation_id=donation_id: self._expire_one(donation_id, now, report),
                    attempts=self.settings.claim_retry_attempts,
                    backoff_seconds=self.settings.retry_backoff_seconds,
                )
            except ConflictError:
                logger.warning("Could not expire donation", donation_id=donation_id)
                report.conflicts.append(donation_id)

        report.stranded = self._overdue((DonationStatus.AWAITING_PICKUP, DonationStatus.IN_TRANSIT), now)
        for donation_id in report.stranded:
            logger.warning("Paid donation past its spoil deadline", donation_id=donation_id)

        logger.info(
            "Expiry sweep finished",
            expired=len(report.expired),
            released_requests=len(report.released_requests),
            stranded=len(report.stranded),
            conflicts=len(report.conflicts),
        )
        return report

"""
donation_services.receipts -- receipt dispatch collaborators.

The portal hands each newly received cash donation to a ReceiptDispatcher
after the status change has committed.  How the receipt reaches the donor
(mail, queue, print run) is the dispatcher's business.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable
from uuid import UUID

from donation_kernel.logging_config import get_logger

logger = get_logger("services.receipts")


@runtime_checkable
class ReceiptDispatcher(Protocol):
    def dispatch(self, donation_id: UUID) -> None:
        """Send the receipt for one donation.  Raise on failure."""
        ...


class NullReceiptDispatcher:
    """Dispatches nothing; logs the donation that would have had a receipt."""

    def dispatch(self, donation_id: UUID) -> None:
        logger.debug("receipt_dispatch_skipped", extra={"donation_id": str(donation_id)})


class RecordingReceiptDispatcher:
    """Test double that records every dispatched donation id."""

    def __init__(self, fail_with: Exception | None = None):
        self._lock = threading.Lock()
        self.dispatched: list[UUID] = []
        self.fail_with = fail_with

    def dispatch(self, donation_id: UUID) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.dispatched.append(donation_id)

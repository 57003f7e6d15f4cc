"""
InventoryService -- stock changes through the append-only adjustment ledger.

Responsibility:
    Applies a quantity change to an InventoryItem and appends the matching
    InventoryAdjustment in the same flush.  Also turns a goods donation into
    one stock increase per line item, and runs staff requisition batches.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; the caller owns the
    transaction.

Invariants enforced:
    - quantity never drops below zero.  The stock row is read under
      ``SELECT ... FOR UPDATE`` and written with a compare-and-swap on the
      quantity that was read, so two concurrent decreases cannot both pass
      the check against a stale value.
    - Exactly one ledger row per quantity change, with
      quantity_after = quantity_before + quantity_change.
    - Rows are created (at quantity 0) only for increases.  A racing
      creator is resolved inside a savepoint.
    - Ledger rows carry a sequence number from SequenceService.

Failure modes:
    - ValidationError: zero change, blank reason, decrease of an unknown
      item, or an explicit adjustment type that contradicts the sign.
    - InvalidAdjustmentError: the change would drive quantity negative.
      Carries the current and requested quantities.
    - OptimisticLockError: the compare-and-swap lost (another writer
      changed the row after it was read).
    - InventoryItemNotFoundError: adjust_by_id with an unknown id.

Audit relevance:
    Every change records who made it, why, and (for donated goods) the
    originating donation, so current stock can be traced and replayed.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from donation_kernel.domain.clock import Clock, SystemClock
from donation_kernel.domain.dtos import (
    AdjustmentEntry,
    AdjustmentResult,
    NewItemEntry,
    RequisitionError,
    RequisitionResult,
)
from donation_kernel.domain.stock import DEFAULT_THRESHOLD, categorize_item
from donation_kernel.domain.values import AdjustmentType, InventoryKey
from donation_kernel.exceptions import (
    DonationKernelError,
    DonationNotFoundError,
    FieldError,
    InvalidAdjustmentError,
    InventoryItemNotFoundError,
    OptimisticLockError,
    ValidationError,
)
from donation_kernel.logging_config import get_logger
from donation_kernel.models.donation import Donation
from donation_kernel.models.inventory import InventoryAdjustment, InventoryItem
from donation_kernel.selectors.inventory_selector import adjustment_to_record
from donation_kernel.services.base import BaseService
from donation_kernel.services.sequence_service import SequenceService

logger = get_logger("services.inventory")

REASON_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 1000
DEFAULT_LOCATION = "main"


class InventoryService(BaseService[InventoryItem]):
    """
    Stock adjustments with an append-only ledger.

    Contract:
        Every public method either applies the item write and its ledger
        row together or raises with neither visible in the session.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_location: str = DEFAULT_LOCATION,
        default_threshold: int = DEFAULT_THRESHOLD,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._default_location = default_location
        self._default_threshold = default_threshold
        self._sequences = sequence_service or SequenceService(session)

    # ------------------------------------------------------------------
    # Single adjustments
    # ------------------------------------------------------------------

    def adjust(
        self,
        key: InventoryKey,
        quantity_change: int,
        reason: str,
        actor_id: UUID,
        notes: str | None = None,
        source_donation_id: UUID | None = None,
        adjustment_type: AdjustmentType | None = None,
        threshold: int | None = None,
    ) -> AdjustmentResult:
        """
        Change an item's quantity by ``quantity_change`` and record it.

        Args:
            key: Item name x category x location.
            quantity_change: Signed, non-zero delta.
            reason: Required free text.
            actor_id: Who made the change.
            notes: Optional free text.
            source_donation_id: Donation the goods came from, if any.
            adjustment_type: Overrides the type derived from the sign.
            threshold: Low-stock threshold for a row created by this call.
        """
        reason, notes = self._validate(quantity_change, reason, notes, adjustment_type)

        item = self._lock_item(key)
        if item is None:
            if quantity_change < 0:
                raise ValidationError.single(
                    "item", f"No inventory item {key} to decrease"
                )
            item = self._create_item(key, actor_id, threshold)

        return self._apply(
            item,
            quantity_change,
            reason,
            actor_id,
            notes=notes,
            source_donation_id=source_donation_id,
            adjustment_type=adjustment_type,
        )

    def adjust_by_id(
        self,
        item_id: UUID,
        quantity_change: int,
        reason: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AdjustmentResult:
        """Adjust an existing item addressed by id (the admin screen path)."""
        reason, notes = self._validate(quantity_change, reason, notes, None)
        item = self.session.execute(
            select(InventoryItem)
            .where(InventoryItem.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))
        return self._apply(item, quantity_change, reason, actor_id, notes=notes)

    # ------------------------------------------------------------------
    # Goods donations
    # ------------------------------------------------------------------

    def stock_goods_donation(
        self, donation_id: UUID, actor_id: UUID
    ) -> list[AdjustmentResult]:
        """
        Add every line item of a goods donation to stock.

        One ``increase`` per line, filed under the keyword category at the
        default location, attributed to the donation.
        """
        donation = self.session.get(Donation, donation_id)
        if donation is None:
            raise DonationNotFoundError(str(donation_id))

        results = []
        for line in donation.items:
            key = InventoryKey(
                item_name=line.item_name,
                category=categorize_item(line.item_name),
                location=self._default_location,
            )
            results.append(
                self.adjust(
                    key,
                    line.quantity,
                    reason=f"Goods donation {donation.id}",
                    actor_id=actor_id,
                    notes=line.description,
                    source_donation_id=donation.id,
                    adjustment_type=AdjustmentType.INCREASE,
                )
            )

        logger.info(
            "goods_donation_stocked",
            extra={
                "donation_id": str(donation.id),
                "line_count": len(results),
                "total_quantity": sum(r.adjustment.quantity_change for r in results),
            },
        )
        return results

    # ------------------------------------------------------------------
    # Requisitions
    # ------------------------------------------------------------------

    def process_requisition(
        self,
        new_items: Sequence[NewItemEntry],
        adjustments: Sequence[AdjustmentEntry],
        actor_id: UUID,
    ) -> RequisitionResult:
        """
        Apply a staff batch of new stock lines and adjustments.

        Each entry runs in its own savepoint.  A failing entry is rolled back
        and reported; the others still apply.
        """
        errors: list[RequisitionError] = []
        created = 0
        adjusted = 0

        for index, entry in enumerate(new_items):
            try:
                with self.session.begin_nested():
                    key = InventoryKey(entry.item_name, entry.category, entry.location)
                    if self._find_item(key) is not None:
                        raise ValidationError.single(
                            "item_name", f"Item {key} already exists"
                        )
                    self.adjust(
                        key,
                        entry.quantity,
                        entry.reason,
                        actor_id,
                        notes=entry.notes,
                        adjustment_type=AdjustmentType.NEW_ITEM,
                        threshold=entry.threshold,
                    )
                created += 1
            except ValueError as exc:
                errors.append(
                    RequisitionError("new_items", index, ValidationError.code, str(exc))
                )
            except DonationKernelError as exc:
                errors.append(RequisitionError("new_items", index, exc.code, str(exc)))

        for index, entry in enumerate(adjustments):
            try:
                with self.session.begin_nested():
                    self.adjust_by_id(
                        entry.inventory_item_id,
                        entry.quantity_change,
                        entry.reason,
                        actor_id,
                        notes=entry.notes,
                    )
                adjusted += 1
            except DonationKernelError as exc:
                errors.append(RequisitionError("adjustments", index, exc.code, str(exc)))

        logger.info(
            "requisition_processed",
            extra={
                "actor_id": str(actor_id),
                "new_items_created": created,
                "adjustments_made": adjusted,
                "error_count": len(errors),
            },
        )
        return RequisitionResult(
            new_items_created=created,
            adjustments_made=adjusted,
            errors=tuple(errors),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate(
        self,
        quantity_change: int,
        reason: str,
        notes: str | None,
        adjustment_type: AdjustmentType | None,
    ) -> tuple[str, str | None]:
        errors: list[FieldError] = []
        if isinstance(quantity_change, bool) or not isinstance(quantity_change, int):
            errors.append(FieldError("quantity_change", "Must be an integer."))
        elif quantity_change == 0:
            errors.append(FieldError("quantity_change", "Must not be zero."))
        elif adjustment_type is not None:
            expects_increase = AdjustmentType(adjustment_type) in (
                AdjustmentType.INCREASE,
                AdjustmentType.NEW_ITEM,
            )
            if expects_increase != (quantity_change > 0):
                errors.append(
                    FieldError(
                        "adjustment_type",
                        f"{AdjustmentType(adjustment_type).value} does not match "
                        f"a change of {quantity_change}.",
                    )
                )

        reason = (reason or "").strip()
        if not reason:
            errors.append(FieldError("reason", "The reason field is required."))
        elif len(reason) > REASON_MAX_LENGTH:
            errors.append(
                FieldError(
                    "reason",
                    f"The reason may not be greater than {REASON_MAX_LENGTH} characters.",
                )
            )

        if notes is not None:
            notes = notes.strip() or None
        if notes is not None and len(notes) > NOTES_MAX_LENGTH:
            errors.append(
                FieldError(
                    "notes",
                    f"The notes may not be greater than {NOTES_MAX_LENGTH} characters.",
                )
            )

        if errors:
            raise ValidationError(errors)
        return reason, notes

    def _find_item(self, key: InventoryKey) -> InventoryItem | None:
        return self.session.execute(
            select(InventoryItem).where(
                InventoryItem.item_name == key.item_name,
                InventoryItem.category == key.category,
                InventoryItem.location == key.location,
            )
        ).scalar_one_or_none()

    def _lock_item(self, key: InventoryKey) -> InventoryItem | None:
        return self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.item_name == key.item_name,
                InventoryItem.category == key.category,
                InventoryItem.location == key.location,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_item(
        self, key: InventoryKey, actor_id: UUID, threshold: int | None
    ) -> InventoryItem:
        now = self._clock.now()
        savepoint = self.session.begin_nested()
        try:
            item = InventoryItem(
                item_name=key.item_name,
                category=key.category,
                location=key.location,
                quantity=0,
                threshold=self._default_threshold if threshold is None else threshold,
                created_at=now,
                updated_at=now,
                created_by_id=actor_id,
            )
            self.session.add(item)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "inventory_item_created",
                extra={"item_id": str(item.id), "item_key": str(key)},
            )
            return item
        except IntegrityError:
            # Another transaction created the same key first
            logger.debug("inventory_item_race_retry", extra={"item_key": str(key)})
            savepoint.rollback()
            item = self._lock_item(key)
            if item is None:
                raise
            return item

    def _apply(
        self,
        item: InventoryItem,
        quantity_change: int,
        reason: str,
        actor_id: UUID,
        notes: str | None = None,
        source_donation_id: UUID | None = None,
        adjustment_type: AdjustmentType | None = None,
    ) -> AdjustmentResult:
        before = item.quantity
        after = before + quantity_change

        if after < 0:
            logger.warning(
                "inventory_adjustment_rejected",
                extra={
                    "item_id": str(item.id),
                    "item_key": str(item.key),
                    "current_quantity": before,
                    "requested_change": quantity_change,
                },
            )
            raise InvalidAdjustmentError(
                item_name=item.item_name,
                category=item.category,
                location=item.location,
                current_quantity=before,
                requested_change=quantity_change,
            )

        if adjustment_type is None:
            adjustment_type = (
                AdjustmentType.INCREASE if quantity_change > 0 else AdjustmentType.DECREASE
            )

        now = self._clock.now()
        swapped = self.session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item.id, InventoryItem.quantity == before)
            .values(quantity=after, updated_at=now, updated_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        )
        if swapped.rowcount != 1:
            raise OptimisticLockError("InventoryItem", str(item.id))

        row = InventoryAdjustment(
            inventory_item_id=item.id,
            item_name=item.item_name,
            category=item.category,
            location=item.location,
            adjustment_type=AdjustmentType(adjustment_type).value,
            quantity_change=quantity_change,
            quantity_before=before,
            quantity_after=after,
            reason=reason,
            notes=notes,
            actor_id=actor_id,
            source_donation_id=source_donation_id,
            sequence=self._sequences.next_value(SequenceService.INVENTORY_LEDGER),
            created_at=now,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "inventory_adjusted",
            extra={
                "item_id": str(item.id),
                "item_key": str(item.key),
                "adjustment_type": row.adjustment_type,
                "quantity_before": before,
                "quantity_after": after,
                "sequence": row.sequence,
                "source_donation_id": (
                    str(source_donation_id) if source_donation_id else None
                ),
            },
        )
        return AdjustmentResult(
            inventory_item_id=item.id,
            new_quantity=after,
            adjustment=adjustment_to_record(row),
        )

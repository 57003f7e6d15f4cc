"""
Module: donation_kernel.selectors.inventory_selector
Responsibility: Read-only stock queries, the adjustment history and the
    ledger replay check.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Stock status is computed on read through domain.stock.stock_status.
    - replay_quantity sums quantity_change over an item's ledger rows in
      sequence order.  For a consistent store it equals the stored
      quantity; verify_ledger reports every item where it does not.

Audit relevance:
    verify_ledger is the operator check that the aggregate rows still
    agree with the append-only ledger (scripts/ledger_cli.py verify-ledger).
"""

from uuid import UUID

from sqlalchemy import case, func, select

from donation_kernel.domain.dtos import (
    AdjustmentRecord,
    InventoryItemView,
    InventoryStatistics,
    LedgerDiscrepancy,
)
from donation_kernel.domain.stock import CRITICAL_STOCK_LEVEL, stock_status
from donation_kernel.domain.values import AdjustmentType, InventoryKey, StockStatus
from donation_kernel.exceptions import InventoryItemNotFoundError
from donation_kernel.models.inventory import InventoryAdjustment, InventoryItem
from donation_kernel.selectors.base import BaseSelector


def adjustment_to_record(row: InventoryAdjustment) -> AdjustmentRecord:
    return AdjustmentRecord(
        id=row.id,
        sequence=row.sequence,
        inventory_item_id=row.inventory_item_id,
        item_name=row.item_name,
        category=row.category,
        location=row.location,
        adjustment_type=AdjustmentType(row.adjustment_type),
        quantity_change=row.quantity_change,
        quantity_before=row.quantity_before,
        quantity_after=row.quantity_after,
        reason=row.reason,
        notes=row.notes,
        actor_id=row.actor_id,
        source_donation_id=row.source_donation_id,
        created_at=row.created_at,
    )


def item_to_view(item: InventoryItem) -> InventoryItemView:
    return InventoryItemView(
        id=item.id,
        item_name=item.item_name,
        category=item.category,
        location=item.location,
        quantity=item.quantity,
        threshold=item.threshold,
        status=stock_status(item.quantity, item.threshold),
    )


class InventorySelector(BaseSelector[InventoryItem]):
    def get_item(self, item_id: UUID) -> InventoryItemView:
        item = self.session.get(InventoryItem, item_id)
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))
        return item_to_view(item)

    def find(self, key: InventoryKey) -> InventoryItemView | None:
        item = self.session.execute(
            select(InventoryItem).where(
                InventoryItem.item_name == key.item_name,
                InventoryItem.category == key.category,
                InventoryItem.location == key.location,
            )
        ).scalar_one_or_none()
        return item_to_view(item) if item is not None else None

    def list_items(
        self,
        category: str | None = None,
        location: str | None = None,
        status: StockStatus | None = None,
    ) -> list[InventoryItemView]:
        """Stock rows ordered by name, optionally filtered."""
        query = select(InventoryItem).order_by(
            InventoryItem.item_name, InventoryItem.category, InventoryItem.location
        )
        if category is not None:
            query = query.where(InventoryItem.category == category)
        if location is not None:
            query = query.where(InventoryItem.location == location)

        views = [item_to_view(item) for item in self.session.execute(query).scalars()]
        if status is not None:
            views = [view for view in views if view.status is StockStatus(status)]
        return views

    def inventory_statistics(self) -> InventoryStatistics:
        total_units, item_types, critical = self.session.execute(
            select(
                func.sum(InventoryItem.quantity),
                func.count(InventoryItem.id),
                func.sum(
                    case((InventoryItem.quantity <= CRITICAL_STOCK_LEVEL, 1), else_=0)
                ),
            )
        ).one()
        # Low depends on each row's own threshold
        low = sum(1 for view in self.list_items() if view.status is StockStatus.LOW)
        return InventoryStatistics(
            total_units=int(total_units or 0),
            item_types=item_types or 0,
            critical_items=int(critical or 0),
            low_stock_items=low,
        )

    def adjustment_history(
        self,
        item_name: str | None = None,
        adjustment_type: AdjustmentType | None = None,
        inventory_item_id: UUID | None = None,
        limit: int | None = None,
    ) -> list[AdjustmentRecord]:
        """Ledger rows in sequence order."""
        query = select(InventoryAdjustment).order_by(InventoryAdjustment.sequence)
        if item_name is not None:
            query = query.where(InventoryAdjustment.item_name == item_name)
        if adjustment_type is not None:
            query = query.where(
                InventoryAdjustment.adjustment_type == AdjustmentType(adjustment_type).value
            )
        if inventory_item_id is not None:
            query = query.where(InventoryAdjustment.inventory_item_id == inventory_item_id)
        if limit is not None:
            query = query.limit(limit)
        return [adjustment_to_record(row) for row in self.session.execute(query).scalars()]

    def replay_quantity(self, item_id: UUID) -> int:
        """Rebuild an item's quantity from its ledger rows."""
        changes = self.session.execute(
            select(InventoryAdjustment.quantity_change)
            .where(InventoryAdjustment.inventory_item_id == item_id)
            .order_by(InventoryAdjustment.sequence)
        ).scalars()
        quantity = 0
        for change in changes:
            quantity += change
        return quantity

    def verify_ledger(self) -> list[LedgerDiscrepancy]:
        """Items whose stored quantity differs from their ledger replay."""
        replayed = dict(
            self.session.execute(
                select(
                    InventoryAdjustment.inventory_item_id,
                    func.sum(InventoryAdjustment.quantity_change),
                ).group_by(InventoryAdjustment.inventory_item_id)
            ).all()
        )

        discrepancies = []
        for item in self.session.execute(
            select(InventoryItem).order_by(InventoryItem.item_name)
        ).scalars():
            replay = int(replayed.get(item.id) or 0)
            if replay != item.quantity:
                discrepancies.append(
                    LedgerDiscrepancy(
                        inventory_item_id=item.id,
                        key=item.key,
                        stored_quantity=item.quantity,
                        replayed_quantity=replay,
                    )
                )
        return discrepancies

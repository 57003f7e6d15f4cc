"""
Concurrent writers against one stock row and one donation.

Two staff members decreasing the same item at once must never both pass
the non-negative check against the same stale quantity, and a gateway
that delivers the same callback several times in parallel must apply the
status change (and queue the receipt) exactly once.

Each worker goes through DonationPortal, so every attempt is its own
transaction on its own connection.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import func, select

from donation_kernel.domain.values import DonationStatus, InventoryKey
from donation_kernel.exceptions import InvalidAdjustmentError, OptimisticLockError
from donation_kernel.models.donation import Donation
from donation_kernel.models.inventory import InventoryAdjustment, InventoryItem

pytestmark = pytest.mark.slow_locks

RICE = InventoryKey("Rice", "nutrition", "main")


class TestConcurrentDecreases:
    @pytest.mark.parametrize("workers", [2, 5])
    def test_only_one_decrease_fits(self, portal, read_session, test_actor_id, workers):
        portal.adjust_inventory(RICE, 10, "Opening stock", test_actor_id)
        barrier = Barrier(workers)

        def decrease(_):
            barrier.wait()
            try:
                return portal.adjust_inventory(RICE, -7, "Kitchen", test_actor_id)
            except (InvalidAdjustmentError, OptimisticLockError) as exc:
                return exc

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(decrease, range(workers)))

        successes = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(successes) == 1
        assert successes[0].new_quantity == 3

        with read_session() as s:
            item = s.execute(select(InventoryItem)).scalar_one()
            assert item.quantity == 3
            assert s.execute(
                select(func.count(InventoryAdjustment.id))
            ).scalar_one() == 2

    def test_interleaved_changes_sum_exactly(self, portal, read_session, test_actor_id):
        portal.adjust_inventory(RICE, 100, "Opening stock", test_actor_id)
        changes = [-3, 5, -7, 2, -1, 4, -6, 1] * 2
        barrier = Barrier(len(changes))

        def apply(change):
            barrier.wait()
            return portal.adjust_inventory(RICE, change, "Mixed", test_actor_id)

        with ThreadPoolExecutor(max_workers=len(changes)) as pool:
            list(pool.map(apply, changes))

        with read_session() as s:
            item = s.execute(select(InventoryItem)).scalar_one()
            assert item.quantity == 100 + sum(changes)
            rows = s.execute(
                select(InventoryAdjustment).order_by(InventoryAdjustment.sequence)
            ).scalars().all()
            # Each row starts where the previous one ended
            assert rows[0].quantity_before == 0
            for prev, row in zip(rows, rows[1:]):
                assert row.quantity_before == prev.quantity_after


class TestConcurrentCallbacks:
    def test_parallel_duplicates_apply_once(
        self, portal, read_session, current_user, receipt_dispatcher
    ):
        created = portal.create_donation(
            "donor", {"donation_type": "cash", "amount": "2500"}, current_user
        )
        workers = 6
        barrier = Barrier(workers)

        def deliver(_):
            barrier.wait()
            return portal.handle_payment_callback(
                {"tx_ref": created.checkout_ref, "status": "success"}
            )

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(deliver, range(workers)))

        assert sum(1 for r in results if r.applied) == 1
        assert all(r.status is DonationStatus.RECEIVED for r in results)
        assert receipt_dispatcher.dispatched == [created.donation_id]

        with read_session() as s:
            donation = s.get(Donation, created.donation_id)
            assert donation.status == DonationStatus.RECEIVED.value
            assert donation.receipt_dispatched_at is not None

    def test_success_and_failure_race_has_one_winner(
        self, portal, current_user, portal_campaign
    ):
        campaign = portal_campaign(target_amount=Decimal("500"))
        created = portal.create_donation(
            "campaign",
            {"donation_type": "cash", "amount": "500", "campaign_id": str(campaign.id)},
            current_user,
        )
        barrier = Barrier(2)

        def deliver(status):
            barrier.wait()
            return portal.handle_payment_callback(
                {"tx_ref": created.checkout_ref, "status": status}
            )

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(deliver, ["success", "failed"]))

        assert sum(1 for r in results if r.applied) == 1
        final = {r.status for r in results}
        assert len(final) == 1

        summary = portal.get_campaign_funding_summary(campaign.id)
        if final == {DonationStatus.RECEIVED}:
            assert summary.is_goal_reached is True
        else:
            assert summary.total_raised == Decimal("0.00")

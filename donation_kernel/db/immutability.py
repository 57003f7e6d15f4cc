"""
ORM-Level Immutability Enforcement for the donation ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

The donation store and the inventory ledger are audit records.  A donor's
gift, the goods they handed over, and every stock movement must remain
exactly as first written.  Corrections happen by appending (a new
adjustment), never by editing history.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners below intercept those events for the protected entities and
raise ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``UPDATE`` statements issued through ``session.execute(update(...))`` do
not fire mapper events.  The reconciliation service uses exactly that for
the compare-and-swap status transition, which is the one sanctioned write
path for a donation after creation.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|----------------------------------------------------
Donation             | Never deleted.  Only status, status_changed_at and
                     | receipt_dispatched_at may change; status only from
                     | pending.
DonatedItem          | Immutable from creation, never deleted.
InventoryAdjustment  | Immutable from creation, never deleted.
DonationCampaign     | message and target_amount fixed after creation.

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from donation_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

DonationPortal() and scripts/ledger_cli.py do this on construction and
startup respectively.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from donation_kernel.exceptions import ImmutabilityViolationError
from donation_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA = frozenset({"updated_at", "updated_by_id"})
_DONATION_MUTABLE = frozenset(
    {"status", "status_changed_at", "receipt_dispatched_at"}
) | _AUDIT_METADATA
_CAMPAIGN_FROZEN = frozenset({"message", "target_amount"})


def _changed_columns(target) -> set[str]:
    state = inspect(target)
    return {
        prop.key
        for prop in state.mapper.column_attrs
        if state.attrs[prop.key].history.has_changes()
    }


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_donation_immutability(mapper, connection, target):
    """
    Allow only the status lifecycle columns to change on a donation.

    A status change is allowed only when the persisted status was pending.
    """
    changed = _changed_columns(target)
    forbidden = sorted(changed - _DONATION_MUTABLE)
    if forbidden:
        _block(
            "Donation",
            target,
            "UPDATE",
            f"Donation fields are immutable after creation: {', '.join(forbidden)}",
        )

    if "status" in changed:
        history = inspect(target).attrs.status.history
        previous = history.deleted[0] if history.deleted else None
        if previous is not None and previous != "pending":
            _block(
                "Donation",
                target,
                "UPDATE",
                f"Donation status {previous} is terminal",
            )


def _check_donation_delete(mapper, connection, target):
    _block("Donation", target, "DELETE", "Donations are never deleted")


def _check_donated_item_immutability(mapper, connection, target):
    _block("DonatedItem", target, "UPDATE", "Donated items are immutable")


def _check_donated_item_delete(mapper, connection, target):
    _block("DonatedItem", target, "DELETE", "Donated items are never deleted")


def _check_adjustment_immutability(mapper, connection, target):
    _block(
        "InventoryAdjustment",
        target,
        "UPDATE",
        "Inventory ledger entries are immutable",
    )


def _check_adjustment_delete(mapper, connection, target):
    _block(
        "InventoryAdjustment",
        target,
        "DELETE",
        "Inventory ledger entries are never deleted",
    )


def _check_campaign_immutability(mapper, connection, target):
    frozen = sorted(_changed_columns(target) & _CAMPAIGN_FROZEN)
    if frozen:
        _block(
            "DonationCampaign",
            target,
            "UPDATE",
            f"Campaign fields are fixed after creation: {', '.join(frozen)}",
        )


def _listeners():
    from donation_kernel.models.campaign import DonationCampaign
    from donation_kernel.models.donation import DonatedItem, Donation
    from donation_kernel.models.inventory import InventoryAdjustment

    return [
        (Donation, "before_update", _check_donation_immutability),
        (Donation, "before_delete", _check_donation_delete),
        (DonatedItem, "before_update", _check_donated_item_immutability),
        (DonatedItem, "before_delete", _check_donated_item_delete),
        (InventoryAdjustment, "before_update", _check_adjustment_immutability),
        (InventoryAdjustment, "before_delete", _check_adjustment_delete),
        (DonationCampaign, "before_update", _check_campaign_immutability),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)


def immutability_listeners_registered() -> bool:
    """True when every guard above is attached to its model."""
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listeners()
    )

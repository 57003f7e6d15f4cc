"""
Typed Exception Hierarchy for the Donation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (controllers, webhook endpoints, operator scripts) must react to
failures precisely: a malformed callback is a 400, an unknown reference is a
generic 404, an over-drawn stock adjustment needs the current and requested
quantities shown to the operator.  Parsing message strings for that is
fragile, so every failure is:

  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA as attributes (not just a message)

Example:
    try:
        portal.adjust_inventory(key, -3, "Distributed", actor_id)
    except InvalidAdjustmentError as e:
        flash(f"Only {e.current_quantity} left, requested {e.requested_change}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DonationKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- DonationNotFoundError
    |   +-- CampaignNotFoundError
    |   +-- InventoryItemNotFoundError
    |
    +-- InvalidAdjustmentError
    |
    +-- PersistenceError
    |
    +-- GatewayUnavailableError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- InvalidStatusTransitionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                          | When Raised
------------------------------|---------------------------------------------
VALIDATION_FAILED             | Missing or malformed input (field detail)
NOT_FOUND                     | Generic lookup miss
DONATION_NOT_FOUND            | checkout_ref / donation id does not resolve
CAMPAIGN_NOT_FOUND            | Campaign id does not resolve
INVENTORY_ITEM_NOT_FOUND      | Inventory item id does not resolve
INVALID_ADJUSTMENT            | Adjustment would drive quantity below zero
PERSISTENCE_ERROR             | Storage failure mid-operation (rolled back)
GATEWAY_UNAVAILABLE           | Payment gateway call failed or timed out
OPTIMISTIC_LOCK_CONFLICT      | Concurrent modification detected
IMMUTABILITY_VIOLATION        | Update/delete of an append-only record
INVALID_STATUS_TRANSITION     | Donation status change outside the lifecycle

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENT CALLBACKS: a repeat delivery of a terminal status is NOT an
   error.  ``handle_callback`` returns a result with ``applied=False``.

2. NOT FOUND IS TERMINAL: lookup misses on callback/verify are reported,
   never retried.  Use ``public_message`` for the response body.

3. GATEWAY FAILURES KEEP THE DONATION: ``GatewayUnavailableError.donation_id``
   names the committed pending donation so the caller can retry checkout
   against the same reference instead of creating a duplicate.

===============================================================================
"""

from dataclasses import dataclass


class DonationKernelError(Exception):
    """
    Base exception for all donation kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "DONATION_KERNEL_ERROR"


# Validation


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str


class ValidationError(DonationKernelError):
    """Input is missing or malformed. Caller-correctable."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field_errors: list[FieldError] | tuple[FieldError, ...]):
        self.field_errors = tuple(field_errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.field_errors)
        super().__init__(f"Validation failed: {summary}")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field=field, message=message)])

    def as_dict(self) -> dict[str, list[str]]:
        """Group messages by field, preserving order."""
        grouped: dict[str, list[str]] = {}
        for err in self.field_errors:
            grouped.setdefault(err.field, []).append(err.message)
        return grouped


# Lookup misses


class NotFoundError(DonationKernelError):
    """Base exception for lookups that do not resolve."""

    code: str = "NOT_FOUND"
    public_message: str = "Not found"


class DonationNotFoundError(NotFoundError):
    """No donation matches the given reference or id."""

    code: str = "DONATION_NOT_FOUND"
    public_message: str = "Donation not found"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Donation not found: {reference}")


class CampaignNotFoundError(NotFoundError):
    """No campaign matches the given id."""

    code: str = "CAMPAIGN_NOT_FOUND"
    public_message: str = "Campaign not found"

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign not found: {campaign_id}")


class InventoryItemNotFoundError(NotFoundError):
    """No inventory item matches the given id."""

    code: str = "INVENTORY_ITEM_NOT_FOUND"
    public_message: str = "Inventory item not found"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item not found: {item_id}")


# Inventory


class InvalidAdjustmentError(DonationKernelError):
    """The adjustment would drive an item's quantity below zero."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(
        self,
        item_name: str,
        category: str,
        location: str,
        current_quantity: int,
        requested_change: int,
    ):
        self.item_name = item_name
        self.category = category
        self.location = location
        self.current_quantity = current_quantity
        self.requested_change = requested_change
        super().__init__(
            f"Cannot reduce {item_name} by {abs(requested_change)}. "
            f"Current quantity: {current_quantity}"
        )


# Storage


class PersistenceError(DonationKernelError):
    """A storage write failed after the operation began. Nothing was applied."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


# Payment gateway


class GatewayUnavailableError(DonationKernelError):
    """The external payment gateway call failed or timed out."""

    code: str = "GATEWAY_UNAVAILABLE"

    def __init__(self, donation_id: str, reason: str):
        self.donation_id = donation_id
        self.reason = reason
        super().__init__(
            f"Payment gateway unavailable for donation {donation_id}: {reason}"
        )


# Concurrency


class ConcurrencyError(DonationKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability


class ImmutabilityError(DonationKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    DonatedItem and InventoryAdjustment rows are immutable from creation.
    Donation rows are never deleted and only their status columns may change.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Donation lifecycle


class InvalidStatusTransitionError(DonationKernelError):
    """Requested donation status change is outside pending -> received|failed."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, donation_id: str, from_status: str, to_status: str):
        self.donation_id = donation_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition donation {donation_id} "
            f"from {from_status} to {to_status}"
        )

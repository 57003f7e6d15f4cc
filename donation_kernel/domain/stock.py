"""
Stock -- pure inventory derivations.

Responsibility:
    The single implementation of stock status and of the keyword rules that
    file a donated item under an inventory category.  Every read path
    (item views, statistics, reports) calls these functions instead of
    repeating the thresholds.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Critical if quantity <= 5; Low if 5 < quantity <= threshold
      (default 20 when unset); otherwise Good.  Computed on read, never
      stored.
"""

from donation_kernel.domain.values import StockStatus

CRITICAL_STOCK_LEVEL = 5
DEFAULT_THRESHOLD = 20
DEFAULT_CATEGORY = "general"

# Checked in order; the first category with a matching keyword wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("education", ("school", "book", "pen", "pencil", "uniform")),
    ("nutrition", ("food", "meal", "nutrition")),
    ("clothing", ("cloth", "shirt", "dress", "shoe")),
    ("medical", ("medical", "medicine", "health")),
    ("recreation", ("toy", "game", "play")),
)


def stock_status(quantity: int, threshold: int | None = None) -> StockStatus:
    """Classify a stock level."""
    limit = DEFAULT_THRESHOLD if threshold is None else threshold
    if quantity <= CRITICAL_STOCK_LEVEL:
        return StockStatus.CRITICAL
    if quantity <= limit:
        return StockStatus.LOW
    return StockStatus.GOOD


def categorize_item(item_name: str) -> str:
    """File a donated item under an inventory category by keyword."""
    lowered = item_name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY

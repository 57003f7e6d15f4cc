"""
Funding -- the campaign funding summary formula.

Responsibility:
    Turns a campaign's target and the sum of its received cash donations
    into the figures every campaign view shows.  This is the only place the
    formula lives; CampaignSelector.funding_summary supplies the inputs.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - progress_percentage is 0 without a target, otherwise
      min(100, total_raised / target_amount * 100) rounded to 2 places.
    - remaining_amount is max(0, target_amount - total_raised), 0 without a
      target.
    - is_goal_reached iff a target is set and total_raised >= target_amount.
"""

from dataclasses import dataclass
from decimal import Decimal

from donation_kernel.db.types import round_money

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


@dataclass(frozen=True)
class FundingSummary:
    """Derived, never persisted, funding figures for one campaign."""

    total_raised: Decimal
    target_amount: Decimal | None
    progress_percentage: Decimal
    remaining_amount: Decimal
    is_goal_reached: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "total_raised": self.total_raised,
            "target_amount": self.target_amount,
            "progress_percentage": self.progress_percentage,
            "remaining_amount": self.remaining_amount,
            "is_goal_reached": self.is_goal_reached,
        }


def compute_funding_summary(
    target_amount: Decimal | None,
    total_raised: Decimal,
) -> FundingSummary:
    """
    Compute a campaign's funding summary.

    Args:
        target_amount: Campaign goal, or None when the campaign has none.
        total_raised: Sum of received cash donations to the campaign.
    """
    raised = round_money(Decimal(total_raised))

    if target_amount is None or target_amount <= 0:
        return FundingSummary(
            total_raised=raised,
            target_amount=None,
            progress_percentage=round_money(_ZERO),
            remaining_amount=round_money(_ZERO),
            is_goal_reached=False,
        )

    target = round_money(Decimal(target_amount))
    progress = min(_HUNDRED, raised / target * _HUNDRED)
    return FundingSummary(
        total_raised=raised,
        target_amount=target,
        progress_percentage=round_money(progress),
        remaining_amount=round_money(max(_ZERO, target - raised)),
        is_goal_reached=raised >= target,
    )

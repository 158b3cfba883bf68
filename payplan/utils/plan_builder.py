"""
Installment plan builder.

Turns a price and a split template into ordered obligations. Each amount is
price × percentage / 100 rounded down to whole cents. The rounding residue
(less than one cent per split beyond the first) lands on the final obligation,
so the amounts add up to the price exactly and none is ever negative.
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Sequence

from payplan.core.config import settings
from payplan.core.exceptions import InvalidSplit
from payplan.models.account import SplitRule
from payplan.models.ledger import Obligation, ObligationStatus


def default_split_rules() -> List[SplitRule]:
    """Template used when an account has no custom split configured."""
    return [
        SplitRule(percentage=percentage, due_days=due_days)
        for percentage, due_days in zip(
            settings.DEFAULT_SPLIT_PERCENTAGES, settings.DEFAULT_SPLIT_DUE_DAYS
        )
    ]


def validate_percentages(percentages: Sequence[int], min_splits: int = 1) -> None:
    """
    Validate split percentages.

    Rules:
    - at least ``min_splits`` entries
    - every percentage is a whole number in [1, 100]
    - percentages sum to exactly 100
    """
    if len(percentages) < min_splits:
        raise InvalidSplit(f"At least {min_splits} splits are required")

    for percentage in percentages:
        if isinstance(percentage, bool) or not isinstance(percentage, int):
            raise InvalidSplit(f"Split percentage must be a whole number: {percentage!r}")
        if percentage < 1 or percentage > 100:
            raise InvalidSplit(f"Split percentage out of range [1, 100]: {percentage}")

    total = sum(percentages)
    if total != 100:
        raise InvalidSplit(f"Splits must total 100%, got {total}%")


def _share_cents(price_cents: int, percentage: int) -> int:
    return price_cents * percentage // 100


def build_obligations(
    price_cents: int,
    rules: Iterable[SplitRule] | None = None,
    now: datetime | None = None
) -> List[Obligation]:
    """Build pending obligations for ``price_cents`` from a split template."""
    rules = list(rules or []) or default_split_rules()
    validate_percentages([rule.percentage for rule in rules])

    if price_cents <= 0:
        raise InvalidSplit("Installment price must be positive")

    now = now or datetime.now(timezone.utc)
    obligations = []
    allocated = 0

    for index, rule in enumerate(rules):
        if index == len(rules) - 1:
            amount = price_cents - allocated
        else:
            amount = _share_cents(price_cents, rule.percentage)
        allocated += amount

        obligations.append(Obligation(
            number=index + 1,
            amount_cents=amount,
            percentage=rule.percentage,
            due_date=now + timedelta(days=rule.due_days),
            status=ObligationStatus.PENDING
        ))

    return obligations

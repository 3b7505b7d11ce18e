"""
Module: rental_engines.allocation
Responsibility:
    Split a utility bill total across units by weight, equal share or
    explicit ratio, with deterministic cent rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - sum(share.amount) == total exactly.  Every share except the last is
      floored to cents; the last target absorbs the residual.
    - Percentages are derived from the rounded amounts, 0-100, two decimals.
    - Targets keep their input order; callers pass units in a stable order.

Failure modes:
    - ValueError on no targets, non-positive total, negative weight,
      zero total weight, or custom ratios outside [0, 1] / not summing to 1.

Usage:
    engine = AllocationEngine()
    result = engine.allocate_weighted(
        Decimal("900.00"),
        [AllocationTarget(unit_a, Decimal("450")), AllocationTarget(unit_b, Decimal("900"))],
    )
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from rental_kernel.domain.money import CENT, ZERO, floor_cents, to_money
from rental_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AllocationTarget:
    """
    A unit that can receive a share.

    Guarantees:
        - ``weight`` is non-negative.
    """

    unit_id: UUID
    weight: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.weight < 0:
            raise ValueError(f"Weight cannot be negative for unit {self.unit_id}")


@dataclass(frozen=True)
class AllocationShare:
    unit_id: UUID
    amount: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class AllocationResult:
    """
    Complete allocation of one total.

    Guarantees:
        - ``total_allocated == total``.
        - ``rounding_adjustment`` is what the last share received on top of
          its floored amount.
    """

    total: Decimal
    shares: tuple[AllocationShare, ...]
    rounding_adjustment: Decimal

    @property
    def total_allocated(self) -> Decimal:
        return sum((s.amount for s in self.shares), ZERO)

    def by_unit(self) -> dict[UUID, AllocationShare]:
        return {s.unit_id: s for s in self.shares}


class AllocationEngine:
    """
    Split amounts across units.

    Contract:
        Pure functions, no I/O, no database access.
    Guarantees:
        - Intermediate ratios use full precision.
        - Shares are floored to cents, the residual goes to the last target,
          so the allocated total always equals the bill total.
    Non-goals:
        - Does not decide which basis (footage, occupants, meter delta)
          supplies the weights; the bill service does.
    """

    def allocate_equal(
        self, total: Decimal, unit_ids: Sequence[UUID]
    ) -> AllocationResult:
        return self.allocate_weighted(
            total, [AllocationTarget(unit_id=u) for u in unit_ids]
        )

    def allocate_weighted(
        self, total: Decimal, targets: Sequence[AllocationTarget]
    ) -> AllocationResult:
        """Split ``total`` in proportion to each target's weight."""
        if not targets:
            raise ValueError("No units to allocate to")
        total_weight = sum((t.weight for t in targets), Decimal("0"))
        if total_weight <= 0:
            raise ValueError("Total weight cannot be zero")
        return self._allocate_by_ratio(
            total, [(t.unit_id, t.weight / total_weight) for t in targets]
        )

    def allocate_custom_ratio(
        self,
        total: Decimal,
        ratios: Mapping[UUID, Decimal],
        tolerance: Decimal = Decimal("0.0001"),
    ) -> AllocationResult:
        """Split by caller-supplied ratios, each in [0, 1], summing to 1."""
        if not ratios:
            raise ValueError("No custom ratios supplied")
        for unit_id, ratio in ratios.items():
            if not Decimal("0") <= ratio <= Decimal("1"):
                raise ValueError(f"Ratio for unit {unit_id} must be between 0 and 1")
        ratio_sum = sum(ratios.values(), Decimal("0"))
        if abs(ratio_sum - Decimal("1")) > tolerance:
            raise ValueError(f"Custom ratios must sum to 1 (got {ratio_sum})")
        return self._allocate_by_ratio(total, list(ratios.items()))

    def _allocate_by_ratio(
        self, total: Decimal, ratios: list[tuple[UUID, Decimal]]
    ) -> AllocationResult:
        t0 = time.monotonic()
        total = to_money(total)
        if total <= 0:
            raise ValueError(f"Total must be positive, got {total}")

        amounts: list[Decimal] = []
        running = ZERO
        for _, ratio in ratios[:-1]:
            share = floor_cents(total * ratio)
            amounts.append(share)
            running += share

        last_ratio = ratios[-1][1]
        last_amount = total - running
        adjustment = last_amount - floor_cents(total * last_ratio)
        amounts.append(last_amount)

        shares = tuple(
            AllocationShare(
                unit_id=unit_id,
                amount=amount,
                percentage=(amount / total * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP),
            )
            for (unit_id, _), amount in zip(ratios, amounts)
        )

        logger.info(
            "allocation_computed",
            extra={
                "total": str(total),
                "unit_count": len(shares),
                "rounding_adjustment": str(adjustment),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return AllocationResult(total=total, shares=shares, rounding_adjustment=adjustment)

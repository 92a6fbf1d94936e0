"""Combined and per-arm averaging of canonical readings."""

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from .models import Arm, ArmAverages, BPAverages, CanonicalReading

_TWO_PLACES = Decimal("0.01")


def round_mean(total: Decimal, count: int) -> float:
    """Divide and round to two places, halves away from zero.

    Decimal arithmetic keeps integer sums exact, so a mean of 120.005 rounds
    to 120.01 rather than falling victim to binary float representation.
    """
    return float((total / Decimal(count)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def _to_decimal(value: int | float) -> Decimal:
    return Decimal(value) if isinstance(value, int) else Decimal(str(value))


def _arm_averages(readings: Sequence[CanonicalReading]) -> ArmAverages:
    if not readings:
        return ArmAverages()

    total_systolic = sum((_to_decimal(r.systolic) for r in readings), Decimal(0))
    total_diastolic = sum((_to_decimal(r.diastolic) for r in readings), Decimal(0))
    return ArmAverages(
        avg_systolic=round_mean(total_systolic, len(readings)),
        avg_diastolic=round_mean(total_diastolic, len(readings)),
        count=len(readings),
    )


def calculate_averages(readings: Sequence[CanonicalReading]) -> BPAverages:
    """Calculate combined, left-arm and right-arm averages.

    Args:
        readings: Canonical readings in any order.

    Returns:
        BPAverages where each empty subset has None means and count 0.
    """
    left = [r for r in readings if r.arm == Arm.LEFT]
    right = [r for r in readings if r.arm == Arm.RIGHT]

    return BPAverages(
        overall=_arm_averages(readings),
        left=_arm_averages(left),
        right=_arm_averages(right),
    )

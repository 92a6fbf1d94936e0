"""Normalize stored rows into arm-tagged readings."""

from .models import Arm, CanonicalReading, RawReading


def extract_reading(raw: RawReading) -> CanonicalReading | None:
    """Extract the systolic/diastolic pair from a stored row.

    Rows carry one arm per submission. The left pair is checked first, so a
    row with both pairs complete yields only its left reading.

    Returns:
        The canonical reading, or None when neither pair is complete.
    """
    if raw.l_systolic is not None and raw.l_diastolic is not None:
        return CanonicalReading(
            arm=Arm.LEFT,
            systolic=raw.l_systolic,
            diastolic=raw.l_diastolic,
            created_at=raw.created_at,
        )
    if raw.r_systolic is not None and raw.r_diastolic is not None:
        return CanonicalReading(
            arm=Arm.RIGHT,
            systolic=raw.r_systolic,
            diastolic=raw.r_diastolic,
            created_at=raw.created_at,
        )
    return None

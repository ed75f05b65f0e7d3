# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Numeric helpers shared by the progress calculators.

Rounding works on the binary float value and ties go toward positive
infinity, so 1.005 rounds to 1.0 and -2.5 rounds to -2.
"""

import math
from collections.abc import Iterable


def round2(value: float) -> float:
    """Round to two decimal places, ties toward positive infinity."""
    return math.floor(value * 100 + 0.5) / 100


def round_int(value: float) -> int:
    """Round to an integer, ties toward positive infinity."""
    return math.floor(value + 0.5)


def mean2(values: Iterable[float]) -> float:
    """Mean rounded to two decimals, 0 for an empty sequence."""
    items = list(values)
    if not items:
        return 0.0
    return round2(sum(items) / len(items))


def percent2(part: float, whole: float) -> float:
    """Percentage rounded to two decimals, 0 when whole is 0."""
    if not whole:
        return 0.0
    return round2(part / whole * 100)

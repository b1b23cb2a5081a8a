"""Pick an overall winner across all active arms."""

from __future__ import annotations

import math
from collections.abc import Sequence

from splitstats.models import VariantRecord, WinningVariant
from splitstats.stats.frequentist import p_value, z_score


def determine_winning_variant(
    records: Sequence[VariantRecord], base_confidence: int
) -> WinningVariant:
    """Highest-rate arm plus a blended confidence score.

    The confidence is ``(1 - mean one-sided p-value of the winner beating each
    other active arm) * 100``, averaged with ``base_confidence``, rounded half
    up and capped at ``base_confidence``.  Fewer than two active arms gives no
    winner.
    """
    active = [r for r in records if r.is_active]
    if len(active) < 2:
        return WinningVariant(winning_label=None, confidence_level=0)

    # first arm wins ties
    winner = active[0]
    for record in active[1:]:
        if record.conversion_rate > winner.conversion_rate:
            winner = record

    p_values = [
        p_value(
            z_score(other.visitors, other.conversions, winner.visitors, winner.conversions),
            two_sided=False,
        )
        for other in active
        if other is not winner
    ]
    avg_p = sum(p_values) / len(p_values) if p_values else 1.0
    adjusted = (1 - avg_p) * 100
    # round half up
    confidence = min(math.floor((adjusted + base_confidence) / 2 + 0.5), base_confidence)

    return WinningVariant(winning_label=winner.label, confidence_level=int(confidence))

"""Pure rating functions."""

from rankforge.core.rating.engine import (
    RatingResult,
    apply_match,
    calculate_rank,
    carry_forward,
    expected_score,
    performance_components,
    rate_match,
)

__all__ = [
    "RatingResult",
    "apply_match",
    "calculate_rank",
    "carry_forward",
    "expected_score",
    "performance_components",
    "rate_match",
]

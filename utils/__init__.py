"""RevShare Payout Engine - Utilities"""

from .converters import (
    to_subunits, from_subunits, format_token_amount, to_decimal_string,
    apply_ratio, as_utc, to_utc_naive, parse_period_bound
)

__all__ = [
    'to_subunits',
    'from_subunits',
    'format_token_amount',
    'to_decimal_string',
    'apply_ratio',
    'as_utc',
    'to_utc_naive',
    'parse_period_bound'
]

"""
Pet Price Standardization Module

Turns free-text product data into comparable numbers.

Key Components:
- WeightSpec / parse_weight: parse "2kg", "4 x 100g", "1,5 kg"
- convert_to_grams: canonical mass in grams
- calculate_price_per_kg: EUR per kilogram
- ProductListing / ProductGroup: records the grouping engine reads and writes
"""

from .quantity_parser import (
    WeightSpec,
    UNITS,
    parse_weight,
    convert_to_grams,
    normalize_unit,
    find_weight_in_name,
    strip_weight_tokens,
)
from .schema import (
    ProductListing,
    UnitPrice,
    Variant,
    VariantRef,
    PriceRange,
    ProductGroup,
    UNIT_PRICE_UNIT,
)
from .unit_price import calculate_price_per_kg, resolve_weight_string, unit_price_for

__all__ = [
    # Quantity parsing
    'WeightSpec',
    'UNITS',
    'parse_weight',
    'convert_to_grams',
    'normalize_unit',
    'find_weight_in_name',
    'strip_weight_tokens',

    # Schema
    'ProductListing',
    'UnitPrice',
    'Variant',
    'VariantRef',
    'PriceRange',
    'ProductGroup',
    'UNIT_PRICE_UNIT',

    # Unit prices
    'calculate_price_per_kg',
    'resolve_weight_string',
    'unit_price_for',
]

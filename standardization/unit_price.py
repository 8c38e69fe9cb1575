"""
Unit price normalization for pet food listings.
Parses weights from weight fields or product names and calculates price per kg.
"""
import logging
import math
from typing import Any, Optional

from .quantity_parser import parse_weight, convert_to_grams, find_weight_in_name
from .schema import ProductListing, UnitPrice

logger = logging.getLogger(__name__)


def _parse_price(price: Any) -> Optional[float]:
    """Parse a price, accepting numeric strings. Returns None if not a finite positive number."""
    if price is None or isinstance(price, bool):
        return None
    try:
        value = float(price)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def calculate_price_per_kg(price: Any, weight_str: Optional[str]) -> Optional[float]:
    """
    Calculate price per kilogram from a price and a weight string.
    Returns the raw float (no rounding) or None if it can't be computed.

    Examples:
        calculate_price_per_kg(59.99, "15kg") → 3.9993...
        calculate_price_per_kg(5.99, "3x85g") → 23.49...
        calculate_price_per_kg(9.99, "") → None
    """
    value = _parse_price(price)
    if value is None:
        logger.debug(f"Invalid price value: {price!r}")
        return None

    if not weight_str:
        logger.debug("Missing weight string for price calculation")
        return None

    weight = parse_weight(weight_str)
    if weight is None:
        logger.debug(f"Failed to extract weight from {weight_str!r}")
        return None

    grams = convert_to_grams(weight)
    if grams is None or grams <= 0:
        logger.debug(f"Invalid gram conversion for {weight_str!r}: {grams}")
        return None

    result = (value / grams) * 1000
    if not math.isfinite(result):
        logger.debug(f"Unit price overflow for {price!r} and {weight_str!r}")
        return None
    return result


def resolve_weight_string(listing: ProductListing) -> str:
    """
    Pick the weight string for a listing: the structured weight field
    when present, otherwise the first weight token in the name.
    """
    if listing.details_weight:
        return listing.details_weight
    return find_weight_in_name(listing.name)


def unit_price_for(listing: ProductListing) -> Optional[UnitPrice]:
    """
    Convenience function: resolve the weight string and compute the unit price.
    """
    price_per_kg = calculate_price_per_kg(listing.price, resolve_weight_string(listing))
    if price_per_kg is None:
        return None
    return UnitPrice(value=price_per_kg)

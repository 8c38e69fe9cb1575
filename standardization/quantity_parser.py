"""
Quantity Parser

Parses product weights from free text and converts them to grams.
Single source of truth for the unit vocabulary and the weight regexes used
by the unit price calculator, the similarity matcher and the grouping engine.

Handles:
- Simple weights: "2kg", "400 g", "1.5 KG"
- Decimal commas: "1,5kg"
- Multipacks: "4 x 100g", "3x400g"
- Bare numbers (assumed grams): "800"

Example:
    >>> parse_weight("4 x 100g")
    WeightSpec(value=400.0, unit='g')
    >>> convert_to_grams(parse_weight("2kg"))
    2000.0
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# === Unit Vocabulary ===

# Longest tokens first so "kg" wins over "g" and "ml" over "l"
UNITS = ('kg', 'lb', 'oz', 'ml', 'g', 'l')

UNIT_PATTERN = '|'.join(UNITS)

GRAMS_PER_UNIT = {
    'kg': 1000.0,
    'g': 1.0,
    'lb': 453.592,
    'oz': 28.3495,
    'l': 1000.0,   # 1 L of pet food is taken as 1 kg
    'ml': 1.0,     # 1 ml taken as 1 g
}


@dataclass(frozen=True)
class WeightSpec:
    """A parsed (value, unit) pair. Never persisted on its own."""
    value: float
    unit: str

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'unit': self.unit}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["WeightSpec"]:
        if not data or data.get('value') is None or not data.get('unit'):
            return None
        try:
            return cls(value=float(data['value']), unit=str(data['unit']))
        except (TypeError, ValueError):
            return None


# === Patterns ===

# Anchored patterns tried against the whole normalized string, in priority order.
# Uppercase variants ("2KG") are covered because the input is lowercased first.
WEIGHT_PATTERNS = [
    # "2kg", "400g"
    (re.compile(rf'^(\d+(?:\.\d+)?)({UNIT_PATTERN})$'), 'compact'),
    # "2 kg", "400 g"
    (re.compile(rf'^(\d+(?:\.\d+)?) ({UNIT_PATTERN})$'), 'spaced'),
    # "4 x 100g", "3x400g", "2 × 1.5 kg"
    (re.compile(rf'^(\d+) ?[x×] ?(\d+(?:\.\d+)?) ?({UNIT_PATTERN})$'), 'multipack'),
]

# Last resort: first bare integer, read as grams. Lossy on purpose.
BARE_NUMBER_PATTERN = re.compile(r'(\d+)')

# A weight token inside a product name: optional multipack prefix, a number,
# optional space, a unit, and no letter or digit glued after the unit.
WEIGHT_TOKEN_PATTERN = re.compile(
    rf'(?:\d+\s*[x×]\s*)?\d+(?:[.,]\d+)?\s*(?:{UNIT_PATTERN})(?![a-z0-9])',
    re.IGNORECASE
)

# "1,000g" is a thousands separator, "1,5kg" and "0,75 l" are decimal commas
_THOUSANDS_COMMA = re.compile(r'(?<=\d),(?=\d{3}(?!\d))')
_DECIMAL_COMMA = re.compile(r'(?<=\d),(?=\d{1,2}(?!\d))')
_WHITESPACE = re.compile(r'\s+')


def normalize_unit(unit: str) -> str:
    """
    Normalize a unit token.

    Example:
        >>> normalize_unit(" KG ")
        'kg'
    """
    if not unit:
        return ''
    return unit.lower().strip()


def _normalize_text(text: str) -> str:
    text = _WHITESPACE.sub(' ', text.lower().strip())
    text = _THOUSANDS_COMMA.sub('', text)
    return _DECIMAL_COMMA.sub('.', text)


def _to_number(raw: str) -> Optional[float]:
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_weight(text: Any) -> Optional[WeightSpec]:
    """
    Extract a weight from a free-text string.

    Args:
        text: Weight field or product name fragment ("2kg", "4 x 100g")

    Returns:
        WeightSpec, or None when nothing usable is found. Never raises.

    Example:
        >>> parse_weight("1,5 kg")
        WeightSpec(value=1.5, unit='kg')
        >>> parse_weight("800")
        WeightSpec(value=800.0, unit='g')
        >>> parse_weight("no digits") is None
        True
    """
    if not text or not isinstance(text, str):
        return None

    normalized = _normalize_text(text)

    for pattern, pattern_type in WEIGHT_PATTERNS:
        match = pattern.match(normalized)
        if not match:
            continue

        if pattern_type == 'multipack':
            count = _to_number(match.group(1))
            amount = _to_number(match.group(2))
            if count is None or amount is None:
                logger.debug(f"Non-numeric multipack in weight string: {text!r}")
                return None
            value = count * amount
            unit = match.group(3)
        else:
            value = _to_number(match.group(1))
            unit = match.group(2)

        if value is None or not math.isfinite(value) or value <= 0:
            logger.debug(f"Unusable weight value in {text!r}")
            return None
        return WeightSpec(value=value, unit=normalize_unit(unit))

    bare = BARE_NUMBER_PATTERN.search(normalized)
    if bare:
        value = _to_number(bare.group(1))
        if value is None or value <= 0:
            return None
        return WeightSpec(value=value, unit='g')

    return None


def convert_to_grams(weight: Optional[WeightSpec]) -> Optional[float]:
    """
    Convert a weight to grams.

    Unknown units are passed through unconverted (with a warning) instead
    of failing, so legacy records keep producing a number.

    Example:
        >>> convert_to_grams(WeightSpec(2, 'lb'))
        907.184
    """
    if weight is None or not weight.unit:
        return None

    value = weight.value
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        logger.debug(f"Invalid weight value: {value!r}")
        return None
    if not value:
        return None

    factor = GRAMS_PER_UNIT.get(normalize_unit(weight.unit))
    if factor is None:
        logger.warning(f"Unknown weight unit: {weight.unit}")
        return float(value)

    return value * factor


def find_weight_in_name(name: Optional[str]) -> str:
    """
    Return the first weight token in a product name, or ''.

    Example:
        >>> find_weight_in_name("Royal Canin Adult Medium 15kg")
        '15kg'
    """
    if not name:
        return ''
    match = WEIGHT_TOKEN_PATTERN.search(name)
    return match.group(0).strip() if match else ''


def strip_weight_tokens(name: Optional[str]) -> str:
    """
    Remove weight/size tokens from a product name.

    Example:
        >>> strip_weight_tokens("Royal Canin Adult Medium 15kg")
        'Royal Canin Adult Medium'
    """
    if not name:
        return ''
    stripped = WEIGHT_TOKEN_PATTERN.sub(' ', name)
    return _WHITESPACE.sub(' ', stripped).strip()

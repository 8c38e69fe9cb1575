"""
Product and ProductGroup Schema

Plain records the grouping engine reads and produces.
External documents (JSON imports, database rows, Mongo-style documents) are
mapped into ProductListing once, at the ingestion boundary, so the engine
never has to care where a record came from.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from .quantity_parser import WeightSpec


UNIT_PRICE_UNIT = "EUR/kg"


@dataclass
class ProductListing:
    """
    A product listing as read from the store. Read-only for the engine.

    Example:
        listing = ProductListing(
            id="64f1c0",
            name="Royal Canin Adult Medium 15kg",
            brand="Royal Canin",
            price=59.99,
            source="zooplus",
        )
    """

    id: str
    name: str
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: str = "EUR"
    category: Optional[str] = None
    pet_type: Optional[str] = None
    source: Optional[str] = None
    details_weight: Optional[str] = None  # structured weight hint, e.g. "15 kg"

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ProductListing":
        """
        Map an external record into a ProductListing.

        Accepts snake_case rows, camelCase JSON and Mongo-style documents
        (``_id`` and nested ``details.weight``).
        """
        details = doc.get('details') or {}
        details_weight = doc.get('details_weight')
        if details_weight is None and isinstance(details, dict):
            details_weight = details.get('weight')

        product_id = doc.get('id', doc.get('_id'))

        return cls(
            id=str(product_id) if product_id is not None else '',
            name=doc.get('name') or '',
            brand=doc.get('brand'),
            price=_coerce_price(doc.get('price')),
            currency=doc.get('currency') or 'EUR',
            category=doc.get('category'),
            pet_type=doc.get('pet_type', doc.get('petType')),
            source=doc.get('source'),
            details_weight=str(details_weight) if details_weight else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "price": self.price,
            "currency": self.currency,
            "category": self.category,
            "pet_type": self.pet_type,
            "source": self.source,
            "details_weight": self.details_weight,
        }


def _coerce_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class UnitPrice:
    """Price per kilogram. Derived, never edited by hand."""
    value: float
    unit: str = UNIT_PRICE_UNIT

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "unit": self.unit}


@dataclass
class Variant:
    """One purchasable size of a base product."""
    product_id: str
    size: str
    weight: Optional[WeightSpec]
    price: Optional[float]
    unit_price: Optional[UnitPrice]
    best_value: bool = False
    name: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size,
            "weight": self.weight.to_dict() if self.weight else None,
            "price": self.price,
            "unit_price": self.unit_price.to_dict() if self.unit_price else None,
            "best_value": self.best_value,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Variant":
        unit_price = data.get("unit_price")
        return cls(
            product_id=str(data["product_id"]),
            size=data.get("size") or "",
            weight=WeightSpec.from_dict(data.get("weight")),
            price=data.get("price"),
            unit_price=UnitPrice(**unit_price) if unit_price else None,
            best_value=bool(data.get("best_value")),
            name=data.get("name"),
            source=data.get("source"),
        )


@dataclass
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None
    unit_min: Optional[float] = None
    unit_max: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "unit_min": self.unit_min,
            "unit_max": self.unit_max,
        }


@dataclass
class VariantRef:
    """Pointer to the best-value variant of a group."""
    product_id: str
    price: Optional[float]
    unit_price: float
    size: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "price": self.price,
            "unit_price": self.unit_price,
            "size": self.size,
        }


@dataclass
class ProductGroup:
    """
    Same base product in several pack sizes.

    Rebuilt wholesale on every grouping run; a stored group is either
    replaced or created, never patched.
    """

    base_product_name: str
    brand: Optional[str]
    variants: List[Variant]
    price_range: PriceRange
    best_value: Optional[VariantRef]
    category: Optional[str] = None
    pet_type: Optional[str] = None
    has_different_sources: bool = False
    has_complete_data: bool = False
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def variant_count(self) -> int:
        return len(self.variants)

    @property
    def product_ids(self) -> List[str]:
        return [v.product_id for v in self.variants]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage and JSON responses."""
        return {
            "base_product_name": self.base_product_name,
            "brand": self.brand,
            "category": self.category,
            "pet_type": self.pet_type,
            "variants": [v.to_dict() for v in self.variants],
            "price_range": self.price_range.to_dict(),
            "best_value": self.best_value.to_dict() if self.best_value else None,
            "variant_count": self.variant_count,
            "has_different_sources": self.has_different_sources,
            "has_complete_data": self.has_complete_data,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductGroup":
        """Create ProductGroup from a stored dictionary."""
        best = data.get("best_value")
        last_updated = data.get("last_updated")
        return cls(
            base_product_name=data["base_product_name"],
            brand=data.get("brand"),
            category=data.get("category"),
            pet_type=data.get("pet_type"),
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
            price_range=PriceRange(**data.get("price_range", {})),
            best_value=VariantRef(**best) if best else None,
            has_different_sources=bool(data.get("has_different_sources")),
            has_complete_data=bool(data.get("has_complete_data")),
            last_updated=(
                datetime.fromisoformat(last_updated) if last_updated else datetime.now(timezone.utc)
            ),
        )

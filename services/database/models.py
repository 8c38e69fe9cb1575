"""
Pydantic Models for API Payloads

These models are used for validation and serialization of the
comparison endpoints' responses.
"""

from typing import Optional, List, Any
from pydantic import BaseModel, Field, ConfigDict


# ============================================
# Envelope
# ============================================

class ApiResponse(BaseModel):
    """Every endpoint answers with this envelope."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    def to_body(self) -> dict:
        body = {"success": self.success}
        if self.data is not None:
            body["data"] = self.data
        if self.error is not None:
            body["error"] = self.error
        return body


# ============================================
# Unit Price Models
# ============================================

class UnitPriceOut(BaseModel):
    value: float = Field(..., gt=0)
    unit: str = "EUR/kg"
    formatted_value: str


class ProductWithUnitPrice(BaseModel):
    """Product annotated with its computed unit price."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    currency: str = "EUR"
    source: Optional[str] = None
    image_url: Optional[str] = None
    weight: str = ""
    unit_price: Optional[UnitPriceOut] = None


class PriceRangeOut(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


# ============================================
# Comparison Models
# ============================================

class BestValueEntry(BaseModel):
    """Best-value variant of one base product group."""
    base_product: str
    best_value: dict
    price_range: dict
    variant_count: int


class BrandComparison(BaseModel):
    """Same-pattern products of one brand, cheapest per kg first."""
    brand: str
    products: List[ProductWithUnitPrice]
    best_value: Optional[ProductWithUnitPrice] = None
    product_count: int
    price_range: PriceRangeOut
    unit_price_range: PriceRangeOut


class SimilarProduct(BaseModel):
    """Related product with its similarity score (0-100)."""
    product: ProductWithUnitPrice
    similarity_score: float = Field(..., ge=0, le=100)

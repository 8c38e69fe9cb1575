"""
Pet Price API - Unit Price Comparison Endpoints
Serves comparisons computed from the SQLite product store.

Every response uses the envelope {success, data?, error?}.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from matching.grouping import GroupingMode, group_products_by_base_product
from matching.similarity import related_product_score
from standardization.schema import ProductListing, UNIT_PRICE_UNIT
from standardization.unit_price import calculate_price_per_kg, resolve_weight_string
from services.concurrency import run_with_timeout
from services.config import load_config
from services.database.db import Database, StorageError, get_db
from services.database.models import (
    ApiResponse,
    BestValueEntry,
    BrandComparison,
    PriceRangeOut,
    ProductWithUnitPrice,
    SimilarProduct,
    UnitPriceOut,
)
from services.database.retry_handler import RetryExhausted
from services.jobs import update_all_unit_prices, update_product_groups

logger = logging.getLogger(__name__)

config = load_config()

app = FastAPI(title="Pet Price API", version=config.api.version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API = config.api.base_path

_schema_ready = False


def get_database() -> Database:
    """Request dependency. Tests swap it through app.dependency_overrides."""
    global _schema_ready
    db = get_db(str(config.database.path), timeout=config.database.connect_timeout)
    if not _schema_ready:
        db.init_schema()
        _schema_ready = True
    return db


def envelope(status_code: int, data: Any = None, error: Optional[str] = None) -> JSONResponse:
    body = ApiResponse(success=error is None, data=data, error=error).to_body()
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


# ============================================
# Error handlers
# ============================================

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    logger.warning(f"Invalid request {request.url.path}: {errors}")
    return envelope(400, error=f"Invalid request: {errors}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return envelope(exc.status_code, error=str(exc.detail))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    return envelope(503, error="Database temporarily unavailable. Please retry in a few seconds.")


@app.exception_handler(RetryExhausted)
async def retry_exhausted_handler(request: Request, exc: RetryExhausted):
    logger.error(f"Storage retries exhausted on {request.url.path}: {exc}")
    return envelope(503, error="Database temporarily unavailable. Please retry in a few seconds.")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.url.path}: {exc}")
    return envelope(500, error="An unexpected error occurred")


# ============================================
# Helpers
# ============================================

def format_unit_price(value: float) -> str:
    return f"{value:.2f} €/kg"


def with_unit_price(listing: ProductListing, image_url: Optional[str] = None) -> ProductWithUnitPrice:
    """Annotate a listing with its computed price per kg."""
    weight_str = resolve_weight_string(listing)
    price_per_kg = calculate_price_per_kg(listing.price, weight_str)

    unit_price = None
    if price_per_kg is not None:
        unit_price = UnitPriceOut(
            value=price_per_kg,
            unit=UNIT_PRICE_UNIT,
            formatted_value=format_unit_price(price_per_kg),
        )

    return ProductWithUnitPrice(
        id=listing.id,
        name=listing.name,
        brand=listing.brand,
        category=listing.category,
        price=listing.price,
        currency=listing.currency,
        source=listing.source,
        image_url=image_url,
        weight=weight_str,
        unit_price=unit_price,
    )


def _annotate(documents: List[Dict[str, Any]]) -> List[ProductWithUnitPrice]:
    return [
        with_unit_price(ProductListing.from_document(doc), doc.get('image_url'))
        for doc in documents
    ]


# ============================================
# Endpoints
# ============================================

@app.get("/")
def root(db: Database = Depends(get_database)):
    """Service information."""
    stats = db.get_stats()
    return envelope(200, data={
        "service": app.title,
        "version": config.api.version,
        "products": stats['products'],
        "product_groups": stats['product_groups'],
    })


@app.get(f"{API}/compare/unit-prices/{{product_id}}")
def compare_with_unit_prices(product_id: str, db: Database = Depends(get_database)):
    """
    Compare a product with the same brand/category products by price per kg.
    Products are grouped by base product, pack sizes side by side.
    """
    logger.info(f"Unit price comparison for product {product_id}")

    product = db.get_product(product_id)
    if product is None:
        logger.warning(f"Product not found: {product_id}")
        return envelope(404, error=f"Product not found: {product_id}")

    similar = db.find_products(
        brand=product['brand'],
        category=product['category'],
        exclude_id=product_id,
    )
    logger.info(f"Found {len(similar)} related products for {product['name']}")

    documents = [product] + similar
    listings = [ProductListing.from_document(doc) for doc in documents]
    groups = group_products_by_base_product(
        listings, mode=GroupingMode.LIVE_QUERY, config=config.matching
    )

    original = with_unit_price(listings[0], product.get('image_url'))

    return envelope(200, data={
        "original_product": original.model_dump(),
        "grouped_products": [g.to_dict() for g in groups],
        "total_groups": len(groups),
        "total_products": len(listings),
    })


def _best_value(brand: str, category: Optional[str], limit: int, db: Database):
    logger.info(f"Best value search for brand {brand}, category {category or 'All'}")

    documents = db.find_products(brand=brand, category=category)
    if not documents:
        logger.info(f"No products found for brand {brand}, category {category or 'All'}")
        return envelope(200, data={
            "brand": brand,
            "category": category or "All",
            "products": [],
        })

    listings = [ProductListing.from_document(doc) for doc in documents]
    groups = group_products_by_base_product(
        listings, mode=GroupingMode.LIVE_QUERY, config=config.matching
    )

    entries = [
        BestValueEntry(
            base_product=g.base_product_name,
            best_value=g.best_value.to_dict(),
            price_range=g.price_range.to_dict(),
            variant_count=g.variant_count,
        )
        for g in groups if g.best_value is not None
    ]
    entries.sort(key=lambda e: e.best_value['unit_price'])
    entries = entries[:limit]

    logger.info(f"Found {len(entries)} best value products in {len(groups)} groups")

    return envelope(200, data={
        "brand": brand,
        "category": category or "All",
        "group_count": len(groups),
        "best_value_products": [e.model_dump() for e in entries],
    })


@app.get(f"{API}/compare/best-value/{{brand}}")
def best_value_by_brand(
    brand: str,
    limit: int = Query(default=config.api.best_value_limit, ge=1, le=100),
    db: Database = Depends(get_database)
):
    """Best-value variant of each base product of a brand, cheapest per kg first."""
    return _best_value(brand, None, limit, db)


@app.get(f"{API}/compare/best-value/{{brand}}/{{category}}")
def best_value_by_brand_and_category(
    brand: str,
    category: str,
    limit: int = Query(default=config.api.best_value_limit, ge=1, le=100),
    db: Database = Depends(get_database)
):
    """Same as best_value_by_brand, restricted to one category."""
    return _best_value(brand, category, limit, db)


@app.get(f"{API}/compare/sizes")
def compare_sizes(
    name_pattern: Optional[str] = Query(default=None, alias="namePattern"),
    db: Database = Depends(get_database)
):
    """Compare pack sizes of products matching a name pattern, per brand."""
    min_length = config.api.min_pattern_length
    if not name_pattern or len(name_pattern) < min_length:
        logger.warning(f"Search pattern too short: {name_pattern!r}")
        return envelope(
            400, error=f"namePattern must be at least {min_length} characters long"
        )

    if not db.is_available():
        return envelope(503, error="Database temporarily unavailable. Please retry in a few seconds.")

    documents = run_with_timeout(
        db.search_products, config.jobs.query_timeout, name_pattern, config.api.search_limit
    )

    if not documents:
        logger.info(f"No products found for pattern {name_pattern!r}")
        return envelope(200, data={"name_pattern": name_pattern, "products": []})

    valid = [p for p in _annotate(documents) if p.unit_price is not None]
    if not valid:
        return envelope(200, data={
            "name_pattern": name_pattern,
            "message": "No products with valid weight information found",
            "products": [],
        })

    by_brand: Dict[str, List[ProductWithUnitPrice]] = {}
    for product in valid:
        by_brand.setdefault(product.brand or "Unknown", []).append(product)

    comparisons = []
    for brand, products in by_brand.items():
        ordered = sorted(products, key=lambda p: p.unit_price.value)
        prices = [p.price for p in products if p.price is not None]
        comparisons.append(BrandComparison(
            brand=brand,
            products=ordered,
            best_value=ordered[0],
            product_count=len(products),
            price_range=PriceRangeOut(
                min=min(prices) if prices else None,
                max=max(prices) if prices else None,
            ),
            unit_price_range=PriceRangeOut(
                min=ordered[0].unit_price.value,
                max=ordered[-1].unit_price.value,
            ),
        ))

    logger.info(f"Compared {len(valid)} products across {len(comparisons)} brands")

    return envelope(200, data={
        "name_pattern": name_pattern,
        "brand_count": len(comparisons),
        "product_count": len(valid),
        "brand_comparison": [c.model_dump() for c in comparisons],
    })


@app.get(f"{API}/products/{{product_id}}/similar")
def similar_products(
    product_id: str,
    limit: int = Query(default=10, ge=1, le=50),
    db: Database = Depends(get_database)
):
    """Related products (same pet type and main category), best score first."""
    product = db.get_product(product_id)
    if product is None:
        return envelope(404, error=f"Product not found: {product_id}")

    target = ProductListing.from_document(product)
    candidates = db.find_related_candidates(product, limit=limit * 5)

    scored = []
    for doc in candidates:
        listing = ProductListing.from_document(doc)
        scored.append(SimilarProduct(
            product=with_unit_price(listing, doc.get('image_url')),
            similarity_score=related_product_score(target, listing, config.matching),
        ))
    scored.sort(key=lambda s: s.similarity_score, reverse=True)

    return envelope(200, data={
        "original_product": with_unit_price(target, product.get('image_url')).model_dump(),
        "similar_products": [s.model_dump() for s in scored[:limit]],
    })


@app.post(f"{API}/compare/update-unit-prices")
def update_unit_prices(
    limit: int = Query(default=config.jobs.unit_price_limit, ge=1),
    db: Database = Depends(get_database)
):
    """Recompute and store unit prices for up to `limit` products."""
    result = update_all_unit_prices(db, limit=limit, config=config)
    return envelope(200, data=result)


@app.post(f"{API}/compare/update-product-groups")
def update_groups(db: Database = Depends(get_database)):
    """Rebuild the stored product groups."""
    result = update_product_groups(db, config=config)
    return envelope(200, data=result)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
Product Grouping

Clusters listings of the same base product (different pack sizes), attaches
unit prices, ranks the variants and picks the best value per group.

Greedy single pass: every unprocessed listing seeds a cluster and pulls in
every other unprocessed listing the similarity matcher accepts. O(n²).

Two strictness modes share one code path:
- LIVE_QUERY: a cluster is emitted once one member has a unit price;
  members without a unit price stay in the group, sorted last.
- BATCH_PERSIST: only members with a unit price become variants and a
  group needs at least two of them.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence

from standardization.quantity_parser import parse_weight, strip_weight_tokens
from standardization.schema import (
    ProductGroup,
    ProductListing,
    PriceRange,
    UnitPrice,
    Variant,
    VariantRef,
)
from standardization.unit_price import calculate_price_per_kg, resolve_weight_string

from .config import MatchingConfig, default_matching_config
from .similarity import are_same_product_different_sizes

logger = logging.getLogger(__name__)


class GroupingMode(str, Enum):
    LIVE_QUERY = "liveQuery"
    BATCH_PERSIST = "batchPersist"


MIN_PRICED_VARIANTS = {
    GroupingMode.LIVE_QUERY: 1,
    GroupingMode.BATCH_PERSIST: 2,
}


def _sort_key(variant: Variant):
    # Variants without a unit price go last; sort() is stable so ties keep input order
    if variant.unit_price is None:
        return (1, 0.0)
    return (0, variant.unit_price.value)


class ProductGroupBuilder:
    """
    Builds ProductGroups from a flat list of listings.

    Keeps per-run statistics so batch jobs can report what was skipped.
    """

    def __init__(
        self,
        mode: GroupingMode = GroupingMode.LIVE_QUERY,
        config: MatchingConfig = default_matching_config
    ):
        self.mode = GroupingMode(mode)
        self.config = config
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            'products': 0,
            'clusters': 0,
            'emitted': 0,
            'skipped': 0,
            'unpriced': 0,
        }

    def build(self, products: Sequence[ProductListing]) -> List[ProductGroup]:
        """
        Group listings by base product.

        Args:
            products: Listings already mapped with ProductListing.from_document

        Returns:
            One ProductGroup per surviving cluster, in seed order.
            Empty list for empty or malformed input.
        """
        self.stats = self._empty_stats()

        if not isinstance(products, (list, tuple)) or not products:
            return []

        self.stats['products'] = len(products)
        groups: List[ProductGroup] = []
        processed = set()

        for i, current in enumerate(products):
            if not self._is_groupable(current) or current.id in processed:
                continue

            cluster = [current]
            processed.add(current.id)

            for j, candidate in enumerate(products):
                if i == j or not self._is_groupable(candidate) or candidate.id in processed:
                    continue

                if are_same_product_different_sizes(current, candidate, self.config):
                    cluster.append(candidate)
                    processed.add(candidate.id)

            self.stats['clusters'] += 1
            group = self._build_group(cluster)
            if group is None:
                self.stats['skipped'] += 1
                continue

            groups.append(group)
            self.stats['emitted'] += 1

        logger.debug(
            f"Grouped {self.stats['products']} products into {self.stats['emitted']} groups "
            f"({self.stats['skipped']} clusters skipped, mode={self.mode.value})"
        )
        return groups

    @staticmethod
    def _is_groupable(product) -> bool:
        return isinstance(product, ProductListing) and bool(product.id)

    def _make_variant(self, product: ProductListing) -> Variant:
        weight_str = resolve_weight_string(product)
        price_per_kg = calculate_price_per_kg(product.price, weight_str)

        if price_per_kg is None:
            self.stats['unpriced'] += 1

        return Variant(
            product_id=product.id,
            name=product.name,
            size=weight_str,
            weight=parse_weight(weight_str),
            price=product.price,
            unit_price=UnitPrice(value=price_per_kg) if price_per_kg is not None else None,
            source=product.source,
        )

    def _build_group(self, cluster: List[ProductListing]) -> Optional[ProductGroup]:
        variants = sorted((self._make_variant(p) for p in cluster), key=_sort_key)
        priced = [v for v in variants if v.unit_price is not None]

        if self.mode == GroupingMode.BATCH_PERSIST:
            variants = priced

        if len(priced) < MIN_PRICED_VARIANTS[self.mode]:
            return None

        best = variants[0]
        best.best_value = True

        prices = [v.price for v in variants if v.price is not None]
        unit_prices = [v.unit_price.value for v in priced]

        seed = cluster[0]
        sources = {v.source for v in variants if v.source}

        return ProductGroup(
            base_product_name=strip_weight_tokens(seed.name),
            brand=seed.brand,
            category=seed.category,
            pet_type=seed.pet_type,
            variants=variants,
            price_range=PriceRange(
                min=min(prices) if prices else None,
                max=max(prices) if prices else None,
                unit_min=min(unit_prices),
                unit_max=max(unit_prices),
            ),
            best_value=VariantRef(
                product_id=best.product_id,
                price=best.price,
                unit_price=best.unit_price.value,
                size=best.size,
            ),
            has_different_sources=len(sources) > 1,
            has_complete_data=self.mode == GroupingMode.BATCH_PERSIST,
        )


def group_products_by_base_product(
    products: Sequence[ProductListing],
    mode: GroupingMode = GroupingMode.LIVE_QUERY,
    config: MatchingConfig = default_matching_config
) -> List[ProductGroup]:
    """Group listings by base product (ignoring size variations)."""
    return ProductGroupBuilder(mode=mode, config=config).build(products)

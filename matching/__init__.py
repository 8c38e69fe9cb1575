"""
Pet Price Matching Module

Same-base-product detection and size-variant grouping with unit prices.
"""

from .config import MatchingConfig, default_matching_config
from .similarity import are_same_product_different_sizes, jaccard_similarity, related_product_score
from .grouping import GroupingMode, ProductGroupBuilder, group_products_by_base_product

__all__ = [
    'MatchingConfig',
    'default_matching_config',
    'are_same_product_different_sizes',
    'jaccard_similarity',
    'related_product_score',
    'GroupingMode',
    'ProductGroupBuilder',
    'group_products_by_base_product',
]

"""
Product Similarity

Decides whether two listings are the same base product in different pack
sizes, and scores loosely related products for the "similar products" view.
"""

import math
from typing import Optional, Set

from standardization.quantity_parser import (
    strip_weight_tokens,
    find_weight_in_name,
    parse_weight,
    convert_to_grams,
)
from standardization.schema import ProductListing

from .config import MatchingConfig, default_matching_config


def name_tokens(name: str) -> Set[str]:
    """Lowercase whitespace-split token set."""
    return set(name.lower().split())


def jaccard_similarity(tokens1: Set[str], tokens2: Set[str]) -> float:
    """
    Size of the intersection over size of the union.
    Two empty sets have similarity 0.0.
    """
    union = tokens1 | tokens2
    if not union:
        return 0.0
    return len(tokens1 & tokens2) / len(union)


def are_same_product_different_sizes(
    product1: Optional[ProductListing],
    product2: Optional[ProductListing],
    config: MatchingConfig = default_matching_config
) -> bool:
    """
    Check if two listings are the same base product in different sizes.

    Rules:
    - both need a name and a brand
    - brands must be exactly equal (case-sensitive)
    - names are compared after removing weight tokens; equal names match,
      otherwise word-level Jaccard similarity must exceed the threshold

    Symmetric in its arguments.
    """
    if product1 is None or product2 is None:
        return False
    if not product1.name or not product2.name:
        return False
    if not product1.brand or not product2.brand:
        return False

    if product1.brand != product2.brand:
        return False

    clean1 = strip_weight_tokens(product1.name)
    clean2 = strip_weight_tokens(product2.name)

    # A name that is nothing but a weight says nothing about the product
    if not clean1 or not clean2:
        return False

    if clean1 == clean2:
        return True

    similarity = jaccard_similarity(name_tokens(clean1), name_tokens(clean2))
    return similarity > config.similarity_threshold


def _weight_in_grams(product: ProductListing) -> Optional[float]:
    weight_str = product.details_weight or find_weight_in_name(product.name)
    return convert_to_grams(parse_weight(weight_str))


def _main_category(category: Optional[str]) -> str:
    return (category or '').split('/')[0].strip()


def related_product_score(
    target: ProductListing,
    candidate: ProductListing,
    config: MatchingConfig = default_matching_config
) -> float:
    """
    Score how related a candidate is to a target product, 0-100.

    Components:
    - shared significant words in the name (up to 30)
    - same brand, case-insensitive (20)
    - same pack weight (30)
    - same pet type (10)
    - same main category (10)
    """
    score = 0.0

    target_words = (target.name or '').lower().split()
    candidate_words = set((candidate.name or '').lower().split())
    if target_words:
        common = [
            w for w in target_words
            if len(w) >= config.significant_word_min_length and w in candidate_words
        ]
        score += min(
            config.name_score_weight,
            len(common) / len(target_words) * config.name_score_weight
        )

    if target.brand and candidate.brand and target.brand.lower() == candidate.brand.lower():
        score += config.brand_score_weight

    target_grams = _weight_in_grams(target)
    candidate_grams = _weight_in_grams(candidate)
    if target_grams and candidate_grams and math.isclose(target_grams, candidate_grams):
        score += config.weight_score_weight

    if target.pet_type and candidate.pet_type and target.pet_type == candidate.pet_type:
        score += config.pet_type_score_weight

    target_category = _main_category(target.category)
    if target_category and target_category == _main_category(candidate.category):
        score += config.category_score_weight

    return round(score, 2)

"""
Matching Configuration

Tunable business constants for the similarity matcher and grouping engine.
Passed into the engine explicitly so it stays pure and testable.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class MatchingConfig:
    """Thresholds for deciding that two listings are the same base product"""
    # Jaccard similarity of weight-stripped names must be strictly above this
    similarity_threshold: float = 0.8

    # Words shorter than this are ignored by the related-products score
    significant_word_min_length: int = 4

    # Related-products score weights (sum to 100)
    name_score_weight: float = 30.0
    brand_score_weight: float = 20.0
    weight_score_weight: float = 30.0
    pet_type_score_weight: float = 10.0
    category_score_weight: float = 10.0


# Default configuration instance
default_matching_config = MatchingConfig()

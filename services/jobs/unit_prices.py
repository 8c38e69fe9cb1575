"""
Unit Price Job

Parses the weight of every product, computes its price per kg and writes
both back onto the product record. Products without a parseable weight
are counted as failures and skipped; they are not retried.
"""

import logging
from typing import Dict, Any, List, Optional, Tuple

from standardization.quantity_parser import parse_weight
from standardization.schema import ProductListing
from standardization.unit_price import calculate_price_per_kg, resolve_weight_string
from services.concurrency import run_with_timeout
from services.config import AppConfig, default_config
from services.database.db import Database
from services.database.retry_handler import RetryConfig, RetryHandler

logger = logging.getLogger(__name__)


class UnitPriceJob:
    """
    Batch job that stores unit prices and package weights on products.
    """

    def __init__(self, db: Database, config: Optional[AppConfig] = None):
        self.db = db
        self.config = config or default_config
        jobs = self.config.jobs
        self.retry_handler = RetryHandler(RetryConfig(
            max_attempts=jobs.retry_attempts,
            base_delay=jobs.retry_base_delay,
            max_delay=jobs.retry_max_delay,
        ))
        self.stats = {
            'processed': 0,
            'updated': 0,
            'failed': 0,
        }
        self.errors: List[str] = []

    def _prepare_update(self, listing: ProductListing) -> Optional[Tuple]:
        weight_str = resolve_weight_string(listing)
        weight = parse_weight(weight_str)

        if weight is None:
            self.stats['failed'] += 1
            self.errors.append(f"No weight found for product {listing.id}")
            return None

        price_per_kg = calculate_price_per_kg(listing.price, weight_str)
        return (listing.id, price_per_kg, weight.value, weight.unit, weight_str)

    def run(self, limit: Optional[int] = None) -> Dict[str, Any]:
        jobs = self.config.jobs
        limit = jobs.unit_price_limit if limit is None else limit

        logger.info(f"Starting unit price update for up to {limit} products")
        documents = run_with_timeout(self.db.get_all_products, jobs.load_timeout, limit)

        batch_size = jobs.unit_price_batch_size
        total_batches = (len(documents) + batch_size - 1) // batch_size

        for start in range(0, len(documents), batch_size):
            batch = documents[start:start + batch_size]
            logger.info(
                f"Processing batch {start // batch_size + 1}/{total_batches}, {len(batch)} products"
            )

            updates = []
            for doc in batch:
                self.stats['processed'] += 1
                update = self._prepare_update(ProductListing.from_document(doc))
                if update:
                    updates.append(update)

            if updates:
                modified = self.retry_handler.execute(self.db.update_unit_prices, updates)
                self.stats['updated'] += modified
                logger.info(f"Updated {modified} products in batch")

        logger.info(
            f"Unit price update finished: {self.stats['updated']} updated, "
            f"{self.stats['failed']} failed"
        )

        return {
            'total_processed': self.stats['processed'],
            'updated': self.stats['updated'],
            'failed': self.stats['failed'],
            'errors': self.errors[:jobs.max_reported_errors],
        }


def update_all_unit_prices(
    db: Database,
    limit: Optional[int] = None,
    config: Optional[AppConfig] = None
) -> Dict[str, Any]:
    """Run the unit price job once and return its counters."""
    return UnitPriceJob(db, config).run(limit)

"""
Product Group Job

Rebuilds the stored product groups from the full product collection:

1. Load every product (with a timeout)
2. Group in BATCH_PERSIST mode (groups need two priced variants)
3. Replace or create each group, keyed by (brand, base product name),
   N groups at a time with a short pause between batches
4. Stamp base product references on the member products
"""

import logging
from typing import Dict, Any, Optional

from matching.grouping import GroupingMode, ProductGroupBuilder
from standardization.schema import ProductGroup, ProductListing
from services.concurrency import map_with_concurrency_limit, run_with_timeout
from services.config import AppConfig, default_config
from services.database.db import Database
from services.database.retry_handler import RetryConfig, RetryHandler

logger = logging.getLogger(__name__)


class ProductGroupJob:
    """
    Batch job that persists product groups.
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

    def run(self) -> Dict[str, Any]:
        jobs = self.config.jobs

        logger.info("Starting product group update")
        documents = run_with_timeout(self.db.get_all_products, jobs.load_timeout)
        logger.info(f"Found {len(documents)} products to group")

        if not documents:
            logger.warning("No products found in the database")
            return {
                'message': 'No products found in the database',
                'created': 0,
                'updated': 0,
                'skipped': 0,
                'errors': 0,
                'total_groups': 0,
            }

        products = [ProductListing.from_document(doc) for doc in documents]
        builder = ProductGroupBuilder(mode=GroupingMode.BATCH_PERSIST, config=self.config.matching)
        groups = builder.build(products)
        logger.info(
            f"Built {len(groups)} groups from {builder.stats['clusters']} clusters "
            f"({builder.stats['skipped']} skipped)"
        )

        def on_batch(batch_number: int, total_batches: int):
            logger.info(f"Saved group batch {batch_number}/{total_batches}")

        results = map_with_concurrency_limit(
            self._persist_group,
            groups,
            batch_size=jobs.group_batch_size,
            pause=jobs.group_batch_pause,
            on_batch=on_batch,
        )

        created = updated = errors = 0
        for group, result in zip(groups, results):
            if isinstance(result, Exception):
                errors += 1
                logger.error(
                    f"Failed to save group {group.brand} / {group.base_product_name}: {result}"
                )
            elif result == 'created':
                created += 1
            else:
                updated += 1

        skipped = builder.stats['skipped']
        logger.info(
            f"Product groups updated: {created} created, {updated} updated, "
            f"{skipped} skipped, {errors} errors"
        )

        return {
            'created': created,
            'updated': updated,
            'skipped': skipped,
            'errors': errors,
            'total_groups': created + updated,
        }

    def _persist_group(self, group: ProductGroup) -> str:
        """Save one group and point its products at the best-value variant."""
        # Lock waits are bounded by the sqlite busy timeout, which rolls the
        # write back and raises StorageUnavailableError for the retry handler.
        action = self.retry_handler.execute(self.db.save_group, group)
        self.retry_handler.execute(
            self.db.stamp_group_membership,
            group.product_ids,
            group.best_value.product_id,
        )
        logger.debug(f"Group {group.brand} / {group.base_product_name} {action} "
                     f"with {group.variant_count} variants")
        return action


def update_product_groups(db: Database, config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Run the product group job once and return its counters."""
    return ProductGroupJob(db, config).run()

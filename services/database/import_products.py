"""
Import scraped products into the database.

Accepts a JSON file holding either a list of product documents or an
object with a "products" list. Documents may come from either retailer's
export format; every record is mapped through ProductListing.from_document.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from standardization.schema import ProductListing
from .db import Database

logger = logging.getLogger(__name__)


def load_documents(file_path: Path) -> List[Dict[str, Any]]:
    """Read product documents from a JSON export."""
    with open(file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get('products', [])

    if not isinstance(data, list):
        raise ValueError(f"Expected a list of products in {file_path}")

    return [doc for doc in data if isinstance(doc, dict)]


def import_products(db: Database, documents: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Upsert product documents.

    Returns:
        {'imported': n, 'skipped': n}
    """
    imported = 0
    skipped = 0

    for doc in documents:
        listing = ProductListing.from_document(doc)
        if not listing.id or not listing.name:
            logger.warning(f"Skipping product without id or name: {doc.get('name')!r}")
            skipped += 1
            continue

        record = listing.to_dict()
        record['image_url'] = doc.get('image_url') or doc.get('imageUrl')
        db.upsert_product(record)
        imported += 1

    logger.info(f"Imported {imported} products ({skipped} skipped)")
    return {'imported': imported, 'skipped': skipped}


def import_products_from_file(db: Database, file_path: Path) -> Dict[str, int]:
    """Import products from a JSON file into the database."""
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    documents = load_documents(file_path)
    if not documents:
        logger.warning(f"No products in {file_path}")
        return {'imported': 0, 'skipped': 0}

    return import_products(db, documents)

"""
Database Connection and Management

SQLite store for product listings and product groups.
Products are read-only for the grouping engine; the maintenance jobs write
derived fields (unit price, package weight, group membership) back here.
"""

import json
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable, Tuple
from contextlib import contextmanager
from datetime import datetime, timezone

from standardization.schema import ProductGroup

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "data" / "petprice.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    brand TEXT,
    price REAL,
    currency TEXT NOT NULL DEFAULT 'EUR',
    category TEXT,
    pet_type TEXT,
    source TEXT,
    details_weight TEXT,
    image_url TEXT,
    unit_price_value REAL,
    unit_price_unit TEXT,
    unit_price_calculated_at TEXT,
    package_weight_value REAL,
    package_weight_unit TEXT,
    package_weight_original TEXT,
    base_product_id TEXT,
    is_base_product INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_products_brand ON products (brand, category);
CREATE INDEX IF NOT EXISTS idx_products_name ON products (name);

CREATE TABLE IF NOT EXISTS product_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    brand TEXT,
    base_product_name TEXT NOT NULL,
    category TEXT,
    pet_type TEXT,
    variant_count INTEGER NOT NULL DEFAULT 0,
    has_complete_data INTEGER NOT NULL DEFAULT 0,
    has_different_sources INTEGER NOT NULL DEFAULT 0,
    document TEXT NOT NULL,
    last_updated TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (brand, base_product_name)
);
"""

PRODUCT_COLUMNS = (
    'id', 'name', 'brand', 'price', 'currency', 'category',
    'pet_type', 'source', 'details_weight', 'image_url',
)


class StorageError(Exception):
    """Base class for storage layer failures"""


class StorageUnavailableError(StorageError):
    """Database could not be reached or answered with an operational error"""


class StorageTimeoutError(StorageError):
    """A storage call did not finish in time"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_product(row: sqlite3.Row) -> Dict[str, Any]:
    """Flatten a products row into a document with nested derived fields."""
    doc = {key: row[key] for key in PRODUCT_COLUMNS}
    doc['unit_price'] = None
    if row['unit_price_value'] is not None:
        doc['unit_price'] = {
            'value': row['unit_price_value'],
            'unit': row['unit_price_unit'],
            'calculated_at': row['unit_price_calculated_at'],
        }
    doc['package_weight'] = None
    if row['package_weight_value'] is not None:
        doc['package_weight'] = {
            'value': row['package_weight_value'],
            'unit': row['package_weight_unit'],
            'original': row['package_weight_original'],
        }
    doc['product_group'] = {
        'base_product_id': row['base_product_id'],
        'is_base_product': bool(row['is_base_product']),
    }
    return doc


class Database:
    """
    SQLite database wrapper shared by the API and the maintenance jobs.
    Safe to use from worker threads: statements are serialized with a lock.
    """

    def __init__(self, db_path: Optional[str] = None, timeout: float = 10.0):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection."""
        with self._lock:
            if self._connection is None:
                try:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                    self._connection = sqlite3.connect(
                        str(self.db_path),
                        check_same_thread=False,  # Shared with job worker threads
                        timeout=self.timeout
                    )
                except (sqlite3.DatabaseError, OSError) as e:
                    raise StorageUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
                self._connection.row_factory = sqlite3.Row  # Dict-like rows
                self._connection.execute("PRAGMA journal_mode = WAL")
            return self._connection

    def close(self):
        """Close database connection."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @contextmanager
    def transaction(self):
        """Context manager for transactions. Holds the lock until commit."""
        with self._lock:
            conn = self.connect()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a query."""
        with self._lock:
            try:
                return self.connect().execute(query, params)
            except sqlite3.IntegrityError:
                raise
            except sqlite3.DatabaseError as e:
                raise StorageUnavailableError(str(e)) from e

    def executemany(self, query: str, params_list: List[tuple]) -> sqlite3.Cursor:
        """Execute a query with multiple parameter sets."""
        with self._lock:
            try:
                return self.connect().executemany(query, params_list)
            except sqlite3.IntegrityError:
                raise
            except sqlite3.DatabaseError as e:
                raise StorageUnavailableError(str(e)) from e

    def fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Execute query and fetch one result."""
        with self._lock:
            return self.execute(query, params).fetchone()

    def fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Execute query and fetch all results."""
        with self._lock:
            return self.execute(query, params).fetchall()

    def init_schema(self):
        """Create tables and indexes if missing."""
        with self._lock:
            conn = self.connect()
            try:
                conn.executescript(SCHEMA_SQL)
                conn.commit()
            except sqlite3.DatabaseError as e:
                raise StorageUnavailableError(f"Schema initialization failed: {e}") from e
        logger.info(f"Database schema initialized: {self.db_path}")

    def is_available(self) -> bool:
        """Cheap health check used before request-time queries."""
        try:
            self.fetchone("SELECT 1")
            return True
        except StorageError as e:
            logger.error(f"Database not available: {e}")
            return False

    def get_table_counts(self) -> Dict[str, int]:
        """Get row counts for all tables."""
        counts = {}
        for table in ('products', 'product_groups'):
            try:
                result = self.fetchone(f"SELECT COUNT(*) as cnt FROM {table}")
                counts[table] = result['cnt'] if result else 0
            except StorageUnavailableError:
                counts[table] = 0
        return counts

    # ========================================
    # Product Operations
    # ========================================

    def upsert_product(self, product_data: Dict[str, Any]) -> str:
        """Insert or update a product listing, return its ID."""
        now = _now()
        record = dict(product_data)
        record['currency'] = record.get('currency') or 'EUR'
        values = tuple(record.get(column) for column in PRODUCT_COLUMNS)

        with self.transaction():
            self.execute(f"""
                INSERT INTO products ({', '.join(PRODUCT_COLUMNS)}, created_at, updated_at)
                VALUES ({', '.join('?' for _ in PRODUCT_COLUMNS)}, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    brand = excluded.brand,
                    price = excluded.price,
                    currency = excluded.currency,
                    category = excluded.category,
                    pet_type = excluded.pet_type,
                    source = excluded.source,
                    details_weight = excluded.details_weight,
                    image_url = COALESCE(excluded.image_url, image_url),
                    updated_at = excluded.updated_at
            """, values + (now, now))

        return product_data['id']

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Get a single product document by ID."""
        row = self.fetchone("SELECT * FROM products WHERE id = ?", (str(product_id),))
        return _row_to_product(row) if row else None

    def get_all_products(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get all products in insertion order."""
        if limit is not None:
            rows = self.fetchall("SELECT * FROM products ORDER BY rowid LIMIT ?", (int(limit),))
        else:
            rows = self.fetchall("SELECT * FROM products ORDER BY rowid")
        return [_row_to_product(row) for row in rows]

    def find_products(
        self,
        brand: str,
        category: Optional[str] = None,
        exclude_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Find products of a brand, optionally restricted to a category."""
        query = "SELECT * FROM products WHERE brand = ?"
        params: List[Any] = [brand]
        if category:
            query += " AND category = ?"
            params.append(category)
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(str(exclude_id))
        query += " ORDER BY rowid"
        return [_row_to_product(row) for row in self.fetchall(query, tuple(params))]

    def search_products(self, pattern: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Find products whose name contains every word of the pattern (case-insensitive)."""
        words = pattern.lower().split()
        if not words:
            return []
        clauses = " AND ".join("LOWER(name) LIKE ?" for _ in words)
        params = tuple(f"%{w}%" for w in words) + (limit,)
        rows = self.fetchall(
            f"SELECT * FROM products WHERE {clauses} ORDER BY rowid LIMIT ?",
            params
        )
        return [_row_to_product(row) for row in rows]

    def find_related_candidates(
        self,
        product: Dict[str, Any],
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """
        Candidates for the "similar products" view: same pet type and
        same main category, most recently updated first.
        """
        query = "SELECT * FROM products WHERE id != ?"
        params: List[Any] = [str(product['id'])]
        if product.get('pet_type'):
            query += " AND pet_type = ?"
            params.append(product['pet_type'])
        if product.get('category'):
            main_category = product['category'].split('/')[0]
            query += " AND category LIKE ?"
            params.append(f"{main_category}%")
        query += " ORDER BY updated_at DESC LIMIT ?"
        params.append(int(limit))
        return [_row_to_product(row) for row in self.fetchall(query, tuple(params))]

    def update_unit_prices(self, updates: Iterable[Tuple]) -> int:
        """
        Write derived unit price and package weight fields.

        Args:
            updates: (product_id, unit_price_value, weight_value, weight_unit, weight_original)

        Returns:
            Number of rows modified
        """
        now = _now()
        params = [
            (value, 'EUR/kg', now, weight_value, weight_unit, original, now, product_id)
            for product_id, value, weight_value, weight_unit, original in updates
        ]
        if not params:
            return 0
        with self.transaction():
            cursor = self.executemany("""
                UPDATE products SET
                    unit_price_value = ?,
                    unit_price_unit = ?,
                    unit_price_calculated_at = ?,
                    package_weight_value = ?,
                    package_weight_unit = ?,
                    package_weight_original = ?,
                    updated_at = ?
                WHERE id = ?
            """, params)
            return cursor.rowcount

    # ========================================
    # Product Group Operations
    # ========================================

    def find_group(self, brand: Optional[str], base_product_name: str) -> Optional[Dict[str, Any]]:
        """Get a stored group document by its (brand, base product name) key."""
        row = self.fetchone(
            "SELECT id, document FROM product_groups WHERE brand IS ? AND base_product_name = ?",
            (brand, base_product_name)
        )
        if not row:
            return None
        document = json.loads(row['document'])
        document['id'] = row['id']
        return document

    def save_group(self, group: ProductGroup) -> str:
        """
        Replace the stored group with the same (brand, base product name)
        or create it. Returns 'created' or 'updated'.
        """
        document = group.to_dict()
        now = _now()

        with self.transaction():
            existing = self.fetchone(
                "SELECT id FROM product_groups WHERE brand IS ? AND base_product_name = ?",
                (group.brand, group.base_product_name)
            )
            values = (
                group.category,
                group.pet_type,
                group.variant_count,
                int(group.has_complete_data),
                int(group.has_different_sources),
                json.dumps(document, ensure_ascii=False),
                document['last_updated'],
            )

            if existing:
                self.execute("""
                    UPDATE product_groups SET
                        category = ?, pet_type = ?, variant_count = ?,
                        has_complete_data = ?, has_different_sources = ?,
                        document = ?, last_updated = ?
                    WHERE id = ?
                """, values + (existing['id'],))
                return 'updated'

            self.execute("""
                INSERT INTO product_groups (
                    category, pet_type, variant_count, has_complete_data,
                    has_different_sources, document, last_updated,
                    brand, base_product_name, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, values + (group.brand, group.base_product_name, now))
            return 'created'

    def stamp_group_membership(self, product_ids: List[str], base_product_id: str) -> int:
        """Point member products at the group's base product and flag the base product."""
        if not product_ids:
            return 0
        now = _now()
        placeholders = ', '.join('?' for _ in product_ids)
        with self.transaction():
            cursor = self.execute(f"""
                UPDATE products SET
                    base_product_id = ?,
                    is_base_product = CASE WHEN id = ? THEN 1 ELSE 0 END,
                    updated_at = ?
                WHERE id IN ({placeholders})
            """, (base_product_id, base_product_id, now, *product_ids))
            return cursor.rowcount

    def get_stats(self) -> Dict[str, Any]:
        """Summary numbers for the CLI and the API root."""
        counts = self.get_table_counts()
        priced = self.fetchone(
            "SELECT COUNT(*) as cnt FROM products WHERE unit_price_value IS NOT NULL"
        )
        return {
            'products': counts.get('products', 0),
            'product_groups': counts.get('product_groups', 0),
            'products_with_unit_price': priced['cnt'] if priced else 0,
        }


# Singleton instance
_db_instance: Optional[Database] = None


def get_db(db_path: Optional[str] = None, timeout: float = 10.0) -> Database:
    """Get database singleton instance."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database(db_path, timeout=timeout)
    return _db_instance

#!/usr/bin/env python3
"""
Tests for the maintenance jobs and the product import, against a temporary SQLite file.
"""

import json
import sqlite3
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

from services.config import AppConfig, load_config
from services.database.db import Database, StorageUnavailableError
from services.database.import_products import import_products, import_products_from_file
from services.jobs import update_all_unit_prices, update_product_groups


PRODUCTS = [
    {"_id": "rc4", "name": "Royal Canin Medium Adult 4kg", "brand": "Royal Canin",
     "price": 24.99, "source": "zooplus", "category": "dog/dry-food", "petType": "dog"},
    {"_id": "rc15", "name": "Royal Canin Medium Adult", "brand": "Royal Canin",
     "price": 59.99, "source": "arcaplanet", "category": "dog/dry-food", "petType": "dog",
     "details": {"weight": "15 kg"}},
    {"_id": "w1", "name": "Whiskas Pouches Chicken 4x100g", "brand": "Whiskas",
     "price": 3.2, "source": "zooplus", "category": "cat/wet-food", "petType": "cat"},
    {"_id": "k1", "name": "Kong Classic", "brand": "Kong",
     "price": 9.0, "source": "zooplus", "category": "dog/toys", "petType": "dog"},
]


def fast_config() -> AppConfig:
    config = AppConfig()
    config.jobs.group_batch_pause = 0
    config.jobs.retry_base_delay = 0
    return config


class DatabaseTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db = Database(str(Path(self.tmp.name) / "test.db"))
        self.db.init_schema()
        self.config = fast_config()

    def tearDown(self):
        self.db.close()
        self.tmp.cleanup()

    def load(self, documents=PRODUCTS):
        return import_products(self.db, documents)


class TestImportProducts(DatabaseTestCase):

    def test_import(self):
        result = self.load()
        self.assertEqual(result, {'imported': 4, 'skipped': 0})
        product = self.db.get_product("rc15")
        self.assertEqual(product['details_weight'], "15 kg")
        self.assertEqual(product['pet_type'], "dog")
        self.assertEqual(product['currency'], "EUR")

    def test_reimport_updates_in_place(self):
        self.load()
        self.load([dict(PRODUCTS[0], price=19.99)])
        self.assertEqual(self.db.get_stats()['products'], 4)
        self.assertEqual(self.db.get_product("rc4")['price'], 19.99)

    def test_records_without_id_are_skipped(self):
        result = self.load([{"name": "Nameless id"}, {"id": "x", "name": ""}])
        self.assertEqual(result, {'imported': 0, 'skipped': 2})

    def test_import_from_file(self):
        path = Path(self.tmp.name) / "products.json"
        path.write_text(json.dumps({"products": PRODUCTS}), encoding='utf-8')
        self.assertEqual(import_products_from_file(self.db, path)['imported'], 4)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            import_products_from_file(self.db, Path(self.tmp.name) / "missing.json")


class TestUnitPriceJob(DatabaseTestCase):

    def test_updates_and_failures(self):
        self.load()
        result = update_all_unit_prices(self.db, config=self.config)

        self.assertEqual(result['total_processed'], 4)
        self.assertEqual(result['updated'], 3)
        self.assertEqual(result['failed'], 1)
        self.assertEqual(result['errors'], ["No weight found for product k1"])

        rc15 = self.db.get_product("rc15")
        self.assertAlmostEqual(rc15['unit_price']['value'], 59.99 / 15)
        self.assertEqual(rc15['unit_price']['unit'], "EUR/kg")
        self.assertEqual(rc15['package_weight'], {'value': 15.0, 'unit': 'kg', 'original': '15 kg'})

        w1 = self.db.get_product("w1")
        self.assertEqual(w1['package_weight']['value'], 400.0)

        self.assertIsNone(self.db.get_product("k1")['unit_price'])

    def test_limit(self):
        self.load()
        result = update_all_unit_prices(self.db, limit=2, config=self.config)
        self.assertEqual(result['total_processed'], 2)

    def test_small_batches(self):
        self.load()
        self.config.jobs.unit_price_batch_size = 1
        result = update_all_unit_prices(self.db, config=self.config)
        self.assertEqual(result['updated'], 3)

    def test_reported_errors_are_capped(self):
        self.load([{"id": f"n{i}", "name": f"No Weight {i}", "price": 1.0} for i in range(15)])
        result = update_all_unit_prices(self.db, config=self.config)
        self.assertEqual(result['failed'], 15)
        self.assertEqual(len(result['errors']), 10)


class TestProductGroupJob(DatabaseTestCase):

    def test_creates_groups(self):
        self.load()
        result = update_product_groups(self.db, config=self.config)

        self.assertEqual(result['created'], 1)
        self.assertEqual(result['updated'], 0)
        self.assertEqual(result['errors'], 0)
        self.assertEqual(result['total_groups'], 1)
        # Whiskas has a single size, Kong has no weight
        self.assertEqual(result['skipped'], 2)

        group = self.db.find_group("Royal Canin", "Royal Canin Medium Adult")
        self.assertIsNotNone(group)
        self.assertEqual(group['best_value']['product_id'], "rc15")
        self.assertEqual(group['variant_count'], 2)
        self.assertTrue(group['has_complete_data'])
        self.assertTrue(group['has_different_sources'])

    def test_stamps_members(self):
        self.load()
        update_product_groups(self.db, config=self.config)

        rc4 = self.db.get_product("rc4")
        rc15 = self.db.get_product("rc15")
        self.assertEqual(rc4['product_group'], {'base_product_id': 'rc15', 'is_base_product': False})
        self.assertEqual(rc15['product_group'], {'base_product_id': 'rc15', 'is_base_product': True})
        self.assertIsNone(self.db.get_product("w1")['product_group']['base_product_id'])

    def test_rerun_replaces_existing_group(self):
        self.load()
        update_product_groups(self.db, config=self.config)
        self.load([dict(PRODUCTS[0], price=14.99)])

        result = update_product_groups(self.db, config=self.config)
        self.assertEqual(result['created'], 0)
        self.assertEqual(result['updated'], 1)
        self.assertEqual(self.db.get_stats()['product_groups'], 1)

        group = self.db.find_group("Royal Canin", "Royal Canin Medium Adult")
        self.assertEqual(group['best_value']['product_id'], "rc4")

    def test_groups_never_have_fewer_than_two_variants(self):
        self.load(PRODUCTS + [
            {"id": "a2", "name": "Acana Puppy 2kg", "brand": "Acana", "price": 20.0},
            {"id": "a0", "name": "Acana Puppy", "brand": "Acana", "price": 5.0},
        ])
        update_product_groups(self.db, config=self.config)
        rows = self.db.fetchall("SELECT variant_count FROM product_groups")
        self.assertTrue(rows)
        self.assertTrue(all(row['variant_count'] >= 2 for row in rows))
        self.assertIsNone(self.db.find_group("Acana", "Acana Puppy"))

    def test_empty_database(self):
        result = update_product_groups(self.db, config=self.config)
        self.assertEqual(result['total_groups'], 0)
        self.assertIn('message', result)

    def test_failed_writes_are_counted(self):
        self.load()
        self.config.jobs.retry_attempts = 1
        with mock.patch.object(self.db, 'save_group', side_effect=StorageUnavailableError("locked")):
            result = update_product_groups(self.db, config=self.config)
        self.assertEqual(result['errors'], 1)
        self.assertEqual(result['total_groups'], 0)

    def test_slow_write_is_saved_and_stamped(self):
        self.load()
        save_group = self.db.save_group

        def slow_save(group):
            time.sleep(0.2)
            return save_group(group)

        with mock.patch.object(self.db, 'save_group', side_effect=slow_save):
            result = update_product_groups(self.db, config=self.config)

        self.assertEqual(result['created'], 1)
        self.assertEqual(result['errors'], 0)
        self.assertIsNotNone(self.db.find_group("Royal Canin", "Royal Canin Medium Adult"))
        self.assertEqual(self.db.get_product("rc4")['product_group']['base_product_id'], "rc15")

    def test_locked_database_leaves_nothing_behind(self):
        """A write blocked past the busy timeout is rolled back and counted once."""
        self.load()
        self.config.jobs.retry_attempts = 1
        path = str(self.db.db_path)

        locker = sqlite3.connect(path, isolation_level=None)
        locker.execute("BEGIN IMMEDIATE")
        impatient = Database(path, timeout=0.05)
        try:
            result = update_product_groups(impatient, config=self.config)
        finally:
            impatient.close()
            locker.execute("ROLLBACK")
            locker.close()

        self.assertEqual(result['errors'], 1)
        self.assertEqual(result['created'], 0)
        self.assertEqual(result['total_groups'], 0)
        self.assertIsNone(self.db.find_group("Royal Canin", "Royal Canin Medium Adult"))
        self.assertIsNone(self.db.get_product("rc4")['product_group']['base_product_id'])


class TestLoadConfig(unittest.TestCase):

    def test_environment_overrides(self):
        config = load_config({
            'PETPRICE_DB_PATH': '/tmp/pets.db',
            'PETPRICE_LOG_LEVEL': 'debug',
            'PETPRICE_CORS_ORIGINS': 'http://a.test, http://b.test',
            'PETPRICE_SIMILARITY_THRESHOLD': '0.7',
        })
        self.assertEqual(config.database.path, Path('/tmp/pets.db'))
        self.assertEqual(config.logging.level, 'DEBUG')
        self.assertEqual(config.api.cors_origins, ['http://a.test', 'http://b.test'])
        self.assertEqual(config.matching.similarity_threshold, 0.7)

    def test_invalid_threshold(self):
        with self.assertRaises(ValueError):
            load_config({'PETPRICE_SIMILARITY_THRESHOLD': '1.5'})

    def test_defaults(self):
        config = load_config({})
        self.assertEqual(config.jobs.group_batch_size, 10)
        self.assertEqual(config.database.connect_timeout, 10.0)
        self.assertEqual(config.matching.similarity_threshold, 0.8)


if __name__ == '__main__':
    unittest.main()

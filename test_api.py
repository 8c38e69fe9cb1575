#!/usr/bin/env python3
"""
Tests for the comparison API, against a temporary SQLite file.
"""

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from api.main import app, get_database, format_unit_price
from services.database.db import Database, StorageUnavailableError
from services.database.import_products import import_products
from test_jobs import PRODUCTS


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db = Database(str(Path(self.tmp.name) / "api.db"))
        self.db.init_schema()
        import_products(self.db, PRODUCTS)

        app.dependency_overrides[get_database] = lambda: self.db
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.db.close()
        self.tmp.cleanup()


class TestRoot(ApiTestCase):

    def test_service_info(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['products'], 4)


class TestUnitPriceComparison(ApiTestCase):

    def test_compare_with_unit_prices(self):
        response = self.client.get("/api/compare/unit-prices/rc4")
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']

        self.assertEqual(data['original_product']['id'], "rc4")
        unit_price = data["original_product"]["unit_price"]
        self.assertAlmostEqual(unit_price["value"], 6.2475)
        self.assertTrue(unit_price["formatted_value"].endswith(" €/kg"))
        self.assertEqual(data['total_products'], 2)
        self.assertEqual(data['total_groups'], 1)

        group = data['grouped_products'][0]
        self.assertEqual(group['best_value']['product_id'], "rc15")
        self.assertEqual(group['variant_count'], 2)

    def test_unknown_product(self):
        response = self.client.get("/api/compare/unit-prices/nope")
        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertIn('error', body)

    def test_storage_failure(self):
        with mock.patch.object(self.db, 'get_product', side_effect=StorageUnavailableError("locked")):
            response = self.client.get("/api/compare/unit-prices/rc4")
        self.assertEqual(response.status_code, 503)
        self.assertFalse(response.json()['success'])


class TestBestValue(ApiTestCase):

    def test_best_value_by_brand(self):
        response = self.client.get("/api/compare/best-value/Royal Canin")
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['category'], "All")
        self.assertEqual(data['group_count'], 1)
        entry = data['best_value_products'][0]
        self.assertEqual(entry['base_product'], "Royal Canin Medium Adult")
        self.assertEqual(entry['best_value']['product_id'], "rc15")

    def test_category_without_products(self):
        response = self.client.get("/api/compare/best-value/Whiskas/cat-food")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['products'], [])

    def test_no_products(self):
        response = self.client.get("/api/compare/best-value/Unknown")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            'success': True,
            'data': {'brand': 'Unknown', 'category': 'All', 'products': []},
        })

    def test_invalid_limit(self):
        response = self.client.get("/api/compare/best-value/Royal Canin?limit=0")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])


class TestCompareSizes(ApiTestCase):

    def test_pattern_too_short(self):
        response = self.client.get("/api/compare/sizes?namePattern=ro")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])

        response = self.client.get("/api/compare/sizes")
        self.assertEqual(response.status_code, 400)

    def test_per_brand_comparison(self):
        response = self.client.get("/api/compare/sizes?namePattern=royal canin")
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['brand_count'], 1)
        self.assertEqual(data['product_count'], 2)

        comparison = data['brand_comparison'][0]
        self.assertEqual(comparison['brand'], "Royal Canin")
        self.assertEqual(comparison['best_value']['id'], "rc15")
        self.assertEqual([p['id'] for p in comparison['products']], ["rc15", "rc4"])
        self.assertEqual(comparison['price_range'], {'min': 24.99, 'max': 59.99})

    def test_products_without_weight_are_dropped(self):
        response = self.client.get("/api/compare/sizes?namePattern=kong")
        data = response.json()['data']
        self.assertEqual(data['products'], [])
        self.assertIn('message', data)

    def test_no_match(self):
        response = self.client.get("/api/compare/sizes?namePattern=zzzz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['products'], [])

    def test_database_unavailable(self):
        with mock.patch.object(self.db, 'is_available', return_value=False):
            response = self.client.get("/api/compare/sizes?namePattern=royal")
        self.assertEqual(response.status_code, 503)


class TestSimilarProducts(ApiTestCase):

    def test_similar(self):
        response = self.client.get("/api/products/rc4/similar")
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['original_product']['id'], "rc4")

        ids = [s['product']['id'] for s in data['similar_products']]
        self.assertEqual(ids[0], "rc15")
        self.assertNotIn("rc4", ids)
        self.assertNotIn("w1", ids)

        scores = [s['similarity_score'] for s in data['similar_products']]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_unknown_product(self):
        self.assertEqual(self.client.get("/api/products/nope/similar").status_code, 404)


class TestMaintenanceEndpoints(ApiTestCase):

    def test_update_unit_prices(self):
        response = self.client.post("/api/compare/update-unit-prices?limit=10")
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['updated'], 3)
        self.assertEqual(data['failed'], 1)

    def test_update_product_groups(self):
        response = self.client.post("/api/compare/update-product-groups")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['created'], 1)


class TestFormatting(unittest.TestCase):

    def test_format_unit_price(self):
        self.assertEqual(format_unit_price(3.99933), "4.00 €/kg")
        self.assertEqual(format_unit_price(12.5), "12.50 €/kg")


if __name__ == '__main__':
    unittest.main()

# Maintenance jobs
from .product_groups import ProductGroupJob, update_product_groups
from .unit_prices import UnitPriceJob, update_all_unit_prices

__all__ = ['ProductGroupJob', 'update_product_groups', 'UnitPriceJob', 'update_all_unit_prices']

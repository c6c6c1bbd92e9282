"""
Seller catalogue lookups
"""

import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, backend):
        self.backend = backend

    def products_for_supplier(self, seller_id: str, supplier_id: str) -> List[Dict]:
        """
        Products of this seller that the supplier can provide

        Returns:
            list: product dicts, each with its 'product_suppliers' links (for this
                supplier only) and the 'price_tiers' of every link, sorted by product_name
        """
        links = self.backend.select('product_suppliers', {'vendor_id': supplier_id})
        if not links:
            return []

        products = self.backend.select(
            'products',
            {'seller_id': seller_id, 'id': list({link['product_id'] for link in links})},
            order_by='product_name'
        )
        if not products:
            return []

        tiers = self.backend.select(
            'supplier_price_tiers',
            {'product_supplier_id': [link['id'] for link in links]},
            order_by='minimum_order_quantity'
        )
        tiers_by_link: Dict[str, List[Dict]] = {}
        for tier in tiers:
            tiers_by_link.setdefault(tier['product_supplier_id'], []).append({
                'id': tier['id'],
                'minimum_order_quantity': tier.get('minimum_order_quantity'),
                'unit_price': tier.get('unit_price')
            })

        links_by_product: Dict[str, List[Dict]] = {}
        for link in links:
            links_by_product.setdefault(link['product_id'], []).append({
                'id': link['id'],
                'vendor_id': link['vendor_id'],
                'lead_time_days': link.get('lead_time_days'),
                'moq': link.get('moq'),
                'is_primary': link.get('is_primary'),
                'price_tiers': tiers_by_link.get(link['id'], [])
            })

        for product in products:
            product['product_suppliers'] = links_by_product.get(product['id'], [])

        logger.info(f"{len(products)} product(s) for supplier {supplier_id}")
        return products

"""Tests for the inventory rollup."""

import pytest

from inventory_service import (
    InventoryService,
    extract_supplier_name,
    location_matches,
    normalize_location,
)
from purchase_order_service import PurchaseOrderService
from transfer_service import TransferService
from tests.utils import make_product, make_vendor

SELLER_ID = 'seller-1'


@pytest.fixture
def stock(backend):
    """One approved PO for 100 widgets, partly moved through the warehouses."""
    vendor = make_vendor(backend, SELLER_ID)
    widget = make_product(backend, SELLER_ID, 'WID-001', 'Widget', vendor_id=vendor['id'])

    orders = PurchaseOrderService(backend)
    order = orders.create_order(SELLER_ID, {
        'supplier_id': vendor['id'],
        'items': [{'product_id': widget['id'], 'quantity': 100, 'unit_price': 2.5}]
    })
    backend.update('purchase_orders', {'status': 'approved'}, {'id': order['id']})

    # A draft order never counts
    orders.create_order(SELLER_ID, {
        'supplier_id': vendor['id'],
        'items': [{'product_id': widget['id'], 'quantity': 999}]
    })

    transfers = TransferService(backend)
    transfers.create_transfer(SELLER_ID, {
        'transfer_type': 'in',
        'from_location': 'Production',
        'to_location': 'Supplier Warehouse',
        'purchase_order_id': order['id'],
        'items': [{'sku': 'WID-001', 'product_name': 'Widget', 'quantity': 60, 'unit': 'pcs'}]
    })
    transfers.create_transfer(SELLER_ID, {
        'transfer_type': 'transfer',
        'from_location': 'Supplier Warehouse',
        'to_location': '3PL Warehouse',
        'items': [{'sku': 'WID-001', 'product_name': 'Widget', 'quantity': 20, 'unit': 'pcs'}]
    })
    transfers.create_transfer(SELLER_ID, {
        'transfer_type': 'out',
        'from_location': '3PL Warehouse',
        'items': [{'sku': 'WID-001', 'product_name': 'Widget', 'quantity': 5, 'unit': 'pcs'}]
    })
    return {'vendor': vendor, 'order': order}


class TestLocationNames:
    @pytest.mark.parametrize('raw, expected', [
        ('3PL Warehouse', '3PL Warehouse'),
        ('ShipBob 3pl', '3PL Warehouse'),
        ('Acme (Warehouse)', 'Supplier Warehouse'),
        ('supplier warehouse', 'Supplier Warehouse'),
        ('Amazon', 'Amazon FBA'),
        ('FBA ONT8', 'Amazon FBA'),
        ('In Production', 'Production'),
        ('Retail Store', 'Retail Store'),
        (None, None),
    ])
    def test_normalize_location(self, raw, expected):
        assert normalize_location(raw) == expected

    @pytest.mark.parametrize('raw, expected', [
        ('ABC Supplier (Warehouse)', 'ABC Supplier'),
        ('ABC Supplier Warehouse', 'ABC Supplier'),
        ('Supplier Warehouse', None),
        ('Production', None),
        ('', None),
    ])
    def test_extract_supplier_name(self, raw, expected):
        assert extract_supplier_name(raw) == expected

    def test_location_matches(self):
        assert location_matches('Supplier Warehouse', 'supplier_warehouse')
        assert not location_matches('3PL Warehouse', 'supplier_warehouse')
        assert location_matches('3PL Warehouse', '3pl_warehouse')
        assert location_matches('Amazon FBA', 'amazon_fba')
        assert location_matches('Production', 'production')


class TestInventory:
    def test_positions_per_location(self, backend, stock):
        inventory = InventoryService(backend).get_inventory(SELLER_ID)

        assert inventory['summary'] == {'total_locations': 3, 'total_skus': 1, 'total_movements': 3}
        quantities = {loc['location']: loc['total_quantity'] for loc in inventory['locations']}
        assert quantities == {'Production': 40, 'Supplier Warehouse': 40, '3PL Warehouse': 15}

        [sku] = inventory['skus']
        assert sku['sku'] == 'WID-001'
        assert sku['total_quantity'] == 95
        assert sku['location_count'] == 3
        assert sku['supplier_name'] == 'Shenzhen Widgets'

        warehouse = next(loc for loc in inventory['locations'] if loc['location'] == 'Supplier Warehouse')
        assert warehouse['skus'][0]['supplier_name'] == 'Shenzhen Widgets'

    def test_movements_carry_po_details(self, backend, stock):
        movements = InventoryService(backend).get_inventory(SELLER_ID)['movements']

        assert [m['transfer_type'] for m in movements] == ['in', 'transfer', 'out']
        assert movements[0]['po_number'] == stock['order']['po_number']
        assert movements[0]['supplier'] == 'Shenzhen Widgets'
        assert movements[1]['po_number'] is None

    def test_location_filter(self, backend, stock):
        inventory = InventoryService(backend).get_inventory(SELLER_ID, location='3pl_warehouse')

        assert [loc['location'] for loc in inventory['locations']] == ['3PL Warehouse']
        assert [m['transfer_type'] for m in inventory['movements']] == ['transfer', 'out']
        # Summary describes the unfiltered inventory
        assert inventory['summary']['total_locations'] == 3

    def test_sku_filter_is_case_insensitive(self, backend, stock):
        service = InventoryService(backend)

        assert len(service.get_inventory(SELLER_ID, sku='wid')['skus']) == 1
        empty = service.get_inventory(SELLER_ID, sku='nope')
        assert empty['skus'] == []
        assert empty['locations'] == []
        assert empty['movements'] == []

    def test_fully_moved_order_leaves_production(self, backend, stock):
        TransferService(backend).create_transfer(SELLER_ID, {
            'transfer_type': 'in',
            'from_location': 'Production',
            'to_location': 'Supplier Warehouse',
            'purchase_order_id': stock['order']['id'],
            'items': [{'sku': 'WID-001', 'product_name': 'Widget', 'quantity': 40, 'unit': 'pcs'}]
        })

        locations = {loc['location'] for loc in InventoryService(backend).get_inventory(SELLER_ID)['locations']}
        assert 'Production' not in locations

    def test_named_supplier_warehouse(self, backend):
        TransferService(backend).create_transfer(SELLER_ID, {
            'transfer_type': 'in',
            'to_location': 'Guangzhou Plant (Warehouse)',
            'items': [{'sku': 'BOX-9', 'product_name': 'Box', 'quantity': 12, 'unit': 'pcs'}]
        })

        inventory = InventoryService(backend).get_inventory(SELLER_ID)

        [location] = inventory['locations']
        assert location['location'] == 'Supplier Warehouse'
        assert location['skus'][0]['supplier_name'] == 'Guangzhou Plant'

    def test_empty_inventory(self, backend):
        inventory = InventoryService(backend).get_inventory(SELLER_ID)
        assert inventory == {
            'summary': {'total_locations': 0, 'total_skus': 0, 'total_movements': 0},
            'locations': [],
            'skus': [],
            'movements': []
        }


class TestInventoryRoute:
    def test_requires_login(self, client):
        assert client.get('/api/inventory').status_code == 401

    def test_returns_seller_inventory(self, client, backend, seller):
        TransferService(backend).create_transfer(seller['id'], {
            'transfer_type': 'in',
            'to_location': 'Amazon FBA',
            'items': [{'sku': 'WID-001', 'quantity': 7}]
        })

        response = client.get('/api/inventory?location=amazon_fba', headers=seller['headers'])

        body = response.get_json()
        assert response.status_code == 200
        assert body['locations'][0]['location'] == 'Amazon FBA'
        assert body['locations'][0]['total_quantity'] == 7

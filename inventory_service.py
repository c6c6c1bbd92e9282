"""
Inventory positions by location and SKU.

Positions are derived, not stored: open purchase order quantities that have not
been moved yet sit in Production, and every transfer item moves stock between
normalized locations. The ledger is rolled up with pandas.
"""

import logging
import re
from typing import Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

PRODUCTION = 'Production'
SUPPLIER_WAREHOUSE = 'Supplier Warehouse'
THREE_PL_WAREHOUSE = '3PL Warehouse'
AMAZON_FBA = 'Amazon FBA'

INVENTORY_PO_STATUSES = ['approved', 'in_progress', 'complete']
LEDGER_COLUMNS = ['location', 'sku', 'product_name', 'unit_of_measure', 'quantity', 'supplier_name']
MOVEMENT_LIMIT = 100


def normalize_location(location: Optional[str]) -> Optional[str]:
    if not location:
        return location
    lower = location.lower()
    if '3pl' in lower:
        return THREE_PL_WAREHOUSE
    if 'warehouse' in lower:
        return SUPPLIER_WAREHOUSE
    if 'amazon' in lower or 'fba' in lower:
        return AMAZON_FBA
    if 'production' in lower:
        return PRODUCTION
    return location


def extract_supplier_name(location: Optional[str]) -> Optional[str]:
    """'ABC Supplier (Warehouse)' or legacy 'ABC Supplier Warehouse' -> 'ABC Supplier'"""
    if not location:
        return None
    if '(Warehouse)' in location:
        name = location.replace('(Warehouse)', '').strip()
    elif 'warehouse' in location.lower():
        name = re.sub(r'\s*[Ww]arehouse\s*$', '', location).strip()
    else:
        return None
    if not name or name.lower() in ('supplier', 'supplier warehouse'):
        return None
    return name


def location_matches(location: Optional[str], location_key: str) -> bool:
    """Match a location name against the filter keys the inventory page sends"""
    lower = (location or '').lower()
    if location_key == 'production':
        return 'production' in lower
    if location_key == 'supplier_warehouse':
        return 'supplier' in lower or ('warehouse' in lower and '3pl' not in lower)
    if location_key == '3pl_warehouse':
        return '3pl' in lower
    if location_key == 'amazon_fba':
        return 'amazon' in lower or 'fba' in lower
    return location_key.lower() in lower


def _number(value):
    value = float(value)
    return int(value) if value.is_integer() else round(value, 4)


class InventoryService:
    def __init__(self, backend):
        self.backend = backend

    def _load(self, seller_id: str) -> Dict[str, List[Dict]]:
        """Fetch every row the rollup needs for one seller"""
        orders = self.backend.select('purchase_orders', {'seller_id': seller_id, 'status': INVENTORY_PO_STATUSES})
        order_ids = [order['id'] for order in orders]
        po_items = self.backend.select('purchase_order_items', {'purchase_order_id': order_ids}) if order_ids else []

        transfers = self.backend.select('transfers', {'seller_id': seller_id}, order_by='created_at')
        transfer_ids = [transfer['id'] for transfer in transfers]
        transfer_items = self.backend.select('transfer_items', {'transfer_id': transfer_ids}) if transfer_ids else []

        # Transfers can reference orders outside the inventory statuses
        linked_po_ids = {t['purchase_order_id'] for t in transfers if t.get('purchase_order_id')}
        missing = list(linked_po_ids - set(order_ids))
        all_orders = orders + (self.backend.select('purchase_orders', {'id': missing}) if missing else [])

        product_ids = list({item['product_id'] for item in po_items if item.get('product_id')})
        products = self.backend.select('products', {'id': product_ids}) if product_ids else []
        vendor_ids = list({order['supplier_id'] for order in all_orders if order.get('supplier_id')})
        vendors = self.backend.select('vendors', {'id': vendor_ids}) if vendor_ids else []

        return {
            'orders': orders,
            'all_orders': all_orders,
            'po_items': po_items,
            'transfers': transfers,
            'transfer_items': transfer_items,
            'products': products,
            'vendors': vendors
        }

    def build_ledger(self, data: Dict[str, List[Dict]]):
        """
        Returns:
            tuple: (ledger DataFrame with one signed quantity per entry, list of movement dicts)
        """
        products = {product['id']: product for product in data['products']}
        vendor_names = {vendor['id']: vendor.get('vendor_name') for vendor in data['vendors']}
        po_numbers = {order['id']: order.get('po_number') for order in data['all_orders']}
        po_suppliers = {order['id']: vendor_names.get(order.get('supplier_id')) for order in data['all_orders']}
        transfers = {transfer['id']: transfer for transfer in data['transfers']}

        entries = []
        movements = []

        # Production: ordered minus already moved out of the same PO
        items = pd.DataFrame(data['transfer_items'], columns=['id', 'transfer_id', 'sku', 'product_name', 'quantity', 'unit'])
        items['purchase_order_id'] = items['transfer_id'].map(
            lambda transfer_id: transfers.get(transfer_id, {}).get('purchase_order_id'))
        moved = items.dropna(subset=['purchase_order_id']).groupby(['purchase_order_id', 'sku'])['quantity'].sum().to_dict()

        ordered_rows = []
        for item in data['po_items']:
            product = products.get(item.get('product_id'))
            if not product:
                continue
            ordered_rows.append({
                'purchase_order_id': item['purchase_order_id'],
                'sku': product['sku'],
                'product_name': product.get('product_name'),
                'unit_of_measure': product.get('unit_of_measure'),
                'quantity': item.get('quantity') or 0
            })
        ordered = pd.DataFrame(ordered_rows, columns=['purchase_order_id', 'sku', 'product_name', 'unit_of_measure', 'quantity'])
        if not ordered.empty:
            ordered = ordered.groupby(['purchase_order_id', 'sku'], as_index=False).agg(
                product_name=('product_name', 'first'),
                unit_of_measure=('unit_of_measure', 'first'),
                quantity=('quantity', 'sum')
            )
            for row in ordered.itertuples(index=False):
                remaining = row.quantity - moved.get((row.purchase_order_id, row.sku), 0)
                if remaining > 0:
                    entries.append((PRODUCTION, row.sku, row.product_name, row.unit_of_measure, remaining, None))

        # Transfers, oldest first
        order_index = {transfer_id: position for position, transfer_id in enumerate(transfers)}
        for item in sorted(data['transfer_items'], key=lambda i: order_index.get(i['transfer_id'], 0)):
            transfer = transfers.get(item['transfer_id'])
            if not transfer:
                continue
            sku = item['sku']
            quantity = item.get('quantity') or 0
            transfer_type = transfer.get('transfer_type')
            from_location = transfer.get('from_location')
            to_location = transfer.get('to_location')
            po_id = transfer.get('purchase_order_id')

            movements.append({
                'id': f"{transfer['id']}-{item['id']}",
                'transfer_number': transfer.get('transfer_number'),
                'transfer_date': transfer.get('created_at'),
                'sku': sku,
                'product_name': item.get('product_name'),
                'quantity': quantity,
                'unit_of_measure': item.get('unit'),
                'transfer_type': transfer_type,
                'from_location': from_location,
                'to_location': to_location,
                'po_number': po_numbers.get(po_id),
                'supplier': po_suppliers.get(po_id)
            })

            def entry(location, signed_quantity, supplier=None):
                entries.append((location, sku, item.get('product_name'), item.get('unit'), signed_quantity, supplier))

            if transfer_type == 'in':
                destination = normalize_location(to_location or SUPPLIER_WAREHOUSE)
                supplier = None
                if destination == SUPPLIER_WAREHOUSE:
                    supplier = po_suppliers.get(po_id) or extract_supplier_name(to_location)
                    if not supplier and (to_location or '').lower() == 'supplier warehouse' \
                            and from_location and normalize_location(from_location) != PRODUCTION:
                        supplier = from_location
                entry(destination, quantity, supplier)

            elif transfer_type == 'transfer':
                source = normalize_location(from_location)
                destination = normalize_location(to_location)
                if source:
                    supplier = extract_supplier_name(from_location) if source == SUPPLIER_WAREHOUSE else None
                    entry(source, -quantity, supplier)
                if destination:
                    supplier = extract_supplier_name(to_location) if destination == SUPPLIER_WAREHOUSE else None
                    entry(destination, quantity, supplier)

            elif transfer_type == 'out':
                source = normalize_location(from_location)
                if source:
                    entry(source, -quantity)

        ledger = pd.DataFrame(entries, columns=LEDGER_COLUMNS)
        return ledger, movements

    def summarize(self, ledger) -> Dict[str, List[Dict]]:
        if ledger.empty:
            return {'locations': [], 'skus': []}

        positions = ledger.groupby(['location', 'sku'], as_index=False).agg(
            product_name=('product_name', 'first'),
            unit_of_measure=('unit_of_measure', 'first'),
            quantity=('quantity', 'sum')
        )
        positions = positions[positions['quantity'] != 0]

        # Dominant supplier per SKU in the supplier warehouse
        attributed = ledger[(ledger['location'] == SUPPLIER_WAREHOUSE) & ledger['supplier_name'].notna()]
        suppliers: Dict[str, str] = {}
        if not attributed.empty:
            per_supplier = attributed.groupby(['sku', 'supplier_name'])['quantity'].sum()
            per_supplier = per_supplier[per_supplier > 0]
            if not per_supplier.empty:
                for sku, (_, supplier_name) in per_supplier.groupby(level='sku').idxmax().items():
                    suppliers[sku] = supplier_name

        locations = []
        for location, group in positions.groupby('location', sort=True):
            skus = []
            for row in group.sort_values('sku').itertuples(index=False):
                skus.append({
                    'sku': row.sku,
                    'product_name': None if pd.isna(row.product_name) else row.product_name,
                    'quantity': _number(row.quantity),
                    'unit_of_measure': None if pd.isna(row.unit_of_measure) else row.unit_of_measure,
                    'supplier_name': suppliers.get(row.sku) if location == SUPPLIER_WAREHOUSE else None
                })
            total = sum(s['quantity'] for s in skus)
            if total != 0:
                locations.append({
                    'location': location,
                    'total_quantity': _number(total),
                    'sku_count': len(skus),
                    'skus': skus
                })

        sku_summary = []
        for sku, group in positions.groupby('sku', sort=True):
            sku_locations = {row.location: _number(row.quantity) for row in group.itertuples(index=False)}
            total = sum(sku_locations.values())
            if total == 0:
                continue
            product_names = group['product_name'].dropna()
            units = group['unit_of_measure'].dropna()
            sku_summary.append({
                'sku': sku,
                'product_name': product_names.iloc[0] if not product_names.empty else None,
                'unit_of_measure': units.iloc[0] if not units.empty else None,
                'total_quantity': _number(total),
                'locations': sku_locations,
                'location_count': len(sku_locations),
                'supplier_name': suppliers.get(sku) if SUPPLIER_WAREHOUSE in sku_locations else None
            })

        return {'locations': locations, 'skus': sku_summary}

    def get_inventory(self, seller_id: str, location: Optional[str] = None, sku: Optional[str] = None) -> Dict:
        data = self._load(seller_id)
        ledger, movements = self.build_ledger(data)
        summary = self.summarize(ledger)
        locations, skus = summary['locations'], summary['skus']

        logger.info(f"Inventory for {seller_id}: {len(locations)} locations, {len(skus)} SKUs, "
                    f"{len(movements)} movements")

        result = {
            'summary': {
                'total_locations': len(locations),
                'total_skus': len(skus),
                'total_movements': len(movements)
            }
        }

        if location:
            locations = [loc for loc in locations if location_matches(loc['location'], location)]
            movements = [m for m in movements
                         if location_matches(m['from_location'], location) or location_matches(m['to_location'], location)]

        if sku:
            needle = sku.lower()
            skus = [s for s in skus if needle in s['sku'].lower()]
            movements = [m for m in movements if needle in m['sku'].lower()]
            filtered_locations = []
            for loc in locations:
                matching = [s for s in loc['skus'] if needle in s['sku'].lower()]
                if matching:
                    filtered_locations.append({
                        **loc,
                        'skus': matching,
                        'sku_count': len(matching),
                        'total_quantity': _number(sum(s['quantity'] for s in matching))
                    })
            locations = filtered_locations

        result['locations'] = locations
        result['skus'] = skus
        result['movements'] = movements[-MOVEMENT_LIMIT:]
        return result

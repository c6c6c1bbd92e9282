"""
Purchase orders and their line items
"""

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from compensation import CompensationPlan
from exceptions import BackendError, PermissionDenied, RecordNotFound, ValidationFailure

logger = logging.getLogger(__name__)

PURCHASE_ORDER_STATUSES = ['draft', 'sent_to_supplier', 'approved', 'in_progress', 'complete', 'cancelled']

SELLER_TRANSITIONS = {
    'draft': ['sent_to_supplier', 'cancelled'],
    'sent_to_supplier': ['cancelled'],
    'approved': ['in_progress', 'cancelled'],
    'in_progress': ['complete', 'cancelled'],
    'complete': [],
    'cancelled': []
}

# Only the vendor can approve an order it received
VENDOR_TRANSITIONS = {
    'draft': ['sent_to_supplier', 'cancelled'],
    'sent_to_supplier': ['approved', 'cancelled'],
    'approved': ['in_progress'],
    'in_progress': ['approved', 'complete'],
    'complete': [],
    'cancelled': []
}

ITEM_FIELDS = ['product_id', 'product_supplier_id', 'price_tier_id', 'quantity', 'unit_price', 'notes']

# Request keys that are not purchase_orders columns
NON_COLUMN_KEYS = ['statusNote', 'status_note', 'vendorStatus', 'items']


def can_transition(from_status: str, to_status: str, is_vendor: bool = False) -> bool:
    transitions = VENDOR_TRANSITIONS if is_vendor else SELLER_TRANSITIONS
    return to_status in transitions.get(from_status, [])


def line_total(quantity, unit_price) -> float:
    return round(float(quantity or 0) * float(unit_price or 0), 2)


class PurchaseOrderService:
    def __init__(self, backend):
        self.backend = backend

    # ========================================
    # Queries
    # ========================================

    def vendor_ids_for_user(self, user_id: str) -> List[str]:
        return [vendor['id'] for vendor in self.backend.select('vendors', {'user_id': user_id})]

    def list_orders(self, user_id: str, vendor_id: Optional[str] = None, status: Optional[str] = None) -> List[Dict]:
        """Orders the user placed (seller) or received (vendor user), newest first"""
        vendor_ids = self.vendor_ids_for_user(user_id)
        filters = {'supplier_id': vendor_ids} if vendor_ids else {'seller_id': user_id}
        if vendor_id:
            if vendor_ids and vendor_id not in vendor_ids:
                return []
            filters['supplier_id'] = vendor_id
        if status and status != 'all':
            filters['status'] = status

        orders = self.backend.select('purchase_orders', filters, order_by='created_at', descending=True)
        if not orders:
            return []

        items_by_order = self._items_by_order([order['id'] for order in orders])
        suppliers = self._by_id('vendors', {order['supplier_id'] for order in orders})

        for order in orders:
            order['items'] = items_by_order.get(order['id'], [])
            supplier = suppliers.get(order['supplier_id'])
            order['supplier'] = {
                'id': supplier['id'],
                'vendor_name': supplier.get('vendor_name'),
                'vendor_type': supplier.get('vendor_type')
            } if supplier else None
        return orders

    def get_order(self, order_id: str) -> Dict:
        try:
            order = self.backend.select_one('purchase_orders', {'id': order_id})
        except RecordNotFound:
            raise RecordNotFound('Purchase order not found')

        sellers = self.backend.select('sellers', {'id': order['seller_id']})
        order['seller'] = self._with_profile(sellers[0] if sellers else {'id': order['seller_id']})
        suppliers = self.backend.select('vendors', {'id': order['supplier_id']})
        order['supplier'] = suppliers[0] if suppliers else None
        order['items'] = self._items_by_order([order_id], detailed=True).get(order_id, [])

        history = self.backend.select('purchase_order_status_history', {'purchase_order_id': order_id},
                                      order_by='created_at')
        order['status_history'] = self._annotate_history(history)
        return order

    def _with_profile(self, seller: Dict) -> Dict:
        """Fill seller display fields the sellers row leaves empty from the signup profile"""
        profiles = self.backend.select('profiles', {'id': seller['id']})
        if profiles:
            for key in ('full_name', 'company_name'):
                if not seller.get(key):
                    seller[key] = profiles[0].get(key)
        return seller

    def _by_id(self, table: str, ids) -> Dict[str, Dict]:
        ids = [row_id for row_id in ids if row_id]
        if not ids:
            return {}
        return {row['id']: row for row in self.backend.select(table, {'id': ids})}

    def _items_by_order(self, order_ids: List[str], detailed: bool = False) -> Dict[str, List[Dict]]:
        items = self.backend.select('purchase_order_items', {'purchase_order_id': order_ids}, order_by='created_at')
        products = self._by_id('products', {item.get('product_id') for item in items})
        if detailed:
            product_suppliers = self._by_id('product_suppliers', {item.get('product_supplier_id') for item in items})
            price_tiers = self._by_id('supplier_price_tiers', {item.get('price_tier_id') for item in items})

        grouped: Dict[str, List[Dict]] = {}
        for item in items:
            product = products.get(item.get('product_id'))
            if detailed:
                item['product'] = product
                item['product_supplier'] = product_suppliers.get(item.get('product_supplier_id'))
                item['price_tier'] = price_tiers.get(item.get('price_tier_id'))
            else:
                item['product'] = {
                    'id': product['id'],
                    'product_name': product.get('product_name'),
                    'sku': product.get('sku')
                } if product else None
            grouped.setdefault(item['purchase_order_id'], []).append(item)
        return grouped

    def _annotate_history(self, history: List[Dict]) -> List[Dict]:
        """Attach changed_by_user {type, name} to each status history entry"""
        user_ids = {entry['changed_by'] for entry in history if entry.get('changed_by')}
        if not user_ids:
            return history

        profiles = self._by_id('profiles', user_ids)
        sellers = self._by_id('sellers', user_ids)
        vendors = {vendor['user_id']: vendor for vendor in self.backend.select('vendors', {'user_id': list(user_ids)})}

        for entry in history:
            changed_by = entry.get('changed_by')
            if not changed_by:
                continue
            if changed_by in sellers:
                seller = {**(profiles.get(changed_by) or {}), **{k: v for k, v in sellers[changed_by].items() if v}}
                entry['changed_by_user'] = {
                    'type': 'seller',
                    'name': seller.get('company_name') or seller.get('full_name') or 'Seller'
                }
            elif changed_by in vendors:
                entry['changed_by_user'] = {'type': 'vendor', 'name': vendors[changed_by].get('vendor_name')}
        return history

    # ========================================
    # Access checks
    # ========================================

    def check_access(self, order: Dict, user_id: str) -> bool:
        """
        Returns:
            bool: True when the user acts as the order's vendor, False when it is the seller

        Raises:
            PermissionDenied: the user is neither
        """
        if order['seller_id'] == user_id:
            return False
        vendors = self.backend.select('vendors', {'id': order['supplier_id'], 'user_id': user_id})
        if vendors:
            return True
        raise PermissionDenied()

    def _owned_order(self, order_id: str, seller_id: str) -> Dict:
        try:
            return self.backend.select_one('purchase_orders', {'id': order_id, 'seller_id': seller_id})
        except RecordNotFound:
            raise RecordNotFound('Purchase order not found')

    def _owned_draft(self, order_id: str, seller_id: str, message: str) -> Dict:
        order = self._owned_order(order_id, seller_id)
        if order['status'] != 'draft':
            raise ValidationFailure(message)
        return order

    # ========================================
    # Writes
    # ========================================

    def generate_po_number(self, seller_id: str) -> str:
        try:
            po_number = self.backend.rpc('generate_po_number', {'seller_id': seller_id})
            if po_number:
                return po_number
        except BackendError as e:
            logger.warning(f"generate_po_number unavailable, using timestamp fallback: {e.message}")
        return f"PO-{int(time.time() * 1000)}"

    @staticmethod
    def _item_rows(order_id: str, items: List[Dict]) -> List[Dict]:
        rows = []
        for item in items:
            if not isinstance(item, dict):
                raise ValidationFailure('Each item must be an object')
            if item.get('quantity') is None:
                raise ValidationFailure('Each item needs a quantity')
            row = {field: item.get(field) for field in ITEM_FIELDS if field in item}
            row['purchase_order_id'] = order_id
            row['line_total'] = line_total(item.get('quantity'), item.get('unit_price'))
            rows.append(row)
        return rows

    def create_order(self, seller_id: str, payload: Dict) -> Dict:
        payload = dict(payload or {})
        supplier_id = payload.pop('supplier_id', None)
        items = payload.pop('items', None)
        if not supplier_id or not items or not isinstance(items, list):
            raise ValidationFailure('Supplier ID and items are required')
        for key in NON_COLUMN_KEYS:
            payload.pop(key, None)

        po_number = self.generate_po_number(seller_id)
        plan = CompensationPlan(f'purchase order {po_number}')
        plan.add_step(
            'order',
            lambda results: self.backend.insert('purchase_orders', {
                'subtotal': round(sum(line_total(i.get('quantity'), i.get('unit_price'))
                                      for i in items if isinstance(i, dict)), 2),
                **payload,
                'po_number': po_number,
                'seller_id': seller_id,
                'supplier_id': supplier_id
            })[0],
            undo=lambda order: self._delete_order_rows(order['id'])
        )
        plan.add_step(
            'items',
            lambda results: self.backend.insert('purchase_order_items',
                                                self._item_rows(results['order']['id'], items))
        )
        results = plan.execute()

        order_id = results['order']['id']
        logger.info(f"Created purchase order {po_number} ({order_id}) with {len(items)} item(s)")
        return self.get_order(order_id)

    def _delete_order_rows(self, order_id: str) -> None:
        self.backend.delete('purchase_order_items', {'purchase_order_id': order_id})
        self.backend.delete('purchase_order_status_history', {'purchase_order_id': order_id})
        self.backend.delete('purchase_orders', {'id': order_id})

    def update_order(self, order_id: str, user_id: str, body: Dict) -> Dict:
        """Partial update by the seller or the order's vendor, enforcing status transitions"""
        body = dict(body or {})
        try:
            existing = self.backend.select_one('purchase_orders', {'id': order_id})
        except RecordNotFound:
            raise RecordNotFound('Purchase order not found')

        is_vendor = self.check_access(existing, user_id)
        new_status = body.get('status')

        if 'status' in body:
            if new_status not in PURCHASE_ORDER_STATUSES:
                raise ValidationFailure(f'Unknown status {new_status}')
            # A vendor may resend the current status while its own sub-status moves on
            same_status_by_vendor = is_vendor and new_status == existing['status']
            if not same_status_by_vendor and not can_transition(existing['status'], new_status, is_vendor):
                raise ValidationFailure(f"Cannot transition from {existing['status']} to {new_status}")

        status_note = body.get('statusNote') or body.get('status_note')
        values = {key: value for key, value in body.items() if key not in NON_COLUMN_KEYS}
        if body.get('vendorStatus'):
            values['vendor_status'] = body['vendorStatus']
        for protected in ('id', 'seller_id', 'po_number', 'created_at'):
            values.pop(protected, None)
        values['updated_at'] = datetime.utcnow().isoformat()

        self.backend.update('purchase_orders', values, {'id': order_id})

        if new_status and new_status != existing['status']:
            self._record_history(order_id, existing['status'], new_status, user_id, status_note)

        new_ready_date = body.get('goods_ready_date')
        if new_ready_date and new_ready_date != existing.get('goods_ready_date'):
            old_ready_date = existing.get('goods_ready_date') or 'not set'
            self._record_history(order_id, existing['status'], existing['status'], user_id,
                                 f'Goods ready date updated from {old_ready_date} to {new_ready_date}')

        logger.info(f"Updated purchase order {order_id} by {'vendor' if is_vendor else 'seller'} {user_id}")
        return self.get_order(order_id)

    def _record_history(self, order_id, from_status, to_status, user_id, notes=None):
        try:
            self.backend.insert('purchase_order_status_history', {
                'purchase_order_id': order_id,
                'from_status': from_status,
                'to_status': to_status,
                'changed_by': user_id,
                'notes': notes
            })
        except BackendError as e:
            # History is informational; the order update already succeeded
            logger.error(f"Error creating status history for {order_id}: {e.message}")

    def replace_order(self, order_id: str, seller_id: str, body: Dict) -> Dict:
        """Edit a draft: header fields plus a full replacement of its items"""
        body = body or {}
        self._owned_draft(order_id, seller_id, 'Can only edit orders in draft status')

        items = body.get('items') or []
        new_rows = self._item_rows(order_id, items)

        self.backend.update('purchase_orders', {
            'notes': body.get('notes'),
            'trade_terms': body.get('trade_terms'),
            'subtotal': body.get('subtotal'),
            'updated_at': datetime.utcnow().isoformat()
        }, {'id': order_id})
        self.backend.delete('purchase_order_items', {'purchase_order_id': order_id})
        if new_rows:
            self.backend.insert('purchase_order_items', new_rows)

        logger.info(f"Replaced draft purchase order {order_id} with {len(new_rows)} item(s)")
        return self.get_order(order_id)

    def delete_order(self, order_id: str, seller_id: str) -> None:
        self._owned_draft(order_id, seller_id, 'Only draft purchase orders can be deleted')
        self._delete_order_rows(order_id)
        logger.info(f"Deleted draft purchase order {order_id}")

    # ========================================
    # Line items
    # ========================================

    def add_item(self, order_id: str, seller_id: str, body: Dict) -> Dict:
        self._owned_draft(order_id, seller_id, 'Items can only be added to draft purchase orders')
        row = self._item_rows(order_id, [body or {}])[0]
        item = self.backend.insert('purchase_order_items', row)[0]
        return self._with_product(item)

    def update_item(self, order_id: str, seller_id: str, item_id: str, body: Dict) -> Dict:
        if not item_id:
            raise ValidationFailure('Item ID is required')
        self._owned_draft(order_id, seller_id, 'Items can only be updated in draft purchase orders')

        try:
            existing = self.backend.select_one('purchase_order_items', {'id': item_id, 'purchase_order_id': order_id})
        except RecordNotFound:
            raise RecordNotFound('Purchase order item not found')

        values = {field: body[field] for field in ITEM_FIELDS if field in (body or {})}
        if 'quantity' in values or 'unit_price' in values:
            values['line_total'] = line_total(values.get('quantity', existing.get('quantity')),
                                              values.get('unit_price', existing.get('unit_price')))
        if not values:
            return self._with_product(existing)

        item = self.backend.update('purchase_order_items', values, {'id': item_id, 'purchase_order_id': order_id})[0]
        return self._with_product(item)

    def delete_item(self, order_id: str, seller_id: str, item_id: str) -> None:
        if not item_id:
            raise ValidationFailure('Item ID is required')
        self._owned_draft(order_id, seller_id, 'Items can only be removed from draft purchase orders')
        deleted = self.backend.delete('purchase_order_items', {'id': item_id, 'purchase_order_id': order_id})
        if not deleted:
            raise RecordNotFound('Purchase order item not found')

    def _with_product(self, item: Dict) -> Dict:
        products = self.backend.select('products', {'id': item['product_id']}) if item.get('product_id') else []
        item['product'] = {
            'id': products[0]['id'],
            'product_name': products[0].get('product_name'),
            'sku': products[0].get('sku')
        } if products else None
        return item

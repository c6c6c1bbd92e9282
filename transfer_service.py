"""
Stock transfers between locations (production, supplier warehouse, 3PL, Amazon FBA)
"""

import logging
import time
from datetime import date
from typing import Dict, List, Optional

from compensation import CompensationPlan
from exceptions import BackendError, RecordNotFound, ValidationFailure

logger = logging.getLogger(__name__)

TRANSFER_TYPES = ['in', 'transfer', 'out']
TRANSFER_ITEM_FIELDS = ['sku', 'product_name', 'quantity', 'unit']


class TransferService:
    def __init__(self, backend):
        self.backend = backend

    def _with_items(self, transfers: List[Dict]) -> List[Dict]:
        if not transfers:
            return transfers
        items = self.backend.select('transfer_items', {'transfer_id': [t['id'] for t in transfers]})
        grouped: Dict[str, List[Dict]] = {}
        for item in items:
            grouped.setdefault(item['transfer_id'], []).append(item)
        for transfer in transfers:
            transfer['items'] = grouped.get(transfer['id'], [])
        return transfers

    def list_transfers(self, seller_id: str, status: Optional[str] = None) -> List[Dict]:
        filters = {'seller_id': seller_id}
        if status and status != 'all':
            filters['status'] = status
        transfers = self.backend.select('transfers', filters, order_by='created_at', descending=True)
        return self._with_items(transfers)

    def get_transfer(self, transfer_id: str, seller_id: str) -> Dict:
        try:
            transfer = self.backend.select_one('transfers', {'id': transfer_id, 'seller_id': seller_id})
        except RecordNotFound:
            raise RecordNotFound('Transfer not found')
        return self._with_items([transfer])[0]

    def create_transfer(self, seller_id: str, body: Dict) -> Dict:
        body = dict(body or {})
        items = body.pop('items', None) or []
        if body.get('transfer_type') not in TRANSFER_TYPES:
            raise ValidationFailure(f"transfer_type must be one of: {', '.join(TRANSFER_TYPES)}")
        for item in items:
            if not isinstance(item, dict) or not item.get('sku') or item.get('quantity') is None:
                raise ValidationFailure('Each transfer item needs a sku and a quantity')

        record = {
            **body,
            'seller_id': seller_id,
            # Instant transfers are complete unless the caller says otherwise
            'status': body.get('status') or 'completed',
            'transfer_date': body.get('transfer_date') or date.today().isoformat(),
            'transfer_number': body.get('transfer_number') or f"TR-{int(time.time() * 1000)}"
        }

        plan = CompensationPlan(f"transfer {record['transfer_number']}")
        plan.add_step(
            'transfer',
            lambda results: self.backend.insert('transfers', record)[0],
            undo=lambda transfer: self.backend.delete('transfers', {'id': transfer['id']})
        )
        if items:
            plan.add_step(
                'items',
                lambda results: self.backend.insert('transfer_items', [
                    {**{field: item.get(field) for field in TRANSFER_ITEM_FIELDS},
                     'transfer_id': results['transfer']['id']}
                    for item in items
                ])
            )
        try:
            results = plan.execute()
        except BackendError as e:
            failed = 'transfer items' if plan.failed_step == 'items' else 'transfer'
            raise BackendError(f'Failed to create {failed}', status_code=500,
                               details=e.message, hint=e.hint)

        transfer = results['transfer']
        logger.info(f"Created transfer {transfer['transfer_number']} with {len(items)} item(s)")
        return self._with_items([transfer])[0]

    def update_transfer(self, transfer_id: str, seller_id: str, body: Dict) -> Dict:
        if not transfer_id:
            raise ValidationFailure('Transfer ID required')
        values = {key: value for key, value in (body or {}).items()
                  if key not in ('id', 'seller_id', 'items', 'created_at')}
        self.get_transfer(transfer_id, seller_id)
        if values:
            self.backend.update('transfers', values, {'id': transfer_id, 'seller_id': seller_id})
        return self.get_transfer(transfer_id, seller_id)

    def delete_transfer(self, transfer_id: str, seller_id: str) -> None:
        if not transfer_id:
            raise ValidationFailure('Transfer ID required')
        self.get_transfer(transfer_id, seller_id)
        self.backend.delete('transfer_items', {'transfer_id': transfer_id})
        self.backend.delete('transfers', {'id': transfer_id, 'seller_id': seller_id})
        logger.info(f"Deleted transfer {transfer_id}")

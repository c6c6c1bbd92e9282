"""Test doubles and data builders shared by the test modules."""

from typing import Any, Dict, List, Optional, Tuple

from email_service import EmailDeliveryError
from exceptions import BackendError, RecordNotFound


class RecordingBackend:
    """
    In-memory store double for the signup flow.

    Every call is appended to ``calls`` as (operation, target, ...). ``fail`` makes every
    later call with that operation and target raise the given error, undo deletes included.
    """

    kind = 'fake'

    def __init__(self, user_id: str = 'u1'):
        self.user_id = user_id
        self.calls: List[Tuple] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.identities: Dict[str, Dict] = {}
        self.tables: Dict[str, List[Dict]] = {}

    def fail(self, operation: str, target: str, error: Exception) -> None:
        self.failures[(operation, target)] = error

    def _record(self, operation: str, target: str, *args: Any) -> None:
        self.calls.append((operation, target) + args)
        error = self.failures.get((operation, target))
        if error is not None:
            raise error

    def operations(self) -> List[Tuple[str, str]]:
        return [call[:2] for call in self.calls]

    def create_identity(self, email, password, metadata=None):
        self._record('create_identity', 'auth', email)
        if any(user['email'] == email for user in self.identities.values()):
            raise BackendError('A user with this email address has already been registered', status_code=422)
        user = {'id': self.user_id, 'email': email, 'user_metadata': dict(metadata or {})}
        self.identities[user['id']] = user
        return user

    def delete_identity(self, user_id):
        self._record('delete_identity', 'auth', user_id)
        self.identities.pop(user_id, None)

    def insert(self, table, rows):
        self._record('insert', table)
        rows = [rows] if isinstance(rows, dict) else list(rows)
        stored = self.tables.setdefault(table, [])
        for row in rows:
            if any(existing.get('id') == row.get('id') for existing in stored):
                raise BackendError(f'duplicate key value violates unique constraint "{table}_pkey"', code='23505')
            stored.append(dict(row))
        return [dict(row) for row in rows]

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        self._record('select', table)
        rows = [row for row in self.tables.get(table, [])
                if all(row.get(key) == value for key, value in (filters or {}).items())]
        if limit:
            rows = rows[:limit]
        return [dict(row) for row in rows]

    def select_one(self, table, filters):
        rows = self.select(table, filters)
        if len(rows) != 1:
            raise RecordNotFound()
        return rows[0]

    def delete(self, table, filters):
        self._record('delete', table, filters)
        stored = self.tables.get(table, [])
        removed = [row for row in stored if all(row.get(k) == v for k, v in filters.items())]
        self.tables[table] = [row for row in stored if row not in removed]
        return removed


class FakeEmailService:
    """Records sent emails; set ``error`` to make send() fail."""

    def __init__(self, error: Optional[EmailDeliveryError] = None):
        self.error = error
        self.sent: List[Dict] = []

    def is_available(self) -> bool:
        return True

    def send(self, to, subject, html):
        if self.error is not None:
            raise self.error
        message = {'to': to, 'subject': subject, 'html': html}
        self.sent.append(message)
        return {'id': f'email-{len(self.sent)}'}


def auth_headers(token: str) -> Dict[str, str]:
    return {'Authorization': f'Bearer {token}'}


def signup_and_login(client, email: str, password: str = 'secret123', full_name: str = 'Test Seller',
                     company_name: Optional[str] = None) -> Dict:
    response = client.post('/api/auth/signup', json={
        'email': email,
        'password': password,
        'fullName': full_name,
        'companyName': company_name
    })
    assert response.status_code == 200, response.get_json()
    user_id = response.get_json()['userId']

    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    token = response.get_json()['access_token']
    return {'id': user_id, 'email': email, 'headers': auth_headers(token)}


def make_vendor(backend, seller_id: str, **overrides) -> Dict:
    values = {
        'seller_id': seller_id,
        'vendor_name': 'Shenzhen Widgets',
        'vendor_type': 'supplier',
        'email': 'vendor@example.com',
        'contact_name': 'Li Wei'
    }
    values.update(overrides)
    return backend.insert('vendors', values)[0]


def make_product(backend, seller_id: str, sku: str, product_name: str, vendor_id: Optional[str] = None,
                 unit_price: float = 2.5) -> Dict:
    product = backend.insert('products', {
        'seller_id': seller_id,
        'sku': sku,
        'product_name': product_name,
        'unit_of_measure': 'pcs'
    })[0]
    if vendor_id:
        link = backend.insert('product_suppliers', {
            'product_id': product['id'],
            'vendor_id': vendor_id,
            'lead_time_days': 30,
            'moq': 100,
            'is_primary': True
        })[0]
        backend.insert('supplier_price_tiers', [
            {'product_supplier_id': link['id'], 'minimum_order_quantity': 1000, 'unit_price': unit_price - 0.5},
            {'product_supplier_id': link['id'], 'minimum_order_quantity': 100, 'unit_price': unit_price}
        ])
    return product


def make_vendor_user(client, backend, vendor: Dict, email: str = 'vendor-user@example.com',
                     password: str = 'secret123') -> Dict:
    """Identity linked to ``vendor`` as its user, signed in."""
    identity = backend.create_identity(email, password, {'user_type': 'vendor'})
    backend.update('vendors', {'user_id': identity['id'], 'vendor_status': 'accepted'}, {'id': vendor['id']})
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return {'id': identity['id'], 'headers': auth_headers(response.get_json()['access_token'])}

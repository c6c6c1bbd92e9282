#!/usr/bin/env python3
"""
Supabase Admin Service
Talks to a hosted Supabase project with the service role key:
GoTrue admin API for identities, PostgREST for table rows
"""

import logging
from typing import Dict, List, Optional, Union

import requests

from exceptions import AuthenticationError, BackendError, RecordNotFound

logger = logging.getLogger(__name__)


class SupabaseAdminService:
    """
    Explicitly constructed client for the hosted auth/data store.
    The service role key bypasses row level security, so every table call
    made through this client must carry its own ownership filters.
    """

    kind = 'supabase'

    def __init__(self, url: str, service_role_key: str, anon_key: Optional[str] = None, timeout: int = 30):
        """
        Args:
            url (str): Project URL, e.g. https://xyz.supabase.co
            service_role_key (str): Admin key
            anon_key (str): Public key used for password sign-in (defaults to the admin key)
            timeout (int): Per-request timeout in seconds
        """
        if not url or not service_role_key:
            raise ValueError('Supabase URL and service role key are required')

        self.url = url.rstrip('/')
        self.auth_url = f"{self.url}/auth/v1"
        self.rest_url = f"{self.url}/rest/v1"
        self.service_role_key = service_role_key
        self.anon_key = anon_key or service_role_key
        self.timeout = timeout

        logger.info(f"Supabase admin client configured for {self.url}")

    # ========================================
    # Auth admin
    # ========================================

    def create_identity(self, email: str, password: str, metadata: Optional[Dict] = None) -> Dict:
        """
        Create a confirmed auth user

        Returns:
            dict: The created user, including its generated 'id'
        """
        payload = {
            'email': email,
            'password': password,
            'user_metadata': metadata or {},
            'email_confirm': True
        }
        response = self._request('POST', f"{self.auth_url}/admin/users", json=payload)
        data = response.json()
        # Older GoTrue versions wrap the user object
        user = data.get('user', data) if isinstance(data, dict) else data
        logger.info(f"Created identity {user.get('id')} for {email}")
        return user

    def delete_identity(self, user_id: str) -> None:
        self._request('DELETE', f"{self.auth_url}/admin/users/{user_id}")
        logger.info(f"Deleted identity {user_id}")

    def sign_in_with_password(self, email: str, password: str) -> Dict:
        response = self._request(
            'POST',
            f"{self.auth_url}/token",
            api_key=self.anon_key,
            params={'grant_type': 'password'},
            json={'email': email, 'password': password}
        )
        return response.json()

    def get_user(self, access_token: str) -> Dict:
        try:
            response = self._request('GET', f"{self.auth_url}/user", api_key=self.anon_key, bearer=access_token)
        except BackendError as e:
            # GoTrue answers 403 bad_jwt for malformed or forged tokens
            if e.status_code == 403:
                raise AuthenticationError(e.message)
            raise
        return response.json()

    # ========================================
    # Tables (PostgREST)
    # ========================================

    def select(self, table: str, filters: Optional[Dict] = None, order_by: Optional[str] = None,
               descending: bool = False, limit: Optional[int] = None) -> List[Dict]:
        params = {'select': '*'}
        params.update(self._filter_params(filters))
        if order_by:
            params['order'] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit:
            params['limit'] = limit
        response = self._request('GET', f"{self.rest_url}/{table}", params=params)
        return response.json()

    def select_one(self, table: str, filters: Dict) -> Dict:
        rows = self.select(table, filters, limit=2)
        if len(rows) != 1:
            raise RecordNotFound()
        return rows[0]

    def insert(self, table: str, rows: Union[Dict, List[Dict]]) -> List[Dict]:
        response = self._request(
            'POST',
            f"{self.rest_url}/{table}",
            json=rows,
            headers={'Prefer': 'return=representation'}
        )
        return response.json()

    def update(self, table: str, values: Dict, filters: Dict) -> List[Dict]:
        if not filters:
            raise BackendError('UPDATE requires a WHERE clause', code='21000')
        response = self._request(
            'PATCH',
            f"{self.rest_url}/{table}",
            params=self._filter_params(filters),
            json=values,
            headers={'Prefer': 'return=representation'}
        )
        return response.json()

    def delete(self, table: str, filters: Dict) -> List[Dict]:
        if not filters:
            raise BackendError('DELETE requires a WHERE clause', code='21000')
        response = self._request(
            'DELETE',
            f"{self.rest_url}/{table}",
            params=self._filter_params(filters),
            headers={'Prefer': 'return=representation'}
        )
        return response.json() if response.content else []

    def rpc(self, name: str, params: Optional[Dict] = None):
        response = self._request('POST', f"{self.rest_url}/rpc/{name}", json=params or {})
        return response.json()

    def ping(self) -> bool:
        response = requests.request(
            'GET', f"{self.auth_url}/health",
            headers=self._headers(self.anon_key),
            timeout=self.timeout
        )
        return response.status_code < 500

    # ========================================
    # Helpers
    # ========================================

    def _headers(self, api_key: str, bearer: Optional[str] = None) -> Dict:
        return {
            'apikey': api_key,
            'Authorization': f'Bearer {bearer or api_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }

    def _request(self, method: str, url: str, api_key: Optional[str] = None,
                 bearer: Optional[str] = None, **kwargs) -> requests.Response:
        """
        Make a request against the project and raise BackendError on a non-2xx answer.
        Transport errors (requests.exceptions.RequestException) propagate unchanged.
        """
        headers = self._headers(api_key or self.service_role_key, bearer)
        headers.update(kwargs.pop('headers', {}))

        response = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)

        if response.status_code >= 400:
            error = self._error_from_response(response)
            logger.warning(f"Supabase {method} {url} failed: {response.status_code} - {error.message}")
            raise error
        return response

    @staticmethod
    def _error_from_response(response: requests.Response) -> BackendError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = (
            body.get('message')
            or body.get('msg')
            or body.get('error_description')
            or body.get('error')
            or response.text
            or f'Request failed with status {response.status_code}'
        )
        code = body.get('code') or body.get('error_code')

        if code == 'PGRST116':
            return RecordNotFound(message)
        if response.status_code == 401:
            return AuthenticationError(message)
        return BackendError(
            message,
            status_code=response.status_code,
            code=str(code) if code is not None else None,
            details=body.get('details'),
            hint=body.get('hint')
        )

    @staticmethod
    def _filter_params(filters: Optional[Dict]) -> Dict:
        """Translate {'column': value} equality filters into PostgREST query params"""
        params = {}
        for key, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                quoted = ','.join(f'"{item}"' for item in value)
                params[key] = f'in.({quoted})'
            elif value is None:
                params[key] = 'is.null'
            elif isinstance(value, bool):
                params[key] = f"eq.{'true' if value else 'false'}"
            else:
                params[key] = f'eq.{value}'
        return params

"""Tests for the hosted store client; HTTP is mocked at requests.request."""

from unittest.mock import Mock, patch

import pytest
import requests

from app import app as flask_app
from exceptions import AuthenticationError, BackendError, RecordNotFound
from supabase_admin_service import SupabaseAdminService


def make_response(status_code=200, json_data=None, text=''):
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    response.content = b'' if json_data is None and not text else b'x'
    if json_data is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def service():
    return SupabaseAdminService('https://project.supabase.co/', 'service-key', anon_key='anon-key', timeout=5)


class TestConstruction:
    def test_requires_url_and_key(self):
        with pytest.raises(ValueError):
            SupabaseAdminService('', 'service-key')

    def test_anon_key_defaults_to_service_key(self):
        assert SupabaseAdminService('https://p.supabase.co', 'service-key').anon_key == 'service-key'


class TestAuthAdmin:
    def test_create_identity_posts_confirmed_user(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'id': 'u1', 'email': 'a@b.com'})

            user = service.create_identity('a@b.com', 'secret123', {'full_name': 'A B', 'user_type': 'seller'})

        assert user['id'] == 'u1'
        args, kwargs = mock_request.call_args
        assert args == ('POST', 'https://project.supabase.co/auth/v1/admin/users')
        assert kwargs['json'] == {
            'email': 'a@b.com',
            'password': 'secret123',
            'user_metadata': {'full_name': 'A B', 'user_type': 'seller'},
            'email_confirm': True
        }
        assert kwargs['headers']['apikey'] == 'service-key'
        assert kwargs['headers']['Authorization'] == 'Bearer service-key'
        assert kwargs['timeout'] == 5

    def test_create_identity_unwraps_user_object(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'user': {'id': 'u2'}})
            assert service.create_identity('a@b.com', 'secret123')['id'] == 'u2'

    def test_create_identity_rejection_keeps_message(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(422, {
                'code': 422,
                'error_code': 'email_exists',
                'msg': 'A user with this email address has already been registered'
            })
            with pytest.raises(BackendError) as exc_info:
                service.create_identity('a@b.com', 'secret123')

        assert exc_info.value.message == 'A user with this email address has already been registered'
        assert exc_info.value.status_code == 422

    def test_delete_identity(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {})
            service.delete_identity('u1')

        args, _ = mock_request.call_args
        assert args == ('DELETE', 'https://project.supabase.co/auth/v1/admin/users/u1')

    def test_sign_in_uses_anon_key_and_password_grant(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'access_token': 'tok', 'user': {'id': 'u1'}})
            session = service.sign_in_with_password('a@b.com', 'secret123')

        assert session['access_token'] == 'tok'
        _, kwargs = mock_request.call_args
        assert kwargs['params'] == {'grant_type': 'password'}
        assert kwargs['headers']['apikey'] == 'anon-key'

    def test_get_user_sends_user_token(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'id': 'u1'})
            service.get_user('user-token')

        _, kwargs = mock_request.call_args
        assert kwargs['headers']['Authorization'] == 'Bearer user-token'

    def test_get_user_401_is_authentication_error(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(401, {'msg': 'invalid JWT'})
            with pytest.raises(AuthenticationError, match='invalid JWT'):
                service.get_user('expired')

    def test_get_user_bad_jwt_is_authentication_error(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(403, {
                'code': 403,
                'error_code': 'bad_jwt',
                'msg': 'invalid JWT: unable to parse or verify signature'
            })
            with pytest.raises(AuthenticationError):
                service.get_user('forged')

    def test_forged_token_on_protected_route_is_401(self, service):
        flask_app.config['MARKETPLACE_BACKEND'] = service
        try:
            with patch('supabase_admin_service.requests.request') as mock_request:
                mock_request.return_value = make_response(403, {
                    'error_code': 'bad_jwt',
                    'msg': 'invalid JWT: unable to parse or verify signature'
                })
                with flask_app.test_client() as client:
                    response = client.get('/api/inventory', headers={'Authorization': 'Bearer forged'})
        finally:
            flask_app.config['MARKETPLACE_BACKEND'] = None

        assert response.status_code == 401
        assert response.get_json() == {'error': 'Unauthorized'}


class TestTables:
    def test_select_translates_filters(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, [{'id': 'v1'}])
            rows = service.select('vendors', {
                'seller_id': 's1',
                'id': ['v1', 'v2'],
                'user_id': None,
                'is_primary': True
            }, order_by='created_at', descending=True, limit=10)

        assert rows == [{'id': 'v1'}]
        args, kwargs = mock_request.call_args
        assert args == ('GET', 'https://project.supabase.co/rest/v1/vendors')
        assert kwargs['params'] == {
            'select': '*',
            'seller_id': 'eq.s1',
            'id': 'in.("v1","v2")',
            'user_id': 'is.null',
            'is_primary': 'eq.true',
            'order': 'created_at.desc',
            'limit': 10
        }

    def test_select_one_without_match(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, [])
            with pytest.raises(RecordNotFound):
                service.select_one('vendors', {'id': 'missing'})

    def test_insert_asks_for_representation(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(201, [{'id': 'u1'}])
            rows = service.insert('profiles', {'id': 'u1', 'user_type': 'seller'})

        assert rows == [{'id': 'u1'}]
        _, kwargs = mock_request.call_args
        assert kwargs['headers']['Prefer'] == 'return=representation'
        assert kwargs['json'] == {'id': 'u1', 'user_type': 'seller'}

    def test_insert_conflict_carries_postgrest_fields(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(409, {
                'code': '23505',
                'message': 'duplicate key value violates unique constraint "profiles_pkey"',
                'details': 'Key (id)=(u1) already exists.',
                'hint': None
            })
            with pytest.raises(BackendError) as exc_info:
                service.insert('profiles', {'id': 'u1'})

        error = exc_info.value
        assert error.message == 'duplicate key value violates unique constraint "profiles_pkey"'
        assert error.code == '23505'
        assert error.details == 'Key (id)=(u1) already exists.'
        assert error.status_code == 409

    def test_pgrst116_is_record_not_found(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(406, {'code': 'PGRST116', 'message': 'no rows'})
            with pytest.raises(RecordNotFound):
                service.update('vendors', {'vendor_status': 'accepted'}, {'invitation_token': 't'})

    def test_update_and_delete_need_filters(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            with pytest.raises(BackendError):
                service.update('vendors', {'vendor_status': 'invited'}, {})
            with pytest.raises(BackendError):
                service.delete('vendors', {})
        mock_request.assert_not_called()

    def test_delete_with_empty_body(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(204)
            assert service.delete('profiles', {'id': 'u1'}) == []

        _, kwargs = mock_request.call_args
        assert kwargs['params'] == {'id': 'eq.u1'}

    def test_non_json_error_uses_text(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(502, text='Bad Gateway')
            with pytest.raises(BackendError, match='Bad Gateway') as exc_info:
                service.select('vendors')
        assert exc_info.value.status_code == 502

    def test_transport_errors_propagate(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.side_effect = requests.exceptions.ConnectionError('connection refused')
            with pytest.raises(requests.exceptions.ConnectionError):
                service.select('vendors')

    def test_rpc(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, 'PO-2024-0007')
            assert service.rpc('generate_po_number', {'seller_id': 's1'}) == 'PO-2024-0007'

        args, kwargs = mock_request.call_args
        assert args == ('POST', 'https://project.supabase.co/rest/v1/rpc/generate_po_number')
        assert kwargs['json'] == {'seller_id': 's1'}

    def test_ping(self, service):
        with patch('supabase_admin_service.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'name': 'GoTrue'})
            assert service.ping() is True

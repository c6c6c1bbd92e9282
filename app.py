from flask import Flask, request, jsonify, Response
from flask_cors import CORS
from datetime import datetime
import logging

from config import settings
from exceptions import AuthenticationError, BackendError, PermissionDenied, ValidationFailure
from email_service import ResendEmailService
from inventory_service import InventoryService
from local_backend import LocalBackend
from product_service import ProductService
from purchase_order_service import PurchaseOrderService
from signup_service import SignupCompensator
from supabase_admin_service import SupabaseAdminService
from transfer_service import TransferService
from vendor_service import VendorService, build_invitation_url, render_invitation_html
from vendor_status_mapping import VENDOR_STATUS_CONFIG, get_vendor_status_transitions

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app, origins=settings.ALLOWED_ORIGINS)

# Store client and email sender are created on first use; tests put their own in app.config
app.config['MARKETPLACE_BACKEND'] = None
app.config['EMAIL_SERVICE'] = None


def get_backend():
    """Configured store client: the hosted service when credentials exist, the local database otherwise"""
    backend = app.config.get('MARKETPLACE_BACKEND')
    if backend is None:
        if settings.USE_HOSTED_BACKEND:
            backend = SupabaseAdminService(
                settings.SUPABASE_URL,
                settings.SUPABASE_SERVICE_ROLE_KEY,
                anon_key=settings.SUPABASE_ANON_KEY,
                timeout=settings.SUPABASE_TIMEOUT
            )
        else:
            logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set - using local database")
            backend = LocalBackend(settings.LOCAL_DATABASE_URL)
        app.config['MARKETPLACE_BACKEND'] = backend
    return backend


def get_email_service():
    email_service = app.config.get('EMAIL_SERVICE')
    if email_service is None:
        email_service = ResendEmailService(settings.RESEND_API_KEY, settings.INVITATION_FROM_EMAIL)
        app.config['EMAIL_SERVICE'] = email_service
    return email_service


def get_current_user():
    """
    Resolve the caller from the Authorization: Bearer header

    Raises:
        AuthenticationError: header missing or token rejected by the store
    """
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        raise AuthenticationError()
    token = auth_header[len('Bearer '):].strip()
    if not token:
        raise AuthenticationError()
    try:
        return get_backend().get_user(token)
    except AuthenticationError as e:
        logger.info(f"Rejected bearer token: {e.message}")
        raise AuthenticationError()


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailure('Request body must be a JSON object')
    return data


def error_response(e, action):
    """Map a service exception to the JSON error body and status code"""
    if isinstance(e, ValidationFailure):
        return jsonify({'error': e.message}), 400
    if isinstance(e, PermissionDenied):
        return jsonify({'error': e.message}), 403
    if isinstance(e, BackendError):
        logger.warning(f"Failed to {action}: {e.message}")
        body = {'error': e.message}
        if e.details:
            body['details'] = e.details
        return jsonify(body), e.status_code
    logger.error(f"Failed to {action}: {str(e)}", exc_info=True)
    return jsonify({'error': 'Internal server error'}), 500

# ========================================
# Health
# ========================================

@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check with store reachability"""
    backend_kind = 'unconfigured'
    try:
        backend = get_backend()
        backend_kind = backend.kind
        reachable = backend.ping()

        return jsonify({
            'status': 'healthy' if reachable else 'degraded',
            'message': 'Marketplace API is running',
            'backend': backend_kind,
            'backend_reachable': reachable,
            'email_enabled': get_email_service().is_available(),
            'version': '1.0.0',
            'timestamp': datetime.utcnow().isoformat()
        }), 200 if reachable else 503
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return jsonify({
            'status': 'error',
            'message': 'Store connection failed',
            'backend': backend_kind,
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 500

# ========================================
# Authentication Routes
# ========================================

@app.route('/api/auth/signup', methods=['POST'])
def signup():
    """Create a seller account: identity, profile and seller record"""
    try:
        data = get_json_body()
        result = SignupCompensator(get_backend()).signup(
            data.get('email'),
            data.get('password'),
            full_name=data.get('fullName'),
            company_name=data.get('companyName')
        )
        body, status_code = result.to_response()
        return jsonify(body), status_code
    except Exception as e:
        return error_response(e, 'sign up')

@app.route('/api/auth/login', methods=['POST'])
def login():
    """Password sign-in; returns the access token used as Bearer on protected routes"""
    try:
        data = get_json_body()
        email = data.get('email')
        password = data.get('password')
        if not email or not password:
            return jsonify({'error': 'Email and password are required'}), 400

        session = get_backend().sign_in_with_password(email, password)
        logger.info(f"User signed in: {session['user'].get('id')}")
        return jsonify(session)

    except Exception as e:
        return error_response(e, 'sign in')

@app.route('/api/auth/user', methods=['GET'])
def current_user():
    try:
        return jsonify(get_current_user())
    except Exception as e:
        return error_response(e, 'load current user')

# ========================================
# Vendor Routes
# ========================================

def vendor_service():
    return VendorService(
        get_backend(),
        get_email_service(),
        base_url=settings.APP_BASE_URL,
        expiry_days=settings.INVITATION_EXPIRY_DAYS
    )

@app.route('/api/vendors/<vendor_id>', methods=['DELETE'])
def delete_vendor(vendor_id):
    try:
        user = get_current_user()
        vendor_service().delete_vendor(vendor_id, user['id'])
        return jsonify({
            'success': True,
            'message': 'Vendor deleted successfully'
        })

    except (ValidationFailure, AuthenticationError) as e:
        return error_response(e, 'delete vendor')
    except BackendError as e:
        if e.status_code == 404:
            return jsonify({'error': e.message}), 404
        logger.error(f"Error deleting vendor {vendor_id}: {e.message}")
        return jsonify({'error': 'Failed to delete vendor'}), 500
    except Exception as e:
        return error_response(e, f'delete vendor {vendor_id}')

@app.route('/api/vendors/invite', methods=['POST'])
def invite_vendor():
    """Mark a vendor invited and email the signup link"""
    try:
        user = get_current_user()
        data = get_json_body()
        result = vendor_service().invite_vendor(data.get('vendorId'), user['id'])
        return jsonify(result)

    except Exception as e:
        return error_response(e, 'invite vendor')

@app.route('/api/vendors/complete-signup', methods=['POST'])
def complete_vendor_signup():
    """Called by the vendor signup page once the invited vendor has an account"""
    try:
        data = get_json_body()
        vendor = vendor_service().complete_signup(data.get('token'), data.get('userId'))
        return jsonify({
            'success': True,
            'vendor': vendor,
            'message': 'Vendor status updated successfully'
        })

    except (ValidationFailure, AuthenticationError) as e:
        return error_response(e, 'complete vendor signup')
    except BackendError as e:
        if e.status_code == 404:
            return jsonify({'error': e.message}), 404
        logger.error(f"Error updating vendor status: {e.message}")
        return jsonify({
            'error': 'Failed to update vendor status',
            'details': e.message
        }), 500
    except Exception as e:
        return error_response(e, 'complete vendor signup')

@app.route('/api/vendors/invite/preview', methods=['GET'])
def preview_invitation():
    """Render the invitation email with sample values for design checks"""
    token = request.args.get('token', 'sample-token')
    html = render_invitation_html(
        request.args.get('seller', 'ACME Corp'),
        request.args.get('vendor', 'John Doe'),
        request.args.get('type', 'supplier'),
        build_invitation_url(settings.APP_BASE_URL, token),
        expiry_days=settings.INVITATION_EXPIRY_DAYS,
        debug_token=token
    )
    return Response(html, mimetype='text/html')

@app.route('/api/vendor-statuses', methods=['GET'])
def vendor_statuses():
    return jsonify({
        'statuses': VENDOR_STATUS_CONFIG,
        'transitions': {status: get_vendor_status_transitions(status) for status in VENDOR_STATUS_CONFIG}
    })

# ========================================
# Product Routes
# ========================================

@app.route('/api/products/supplier/<supplier_id>', methods=['GET'])
def products_for_supplier(supplier_id):
    try:
        user = get_current_user()
        products = ProductService(get_backend()).products_for_supplier(user['id'], supplier_id)
        return jsonify(products)

    except Exception as e:
        return error_response(e, f'fetch products for supplier {supplier_id}')

# ========================================
# Purchase Order Routes
# ========================================

@app.route('/api/purchase-orders', methods=['GET'])
def list_purchase_orders():
    try:
        user = get_current_user()
        orders = PurchaseOrderService(get_backend()).list_orders(
            user['id'],
            vendor_id=request.args.get('vendorId'),
            status=request.args.get('status')
        )
        logger.info(f"Retrieved {len(orders)} purchase orders for {user['id']}")
        return jsonify(orders)

    except Exception as e:
        return error_response(e, 'fetch purchase orders')

@app.route('/api/purchase-orders', methods=['POST'])
def create_purchase_order():
    try:
        user = get_current_user()
        data = get_json_body()
        order = PurchaseOrderService(get_backend()).create_order(user['id'], data)
        return jsonify(order), 201

    except Exception as e:
        return error_response(e, 'create purchase order')

@app.route('/api/purchase-orders/<order_id>', methods=['GET'])
def get_purchase_order(order_id):
    try:
        user = get_current_user()
        service = PurchaseOrderService(get_backend())
        order = service.get_order(order_id)
        service.check_access(order, user['id'])
        return jsonify(order)

    except Exception as e:
        return error_response(e, f'fetch purchase order {order_id}')

@app.route('/api/purchase-orders/<order_id>', methods=['PATCH'])
def update_purchase_order(order_id):
    """Partial update by the seller or the linked vendor (status changes are checked)"""
    try:
        user = get_current_user()
        data = get_json_body()
        order = PurchaseOrderService(get_backend()).update_order(order_id, user['id'], data)
        return jsonify(order)

    except Exception as e:
        return error_response(e, f'update purchase order {order_id}')

@app.route('/api/purchase-orders/<order_id>', methods=['PUT'])
def replace_purchase_order(order_id):
    try:
        user = get_current_user()
        data = get_json_body()
        order = PurchaseOrderService(get_backend()).replace_order(order_id, user['id'], data)
        return jsonify(order)

    except Exception as e:
        return error_response(e, f'edit purchase order {order_id}')

@app.route('/api/purchase-orders/<order_id>', methods=['DELETE'])
def delete_purchase_order(order_id):
    try:
        user = get_current_user()
        PurchaseOrderService(get_backend()).delete_order(order_id, user['id'])
        return jsonify({'success': True})

    except Exception as e:
        return error_response(e, f'delete purchase order {order_id}')

@app.route('/api/purchase-orders/<order_id>/items', methods=['POST'])
def add_purchase_order_item(order_id):
    try:
        user = get_current_user()
        data = get_json_body()
        item = PurchaseOrderService(get_backend()).add_item(order_id, user['id'], data)
        return jsonify(item), 201

    except Exception as e:
        return error_response(e, f'add item to purchase order {order_id}')

@app.route('/api/purchase-orders/<order_id>/items', methods=['PATCH'])
def update_purchase_order_item(order_id):
    try:
        item_id = request.args.get('itemId')
        if not item_id:
            return jsonify({'error': 'Item ID is required'}), 400
        user = get_current_user()
        data = get_json_body()
        item = PurchaseOrderService(get_backend()).update_item(order_id, user['id'], item_id, data)
        return jsonify(item)

    except Exception as e:
        return error_response(e, f'update item of purchase order {order_id}')

@app.route('/api/purchase-orders/<order_id>/items', methods=['DELETE'])
def delete_purchase_order_item(order_id):
    try:
        item_id = request.args.get('itemId')
        if not item_id:
            return jsonify({'error': 'Item ID is required'}), 400
        user = get_current_user()
        PurchaseOrderService(get_backend()).delete_item(order_id, user['id'], item_id)
        return jsonify({'success': True})

    except Exception as e:
        return error_response(e, f'delete item of purchase order {order_id}')

# ========================================
# Transfer Routes
# ========================================

@app.route('/api/transfers', methods=['GET'])
def list_transfers():
    try:
        user = get_current_user()
        transfers = TransferService(get_backend()).list_transfers(user['id'], request.args.get('status'))
        return jsonify(transfers)

    except Exception as e:
        return error_response(e, 'fetch transfers')

@app.route('/api/transfers', methods=['POST'])
def create_transfer():
    try:
        user = get_current_user()
        data = get_json_body()
        transfer = TransferService(get_backend()).create_transfer(user['id'], data)
        return jsonify(transfer), 201

    except Exception as e:
        return error_response(e, 'create transfer')

@app.route('/api/transfers', methods=['PUT'])
def update_transfer():
    try:
        user = get_current_user()
        data = get_json_body()
        transfer = TransferService(get_backend()).update_transfer(request.args.get('id'), user['id'], data)
        return jsonify(transfer)

    except Exception as e:
        return error_response(e, 'update transfer')

@app.route('/api/transfers', methods=['DELETE'])
def delete_transfer():
    try:
        user = get_current_user()
        TransferService(get_backend()).delete_transfer(request.args.get('id'), user['id'])
        return jsonify({'success': True})

    except Exception as e:
        return error_response(e, 'delete transfer')

# ========================================
# Inventory Routes
# ========================================

@app.route('/api/inventory', methods=['GET'])
def get_inventory():
    """Stock per location and SKU derived from purchase orders and transfers"""
    try:
        user = get_current_user()
        inventory = InventoryService(get_backend()).get_inventory(
            user['id'],
            location=request.args.get('location'),
            sku=request.args.get('sku')
        )
        return jsonify(inventory)

    except Exception as e:
        return error_response(e, 'compute inventory')

# ========================================
# Error Handlers
# ========================================

@app.errorhandler(404)
def not_found(e):
    return jsonify({'error': 'Not found'}), 404

@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({'error': 'Method not allowed'}), 405

# ========================================
# Development Server
# ========================================

if __name__ == '__main__':
    app.run(debug=settings.DEBUG, host=settings.HOST, port=settings.PORT)

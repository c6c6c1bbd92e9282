"""
Vendor-facing purchase order statuses and how they map to seller statuses.
Several vendor statuses collapse into the seller's 'in_progress'.
"""

VENDOR_STATUS_CONFIG = {
    'to_approve': {
        'label': 'To Approve',
        'color': 'yellow',
        'seller_status': 'sent_to_supplier'
    },
    'approved': {
        'label': 'Approved',
        'color': 'green',
        'seller_status': 'approved'
    },
    'in_production': {
        'label': 'In Production',
        'color': 'blue',
        'seller_status': 'in_progress'
    },
    'production_finished': {
        'label': 'Production Finished',
        'color': 'purple',
        'seller_status': 'in_progress'
    },
    'scheduled_for_pickup': {
        'label': 'Scheduled For Pickup',
        'color': 'orange',
        'seller_status': 'in_progress'
    },
    'picked_up': {
        'label': 'Picked Up',
        'color': 'green',
        'seller_status': 'complete'
    },
    'cancelled': {
        'label': 'Cancelled',
        'color': 'destructive',
        'seller_status': 'cancelled'
    }
}

_SELLER_TO_VENDOR = {
    'sent_to_supplier': 'to_approve',
    'approved': 'approved',
    'in_progress': 'in_production',
    'complete': 'picked_up',
    'cancelled': 'cancelled'
}

_VENDOR_TRANSITIONS = {
    'to_approve': ['approved', 'cancelled'],
    'approved': ['in_production', 'cancelled'],
    'in_production': ['production_finished', 'cancelled'],
    'production_finished': ['scheduled_for_pickup', 'cancelled'],
    'scheduled_for_pickup': ['picked_up', 'cancelled'],
    'picked_up': [],
    'cancelled': []
}


def get_vendor_status(seller_status):
    """Map a seller status to the vendor status shown by default (unknown values pass through)"""
    return _SELLER_TO_VENDOR.get(seller_status, seller_status)


def get_seller_status(vendor_status):
    config = VENDOR_STATUS_CONFIG.get(vendor_status)
    return config['seller_status'] if config else vendor_status


def get_vendor_status_transitions(vendor_status):
    return list(_VENDOR_TRANSITIONS.get(vendor_status, []))

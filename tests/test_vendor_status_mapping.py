"""Tests for the vendor/seller purchase order status mapping."""

import pytest

from vendor_status_mapping import (
    VENDOR_STATUS_CONFIG,
    get_seller_status,
    get_vendor_status,
    get_vendor_status_transitions,
)


@pytest.mark.parametrize('vendor_status, seller_status', [
    ('to_approve', 'sent_to_supplier'),
    ('approved', 'approved'),
    ('in_production', 'in_progress'),
    ('production_finished', 'in_progress'),
    ('scheduled_for_pickup', 'in_progress'),
    ('picked_up', 'complete'),
    ('cancelled', 'cancelled'),
])
def test_get_seller_status(vendor_status, seller_status):
    assert get_seller_status(vendor_status) == seller_status


def test_default_vendor_status_maps_back():
    for seller_status in ('sent_to_supplier', 'approved', 'in_progress', 'complete', 'cancelled'):
        assert get_seller_status(get_vendor_status(seller_status)) == seller_status


def test_unknown_values_pass_through():
    assert get_vendor_status('draft') == 'draft'
    assert get_seller_status('mystery') == 'mystery'
    assert get_vendor_status_transitions('mystery') == []


def test_transitions_follow_production_order():
    assert get_vendor_status_transitions('in_production') == ['production_finished', 'cancelled']
    assert get_vendor_status_transitions('picked_up') == []


def test_transitions_are_copies():
    get_vendor_status_transitions('to_approve').append('picked_up')
    assert get_vendor_status_transitions('to_approve') == ['approved', 'cancelled']


def test_every_status_has_label_and_color():
    for config in VENDOR_STATUS_CONFIG.values():
        assert config['label']
        assert config['color']

"""
Vendor network: invitations, invitation acceptance and removal
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, Optional

from markupsafe import escape

from email_service import EmailDeliveryError
from exceptions import BackendError, RecordNotFound, ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_SELLER_NAME = 'Your partner'


def build_invitation_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/vendor-signup?token={token}"


def describe_email_error(error: EmailDeliveryError) -> str:
    """Turn a delivery failure into a hint the seller can act on"""
    message = error.message or ''
    if 'domain' in message:
        return 'Email domain not verified with Resend'
    if 'API' in message:
        return 'Invalid Resend API key'
    if error.status_code == 401:
        return 'Resend authentication failed - check API key'
    return 'Email failed to send'


def render_invitation_html(seller_name: str, vendor_name: str, vendor_type: str,
                           invitation_url: str, expiry_days: int = 7,
                           debug_token: Optional[str] = None) -> str:
    """Invitation email body. debug_token adds a development-only block with the raw link."""
    seller_name = escape(seller_name)
    vendor_name = escape(vendor_name)
    vendor_type = escape((vendor_type or 'supplier').replace('_', ' '))
    invitation_url = escape(invitation_url)

    debug_block = ''
    if debug_token is not None:
        debug_block = f"""
        <div style="margin-top: 30px; padding: 20px; background-color: #f0f0f0; border-radius: 5px;">
          <p style="color: #666; font-size: 14px; margin: 0 0 10px 0;"><strong>Debug Info (Development Only):</strong></p>
          <p style="color: #666; font-size: 12px; margin: 5px 0;">Invitation URL: <code>{invitation_url}</code></p>
          <p style="color: #666; font-size: 12px; margin: 5px 0;">Token: <code>{escape(debug_token)}</code></p>
        </div>"""

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Vendor Invitation</title>
</head>
<body style="margin: 0; padding: 20px; background-color: #f5f5f5; font-family: Arial, sans-serif;">
  <div style="max-width: 600px; margin: 0 auto; background-color: white; padding: 30px; border-radius: 10px;">
    <h2 style="color: #333;">You're invited to join {seller_name}'s vendor network</h2>
    <p style="color: #666; line-height: 1.6;">Hello {vendor_name},</p>
    <p style="color: #666; line-height: 1.6;">{seller_name} has invited you to join their vendor network as a {vendor_type}.</p>
    <p style="color: #666; line-height: 1.6;">Click the link below to create your account and get started:</p>
    <div style="text-align: center; margin: 40px 0;">
      <a href="{invitation_url}" style="background-color: #0070f3; color: white; padding: 14px 28px; text-decoration: none; border-radius: 5px; display: inline-block;">
        Accept Invitation
      </a>
    </div>
    <p style="color: #666; line-height: 1.6;">This invitation link will expire in {expiry_days} days.</p>
    <p style="color: #666; line-height: 1.6;">Best regards,<br>{seller_name}</p>
    <hr style="margin: 30px 0; border: none; border-top: 1px solid #eee;">
    <p style="color: #999; font-size: 12px; text-align: center;">
      If you didn't expect this invitation, you can safely ignore this email.
    </p>{debug_block}
  </div>
</body>
</html>"""


class VendorService:
    def __init__(self, backend, email_service, base_url: str = 'https://your-app.com', expiry_days: int = 7):
        self.backend = backend
        self.email_service = email_service
        self.base_url = base_url.rstrip('/')
        self.expiry_days = expiry_days

    def invitation_url(self, token: str) -> str:
        return build_invitation_url(self.base_url, token)

    def get_vendor(self, vendor_id: str, seller_id: str) -> Dict:
        try:
            return self.backend.select_one('vendors', {'id': vendor_id, 'seller_id': seller_id})
        except RecordNotFound:
            raise RecordNotFound('Vendor not found')

    def delete_vendor(self, vendor_id: str, seller_id: str) -> None:
        if not vendor_id:
            raise ValidationFailure('Vendor ID is required')
        self.get_vendor(vendor_id, seller_id)
        self.backend.delete('vendors', {'id': vendor_id, 'seller_id': seller_id})
        logger.info(f"Deleted vendor {vendor_id} for seller {seller_id}")

    def seller_display_name(self, seller_id: str) -> str:
        profiles = self.backend.select('profiles', {'id': seller_id})
        if profiles and profiles[0].get('company_name'):
            return profiles[0]['company_name']
        sellers = self.backend.select('sellers', {'id': seller_id})
        if sellers and sellers[0].get('company_name'):
            return sellers[0]['company_name']
        return DEFAULT_SELLER_NAME

    def invite_vendor(self, vendor_id: str, seller_id: str) -> Dict:
        """
        Mark the vendor as invited and email the invitation link.
        A delivery failure keeps the status change and reports the link for manual sharing.
        """
        if not vendor_id:
            raise ValidationFailure('Vendor ID is required')

        vendor = self.get_vendor(vendor_id, seller_id)
        seller_name = self.seller_display_name(vendor['seller_id'])

        invitation_token = str(uuid.uuid4())
        self.backend.update('vendors', {
            'vendor_status': 'invited',
            'invitation_token': invitation_token,
            'invitation_sent_at': datetime.utcnow().isoformat()
        }, {'id': vendor_id})

        invitation_url = self.invitation_url(invitation_token)
        vendor_email = vendor.get('email') or vendor.get('vendor_email')
        logger.info(f"Invitation token issued for vendor {vendor_id}; sending to {vendor_email}")

        try:
            if not vendor_email:
                raise EmailDeliveryError('Vendor has no email address')
            html = render_invitation_html(
                seller_name,
                vendor.get('contact_name') or 'there',
                vendor.get('vendor_type'),
                invitation_url,
                self.expiry_days
            )
            self.email_service.send(
                vendor_email,
                f"{seller_name} invites you to join their vendor network",
                html
            )
        except EmailDeliveryError as e:
            details = describe_email_error(e)
            logger.error(f"Invitation email for vendor {vendor_id} failed: {e.message}")
            return {
                'success': True,
                'warning': f'Status updated but email failed: {details}',
                'vendor_status': 'invited',
                'emailError': e.message,
                'invitationUrl': invitation_url,
                'vendorEmail': vendor_email
            }

        return {
            'success': True,
            'message': 'Invitation sent successfully',
            'vendor_status': 'invited'
        }

    def complete_signup(self, token: str, user_id: str) -> Dict:
        """Link the vendor record holding this invitation token to the new user"""
        if not token or not user_id:
            raise ValidationFailure('Token and userId are required')

        rows = self.backend.update('vendors', {
            'user_id': user_id,
            'vendor_status': 'accepted'
        }, {'invitation_token': token})

        if not rows:
            raise RecordNotFound('Invitation not found')
        if len(rows) > 1:
            raise BackendError('Invitation token matched more than one vendor', status_code=500)

        logger.info(f"Vendor {rows[0]['id']} accepted invitation as user {user_id}")
        return rows[0]

"""
Transactional email through the Resend HTTP API
"""

import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ResendEmailService:
    api_url = 'https://api.resend.com/emails'

    def __init__(self, api_key: Optional[str], from_email: str, timeout: int = 30):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout

        if self.api_key:
            logger.info("Resend email service configured")
        else:
            logger.warning("RESEND_API_KEY not set - invitation emails will not be sent")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html: str) -> Dict:
        """
        Send one email

        Returns:
            dict: Resend response ({'id': ...})

        Raises:
            EmailDeliveryError: when the key is missing, the request fails or Resend rejects it
        """
        if not self.api_key:
            raise EmailDeliveryError('Missing API key', status_code=401)

        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }
        payload = {
            'from': self.from_email,
            'to': [to],
            'subject': subject,
            'html': html
        }

        try:
            response = requests.post(self.api_url, headers=headers, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Email request to {to} failed: {e}")
            raise EmailDeliveryError(str(e))

        if response.status_code >= 400:
            try:
                message = response.json().get('message') or response.text
            except ValueError:
                message = response.text
            logger.error(f"Resend rejected email to {to}: {response.status_code} - {message}")
            raise EmailDeliveryError(message or 'Email failed to send', status_code=response.status_code)

        data = response.json()
        logger.info(f"Email sent to {to}: {data.get('id')}")
        return data

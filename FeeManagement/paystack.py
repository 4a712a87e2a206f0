# FeeManagement/paystack.py
"""
Thin client for the Paystack transaction API.

Credentials come from settings (``PAYSTACK_SECRET_KEY``/``PAYSTACK_PUBLIC_KEY``)
and are never stored in the database.
"""
import hashlib
import hmac
import logging
from decimal import Decimal

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class PaystackError(Exception):
    """Gateway call failed or Paystack answered with ``status: false``"""


def to_kobo(amount):
    return int((Decimal(str(amount)) * 100).to_integral_value())


class PaystackClient:
    def __init__(self, secret_key=None, public_key=None, base_url=None, timeout=None):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.public_key = public_key if public_key is not None else settings.PAYSTACK_PUBLIC_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip('/')
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT

    def validate_credentials(self):
        if not self.secret_key or not self.public_key:
            raise PaystackError("Paystack credentials are not configured properly")

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json',
        }

    def _request(self, method, path, **kwargs):
        self.validate_credentials()
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Paystack %s %s failed: %s", method, path, e)
            raise PaystackError(f"Could not reach Paystack: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok or not body.get('status'):
            message = body.get('message') or f"Paystack returned HTTP {response.status_code}"
            logger.error("Paystack %s %s rejected: %s", method, path, message)
            raise PaystackError(message)
        return body.get('data') or {}

    def initialize(self, email, amount, reference, metadata=None, callback_url=None, currency='NGN'):
        """Start a transaction. ``amount`` is in naira and is sent in kobo."""
        payload = {
            'email': email,
            'amount': to_kobo(amount),
            'currency': currency,
            'reference': reference,
            'metadata': metadata or {},
            'channels': ['card', 'bank', 'ussd', 'bank_transfer'],
        }
        if callback_url:
            payload['callback_url'] = callback_url

        data = self._request('POST', '/transaction/initialize', json=payload)
        logger.info("Paystack payment initialized: reference=%s amount=%s", reference, amount)
        return data

    def verify(self, reference):
        data = self._request('GET', f'/transaction/verify/{reference}')
        logger.info("Paystack payment verified: reference=%s status=%s", reference, data.get('status', 'unknown'))
        return data

    def test_connection(self):
        """Return ``(ok, message)`` for the settings page"""
        try:
            self._request('GET', '/bank')
        except PaystackError as e:
            return False, f"Connection test failed: {e}"
        return True, "Paystack connection successful"

    def verify_signature(self, body, signature):
        """Check the ``x-paystack-signature`` header against the raw request body"""
        if not self.secret_key or not signature:
            return False
        if isinstance(body, str):
            body = body.encode('utf-8')
        expected = hmac.new(self.secret_key.encode('utf-8'), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

import base64
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from hugos.errors import InvalidPhoneNumber, MpesaError, ValidationError

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_URL = "https://api.safaricom.co.ke"

QUERY_MIN_INTERVAL = 15  # seconds between STK queries for one CheckoutRequestID


def normalize_phone(phone: str) -> str:
    """Normalize a Kenyan number to 2547XXXXXXXX / 2541XXXXXXXX"""
    digits = re.sub(r'\D', '', phone or '')
    if digits.startswith('0'):
        digits = '254' + digits[1:]
    elif digits.startswith(('7', '1')) and len(digits) == 9:
        digits = '254' + digits
    if not (digits.startswith('254') and len(digits) == 12):
        raise InvalidPhoneNumber(
            'Invalid Kenyan phone number. Use format 07XXXXXXXX or 2547XXXXXXXX', fields=['phone'])
    return digits


@dataclass(frozen=True)
class StkPushResponse:
    checkout_request_id: str
    merchant_request_id: str
    response_description: Optional[str] = None
    customer_message: Optional[str] = None


@dataclass(frozen=True)
class StkQueryResponse:
    result_code: Optional[int]
    result_desc: Optional[str]
    checkout_request_id: Optional[str] = None
    merchant_request_id: Optional[str] = None
    rate_limited: bool = False
    retry_after: int = 0

    @property
    def is_paid(self) -> bool:
        return self.result_code == 0


@dataclass(frozen=True)
class StkCallback:
    merchant_request_id: Optional[str]
    checkout_request_id: str
    result_code: int
    result_desc: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.result_code == 0

    @property
    def receipt_number(self) -> Optional[str]:
        return self.metadata.get('MpesaReceiptNumber')

    @property
    def amount(self) -> Optional[float]:
        value = self.metadata.get('Amount')
        return float(value) if value is not None else None


class MpesaService:
    """Client for the Safaricom Daraja STK push API.

    Built once per application from its configuration; the OAuth token is
    cached on the instance until shortly before it expires.
    """

    def __init__(self, consumer_key, consumer_secret, business_short_code, passkey,
                 callback_url, environment='sandbox', timeout=30, session=None):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.business_short_code = business_short_code
        self.passkey = passkey
        self.callback_url = callback_url
        self.environment = environment
        self.timeout = timeout
        self.base_url = PRODUCTION_URL if environment == 'production' else SANDBOX_URL
        self.http = session or requests.Session()

        self._cached_access_token = None
        self._cached_token_expiry_epoch = 0
        self._last_query_epoch_by_checkout_id = {}

    @classmethod
    def from_config(cls, config):
        callback_url = config.get('MPESA_CALLBACK_URL') or \
            f"{config.get('BASE_URL', 'http://localhost:5000').rstrip('/')}/api/mpesa/callback"
        service = cls(
            consumer_key=config.get('MPESA_CONSUMER_KEY'),
            consumer_secret=config.get('MPESA_CONSUMER_SECRET'),
            business_short_code=config.get('MPESA_BUSINESS_SHORT_CODE'),
            passkey=config.get('MPESA_PASSKEY'),
            callback_url=callback_url,
            environment=config.get('MPESA_ENVIRONMENT', 'sandbox'),
            timeout=config.get('MPESA_TIMEOUT', 30),
        )
        logger.info("M-Pesa configured for %s environment", service.environment)
        logger.info("Consumer key present: %s", bool(service.consumer_key))
        logger.info("Business short code: %s", service.business_short_code)
        return service

    def _password(self, timestamp):
        password_string = f"{self.business_short_code}{self.passkey}{timestamp}"
        return base64.b64encode(password_string.encode()).decode()

    def get_access_token(self):
        """Get M-Pesa access token"""
        # Reuse cached token if still valid (buffer 60s)
        if self._cached_access_token and time.time() < self._cached_token_expiry_epoch - 60:
            return self._cached_access_token

        url = f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials"
        credentials = f"{self.consumer_key}:{self.consumer_secret}"
        encoded_credentials = base64.b64encode(credentials.encode()).decode()
        headers = {
            'Authorization': f'Basic {encoded_credentials}',
            'Content-Type': 'application/json'
        }

        try:
            response = self.http.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            logger.error("HTTP Error getting M-Pesa access token: %s - %s",
                         e.response.status_code, e.response.text)
            raise MpesaError('Failed to get access token') from e
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Error getting M-Pesa access token: %s", e)
            raise MpesaError('Failed to get access token') from e

        access_token = data.get('access_token')
        if not access_token:
            raise MpesaError('Failed to get access token')
        self._cached_access_token = access_token
        self._cached_token_expiry_epoch = time.time() + int(data.get('expires_in', 3599))
        return access_token

    def initiate_stk_push(self, phone_number, amount, account_reference, transaction_desc):
        """Initiate STK push payment"""
        phone_number = normalize_phone(phone_number)
        access_token = self.get_access_token()

        url = f"{self.base_url}/mpesa/stkpush/v1/processrequest"
        timestamp = datetime.now().strftime('%Y%m%d%H%M%S')
        payload = {
            "BusinessShortCode": self.business_short_code,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount),
            "PartyA": phone_number,
            "PartyB": self.business_short_code,
            "PhoneNumber": phone_number,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": transaction_desc
        }
        headers = {
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json'
        }

        try:
            response = self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Error initiating STK push: %s", e)
            raise MpesaError(f'STK push failed: {e}') from e

        if str(data.get('ResponseCode')) != '0':
            raise MpesaError(data.get('ResponseDescription', 'STK push failed'),
                             response_code=data.get('ResponseCode'))

        return StkPushResponse(
            checkout_request_id=data.get('CheckoutRequestID'),
            merchant_request_id=data.get('MerchantRequestID'),
            response_description=data.get('ResponseDescription'),
            customer_message=data.get('CustomerMessage'),
        )

    def query_stk_push_status(self, checkout_request_id):
        """Query STK push status"""
        # Simple in-memory throttle to avoid sandbox 429 rate limits
        now = time.time()
        last = self._last_query_epoch_by_checkout_id.get(checkout_request_id, 0)
        if now - last < QUERY_MIN_INTERVAL:
            return StkQueryResponse(result_code=None, result_desc='throttled', rate_limited=True,
                                    retry_after=int(QUERY_MIN_INTERVAL - (now - last)) or 1)
        # Reserve the slot BEFORE making the request so bursts don't bypass throttle
        self._last_query_epoch_by_checkout_id[checkout_request_id] = now

        access_token = self.get_access_token()
        url = f"{self.base_url}/mpesa/stkpushquery/v1/query"
        timestamp = datetime.now().strftime('%Y%m%d%H%M%S')
        payload = {
            "BusinessShortCode": self.business_short_code,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id
        }
        headers = {
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json'
        }

        try:
            response = self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
            # Stale token: drop it so the next call fetches a fresh one
            if response.status_code == 401:
                self._cached_access_token = None
            # Gracefully handle sandbox rate limits
            if response.status_code == 429:
                retry_after = response.headers.get('Retry-After', '10')
                return StkQueryResponse(
                    result_code=None,
                    result_desc='rate_limited',
                    checkout_request_id=checkout_request_id,
                    rate_limited=True,
                    retry_after=int(retry_after) if str(retry_after).isdigit() else 10,
                )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Error querying STK push status: %s", e)
            raise MpesaError(f'STK push query failed: {e}') from e

        result_code = data.get('ResultCode')
        return StkQueryResponse(
            result_code=int(result_code) if result_code not in (None, '') else None,
            result_desc=data.get('ResultDesc'),
            checkout_request_id=data.get('CheckoutRequestID'),
            merchant_request_id=data.get('MerchantRequestID'),
        )

    @staticmethod
    def parse_callback(callback_data):
        """Extract the stkCallback block of a Daraja result notification"""
        try:
            stk_callback = callback_data['Body']['stkCallback']
            checkout_request_id = stk_callback['CheckoutRequestID']
            result_code = int(stk_callback['ResultCode'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f'Malformed M-Pesa callback: {e}') from e

        metadata = {}
        for item in (stk_callback.get('CallbackMetadata') or {}).get('Item', []):
            name = item.get('Name')
            if name:
                metadata[name] = item.get('Value')

        return StkCallback(
            merchant_request_id=stk_callback.get('MerchantRequestID'),
            checkout_request_id=checkout_request_id,
            result_code=result_code,
            result_desc=stk_callback.get('ResultDesc'),
            metadata=metadata,
        )

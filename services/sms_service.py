"""
SMS Service - outbound text messages through Twilio.
"""

import logging
from typing import Dict, Any

import requests
from twilio.rest import Client
from twilio.base.exceptions import TwilioException

from services.email_service import config_value

logger = logging.getLogger(__name__)


class SMSClient:
    def __init__(self, config=None):
        self.account_sid = config_value(config, 'TWILIO_ACCOUNT_SID')
        self.auth_token = config_value(config, 'TWILIO_AUTH_TOKEN')
        self.from_number = config_value(config, 'TWILIO_FROM_NUMBER')
        self.enabled = all([self.account_sid, self.auth_token, self.from_number])
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send_sms(self, to_number: str, message: str) -> Dict[str, Any]:
        """Send SMS message using Twilio."""
        if not self.enabled:
            logger.warning("Twilio not configured - SMS skipped")
            return {'success': False, 'error': 'SMS not configured'}

        if not to_number:
            return {'success': False, 'error': 'No phone number'}

        try:
            sent = self.client.messages.create(
                body=message,
                from_=self.from_number,
                to=to_number
            )
        except (TwilioException, requests.RequestException) as e:
            logger.error(f"SMS send failed to {to_number}: {e}")
            return {'success': False, 'error': str(e)}

        logger.info(f"SMS sent to {to_number}: {sent.sid}")
        return {
            'success': True,
            'message_sid': sent.sid,
            'status': sent.status,
            'to': to_number
        }

"""
Email Service - outbound transactional email.

Sends through the Resend HTTP API when RESEND_API_KEY is configured and
falls back to SMTP when SMTP_HOST is set. Provider failures are returned
as {'success': False, 'error': ...} and never raised to the caller.
"""

import base64
import logging
import smtplib
from collections.abc import Mapping
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Any, Optional, Union

import requests

logger = logging.getLogger(__name__)


def config_value(config, key: str, default=None):
    """Read a setting from a Flask config mapping or a config class."""
    if config is None:
        from config import get_config
        config = get_config()
    if isinstance(config, Mapping):
        return config.get(key, default)
    return getattr(config, key, default)


class EmailClient:
    """Thin wrapper over Resend (preferred) and SMTP."""

    def __init__(self, config=None):
        self.resend_api_key = config_value(config, 'RESEND_API_KEY')
        self.resend_api_url = config_value(config, 'RESEND_API_URL', 'https://api.resend.com/emails')
        self.from_email = config_value(config, 'EMAIL_FROM', 'PortaPro <hello@portaprosoftware.com>')
        self.smtp_host = config_value(config, 'SMTP_HOST', '')
        self.smtp_port = int(config_value(config, 'SMTP_PORT', 587))
        self.smtp_user = config_value(config, 'SMTP_USER', '')
        self.smtp_password = config_value(config, 'SMTP_PASSWORD', '')
        self.timeout = int(config_value(config, 'EMAIL_TIMEOUT', 15))

    @property
    def provider(self) -> Optional[str]:
        if self.resend_api_key:
            return 'resend'
        if self.smtp_host:
            return 'smtp'
        return None

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def send_email(self, to: Union[str, List[str]], subject: str, html: str,
                   text: str = None, attachments: List[Dict[str, Any]] = None,
                   reply_to: str = None) -> Dict[str, Any]:
        """
        Send an email.

        Args:
            to: Recipient address or list of addresses
            subject: Subject line
            html: HTML body
            text: Optional plain-text body
            attachments: List of {'filename': str, 'content': bytes}
            reply_to: Optional reply-to address

        Returns:
            {'success': True, 'email_id': ..., 'provider': ...} or
            {'success': False, 'error': ...}
        """
        recipients = [to] if isinstance(to, str) else list(to or [])
        recipients = [r for r in recipients if r]
        if not recipients:
            return {'success': False, 'error': 'No recipient email address'}

        if self.provider == 'resend':
            return self._send_resend(recipients, subject, html, text, attachments, reply_to)
        if self.provider == 'smtp':
            return self._send_smtp(recipients, subject, html, text, attachments, reply_to)

        logger.warning(f"Email not configured; dropping '{subject}' to {recipients}")
        return {'success': False, 'error': 'Email not configured'}

    def _send_resend(self, recipients, subject, html, text, attachments, reply_to) -> Dict[str, Any]:
        payload = {
            'from': self.from_email,
            'to': recipients,
            'subject': subject,
            'html': html,
        }
        if text:
            payload['text'] = text
        if reply_to:
            payload['reply_to'] = reply_to
        if attachments:
            payload['attachments'] = [
                {
                    'filename': a['filename'],
                    'content': base64.b64encode(a['content']).decode('ascii'),
                }
                for a in attachments
            ]

        try:
            response = requests.post(
                self.resend_api_url,
                json=payload,
                headers={
                    'Authorization': f'Bearer {self.resend_api_key}',
                    'Content-Type': 'application/json',
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Resend request failed: {e}")
            return {'success': False, 'error': str(e)}

        if response.status_code >= 400:
            logger.error(f"Resend rejected email ({response.status_code}): {response.text[:200]}")
            return {'success': False, 'error': f"Email provider error {response.status_code}: {response.text[:200]}"}

        try:
            email_id = response.json().get('id')
        except ValueError:
            logger.warning(f"Resend accepted email ({response.status_code}) without a JSON body")
            email_id = None
        logger.info(f"Sent email '{subject}' to {recipients} via Resend ({email_id})")
        return {'success': True, 'email_id': email_id, 'provider': 'resend'}

    def _send_smtp(self, recipients, subject, html, text, attachments, reply_to) -> Dict[str, Any]:
        msg = MIMEMultipart('mixed')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = ', '.join(recipients)
        if reply_to:
            msg['Reply-To'] = reply_to

        body = MIMEMultipart('alternative')
        if text:
            body.attach(MIMEText(text, 'plain'))
        body.attach(MIMEText(html, 'html'))
        msg.attach(body)

        for attachment in attachments or []:
            part = MIMEApplication(attachment['content'], Name=attachment['filename'])
            part['Content-Disposition'] = f'attachment; filename="{attachment["filename"]}"'
            msg.attach(part)

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed: {e}")
            return {'success': False, 'error': str(e)}

        logger.info(f"Sent email '{subject}' to {recipients} via SMTP")
        return {'success': True, 'email_id': msg['Message-ID'], 'provider': 'smtp'}

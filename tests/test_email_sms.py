"""
Tests for the email and SMS provider clients
"""
import base64
import pytest
from unittest.mock import Mock, patch

import requests
from twilio.base.exceptions import TwilioException

from services.email_service import EmailClient, config_value
from services.sms_service import SMSClient

RESEND = {'RESEND_API_KEY': 're_test', 'EMAIL_FROM': 'Yard <yard@portapro.test>'}
SMTP = {'SMTP_HOST': 'smtp.portapro.test', 'SMTP_PORT': 2525, 'SMTP_USER': 'mailer', 'SMTP_PASSWORD': 'pw'}
TWILIO = {'TWILIO_ACCOUNT_SID': 'AC123', 'TWILIO_AUTH_TOKEN': 'tok', 'TWILIO_FROM_NUMBER': '+15125550199'}


@pytest.mark.unit
class TestConfigValue:

    def test_mapping_and_class(self):
        class Settings:
            SMTP_HOST = 'mail.example.com'
        assert config_value({'SMTP_HOST': 'x'}, 'SMTP_HOST') == 'x'
        assert config_value(Settings, 'SMTP_HOST') == 'mail.example.com'
        assert config_value(Settings, 'MISSING', 'fallback') == 'fallback'


@pytest.mark.unit
class TestEmailClient:
    """Tests for Resend and SMTP delivery"""

    def test_provider_selection(self):
        assert EmailClient({**RESEND, **SMTP}).provider == 'resend'
        assert EmailClient(SMTP).provider == 'smtp'
        assert EmailClient({}).enabled is False

    def test_unconfigured_drops_email(self):
        assert EmailClient({}).send_email('a@b.test', 'Hi', '<p>x</p>') == {
            'success': False, 'error': 'Email not configured'}

    def test_requires_recipient(self):
        assert EmailClient(RESEND).send_email(['', None], 'Hi', '<p>x</p>')['success'] is False

    @patch('services.email_service.requests.post')
    def test_resend_payload(self, mock_post):
        mock_post.return_value = Mock(status_code=200, json=Mock(return_value={'id': 'em_1'}))
        result = EmailClient(RESEND).send_email(
            'ops@lakeside.test', 'Invoice INV-2026-0001', '<p>Attached</p>',
            attachments=[{'filename': 'INV-2026-0001.pdf', 'content': b'%PDF-1.4'}],
            reply_to='billing@portapro.test',
        )

        assert result == {'success': True, 'email_id': 'em_1', 'provider': 'resend'}
        payload = mock_post.call_args.kwargs['json']
        assert payload['to'] == ['ops@lakeside.test']
        assert payload['from'] == 'Yard <yard@portapro.test>'
        assert payload['reply_to'] == 'billing@portapro.test'
        assert base64.b64decode(payload['attachments'][0]['content']) == b'%PDF-1.4'
        assert mock_post.call_args.kwargs['headers']['Authorization'] == 'Bearer re_test'

    @patch('services.email_service.requests.post')
    def test_resend_rejection(self, mock_post):
        mock_post.return_value = Mock(status_code=422, text='invalid from address')
        result = EmailClient(RESEND).send_email('ops@lakeside.test', 'Hi', '<p>x</p>')
        assert result['success'] is False
        assert '422' in result['error']

    @patch('services.email_service.requests.post')
    def test_resend_network_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('connection refused')
        result = EmailClient(RESEND).send_email('ops@lakeside.test', 'Hi', '<p>x</p>')
        assert result == {'success': False, 'error': 'connection refused'}

    @patch('services.email_service.requests.post')
    def test_resend_accepts_non_json_body(self, mock_post):
        mock_post.return_value = Mock(status_code=202, json=Mock(side_effect=ValueError('Expecting value')))
        result = EmailClient(RESEND).send_email('ops@lakeside.test', 'Hi', '<p>x</p>')
        assert result == {'success': True, 'email_id': None, 'provider': 'resend'}

    @patch('services.email_service.smtplib.SMTP')
    def test_smtp_send(self, mock_smtp):
        server = mock_smtp.return_value.__enter__.return_value
        result = EmailClient(SMTP).send_email(['a@b.test', 'c@d.test'], 'Hello', '<p>x</p>', text='x')

        assert result['success'] is True
        assert result['provider'] == 'smtp'
        mock_smtp.assert_called_once_with('smtp.portapro.test', 2525, timeout=15)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with('mailer', 'pw')
        message = server.send_message.call_args[0][0]
        assert message['To'] == 'a@b.test, c@d.test'

    @patch('services.email_service.smtplib.SMTP')
    def test_smtp_failure(self, mock_smtp):
        mock_smtp.side_effect = OSError('no route to host')
        result = EmailClient(SMTP).send_email('a@b.test', 'Hello', '<p>x</p>')
        assert result == {'success': False, 'error': 'no route to host'}


@pytest.mark.unit
class TestSMSClient:
    """Tests for Twilio delivery"""

    def test_disabled_without_credentials(self):
        client = SMSClient({'TWILIO_ACCOUNT_SID': 'AC123'})
        assert client.enabled is False
        assert client.send_sms('+15125550100', 'hi') == {'success': False, 'error': 'SMS not configured'}

    def test_requires_number(self):
        assert SMSClient(TWILIO).send_sms('', 'hi')['error'] == 'No phone number'

    @patch('services.sms_service.Client')
    def test_send(self, mock_client):
        mock_client.return_value.messages.create.return_value = Mock(sid='SM1', status='queued')
        result = SMSClient(TWILIO).send_sms('+15125550100', 'Job DEL-001 moved')

        assert result == {'success': True, 'message_sid': 'SM1', 'status': 'queued', 'to': '+15125550100'}
        mock_client.assert_called_once_with('AC123', 'tok')
        mock_client.return_value.messages.create.assert_called_once_with(
            body='Job DEL-001 moved', from_='+15125550199', to='+15125550100')

    @patch('services.sms_service.Client')
    def test_twilio_error(self, mock_client):
        mock_client.return_value.messages.create.side_effect = TwilioException('invalid number')
        result = SMSClient(TWILIO).send_sms('+1000', 'hi')
        assert result == {'success': False, 'error': 'invalid number'}

    @patch('services.sms_service.Client')
    def test_transport_error(self, mock_client):
        mock_client.return_value.messages.create.side_effect = requests.ConnectionError('connection reset')
        result = SMSClient(TWILIO).send_sms('+15125550100', 'hi')
        assert result == {'success': False, 'error': 'connection reset'}

import hashlib
import hmac
from decimal import Decimal

import pytest
import requests

from FeeManagement.paystack import PaystackClient, PaystackError, to_kobo


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON")
        return self._body


@pytest.fixture
def paystack():
    return PaystackClient(secret_key='sk_test_123', public_key='pk_test_123', base_url='https://api.example.test/')


@pytest.fixture
def calls(monkeypatch):
    """Capture outgoing requests; tests set ``calls.response`` first"""
    class Recorder(list):
        response = FakeResponse(200, {'status': True, 'data': {}})

    recorder = Recorder()

    def fake_request(method, url, **kwargs):
        recorder.append({'method': method, 'url': url, **kwargs})
        if isinstance(recorder.response, Exception):
            raise recorder.response
        return recorder.response

    monkeypatch.setattr(requests, 'request', fake_request)
    return recorder


def test_to_kobo():
    assert to_kobo(Decimal('1500.50')) == 150050
    assert to_kobo('20') == 2000


def test_initialize_sends_kobo_and_auth_header(paystack, calls):
    calls.response = FakeResponse(200, {
        'status': True,
        'data': {'authorization_url': 'https://checkout.paystack.com/x', 'access_code': 'ac', 'reference': 'PAY_1'},
    })
    data = paystack.initialize('a@b.test', Decimal('2500'), 'PAY_1', callback_url='https://school.test/cb')

    assert data['access_code'] == 'ac'
    call = calls[0]
    assert call['method'] == 'POST'
    assert call['url'] == 'https://api.example.test/transaction/initialize'
    assert call['headers']['Authorization'] == 'Bearer sk_test_123'
    assert call['json']['amount'] == 250000
    assert call['json']['callback_url'] == 'https://school.test/cb'


def test_verify_uses_reference_in_path(paystack, calls):
    calls.response = FakeResponse(200, {'status': True, 'data': {'status': 'success'}})
    assert paystack.verify('PAY_9')['status'] == 'success'
    assert calls[0]['url'].endswith('/transaction/verify/PAY_9')


def test_status_false_raises_with_gateway_message(paystack, calls):
    calls.response = FakeResponse(400, {'status': False, 'message': 'Invalid key'})
    with pytest.raises(PaystackError, match='Invalid key'):
        paystack.verify('PAY_9')


def test_non_json_error_response(paystack, calls):
    calls.response = FakeResponse(502)
    with pytest.raises(PaystackError, match='HTTP 502'):
        paystack.verify('PAY_9')


def test_network_error_is_wrapped(paystack, calls):
    calls.response = requests.ConnectionError('boom')
    with pytest.raises(PaystackError, match='Could not reach Paystack'):
        paystack.verify('PAY_9')


def test_missing_credentials(calls):
    client = PaystackClient(secret_key='', public_key='', base_url='https://api.example.test')
    with pytest.raises(PaystackError, match='not configured'):
        client.verify('PAY_9')
    assert calls == []


def test_connection_check(paystack, calls):
    assert paystack.test_connection() == (True, "Paystack connection successful")
    calls.response = FakeResponse(401, {'status': False, 'message': 'Invalid key'})
    ok, message = paystack.test_connection()
    assert not ok
    assert 'Invalid key' in message


def test_signature_verification(paystack):
    body = b'{"event":"charge.success"}'
    good = hmac.new(b'sk_test_123', body, hashlib.sha512).hexdigest()
    assert paystack.verify_signature(body, good)
    assert paystack.verify_signature(body.decode(), good)
    assert not paystack.verify_signature(body, 'tampered')
    assert not paystack.verify_signature(body, '')

import hashlib
import hmac
import json
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.urls import reverse

from core.models import Notification
from FeeManagement import notifications, services
from FeeManagement.models import Fee, Payment
from FeeManagement.paystack import PaystackError
from FeeManagement.services import PaymentError
from management.models import Setting

pytestmark = pytest.mark.django_db

TODAY = date(2024, 10, 1)


class FakePaystack:
    """Stands in for PaystackClient; records calls and answers like the API"""

    def __init__(self, verify_status='success', fail_initialize=False):
        self.verify_status = verify_status
        self.fail_initialize = fail_initialize
        self.initialized = []
        self.verified = []

    def initialize(self, email, amount, reference, metadata=None, callback_url=None, currency='NGN'):
        if self.fail_initialize:
            raise PaystackError("Invalid key")
        self.initialized.append({'email': email, 'amount': amount, 'reference': reference, 'metadata': metadata})
        return {
            'reference': reference,
            'access_code': 'ac_123',
            'authorization_url': f'https://checkout.paystack.com/{reference}',
        }

    def verify(self, reference):
        self.verified.append(reference)
        return {'status': self.verify_status, 'reference': reference, 'amount': 0}


@pytest.fixture
def fee(classroom, term):
    return Fee.objects.create(
        name='Tuition', amount=Decimal('50000.00'), classroom=classroom, term=term, due_date=TODAY,
    )


def test_fees_for_student_include_school_wide_fees(student, fee, other_classroom):
    everyone = Fee.objects.create(name='Sports', amount=Decimal('2000'))
    Fee.objects.create(name='Other class', amount=Decimal('1000'), classroom=other_classroom)
    Fee.objects.create(name='Old', amount=Decimal('1000'), is_active=False)
    assert set(services.fees_for_student(student)) == {fee, everyone}


def test_late_fee_after_grace_period(fee):
    Setting.set_value('late_fee_enabled', True, 'boolean')
    Setting.set_value('late_fee_percentage', 5, 'float')
    Setting.set_value('grace_period_days', 7, 'integer')

    assert fee.late_fee(TODAY + timedelta(days=7)) == Decimal('0.00')
    assert fee.late_fee(TODAY + timedelta(days=8)) == Decimal('2500.00')
    assert fee.total_amount(TODAY + timedelta(days=8)) == Decimal('52500.00')

    fee.late_fee_amount = Decimal('4000')
    fee.grace_period_days = 0
    assert fee.late_fee(TODAY + timedelta(days=1)) == Decimal('4000.00')


def test_no_late_fee_when_disabled(fee):
    Setting.set_value('late_fee_enabled', False, 'boolean')
    assert fee.late_fee(TODAY + timedelta(days=60)) == Decimal('0.00')


def test_status_moves_from_unpaid_to_paid(student, fee, admin_user):
    assert fee.status_for(student, TODAY)['status'] == 'unpaid'

    services.record_manual_payment(student, fee, '20000', 'cash', admin_user)
    status = fee.status_for(student, TODAY)
    assert status['status'] == 'partial'
    assert status['balance'] == Decimal('30000.00')

    services.record_manual_payment(student, fee, '30000', 'bank_transfer', admin_user)
    assert fee.status_for(student, TODAY)['status'] == 'paid'


@pytest.mark.parametrize('amount, message', [
    ('0', 'greater than zero'),
    ('abc', 'valid amount'),
    ('60000', 'cannot exceed'),
])
def test_invalid_amounts_are_rejected(student, fee, amount, message):
    with pytest.raises(PaymentError, match=message):
        services.validate_amount(student, fee, amount)


def test_partial_payment_rules(student, fee):
    Setting.set_value('minimum_payment_amount', 10000, 'float')
    with pytest.raises(PaymentError, match='minimum payment'):
        services.validate_amount(student, fee, '5000')

    Setting.set_value('allow_partial_payments', False, 'boolean')
    with pytest.raises(PaymentError, match='Partial payments are not allowed'):
        services.validate_amount(student, fee, '20000')

    amount, _ = services.validate_amount(student, fee, '50000')
    assert amount == Decimal('50000.00')


def test_fully_paid_fee_rejects_more_payments(student, fee, admin_user):
    services.record_manual_payment(student, fee, '50000', 'pos', admin_user)
    with pytest.raises(PaymentError, match='already been paid'):
        services.validate_amount(student, fee, '1')


def test_manual_payment_sends_confirmation(student, fee, admin_user, mailoutbox):
    payment = services.record_manual_payment(student, fee, '20000', 'cash', admin_user, notes='Front desk')
    assert payment.is_successful
    assert payment.is_partial
    assert payment.balance_before == Decimal('50000.00')
    assert payment.balance_after == Decimal('30000.00')
    assert payment.recorded_by == admin_user
    assert payment.receipt_number.startswith('RCT')

    assert len(mailoutbox) == 1
    assert mailoutbox[0].subject == f"Payment Confirmation - {payment.receipt_number}"
    assert 'NGN 20,000.00' in mailoutbox[0].body
    assert Notification.objects.filter(target_user=student.user, type='payment').count() == 1


def test_manual_payment_requires_manual_method(student, fee, admin_user):
    with pytest.raises(PaymentError):
        services.record_manual_payment(student, fee, '100', 'paystack', admin_user)


def test_create_and_verify_paystack_payment(student, fee, mailoutbox):
    client = FakePaystack()
    payment = services.create_payment(student, fee, '50000', callback_url='https://school.test/cb', client=client)

    assert payment.status == Payment.STATUS_PENDING
    assert payment.payment_reference.startswith('PAY_')
    assert payment.authorization_url.endswith(payment.payment_reference)
    assert client.initialized[0]['email'] == 'chidi@example.com'
    assert client.initialized[0]['metadata']['fee_id'] == fee.pk

    verified = services.verify_payment(payment.payment_reference, client=client)
    assert verified.is_successful
    assert verified.paid_at is not None
    assert len(mailoutbox) == 1

    # verifying again neither calls the gateway nor re-sends the email
    services.verify_payment(payment.payment_reference, client=client)
    assert len(client.verified) == 1
    assert len(mailoutbox) == 1


def test_failed_verification_marks_payment_failed(student, fee):
    client = FakePaystack(verify_status='failed')
    payment = services.create_payment(student, fee, '50000', client=client)
    payment = services.verify_payment(payment.payment_reference, client=client)
    assert payment.status == Payment.STATUS_FAILED


def test_gateway_error_drops_pending_payment(student, fee):
    with pytest.raises(PaystackError):
        services.create_payment(student, fee, '50000', client=FakePaystack(fail_initialize=True))
    assert not Payment.objects.exists()


def test_online_payments_can_be_disabled(student, fee):
    Setting.set_value('paystack_enabled', False, 'boolean')
    with pytest.raises(PaymentError, match='disabled'):
        services.create_payment(student, fee, '50000', client=FakePaystack())


def test_verify_unknown_reference(db):
    with pytest.raises(PaymentError, match='not found'):
        services.verify_payment('PAY_NOPE', client=FakePaystack())


def test_webhook_events(student, fee):
    client = FakePaystack()
    payment = services.create_payment(student, fee, '50000', client=client)

    assert services.handle_webhook({'event': 'transfer.success', 'data': {}}, client=client) is None
    updated = services.handle_webhook(
        {'event': 'charge.success', 'data': {'reference': payment.payment_reference}}, client=client,
    )
    assert updated.is_successful

    # a late failure event does not undo a successful payment
    services.handle_webhook({'event': 'charge.failed', 'data': {'reference': payment.payment_reference}})
    payment.refresh_from_db()
    assert payment.is_successful


def sign(body, secret):
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def test_webhook_view_checks_signature(client, settings, student, fee, monkeypatch):
    settings.PAYSTACK_SECRET_KEY = 'sk_test_secret'
    settings.PAYSTACK_PUBLIC_KEY = 'pk_test_public'
    payment = services.create_payment(student, fee, '50000', client=FakePaystack())
    monkeypatch.setattr(
        'FeeManagement.paystack.PaystackClient.verify',
        lambda self, reference: {'status': 'success', 'reference': reference},
    )
    body = json.dumps({'event': 'charge.success', 'data': {'reference': payment.payment_reference}}).encode()
    url = reverse('fees:paystack_webhook')

    response = client.post(url, body, content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE='bad')
    assert response.status_code == 400

    response = client.post(
        url, body, content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=sign(body, 'sk_test_secret'),
    )
    assert response.status_code == 200
    assert response.json() == {'status': True}
    payment.refresh_from_db()
    assert payment.is_successful


def test_webhook_view_reports_unknown_reference(client, settings):
    settings.PAYSTACK_SECRET_KEY = 'sk_test_secret'
    body = json.dumps({'event': 'charge.success', 'data': {'reference': 'PAY_UNKNOWN'}}).encode()
    response = client.post(
        reverse('fees:paystack_webhook'), body, content_type='application/json',
        HTTP_X_PAYSTACK_SIGNATURE=sign(body, 'sk_test_secret'),
    )
    assert response.status_code == 200
    assert response.json()['status'] is False


def test_payment_statistics(student, fee, admin_user):
    services.record_manual_payment(student, fee, '20000', 'cash', admin_user)
    Payment.objects.create(student=student, fee=fee, amount=Decimal('1000'), status=Payment.STATUS_FAILED)

    stats = services.payment_statistics()
    assert stats['total_payments'] == 2
    assert stats['successful_payments'] == 1
    assert stats['failed_payments'] == 1
    assert stats['total_amount'] == Decimal('20000.00')
    assert stats['success_rate'] == 50
    assert stats['by_method'][0]['method'] == 'cash'
    assert len(stats['monthly']) == 1


def test_due_reminders(student, make_student, fee, admin_user, mailoutbox):
    paid_up = make_student()
    services.record_manual_payment(paid_up, fee, '50000', 'cash', admin_user)
    mailoutbox.clear()

    sent = notifications.send_due_reminders(TODAY - timedelta(days=3))
    assert sent == 1
    assert mailoutbox[0].to == ['chidi@example.com']
    assert 'due in 3 days' in mailoutbox[0].body

    assert notifications.send_due_reminders(TODAY - timedelta(days=2)) == 0


def test_one_failed_email_does_not_stop_reminders(student, make_student, fee, monkeypatch):
    other = make_student()
    delivered = []

    def flaky_send_mail(subject, body, from_email, recipients, fail_silently=False):
        if recipients == [student.email]:
            raise OSError("SMTP down")
        delivered.extend(recipients)
        return 1

    monkeypatch.setattr('FeeManagement.notifications.send_mail', flaky_send_mail)
    assert notifications.send_due_reminders(TODAY - timedelta(days=7)) == 1
    assert delivered == [other.email]
    assert not Notification.objects.filter(target_user=student.user).exists()
    assert Notification.objects.filter(target_user=other.user).exists()


def test_overdue_notice_mentions_late_fee(student, fee, mailoutbox):
    Setting.set_value('late_fee_enabled', True, 'boolean')
    Setting.set_value('grace_period_days', 0, 'integer')
    sent = notifications.send_overdue_notices(TODAY + timedelta(days=7))
    assert sent == 1
    assert '7 days overdue' in mailoutbox[0].body
    assert 'A late fee of NGN 2,500.00 has been applied.' in mailoutbox[0].body


def test_reminders_can_be_switched_off(student, fee, mailoutbox):
    Setting.set_value('send_payment_reminders', False, 'boolean')
    assert notifications.send_due_reminders(TODAY - timedelta(days=1)) == 0
    assert mailoutbox == []


def test_student_pays_online(client, student, fee, monkeypatch):
    monkeypatch.setattr(
        'FeeManagement.services.PaystackClient', lambda: FakePaystack(),
    )
    client.force_login(student.user)
    response = client.post(reverse('fees:pay_fee', args=[fee.id]), {'amount': '50000'})
    assert response.status_code == 302
    assert response.url.startswith('https://checkout.paystack.com/PAY_')


def test_receipt_only_for_owner_or_admin(client, student, make_student, fee, admin_user):
    payment = services.record_manual_payment(student, fee, '50000', 'cash', admin_user)
    url = reverse('fees:payment_receipt', args=[payment.id])

    client.force_login(make_student().user)
    assert client.get(url).status_code == 403

    client.force_login(student.user)
    response = client.get(url)
    assert response.status_code == 200
    assert response['Content-Type'] == 'application/pdf'
    assert response.content.startswith(b'%PDF')


def test_fee_with_payments_is_deactivated_not_deleted(client, admin_user, student, fee):
    services.record_manual_payment(student, fee, '100', 'cash', admin_user)
    client.force_login(admin_user)
    client.post(reverse('fees:fee_delete', args=[fee.id]))
    fee.refresh_from_db()
    assert not fee.is_active


def test_webhook_view_rejects_non_object_payload(client, settings):
    settings.PAYSTACK_SECRET_KEY = 'sk_test_secret'
    body = b'[]'
    response = client.post(
        reverse('fees:paystack_webhook'), body, content_type='application/json',
        HTTP_X_PAYSTACK_SIGNATURE=sign(body, 'sk_test_secret'),
    )
    assert response.status_code == 400

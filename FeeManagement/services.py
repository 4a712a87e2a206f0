# FeeManagement/services.py
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth

from management.models import Setting
from . import notifications
from .models import Fee, Payment
from .paystack import PaystackClient, PaystackError

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Raised when a payment request breaks a payment rule"""


def fees_for_student(student):
    return Fee.objects.active().for_classroom(student.classroom).select_related('classroom', 'term', 'session')


def student_fee_summary(student):
    """Every applicable fee with the student's payment status"""
    rows = []
    for fee in fees_for_student(student):
        rows.append({'fee': fee, **fee.status_for(student)})
    return rows


def clean_amount(amount):
    try:
        return Decimal(str(amount)).quantize(Decimal('0.01'))
    except (InvalidOperation, TypeError, ValueError):
        raise PaymentError("Enter a valid amount.")


def validate_amount(student, fee, amount):
    """Check ``amount`` against the payment rules; returns the fee status"""
    amount = clean_amount(amount)
    if amount <= 0:
        raise PaymentError("Payment amount must be greater than zero.")

    status = fee.status_for(student)
    if status['balance'] <= 0:
        raise PaymentError(f"{fee.name} has already been paid in full.")
    if amount > status['balance']:
        raise PaymentError(
            f"Payment amount cannot exceed outstanding balance of {notifications.money(status['balance'])}."
        )

    is_partial = amount < status['balance']
    if is_partial and not Setting.get_value('allow_partial_payments', True):
        raise PaymentError("Partial payments are not allowed. Please pay the full balance.")

    minimum = Decimal(str(Setting.get_value('minimum_payment_amount', 0)))
    if is_partial and amount < minimum:
        raise PaymentError(f"The minimum payment amount is {notifications.money(minimum)}.")
    return amount, status


def create_payment(student, fee, amount, callback_url=None, client=None):
    """
    Record a pending Paystack payment and initialise the transaction.

    Returns the Payment; ``payment.authorization_url`` is where the student
    completes the payment.
    """
    if not Setting.get_value('paystack_enabled', True):
        raise PaymentError("Online payments are currently disabled.")

    amount, status = validate_amount(student, fee, amount)
    client = client or PaystackClient()

    payment = Payment.objects.create(
        student=student,
        fee=fee,
        amount=amount,
        fee_amount=status['total_amount'],
        method=Payment.METHOD_PAYSTACK,
        currency=Setting.get_value('app_currency', 'NGN'),
        is_partial_payment=amount < status['total_amount'],
        balance_before=status['balance'],
        balance_after=status['balance'] - amount,
    )

    try:
        data = client.initialize(
            email=student.email,
            amount=amount,
            reference=payment.payment_reference,
            callback_url=callback_url,
            currency=payment.currency,
            metadata={
                'student_id': student.pk,
                'fee_id': fee.pk,
                'payment_type': 'fee_payment',
                'custom_fields': [
                    {'display_name': 'Student Name', 'variable_name': 'student_name', 'value': student.full_name},
                    {'display_name': 'Fee Name', 'variable_name': 'fee_name', 'value': fee.name},
                ],
            },
        )
    except PaystackError:
        # nothing was charged; drop the pending record
        payment.delete()
        raise

    payment.gateway_reference = data.get('reference', payment.payment_reference)
    payment.access_code = data.get('access_code', '')
    payment.authorization_url = data.get('authorization_url', '')
    payment.save(update_fields=['gateway_reference', 'access_code', 'authorization_url', 'updated_at'])
    logger.info("Created payment %s for student %s, fee %s", payment.payment_reference, student.pk, fee.pk)
    return payment


def find_payment(reference):
    return (
        Payment.objects.filter(payment_reference=reference).first()
        or Payment.objects.filter(gateway_reference=reference).first()
    )


def complete_payment(payment, gateway_data):
    """Mark ``payment`` successful and send the confirmation"""
    with transaction.atomic():
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.is_successful:
            return payment, False
        payment.balance_after = max(Decimal('0.00'), payment.fee.balance(payment.student) - payment.amount)
        payment.mark_successful(gateway_data)

    logger.info("Payment %s completed: %s", payment.payment_reference, payment.amount)
    try:
        notifications.send_payment_confirmation(payment)
    except Exception:
        logger.exception("Failed to send payment confirmation for %s", payment.payment_reference)
    return payment, True


def verify_payment(reference, client=None):
    """
    Confirm a payment with Paystack and update it. Returns the Payment.
    Already successful payments are returned unchanged.
    """
    payment = find_payment(reference)
    if payment is None:
        raise PaymentError("Payment record not found.")
    if payment.is_successful:
        return payment

    client = client or PaystackClient()
    data = client.verify(payment.gateway_reference or payment.payment_reference)

    if data.get('status') == 'success':
        payment, _ = complete_payment(payment, data)
    else:
        payment.mark_failed(data)
        logger.warning("Payment %s not successful: %s", payment.payment_reference, data.get('status'))
    return payment


def handle_webhook(payload, client=None):
    """Apply a verified Paystack event. Returns the affected Payment or None."""
    event = payload.get('event')
    data = payload.get('data') or {}
    reference = data.get('reference')
    logger.info("Paystack webhook received: event=%s reference=%s", event, reference or 'unknown')

    if event == 'charge.success':
        return verify_payment(reference, client=client)
    if event == 'charge.failed':
        payment = find_payment(reference) if reference else None
        if payment is not None and not payment.is_successful:
            payment.mark_failed(data)
        return payment

    logger.info("Unhandled webhook event %s", event)
    return None


def record_manual_payment(student, fee, amount, method, recorded_by, notes=''):
    """Cash, bank transfer or POS payment taken at the office"""
    if method not in Payment.MANUAL_METHODS:
        raise PaymentError(f"'{method}' is not a manual payment method.")
    amount, status = validate_amount(student, fee, amount)

    payment = Payment(
        student=student,
        fee=fee,
        amount=amount,
        fee_amount=status['total_amount'],
        method=method,
        currency=Setting.get_value('app_currency', 'NGN'),
        is_partial_payment=amount < status['total_amount'],
        balance_before=status['balance'],
        balance_after=status['balance'] - amount,
        notes=notes,
        recorded_by=recorded_by,
    )
    payment.mark_successful({'recorded_by': recorded_by.username if recorded_by else None, 'method': method})
    logger.info("Recorded %s payment %s by %s", method, payment.payment_reference, recorded_by)

    try:
        notifications.send_payment_confirmation(payment)
    except Exception:
        logger.exception("Failed to send payment confirmation for %s", payment.payment_reference)
    return payment


def payment_statistics(payments=None):
    payments = payments if payments is not None else Payment.objects.all()
    total = payments.count()
    by_status = {row['status']: row['count'] for row in payments.order_by().values('status').annotate(count=Count('id'))}
    successful = payments.filter(status=Payment.STATUS_SUCCESSFUL)

    by_method = [
        {'method': row['method'], 'count': row['count'], 'amount': row['amount']}
        for row in successful.order_by().values('method').annotate(count=Count('id'), amount=Sum('amount'))
    ]
    monthly = [
        {'month': row['month'].strftime('%Y-%m'), 'amount': row['amount'], 'count': row['count']}
        for row in successful.annotate(month=TruncMonth('paid_at')).order_by('month')
        .values('month').annotate(amount=Sum('amount'), count=Count('id'))
        if row['month'] is not None
    ]

    successful_count = by_status.get(Payment.STATUS_SUCCESSFUL, 0)
    return {
        'total_payments': total,
        'successful_payments': successful_count,
        'pending_payments': by_status.get(Payment.STATUS_PENDING, 0),
        'failed_payments': by_status.get(Payment.STATUS_FAILED, 0),
        'refunded_payments': by_status.get(Payment.STATUS_REFUNDED, 0),
        'total_amount': successful.aggregate(total=Sum('amount'))['total'] or Decimal('0.00'),
        'success_rate': round(successful_count * 100 / total, 2) if total else 0,
        'by_method': by_method,
        'monthly': monthly,
    }

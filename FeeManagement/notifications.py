# FeeManagement/notifications.py
"""
Payment emails: confirmations, reminders before the due date and overdue notices.
Each kind can be switched off from the settings page.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from core import notifications
from management.models import Setting, Student
from management.services import school_info
from .models import Fee

logger = logging.getLogger(__name__)

REMINDER_DAYS = (7, 3, 1)
OVERDUE_DAYS = (1, 7, 14, 30)


def money(amount):
    currency = Setting.get_value('app_currency', 'NGN')
    return f"{currency} {amount:,.2f}"


def _deliver(student, subject, body, kind, reference_id=None):
    email = student.email
    if not email:
        logger.warning("Cannot send %s: no email for student %s", kind, student.pk)
        return False
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [email], fail_silently=False)
    except Exception:
        logger.exception("Failed to send %s to student %s", kind, student.pk)
        return False
    notifications.send_to_user(student.user, subject, body, type='payment', reference_id=reference_id)
    logger.info("Sent %s to student %s", kind, student.pk)
    return True


def send_payment_confirmation(payment):
    if not Setting.get_value('send_payment_confirmations', True):
        return False
    school = school_info()
    body = (
        f"Dear {payment.student.full_name},\n\n"
        f"We have received your payment of {money(payment.amount)} for {payment.fee.name}.\n"
        f"Receipt number: {payment.receipt_number}\n"
        f"Reference: {payment.payment_reference}\n"
        f"Outstanding balance: {money(payment.balance_after)}\n\n"
        f"Thank you.\n{school['name']}"
    )
    return _deliver(payment.student, f"Payment Confirmation - {payment.receipt_number}", body, 'payment confirmation', payment.pk)


def send_payment_reminder(student, fee, days_until_due, today=None):
    if not Setting.get_value('send_payment_reminders', True):
        return False
    balance = fee.balance(student, today)
    if balance <= 0:
        return False
    day_word = 'day' if days_until_due == 1 else 'days'
    body = (
        f"Dear {student.full_name},\n\n"
        f"This is a reminder that {fee.name} is due in {days_until_due} {day_word} ({fee.due_date:%d %B %Y}).\n"
        f"Outstanding balance: {money(balance)}\n\n"
        f"{school_info()['name']}"
    )
    return _deliver(student, f"Payment Reminder - {fee.name}", body, 'payment reminder', fee.pk)


def send_overdue_notice(student, fee, days_overdue, today=None):
    if not Setting.get_value('send_overdue_notices', True):
        return False
    status = fee.status_for(student, today)
    if status['balance'] <= 0:
        return False
    day_word = 'day' if days_overdue == 1 else 'days'
    late_fee_line = f"A late fee of {money(status['late_fee'])} has been applied.\n" if status['late_fee'] > 0 else ''
    body = (
        f"Dear {student.full_name},\n\n"
        f"Your payment for {fee.name} is {days_overdue} {day_word} overdue (due {fee.due_date:%d %B %Y}).\n"
        f"{late_fee_line}"
        f"Outstanding balance: {money(status['balance'])}\n\n"
        f"Please pay as soon as possible.\n{school_info()['name']}"
    )
    return _deliver(student, f"Overdue Payment Notice - {fee.name}", body, 'overdue notice', fee.pk)


def students_for_fee(fee):
    students = Student.objects.filter(is_active=True).select_related('user')
    if fee.classroom_id:
        students = students.filter(classroom_id=fee.classroom_id)
    return students


def send_due_reminders(today=None):
    """Remind students with a balance on fees due 7, 3 or 1 days from ``today``"""
    today = today or timezone.localdate()
    sent = 0
    for days in REMINDER_DAYS:
        for fee in Fee.objects.active().filter(due_date=today + timedelta(days=days)):
            for student in students_for_fee(fee):
                if send_payment_reminder(student, fee, days, today):
                    sent += 1
    return sent


def send_overdue_notices(today=None):
    """Notify students with a balance on fees 1, 7, 14 or 30 days past due"""
    today = today or timezone.localdate()
    sent = 0
    for days in OVERDUE_DAYS:
        for fee in Fee.objects.active().filter(due_date=today - timedelta(days=days)):
            for student in students_for_fee(fee):
                if send_overdue_notice(student, fee, days, today):
                    sent += 1
    return sent

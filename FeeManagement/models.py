# FeeManagement/models.py
import string
import time
from decimal import Decimal

from django.db import models
from django.db.models import Q, Sum
from django.contrib.auth.models import User
from django.utils import timezone
from django.utils.crypto import get_random_string

from management.models import AcademicSession, Classroom, Setting, Student, Term

TWO_PLACES = Decimal('0.01')


class FeeQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def for_classroom(self, classroom):
        """Fees for ``classroom`` plus fees that apply to every class"""
        if classroom is None:
            return self.filter(classroom__isnull=True)
        return self.filter(Q(classroom=classroom) | Q(classroom__isnull=True))


class Fee(models.Model):
    FEE_TYPE_CHOICES = [
        ('tuition', 'Tuition Fee'),
        ('development', 'Development Levy'),
        ('sports', 'Sports Fee'),
        ('library', 'Library Fee'),
        ('laboratory', 'Laboratory Fee'),
        ('examination', 'Examination Fee'),
        ('uniform', 'Uniform Fee'),
        ('transport', 'Transport Fee'),
        ('boarding', 'Boarding Fee'),
        ('others', 'Others'),
    ]
    FREQUENCY_CHOICES = [
        ('termly', 'Per Term'),
        ('yearly', 'Per Year'),
        ('monthly', 'Monthly'),
        ('one_time', 'One Time'),
    ]

    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee_type = models.CharField(max_length=20, choices=FEE_TYPE_CHOICES, default='tuition')
    payment_frequency = models.CharField(max_length=20, choices=FREQUENCY_CHOICES, default='termly')
    # null classroom = every class
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, null=True, blank=True, related_name='fees')
    session = models.ForeignKey(AcademicSession, on_delete=models.SET_NULL, null=True, blank=True, related_name='fees')
    term = models.ForeignKey(Term, on_delete=models.SET_NULL, null=True, blank=True, related_name='fees')
    is_active = models.BooleanField(default=True)
    is_mandatory = models.BooleanField(default=True)
    due_date = models.DateField(null=True, blank=True)
    late_fee_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    grace_period_days = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = FeeQuerySet.as_manager()

    class Meta:
        ordering = ['due_date', 'name']

    def is_overdue(self, today=None):
        today = today or timezone.localdate()
        return self.due_date is not None and self.due_date < today

    def days_overdue(self, today=None):
        if not self.is_overdue(today):
            return 0
        return ((today or timezone.localdate()) - self.due_date).days

    def late_fee(self, today=None):
        """Late charge once the grace period has passed and late fees are switched on"""
        if not self.is_overdue(today):
            return Decimal('0.00')
        if not Setting.get_value('late_fee_enabled', False):
            return Decimal('0.00')

        grace_period = self.grace_period_days
        if grace_period is None:
            grace_period = int(Setting.get_value('grace_period_days', 7))
        if self.days_overdue(today) <= grace_period:
            return Decimal('0.00')

        percentage = Decimal(str(Setting.get_value('late_fee_percentage', 5)))
        calculated = self.amount * percentage / 100
        return max(Decimal(self.late_fee_amount or 0), calculated).quantize(TWO_PLACES)

    def total_amount(self, today=None):
        return (self.amount + self.late_fee(today)).quantize(TWO_PLACES)

    def amount_paid(self, student):
        total = self.payments.filter(student=student, status=Payment.STATUS_SUCCESSFUL).aggregate(total=Sum('amount'))['total']
        return total or Decimal('0.00')

    def balance(self, student, today=None):
        return max(Decimal('0.00'), self.total_amount(today) - self.amount_paid(student))

    def status_for(self, student, today=None):
        """Payment summary for one student: status is paid, partial or unpaid"""
        paid = self.amount_paid(student)
        total = self.total_amount(today)
        if paid >= total:
            status = 'paid'
        elif paid > 0:
            status = 'partial'
        else:
            status = 'unpaid'
        return {
            'status': status,
            'total_amount': total,
            'paid_amount': paid,
            'balance': max(Decimal('0.00'), total - paid),
            'is_overdue': self.is_overdue(today),
            'late_fee': self.late_fee(today),
        }

    def __str__(self):
        return f"{self.name} ({self.classroom or 'All classes'})"


def generate_payment_reference():
    random_part = get_random_string(12, allowed_chars=string.ascii_uppercase + string.digits)
    return f"PAY_{random_part}_{int(time.time())}"


def generate_receipt_number():
    return f"RCT{timezone.now():%Y%m}{get_random_string(6, allowed_chars=string.digits)}"


class Payment(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_SUCCESSFUL = 'successful'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESSFUL, 'Successful'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_REFUNDED, 'Refunded'),
    ]

    METHOD_PAYSTACK = 'paystack'
    METHOD_CHOICES = [
        (METHOD_PAYSTACK, 'Paystack (Card/Bank)'),
        ('bank_transfer', 'Bank Transfer'),
        ('cash', 'Cash Payment'),
        ('pos', 'POS Payment'),
    ]
    MANUAL_METHODS = ('bank_transfer', 'cash', 'pos')

    payment_reference = models.CharField(max_length=50, unique=True, default=generate_payment_reference)
    receipt_number = models.CharField(max_length=20, unique=True, default=generate_receipt_number)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='payments')
    fee = models.ForeignKey(Fee, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default=METHOD_PAYSTACK)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=STATUS_PENDING)
    gateway_reference = models.CharField(max_length=100, blank=True)
    access_code = models.CharField(max_length=100, blank=True)
    authorization_url = models.URLField(max_length=500, blank=True)
    gateway_response = models.JSONField(default=dict, blank=True)
    currency = models.CharField(max_length=3, default='NGN')
    paid_at = models.DateTimeField(null=True, blank=True)
    is_partial_payment = models.BooleanField(default=False)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='recorded_payments')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    @property
    def is_successful(self):
        return self.status == self.STATUS_SUCCESSFUL

    @property
    def is_partial(self):
        return self.is_partial_payment or self.amount < self.fee_amount

    def mark_successful(self, gateway_response=None):
        self.status = self.STATUS_SUCCESSFUL
        self.paid_at = timezone.now()
        self.gateway_response = gateway_response or {}
        self.save()

    def mark_failed(self, gateway_response=None):
        self.status = self.STATUS_FAILED
        self.gateway_response = gateway_response or {}
        self.save(update_fields=['status', 'gateway_response', 'updated_at'])

    def __str__(self):
        return f"{self.payment_reference} - {self.student} - {self.amount}"

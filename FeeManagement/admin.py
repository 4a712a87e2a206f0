from django.contrib import admin
from .models import Fee, Payment


@admin.register(Fee)
class FeeAdmin(admin.ModelAdmin):
    list_display = ('name', 'fee_type', 'amount', 'classroom', 'term', 'due_date', 'is_active', 'is_mandatory')
    list_filter = ('fee_type', 'payment_frequency', 'is_active', 'is_mandatory', 'term')
    search_fields = ('name', 'description')

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'description', 'fee_type', 'payment_frequency', 'amount')
        }),
        ('Applies To', {
            'fields': ('classroom', 'session', 'term', 'is_active', 'is_mandatory')
        }),
        ('Due Date and Late Fees', {
            'fields': ('due_date', 'late_fee_amount', 'grace_period_days')
        }),
    )


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('payment_reference', 'receipt_number', 'student', 'fee', 'amount', 'method', 'status', 'paid_at')
    list_filter = ('status', 'method', 'currency', 'created_at')
    search_fields = ('payment_reference', 'receipt_number', 'gateway_reference', 'student__admission_number')
    ordering = ('-created_at',)
    readonly_fields = ('payment_reference', 'receipt_number', 'gateway_reference', 'access_code', 'gateway_response', 'paid_at')

    fieldsets = (
        ('Payment', {
            'fields': ('payment_reference', 'receipt_number', 'student', 'fee', 'amount', 'fee_amount', 'currency', 'method', 'status', 'paid_at')
        }),
        ('Balance', {
            'fields': ('is_partial_payment', 'balance_before', 'balance_after')
        }),
        ('Gateway', {
            'fields': ('gateway_reference', 'access_code', 'gateway_response'),
            'classes': ('collapse',)
        }),
        ('Meta Information', {
            'fields': ('notes', 'recorded_by'),
            'classes': ('collapse',)
        }),
    )

# FeeManagement/views.py
import json
import logging

from django.conf import settings
from django.shortcuts import redirect, get_object_or_404
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.db.models import Q
from django.http import HttpResponse, HttpResponseBadRequest, HttpResponseForbidden, JsonResponse
from django.urls import reverse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from Authentication.decorators import admin_required, student_required
from Authentication.models import is_admin
from core.pages import render_page
from core.spreadsheets import xlsx_response
from management.models import AcademicSession, Classroom, Student, Term
from . import services
from .models import Fee, Payment
from .paystack import PaystackClient, PaystackError
from .receipts import receipt_pdf
from .services import PaymentError

logger = logging.getLogger(__name__)

PAYMENT_EXPORT_HEADERS = [
    'Reference', 'Receipt Number', 'Student', 'Admission Number', 'Fee', 'Amount',
    'Method', 'Status', 'Paid At', 'Recorded By',
]


def fee_payload(fee):
    return {
        'id': fee.id,
        'name': fee.name,
        'description': fee.description,
        'amount': fee.amount,
        'fee_type': fee.fee_type,
        'fee_type_display': fee.get_fee_type_display(),
        'payment_frequency': fee.payment_frequency,
        'classroom': str(fee.classroom) if fee.classroom else 'All classes',
        'classroom_id': fee.classroom_id,
        'session_id': fee.session_id,
        'term': str(fee.term) if fee.term else None,
        'term_id': fee.term_id,
        'is_active': fee.is_active,
        'is_mandatory': fee.is_mandatory,
        'due_date': fee.due_date,
        'late_fee_amount': fee.late_fee_amount,
        'grace_period_days': fee.grace_period_days,
        'is_overdue': fee.is_overdue(),
    }


def payment_payload(payment):
    return {
        'id': payment.id,
        'payment_reference': payment.payment_reference,
        'receipt_number': payment.receipt_number,
        'student': payment.student.full_name,
        'student_id': payment.student_id,
        'admission_number': payment.student.admission_number,
        'fee': payment.fee.name,
        'fee_id': payment.fee_id,
        'amount': payment.amount,
        'fee_amount': payment.fee_amount,
        'currency': payment.currency,
        'method': payment.method,
        'method_display': payment.get_method_display(),
        'status': payment.status,
        'paid_at': payment.paid_at,
        'is_partial_payment': payment.is_partial_payment,
        'balance_before': payment.balance_before,
        'balance_after': payment.balance_after,
        'notes': payment.notes,
        'created_at': payment.created_at,
    }


def apply_fee_fields(fee, post):
    fee.name = post.get('name', fee.name).strip()
    fee.description = post.get('description', fee.description)
    fee.amount = post.get('amount', fee.amount)
    fee.fee_type = post.get('fee_type', fee.fee_type)
    fee.payment_frequency = post.get('payment_frequency', fee.payment_frequency)
    if 'classroom' in post:
        fee.classroom = Classroom.objects.filter(id=post['classroom']).first() if post['classroom'] else None
    if 'session' in post:
        fee.session = AcademicSession.objects.filter(id=post['session']).first() if post['session'] else None
    if 'term' in post:
        fee.term = Term.objects.filter(id=post['term']).first() if post['term'] else None
    if 'due_date' in post:
        fee.due_date = post['due_date'] or None
    if 'late_fee_amount' in post:
        fee.late_fee_amount = post['late_fee_amount'] or 0
    if 'grace_period_days' in post:
        fee.grace_period_days = post['grace_period_days'] or None
    fee.is_active = post.get('is_active', 'on' if fee.is_active else '') == 'on'
    fee.is_mandatory = post.get('is_mandatory', 'on' if fee.is_mandatory else '') == 'on'


# ---------- FEES (ADMIN) ----------

@login_required
@admin_required
def fee_list(request):
    if request.method == 'POST':
        if not request.POST.get('name') or not request.POST.get('amount'):
            messages.error(request, "Name and amount are required.")
            return redirect('fees:fee_list')
        fee = Fee()
        apply_fee_fields(fee, request.POST)
        fee.save()
        messages.success(request, f"Fee {fee.name} created.")
        return redirect('fees:fee_list')

    fees = Fee.objects.select_related('classroom', 'term', 'term__session')
    return render_page(request, 'Admin/Fees/Index', {
        'fees': [fee_payload(f) for f in fees],
        'classrooms': [{'id': c.id, 'name': str(c)} for c in Classroom.objects.all()],
        'terms': [{'id': t.id, 'name': str(t)} for t in Term.objects.select_related('session')],
        'fee_types': Fee.FEE_TYPE_CHOICES,
        'frequencies': Fee.FREQUENCY_CHOICES,
    })


@login_required
@admin_required
@require_POST
def fee_edit(request, pk):
    fee = get_object_or_404(Fee, pk=pk)
    apply_fee_fields(fee, request.POST)
    fee.save()
    messages.success(request, f"Fee {fee.name} updated.")
    return redirect('fees:fee_list')


@login_required
@admin_required
@require_POST
def fee_delete(request, pk):
    fee = get_object_or_404(Fee, pk=pk)
    if fee.payments.exists():
        fee.is_active = False
        fee.save(update_fields=['is_active', 'updated_at'])
        messages.warning(request, f"{fee.name} has payments and was deactivated instead of deleted.")
    else:
        fee.delete()
        messages.success(request, "Fee deleted.")
    return redirect('fees:fee_list')


# ---------- PAYMENTS (ADMIN) ----------

def filtered_payments(request):
    payments = Payment.objects.select_related('student', 'student__user', 'fee', 'recorded_by')
    if request.GET.get('status'):
        payments = payments.filter(status=request.GET['status'])
    if request.GET.get('method'):
        payments = payments.filter(method=request.GET['method'])
    if request.GET.get('fee'):
        payments = payments.filter(fee_id=request.GET['fee'])
    if request.GET.get('date_from'):
        payments = payments.filter(created_at__date__gte=request.GET['date_from'])
    if request.GET.get('date_to'):
        payments = payments.filter(created_at__date__lte=request.GET['date_to'])
    query = request.GET.get('q', '').strip()
    if query:
        payments = payments.filter(
            Q(payment_reference__icontains=query)
            | Q(receipt_number__icontains=query)
            | Q(student__admission_number__icontains=query)
            | Q(student__user__first_name__icontains=query)
            | Q(student__user__last_name__icontains=query)
        )
    return payments


@login_required
@admin_required
def payment_list(request):
    payments = filtered_payments(request)
    return render_page(request, 'Admin/Payments/Index', {
        'payments': [payment_payload(p) for p in payments[:200]],
        'statistics': services.payment_statistics(payments),
        'filters': {key: request.GET.get(key, '') for key in ('status', 'method', 'fee', 'date_from', 'date_to', 'q')},
        'statuses': Payment.STATUS_CHOICES,
        'methods': Payment.METHOD_CHOICES,
    })


@login_required
@admin_required
def payment_detail(request, pk):
    payment = get_object_or_404(Payment.objects.select_related('student', 'student__user', 'fee'), pk=pk)
    return render_page(request, 'Admin/Payments/Show', {
        'payment': dict(payment_payload(payment), gateway_response=payment.gateway_response),
        'fee_status': payment.fee.status_for(payment.student),
    })


@login_required
@admin_required
@require_POST
def payment_record(request):
    """Record a cash, bank transfer or POS payment"""
    student = get_object_or_404(Student, id=request.POST.get('student'))
    fee = get_object_or_404(Fee, id=request.POST.get('fee'))
    try:
        payment = services.record_manual_payment(
            student, fee,
            request.POST.get('amount'),
            request.POST.get('method', 'cash'),
            recorded_by=request.user,
            notes=request.POST.get('notes', ''),
        )
    except PaymentError as e:
        messages.error(request, str(e))
        return redirect('fees:payment_list')
    messages.success(request, f"Payment recorded. Receipt {payment.receipt_number}.")
    return redirect('fees:payment_detail', pk=payment.pk)


@login_required
@admin_required
@require_POST
def payment_verify(request, pk):
    payment = get_object_or_404(Payment, pk=pk)
    try:
        payment = services.verify_payment(payment.payment_reference)
    except (PaymentError, PaystackError) as e:
        messages.error(request, f"Verification failed: {e}")
        return redirect('fees:payment_detail', pk=pk)
    if payment.is_successful:
        messages.success(request, "Payment verified as successful.")
    else:
        messages.warning(request, f"Payment status: {payment.get_status_display()}.")
    return redirect('fees:payment_detail', pk=pk)


@login_required
@admin_required
def payments_export(request):
    rows = [
        [
            p.payment_reference,
            p.receipt_number,
            p.student.full_name,
            p.student.admission_number,
            p.fee.name,
            p.amount,
            p.get_method_display(),
            p.get_status_display(),
            p.paid_at.strftime('%Y-%m-%d %H:%M') if p.paid_at else '',
            p.recorded_by.get_full_name() if p.recorded_by else '',
        ]
        for p in filtered_payments(request)
    ]
    return xlsx_response('payments.xlsx', 'Payments', PAYMENT_EXPORT_HEADERS, rows)


@login_required
@admin_required
@require_POST
def paystack_test(request):
    ok, message = PaystackClient().test_connection()
    if ok:
        messages.success(request, message)
    else:
        messages.error(request, message)
    return redirect('settings')


# ---------- STUDENT ----------

@login_required
@student_required
def my_fees(request):
    student = request.user.student
    summary = services.student_fee_summary(student)
    return render_page(request, 'Student/Payments/Dashboard', {
        'fees': [dict(fee_payload(row['fee']), **{k: v for k, v in row.items() if k != 'fee'}) for row in summary],
        'total_outstanding': sum((row['balance'] for row in summary), 0),
        'recent_payments': [payment_payload(p) for p in student.payments.select_related('fee')[:5]],
        'paystack_public_key': settings.PAYSTACK_PUBLIC_KEY,
    })


@login_required
@student_required
@require_POST
def pay_fee(request, fee_id):
    student = request.user.student
    fee = get_object_or_404(services.fees_for_student(student), pk=fee_id)
    callback_url = settings.PAYSTACK_CALLBACK_URL or request.build_absolute_uri(reverse('fees:payment_callback'))
    try:
        payment = services.create_payment(student, fee, request.POST.get('amount'), callback_url=callback_url)
    except PaymentError as e:
        messages.error(request, str(e))
        return redirect('fees:my_fees')
    except PaystackError as e:
        messages.error(request, f"Payment could not be started: {e}")
        return redirect('fees:my_fees')
    return redirect(payment.authorization_url)


@login_required
@student_required
def payment_callback(request):
    """Paystack redirects here after checkout"""
    reference = request.GET.get('reference') or request.GET.get('trxref')
    if not reference:
        messages.error(request, "Missing payment reference.")
        return redirect('fees:my_fees')

    payment = services.find_payment(reference)
    if payment is None or payment.student_id != request.user.student.id:
        messages.error(request, "Payment record not found.")
        return redirect('fees:my_fees')

    try:
        payment = services.verify_payment(reference)
    except PaystackError as e:
        messages.error(request, f"We could not confirm your payment yet: {e}")
        return redirect('fees:payment_history')

    if payment.is_successful:
        messages.success(request, f"Payment successful. Receipt {payment.receipt_number}.")
    else:
        messages.error(request, "Payment was not successful.")
    return redirect('fees:payment_history')


@login_required
@student_required
def payment_history(request):
    payments = request.user.student.payments.select_related('fee', 'student', 'student__user')
    return render_page(request, 'Student/Payments/History', {
        'payments': [payment_payload(p) for p in payments],
    })


@login_required
def payment_receipt(request, pk):
    payment = get_object_or_404(Payment.objects.select_related('student', 'student__user', 'fee'), pk=pk)
    own = getattr(request.user, 'student', None) is not None and request.user.student.id == payment.student_id
    if not (own or is_admin(request.user)):
        return HttpResponseForbidden("Access denied.")
    if not payment.is_successful:
        return HttpResponse("Receipts are only available for successful payments.", status=404)

    response = HttpResponse(receipt_pdf(payment), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="receipt_{payment.receipt_number}.pdf"'
    return response


# ---------- WEBHOOK ----------

@csrf_exempt
@require_POST
def paystack_webhook(request):
    signature = request.headers.get('x-paystack-signature', '')
    if not PaystackClient().verify_signature(request.body, signature):
        logger.warning("Rejected Paystack webhook with invalid signature")
        return HttpResponseBadRequest("Invalid signature")

    try:
        payload = json.loads(request.body)
    except json.JSONDecodeError:
        return HttpResponseBadRequest("Invalid payload")
    if not isinstance(payload, dict):
        return HttpResponseBadRequest("Invalid payload")

    try:
        services.handle_webhook(payload)
    except (PaymentError, PaystackError) as e:
        logger.error("Paystack webhook processing failed: %s", e)
        return JsonResponse({'status': False, 'message': str(e)}, status=200)
    return JsonResponse({'status': True})

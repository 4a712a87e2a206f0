import logging
import os
from datetime import datetime

from django.shortcuts import redirect, get_object_or_404
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied
from django.db.models import Q
from django.http import FileResponse, Http404, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.views.decorators.http import require_POST

from Authentication.decorators import admin_required, teacher_required, wants_json
from Authentication.models import Profile, is_admin, is_student, is_teacher, user_role
from ExamManagement.models import Exam, StudentAnswer, StudentExamAttempt
from FeeManagement.models import Payment
from FeeManagement.services import payment_statistics, student_fee_summary
from management.models import Classroom, Student, Teacher, Term
from management.services import get_teacher, teacher_classrooms
from ResultManagement.models import TermResult
from . import messaging, notifications
from .models import Event, Message, Notification
from .pages import render_page

logger = logging.getLogger(__name__)


def Home(request):
    if request.user.is_authenticated:
        return redirect('dashboard')
    return redirect('login')


# ---------- DASHBOARD ----------

def admin_dashboard():
    recent = Payment.objects.filter(status=Payment.STATUS_SUCCESSFUL).select_related('student', 'student__user', 'fee')[:5]
    stats = payment_statistics()
    return {
        'counts': {
            'students': Student.objects.filter(is_active=True).count(),
            'teachers': Teacher.objects.count(),
            'classrooms': Classroom.objects.count(),
            'exams': Exam.objects.exclude(status=Exam.STATUS_CANCELLED).count(),
        },
        'revenue': stats['total_amount'],
        'payment_statistics': stats,
        'recent_payments': [
            {
                'id': p.id,
                'student': p.student.full_name,
                'fee': p.fee.name,
                'amount': p.amount,
                'method': p.get_method_display(),
                'paid_at': p.paid_at,
            }
            for p in recent
        ],
    }


def teacher_dashboard(user):
    teacher = get_teacher(user)
    exams = Exam.objects.filter(teacher=user).select_related('subject')
    pending_grading = StudentAnswer.objects.filter(
        attempt__exam__teacher=user,
        attempt__status__in=StudentExamAttempt.FINISHED_STATUSES,
        is_correct__isnull=True,
    ).count()
    return {
        'classrooms': [
            {'id': c.id, 'name': str(c), 'students': c.active_student_count()}
            for c in teacher_classrooms(teacher)
        ],
        'exams': [
            {'id': e.id, 'title': e.title, 'subject': e.subject.name, 'status': e.status, 'start_time': e.start_time}
            for e in exams[:10]
        ],
        'pending_grading': pending_grading,
    }


def student_dashboard(user):
    student = user.student
    now = timezone.now()
    upcoming = Exam.objects.filter(
        classrooms=student.classroom, is_published=True, is_active=True,
    ).filter(Q(end_time__isnull=True) | Q(end_time__gte=now)).exclude(
        status__in=[Exam.STATUS_DRAFT, Exam.STATUS_CANCELLED, Exam.STATUS_COMPLETED]
    ).select_related('subject').distinct().order_by('start_time')[:5]
    fees = student_fee_summary(student)
    latest = TermResult.objects.filter(student=student).select_related('term', 'term__session').order_by('-term__start_date').first()
    return {
        'student': {
            'name': student.full_name,
            'admission_number': student.admission_number,
            'classroom': str(student.classroom) if student.classroom else None,
        },
        'upcoming_exams': [
            {'id': e.id, 'title': e.title, 'subject': e.subject.name, 'start_time': e.start_time, 'end_time': e.end_time}
            for e in upcoming
        ],
        'outstanding_fees': sum((row['balance'] for row in fees), 0),
        'unpaid_fees': [
            {'id': row['fee'].id, 'name': row['fee'].name, 'balance': row['balance'], 'due_date': row['fee'].due_date}
            for row in fees if row['balance'] > 0
        ],
        'latest_term_result': {
            'term': str(latest.term),
            'average_score': latest.average_score,
            'grade': latest.grade,
            'position': latest.position,
        } if latest else None,
    }


@login_required
def dashboard(request):
    user = request.user
    term = Term.current()
    props = {
        'current_term': str(term) if term else None,
        'unread_notifications': notifications.unread_count(user),
    }
    if is_admin(user):
        props.update(admin_dashboard())
        component = 'Admin/Dashboard'
    elif is_teacher(user):
        props.update(teacher_dashboard(user))
        component = 'Teacher/Dashboard'
    elif is_student(user) and getattr(user, 'student', None) is not None:
        props.update(student_dashboard(user))
        component = 'Student/Dashboard'
    else:
        component = 'Dashboard'
    return render_page(request, component, props)


# ---------- NOTIFICATIONS ----------

@login_required
def notification_list(request):
    items = Notification.for_user(request.user).select_related('sender')
    if request.GET.get('unread'):
        items = items.exclude(read_by=request.user)
    return render_page(request, 'Notifications/Index', {
        'notifications': [notifications.serialize(n, request.user) for n in items[:100]],
        'unread_count': notifications.unread_count(request.user),
    })


@login_required
@require_POST
def notification_read(request, pk):
    notification = get_object_or_404(Notification.for_user(request.user), pk=pk)
    notifications.mark_read(notification, request.user)
    if wants_json(request):
        return JsonResponse({'read': True, 'unread_count': notifications.unread_count(request.user)})
    return redirect('notifications')


@login_required
@require_POST
def notification_read_all(request):
    count = notifications.mark_all_read(request.user)
    if wants_json(request):
        return JsonResponse({'marked': count, 'unread_count': 0})
    messages.success(request, f"Marked {count} notifications as read.")
    return redirect('notifications')


@login_required
def notification_unread_count(request):
    return JsonResponse({'unread_count': notifications.unread_count(request.user)})


@login_required
@admin_required
@require_POST
def notification_send(request):
    title = request.POST.get('title', '').strip()
    body = request.POST.get('body', '').strip()
    target = request.POST.get('target', 'all')
    if not title or not body:
        messages.error(request, "Title and message are required.")
        return redirect('notifications')

    if target == 'all':
        notifications.send_to_all(title, body, sender=request.user)
    elif target == 'students':
        notifications.send_to_all_students(title, body, sender=request.user)
    elif target == 'teachers':
        notifications.send_to_all_teachers(title, body, sender=request.user)
    elif target == 'classroom':
        classroom = get_object_or_404(Classroom, id=request.POST.get('classroom'))
        notifications.send_to_classroom(classroom, title, body, sender=request.user)
    elif target == 'user':
        profile = get_object_or_404(Profile, user_id=request.POST.get('user'))
        notifications.send_to_user(profile.user, title, body, sender=request.user)
    else:
        messages.error(request, "Unknown recipients.")
        return redirect('notifications')

    logger.info("Notification '%s' sent to %s by %s", title, target, request.user.username)
    messages.success(request, "Notification sent.")
    return redirect('notifications')


# ---------- EVENTS ----------

def parse_dt(value):
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


@login_required
def event_list(request):
    events = Event.objects.select_related('classroom')
    if is_student(request.user) and getattr(request.user, 'student', None) is not None:
        events = events.filter(Q(classroom__isnull=True) | Q(classroom=request.user.student.classroom_id))

    month = request.GET.get('month')  # YYYY-MM
    if month:
        try:
            first = datetime.strptime(month, '%Y-%m')
        except ValueError:
            messages.error(request, "Month must look like 2025-01.")
        else:
            events = events.filter(start__year=first.year, start__month=first.month)

    return render_page(request, 'Events/Index', {
        'events': [
            {
                'id': e.id,
                'title': e.title,
                'description': e.description,
                'start': e.start,
                'end': e.end,
                'event_type': e.event_type,
                'classroom': str(e.classroom) if e.classroom else None,
            }
            for e in events
        ],
        'month': month,
        'can_manage': is_admin(request.user),
    })


@login_required
@admin_required
@require_POST
def event_create(request):
    title = request.POST.get('title', '').strip()
    start = parse_dt(request.POST.get('start'))
    end = parse_dt(request.POST.get('end'))
    if not title or start is None:
        messages.error(request, "Title and start time are required.")
        return redirect('events')
    if end and end < start:
        messages.error(request, "An event cannot end before it starts.")
        return redirect('events')

    classroom_id = request.POST.get('classroom')
    Event.objects.create(
        title=title,
        description=request.POST.get('description', ''),
        start=start,
        end=end,
        event_type=request.POST.get('event_type', 'academic'),
        classroom=Classroom.objects.filter(id=classroom_id).first() if classroom_id else None,
        created_by=request.user,
    )
    messages.success(request, f"Event {title} created.")
    return redirect('events')


@login_required
@admin_required
@require_POST
def event_delete(request, pk):
    event = get_object_or_404(Event, pk=pk)
    event.delete()
    messages.success(request, "Event deleted.")
    return redirect('events')


# ---------- MESSAGES ----------

def message_recipients(user):
    users = User.objects.filter(is_active=True).exclude(pk=user.pk).select_related('profile')
    if is_student(user):
        # students write to staff only
        users = users.filter(Q(is_superuser=True) | Q(profile__role__in=[Profile.ROLE_ADMIN, Profile.ROLE_TEACHER]))
    return users.order_by('first_name', 'last_name', 'username')


@login_required
def message_inbox(request):
    return render_page(request, 'Messages/Inbox', {
        'messages': [messaging.serialize(m, request.user) for m in messaging.inbox(request.user)[:100]],
        'unread_count': messaging.unread_count(request.user),
    })


@login_required
def message_sent(request):
    return render_page(request, 'Messages/Sent', {
        'messages': [messaging.serialize(m, request.user) for m in messaging.sent(request.user)[:100]],
    })


@login_required
def message_compose(request):
    return render_page(request, 'Messages/Create', {
        'recipients': [
            {'id': u.id, 'name': u.get_full_name() or u.username, 'role': user_role(u)}
            for u in message_recipients(request.user)
        ],
        'classrooms': [{'id': c.id, 'name': str(c)} for c in Classroom.objects.all()]
        if not is_student(request.user) else [],
        'can_send_bulk': not is_student(request.user),
    })


@login_required
@require_POST
def message_send(request):
    receiver_id = request.POST.get('receiver', '')
    if not receiver_id.isdigit():
        messages.error(request, "Choose who to send the message to.")
        return redirect('message_compose')
    receiver = get_object_or_404(message_recipients(request.user), pk=receiver_id)
    try:
        messaging.send_message(
            request.user,
            receiver,
            request.POST.get('subject', ''),
            request.POST.get('body', ''),
            request.FILES.get('attachment'),
        )
    except messaging.MessageError as e:
        messages.error(request, str(e))
        return redirect('message_compose')
    messages.success(request, "Message sent successfully!")
    return redirect('message_sent')


@login_required
@teacher_required
@require_POST
def message_send_bulk(request):
    receivers = list(message_recipients(request.user).filter(
        pk__in=[v for v in request.POST.getlist('receivers') if v.isdigit()]
    ))
    classroom_id = request.POST.get('classroom', '')
    if classroom_id.isdigit():
        classroom = get_object_or_404(Classroom, id=classroom_id)
        known = {u.pk for u in receivers}
        receivers += [
            s.user for s in classroom.students.filter(is_active=True).select_related('user')
            if s.user_id not in known
        ]
    try:
        count = messaging.send_bulk(
            request.user,
            receivers,
            request.POST.get('subject', ''),
            request.POST.get('body', ''),
            request.FILES.get('attachment'),
        )
    except messaging.MessageError as e:
        messages.error(request, str(e))
        return redirect('message_compose')
    messages.success(request, f"Messages sent successfully to {count} recipients!")
    return redirect('message_sent')


def visible_message(request, pk):
    message = get_object_or_404(Message.objects.select_related('sender', 'receiver'), pk=pk)
    if not message.can_view(request.user):
        raise PermissionDenied
    return message


@login_required
def message_show(request, pk):
    message = messaging.mark_read(visible_message(request, pk), request.user)
    return render_page(request, 'Messages/Show', {'message': messaging.serialize(message, request.user)})


@login_required
@require_POST
def message_read(request, pk):
    messaging.mark_read(visible_message(request, pk), request.user)
    return JsonResponse({'read': True, 'unread_count': messaging.unread_count(request.user)})


@login_required
def message_attachment(request, pk):
    message = visible_message(request, pk)
    if not message.attachment or not message.attachment.storage.exists(message.attachment.name):
        raise Http404("Attachment not found")
    return FileResponse(
        message.attachment.open('rb'),
        as_attachment=True,
        filename=os.path.basename(message.attachment.name),
    )


@login_required
@require_POST
def message_delete(request, pk):
    messaging.delete_message(visible_message(request, pk))
    if wants_json(request):
        return JsonResponse({'deleted': True})
    messages.success(request, "Message deleted.")
    return redirect('message_inbox')


@login_required
def message_unread_count(request):
    return JsonResponse({'count': messaging.unread_count(request.user)})

import logging
from datetime import date

from django.shortcuts import redirect, get_object_or_404
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.db import IntegrityError, transaction
from django.db.models import Prefetch, Q
from django.utils import timezone
from django.views.decorators.http import require_POST

from Authentication.decorators import admin_required, teacher_required, student_required
from Authentication.models import is_admin
from core.pages import render_page
from core.spreadsheets import SpreadsheetError, xlsx_response
from .models import AcademicSession, Attendance, Classroom, ClassSubject, Setting, Student, Subject, Teacher, Term
from .services import (
    can_teacher_manage_classroom, create_student, create_teacher, get_teacher, teacher_classrooms,
)
from .spreadsheets import STUDENT_HEADERS, import_students, parse_date, student_export_rows

logger = logging.getLogger(__name__)


def classroom_payload(classroom):
    return {
        'id': classroom.id,
        'name': str(classroom),
        'section': classroom.section,
        'capacity': classroom.capacity,
        'class_teacher': classroom.class_teacher.full_name if classroom.class_teacher else None,
        'class_teacher_id': classroom.class_teacher_id,
    }


def student_payload(student):
    return {
        'id': student.id,
        'name': student.full_name,
        'admission_number': student.admission_number,
        'email': student.user.email,
        'classroom': str(student.classroom) if student.classroom else None,
        'classroom_id': student.classroom_id,
        'gender': student.gender,
        'date_of_birth': student.date_of_birth,
        'parent_name': student.parent_name,
        'parent_phone': student.parent_phone,
        'is_active': student.is_active,
        'photo': student.photo.url if student.photo else None,
    }


def teacher_payload(teacher):
    return {
        'id': teacher.id,
        'name': teacher.full_name,
        'email': teacher.user.email,
        'employee_id': teacher.employee_id,
        'phone': teacher.phone,
        'qualification': teacher.qualification,
        'photo': teacher.photo.url if teacher.photo else None,
        'subjects': [
            {'classroom': str(cs.classroom), 'subject': cs.subject.name}
            for cs in teacher.class_subjects.all()
        ],
    }


# ---------- SESSIONS & TERMS ----------

@login_required
@admin_required
def session_list(request):
    if request.method == 'POST':
        name = request.POST.get('name', '').strip()
        start_date = request.POST.get('start_date')
        end_date = request.POST.get('end_date')
        if not name or not start_date or not end_date:
            messages.error(request, "Name, start date and end date are required.")
            return redirect('session_list')
        if AcademicSession.objects.filter(name=name).exists():
            messages.error(request, f"Session {name} already exists.")
            return redirect('session_list')
        AcademicSession.objects.create(
            name=name,
            start_date=start_date,
            end_date=end_date,
            is_current=request.POST.get('is_current') == 'on',
        )
        messages.success(request, "Academic session created.")
        return redirect('session_list')

    sessions = AcademicSession.objects.prefetch_related('terms')
    return render_page(request, 'Admin/Sessions/Index', {
        'sessions': [
            {
                'id': s.id,
                'name': s.name,
                'start_date': s.start_date,
                'end_date': s.end_date,
                'is_current': s.is_current,
                'terms': [
                    {'id': t.id, 'name': t.name, 'start_date': t.start_date, 'end_date': t.end_date, 'is_current': t.is_current}
                    for t in s.terms.all()
                ],
            }
            for s in sessions
        ],
    })


@login_required
@admin_required
@require_POST
def session_delete(request, pk):
    session = get_object_or_404(AcademicSession, pk=pk)
    session.delete()
    messages.success(request, "Academic session deleted.")
    return redirect('session_list')


@login_required
@admin_required
@require_POST
def set_current_session(request, pk):
    session = get_object_or_404(AcademicSession, pk=pk)
    session.is_current = True
    session.save()
    messages.success(request, f"{session.name} is now the current session.")
    return redirect('session_list')


@login_required
@admin_required
@require_POST
def term_add(request, session_id):
    session = get_object_or_404(AcademicSession, pk=session_id)
    name = request.POST.get('name', '').strip()
    start_date = request.POST.get('start_date')
    end_date = request.POST.get('end_date')
    if not name or not start_date or not end_date:
        messages.error(request, "Name, start date and end date are required.")
        return redirect('session_list')
    try:
        Term.objects.create(
            session=session,
            name=name,
            start_date=start_date,
            end_date=end_date,
            is_current=request.POST.get('is_current') == 'on',
        )
    except IntegrityError:
        messages.error(request, f"{name} already exists in {session.name}.")
        return redirect('session_list')
    messages.success(request, "Term created.")
    return redirect('session_list')


@login_required
@admin_required
@require_POST
def term_delete(request, pk):
    term = get_object_or_404(Term, pk=pk)
    term.delete()
    messages.success(request, "Term deleted.")
    return redirect('session_list')


@login_required
@admin_required
@require_POST
def set_current_term(request, pk):
    term = get_object_or_404(Term, pk=pk)
    with transaction.atomic():
        term.is_current = True
        term.save()
        if not term.session.is_current:
            term.session.is_current = True
            term.session.save()
    messages.success(request, f"{term} is now the current term.")
    return redirect('session_list')


# ---------- SUBJECTS ----------

@login_required
@admin_required
def subject_list(request):
    subjects = Subject.objects.all()
    return render_page(request, 'Admin/Subjects/Index', {
        'subjects': [{'id': s.id, 'name': s.name, 'code': s.code, 'description': s.description} for s in subjects],
    })


@login_required
@admin_required
@require_POST
def subject_add(request):
    name = request.POST.get('name', '').strip()
    code = request.POST.get('code', '').strip().upper()
    if not name or not code:
        messages.error(request, "Subject name and code are required.")
    elif Subject.objects.filter(code=code).exists():
        messages.error(request, f"Subject code {code} is already in use.")
    else:
        Subject.objects.create(name=name, code=code, description=request.POST.get('description', ''))
        messages.success(request, "Subject added successfully.")
    return redirect('subject_list')


@login_required
@admin_required
@require_POST
def subject_edit(request, pk):
    subject = get_object_or_404(Subject, pk=pk)
    code = request.POST.get('code', subject.code).strip().upper()
    if Subject.objects.filter(code=code).exclude(pk=pk).exists():
        messages.error(request, f"Subject code {code} is already in use.")
        return redirect('subject_list')
    subject.name = request.POST.get('name', subject.name).strip()
    subject.code = code
    subject.description = request.POST.get('description', subject.description)
    subject.save()
    messages.success(request, "Subject updated successfully.")
    return redirect('subject_list')


@login_required
@admin_required
@require_POST
def subject_delete(request, pk):
    subject = get_object_or_404(Subject, pk=pk)
    subject.delete()
    messages.success(request, "Subject deleted successfully.")
    return redirect('subject_list')


# ---------- CLASSES ----------

@login_required
@admin_required
def class_list(request):
    classes = Classroom.objects.select_related('class_teacher__user').prefetch_related(
        Prefetch('class_subjects', queryset=ClassSubject.objects.select_related('subject', 'teacher__user'))
    )
    data = []
    for classroom in classes:
        row = classroom_payload(classroom)
        row['students'] = classroom.active_student_count()
        row['subjects'] = [
            {
                'subject_id': cs.subject_id,
                'subject': cs.subject.name,
                'teacher_id': cs.teacher_id,
                'teacher': cs.teacher.full_name if cs.teacher else None,
            }
            for cs in classroom.class_subjects.all()
        ]
        data.append(row)
    return render_page(request, 'Admin/Classes/Index', {
        'classes': data,
        'teachers': [{'id': t.id, 'name': t.full_name} for t in Teacher.objects.select_related('user')],
        'subjects': [{'id': s.id, 'name': s.name} for s in Subject.objects.all()],
    })


def save_class_assignments(request, classroom):
    """Replace subject/teacher assignments from subject_ids + teacher_<subject_id> fields"""
    subject_ids = [int(sid) for sid in request.POST.getlist('subject_ids') if sid]
    ClassSubject.objects.filter(classroom=classroom).exclude(subject_id__in=subject_ids).delete()
    for subject_id in subject_ids:
        teacher_id = request.POST.get(f'teacher_{subject_id}') or None
        ClassSubject.objects.update_or_create(
            classroom=classroom,
            subject_id=subject_id,
            defaults={'teacher_id': teacher_id},
        )
    teacher_ids = [int(tid) for tid in request.POST.getlist('teacher_ids') if tid]
    classroom.teachers.set(teacher_ids)


@login_required
@admin_required
@require_POST
def add_class(request):
    name = request.POST.get('name', '').strip()
    if not name:
        messages.error(request, "Class name is required.")
        return redirect('class_list')
    with transaction.atomic():
        classroom = Classroom.objects.create(
            name=name,
            section=request.POST.get('section') or None,
            capacity=request.POST.get('capacity') or 40,
            class_teacher_id=request.POST.get('class_teacher') or None,
        )
        save_class_assignments(request, classroom)
    messages.success(request, "Class added successfully.")
    return redirect('class_list')


@login_required
@admin_required
@require_POST
def edit_class(request, class_id):
    classroom = get_object_or_404(Classroom, id=class_id)
    with transaction.atomic():
        classroom.name = request.POST.get('name', classroom.name).strip()
        classroom.section = request.POST.get('section') or None
        classroom.capacity = request.POST.get('capacity') or classroom.capacity
        classroom.class_teacher_id = request.POST.get('class_teacher') or None
        classroom.save()
        save_class_assignments(request, classroom)
    messages.success(request, "Class updated successfully.")
    return redirect('class_list')


@login_required
@admin_required
@require_POST
def delete_class(request, class_id):
    classroom = get_object_or_404(Classroom, id=class_id)
    classroom.delete()
    messages.success(request, "Class deleted successfully.")
    return redirect('class_list')


# ---------- TEACHERS ----------

@login_required
@admin_required
def teacher_list(request):
    # Prefetch ClassSubjects per teacher with related class and subject
    teachers = Teacher.objects.select_related('user').prefetch_related(
        Prefetch(
            'class_subjects',
            queryset=ClassSubject.objects.select_related('classroom', 'subject')
        )
    )
    return render_page(request, 'Admin/Teachers/Index', {
        'teachers': [teacher_payload(t) for t in teachers],
    })


@login_required
@admin_required
@require_POST
def add_teacher(request):
    first_name = request.POST.get('first_name', '').strip()
    last_name = request.POST.get('last_name', '').strip()
    email = request.POST.get('email', '').strip()
    employee_id = request.POST.get('employee_id', '').strip()

    if not first_name or not last_name or not email or not employee_id:
        messages.error(request, "First name, last name, email and employee ID are required.")
        return redirect('teachers_list')
    if Teacher.objects.filter(employee_id=employee_id).exists():
        messages.error(request, f"Employee ID {employee_id} is already in use.")
        return redirect('teachers_list')

    create_teacher(
        first_name, last_name, email, employee_id,
        phone=request.POST.get('phone') or None,
        qualification=request.POST.get('qualification') or None,
        address=request.POST.get('address') or None,
        photo=request.FILES.get('photo'),
    )
    messages.success(request, "Teacher added successfully!")
    return redirect('teachers_list')


@login_required
@admin_required
@require_POST
def edit_teacher(request, teacher_id):
    teacher = get_object_or_404(Teacher, id=teacher_id)
    user = teacher.user
    user.first_name = request.POST.get('first_name', user.first_name).strip()
    user.last_name = request.POST.get('last_name', user.last_name).strip()
    user.email = request.POST.get('email', user.email).strip()
    user.save()

    for field in ['phone', 'qualification', 'address']:
        if field in request.POST:
            setattr(teacher, field, request.POST.get(field) or None)
    if 'photo' in request.FILES:
        teacher.photo = request.FILES['photo']
    teacher.save()
    messages.success(request, "Teacher updated successfully.")
    return redirect('teachers_list')


@login_required
@admin_required
@require_POST
def delete_teacher(request, teacher_id):
    teacher = get_object_or_404(Teacher, id=teacher_id)
    teacher.user.delete()
    messages.success(request, "Teacher deleted successfully.")
    return redirect('teachers_list')


# ---------- STUDENTS ----------

@login_required
@teacher_required
def student_list(request):
    students = Student.objects.select_related('user', 'classroom')
    if not is_admin(request.user):
        students = students.filter(classroom__in=teacher_classrooms(get_teacher(request.user)))

    class_id = request.GET.get('class')
    search = request.GET.get('q', '').strip()
    if class_id:
        students = students.filter(classroom_id=class_id)
    if search:
        students = students.filter(
            Q(admission_number__icontains=search)
            | Q(user__first_name__icontains=search)
            | Q(user__last_name__icontains=search)
        )

    return render_page(request, 'Students/Index', {
        'students': [student_payload(s) for s in students],
        'classes': [classroom_payload(c) for c in Classroom.objects.all()],
        'filters': {'class': class_id, 'q': search},
    })


@login_required
@admin_required
@require_POST
def add_student(request):
    first_name = request.POST.get('first_name', '').strip()
    last_name = request.POST.get('last_name', '').strip()
    admission_number = request.POST.get('admission_number', '').strip()

    if not first_name or not last_name or not admission_number:
        messages.error(request, "First name, last name and admission number are required.")
        return redirect('list')
    if Student.objects.filter(admission_number=admission_number).exists():
        messages.error(request, f"Admission number {admission_number} is already in use.")
        return redirect('list')

    create_student(
        first_name=first_name,
        last_name=last_name,
        admission_number=admission_number,
        email=request.POST.get('email', '').strip(),
        classroom=Classroom.objects.filter(id=request.POST.get('classroom') or None).first(),
        gender=request.POST.get('gender', ''),
        date_of_birth=request.POST.get('date_of_birth') or None,
        parent_name=request.POST.get('parent_name', ''),
        parent_phone=request.POST.get('parent_phone', ''),
        parent_email=request.POST.get('parent_email', ''),
        address=request.POST.get('address', ''),
        photo=request.FILES.get('photo'),
    )
    messages.success(request, "Student added successfully.")
    return redirect('list')


@login_required
@admin_required
@require_POST
def edit_student(request, student_id):
    student = get_object_or_404(Student, id=student_id)
    user = student.user
    user.first_name = request.POST.get('first_name', user.first_name).strip()
    user.last_name = request.POST.get('last_name', user.last_name).strip()
    user.email = request.POST.get('email', user.email).strip()
    user.save()

    for field in ['gender', 'parent_name', 'parent_phone', 'parent_email', 'address']:
        if field in request.POST:
            setattr(student, field, request.POST.get(field))
    if 'date_of_birth' in request.POST:
        student.date_of_birth = request.POST.get('date_of_birth') or None
    if 'classroom' in request.POST:
        student.classroom_id = request.POST.get('classroom') or None
    if 'photo' in request.FILES:
        student.photo = request.FILES['photo']
    student.is_active = request.POST.get('is_active', 'on') == 'on'
    student.save()
    messages.success(request, "Student updated successfully.")
    return redirect('list')


@login_required
@admin_required
@require_POST
def delete_student(request, student_id):
    student = get_object_or_404(Student, id=student_id)
    student.user.delete()
    messages.success(request, "Student deleted successfully.")
    return redirect('list')


@login_required
@admin_required
@require_POST
def student_import(request):
    upload = request.FILES.get('file')
    if not upload:
        messages.error(request, "Please choose a file to import.")
        return redirect('list')
    try:
        imported, skipped, errors = import_students(upload)
    except SpreadsheetError as e:
        messages.error(request, str(e))
        return redirect('list')

    messages.success(request, f"Imported {imported} students, skipped {skipped} existing.")
    for error in errors[:10]:
        messages.warning(request, error)
    return redirect('list')


@login_required
@admin_required
def student_export(request):
    students = Student.objects.select_related('user', 'classroom')
    if request.GET.get('class'):
        students = students.filter(classroom_id=request.GET['class'])
    return xlsx_response('students.xlsx', 'Students', STUDENT_HEADERS, student_export_rows(students))


# ---------- ATTENDANCE ----------

@login_required
@teacher_required
def attendance(request, class_id):
    classroom = get_object_or_404(Classroom, id=class_id)
    if not is_admin(request.user) and not can_teacher_manage_classroom(get_teacher(request.user), classroom):
        messages.error(request, "You are not assigned to this class.")
        return redirect('dashboard')

    try:
        day = parse_date(request.POST.get('date') or request.GET.get('date')) or timezone.localdate()
    except ValueError:
        messages.error(request, "Invalid date.")
        return redirect('attendance', class_id=class_id)

    students = Student.objects.filter(classroom=classroom, is_active=True).select_related('user')

    if request.method == 'POST':
        term = Term.current()
        valid_statuses = dict(Attendance.STATUS_CHOICES)
        saved_count = 0
        for student in students:
            status = request.POST.get(f'status_{student.id}')
            if status not in valid_statuses:
                continue
            Attendance.objects.update_or_create(
                student=student,
                date=day,
                defaults={
                    'classroom': classroom,
                    'term': term,
                    'status': status,
                    'remarks': request.POST.get(f'remarks_{student.id}', ''),
                    'marked_by': request.user,
                }
            )
            saved_count += 1
        messages.success(request, f"Attendance saved for {saved_count} students.")
        return redirect(f"{request.path}?date={day.isoformat()}")

    existing = {a.student_id: a for a in Attendance.objects.filter(student__in=students, date=day)}
    return render_page(request, 'Attendance/Mark', {
        'classroom': classroom_payload(classroom),
        'date': day,
        'statuses': [{'value': v, 'label': l} for v, l in Attendance.STATUS_CHOICES],
        'students': [
            {
                'id': s.id,
                'name': s.full_name,
                'admission_number': s.admission_number,
                'status': existing[s.id].status if s.id in existing else None,
                'remarks': existing[s.id].remarks if s.id in existing else '',
            }
            for s in students
        ],
    })


@login_required
@student_required
def my_attendance(request):
    student = request.user.student
    term = Term.current()
    records = Attendance.objects.filter(student=student)
    if term:
        records = records.filter(term=term)
    return render_page(request, 'Student/Attendance', {
        'term': str(term) if term else None,
        'summary': Attendance.summary(student, term),
        'records': [{'date': a.date, 'status': a.status, 'remarks': a.remarks} for a in records[:60]],
    })


# ---------- SETTINGS ----------

EDITABLE_SETTINGS = {
    'school_name': ('string', 'general'),
    'school_address': ('string', 'general'),
    'school_phone': ('string', 'general'),
    'school_email': ('string', 'general'),
    'pass_mark': ('integer', 'academic'),
    'late_fee_enabled': ('boolean', 'payment'),
    'late_fee_percentage': ('float', 'payment'),
    'grace_period_days': ('integer', 'payment'),
    'allow_partial_payments': ('boolean', 'payment'),
    'minimum_payment_amount': ('float', 'payment'),
    'send_payment_confirmations': ('boolean', 'payment'),
    'send_payment_reminders': ('boolean', 'payment'),
    'send_overdue_notices': ('boolean', 'payment'),
    'paystack_enabled': ('boolean', 'payment'),
    'app_currency': ('string', 'payment'),
}


@login_required
@admin_required
def settings_view(request):
    if request.method == 'POST':
        updated = 0
        for key, (type_, group) in EDITABLE_SETTINGS.items():
            if type_ == 'boolean':
                if f'{key}_present' in request.POST or key in request.POST:
                    Setting.set_value(key, request.POST.get(key) == 'on', type_, group)
                    updated += 1
            elif key in request.POST:
                value = request.POST.get(key, '').strip()
                if type_ in ('integer', 'float'):
                    try:
                        value = int(value) if type_ == 'integer' else float(value)
                    except ValueError:
                        messages.error(request, f"{key.replace('_', ' ').title()} must be a number.")
                        continue
                Setting.set_value(key, value, type_, group)
                updated += 1
        logger.info("Settings updated by %s (%d keys)", request.user.username, updated)
        messages.success(request, "Settings saved.")
        return redirect('settings')

    settings_data = {}
    for key, (type_, group) in EDITABLE_SETTINGS.items():
        settings_data.setdefault(group, {})[key] = Setting.get_value(key)
    current_term = Term.current()
    return render_page(request, 'Admin/Settings', {
        'settings': settings_data,
        'current_session': str(AcademicSession.current() or ''),
        'current_term': str(current_term) if current_term else None,
        'today': date.today(),
    })

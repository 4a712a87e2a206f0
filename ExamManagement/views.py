import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from django.shortcuts import redirect, get_object_or_404
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.db import transaction
from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.views.decorators.http import require_POST

from Authentication.decorators import admin_required, student_required, teacher_required
from Authentication.models import is_admin
from core.pages import render_page
from management.models import Classroom, Subject, Term
from management.services import can_teacher_manage_subject, get_teacher
from . import services
from .models import Exam, ExamQuestion, ExamTimetable, ExamTimetableEntry, Question, StudentAnswer, StudentExamAttempt
from .pdf import timetable_pdf
from .services import ExamTakingError

logger = logging.getLogger(__name__)


def to_decimal(value, default=None):
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default
    return number if number.is_finite() else default


def to_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_dt(value):
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def can_manage_exam(user, exam):
    return is_admin(user) or exam.teacher_id == user.id


def exam_payload(exam):
    return {
        'id': exam.id,
        'title': exam.title,
        'description': exam.description,
        'subject': exam.subject.name,
        'subject_id': exam.subject_id,
        'term': str(exam.term) if exam.term else None,
        'classrooms': [{'id': c.id, 'name': str(c)} for c in exam.classrooms.all()],
        'duration_minutes': exam.duration_minutes,
        'total_marks': exam.total_marks,
        'passing_marks': exam.passing_marks,
        'instructions': exam.instructions,
        'status': exam.status,
        'is_published': exam.is_published,
        'start_time': exam.start_time,
        'end_time': exam.end_time,
        'attempts_allowed': exam.attempts_allowed,
        'randomize_questions': exam.randomize_questions,
        'randomize_options': exam.randomize_options,
        'show_results_immediately': exam.show_results_immediately,
        'allow_review': exam.allow_review,
        'auto_submit': exam.auto_submit,
    }


def question_payload(question, with_answer=True):
    data = {
        'id': question.id,
        'subject': question.subject.name,
        'subject_id': question.subject_id,
        'question_text': question.question_text,
        'question_type': question.question_type,
        'difficulty_level': question.difficulty_level,
        'marks': question.marks,
        'options': question.options,
        'is_active': question.is_active,
    }
    if with_answer:
        data['correct_answer'] = question.correct_answer
        data['explanation'] = question.explanation
    return data


def apply_exam_fields(exam, post):
    """Copy exam form fields from POST data onto ``exam``"""
    exam.title = post.get('title', exam.title).strip()
    exam.description = post.get('description', exam.description)
    exam.instructions = post.get('instructions', exam.instructions)
    duration = to_int(post.get('duration_minutes'))
    exam.duration_minutes = duration if duration and duration > 0 else (exam.duration_minutes or 60)
    exam.passing_marks = to_decimal(post.get('passing_marks'), exam.passing_marks)
    if 'attempts_allowed' in post:
        exam.attempts_allowed = to_int(post.get('attempts_allowed') or 0, exam.attempts_allowed)
    if 'start_time' in post:
        exam.start_time = parse_dt(post.get('start_time'))
    if 'end_time' in post:
        exam.end_time = parse_dt(post.get('end_time'))
    for flag in ['randomize_questions', 'randomize_options', 'show_results_immediately', 'allow_review', 'auto_submit']:
        if f'{flag}_present' in post or flag in post:
            setattr(exam, flag, post.get(flag) == 'on')


# ============ EXAM AUTHORING VIEWS ============

@login_required
@teacher_required
def exam_list(request):
    exams = Exam.objects.select_related('subject', 'term').prefetch_related('classrooms')
    if not is_admin(request.user):
        exams = exams.filter(teacher=request.user)
    return render_page(request, 'Teacher/CBT/Exams/Index', {
        'exams': [dict(exam_payload(e), attempts=e.attempts.count()) for e in exams],
        'subjects': [{'id': s.id, 'name': s.name} for s in Subject.objects.all()],
        'classes': [{'id': c.id, 'name': str(c)} for c in Classroom.objects.all()],
    })


@login_required
@teacher_required
@require_POST
def exam_create(request):
    subject = get_object_or_404(Subject, id=request.POST.get('subject'))
    classrooms = list(Classroom.objects.filter(id__in=request.POST.getlist('classrooms')))
    title = request.POST.get('title', '').strip()

    if not title or not classrooms:
        messages.error(request, "Please enter a title and choose at least one class.")
        return redirect('exam:exam_list')

    if not is_admin(request.user):
        teacher = get_teacher(request.user)
        for classroom in classrooms:
            if not can_teacher_manage_subject(teacher, classroom, subject):
                messages.error(request, f"You don't teach {subject.name} in {classroom}.")
                return redirect('exam:exam_list')

    exam = Exam(subject=subject, teacher=request.user, term=Term.objects.filter(id=request.POST.get('term') or None).first() or Term.current())
    apply_exam_fields(exam, request.POST)
    if exam.start_time and exam.end_time and exam.end_time <= exam.start_time:
        messages.error(request, "End time must be after the start time.")
        return redirect('exam:exam_list')

    with transaction.atomic():
        exam.save()
        exam.classrooms.set(classrooms)
    messages.success(request, "Exam created. Add questions before publishing.")
    return redirect('exam:exam_detail', pk=exam.pk)


@login_required
@teacher_required
def exam_detail(request, pk):
    exam = get_object_or_404(Exam.objects.select_related('subject', 'term'), pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')

    exam_questions = exam.exam_questions.select_related('question__subject')
    used_ids = [eq.question_id for eq in exam_questions]
    bank = Question.objects.filter(subject=exam.subject, is_active=True).exclude(id__in=used_ids).select_related('subject')

    return render_page(request, 'Teacher/CBT/Exams/Show', {
        'exam': exam_payload(exam),
        'questions': [
            dict(question_payload(eq.question), order=eq.order, allocated_marks=eq.marks)
            for eq in exam_questions
        ],
        'question_bank': [question_payload(q) for q in bank],
        'statistics': services.exam_statistics(exam),
    })


@login_required
@teacher_required
@require_POST
def exam_edit(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    duration = to_int(request.POST.get('duration_minutes'))
    if duration is not None and duration <= 0:
        messages.error(request, "Duration must be a positive number of minutes.")
        return redirect('exam:exam_detail', pk=pk)
    if exam.attempts.exists() and duration is not None and duration != exam.duration_minutes:
        messages.error(request, "Duration cannot change once students have attempted the exam.")
        return redirect('exam:exam_detail', pk=pk)

    apply_exam_fields(exam, request.POST)
    if 'classrooms' in request.POST:
        exam.classrooms.set(Classroom.objects.filter(id__in=request.POST.getlist('classrooms')))
    exam.save()
    messages.success(request, "Exam updated.")
    return redirect('exam:exam_detail', pk=pk)


@login_required
@teacher_required
@require_POST
def exam_delete(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    if exam.attempts.filter(status__in=StudentExamAttempt.FINISHED_STATUSES).exists():
        messages.error(request, "This exam has submissions and cannot be deleted. Cancel it instead.")
        return redirect('exam:exam_detail', pk=pk)
    exam.delete()
    messages.success(request, "Exam deleted.")
    return redirect('exam:exam_list')


@login_required
@teacher_required
@require_POST
def exam_publish(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')

    if exam.is_published:
        exam.is_published = False
        messages.success(request, "Exam unpublished.")
    else:
        if not exam.exam_questions.exists():
            messages.error(request, "Add at least one question before publishing.")
            return redirect('exam:exam_detail', pk=pk)
        exam.is_published = True
        if exam.status == Exam.STATUS_DRAFT:
            exam.status = Exam.STATUS_ACTIVE
        messages.success(request, "Exam published.")
    exam.save()
    return redirect('exam:exam_detail', pk=pk)


@login_required
@teacher_required
@require_POST
def exam_status(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    status = request.POST.get('status')
    if status not in dict(Exam.STATUS_CHOICES):
        messages.error(request, "Invalid status.")
        return redirect('exam:exam_detail', pk=pk)
    exam.status = status
    exam.save()
    if status in (Exam.STATUS_COMPLETED, Exam.STATUS_CANCELLED):
        services.force_submit_all(exam)
    messages.success(request, f"Exam marked as {exam.get_status_display().lower()}.")
    return redirect('exam:exam_detail', pk=pk)


@login_required
@teacher_required
@require_POST
def exam_add_questions(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    questions = Question.objects.filter(id__in=request.POST.getlist('question_ids'), subject=exam.subject)
    added = 0
    with transaction.atomic():
        for question in questions:
            exam.add_question(question, to_decimal(request.POST.get(f'marks_{question.id}')))
            added += 1
    messages.success(request, f"{added} question(s) added. Total marks: {exam.total_marks}")
    return redirect('exam:exam_detail', pk=pk)


@login_required
@teacher_required
@require_POST
def exam_remove_question(request, pk, question_id):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    question = get_object_or_404(Question, pk=question_id)
    exam.remove_question(question)
    messages.success(request, "Question removed.")
    return redirect('exam:exam_detail', pk=pk)


@login_required
@teacher_required
@require_POST
def exam_force_submit(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    count = services.force_submit_all(exam)
    messages.success(request, f"{count} attempt(s) submitted.")
    return redirect('exam:exam_detail', pk=pk)


@login_required
@teacher_required
def exam_attempts(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    if not can_manage_exam(request.user, exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    attempts = exam.attempts.select_related('student__user', 'student__classroom')
    return render_page(request, 'Teacher/CBT/Exams/Attempts', {
        'exam': exam_payload(exam),
        'statistics': services.exam_statistics(exam),
        'attempts': [
            {
                'id': a.id,
                'student': a.student.full_name,
                'admission_number': a.student.admission_number,
                'classroom': str(a.student.classroom) if a.student.classroom else None,
                'status': a.status,
                'start_time': a.start_time,
                'end_time': a.end_time,
                'total_score': a.total_score,
                'percentage': a.percentage,
                'grade': a.grade,
                'passed': a.is_passed,
                'tab_switches': a.tab_switches,
                'time_remaining': services.time_remaining(a),
            }
            for a in attempts
        ],
    })


@login_required
@teacher_required
def attempt_detail(request, attempt_id):
    attempt = get_object_or_404(StudentExamAttempt.objects.select_related('exam', 'student__user'), pk=attempt_id)
    if not can_manage_exam(request.user, attempt.exam):
        messages.error(request, "You can only manage your own exams.")
        return redirect('exam:exam_list')
    answers = {a.question_id: a.id for a in attempt.answers.all()}
    review = services.attempt_review(attempt)
    for item in review:
        item['answer_id'] = answers.get(item['question_id'])
    return render_page(request, 'Teacher/CBT/Attempts/Show', {
        'exam': exam_payload(attempt.exam),
        'attempt': {
            'id': attempt.id,
            'student': attempt.student.full_name,
            'status': attempt.status,
            'total_score': attempt.total_score,
            'percentage': attempt.percentage,
            'grade': attempt.grade,
        },
        'review': review,
    })


@login_required
@teacher_required
@require_POST
def grade_answer(request, answer_id):
    answer = get_object_or_404(StudentAnswer.objects.select_related('attempt__exam', 'question'), pk=answer_id)
    if not can_manage_exam(request.user, answer.attempt.exam):
        messages.error(request, "You can only grade your own exams.")
        return redirect('exam:exam_list')
    marks = to_decimal(request.POST.get('marks'))
    if marks is None:
        messages.error(request, "Enter the marks to award.")
    else:
        services.grade_essay(answer, marks, graded_by=request.user)
        messages.success(request, "Answer graded.")
    return redirect('exam:attempt_detail', attempt_id=answer.attempt_id)


# ============ QUESTION BANK VIEWS ============

def apply_question_fields(question, post):
    question.question_text = post.get('question_text', question.question_text).strip()
    question.question_type = post.get('question_type', question.question_type)
    question.difficulty_level = post.get('difficulty_level', question.difficulty_level)
    question.marks = to_decimal(post.get('marks'), question.marks)
    question.correct_answer = post.get('correct_answer', question.correct_answer).strip()
    question.explanation = post.get('explanation', question.explanation)
    if 'options' in post:
        try:
            options = json.loads(post.get('options') or '{}')
        except json.JSONDecodeError:
            options = None
        if not isinstance(options, dict):
            raise ValueError("Options must be a JSON object such as {\"A\": \"...\"}.")
        question.options = options
    if question.question_type == Question.TYPE_TRUE_FALSE:
        question.options = {'true': 'True', 'false': 'False'}
    if question.question_type == Question.TYPE_MULTIPLE_CHOICE and question.correct_answer not in question.options:
        raise ValueError("The correct answer must be one of the option keys.")


@login_required
@teacher_required
def question_list(request):
    questions = Question.objects.select_related('subject')
    if not is_admin(request.user):
        questions = questions.filter(teacher=request.user)
    if request.GET.get('subject'):
        questions = questions.filter(subject_id=request.GET['subject'])
    return render_page(request, 'Teacher/CBT/Questions/Index', {
        'questions': [question_payload(q) for q in questions],
        'subjects': [{'id': s.id, 'name': s.name} for s in Subject.objects.all()],
        'types': [{'value': v, 'label': l} for v, l in Question.TYPE_CHOICES],
    })


@login_required
@teacher_required
@require_POST
def question_create(request):
    subject = get_object_or_404(Subject, id=request.POST.get('subject'))
    question = Question(subject=subject, teacher=request.user)
    try:
        apply_question_fields(question, request.POST)
    except ValueError as e:
        messages.error(request, str(e))
        return redirect('exam:question_list')
    if not question.question_text:
        messages.error(request, "Question text is required.")
        return redirect('exam:question_list')
    question.save()
    messages.success(request, "Question added to the bank.")
    return redirect('exam:question_list')


@login_required
@teacher_required
@require_POST
def question_edit(request, pk):
    question = get_object_or_404(Question, pk=pk)
    if not is_admin(request.user) and question.teacher_id != request.user.id:
        messages.error(request, "You can only edit your own questions.")
        return redirect('exam:question_list')
    try:
        apply_question_fields(question, request.POST)
    except ValueError as e:
        messages.error(request, str(e))
        return redirect('exam:question_list')
    question.save()
    messages.success(request, "Question updated.")
    return redirect('exam:question_list')


@login_required
@teacher_required
@require_POST
def question_delete(request, pk):
    question = get_object_or_404(Question, pk=pk)
    if not is_admin(request.user) and question.teacher_id != request.user.id:
        messages.error(request, "You can only delete your own questions.")
        return redirect('exam:question_list')
    if ExamQuestion.objects.filter(question=question, exam__attempts__isnull=False).exists():
        question.is_active = False
        question.save()
        messages.warning(request, "Question is used in attempted exams; it has been deactivated instead.")
    else:
        question.delete()
        messages.success(request, "Question deleted.")
    return redirect('exam:question_list')


# ============ STUDENT EXAM VIEWS ============

def student_attempt(request, attempt_id):
    return get_object_or_404(
        StudentExamAttempt.objects.select_related('exam'), pk=attempt_id, student=request.user.student
    )


def request_data(request):
    if request.content_type == 'application/json':
        try:
            return json.loads(request.body or b'{}')
        except json.JSONDecodeError:
            return {}
    return request.POST


@login_required
@student_required
def student_exam_list(request):
    student = request.user.student
    exams = Exam.objects.filter(
        classrooms=student.classroom, is_published=True, is_active=True
    ).exclude(status__in=[Exam.STATUS_DRAFT, Exam.STATUS_CANCELLED]).select_related('subject', 'term').distinct()
    return render_page(request, 'Student/CBT/Exams/Index', {
        'exams': [
            dict(
                exam_payload(exam),
                state=services.exam_status_for(student, exam),
                attempts_used=exam.attempts.filter(student=student).count(),
            )
            for exam in exams
        ],
    })


@login_required
@student_required
def student_exam_show(request, pk):
    student = request.user.student
    exam = get_object_or_404(Exam, pk=pk, is_published=True)
    can_take, reason = services.can_take_exam(student, exam)
    attempts = exam.attempts.filter(student=student)
    return render_page(request, 'Student/CBT/Exams/Show', {
        'exam': exam_payload(exam),
        'question_count': exam.exam_questions.count(),
        'can_take': can_take,
        'reason': reason,
        'attempts': [
            {'id': a.id, 'status': a.status, 'percentage': a.percentage, 'end_time': a.end_time}
            for a in attempts
        ],
    })


@login_required
@student_required
@require_POST
def exam_start(request, pk):
    exam = get_object_or_404(Exam, pk=pk)
    try:
        attempt = services.start_or_resume(
            request.user.student,
            exam,
            ip_address=request.META.get('REMOTE_ADDR'),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
    except ExamTakingError as e:
        messages.error(request, str(e))
        return redirect('exam:student_exam_show', pk=pk)
    return redirect('exam:exam_take', attempt_id=attempt.pk)


@login_required
@student_required
def exam_take(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    if services.close_if_expired(attempt):
        messages.warning(request, "Time is up. Your exam has been submitted automatically.")
    if attempt.is_finished:
        return redirect('exam:attempt_result', attempt_id=attempt.pk)

    answers = {a.question_id: a for a in attempt.answers.all()}
    questions = []
    for number, exam_question in enumerate(services.ordered_questions(attempt), start=1):
        question = exam_question.question
        answer = answers.get(question.pk)
        questions.append({
            'number': number,
            'id': question.pk,
            'question_text': question.question_text,
            'question_type': question.question_type,
            'marks': exam_question.marks,
            'options': services.question_options(attempt, question),
            'answer': answer.answer_text if answer else '',
            'is_flagged': answer.is_flagged if answer else False,
        })

    return render_page(request, 'Student/CBT/Exams/Take', {
        'exam': {
            'id': attempt.exam.id,
            'title': attempt.exam.title,
            'instructions': attempt.exam.instructions,
            'duration_minutes': attempt.exam.duration_minutes,
        },
        'attempt': {'id': attempt.id, 'start_time': attempt.start_time},
        'questions': questions,
        'navigation': services.navigation(attempt),
        'time_remaining': services.time_remaining(attempt),
    })


@login_required
@student_required
@require_POST
def exam_save_answer(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    data = request_data(request)
    question = get_object_or_404(Question, pk=data.get('question_id'))
    try:
        services.save_answer(attempt, question, data.get('answer', ''), data.get('time_spent', 0))
    except ExamTakingError as e:
        return JsonResponse({
            'saved': False,
            'error': str(e),
            'finished': attempt.is_finished,
        }, status=400)
    return JsonResponse({
        'saved': True,
        'time_remaining': services.time_remaining(attempt),
        'navigation': services.navigation(attempt),
    })


@login_required
@student_required
@require_POST
def exam_toggle_flag(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    data = request_data(request)
    question = get_object_or_404(Question, pk=data.get('question_id'))
    try:
        flagged = services.toggle_flag(attempt, question)
    except ExamTakingError as e:
        return JsonResponse({'error': str(e), 'finished': attempt.is_finished}, status=400)
    return JsonResponse({'flagged': flagged, 'navigation': services.navigation(attempt)})


@login_required
@student_required
@require_POST
def exam_tab_switch(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    return JsonResponse({'tab_switches': services.record_tab_switch(attempt)})


@login_required
@student_required
def exam_time_check(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    remaining = services.time_remaining(attempt)
    services.close_if_expired(attempt)
    return JsonResponse({'time_remaining': remaining, 'status': attempt.status})


@login_required
@student_required
@require_POST
def exam_submit(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    try:
        services.submit(attempt)
        messages.success(request, "Exam submitted successfully.")
    except ExamTakingError as e:
        messages.error(request, str(e))
    return redirect('exam:attempt_result', attempt_id=attempt.pk)


@login_required
@student_required
def attempt_result(request, attempt_id):
    attempt = student_attempt(request, attempt_id)
    if not attempt.is_finished:
        return redirect('exam:exam_take', attempt_id=attempt.pk)

    exam = attempt.exam
    props = {
        'exam': {'id': exam.id, 'title': exam.title, 'subject': exam.subject.name},
        'attempt': {
            'id': attempt.id,
            'status': attempt.status,
            'end_time': attempt.end_time,
            'time_taken_seconds': attempt.time_taken_seconds,
        },
        'show_results': exam.show_results_immediately,
    }
    if exam.show_results_immediately:
        props['attempt'].update({
            'total_score': attempt.total_score,
            'total_marks': exam.total_marks,
            'percentage': attempt.percentage,
            'grade': attempt.grade,
            'passed': attempt.is_passed,
        })
        if exam.allow_review:
            props['review'] = services.attempt_review(attempt)
    return render_page(request, 'Student/CBT/Exams/Result', props)


# ============ EXAM TIMETABLE VIEWS ============

def save_timetable_entries(request, timetable):
    """Grid form: exam_date[] rows, class_ids[] columns, subject_<row>_<col> cells"""
    class_ids = request.POST.getlist('class_ids[]')
    exam_dates = request.POST.getlist('exam_date[]')
    classrooms = {str(c.id): c for c in Classroom.objects.filter(id__in=class_ids)}
    subjects = {str(s.id): s for s in Subject.objects.all()}

    timetable.entries.all().delete()
    for r_index, date_str in enumerate(exam_dates):
        try:
            exam_date = datetime.strptime(date_str, '%Y-%m-%d').date()
        except (TypeError, ValueError):
            continue
        for c_index, class_id in enumerate(class_ids):
            subject = subjects.get(request.POST.get(f"subject_{r_index}_{c_index}", ''))
            classroom = classrooms.get(class_id)
            if subject and classroom:
                ExamTimetableEntry.objects.create(
                    timetable=timetable,
                    exam_date=exam_date,
                    classroom=classroom,
                    subject=subject,
                )


def timetable_payload(timetable):
    class_names, dates, rows = timetable.grid()
    return {
        'id': timetable.id,
        'title': timetable.title,
        'term': str(timetable.term) if timetable.term else None,
        'exam_time': timetable.exam_time,
        'note_above': timetable.note_above,
        'note_below': timetable.note_below,
        'is_published': timetable.is_published,
        'class_names': class_names,
        'rows': [{'date': d, 'subjects': row} for d, row in zip(dates, rows)],
    }


@login_required
def timetable_list(request):
    timetables = ExamTimetable.objects.select_related('term').order_by('-created_at')
    if not is_admin(request.user):
        timetables = timetables.filter(is_published=True)
    return render_page(request, 'Timetables/Index', {
        'timetables': [
            {'id': t.id, 'title': t.title, 'term': str(t.term) if t.term else None, 'is_published': t.is_published}
            for t in timetables
        ],
    })


@login_required
@admin_required
@require_POST
def timetable_create(request):
    title = request.POST.get('title', '').strip()
    if not title:
        messages.error(request, "Please enter the timetable title.")
        return redirect('exam:timetable_list')
    if not request.POST.getlist('exam_date[]') or not request.POST.getlist('class_ids[]'):
        messages.error(request, "Please add at least one date and one class.")
        return redirect('exam:timetable_list')

    with transaction.atomic():
        timetable = ExamTimetable.objects.create(
            title=title,
            term=Term.objects.filter(id=request.POST.get('term') or None).first() or Term.current(),
            exam_time=request.POST.get('exam_time', '').strip() or None,
            note_above=request.POST.get('note_above', '').strip() or None,
            note_below=request.POST.get('note_below', '').strip() or None,
            is_published=request.POST.get('is_published') == 'on',
        )
        save_timetable_entries(request, timetable)
    messages.success(request, "Exam timetable created.")
    return redirect('exam:timetable_detail', pk=timetable.pk)


@login_required
def timetable_detail(request, pk):
    timetable = get_object_or_404(ExamTimetable, pk=pk)
    if not timetable.is_published and not is_admin(request.user):
        messages.error(request, "This timetable has not been published yet.")
        return redirect('exam:timetable_list')
    return render_page(request, 'Timetables/Show', {'timetable': timetable_payload(timetable)})


@login_required
@admin_required
@require_POST
def timetable_edit(request, pk):
    timetable = get_object_or_404(ExamTimetable, pk=pk)
    with transaction.atomic():
        timetable.title = request.POST.get('title', timetable.title).strip()
        timetable.exam_time = request.POST.get('exam_time', '').strip() or None
        timetable.note_above = request.POST.get('note_above', '').strip() or None
        timetable.note_below = request.POST.get('note_below', '').strip() or None
        timetable.is_published = request.POST.get('is_published') == 'on'
        timetable.save()
        save_timetable_entries(request, timetable)
    messages.success(request, "Exam timetable updated successfully!")
    return redirect('exam:timetable_detail', pk=timetable.pk)


@login_required
@admin_required
@require_POST
def timetable_delete(request, pk):
    timetable = get_object_or_404(ExamTimetable, pk=pk)
    timetable.delete()
    messages.success(request, "Exam timetable deleted.")
    return redirect('exam:timetable_list')


@login_required
def timetable_download(request, pk):
    timetable = get_object_or_404(ExamTimetable, pk=pk)
    if not timetable.is_published and not is_admin(request.user):
        return HttpResponse("Timetable not published.", status=403)
    response = HttpResponse(timetable_pdf(timetable), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="exam_timetable_{timetable.pk}.pdf"'
    return response

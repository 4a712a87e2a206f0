# ResultManagement/views.py
import json
import logging
from decimal import Decimal, InvalidOperation

from django.shortcuts import redirect, get_object_or_404
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.http import HttpResponse, HttpResponseForbidden, JsonResponse
from django.views.decorators.http import require_POST

from Authentication.decorators import admin_required, student_required, teacher_required
from Authentication.models import is_admin
from core.pages import render_page
from core.spreadsheets import SpreadsheetError, xlsx_response
from ExamManagement.models import Exam
from management.models import Classroom, ClassSubject, Student, Subject, Term
from management.services import get_teacher, teacher_classrooms, teacher_subject_ids
from . import cbt, policies
from .compiler import can_compile, class_statistics, compile_results, subject_statistics
from .grading import grade_info, grading_key, is_pass
from .models import CA_MAX, EXAM_MAX, Result, TermResult
from .report_card import ReportCardError, class_report_cards_zip, report_card_filename, report_card_pdf
from .spreadsheets import EXPORT_HEADERS, TEMPLATE_HEADERS, import_results, result_export_rows, template_rows

logger = logging.getLogger(__name__)


def selected_term(request):
    term_id = request.GET.get('term') or request.POST.get('term')
    if term_id:
        return get_object_or_404(Term, id=term_id)
    return Term.current()


def parse_score(value):
    if value is None or value == '':
        return None
    try:
        score = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{value}' is not a valid score")
    if not score.is_finite():
        raise ValueError(f"'{value}' is not a valid score")
    return score


def visible_classrooms(user):
    if is_admin(user):
        return Classroom.objects.all()
    return teacher_classrooms(get_teacher(user))


def result_payload(result):
    return {
        'id': result.id,
        'student': result.student.full_name,
        'student_id': result.student_id,
        'admission_number': result.student.admission_number,
        'subject': result.subject.name,
        'subject_id': result.subject_id,
        'term': str(result.term),
        'classroom': str(result.classroom) if result.classroom else None,
        'ca_score': result.ca_score,
        'exam_score': result.exam_score,
        'total_score': result.total_score,
        'grade': result.grade,
        'grade_remark': result.grade_remark,
        'position': result.position,
        'remark': result.remark,
        'is_passed': result.is_passed,
        'is_cbt_exam': result.is_cbt_exam,
        'manual_exam_score': result.manual_exam_score,
        'cbt_synced_at': result.cbt_synced_at,
    }


def term_result_payload(term_result):
    return {
        'id': term_result.id,
        'student': term_result.student.full_name,
        'student_id': term_result.student_id,
        'admission_number': term_result.student.admission_number,
        'term': str(term_result.term),
        'term_id': term_result.term_id,
        'classroom': str(term_result.classroom) if term_result.classroom else None,
        'total_score': term_result.total_score,
        'average_score': term_result.average_score,
        'gpa': term_result.gpa,
        'grade': term_result.grade,
        'subjects_count': term_result.subjects_count,
        'position': term_result.position,
        'teacher_comment': term_result.teacher_comment,
        'principal_comment': term_result.principal_comment,
        'compiled_at': term_result.compiled_at,
    }


# ============ RESULTS ============

@login_required
@teacher_required
def result_list(request):
    """Results filtered by class, subject and term"""
    term = selected_term(request)
    classrooms = visible_classrooms(request.user)
    results = Result.objects.filter(classroom__in=classrooms).select_related(
        'student', 'student__user', 'subject', 'term', 'term__session', 'classroom'
    )
    if term:
        results = results.filter(term=term)
    if request.GET.get('class'):
        results = results.filter(classroom_id=request.GET['class'])
    if request.GET.get('subject'):
        results = results.filter(subject_id=request.GET['subject'])

    return render_page(request, 'Results/Index', {
        'results': [result_payload(r) for r in results.order_by('classroom__name', 'subject__name', 'position')],
        'term': {'id': term.id, 'name': str(term)} if term else None,
        'terms': [{'id': t.id, 'name': str(t)} for t in Term.objects.select_related('session')],
        'classrooms': [{'id': c.id, 'name': str(c)} for c in classrooms],
        'subjects': [{'id': s.id, 'name': s.name} for s in Subject.objects.all()],
        'ca_max': CA_MAX,
        'exam_max': EXAM_MAX,
    })


@login_required
@teacher_required
@require_POST
def result_create(request):
    student = get_object_or_404(Student, id=request.POST.get('student'))
    subject = get_object_or_404(Subject, id=request.POST.get('subject'))
    term = selected_term(request)

    if term is None:
        messages.error(request, "No term selected. Set the current term first.")
        return redirect('result:result_list')
    if not policies.can_create_for(request.user, student.classroom, subject):
        messages.error(request, "You don't have permission to enter results for this subject.")
        return redirect('result:result_list')
    if Result.objects.filter(student=student, subject=subject, term=term).exists():
        messages.error(request, f"{student.full_name} already has a {subject.name} result for {term}.")
        return redirect('result:result_list')

    try:
        ca_score = parse_score(request.POST.get('ca_score'))
        exam_score = parse_score(request.POST.get('exam_score'))
        Result.validate_scores(ca_score, exam_score)
    except ValueError as e:
        messages.error(request, str(e))
        return redirect('result:result_list')

    Result.objects.create(
        student=student,
        subject=subject,
        term=term,
        teacher=request.user,
        ca_score=ca_score,
        exam_score=exam_score,
        remark=request.POST.get('remark', '').strip(),
    )
    messages.success(request, f"Result saved for {student.full_name}.")
    return redirect('result:result_list')


@login_required
@teacher_required
def enter_marks(request, class_id, subject_id):
    """Enter CA and exam scores for every student of a class in one subject"""
    classroom = get_object_or_404(Classroom, id=class_id)
    subject = get_object_or_404(Subject, id=subject_id)
    term = selected_term(request)

    # Security check: Only admin or subject teacher can enter marks
    if not policies.can_create_for(request.user, classroom, subject):
        messages.error(request, "You don't have permission to enter marks for this subject.")
        return redirect('result:result_list')
    if term is None:
        messages.error(request, "No term selected. Set the current term first.")
        return redirect('result:result_list')

    students = Student.objects.filter(classroom=classroom, is_active=True).select_related('user')

    if request.method == 'POST':
        saved_count = 0
        for student in students:
            ca_raw = request.POST.get(f'ca_{student.id}')
            exam_raw = request.POST.get(f'exam_{student.id}')
            if not ca_raw and not exam_raw:
                continue
            try:
                ca_score = parse_score(ca_raw) or Decimal('0')
                exam_score = parse_score(exam_raw) or Decimal('0')
                Result.validate_scores(ca_score, exam_score)
            except ValueError as e:
                messages.error(request, f"{student.full_name}: {e}")
                continue

            result = Result.objects.filter(student=student, subject=subject, term=term).first()
            if result is None:
                result = Result(student=student, subject=subject, term=term, teacher=request.user)
            result.ca_score = ca_score
            result.exam_score = exam_score
            result.remark = request.POST.get(f'remark_{student.id}', result.remark).strip()
            result.save()
            saved_count += 1

        if saved_count > 0:
            messages.success(request, f"Marks saved for {saved_count} students.")
        return redirect(f"{request.path}?term={term.id}")

    existing_results = {
        r.student_id: result_payload(r)
        for r in Result.objects.filter(term=term, subject=subject, student__in=students).select_related(
            'student', 'student__user', 'subject', 'term', 'classroom'
        )
    }
    return render_page(request, 'Results/EnterMarks', {
        'classroom': {'id': classroom.id, 'name': str(classroom)},
        'subject': {'id': subject.id, 'name': subject.name},
        'term': {'id': term.id, 'name': str(term)},
        'students': [
            {
                'id': s.id,
                'name': s.full_name,
                'admission_number': s.admission_number,
                'result': existing_results.get(s.id),
            }
            for s in students
        ],
        'ca_max': CA_MAX,
        'exam_max': EXAM_MAX,
    })


@login_required
@teacher_required
def marks_entry_dashboard(request):
    """Class/subject pairs the user may enter marks for"""
    if is_admin(request.user):
        pairs = ClassSubject.objects.all()
    else:
        teacher = get_teacher(request.user)
        pairs = [
            cs for cs in ClassSubject.objects.filter(classroom__in=teacher_classrooms(teacher))
            if cs.subject_id in teacher_subject_ids(teacher, cs.classroom)
        ]
    return render_page(request, 'Results/MarksDashboard', {
        'assignments': [
            {
                'classroom_id': cs.classroom_id,
                'classroom': str(cs.classroom),
                'subject_id': cs.subject_id,
                'subject': cs.subject.name,
            }
            for cs in pairs
        ],
    })


@login_required
@teacher_required
@require_POST
def result_edit(request, pk):
    result = get_object_or_404(Result, pk=pk)
    if not policies.can_update(request.user, result):
        messages.error(request, "You don't have permission to edit this result.")
        return redirect('result:result_list')

    try:
        ca_score = parse_score(request.POST.get('ca_score', result.ca_score))
        exam_score = parse_score(request.POST.get('exam_score', result.exam_score))
        Result.validate_scores(ca_score, exam_score)
    except ValueError as e:
        messages.error(request, str(e))
        return redirect('result:result_list')

    result.ca_score = ca_score
    result.exam_score = exam_score
    result.remark = request.POST.get('remark', result.remark).strip()
    result.save()
    messages.success(request, "Result updated.")
    return redirect('result:result_list')


@login_required
@teacher_required
@require_POST
def result_delete(request, pk):
    result = get_object_or_404(Result, pk=pk)
    if not policies.can_delete(request.user, result):
        messages.error(request, "You don't have permission to delete this result.")
        return redirect('result:result_list')
    result.delete()
    messages.success(request, "Result deleted.")
    return redirect('result:result_list')


@login_required
@require_POST
def check_score(request):
    """Live total, grade and pass/fail for a pair of scores"""
    try:
        data = json.loads(request.body or '{}')
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    if not isinstance(data, dict):
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    try:
        ca_score = parse_score(data.get('ca_score')) or Decimal('0')
        exam_score = parse_score(data.get('exam_score')) or Decimal('0')
        Result.validate_scores(ca_score, exam_score)
    except ValueError as e:
        return JsonResponse({'status': 'invalid', 'error': str(e)}, status=422)

    total = ca_score + exam_score
    info = grade_info(total)
    return JsonResponse({
        'status': 'pass' if is_pass(total) else 'fail',
        'total_score': str(total),
        'grade': info['grade'],
        'remark': info['remark'],
    })


# ============ TERM RESULTS ============

@login_required
@teacher_required
def compile_class(request, class_id):
    classroom = get_object_or_404(Classroom, id=class_id)
    term = selected_term(request)

    if not policies.can_compile(request.user, classroom):
        messages.error(request, "You don't have permission to compile results for this class.")
        return redirect('result:result_list')

    ready, message = can_compile(classroom, term)
    if request.method == 'POST':
        if not ready:
            messages.error(request, message)
        else:
            summary = compile_results(
                classroom, term,
                generate_comments=request.POST.get('generate_comments') == 'on',
                overwrite_comments=request.POST.get('overwrite_comments') == 'on',
            )
            messages.success(request, f"Compiled results for {summary['compiled']} students in {classroom}.")
        return redirect('result:term_results', class_id=classroom.id)

    return render_page(request, 'Results/Compile', {
        'classroom': {'id': classroom.id, 'name': str(classroom)},
        'term': {'id': term.id, 'name': str(term)} if term else None,
        'can_compile': ready,
        'message': message,
    })


@login_required
@teacher_required
def term_results(request, class_id):
    """Compiled class broadsheet with statistics"""
    classroom = get_object_or_404(Classroom, id=class_id)
    term = selected_term(request)
    if not policies.can_manage_classroom(request.user, classroom):
        messages.error(request, "You don't have permission to view results for this class.")
        return redirect('result:result_list')

    term_results_qs = TermResult.objects.filter(classroom=classroom, term=term).select_related(
        'student', 'student__user', 'term', 'term__session', 'classroom'
    )
    return render_page(request, 'Results/TermResults', {
        'classroom': {'id': classroom.id, 'name': str(classroom)},
        'term': {'id': term.id, 'name': str(term)} if term else None,
        'term_results': [term_result_payload(tr) for tr in term_results_qs],
        'statistics': class_statistics(classroom, term) if term else None,
        'subject_statistics': subject_statistics(classroom, term) if term else [],
    })


@login_required
@teacher_required
@require_POST
def term_result_comments(request, pk):
    term_result = get_object_or_404(TermResult, pk=pk)
    if not policies.can_view_term_result(request.user, term_result):
        messages.error(request, "You don't have permission to comment on this result.")
        return redirect('result:result_list')

    term_result.teacher_comment = request.POST.get('teacher_comment', term_result.teacher_comment).strip()
    # principal comments are admin only
    if is_admin(request.user):
        term_result.principal_comment = request.POST.get('principal_comment', term_result.principal_comment).strip()
    term_result.save()
    messages.success(request, "Comments saved.")
    return redirect('result:term_results', class_id=term_result.classroom_id)


@login_required
@teacher_required
def statistics(request, class_id):
    classroom = get_object_or_404(Classroom, id=class_id)
    term = selected_term(request)
    if not policies.can_manage_classroom(request.user, classroom):
        return JsonResponse({'error': 'Access denied'}, status=403)
    return render_page(request, 'Results/Statistics', {
        'classroom': {'id': classroom.id, 'name': str(classroom)},
        'term': {'id': term.id, 'name': str(term)} if term else None,
        'statistics': class_statistics(classroom, term) if term else None,
        'subjects': subject_statistics(classroom, term) if term else [],
        'grading_key': grading_key(),
    })


# ============ STUDENT ============

@login_required
@student_required
def my_results(request):
    student = request.user.student
    term = selected_term(request)
    results = Result.objects.filter(student=student).select_related('subject', 'term', 'term__session', 'classroom', 'student', 'student__user')
    if term:
        results = results.filter(term=term)
    term_result = TermResult.objects.filter(student=student, term=term).first() if term else None

    return render_page(request, 'Results/MyResults', {
        'term': {'id': term.id, 'name': str(term)} if term else None,
        'terms': [
            {'id': t.id, 'name': str(t)}
            for t in Term.objects.filter(results__student=student).distinct().select_related('session')
        ],
        'results': [result_payload(r) for r in results],
        'term_result': term_result_payload(term_result) if term_result else None,
        'grading_key': grading_key(),
    })


# ============ REPORT CARDS ============

@login_required
def report_card(request, student_id, term_id):
    """Download one student's report card"""
    student = get_object_or_404(Student, id=student_id)
    term = get_object_or_404(Term, id=term_id)

    term_result = TermResult.objects.filter(student=student, term=term).first()
    own_card = getattr(request.user, 'student', None) is not None and request.user.student.id == student.id
    allowed = own_card or is_admin(request.user) or (
        student.classroom is not None and policies.can_manage_classroom(request.user, student.classroom)
    )
    if not allowed:
        return HttpResponseForbidden("Access denied.")
    if term_result is None and own_card:
        return HttpResponse("Results for this term have not been compiled yet.", status=404)

    try:
        pdf = report_card_pdf(student, term)
    except ReportCardError as e:
        return HttpResponse(str(e), status=404)

    response = HttpResponse(pdf, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{report_card_filename(student, term)}"'
    return response


@login_required
@teacher_required
def class_report_cards(request, class_id, term_id):
    """Generate report cards for all students in a class"""
    classroom = get_object_or_404(Classroom, id=class_id)
    term = get_object_or_404(Term, id=term_id)
    if not policies.can_manage_classroom(request.user, classroom):
        return HttpResponseForbidden("Access denied.")

    try:
        archive = class_report_cards_zip(classroom, term)
    except ReportCardError as e:
        messages.error(request, str(e))
        return redirect('result:term_results', class_id=classroom.id)

    zip_filename = f"{classroom}_{term.name}_report_cards.zip".replace(' ', '_')
    response = HttpResponse(archive, content_type='application/zip')
    response['Content-Disposition'] = f'attachment; filename="{zip_filename}"'
    return response


# ============ IMPORT / EXPORT ============

@login_required
@teacher_required
@require_POST
def results_import(request):
    upload = request.FILES.get('file')
    term = selected_term(request)
    if upload is None:
        messages.error(request, "Please choose a file to import.")
        return redirect('result:result_list')
    if term is None:
        messages.error(request, "No term selected. Set the current term first.")
        return redirect('result:result_list')

    user = request.user
    try:
        imported, skipped, errors = import_results(
            upload, term, user,
            allowed=lambda student, subject: policies.can_create_for(user, student.classroom, subject),
        )
    except SpreadsheetError as e:
        messages.error(request, str(e))
        return redirect('result:result_list')

    messages.success(request, f"Imported {imported} results. Skipped {skipped}.")
    for error in errors[:10]:
        messages.warning(request, error)
    return redirect('result:result_list')


@login_required
@teacher_required
def results_export(request):
    term = selected_term(request)
    results = Result.objects.filter(classroom__in=visible_classrooms(request.user)).select_related(
        'student', 'student__user', 'subject', 'term', 'term__session', 'classroom', 'teacher'
    )
    if term:
        results = results.filter(term=term)
    if request.GET.get('class'):
        classroom = get_object_or_404(Classroom, id=request.GET['class'])
        if not policies.can_export(request.user, classroom):
            return HttpResponseForbidden("Access denied.")
        results = results.filter(classroom=classroom)

    return xlsx_response('results.xlsx', 'Results', EXPORT_HEADERS, result_export_rows(results))


@login_required
@teacher_required
def results_template(request, class_id):
    classroom = get_object_or_404(Classroom, id=class_id)
    if not policies.can_import(request.user, classroom):
        return HttpResponseForbidden("Access denied.")
    filename = f"results_template_{classroom}.xlsx".replace(' ', '_')
    return xlsx_response(filename, 'Results Template', TEMPLATE_HEADERS, template_rows(classroom))


# ============ CBT ============

@login_required
@teacher_required
@require_POST
def cbt_override(request, pk):
    result = get_object_or_404(Result, pk=pk)
    if not policies.can_update(request.user, result):
        messages.error(request, "You don't have permission to edit this result.")
        return redirect('result:result_list')
    try:
        cbt.override_cbt_score(result, parse_score(request.POST.get('exam_score')))
    except ValueError as e:
        messages.error(request, str(e))
        return redirect('result:result_list')
    messages.success(request, "CBT score overridden.")
    return redirect('result:result_list')


@login_required
@teacher_required
@require_POST
def cbt_revert(request, pk):
    result = get_object_or_404(Result, pk=pk)
    if not policies.can_update(request.user, result):
        messages.error(request, "You don't have permission to edit this result.")
        return redirect('result:result_list')
    try:
        cbt.revert_cbt_score(result)
    except ValueError as e:
        messages.error(request, str(e))
        return redirect('result:result_list')
    messages.success(request, "Manual exam score restored.")
    return redirect('result:result_list')


@login_required
@admin_required
@require_POST
def cbt_bulk_sync(request, exam_id):
    exam = get_object_or_404(Exam, id=exam_id)
    count = cbt.bulk_sync(exam)
    messages.success(request, f"Synced CBT scores for {count} students.")
    return redirect('exam:exam_detail', pk=exam.id)

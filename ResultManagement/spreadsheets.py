# ResultManagement/spreadsheets.py
import logging
from decimal import Decimal, InvalidOperation

from django.db.models import Q

from core.spreadsheets import read_rows
from management.models import ClassSubject, Student, Subject
from .models import Result

logger = logging.getLogger(__name__)

RESULT_COLUMNS = {
    'admission_number': ['admission_number', 'admission_no', 'student_id', 'reg_number'],
    'subject': ['subject', 'subject_code', 'subject_name'],
    'ca_score': ['ca_score', 'ca', 'continuous_assessment'],
    'exam_score': ['exam_score', 'exam'],
    'remark': ['remark', 'remarks', 'comment'],
}

EXPORT_HEADERS = [
    'Student Name', 'Admission Number', 'Class', 'Subject', 'Subject Code', 'Term',
    'Session', 'Teacher', 'CA Score', 'Exam Score', 'Total Score', 'Grade', 'Status', 'Remark',
]

TEMPLATE_HEADERS = ['Admission Number', 'Student Name', 'Subject', 'CA Score', 'Exam Score', 'Remark']


def find_subject(value):
    return Subject.objects.filter(Q(code__iexact=value) | Q(name__iexact=value)).first()


def parse_score(value, label):
    try:
        score = Decimal(value or '0')
    except InvalidOperation:
        raise ValueError(f"{label} '{value}' is not a number")
    if not score.is_finite():
        raise ValueError(f"{label} '{value}' is not a number")
    return score


def import_results(upload, term, user, allowed=None):
    """
    Create or update results for ``term`` from a sheet.

    ``allowed(student, subject)`` decides per row whether ``user`` may write the
    result. Returns ``(imported, skipped, errors)``.
    """
    rows = read_rows(upload, RESULT_COLUMNS, required=['admission_number', 'subject', 'ca_score', 'exam_score'])
    imported, skipped, errors = 0, 0, []

    for line, row in enumerate(rows, start=2):
        student = Student.objects.select_related('classroom').filter(admission_number=row['admission_number']).first()
        if student is None:
            errors.append(f"Row {line}: student '{row['admission_number']}' not found")
            continue

        subject = find_subject(row['subject'])
        if subject is None:
            errors.append(f"Row {line}: subject '{row['subject']}' not found")
            continue

        if allowed is not None and not allowed(student, subject):
            skipped += 1
            continue

        try:
            ca_score = parse_score(row['ca_score'], 'CA score')
            exam_score = parse_score(row['exam_score'], 'Exam score')
            Result.validate_scores(ca_score, exam_score)
        except ValueError as e:
            errors.append(f"Row {line}: {e}")
            continue

        result, created = Result.objects.get_or_create(
            student=student, subject=subject, term=term,
            defaults={'teacher': user, 'ca_score': ca_score, 'exam_score': exam_score, 'remark': row.get('remark', '')},
        )
        if not created:
            result.ca_score = ca_score
            result.exam_score = exam_score
            if row.get('remark'):
                result.remark = row['remark']
            result.save()
        imported += 1

    if errors:
        logger.warning("Result import for %s finished with %d row errors", term, len(errors))
    return imported, skipped, errors


def result_export_rows(results):
    return [
        [
            r.student.full_name,
            r.student.admission_number,
            str(r.classroom) if r.classroom else '',
            r.subject.name,
            r.subject.code,
            r.term.name,
            r.term.session.name,
            r.teacher.get_full_name() if r.teacher else '',
            r.ca_score,
            r.exam_score,
            r.total_score,
            r.grade,
            'Pass' if r.is_passed else 'Fail',
            r.remark,
        ]
        for r in results
    ]


def template_rows(classroom):
    """One blank row per student per subject taught in ``classroom``"""
    subjects = [cs.subject for cs in ClassSubject.objects.filter(classroom=classroom).select_related('subject')]
    students = classroom.students.filter(is_active=True).select_related('user')
    return [
        [student.admission_number, student.full_name, subject.code, '', '', '']
        for student in students
        for subject in subjects
    ]

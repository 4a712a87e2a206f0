# ResultManagement/report_card.py
import logging
import zipfile
from io import BytesIO

from django.template.loader import get_template
from django.utils import timezone
from xhtml2pdf import pisa

from management.models import Attendance
from management.services import school_info
from . import comments
from .compiler import class_statistics
from .grading import grading_key, ordinal
from .models import Result, TermResult

logger = logging.getLogger(__name__)

TEMPLATE_NAME = 'ResultManagement/report_card_pdf.html'


class ReportCardError(Exception):
    pass


def report_card_context(student, term):
    """Everything printed on one student's report card for ``term``"""
    results = list(
        Result.objects.filter(student=student, term=term).select_related('subject').order_by('subject__name')
    )
    if not results:
        raise ReportCardError(f"No results found for {student.full_name} in {term}.")

    term_result = TermResult.objects.filter(student=student, term=term).first()
    classroom = student.classroom
    class_size = TermResult.objects.filter(classroom=classroom, term=term).count() if classroom else 0

    average = term_result.average_score if term_result else None
    generated = comments.generate_comments(average or 0, results)

    return {
        'student': student,
        'term': term,
        'session': term.session,
        'classroom': classroom,
        'results': results,
        'term_result': term_result,
        'position': ordinal(term_result.position) if term_result else '',
        'class_size': class_size,
        'statistics': class_statistics(classroom, term) if classroom else None,
        'attendance': Attendance.summary(student, term),
        'teacher_comment': (term_result and term_result.teacher_comment) or generated['teacher_comment'],
        'principal_comment': (term_result and term_result.principal_comment) or generated['principal_comment'],
        'grading_key': grading_key(),
        'school_info': school_info(),
        'current_date': timezone.localdate(),
    }


def render_pdf(context):
    """Render the report card template to PDF bytes"""
    html_string = get_template(TEMPLATE_NAME).render(context)
    result = BytesIO()
    pdf = pisa.pisaDocument(BytesIO(html_string.encode("UTF-8")), result, encoding='UTF-8')
    if pdf.err:
        logger.error("Report card PDF failed for student %s, term %s", context['student'].pk, context['term'].pk)
        raise ReportCardError("Error generating PDF")
    return result.getvalue()


def report_card_filename(student, term):
    return f"report_card_{student.admission_number}_{term.session.name}_{term.name}.pdf".replace(' ', '_').replace('/', '-')


def report_card_pdf(student, term):
    return render_pdf(report_card_context(student, term))


def class_report_cards_zip(classroom, term):
    """ZIP of report cards for every compiled student in a class"""
    term_results = TermResult.objects.filter(classroom=classroom, term=term).select_related('student', 'student__user')
    if not term_results.exists():
        raise ReportCardError(f"No compiled results for {classroom} in {term}.")

    zip_buffer = BytesIO()
    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zip_file:
        for term_result in term_results:
            student = term_result.student
            zip_file.writestr(report_card_filename(student, term), report_card_pdf(student, term))
    return zip_buffer.getvalue()

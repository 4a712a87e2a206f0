# ResultManagement/cbt.py
"""
Moves finished CBT attempt scores into the exam column of term results.
"""
import logging
from decimal import Decimal

from django.utils import timezone

from ExamManagement.models import StudentExamAttempt
from management.models import Term
from .grading import quantize
from .models import EXAM_MAX, Result

logger = logging.getLogger(__name__)


def cbt_exam_score(percentage):
    """Scale a CBT percentage to the exam column (max 60)"""
    percentage = min(max(Decimal(percentage or 0), Decimal('0')), Decimal('100'))
    return quantize(percentage / 100 * EXAM_MAX)


def sync_attempt_to_result(attempt):
    """
    Write a finished attempt's score into the student's result for the exam's
    subject and term. Returns the Result, or None when nothing was synced.
    """
    if not attempt.is_finished:
        return None

    exam = attempt.exam
    term = exam.term or Term.current()
    if term is None:
        logger.warning("No term for exam %s; attempt %s not synced", exam.pk, attempt.pk)
        return None

    result, created = Result.objects.get_or_create(
        student=attempt.student,
        subject=exam.subject,
        term=term,
        defaults={'teacher': exam.teacher},
    )

    if not result.is_cbt_exam and not created:
        result.manual_exam_score = result.exam_score

    result.exam_score = cbt_exam_score(attempt.percentage)
    result.cbt_attempt = attempt
    result.is_cbt_exam = True
    result.cbt_synced_at = timezone.now()
    result.save()

    logger.info(
        "Synced attempt %s (%s%%) to result %s as exam score %s",
        attempt.pk, attempt.percentage, result.pk, result.exam_score,
    )
    return result


def revert_cbt_score(result):
    """Restore the manually entered exam score replaced by a CBT sync"""
    if not result.is_cbt_exam:
        raise ValueError("This result does not use a CBT score.")
    result.exam_score = result.manual_exam_score or Decimal('0')
    result.is_cbt_exam = False
    result.cbt_attempt = None
    result.manual_exam_score = None
    result.cbt_synced_at = None
    result.save()
    return result


def override_cbt_score(result, exam_score):
    """Replace a CBT score with a manual one, keeping the attempt link"""
    Result.validate_scores(result.ca_score, exam_score)
    if result.is_cbt_exam and result.manual_exam_score is None:
        result.manual_exam_score = result.exam_score
    result.exam_score = Decimal(exam_score)
    result.is_cbt_exam = False
    result.save()
    return result


def bulk_sync(exam):
    """Sync every finished attempt of ``exam``. The latest attempt per student wins."""
    attempts = (
        StudentExamAttempt.objects
        .filter(exam=exam, status__in=StudentExamAttempt.FINISHED_STATUSES)
        .select_related('exam', 'exam__subject', 'exam__term', 'student')
        .order_by('end_time', 'pk')
    )
    synced = {}
    for attempt in attempts:
        if sync_attempt_to_result(attempt) is not None:
            synced[attempt.student_id] = attempt.pk
    logger.info("Bulk synced %d students for exam %s", len(synced), exam.pk)
    return len(synced)

# ResultManagement/compiler.py
"""
Term result compilation and class ranking.
"""
import logging
from collections import Counter
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from management.models import Student
from . import comments
from .grading import GRADE_SCALE, competition_rank, grade_info, is_pass, pass_mark, quantize
from .models import Result, TermResult

logger = logging.getLogger(__name__)


def recalculate_subject_positions(subject, term, classroom_id):
    """Rank every result for one subject/term/classroom by total score"""
    results = list(Result.objects.filter(subject=subject, term=term, classroom_id=classroom_id))
    for position, result in competition_rank(results, key=lambda r: r.total_score):
        if result.position != position:
            # queryset update skips save() and the post_save ranking signal
            Result.objects.filter(pk=result.pk).update(position=position)
    return len(results)


def can_compile(classroom, term):
    """Return ``(can_compile, message)``"""
    if term is None:
        return False, "No term selected. Set the current term first."
    if not Student.objects.filter(classroom=classroom, is_active=True).exists():
        return False, f"{classroom} has no active students."
    if not Result.objects.filter(student__classroom=classroom, term=term).exists():
        return False, f"No results have been entered for {classroom} in {term}."
    return True, "Ready to compile."


@transaction.atomic
def compile_results(classroom, term, generate_comments=False, overwrite_comments=False):
    """
    Build TermResults for every active student in ``classroom`` who has results
    in ``term`` and rank the class by total score.

    Returns a dict with the number of students compiled and stale records removed.
    """
    students = Student.objects.filter(classroom=classroom, is_active=True).select_related('user')
    now = timezone.now()
    compiled = []

    for student in students:
        results = list(Result.objects.filter(student=student, term=term).select_related('subject'))
        if not results:
            continue

        total = sum((r.total_score for r in results), Decimal('0'))
        average = quantize(total / len(results))
        gpa = quantize(sum((grade_info(r.total_score)['point'] for r in results), Decimal('0')) / len(results))

        term_result, created = TermResult.objects.get_or_create(student=student, term=term)
        term_result.classroom = classroom
        term_result.total_score = total
        term_result.average_score = average
        term_result.gpa = gpa
        term_result.subjects_count = len(results)
        term_result.compiled_at = now

        if generate_comments:
            generated = comments.generate_comments(average, results)
            if overwrite_comments or not term_result.teacher_comment:
                term_result.teacher_comment = generated['teacher_comment']
            if overwrite_comments or not term_result.principal_comment:
                term_result.principal_comment = generated['principal_comment']

        term_result.save()
        compiled.append(term_result)

    # students who no longer have results in this class/term
    stale = TermResult.objects.filter(classroom=classroom, term=term).exclude(
        pk__in=[tr.pk for tr in compiled]
    )
    removed = stale.count()
    stale.delete()

    for position, term_result in competition_rank(compiled, key=lambda tr: tr.total_score):
        term_result.position = position
        term_result.save(update_fields=['position', 'updated_at'])

    logger.info("Compiled %d term results for %s, %s (%d stale removed)", len(compiled), classroom, term, removed)
    return {'compiled': len(compiled), 'removed': removed}


def class_statistics(classroom, term):
    term_results = list(TermResult.objects.filter(classroom=classroom, term=term))
    averages = [tr.average_score for tr in term_results]
    distribution = Counter(grade_info(avg)['grade'] for avg in averages)

    if not averages:
        return {
            'total_students': 0,
            'class_average': Decimal('0.00'),
            'highest_average': Decimal('0.00'),
            'lowest_average': Decimal('0.00'),
            'pass_rate': Decimal('0.00'),
            'grade_distribution': {grade: 0 for _, grade, _, _ in GRADE_SCALE},
        }

    mark = pass_mark()
    passed = sum(1 for avg in averages if is_pass(avg, mark))
    return {
        'total_students': len(averages),
        'class_average': quantize(sum(averages, Decimal('0')) / len(averages)),
        'highest_average': max(averages),
        'lowest_average': min(averages),
        'pass_rate': quantize(Decimal(passed) * 100 / len(averages)),
        'grade_distribution': {grade: distribution.get(grade, 0) for _, grade, _, _ in GRADE_SCALE},
    }


def subject_statistics(classroom, term):
    """Average, highest and lowest total per subject"""
    mark = pass_mark()
    stats = {}
    for result in Result.objects.filter(classroom=classroom, term=term).select_related('subject'):
        stats.setdefault(result.subject.name, []).append(result.total_score)
    return [
        {
            'subject': name,
            'students': len(scores),
            'average': quantize(sum(scores, Decimal('0')) / len(scores)),
            'highest': max(scores),
            'lowest': min(scores),
            'pass_count': sum(1 for s in scores if is_pass(s, mark)),
        }
        for name, scores in sorted(stats.items())
    ]

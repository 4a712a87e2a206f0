# ExamManagement/services.py
"""
Exam taking: eligibility, attempt lifecycle, timing and auto-grading.

An attempt moves from ``in_progress`` to ``completed`` when the student submits
it, or to ``auto_submitted`` when its time runs out. Finished attempts are
immutable apart from manual grading of essay answers.
"""
import logging
import random
import re
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Avg, Count, F, Max, Min, Q, Sum
from django.utils import timezone

from .models import Exam, ExamQuestion, Question, StudentAnswer, StudentExamAttempt

logger = logging.getLogger(__name__)


class ExamTakingError(Exception):
    """Raised when an exam action is not allowed for the attempt or student"""


# ============ ELIGIBILITY ============

def can_take_exam(student, exam, now=None):
    """Return ``(allowed, reason)`` for a student wanting to start or resume ``exam``"""
    now = now or timezone.now()

    if not exam.is_published or not exam.is_active or exam.status in (Exam.STATUS_DRAFT, Exam.STATUS_CANCELLED):
        return False, "This exam is not available."

    if not student.classroom_id or not exam.classrooms.filter(pk=student.classroom_id).exists():
        return False, "This exam is not assigned to your class."

    attempts = StudentExamAttempt.objects.filter(exam=exam, student=student)
    in_progress = attempts.filter(status=StudentExamAttempt.STATUS_IN_PROGRESS).first()
    if in_progress and time_remaining(in_progress, now) > 0:
        return True, "Resume your exam."

    if exam.attempts_allowed > 0 and attempts.count() >= exam.attempts_allowed:
        return False, f"You have used all {exam.attempts_allowed} attempt(s) for this exam."

    if exam.start_time and now < exam.start_time:
        return False, "This exam has not started yet."
    if exam.end_time and now > exam.end_time:
        return False, "This exam has ended."

    return True, ""


def exam_status_for(student, exam, now=None):
    """Short status label used by the student exam list"""
    now = now or timezone.now()
    attempts = StudentExamAttempt.objects.filter(exam=exam, student=student)
    if attempts.filter(status=StudentExamAttempt.STATUS_IN_PROGRESS).exists():
        return 'in_progress'
    if exam.start_time and now < exam.start_time:
        return 'upcoming'
    allowed, _ = can_take_exam(student, exam, now)
    if allowed:
        return 'available'
    if attempts.filter(status__in=StudentExamAttempt.FINISHED_STATUSES).exists():
        return 'completed'
    return 'closed'


# ============ TIMING ============

def time_remaining(attempt, now=None):
    """Seconds left on an in-progress attempt, never past the exam's end time"""
    if attempt.status != StudentExamAttempt.STATUS_IN_PROGRESS or not attempt.start_time:
        return 0
    now = now or timezone.now()
    exam = attempt.exam

    remaining = exam.duration_minutes * 60 - (now - attempt.start_time).total_seconds()
    if exam.end_time:
        remaining = min(remaining, (exam.end_time - now).total_seconds())
    return max(0, int(remaining))


# ============ ATTEMPT LIFECYCLE ============

def start_or_resume(student, exam, ip_address=None, user_agent='', now=None):
    now = now or timezone.now()
    with transaction.atomic():
        current = StudentExamAttempt.objects.select_for_update().filter(
            exam=exam, student=student, status=StudentExamAttempt.STATUS_IN_PROGRESS
        ).first()
        if current:
            if time_remaining(current, now) > 0 or not exam.auto_submit:
                return current
            auto_submit(current, now)

        allowed, reason = can_take_exam(student, exam, now)
        if not allowed:
            raise ExamTakingError(reason)

        attempt = StudentExamAttempt.objects.create(
            exam=exam,
            student=student,
            status=StudentExamAttempt.STATUS_IN_PROGRESS,
            start_time=now,
            ip_address=ip_address,
            user_agent=(user_agent or '')[:255],
        )
    logger.info("Student %s started exam %s (attempt %s)", student.admission_number, exam.pk, attempt.pk)
    return attempt


def ordered_questions(attempt):
    """Exam questions in display order; shuffled per attempt when the exam asks for it"""
    exam_questions = list(attempt.exam.exam_questions.select_related('question').order_by('order'))
    if attempt.exam.randomize_questions:
        random.Random(attempt.pk).shuffle(exam_questions)
    return exam_questions


def question_options(attempt, question):
    options = list((question.options or {}).items())
    if attempt.exam.randomize_options and question.question_type == Question.TYPE_MULTIPLE_CHOICE:
        random.Random(f"{attempt.pk}-{question.pk}").shuffle(options)
    return [{'key': key, 'text': text} for key, text in options]


def normalize(text):
    return re.sub(r'\s+', ' ', (text or '').strip().lower())


def check_answer(question, answer_text):
    """True/False for auto-graded types, None when the answer needs a human"""
    if question.question_type == Question.TYPE_ESSAY:
        return None
    if not answer_text or not answer_text.strip():
        return False
    if question.question_type == Question.TYPE_FILL_BLANK:
        accepted = [normalize(alt) for alt in question.correct_answer.split('|')]
        return normalize(answer_text) in accepted
    return answer_text.strip().lower() == question.correct_answer.strip().lower()


def close_if_expired(attempt, now=None):
    """
    Auto-submit an in-progress attempt whose time ran out, for exams that
    auto-submit. Returns True when the attempt was closed.
    """
    if attempt.status != StudentExamAttempt.STATUS_IN_PROGRESS or not attempt.exam.auto_submit:
        return False
    if time_remaining(attempt, now) > 0:
        return False
    auto_submit(attempt, now)
    return True


def ensure_in_progress(attempt, now=None):
    if attempt.status != StudentExamAttempt.STATUS_IN_PROGRESS:
        raise ExamTakingError("This attempt is no longer in progress.")
    if close_if_expired(attempt, now):
        raise ExamTakingError("Time is up. Your exam has been submitted automatically.")
    if time_remaining(attempt, now) <= 0:
        raise ExamTakingError("Time is up. Please submit your exam.")


def exam_question_for(attempt, question):
    exam_question = ExamQuestion.objects.filter(exam=attempt.exam, question=question).first()
    if exam_question is None:
        raise ExamTakingError("This question is not part of the exam.")
    return exam_question


def save_answer(attempt, question, answer_text, time_spent=0, now=None):
    ensure_in_progress(attempt, now)
    exam_question = exam_question_for(attempt, question)

    is_correct = check_answer(question, answer_text)
    answer, _ = StudentAnswer.objects.get_or_create(attempt=attempt, question=question)
    answer.answer_text = answer_text or ''
    answer.is_correct = is_correct
    answer.marks_obtained = exam_question.marks if is_correct else Decimal('0')
    try:
        time_spent = int(time_spent or 0)
    except (TypeError, ValueError):
        time_spent = 0
    answer.time_spent += max(0, time_spent)
    answer.save()
    return answer


def toggle_flag(attempt, question, now=None):
    ensure_in_progress(attempt, now)
    exam_question_for(attempt, question)
    answer, _ = StudentAnswer.objects.get_or_create(attempt=attempt, question=question)
    answer.is_flagged = not answer.is_flagged
    answer.save(update_fields=['is_flagged', 'updated_at'])
    return answer.is_flagged


def record_tab_switch(attempt):
    StudentExamAttempt.objects.filter(pk=attempt.pk).update(tab_switches=F('tab_switches') + 1)
    attempt.refresh_from_db(fields=['tab_switches'])
    return attempt.tab_switches


def navigation(attempt):
    answers = {a.question_id: a for a in attempt.answers.all()}
    items = []
    for number, exam_question in enumerate(ordered_questions(attempt), start=1):
        answer = answers.get(exam_question.question_id)
        if answer is None:
            status = 'not_visited'
        elif answer.is_flagged:
            status = 'flagged'
        elif answer.answer_text:
            status = 'answered'
        else:
            status = 'visited'
        items.append({'number': number, 'question_id': exam_question.question_id, 'status': status})
    return items


# ============ SCORING & SUBMISSION ============

def score_attempt(attempt):
    """Set total_score and percentage on the attempt without saving"""
    # answers to questions since removed from the exam do not count
    answers = attempt.answers.filter(question__exam_questions__exam=attempt.exam)
    total = answers.aggregate(total=Sum('marks_obtained'))['total'] or Decimal('0')
    allocated = attempt.exam.allocated_marks()
    attempt.total_score = total
    if allocated > 0:
        attempt.percentage = (Decimal(total) * 100 / allocated).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    else:
        attempt.percentage = Decimal('0.00')
    return attempt


def calculate_score(attempt):
    score_attempt(attempt)
    attempt.save(update_fields=['total_score', 'percentage'])
    return attempt


def finish(attempt, status, now=None):
    if attempt.is_finished:
        raise ExamTakingError("This exam has already been submitted.")
    now = now or timezone.now()

    elapsed = int((now - attempt.start_time).total_seconds()) if attempt.start_time else 0
    attempt.status = status
    attempt.end_time = now
    attempt.time_taken_seconds = max(0, min(elapsed, attempt.exam.duration_minutes * 60))
    score_attempt(attempt)
    attempt.save()
    logger.info(
        "Attempt %s %s with %s%%", attempt.pk, status, attempt.percentage,
    )
    return attempt


def submit(attempt, now=None):
    """Student submission; an attempt whose time already ran out is auto-submitted"""
    if close_if_expired(attempt, now):
        return attempt
    return finish(attempt, StudentExamAttempt.STATUS_COMPLETED, now)


def auto_submit(attempt, now=None):
    return finish(attempt, StudentExamAttempt.STATUS_AUTO_SUBMITTED, now)


def grade_essay(answer, marks, graded_by=None):
    """Manual grade for an answer, clamped to the marks allocated in the exam"""
    exam_question = exam_question_for(answer.attempt, answer.question)
    marks = max(Decimal('0'), min(Decimal(str(marks)), exam_question.marks))
    answer.marks_obtained = marks
    answer.is_correct = marks > 0
    answer.graded_by = graded_by
    answer.save()
    return calculate_score(answer.attempt)


def expire_overdue_attempts(now=None):
    """Auto-submit in-progress attempts whose time ran out. Returns the count."""
    now = now or timezone.now()
    expired = 0
    attempts = StudentExamAttempt.objects.filter(
        status=StudentExamAttempt.STATUS_IN_PROGRESS, exam__auto_submit=True
    ).select_related('exam')
    for attempt in attempts:
        if time_remaining(attempt, now) <= 0:
            auto_submit(attempt, now)
            expired += 1
    if expired:
        logger.info("Auto-submitted %d expired attempts", expired)
    return expired


def force_submit_all(exam, now=None):
    attempts = exam.attempts.filter(status=StudentExamAttempt.STATUS_IN_PROGRESS)
    count = 0
    for attempt in attempts:
        auto_submit(attempt, now)
        count += 1
    logger.info("Force-submitted %d attempts for exam %s", count, exam.pk)
    return count


# ============ REPORTING ============

def exam_statistics(exam):
    finished = exam.attempts.filter(status__in=StudentExamAttempt.FINISHED_STATUSES)
    stats = finished.aggregate(
        attempts=Count('id'),
        average=Avg('percentage'),
        highest=Max('percentage'),
        lowest=Min('percentage'),
        passed=Count('id', filter=Q(total_score__gte=exam.passing_marks)),
    )
    stats['in_progress'] = exam.attempts.filter(status=StudentExamAttempt.STATUS_IN_PROGRESS).count()
    stats['pending_grading'] = StudentAnswer.objects.filter(
        attempt__in=finished, question__question_type=Question.TYPE_ESSAY, graded_by__isnull=True
    ).count()
    if stats['average'] is not None:
        stats['average'] = Decimal(stats['average']).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return stats


def attempt_review(attempt):
    """Per-question breakdown of a finished attempt"""
    answers = {a.question_id: a for a in attempt.answers.all()}
    show_answers = attempt.exam.allow_review
    review = []
    for number, exam_question in enumerate(ordered_questions(attempt), start=1):
        question = exam_question.question
        answer = answers.get(question.pk)
        review.append({
            'number': number,
            'question_id': question.pk,
            'question_text': question.question_text,
            'question_type': question.question_type,
            'options': question.options,
            'marks': exam_question.marks,
            'answer': answer.answer_text if answer else '',
            'is_correct': answer.is_correct if answer else False,
            'marks_obtained': answer.marks_obtained if answer else Decimal('0'),
            'correct_answer': question.correct_answer if show_answers else None,
            'explanation': question.explanation if show_answers else None,
        })
    return review

from datetime import timedelta
from decimal import Decimal

import pytest

from ExamManagement import services
from ExamManagement.models import Exam, Question, StudentExamAttempt
from ExamManagement.services import ExamTakingError
from ResultManagement.cbt import bulk_sync, cbt_exam_score, override_cbt_score, revert_cbt_score
from ResultManagement.models import Result

pytestmark = pytest.mark.django_db


def questions_of(exam):
    return {q.question_type: q for q in exam.questions.all()}


def answer_all(attempt, now, correct=True):
    questions = questions_of(attempt.exam)
    services.save_answer(attempt, questions[Question.TYPE_MULTIPLE_CHOICE], 'B' if correct else 'A', now=now)
    services.save_answer(attempt, questions[Question.TYPE_TRUE_FALSE], 'true' if correct else 'false', now=now)
    services.save_answer(attempt, questions[Question.TYPE_FILL_BLANK], '  Triangle ' if correct else 'square', now=now)


def test_exam_total_marks_follow_questions(exam):
    exam.refresh_from_db()
    assert exam.total_marks == Decimal('4')


def test_start_resumes_in_progress_attempt(student, exam, now):
    first = services.start_or_resume(student, exam, now=now)
    again = services.start_or_resume(student, exam, now=now + timedelta(minutes=5))
    assert first.pk == again.pk
    assert first.status == StudentExamAttempt.STATUS_IN_PROGRESS


def test_student_outside_exam_classroom_cannot_start(make_student, other_classroom, exam, now):
    outsider = make_student(classroom=other_classroom)
    allowed, reason = services.can_take_exam(outsider, exam, now)
    assert not allowed
    assert 'not assigned' in reason
    with pytest.raises(ExamTakingError):
        services.start_or_resume(outsider, exam, now=now)


def test_unpublished_exam_is_unavailable(student, exam, now):
    exam.is_published = False
    exam.save()
    allowed, _ = services.can_take_exam(student, exam, now)
    assert not allowed


def test_exam_window_is_enforced(student, exam, now):
    exam.start_time = now + timedelta(hours=1)
    exam.save()
    allowed, reason = services.can_take_exam(student, exam, now)
    assert not allowed
    assert 'not started' in reason

    exam.start_time = now - timedelta(hours=2)
    exam.end_time = now - timedelta(hours=1)
    exam.save()
    allowed, reason = services.can_take_exam(student, exam, now)
    assert not allowed
    assert 'ended' in reason


def test_attempt_limit(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    services.submit(attempt, now=now + timedelta(minutes=10))
    with pytest.raises(ExamTakingError, match='attempt'):
        services.start_or_resume(student, exam, now=now + timedelta(minutes=11))


def test_unlimited_attempts(student, exam, now):
    exam.attempts_allowed = 0
    exam.save()
    for minutes in (0, 20, 40):
        attempt = services.start_or_resume(student, exam, now=now + timedelta(minutes=minutes))
        services.submit(attempt, now=now + timedelta(minutes=minutes + 1))
    assert StudentExamAttempt.objects.filter(student=student, exam=exam).count() == 3


def test_auto_grading_and_submit(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    answer_all(attempt, now)
    services.submit(attempt, now=now + timedelta(minutes=12))

    attempt.refresh_from_db()
    assert attempt.status == StudentExamAttempt.STATUS_COMPLETED
    assert attempt.total_score == Decimal('4')
    assert attempt.percentage == Decimal('100.00')
    assert attempt.time_taken_seconds == 12 * 60


def test_fill_blank_accepts_alternatives_case_insensitively():
    question = Question(question_type=Question.TYPE_FILL_BLANK, correct_answer='triangle|trigon')
    assert services.check_answer(question, 'TRIGON')
    assert services.check_answer(question, ' triangle ')
    assert not services.check_answer(question, 'square')
    assert not services.check_answer(question, '')


def test_essay_answers_wait_for_manual_grading(student, exam, maths, teacher, now):
    essay = Question.objects.create(
        subject=maths, question_text='Explain place value.', question_type=Question.TYPE_ESSAY, marks=Decimal('4'),
    )
    exam.add_question(essay)
    attempt = services.start_or_resume(student, exam, now=now)
    answer = services.save_answer(attempt, essay, 'Digits have value by position.', now=now)
    assert answer.is_correct is None
    assert answer.marks_obtained == 0

    services.submit(attempt, now=now + timedelta(minutes=5))
    graded = services.grade_essay(answer, 10, graded_by=teacher.user)
    # clamped to the marks allocated in the exam
    assert graded.total_score == Decimal('4')
    assert graded.percentage == Decimal('50.00')


def test_answers_rejected_after_submission(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    services.submit(attempt, now=now + timedelta(minutes=1))
    question = exam.questions.first()
    with pytest.raises(ExamTakingError):
        services.save_answer(attempt, question, 'B', now=now + timedelta(minutes=2))
    with pytest.raises(ExamTakingError, match='already been submitted'):
        services.submit(attempt, now=now + timedelta(minutes=2))


def test_answer_after_time_up_auto_submits(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    with pytest.raises(ExamTakingError, match='Time is up'):
        services.save_answer(attempt, exam.questions.first(), 'B', now=now + timedelta(minutes=31))
    attempt.refresh_from_db()
    assert attempt.status == StudentExamAttempt.STATUS_AUTO_SUBMITTED
    assert attempt.time_taken_seconds == 30 * 60


def test_time_remaining_capped_by_exam_end(student, exam, now):
    exam.end_time = now + timedelta(minutes=10)
    exam.save()
    attempt = services.start_or_resume(student, exam, now=now)
    assert services.time_remaining(attempt, now) == 600


def test_expire_overdue_attempts_only_for_auto_submit_exams(student, make_student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    assert services.expire_overdue_attempts(now + timedelta(minutes=10)) == 0
    assert services.expire_overdue_attempts(now + timedelta(minutes=45)) == 1
    attempt.refresh_from_db()
    assert attempt.status == StudentExamAttempt.STATUS_AUTO_SUBMITTED

    exam.auto_submit = False
    exam.attempts_allowed = 0
    exam.save()
    later = now + timedelta(hours=1)
    services.start_or_resume(make_student(), exam, now=later)
    assert services.expire_overdue_attempts(later + timedelta(hours=1)) == 0


def test_cbt_exam_score_scales_to_sixty():
    assert cbt_exam_score(Decimal('100')) == Decimal('60.00')
    assert cbt_exam_score(Decimal('75')) == Decimal('45.00')
    assert cbt_exam_score(Decimal('33.33')) == Decimal('20.00')


def test_finished_attempt_syncs_to_result(student, exam, term, now):
    attempt = services.start_or_resume(student, exam, now=now)
    answer_all(attempt, now)
    services.submit(attempt, now=now + timedelta(minutes=5))

    result = Result.objects.get(student=student, subject=exam.subject, term=term)
    assert result.is_cbt_exam
    assert result.cbt_attempt_id == attempt.pk
    assert result.exam_score == Decimal('60.00')
    assert result.manual_exam_score is None


def test_sync_preserves_manual_exam_score(student, exam, term, teacher, now):
    Result.objects.create(
        student=student, subject=exam.subject, term=term, teacher=teacher.user,
        ca_score=Decimal('30'), exam_score=Decimal('25'),
    )
    attempt = services.start_or_resume(student, exam, now=now)
    answer_all(attempt, now, correct=False)
    services.submit(attempt, now=now + timedelta(minutes=5))

    result = Result.objects.get(student=student, subject=exam.subject, term=term)
    assert result.manual_exam_score == Decimal('25')
    assert result.exam_score == Decimal('0.00')
    assert result.ca_score == Decimal('30')

    reverted = revert_cbt_score(result)
    assert reverted.exam_score == Decimal('25')
    assert not reverted.is_cbt_exam
    assert reverted.total_score == Decimal('55')


def test_revert_requires_cbt_result(student, maths, term):
    result = Result.objects.create(student=student, subject=maths, term=term, ca_score=10, exam_score=20)
    with pytest.raises(ValueError):
        revert_cbt_score(result)


def test_override_keeps_original_cbt_score(student, exam, term, now):
    attempt = services.start_or_resume(student, exam, now=now)
    answer_all(attempt, now)
    services.submit(attempt, now=now + timedelta(minutes=5))
    result = Result.objects.get(student=student, subject=exam.subject, term=term)

    override_cbt_score(result, Decimal('50'))
    result.refresh_from_db()
    assert result.exam_score == Decimal('50')
    assert result.manual_exam_score == Decimal('60.00')
    assert not result.is_cbt_exam
    assert result.cbt_attempt_id == attempt.pk

    with pytest.raises(ValueError):
        override_cbt_score(result, Decimal('61'))


def test_bulk_sync_counts_students(student, make_student, exam, term, now):
    other = make_student()
    for who in (student, other):
        attempt = services.start_or_resume(who, exam, now=now)
        services.submit(attempt, now=now + timedelta(minutes=3))
    Result.objects.all().delete()

    assert bulk_sync(exam) == 2
    assert Result.objects.filter(term=term, is_cbt_exam=True).count() == 2


def test_exam_statistics(student, make_student, exam, now):
    good = services.start_or_resume(student, exam, now=now)
    answer_all(good, now)
    services.submit(good, now=now + timedelta(minutes=3))
    bad = services.start_or_resume(make_student(), exam, now=now)
    services.submit(bad, now=now + timedelta(minutes=3))

    stats = services.exam_statistics(exam)
    assert stats['attempts'] == 2
    assert stats['passed'] == 1
    assert stats['highest'] == Decimal('100.00')
    assert stats['average'] == Decimal('50.00')


def test_cancelled_exam_blocks_start(student, exam, now):
    exam.status = Exam.STATUS_CANCELLED
    exam.save()
    with pytest.raises(ExamTakingError):
        services.start_or_resume(student, exam, now=now)


def test_removed_question_no_longer_counts(student, exam, term, now):
    attempt = services.start_or_resume(student, exam, now=now)
    answer_all(attempt, now)
    exam.remove_question(questions_of(exam)[Question.TYPE_MULTIPLE_CHOICE])

    services.submit(attempt, now=now + timedelta(minutes=5))
    attempt.refresh_from_db()
    assert attempt.total_score == Decimal('2')
    assert attempt.percentage == Decimal('100.00')
    result = Result.objects.get(student=student, subject=exam.subject, term=term)
    assert result.exam_score == Decimal('60.00')


def test_cbt_exam_score_never_exceeds_exam_column():
    assert cbt_exam_score(Decimal('200')) == Decimal('60.00')
    assert cbt_exam_score(Decimal('-5')) == Decimal('0.00')


def test_overdue_attempt_waits_for_submission_without_auto_submit(student, exam, now):
    exam.auto_submit = False
    exam.save()
    attempt = services.start_or_resume(student, exam, now=now)
    late = now + timedelta(minutes=31)

    with pytest.raises(ExamTakingError, match='Please submit'):
        services.save_answer(attempt, exam.questions.first(), 'B', now=late)
    attempt.refresh_from_db()
    assert attempt.status == StudentExamAttempt.STATUS_IN_PROGRESS
    assert not services.close_if_expired(attempt, late)

    assert services.start_or_resume(student, exam, now=late).pk == attempt.pk

    services.submit(attempt, now=late)
    assert attempt.status == StudentExamAttempt.STATUS_COMPLETED
    assert attempt.time_taken_seconds == 30 * 60


def test_navigation_statuses(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    questions = questions_of(exam)
    services.save_answer(attempt, questions[Question.TYPE_MULTIPLE_CHOICE], 'B', now=now)
    services.save_answer(attempt, questions[Question.TYPE_TRUE_FALSE], '', now=now)
    assert services.toggle_flag(attempt, questions[Question.TYPE_FILL_BLANK], now=now) is True

    statuses = {item['question_id']: item['status'] for item in services.navigation(attempt)}
    assert statuses == {
        questions[Question.TYPE_MULTIPLE_CHOICE].pk: 'answered',
        questions[Question.TYPE_TRUE_FALSE].pk: 'visited',
        questions[Question.TYPE_FILL_BLANK].pk: 'flagged',
    }

    assert services.toggle_flag(attempt, questions[Question.TYPE_FILL_BLANK], now=now) is False
    statuses = {item['question_id']: item['status'] for item in services.navigation(attempt)}
    assert statuses[questions[Question.TYPE_FILL_BLANK].pk] == 'visited'
    assert [item['number'] for item in services.navigation(attempt)] == [1, 2, 3]


def test_navigation_before_any_answer(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    assert {item['status'] for item in services.navigation(attempt)} == {'not_visited'}


def test_time_spent_ignores_bad_values(student, exam, now):
    attempt = services.start_or_resume(student, exam, now=now)
    question = questions_of(exam)[Question.TYPE_MULTIPLE_CHOICE]
    services.save_answer(attempt, question, 'B', time_spent='12', now=now)
    answer = services.save_answer(attempt, question, 'B', time_spent='soon', now=now)
    assert answer.time_spent == 12


def test_force_submit_all(student, make_student, exam, term, now):
    exam.attempts_allowed = 0
    exam.save()
    first = services.start_or_resume(student, exam, now=now)
    answer_all(first, now)
    second = services.start_or_resume(make_student(), exam, now=now)
    done = services.start_or_resume(make_student(), exam, now=now)
    services.submit(done, now=now + timedelta(minutes=1))

    assert services.force_submit_all(exam, now=now + timedelta(minutes=2)) == 2
    for attempt in (first, second):
        attempt.refresh_from_db()
        assert attempt.status == StudentExamAttempt.STATUS_AUTO_SUBMITTED
    assert Result.objects.get(student=student, term=term).exam_score == Decimal('60.00')

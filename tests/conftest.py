from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth.models import User
from django.core.cache import cache
from django.utils import timezone

from ExamManagement.models import Exam, Question
from management.models import AcademicSession, ClassSubject, Classroom, Subject, Term
from management.services import create_student, create_teacher


@pytest.fixture(autouse=True)
def clear_cache():
    """Settings and rate limits live in the cache"""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def session(db):
    return AcademicSession.objects.create(
        name='2024/2025', start_date=date(2024, 9, 1), end_date=date(2025, 7, 31), is_current=True,
    )


@pytest.fixture
def term(session):
    return Term.objects.create(
        session=session, name='First Term', start_date=date(2024, 9, 1), end_date=date(2024, 12, 15), is_current=True,
    )


@pytest.fixture
def classroom(db):
    return Classroom.objects.create(name='JSS 1', section='A')


@pytest.fixture
def other_classroom(db):
    return Classroom.objects.create(name='JSS 2', section='A')


@pytest.fixture
def maths(db):
    return Subject.objects.create(name='Mathematics', code='MTH')


@pytest.fixture
def english(db):
    return Subject.objects.create(name='English', code='ENG')


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser('admin', 'admin@example.com', 'pass12345')


@pytest.fixture
def teacher(classroom, maths, english):
    teacher = create_teacher('Ada', 'Obi', 'ada@example.com', 'T001', password='pass12345')
    ClassSubject.objects.create(classroom=classroom, subject=maths, teacher=teacher)
    ClassSubject.objects.create(classroom=classroom, subject=english)
    return teacher


@pytest.fixture
def other_teacher(db):
    return create_teacher('Bola', 'Ade', 'bola@example.com', 'T002', password='pass12345')


@pytest.fixture
def student(classroom):
    return create_student('Chidi', 'Okeke', 'ADM001', email='chidi@example.com', classroom=classroom, password='pass12345')


@pytest.fixture
def make_student(classroom):
    counter = {'n': 100}

    def _make(first_name='Student', classroom=classroom, **extra):
        counter['n'] += 1
        number = f"ADM{counter['n']}"
        return create_student(
            first_name, 'Test', number, email=f"{number.lower()}@example.com", classroom=classroom, **extra
        )
    return _make


@pytest.fixture
def exam(classroom, maths, term, teacher):
    """Published 30 minute maths CBT with one question of each auto-graded type"""
    exam = Exam.objects.create(
        title='Maths CBT',
        subject=maths,
        term=term,
        teacher=teacher.user,
        duration_minutes=30,
        passing_marks=Decimal('2'),
        status=Exam.STATUS_ACTIVE,
        is_published=True,
        attempts_allowed=1,
    )
    exam.classrooms.add(classroom)
    questions = [
        Question.objects.create(
            subject=maths, question_text='2 + 2 = ?', question_type=Question.TYPE_MULTIPLE_CHOICE,
            options={'A': '3', 'B': '4', 'C': '5'}, correct_answer='B', marks=Decimal('2'),
        ),
        Question.objects.create(
            subject=maths, question_text='Zero is even.', question_type=Question.TYPE_TRUE_FALSE,
            options={'true': 'True', 'false': 'False'}, correct_answer='true', marks=Decimal('1'),
        ),
        Question.objects.create(
            subject=maths, question_text='A shape with three sides is a ____.', question_type=Question.TYPE_FILL_BLANK,
            correct_answer='triangle|trigon', marks=Decimal('1'),
        ),
    ]
    for question in questions:
        exam.add_question(question)
    return exam


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def yesterday():
    return timezone.localdate() - timedelta(days=1)

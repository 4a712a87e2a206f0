import pytest

from ResultManagement import policies
from ResultManagement.models import Result, TermResult

pytestmark = pytest.mark.django_db


@pytest.fixture
def maths_result(student, maths, term, teacher):
    return Result.objects.create(student=student, subject=maths, term=term, teacher=teacher.user, ca_score=30, exam_score=40)


@pytest.fixture
def english_result(student, english, term, admin_user):
    return Result.objects.create(student=student, subject=english, term=term, teacher=admin_user, ca_score=20, exam_score=30)


def test_admin_can_do_everything(admin_user, maths_result, classroom):
    assert policies.can_view(admin_user, maths_result)
    assert policies.can_update(admin_user, maths_result)
    assert policies.can_delete(admin_user, maths_result)
    assert policies.can_compile(admin_user, classroom)


def test_subject_teacher_manages_own_subject_only(teacher, maths_result, english_result, classroom, maths, english):
    user = teacher.user
    assert policies.can_create_for(user, classroom, maths)
    assert not policies.can_create_for(user, classroom, english)
    assert policies.can_update(user, maths_result)
    assert not policies.can_update(user, english_result)
    assert policies.can_view(user, maths_result)
    assert not policies.can_view(user, english_result)


def test_teacher_who_entered_result_can_update_it(other_teacher, student, maths, term):
    result = Result.objects.create(student=student, subject=maths, term=term, teacher=other_teacher.user)
    assert policies.can_update(other_teacher.user, result)


def test_teacher_outside_class(other_teacher, maths_result, classroom):
    assert not policies.can_update(other_teacher.user, maths_result)
    assert not policies.can_export(other_teacher.user, classroom)
    assert not policies.can_import(other_teacher.user, classroom)


def test_class_teacher_manages_classroom(other_teacher, classroom, english_result):
    classroom.class_teacher = other_teacher
    classroom.save()
    assert policies.can_compile(other_teacher.user, classroom)
    assert policies.can_update(other_teacher.user, english_result)


def test_students_only_see_their_own(student, make_student, maths_result, classroom, term):
    other = make_student()
    assert policies.can_view(student.user, maths_result)
    assert not policies.can_view(other.user, maths_result)
    assert not policies.can_update(student.user, maths_result)
    assert not policies.can_create_for(student.user, classroom, maths_result.subject)

    term_result = TermResult.objects.create(student=student, term=term, classroom=classroom)
    assert policies.can_view_term_result(student.user, term_result)
    assert not policies.can_view_term_result(other.user, term_result)

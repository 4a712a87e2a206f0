# ResultManagement/policies.py
"""
Who may see and change results.

Admins may do everything. Teachers act on results they entered or for
subjects they teach in the student's class. Students only read their own.
"""
from Authentication.models import is_admin, is_student, is_teacher
from management.services import can_teacher_manage_classroom, can_teacher_manage_subject, get_teacher


def _teacher_for(user):
    return get_teacher(user) if is_teacher(user) else None


def can_view(user, result):
    if is_admin(user):
        return True
    if is_student(user):
        return getattr(user, 'student', None) is not None and result.student_id == user.student.id
    return can_update(user, result)


def can_create_for(user, classroom, subject):
    if is_admin(user):
        return True
    teacher = _teacher_for(user)
    return teacher is not None and can_teacher_manage_subject(teacher, classroom, subject)


def can_update(user, result):
    if is_admin(user):
        return True
    teacher = _teacher_for(user)
    if teacher is None:
        return False
    if result.teacher_id == user.id:
        return True
    return can_teacher_manage_subject(teacher, result.student.classroom, result.subject)


def can_delete(user, result):
    return can_update(user, result)


def can_manage_classroom(user, classroom):
    if is_admin(user):
        return True
    teacher = _teacher_for(user)
    return teacher is not None and can_teacher_manage_classroom(teacher, classroom)


can_compile = can_manage_classroom
can_export = can_manage_classroom
can_import = can_manage_classroom


def can_view_term_result(user, term_result):
    if is_admin(user):
        return True
    if is_student(user):
        return getattr(user, 'student', None) is not None and term_result.student_id == user.student.id
    return term_result.classroom is not None and can_manage_classroom(user, term_result.classroom)

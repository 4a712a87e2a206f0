# management/services.py
"""
Account creation and teacher-assignment checks shared by the other apps.
"""
from django.conf import settings
from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Q

from Authentication.models import Profile
from .models import Classroom, ClassSubject, Setting, Student, Teacher


def get_teacher(user):
    """Get teacher instance from user"""
    try:
        return Teacher.objects.get(user=user)
    except Teacher.DoesNotExist:
        return None


def get_student(user):
    try:
        return Student.objects.select_related('classroom', 'user').get(user=user)
    except Student.DoesNotExist:
        return None


def school_info():
    """School identity for documents, admin overrides first"""
    return {
        'name': Setting.get_value('school_name', settings.SCHOOL_NAME),
        'address': Setting.get_value('school_address', settings.SCHOOL_ADDRESS),
        'phone': Setting.get_value('school_phone', settings.SCHOOL_PHONE),
        'email': Setting.get_value('school_email', settings.SCHOOL_EMAIL),
    }


def unique_username(base):
    base = (base or 'user').lower().replace(' ', '')
    username = base
    suffix = 1
    while User.objects.filter(username=username).exists():
        suffix += 1
        username = f"{base}{suffix}"
    return username


@transaction.atomic
def create_user_account(first_name, last_name, email, role, username=None, password=None):
    user = User.objects.create_user(
        username=unique_username(username or (email.split('@')[0] if email else f"{first_name}{last_name}")),
        email=email or '',
        password=password or settings.DEFAULT_ACCOUNT_PASSWORD,
        first_name=first_name or '',
        last_name=last_name or '',
    )
    user.profile.role = role
    user.profile.email_verified = True
    user.profile.save()
    return user


@transaction.atomic
def create_student(first_name, last_name, admission_number, email='', classroom=None, password=None, **extra):
    user = create_user_account(
        first_name, last_name, email, Profile.ROLE_STUDENT,
        username=admission_number, password=password,
    )
    return Student.objects.create(user=user, admission_number=admission_number, classroom=classroom, **extra)


@transaction.atomic
def create_teacher(first_name, last_name, email, employee_id, password=None, **extra):
    user = create_user_account(first_name, last_name, email, Profile.ROLE_TEACHER, password=password)
    return Teacher.objects.create(user=user, employee_id=employee_id, **extra)


# ============ TEACHER ASSIGNMENTS ============

def teacher_classrooms(teacher):
    """Classrooms a teacher is class teacher of, assigned to, or teaches a subject in"""
    if teacher is None:
        return Classroom.objects.none()
    return Classroom.objects.filter(
        Q(class_teacher=teacher) | Q(teachers=teacher) | Q(class_subjects__teacher=teacher)
    ).distinct()


def can_teacher_manage_classroom(teacher, classroom):
    if teacher is None or classroom is None:
        return False
    return teacher_classrooms(teacher).filter(pk=classroom.pk).exists()


def can_teacher_manage_subject(teacher, classroom, subject):
    """
    A teacher manages a subject in a classroom when they hold the subject
    assignment there, or when they are attached to the classroom (class teacher
    or assigned teacher) and the subject is taught in it.
    """
    if teacher is None or classroom is None or subject is None:
        return False

    if ClassSubject.objects.filter(classroom=classroom, subject=subject, teacher=teacher).exists():
        return True

    attached = classroom.class_teacher_id == teacher.pk or classroom.teachers.filter(pk=teacher.pk).exists()
    return attached and ClassSubject.objects.filter(classroom=classroom, subject=subject).exists()


def teacher_subject_ids(teacher, classroom):
    """Subject ids a teacher may record results for in ``classroom``"""
    if teacher is None or classroom is None:
        return set()
    if classroom.class_teacher_id == teacher.pk or classroom.teachers.filter(pk=teacher.pk).exists():
        return set(ClassSubject.objects.filter(classroom=classroom).values_list('subject_id', flat=True))
    return set(
        ClassSubject.objects.filter(classroom=classroom, teacher=teacher).values_list('subject_id', flat=True)
    )

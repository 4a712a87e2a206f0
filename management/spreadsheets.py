# management/spreadsheets.py
import logging
from datetime import datetime

from django.db import transaction

from core.spreadsheets import read_rows
from .models import Classroom, Student
from .services import create_student

logger = logging.getLogger(__name__)

STUDENT_COLUMNS = {
    'admission_number': ['admission_number', 'admission_no', 'student_id', 'reg_number'],
    'first_name': ['first_name', 'firstname'],
    'last_name': ['last_name', 'lastname', 'surname'],
    'email': ['email', 'email_address'],
    'class': ['class', 'classroom', 'class_name'],
    'gender': ['gender', 'sex'],
    'date_of_birth': ['date_of_birth', 'dob', 'birth_date'],
    'parent_name': ['parent_name', 'guardian_name'],
    'parent_phone': ['parent_phone', 'guardian_phone', 'phone'],
}

STUDENT_HEADERS = [
    'Admission Number', 'First Name', 'Last Name', 'Email', 'Class',
    'Gender', 'Date of Birth', 'Parent Name', 'Parent Phone', 'Status',
]

GENDER_MAPPING = {
    'male': 'male', 'm': 'male', 'boy': 'male',
    'female': 'female', 'f': 'female', 'girl': 'female',
}


def find_classroom(label):
    """Match "JSS 1" or "JSS 1 - A" against classroom name and section"""
    if not label:
        return None
    name, _, section = label.partition(' - ')
    classrooms = Classroom.objects.filter(name__iexact=name.strip())
    if section:
        classrooms = classrooms.filter(section__iexact=section.strip())
    return classrooms.first()


def parse_date(value):
    if not value:
        return None
    for fmt in ('%Y-%m-%d', '%Y-%m-%d %H:%M:%S', '%d/%m/%Y'):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date '{value}'")


def import_students(upload):
    """Create students from a sheet. Returns (imported, skipped, errors)."""
    rows = read_rows(upload, STUDENT_COLUMNS, required=['admission_number', 'first_name', 'last_name'])
    imported, skipped, errors = 0, 0, []

    for line, row in enumerate(rows, start=2):
        admission_number = row['admission_number']
        if Student.objects.filter(admission_number=admission_number).exists():
            skipped += 1
            continue

        classroom = find_classroom(row.get('class', ''))
        if row.get('class') and classroom is None:
            errors.append(f"Row {line}: class '{row['class']}' not found")
            continue

        try:
            with transaction.atomic():
                create_student(
                    first_name=row['first_name'],
                    last_name=row['last_name'],
                    admission_number=admission_number,
                    email=row.get('email', ''),
                    classroom=classroom,
                    gender=GENDER_MAPPING.get(row.get('gender', '').lower(), ''),
                    date_of_birth=parse_date(row.get('date_of_birth', '')),
                    parent_name=row.get('parent_name', ''),
                    parent_phone=row.get('parent_phone', ''),
                )
            imported += 1
        except ValueError as e:
            errors.append(f"Row {line}: {e}")

    if errors:
        logger.warning("Student import finished with %d row errors", len(errors))
    return imported, skipped, errors


def student_export_rows(students):
    return [
        [
            s.admission_number,
            s.user.first_name,
            s.user.last_name,
            s.user.email,
            str(s.classroom) if s.classroom else '',
            s.get_gender_display(),
            s.date_of_birth.isoformat() if s.date_of_birth else '',
            s.parent_name,
            s.parent_phone,
            'Active' if s.is_active else 'Inactive',
        ]
        for s in students
    ]

import json
from decimal import Decimal, ROUND_HALF_UP

from django.db import models, transaction
from django.contrib.auth.models import User
from django.core.cache import cache
from django.utils import timezone


class AcademicSession(models.Model):
    name = models.CharField(max_length=50, unique=True)  # e.g. "2024/2025"
    start_date = models.DateField()
    end_date = models.DateField()
    is_current = models.BooleanField(default=False)

    class Meta:
        ordering = ['-start_date']

    def save(self, *args, **kwargs):
        with transaction.atomic():
            if self.is_current:
                AcademicSession.objects.exclude(pk=self.pk).update(is_current=False)
            super().save(*args, **kwargs)

    @classmethod
    def current(cls):
        return cls.objects.filter(is_current=True).first()

    def __str__(self):
        return self.name


class Term(models.Model):
    session = models.ForeignKey(AcademicSession, on_delete=models.CASCADE, related_name='terms')
    name = models.CharField(max_length=50)  # e.g. "First Term"
    start_date = models.DateField()
    end_date = models.DateField()
    is_current = models.BooleanField(default=False)

    class Meta:
        ordering = ['-start_date']
        unique_together = ('session', 'name')

    def save(self, *args, **kwargs):
        with transaction.atomic():
            if self.is_current:
                Term.objects.exclude(pk=self.pk).update(is_current=False)
            super().save(*args, **kwargs)

    @classmethod
    def current(cls):
        return cls.objects.filter(is_current=True).select_related('session').first()

    def __str__(self):
        return f"{self.name} ({self.session.name})"


class Subject(models.Model):
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Teacher(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='teacher')
    employee_id = models.CharField(max_length=30, unique=True)
    qualification = models.CharField(max_length=150, blank=True, null=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    address = models.TextField(blank=True, null=True)
    date_joined = models.DateField(default=timezone.localdate)
    photo = models.ImageField(upload_to='teacher_photos/', blank=True, null=True)

    @property
    def full_name(self):
        return self.user.get_full_name() or self.user.username

    def __str__(self):
        return self.full_name


class Classroom(models.Model):
    name = models.CharField(max_length=100)  # e.g. "JSS 1", "SS 2"
    section = models.CharField(max_length=10, blank=True, null=True)
    capacity = models.PositiveIntegerField(default=40)
    class_teacher = models.ForeignKey(
        Teacher,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='classes_as_class_teacher'
    )
    teachers = models.ManyToManyField(Teacher, blank=True, related_name='classrooms')
    subjects = models.ManyToManyField(
        Subject,
        through='ClassSubject',
        related_name='classrooms'
    )

    class Meta:
        ordering = ['name', 'section']

    def active_student_count(self):
        """Return count of active students in this class"""
        return self.students.filter(is_active=True).count()

    def __str__(self):
        if self.section:
            return f"{self.name} - {self.section}"
        return self.name


class ClassSubject(models.Model):
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, related_name='class_subjects')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='class_subjects')
    teacher = models.ForeignKey(Teacher, on_delete=models.SET_NULL, blank=True, null=True, related_name='class_subjects')

    class Meta:
        unique_together = ('classroom', 'subject')

    def __str__(self):
        teacher_name = self.teacher.full_name if self.teacher else "No teacher assigned"
        return f"{self.subject.name} in {self.classroom} taught by {teacher_name}"


class Student(models.Model):
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='student')
    admission_number = models.CharField(max_length=30, unique=True)
    classroom = models.ForeignKey(
        Classroom,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='students'
    )
    date_of_birth = models.DateField(blank=True, null=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    photo = models.ImageField(upload_to='photos/', blank=True, null=True)
    parent_name = models.CharField(max_length=150, blank=True)
    parent_phone = models.CharField(max_length=20, blank=True)
    parent_email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['admission_number']

    @property
    def full_name(self):
        return self.user.get_full_name() or self.user.username

    @property
    def email(self):
        return self.user.email or self.parent_email

    def __str__(self):
        return f"{self.full_name} ({self.admission_number})"


class Attendance(models.Model):
    STATUS_PRESENT = 'present'
    STATUS_ABSENT = 'absent'
    STATUS_LATE = 'late'
    STATUS_EXCUSED = 'excused'
    STATUS_CHOICES = [
        (STATUS_PRESENT, 'Present'),
        (STATUS_ABSENT, 'Absent'),
        (STATUS_LATE, 'Late'),
        (STATUS_EXCUSED, 'Excused'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='attendance')
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, related_name='attendance')
    term = models.ForeignKey(Term, on_delete=models.SET_NULL, null=True, blank=True, related_name='attendance')
    date = models.DateField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PRESENT)
    remarks = models.CharField(max_length=255, blank=True)
    marked_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)

    class Meta:
        unique_together = ('student', 'date')
        ordering = ['-date']

    @classmethod
    def summary(cls, student, term=None):
        """Attendance counts for a student, optionally limited to one term"""
        records = cls.objects.filter(student=student)
        if term is not None:
            records = records.filter(term=term)

        counts = {status: 0 for status, _ in cls.STATUS_CHOICES}
        for row in records.order_by().values('status').annotate(total=models.Count('id')):
            counts[row['status']] = row['total']

        total_days = sum(counts.values())
        if total_days:
            percentage = Decimal(counts[cls.STATUS_PRESENT] + counts[cls.STATUS_LATE]) * 100 / total_days
            percentage = percentage.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        else:
            percentage = Decimal('0.00')

        return {
            'days_present': counts[cls.STATUS_PRESENT],
            'days_absent': counts[cls.STATUS_ABSENT],
            'days_late': counts[cls.STATUS_LATE],
            'days_excused': counts[cls.STATUS_EXCUSED],
            'total_days': total_days,
            'attendance_percentage': percentage,
        }

    def __str__(self):
        return f"{self.student} - {self.date} ({self.status})"


class Setting(models.Model):
    """
    Admin-editable configuration stored as typed key/value pairs.
    Reads go through the cache; writes invalidate it.
    """
    TYPE_CHOICES = [
        ('string', 'String'),
        ('integer', 'Integer'),
        ('float', 'Float'),
        ('boolean', 'Boolean'),
        ('json', 'JSON'),
    ]

    key = models.CharField(max_length=100, unique=True)
    value = models.TextField(blank=True, null=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='string')
    group = models.CharField(max_length=50, default='general')
    is_public = models.BooleanField(default=False)
    description = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    CACHE_PREFIX = 'setting:'
    CACHE_TIMEOUT = 3600

    class Meta:
        ordering = ['group', 'key']

    def cast_value(self):
        if self.value is None:
            return None
        if self.type == 'integer':
            return int(self.value)
        if self.type == 'float':
            return float(self.value)
        if self.type == 'boolean':
            return self.value.strip().lower() in ('1', 'true', 'yes', 'on')
        if self.type == 'json':
            return json.loads(self.value)
        return self.value

    @classmethod
    def get_value(cls, key, default=None):
        cache_key = cls.CACHE_PREFIX + key
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        setting = cls.objects.filter(key=key).first()
        if setting is None:
            return default
        value = setting.cast_value()
        if value is None:
            return default
        cache.set(cache_key, value, cls.CACHE_TIMEOUT)
        return value

    @classmethod
    def set_value(cls, key, value, type='string', group='general', is_public=False):
        if type == 'json':
            stored = json.dumps(value)
        elif type == 'boolean':
            stored = 'true' if value else 'false'
        else:
            stored = '' if value is None else str(value)

        setting, _ = cls.objects.update_or_create(
            key=key,
            defaults={'value': stored, 'type': type, 'group': group, 'is_public': is_public},
        )
        cache.delete(cls.CACHE_PREFIX + key)
        return setting

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        cache.delete(self.CACHE_PREFIX + self.key)

    def __str__(self):
        return self.key

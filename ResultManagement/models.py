# ResultManagement/models.py
from decimal import Decimal, InvalidOperation

from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MinValueValidator, MaxValueValidator

from ExamManagement.models import StudentExamAttempt
from management.models import Classroom, Student, Subject, Term
from .grading import grade_info, is_pass

CA_MAX = Decimal('40')
EXAM_MAX = Decimal('60')


class Result(models.Model):
    """
    A student's score in one subject for one term: continuous assessment
    (max 40) plus exam (max 60)
    """
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='results')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='results')
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name='results')
    classroom = models.ForeignKey(Classroom, on_delete=models.SET_NULL, null=True, blank=True, related_name='results')
    teacher = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='entered_results')

    ca_score = models.DecimalField(
        max_digits=5, decimal_places=2, default=0,
        validators=[MinValueValidator(0), MaxValueValidator(CA_MAX)]
    )
    exam_score = models.DecimalField(
        max_digits=5, decimal_places=2, default=0,
        validators=[MinValueValidator(0), MaxValueValidator(EXAM_MAX)]
    )

    # Calculated fields
    total_score = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    grade = models.CharField(max_length=2, blank=True)
    position = models.PositiveIntegerField(null=True, blank=True)

    remark = models.CharField(max_length=255, blank=True)
    teacher_comment = models.TextField(blank=True)
    principal_comment = models.TextField(blank=True)

    # CBT integration
    cbt_attempt = models.ForeignKey(StudentExamAttempt, on_delete=models.SET_NULL, null=True, blank=True, related_name='results')
    is_cbt_exam = models.BooleanField(default=False)
    manual_exam_score = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    cbt_synced_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('student', 'subject', 'term')
        ordering = ['subject__name']

    @staticmethod
    def validate_scores(ca_score, exam_score):
        """Raise ValueError unless both scores are inside their allowed range"""
        if ca_score is None or exam_score is None:
            raise ValueError("CA and exam scores are required.")
        try:
            ca_score, exam_score = Decimal(str(ca_score)), Decimal(str(exam_score))
        except InvalidOperation:
            raise ValueError("CA and exam scores must be numbers.")
        if not (ca_score.is_finite() and exam_score.is_finite()):
            raise ValueError("CA and exam scores must be numbers.")
        if not Decimal('0') <= ca_score <= CA_MAX:
            raise ValueError(f"CA score must be between 0 and {CA_MAX}.")
        if not Decimal('0') <= exam_score <= EXAM_MAX:
            raise ValueError(f"Exam score must be between 0 and {EXAM_MAX}.")

    def save(self, *args, **kwargs):
        if self.classroom_id is None and self.student_id:
            self.classroom_id = self.student.classroom_id
        self.calculate_result()
        super().save(*args, **kwargs)

    def calculate_result(self):
        """Calculate total and grade"""
        self.total_score = Decimal(self.ca_score or 0) + Decimal(self.exam_score or 0)
        self.grade = grade_info(self.total_score)['grade']

    @property
    def grade_remark(self):
        return grade_info(self.total_score)['remark']

    @property
    def is_passed(self):
        return is_pass(self.total_score)

    def __str__(self):
        return f"{self.student} - {self.subject.name} - {self.term}"


class TermResult(models.Model):
    """
    Compiled summary of a student's results for one term
    """
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='term_results')
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name='term_results')
    classroom = models.ForeignKey(Classroom, on_delete=models.SET_NULL, null=True, blank=True, related_name='term_results')

    total_score = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    average_score = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    gpa = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    subjects_count = models.PositiveIntegerField(default=0)
    position = models.PositiveIntegerField(null=True, blank=True)

    teacher_comment = models.TextField(blank=True)
    principal_comment = models.TextField(blank=True)

    compiled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('student', 'term')
        ordering = ['position']

    @property
    def grade(self):
        return grade_info(self.average_score)['grade']

    def __str__(self):
        return f"{self.student} - {self.term}"

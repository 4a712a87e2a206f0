from decimal import Decimal

from django.db import models
from django.db.models import Sum
from django.contrib.auth.models import User
from django.utils import timezone

from management.models import Classroom, Student, Subject, Term


class Question(models.Model):
    TYPE_MULTIPLE_CHOICE = 'multiple_choice'
    TYPE_TRUE_FALSE = 'true_false'
    TYPE_FILL_BLANK = 'fill_blank'
    TYPE_ESSAY = 'essay'
    TYPE_CHOICES = [
        (TYPE_MULTIPLE_CHOICE, 'Multiple Choice'),
        (TYPE_TRUE_FALSE, 'True / False'),
        (TYPE_FILL_BLANK, 'Fill in the Blank'),
        (TYPE_ESSAY, 'Essay'),
    ]
    AUTO_GRADED_TYPES = (TYPE_MULTIPLE_CHOICE, TYPE_TRUE_FALSE, TYPE_FILL_BLANK)

    DIFFICULTY_CHOICES = [
        ('easy', 'Easy'),
        ('medium', 'Medium'),
        ('hard', 'Hard'),
    ]

    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='questions')
    teacher = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='questions')
    question_text = models.TextField()
    question_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_MULTIPLE_CHOICE)
    difficulty_level = models.CharField(max_length=10, choices=DIFFICULTY_CHOICES, default='medium')
    marks = models.DecimalField(max_digits=5, decimal_places=2, default=1)
    # {"A": "...", "B": "..."} for multiple choice; correct_answer holds the key
    options = models.JSONField(default=dict, blank=True)
    correct_answer = models.TextField(blank=True)
    explanation = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    @property
    def needs_manual_grading(self):
        return self.question_type == self.TYPE_ESSAY

    def __str__(self):
        return self.question_text[:60]


class Exam(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_SCHEDULED = 'scheduled'
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='exams')
    term = models.ForeignKey(Term, on_delete=models.SET_NULL, null=True, blank=True, related_name='exams')
    teacher = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='exams')
    classrooms = models.ManyToManyField(Classroom, related_name='exams', blank=True)
    questions = models.ManyToManyField(Question, through='ExamQuestion', related_name='exams', blank=True)

    duration_minutes = models.PositiveIntegerField(default=60)
    total_marks = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    passing_marks = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    instructions = models.TextField(blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    is_published = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)

    randomize_questions = models.BooleanField(default=False)
    randomize_options = models.BooleanField(default=False)
    show_results_immediately = models.BooleanField(default=True)
    allow_review = models.BooleanField(default=True)
    attempts_allowed = models.PositiveIntegerField(default=1)  # 0 = unlimited
    auto_submit = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def is_open(self, now=None):
        """Inside the scheduled window (an unset bound is open-ended)"""
        now = now or timezone.now()
        if self.start_time and now < self.start_time:
            return False
        if self.end_time and now > self.end_time:
            return False
        return True

    def allocated_marks(self):
        return self.exam_questions.aggregate(total=Sum('marks'))['total'] or Decimal('0')

    def recalculate_total_marks(self):
        self.total_marks = self.allocated_marks()
        self.save(update_fields=['total_marks', 'updated_at'])

    def add_question(self, question, marks=None):
        order = self.exam_questions.count() + 1
        exam_question, created = ExamQuestion.objects.get_or_create(
            exam=self,
            question=question,
            defaults={'order': order, 'marks': marks if marks is not None else question.marks},
        )
        if created:
            self.recalculate_total_marks()
        return exam_question

    def remove_question(self, question):
        self.exam_questions.filter(question=question).delete()
        for index, exam_question in enumerate(self.exam_questions.order_by('order'), start=1):
            if exam_question.order != index:
                exam_question.order = index
                exam_question.save(update_fields=['order'])
        self.recalculate_total_marks()

    def __str__(self):
        return self.title


class ExamQuestion(models.Model):
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='exam_questions')
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name='exam_questions')
    order = models.PositiveIntegerField(default=1)
    marks = models.DecimalField(max_digits=5, decimal_places=2, default=1)

    class Meta:
        unique_together = ('exam', 'question')
        ordering = ['order']

    def __str__(self):
        return f"{self.exam} #{self.order}"


class StudentExamAttempt(models.Model):
    STATUS_NOT_STARTED = 'not_started'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_AUTO_SUBMITTED = 'auto_submitted'
    STATUS_CHOICES = [
        (STATUS_NOT_STARTED, 'Not Started'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_AUTO_SUBMITTED, 'Auto Submitted'),
    ]
    FINISHED_STATUSES = (STATUS_COMPLETED, STATUS_AUTO_SUBMITTED)

    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='attempts')
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='exam_attempts')
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=STATUS_NOT_STARTED)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    total_score = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    time_taken_seconds = models.PositiveIntegerField(default=0)
    tab_switches = models.PositiveIntegerField(default=0)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    @property
    def is_finished(self):
        return self.status in self.FINISHED_STATUSES

    @property
    def is_passed(self):
        return self.total_score >= self.exam.passing_marks

    @property
    def grade(self):
        percentage = float(self.percentage or 0)
        if percentage >= 90:
            return 'A+'
        elif percentage >= 80:
            return 'A'
        elif percentage >= 70:
            return 'B+'
        elif percentage >= 60:
            return 'B'
        elif percentage >= 50:
            return 'C'
        elif percentage >= 40:
            return 'D'
        return 'F'

    def __str__(self):
        return f"{self.student} - {self.exam} ({self.status})"


class StudentAnswer(models.Model):
    attempt = models.ForeignKey(StudentExamAttempt, on_delete=models.CASCADE, related_name='answers')
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name='student_answers')
    answer_text = models.TextField(blank=True)
    is_correct = models.BooleanField(null=True, blank=True)  # None until graded
    marks_obtained = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    time_spent = models.PositiveIntegerField(default=0)  # seconds
    is_flagged = models.BooleanField(default=False)
    graded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('attempt', 'question')

    def __str__(self):
        return f"Answer by {self.attempt.student} to {self.question_id}"


class ExamTimetable(models.Model):
    title = models.CharField(max_length=255)
    term = models.ForeignKey(Term, on_delete=models.SET_NULL, null=True, blank=True, related_name='timetables')
    exam_time = models.CharField(max_length=100, blank=True, null=True)
    note_above = models.TextField(blank=True, null=True)
    note_below = models.TextField(blank=True, null=True)
    is_published = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def grid(self):
        """Rows of dates against classroom columns, cell = subject name"""
        entries = list(self.entries.select_related('classroom', 'subject'))
        class_names = sorted({str(e.classroom) for e in entries})
        dates = sorted({e.exam_date for e in entries})
        cells = {(e.exam_date, str(e.classroom)): e.subject.name for e in entries}
        rows = [[cells.get((d, cls), '') for cls in class_names] for d in dates]
        return class_names, dates, rows

    def __str__(self):
        return self.title


class ExamTimetableEntry(models.Model):
    timetable = models.ForeignKey(ExamTimetable, on_delete=models.CASCADE, related_name='entries')
    exam_date = models.DateField()
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE)
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE)

    class Meta:
        ordering = ['exam_date', 'classroom__name']
        unique_together = ('timetable', 'exam_date', 'classroom')

    def __str__(self):
        return f"{self.classroom} - {self.subject.name} on {self.exam_date}"

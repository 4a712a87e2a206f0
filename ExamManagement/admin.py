from django.contrib import admin
from .models import Exam, ExamQuestion, ExamTimetable, ExamTimetableEntry, Question, StudentAnswer, StudentExamAttempt


class ExamQuestionInline(admin.TabularInline):
    model = ExamQuestion
    extra = 1


class ExamTimetableEntryInline(admin.TabularInline):
    model = ExamTimetableEntry
    extra = 1


class StudentAnswerInline(admin.TabularInline):
    model = StudentAnswer
    extra = 0
    readonly_fields = ('question', 'answer_text', 'is_correct', 'time_spent', 'is_flagged')


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'subject', 'question_type', 'difficulty_level', 'marks', 'is_active')
    list_filter = ('subject', 'question_type', 'difficulty_level', 'is_active')
    search_fields = ('question_text',)


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ('title', 'subject', 'term', 'status', 'is_published', 'start_time', 'end_time', 'total_marks')
    list_filter = ('status', 'is_published', 'subject', 'term')
    search_fields = ('title',)
    filter_horizontal = ('classrooms',)
    readonly_fields = ('total_marks',)
    inlines = [ExamQuestionInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'subject', 'term', 'teacher', 'classrooms', 'instructions')
        }),
        ('Marks & Timing', {
            'fields': ('duration_minutes', 'total_marks', 'passing_marks', 'start_time', 'end_time')
        }),
        ('Status', {
            'fields': ('status', 'is_published', 'is_active')
        }),
        ('Behaviour', {
            'fields': ('randomize_questions', 'randomize_options', 'show_results_immediately',
                       'allow_review', 'attempts_allowed', 'auto_submit'),
            'classes': ('collapse',)
        }),
    )


@admin.register(StudentExamAttempt)
class StudentExamAttemptAdmin(admin.ModelAdmin):
    list_display = ('student', 'exam', 'status', 'total_score', 'percentage', 'start_time', 'end_time')
    list_filter = ('status', 'exam')
    search_fields = ('student__admission_number', 'student__user__first_name', 'student__user__last_name')
    readonly_fields = ('total_score', 'percentage', 'time_taken_seconds', 'tab_switches')
    inlines = [StudentAnswerInline]


@admin.register(ExamTimetable)
class ExamTimetableAdmin(admin.ModelAdmin):
    list_display = ('title', 'term', 'exam_time', 'is_published', 'created_at')
    search_fields = ('title',)
    inlines = [ExamTimetableEntryInline]

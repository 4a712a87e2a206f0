# ResultManagement/admin.py
from django.contrib import admin
from .models import Result, TermResult


@admin.register(Result)
class ResultAdmin(admin.ModelAdmin):
    list_display = ('student', 'subject', 'term', 'ca_score', 'exam_score', 'total_score', 'grade', 'position', 'is_cbt_exam')
    list_filter = ('term', 'subject', 'grade', 'is_cbt_exam', 'classroom')
    search_fields = ('student__user__first_name', 'student__user__last_name', 'student__admission_number')
    ordering = ('-created_at', 'student__admission_number')
    readonly_fields = ('total_score', 'grade', 'position', 'cbt_synced_at')

    fieldsets = (
        ('Basic Information', {
            'fields': ('student', 'subject', 'term', 'classroom', 'teacher')
        }),
        ('Scores', {
            'fields': ('ca_score', 'exam_score', 'remark')
        }),
        ('Calculated Results', {
            'fields': ('total_score', 'grade', 'position'),
            'classes': ('collapse',)
        }),
        ('CBT', {
            'fields': ('is_cbt_exam', 'cbt_attempt', 'manual_exam_score', 'cbt_synced_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(TermResult)
class TermResultAdmin(admin.ModelAdmin):
    list_display = ('student', 'term', 'classroom', 'total_score', 'average_score', 'gpa', 'position')
    list_filter = ('term', 'classroom')
    search_fields = ('student__user__first_name', 'student__user__last_name', 'student__admission_number')
    ordering = ('term', 'classroom', 'position')
    readonly_fields = ('total_score', 'average_score', 'gpa', 'subjects_count', 'position', 'compiled_at')

    fieldsets = (
        ('Basic Information', {
            'fields': ('student', 'term', 'classroom')
        }),
        ('Overall Performance', {
            'fields': ('total_score', 'average_score', 'gpa', 'subjects_count', 'position', 'compiled_at')
        }),
        ('Comments', {
            'fields': ('teacher_comment', 'principal_comment')
        }),
    )

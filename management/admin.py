from django.contrib import admin
from .models import AcademicSession, Term, Subject, Teacher, Classroom, ClassSubject, Student, Attendance, Setting


class TermInline(admin.TabularInline):
    model = Term
    extra = 1


class ClassSubjectInline(admin.TabularInline):
    model = ClassSubject
    extra = 1


@admin.register(AcademicSession)
class AcademicSessionAdmin(admin.ModelAdmin):
    list_display = ('name', 'start_date', 'end_date', 'is_current')
    inlines = [TermInline]


@admin.register(Term)
class TermAdmin(admin.ModelAdmin):
    list_display = ('name', 'session', 'start_date', 'end_date', 'is_current')
    list_filter = ('session', 'is_current')


@admin.register(Subject)
class SubjectAdmin(admin.ModelAdmin):
    list_display = ('name', 'code')
    search_fields = ('name', 'code')


@admin.register(Teacher)
class TeacherAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'employee_id', 'phone', 'date_joined')
    search_fields = ('user__first_name', 'user__last_name', 'employee_id')


@admin.register(Classroom)
class ClassroomAdmin(admin.ModelAdmin):
    list_display = ('name', 'section', 'class_teacher', 'capacity', 'active_student_count')
    filter_horizontal = ('teachers',)
    inlines = [ClassSubjectInline]


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ('admission_number', 'full_name', 'classroom', 'gender', 'is_active')
    list_filter = ('classroom', 'gender', 'is_active')
    search_fields = ('admission_number', 'user__first_name', 'user__last_name')


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ('student', 'classroom', 'date', 'status', 'term')
    list_filter = ('status', 'classroom', 'term')
    date_hierarchy = 'date'


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ('key', 'value', 'type', 'group', 'is_public')
    list_filter = ('group', 'type')
    search_fields = ('key',)

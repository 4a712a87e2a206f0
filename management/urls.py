from django.urls import path
from . import views

urlpatterns = [
    # Sessions & terms
    path('sessions/', views.session_list, name='session_list'),
    path('sessions/<int:pk>/delete/', views.session_delete, name='session_delete'),
    path('sessions/<int:pk>/set-current/', views.set_current_session, name='set_current_session'),
    path('sessions/<int:session_id>/terms/add/', views.term_add, name='term_add'),
    path('terms/<int:pk>/delete/', views.term_delete, name='term_delete'),
    path('terms/<int:pk>/set-current/', views.set_current_term, name='set_current_term'),

    # Students
    path('students/', views.student_list, name='list'),
    path('students/add/', views.add_student, name='add_student'),
    path('students/<int:student_id>/edit/', views.edit_student, name='edit_student'),
    path('students/<int:student_id>/delete/', views.delete_student, name='delete_student'),
    path('students/import/', views.student_import, name='student_import'),
    path('students/export/', views.student_export, name='student_export'),

    # Teachers
    path('teachers/', views.teacher_list, name='teachers_list'),
    path('teachers/add/', views.add_teacher, name='add_teacher'),
    path('teachers/<int:teacher_id>/edit/', views.edit_teacher, name='edit_teacher'),
    path('teachers/<int:teacher_id>/delete/', views.delete_teacher, name='delete_teacher'),

    # Classes
    path('classes/', views.class_list, name='class_list'),
    path('classes/add/', views.add_class, name='class_add'),
    path('classes/<int:class_id>/edit/', views.edit_class, name='class_edit'),
    path('classes/<int:class_id>/delete/', views.delete_class, name='class_delete'),

    # Attendance
    path('classes/<int:class_id>/attendance/', views.attendance, name='attendance'),
    path('my-attendance/', views.my_attendance, name='my_attendance'),

    # Subjects
    path('subjects/', views.subject_list, name='subject_list'),
    path('subjects/add/', views.subject_add, name='subject_add'),
    path('subjects/<int:pk>/edit/', views.subject_edit, name='subject_edit'),
    path('subjects/<int:pk>/delete/', views.subject_delete, name='subject_delete'),

    # Settings
    path('settings/', views.settings_view, name='settings'),
]

from django.urls import path
from . import views

app_name = 'exam'

urlpatterns = [
    # Exam authoring
    path('exams/', views.exam_list, name='exam_list'),
    path('exams/create/', views.exam_create, name='exam_create'),
    path('exams/<int:pk>/', views.exam_detail, name='exam_detail'),
    path('exams/<int:pk>/edit/', views.exam_edit, name='exam_edit'),
    path('exams/<int:pk>/delete/', views.exam_delete, name='exam_delete'),
    path('exams/<int:pk>/publish/', views.exam_publish, name='exam_publish'),
    path('exams/<int:pk>/status/', views.exam_status, name='exam_status'),
    path('exams/<int:pk>/questions/add/', views.exam_add_questions, name='exam_add_questions'),
    path('exams/<int:pk>/questions/<int:question_id>/remove/', views.exam_remove_question, name='exam_remove_question'),
    path('exams/<int:pk>/force-submit/', views.exam_force_submit, name='exam_force_submit'),
    path('exams/<int:pk>/attempts/', views.exam_attempts, name='exam_attempts'),
    path('attempts/<int:attempt_id>/', views.attempt_detail, name='attempt_detail'),
    path('answers/<int:answer_id>/grade/', views.grade_answer, name='grade_answer'),

    # Question bank
    path('questions/', views.question_list, name='question_list'),
    path('questions/create/', views.question_create, name='question_create'),
    path('questions/<int:pk>/edit/', views.question_edit, name='question_edit'),
    path('questions/<int:pk>/delete/', views.question_delete, name='question_delete'),

    # Student exam taking
    path('my-exams/', views.student_exam_list, name='student_exam_list'),
    path('my-exams/<int:pk>/', views.student_exam_show, name='student_exam_show'),
    path('my-exams/<int:pk>/start/', views.exam_start, name='exam_start'),
    path('take/<int:attempt_id>/', views.exam_take, name='exam_take'),
    path('take/<int:attempt_id>/answer/', views.exam_save_answer, name='exam_save_answer'),
    path('take/<int:attempt_id>/flag/', views.exam_toggle_flag, name='exam_toggle_flag'),
    path('take/<int:attempt_id>/tab-switch/', views.exam_tab_switch, name='exam_tab_switch'),
    path('take/<int:attempt_id>/time/', views.exam_time_check, name='exam_time_check'),
    path('take/<int:attempt_id>/submit/', views.exam_submit, name='exam_submit'),
    path('take/<int:attempt_id>/result/', views.attempt_result, name='attempt_result'),

    # Exam timetables
    path('timetables/', views.timetable_list, name='timetable_list'),
    path('timetables/create/', views.timetable_create, name='timetable_create'),
    path('timetables/<int:pk>/', views.timetable_detail, name='timetable_detail'),
    path('timetables/<int:pk>/edit/', views.timetable_edit, name='timetable_edit'),
    path('timetables/<int:pk>/delete/', views.timetable_delete, name='timetable_delete'),
    path('timetables/<int:pk>/pdf/', views.timetable_download, name='timetable_pdf'),
]

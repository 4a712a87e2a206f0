# ResultManagement/urls.py
from django.urls import path
from . import views

app_name = 'result'

urlpatterns = [
    # Results
    path('', views.result_list, name='result_list'),
    path('create/', views.result_create, name='result_create'),
    path('<int:pk>/edit/', views.result_edit, name='result_edit'),
    path('<int:pk>/delete/', views.result_delete, name='result_delete'),

    # Marks Entry URLs
    path('marks/', views.marks_entry_dashboard, name='marks_entry_dashboard'),
    path('marks/<int:class_id>/<int:subject_id>/', views.enter_marks, name='enter_marks'),

    # Compiled term results
    path('class/<int:class_id>/compile/', views.compile_class, name='compile_class'),
    path('class/<int:class_id>/', views.term_results, name='term_results'),
    path('class/<int:class_id>/statistics/', views.statistics, name='statistics'),
    path('term-results/<int:pk>/comments/', views.term_result_comments, name='term_result_comments'),
    path('my-results/', views.my_results, name='my_results'),

    # Report card PDF generation
    path('report-card/<int:student_id>/<int:term_id>/', views.report_card, name='report_card'),
    path('report-cards/<int:class_id>/<int:term_id>/', views.class_report_cards, name='class_report_cards'),

    # Spreadsheets
    path('import/', views.results_import, name='results_import'),
    path('export/', views.results_export, name='results_export'),
    path('template/<int:class_id>/', views.results_template, name='results_template'),

    # CBT scores
    path('<int:pk>/cbt/override/', views.cbt_override, name='cbt_override'),
    path('<int:pk>/cbt/revert/', views.cbt_revert, name='cbt_revert'),
    path('cbt/sync/<int:exam_id>/', views.cbt_bulk_sync, name='cbt_bulk_sync'),

    # AJAX URLs
    path('ajax/check-score/', views.check_score, name='check_score'),
]

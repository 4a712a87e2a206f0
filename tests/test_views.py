import io
import zipfile
from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse

from ExamManagement.models import ExamTimetable, Question, StudentExamAttempt
from ResultManagement.compiler import compile_results
from ResultManagement.models import Result
from ResultManagement.report_card import ReportCardError, report_card_context

pytestmark = pytest.mark.django_db


def page(response):
    assert response.status_code == 200
    return response.json()


def test_dashboard_per_role(client, admin_user, teacher, student, exam):
    client.force_login(admin_user)
    payload = page(client.get(reverse('dashboard')))
    assert payload['component'] == 'Admin/Dashboard'
    assert payload['props']['counts']['students'] == 1

    client.force_login(teacher.user)
    payload = page(client.get(reverse('dashboard')))
    assert payload['component'] == 'Teacher/Dashboard'
    assert payload['props']['exams'][0]['title'] == 'Maths CBT'

    client.force_login(student.user)
    payload = page(client.get(reverse('dashboard')))
    assert payload['component'] == 'Student/Dashboard'
    assert payload['props']['upcoming_exams'][0]['id'] == exam.id
    assert payload['props']['latest_term_result'] is None


def test_teacher_enters_marks_for_class(client, teacher, classroom, maths, term, student, make_student):
    absent = make_student()
    client.force_login(teacher.user)
    url = reverse('result:enter_marks', args=[classroom.id, maths.id])

    response = client.post(url, {
        f'ca_{student.id}': '35', f'exam_{student.id}': '50', f'remark_{student.id}': 'Good',
        f'ca_{absent.id}': '45', f'exam_{absent.id}': '10',
    })
    assert response.status_code == 302

    result = Result.objects.get(student=student, subject=maths, term=term)
    assert result.total_score == Decimal('85')
    assert result.teacher == teacher.user
    assert result.remark == 'Good'
    # CA above 40 is rejected for that student only
    assert not Result.objects.filter(student=absent).exists()


def test_teacher_cannot_enter_marks_for_unassigned_subject(client, teacher, classroom, english, term):
    client.force_login(teacher.user)
    response = client.get(reverse('result:enter_marks', args=[classroom.id, english.id]))
    assert response.url == reverse('result:result_list')


def test_check_score_endpoint(client, teacher):
    client.force_login(teacher.user)
    url = reverse('result:check_score')
    data = client.post(url, {'ca_score': '30', 'exam_score': '45'}, content_type='application/json').json()
    assert Decimal(data['total_score']) == Decimal('75')
    assert data['grade'] == 'A'
    assert data['status'] == 'pass'

    response = client.post(url, {'ca_score': '41', 'exam_score': '0'}, content_type='application/json')
    assert response.status_code == 422

    response = client.post(url, {'ca_score': 'NaN', 'exam_score': '10'}, content_type='application/json')
    assert response.status_code == 422

    response = client.post(url, [1, 2], content_type='application/json')
    assert response.status_code == 400


def test_compile_view_and_term_results(client, teacher, classroom, maths, term, student):
    Result.objects.create(student=student, subject=maths, term=term, ca_score=30, exam_score=40)
    client.force_login(teacher.user)
    response = client.post(reverse('result:compile_class', args=[classroom.id]), {'generate_comments': 'on'})
    assert response.url == reverse('result:term_results', args=[classroom.id])

    payload = page(client.get(reverse('result:term_results', args=[classroom.id])))
    rows = payload['props']['term_results']
    assert rows[0]['position'] == 1
    assert rows[0]['teacher_comment']


def test_report_card_context(student, maths, english, term, classroom):
    Result.objects.create(student=student, subject=maths, term=term, ca_score=30, exam_score=50)
    Result.objects.create(student=student, subject=english, term=term, ca_score=20, exam_score=25)
    compile_results(classroom, term)

    context = report_card_context(student, term)
    assert context['position'] == '1st'
    assert context['class_size'] == 1
    assert len(context['results']) == 2
    assert context['teacher_comment']
    assert context['grading_key'][0]['grade'] == 'A'


def test_report_card_needs_results(student, term):
    with pytest.raises(ReportCardError):
        report_card_context(student, term)


def test_report_card_pdf_access(client, student, make_student, maths, term, classroom):
    Result.objects.create(student=student, subject=maths, term=term, ca_score=30, exam_score=50)
    url = reverse('result:report_card', args=[student.id, term.id])

    client.force_login(student.user)
    # not compiled yet
    assert client.get(url).status_code == 404

    compile_results(classroom, term)
    response = client.get(url)
    assert response.status_code == 200
    assert response['Content-Type'] == 'application/pdf'
    assert response.content.startswith(b'%PDF')

    client.force_login(make_student().user)
    assert client.get(url).status_code == 403


def test_class_report_cards_zip(client, admin_user, student, make_student, maths, term, classroom):
    for who in (student, make_student()):
        Result.objects.create(student=who, subject=maths, term=term, ca_score=20, exam_score=30)
    compile_results(classroom, term)

    client.force_login(admin_user)
    response = client.get(reverse('result:class_report_cards', args=[classroom.id, term.id]))
    assert response.status_code == 200
    archive = zipfile.ZipFile(io.BytesIO(response.content))
    assert len(archive.namelist()) == 2


def test_results_export_and_template(client, admin_user, student, maths, term, classroom):
    Result.objects.create(student=student, subject=maths, term=term, ca_score=20, exam_score=30)
    client.force_login(admin_user)

    response = client.get(reverse('result:results_export'))
    assert response.status_code == 200
    assert 'attachment' in response['Content-Disposition']

    response = client.get(reverse('result:results_template', args=[classroom.id]))
    assert response.status_code == 200


def test_student_takes_exam_through_views(client, student, exam, term):
    client.force_login(student.user)
    response = client.post(reverse('exam:exam_start', args=[exam.id]))
    attempt = StudentExamAttempt.objects.get(student=student, exam=exam)
    assert response.url == reverse('exam:exam_take', args=[attempt.id])

    question = exam.questions.get(question_type=Question.TYPE_MULTIPLE_CHOICE)
    response = client.post(
        reverse('exam:exam_save_answer', args=[attempt.id]),
        {'question_id': question.id, 'answer': 'B'},
        content_type='application/json',
    )
    assert response.json()['saved'] is True

    response = client.post(reverse('exam:exam_submit', args=[attempt.id]))
    assert response.url == reverse('exam:attempt_result', args=[attempt.id])
    attempt.refresh_from_db()
    assert attempt.status == StudentExamAttempt.STATUS_COMPLETED
    assert attempt.percentage == Decimal('50.00')

    result = Result.objects.get(student=student, subject=exam.subject, term=term)
    assert result.exam_score == Decimal('30.00')

    response = client.post(
        reverse('exam:exam_save_answer', args=[attempt.id]),
        {'question_id': question.id, 'answer': 'A'},
        content_type='application/json',
    )
    assert response.status_code == 400
    assert response.json()['finished'] is True


def test_student_cannot_open_someone_elses_attempt(client, student, make_student, exam):
    client.force_login(student.user)
    client.post(reverse('exam:exam_start', args=[exam.id]))
    attempt = StudentExamAttempt.objects.get(student=student)

    client.force_login(make_student().user)
    assert client.get(reverse('exam:exam_take', args=[attempt.id])).status_code == 404


def test_cbt_override_view(client, admin_user, student, exam, term):
    client.force_login(student.user)
    client.post(reverse('exam:exam_start', args=[exam.id]))
    attempt = StudentExamAttempt.objects.get(student=student)
    client.post(reverse('exam:exam_submit', args=[attempt.id]))
    result = Result.objects.get(student=student)

    client.force_login(admin_user)
    client.post(reverse('result:cbt_override', args=[result.id]), {'exam_score': '42'})
    result.refresh_from_db()
    assert result.exam_score == Decimal('42')
    assert not result.is_cbt_exam


def test_timetable_create_and_download(client, admin_user, student, classroom, other_classroom, maths, english, term):
    client.force_login(admin_user)
    response = client.post(reverse('exam:timetable_create'), {
        'title': 'First Term Exams',
        'exam_time': '9:00 AM',
        'exam_date[]': ['2024-12-02', '2024-12-03'],
        'class_ids[]': [classroom.id, other_classroom.id],
        'subject_0_0': maths.id, 'subject_0_1': english.id,
        'subject_1_0': english.id,
    })
    timetable = ExamTimetable.objects.get()
    assert response.url == reverse('exam:timetable_detail', args=[timetable.pk])
    assert timetable.entries.count() == 3
    assert timetable.term == term

    payload = page(client.get(reverse('exam:timetable_detail', args=[timetable.pk])))
    assert payload['props']['timetable']['class_names'] == ['JSS 1 - A', 'JSS 2 - A']

    client.force_login(student.user)
    assert client.get(reverse('exam:timetable_pdf', args=[timetable.pk])).status_code == 403

    timetable.is_published = True
    timetable.save()
    response = client.get(reverse('exam:timetable_pdf', args=[timetable.pk]))
    assert response.status_code == 200
    assert response.content.startswith(b'%PDF')


def test_exam_edit_ignores_non_numeric_numbers(client, teacher, exam):
    client.force_login(teacher.user)
    response = client.post(reverse('exam:exam_edit', args=[exam.id]), {
        'title': 'Maths CBT (revised)', 'duration_minutes': 'forty', 'attempts_allowed': 'two',
        'passing_marks': 'NaN',
    })
    assert response.url == reverse('exam:exam_detail', args=[exam.id])
    exam.refresh_from_db()
    assert exam.title == 'Maths CBT (revised)'
    assert exam.duration_minutes == 30
    assert exam.attempts_allowed == 1
    assert exam.passing_marks == Decimal('2')


def test_overdue_attempt_stays_open_when_exam_does_not_auto_submit(client, student, exam, now):
    exam.auto_submit = False
    exam.save()
    client.force_login(student.user)
    client.post(reverse('exam:exam_start', args=[exam.id]))
    attempt = StudentExamAttempt.objects.get(student=student)
    StudentExamAttempt.objects.filter(pk=attempt.pk).update(start_time=now - timedelta(minutes=45))

    data = client.get(reverse('exam:exam_time_check', args=[attempt.id])).json()
    assert data == {'time_remaining': 0, 'status': StudentExamAttempt.STATUS_IN_PROGRESS}
    payload = page(client.get(reverse('exam:exam_take', args=[attempt.id])))
    assert payload['props']['time_remaining'] == 0

    client.post(reverse('exam:exam_submit', args=[attempt.id]))
    attempt.refresh_from_db()
    assert attempt.status == StudentExamAttempt.STATUS_COMPLETED

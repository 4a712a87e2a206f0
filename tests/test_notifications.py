from datetime import datetime

import pytest
from django.urls import reverse
from django.utils import timezone

from core import notifications
from core.models import Event, Notification

pytestmark = pytest.mark.django_db


def test_for_user_combines_broadcast_direct_and_classroom(student, make_student, other_classroom, classroom, teacher):
    notifications.send_to_all('Holiday', 'School closes Friday')
    notifications.send_to_user(student.user, 'Hello', 'Just you')
    notifications.send_to_classroom(classroom, 'Class trip', 'Bring lunch')
    notifications.send_to_classroom(other_classroom, 'Other trip', 'Not for you')

    titles = set(Notification.for_user(student.user).values_list('title', flat=True))
    assert titles == {'Holiday', 'Hello', 'Class trip'}

    teacher_titles = set(Notification.for_user(teacher.user).values_list('title', flat=True))
    assert teacher_titles == {'Holiday'}


def test_read_state_is_per_user(student, make_student):
    other = make_student()
    broadcast = notifications.send_to_all('Holiday', 'School closes Friday')
    notifications.mark_read(broadcast, student.user)

    assert notifications.unread_count(student.user) == 0
    assert notifications.unread_count(other.user) == 1
    assert notifications.serialize(broadcast, student.user)['is_read']


def test_mark_all_read(student, django_assert_max_num_queries):
    notifications.send_to_all('One', 'x')
    notifications.send_to_user(student.user, 'Two', 'y')
    notifications.send_to_all('Three', 'z')
    with django_assert_max_num_queries(4):
        assert notifications.mark_all_read(student.user) == 3
    assert notifications.unread_count(student.user) == 0


def test_send_to_role_creates_one_per_user(student, make_student, teacher):
    make_student()
    assert notifications.send_to_all_students('Exams', 'Start Monday') == 2
    assert Notification.objects.filter(target_user=teacher.user).count() == 0


def test_notification_views(client, student):
    note = notifications.send_to_user(student.user, 'Hello', 'Just you')
    client.force_login(student.user)

    payload = client.get(reverse('notifications')).json()
    assert payload['component'] == 'Notifications/Index'
    assert payload['props']['unread_count'] == 1

    response = client.post(reverse('notification_read', args=[note.id]), HTTP_ACCEPT='application/json')
    assert response.json() == {'read': True, 'unread_count': 0}
    assert client.get(reverse('notification_unread_count')).json() == {'unread_count': 0}


def test_admin_sends_classroom_notification(client, admin_user, classroom, student):
    client.force_login(admin_user)
    client.post(reverse('notification_send'), {
        'title': 'PTA meeting', 'body': 'Saturday 10am', 'target': 'classroom', 'classroom': classroom.id,
    })
    assert Notification.for_user(student.user).filter(title='PTA meeting').exists()


def test_students_cannot_send_notifications(client, student):
    client.force_login(student.user)
    client.post(reverse('notification_send'), {'title': 'Hi', 'body': 'All', 'target': 'all'})
    assert not Notification.objects.exists()


def test_events_filtered_by_month_and_classroom(client, student, other_classroom, admin_user):
    tz = timezone.get_current_timezone()
    Event.objects.create(title='Sports day', start=datetime(2025, 3, 14, 9, tzinfo=tz))
    Event.objects.create(title='Other class visit', start=datetime(2025, 3, 20, 9, tzinfo=tz), classroom=other_classroom)
    Event.objects.create(title='Resumption', start=datetime(2025, 4, 28, 8, tzinfo=tz))

    client.force_login(student.user)
    events = client.get(reverse('events'), {'month': '2025-03'}).json()['props']['events']
    assert [e['title'] for e in events] == ['Sports day']

    client.force_login(admin_user)
    events = client.get(reverse('events'), {'month': '2025-03'}).json()['props']['events']
    assert len(events) == 2


def test_event_must_not_end_before_start(client, admin_user):
    client.force_login(admin_user)
    client.post(reverse('event_create'), {
        'title': 'Backwards', 'start': '2025-03-14T10:00', 'end': '2025-03-14T09:00',
    })
    assert not Event.objects.exists()

    client.post(reverse('event_create'), {'title': 'Open day', 'start': '2025-03-14T10:00'})
    assert Event.objects.get().title == 'Open day'

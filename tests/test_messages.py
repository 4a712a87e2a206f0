import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse

from core import messaging
from core.models import Message

pytestmark = pytest.mark.django_db


@pytest.fixture
def media(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path)
    return tmp_path


def test_send_and_read_message(client, teacher, student):
    message = messaging.send_message(teacher.user, student.user, 'Homework', 'Page 12, all questions')
    assert message.status == Message.STATUS_DELIVERED
    assert message.delivered_at is not None
    assert messaging.unread_count(student.user) == 1

    # the sender opening it does not count as read
    client.force_login(teacher.user)
    client.get(reverse('message_show', args=[message.id]))
    assert messaging.unread_count(student.user) == 1

    client.force_login(student.user)
    payload = client.get(reverse('message_inbox')).json()
    assert payload['component'] == 'Messages/Inbox'
    assert payload['props']['unread_count'] == 1
    assert payload['props']['messages'][0]['subject'] == 'Homework'

    payload = client.get(reverse('message_show', args=[message.id])).json()
    assert payload['props']['message']['is_read']
    assert client.get(reverse('message_unread_count')).json() == {'count': 0}


def test_message_needs_subject_and_other_receiver(teacher, student):
    with pytest.raises(messaging.MessageError):
        messaging.send_message(teacher.user, student.user, '   ')
    with pytest.raises(messaging.MessageError):
        messaging.send_message(teacher.user, teacher.user, 'Note to self')


def test_students_write_to_staff_only(client, student, make_student, teacher):
    classmate = make_student()
    client.force_login(student.user)

    recipients = client.get(reverse('message_compose')).json()['props']['recipients']
    assert teacher.user.id in [r['id'] for r in recipients]
    assert classmate.user.id not in [r['id'] for r in recipients]

    response = client.post(reverse('message_send'), {'receiver': classmate.user.id, 'subject': 'Hi'})
    assert response.status_code == 404

    response = client.post(reverse('message_send'), {'receiver': teacher.user.id, 'subject': 'Question'})
    assert response.url == reverse('message_sent')
    assert Message.objects.get().receiver == teacher.user


def test_bulk_send_to_classroom_shares_attachment(client, media, teacher, student, make_student, classroom, admin_user):
    classmate = make_student()
    client.force_login(teacher.user)
    response = client.post(reverse('message_send_bulk'), {
        'subject': 'Trip form',
        'body': 'Sign and return',
        'classroom': classroom.id,
        'receivers': [admin_user.id],
        'attachment': SimpleUploadedFile('trip.pdf', b'%PDF-1.4 form', content_type='application/pdf'),
    })
    assert response.url == reverse('message_sent')

    sent = list(Message.objects.filter(sender=teacher.user))
    assert {m.receiver_id for m in sent} == {admin_user.id, student.user.id, classmate.user.id}
    assert len({m.attachment.name for m in sent}) == 1
    assert sent[0].attachment_type == 'pdf'

    path = media / sent[0].attachment.name
    messaging.delete_message(sent[0])
    assert path.exists()
    for message in sent[1:]:
        messaging.delete_message(message)
    assert not path.exists()


def test_students_cannot_bulk_send(client, student, teacher):
    client.force_login(student.user)
    client.post(reverse('message_send_bulk'), {'subject': 'Hi all', 'receivers': [teacher.user.id]})
    assert not Message.objects.exists()


def test_only_sender_and_receiver_can_open(client, media, teacher, student, make_student):
    attachment = SimpleUploadedFile('notes.txt', b'chapter 3')
    message = messaging.send_message(teacher.user, student.user, 'Notes', attachment=attachment)

    client.force_login(make_student().user)
    assert client.get(reverse('message_show', args=[message.id])).status_code == 403
    assert client.get(reverse('message_attachment', args=[message.id])).status_code == 403
    assert client.post(reverse('message_delete', args=[message.id])).status_code == 403

    client.force_login(student.user)
    response = client.get(reverse('message_attachment', args=[message.id]))
    assert response.status_code == 200
    assert b''.join(response.streaming_content) == b'chapter 3'

    response = client.post(reverse('message_read', args=[message.id]))
    assert response.json() == {'read': True, 'unread_count': 0}

import pytest
from django.contrib.auth.models import User
from django.urls import reverse

from Authentication.models import Profile, is_admin, is_student, is_teacher, user_role

pytestmark = pytest.mark.django_db


def test_new_user_gets_unverified_student_profile():
    user = User.objects.create_user('newbie', 'newbie@example.com', 'pass12345')
    assert user.profile.role == Profile.ROLE_STUDENT
    assert not user.profile.email_verified


def test_roles(admin_user, teacher, student):
    assert user_role(admin_user) == Profile.ROLE_ADMIN
    assert is_admin(admin_user)
    assert is_teacher(teacher.user)
    assert is_student(student.user)
    assert not is_admin(student.user)


def test_register_sends_verification_email(client, mailoutbox):
    response = client.post(reverse('register'), {
        'username': 'parent1',
        'email': 'parent1@example.com',
        'password': 'secret-pass-1',
        'password2': 'secret-pass-1',
    })
    assert response.status_code == 302
    assert len(mailoutbox) == 1
    assert 'verify-email' in mailoutbox[0].body


def test_login_requires_verified_email(client):
    User.objects.create_user('pending', 'pending@example.com', 'pass12345')
    response = client.post(reverse('login'), {'username': 'pending', 'password': 'pass12345'})
    assert response.url == reverse('login')
    assert '_auth_user_id' not in client.session


def test_verify_email_then_login(client):
    user = User.objects.create_user('pending', 'pending@example.com', 'pass12345')
    client.get(reverse('verify_email', args=[user.profile.verification_token]))
    response = client.post(reverse('login'), {'username': 'pending', 'password': 'pass12345'})
    assert response.url == reverse('dashboard')


def test_login_is_rate_limited(client):
    for _ in range(10):
        client.post(reverse('login'), {'username': 'nobody', 'password': 'wrong'})
    response = client.post(reverse('login'), {'username': 'nobody', 'password': 'wrong'})
    assert response.status_code == 429


def test_password_reset_link_works_once(client, student, mailoutbox):
    client.post(reverse('forgot_password'), {'email': 'chidi@example.com'})
    assert len(mailoutbox) == 1
    token = Profile.objects.get(user=student.user).verification_token
    url = reverse('reset_password', args=[token])

    response = client.post(url, {'password': 'brand-new-1', 'password2': 'brand-new-1'})
    assert response.url == reverse('login')
    student.user.refresh_from_db()
    assert student.user.check_password('brand-new-1')

    response = client.post(url, {'password': 'again-1', 'password2': 'again-1'})
    assert response.url == reverse('forgot_password')


def test_role_decorator_redirects_pages_and_rejects_json(client, student):
    client.force_login(student.user)
    response = client.get(reverse('fees:payment_list'))
    assert response.status_code == 302
    assert response.url == reverse('dashboard')

    response = client.get(reverse('fees:payment_list'), HTTP_ACCEPT='application/json')
    assert response.status_code == 403
    assert response.json() == {'error': 'Access denied.'}


def test_anonymous_users_are_sent_to_login(client):
    response = client.get(reverse('dashboard'))
    assert response.status_code == 302
    assert reverse('login') in response.url


def test_page_payload_shape(client, admin_user):
    client.force_login(admin_user)
    response = client.get(reverse('login'))
    payload = response.json()
    assert payload['component'] == 'Auth/Login'
    assert payload['url'] == reverse('login')
    assert payload['auth']['user']['role'] == Profile.ROLE_ADMIN
    assert payload['flash'] == []

# core/notifications.py
import logging

from django.contrib.auth.models import User
from django.utils import timezone

from Authentication.models import Profile
from .models import Notification

logger = logging.getLogger(__name__)


def send_to_all(title, body, sender=None, type='general', reference_id=None):
    return Notification.objects.create(
        title=title, body=body, sender=sender, type=type, reference_id=reference_id,
        target_type=Notification.TARGET_ALL,
    )


def send_to_user(user, title, body, sender=None, type='general', reference_id=None):
    return Notification.objects.create(
        title=title, body=body, sender=sender, type=type, reference_id=reference_id,
        target_type=Notification.TARGET_USER, target_user=user,
    )


def send_to_classroom(classroom, title, body, sender=None, type='general', reference_id=None):
    return Notification.objects.create(
        title=title, body=body, sender=sender, type=type, reference_id=reference_id,
        target_type=Notification.TARGET_CLASSROOM, target_classroom=classroom,
    )


def send_to_role(role, title, body, sender=None, type='general'):
    """One direct notification per active user with ``role``"""
    users = User.objects.filter(is_active=True, profile__role=role)
    notifications = [
        Notification(
            title=title, body=body, sender=sender, type=type,
            target_type=Notification.TARGET_USER, target_user=user,
        )
        for user in users
    ]
    Notification.objects.bulk_create(notifications)
    logger.info("Sent '%s' to %d %s users", title, len(notifications), role)
    return len(notifications)


def send_to_all_students(title, body, sender=None, type='general'):
    return send_to_role(Profile.ROLE_STUDENT, title, body, sender=sender, type=type)


def send_to_all_teachers(title, body, sender=None, type='general'):
    return send_to_role(Profile.ROLE_TEACHER, title, body, sender=sender, type=type)


def unread_for(user):
    return Notification.for_user(user).exclude(read_by=user)


def unread_count(user):
    return unread_for(user).count()


def mark_read(notification, user):
    notification.read_by.add(user)


def mark_all_read(user):
    unread = list(unread_for(user))
    user.read_notifications.add(*unread)
    return len(unread)


def serialize(notification, user):
    return {
        'id': notification.id,
        'title': notification.title,
        'body': notification.body,
        'type': notification.type,
        'target_type': notification.target_type,
        'reference_id': notification.reference_id,
        'sender': notification.sender.get_full_name() if notification.sender else None,
        'is_read': notification.is_read_by(user),
        'created_at': timezone.localtime(notification.created_at),
    }

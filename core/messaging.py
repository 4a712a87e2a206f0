# core/messaging.py
"""
Private messages between users, with an optional file attachment.
"""
import logging
import os

from django.db import transaction
from django.utils import timezone

from .models import Message

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024


class MessageError(Exception):
    pass


def check_attachment(attachment):
    if attachment is not None and attachment.size > MAX_ATTACHMENT_SIZE:
        raise MessageError("Attachments must be 10MB or smaller.")


def attachment_type(attachment):
    return os.path.splitext(attachment.name)[1].lstrip('.').lower()


def deliver(message):
    now = timezone.now()
    message.status = Message.STATUS_DELIVERED
    message.sent_at = now
    message.delivered_at = now
    message.save(update_fields=['status', 'sent_at', 'delivered_at'])
    return message


def send_message(sender, receiver, subject, body='', attachment=None):
    subject = (subject or '').strip()
    if not subject:
        raise MessageError("A subject is required.")
    if receiver.pk == sender.pk:
        raise MessageError("You cannot send a message to yourself.")
    check_attachment(attachment)

    message = Message.objects.create(
        sender=sender,
        receiver=receiver,
        subject=subject[:255],
        body=body or '',
        attachment=attachment,
        attachment_type=attachment_type(attachment) if attachment else '',
    )
    deliver(message)
    logger.info("Message %s sent from %s to %s", message.pk, sender.username, receiver.username)
    return message


def send_bulk(sender, receivers, subject, body='', attachment=None):
    """
    Send the same message to every receiver except the sender. An attachment is
    stored once and shared by all copies. Returns the number sent.
    """
    subject = (subject or '').strip()
    if not subject:
        raise MessageError("A subject is required.")
    receivers = [r for r in receivers if r.pk != sender.pk]
    if not receivers:
        raise MessageError("Choose at least one recipient.")
    check_attachment(attachment)

    with transaction.atomic():
        first = send_message(sender, receivers[0], subject, body, attachment)
        for receiver in receivers[1:]:
            message = Message.objects.create(
                sender=sender,
                receiver=receiver,
                subject=first.subject,
                body=first.body,
                attachment=first.attachment.name if first.attachment else None,
                attachment_type=first.attachment_type,
            )
            deliver(message)
    logger.info("Bulk message '%s' sent to %d users by %s", subject, len(receivers), sender.username)
    return len(receivers)


def inbox(user):
    return Message.objects.filter(receiver=user).select_related('sender')


def sent(user):
    return Message.objects.filter(sender=user).select_related('receiver')


def unread_count(user):
    return Message.objects.filter(receiver=user, read_at__isnull=True).count()


def mark_read(message, user):
    """Only the receiver's reads count"""
    if message.receiver_id == user.pk and message.read_at is None:
        message.read_at = timezone.now()
        message.save(update_fields=['read_at'])
    return message


def delete_message(message):
    """Delete ``message``; a shared attachment file stays while other copies use it"""
    name = message.attachment.name if message.attachment else None
    storage = message.attachment.storage if message.attachment else None
    message.delete()
    if name and not Message.objects.filter(attachment=name).exists():
        storage.delete(name)


def serialize(message, user):
    return {
        'id': message.id,
        'subject': message.subject,
        'body': message.body,
        'sender': {'id': message.sender_id, 'name': message.sender.get_full_name() or message.sender.username},
        'receiver': {'id': message.receiver_id, 'name': message.receiver.get_full_name() or message.receiver.username},
        'has_attachment': bool(message.attachment),
        'attachment_type': message.attachment_type,
        'status': message.status,
        'is_read': message.is_read,
        'is_mine': message.sender_id == user.pk,
        'created_at': message.created_at,
    }

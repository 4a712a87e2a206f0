from django.db import models
from django.contrib.auth.models import User
from django.db.models import Q

from management.models import Classroom


class Notification(models.Model):
    TARGET_ALL = 'all'
    TARGET_USER = 'user'
    TARGET_CLASSROOM = 'classroom'
    TARGET_CHOICES = [
        (TARGET_ALL, 'Everyone'),
        (TARGET_USER, 'Single user'),
        (TARGET_CLASSROOM, 'Classroom'),
    ]

    TYPE_CHOICES = [
        ('general', 'General'),
        ('result', 'Result'),
        ('payment', 'Payment'),
        ('exam', 'Exam'),
        ('event', 'Event'),
    ]

    title = models.CharField(max_length=200)
    body = models.TextField()
    sender = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='sent_notifications')
    target_type = models.CharField(max_length=10, choices=TARGET_CHOICES, default=TARGET_ALL)
    target_user = models.ForeignKey(User, on_delete=models.CASCADE, null=True, blank=True, related_name='notifications')
    target_classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, null=True, blank=True, related_name='notifications')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='general')
    reference_id = models.PositiveBigIntegerField(null=True, blank=True)
    read_by = models.ManyToManyField(User, blank=True, related_name='read_notifications')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    @classmethod
    def for_user(cls, user):
        """Broadcasts, direct notifications and those sent to the user's classroom"""
        condition = Q(target_type=cls.TARGET_ALL) | Q(target_type=cls.TARGET_USER, target_user=user)
        student = getattr(user, 'student', None)
        if student is not None and student.classroom_id:
            condition |= Q(target_type=cls.TARGET_CLASSROOM, target_classroom_id=student.classroom_id)
        return cls.objects.filter(condition)

    def is_read_by(self, user):
        return self.read_by.filter(pk=user.pk).exists()

    def __str__(self):
        return self.title


class Event(models.Model):
    TYPE_CHOICES = [
        ('academic', 'Academic'),
        ('exam', 'Exam'),
        ('holiday', 'Holiday'),
        ('meeting', 'Meeting'),
        ('sports', 'Sports'),
        ('other', 'Other'),
    ]

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    start = models.DateTimeField()
    end = models.DateTimeField(null=True, blank=True)
    event_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='academic')
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, null=True, blank=True, related_name='events')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['start']

    def __str__(self):
        return self.title


class Message(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_SENT = 'sent'
    STATUS_DELIVERED = 'delivered'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_FAILED, 'Failed'),
    ]

    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sent_messages')
    receiver = models.ForeignKey(User, on_delete=models.CASCADE, related_name='received_messages')
    subject = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    attachment = models.FileField(upload_to='message_attachments/', blank=True, null=True)
    attachment_type = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    read_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def can_view(self, user):
        return user.pk in (self.sender_id, self.receiver_id)

    @property
    def is_read(self):
        return self.read_at is not None

    def __str__(self):
        return f"{self.subject} ({self.sender} to {self.receiver})"

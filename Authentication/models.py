from django.db import models
from django.contrib.auth.models import User
import uuid


class Profile(models.Model):
    ROLE_ADMIN = 'admin'
    ROLE_TEACHER = 'teacher'
    ROLE_STUDENT = 'student'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Admin'),
        (ROLE_TEACHER, 'Teacher'),
        (ROLE_STUDENT, 'Student'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_STUDENT)
    phone = models.CharField(max_length=20, blank=True, null=True)
    email_verified = models.BooleanField(default=False)
    verification_token = models.UUIDField(default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user.username} ({self.role})"


def user_role(user):
    """Return the role name for a user, or None when anonymous"""
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return Profile.ROLE_ADMIN
    profile = getattr(user, 'profile', None)
    return profile.role if profile else None


def is_admin(user):
    return user_role(user) == Profile.ROLE_ADMIN


def is_teacher(user):
    return user_role(user) == Profile.ROLE_TEACHER


def is_student(user):
    return user_role(user) == Profile.ROLE_STUDENT


def is_admin_or_teacher(user):
    return user_role(user) in (Profile.ROLE_ADMIN, Profile.ROLE_TEACHER)

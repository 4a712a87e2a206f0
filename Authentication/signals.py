from django.db.models.signals import post_save
from django.dispatch import receiver
from django.contrib.auth.models import User
from .models import Profile


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """Every user gets a profile; superusers are admins and count as verified"""
    if created:
        if instance.is_superuser:
            Profile.objects.create(user=instance, role=Profile.ROLE_ADMIN, email_verified=True)
        else:
            Profile.objects.create(user=instance)

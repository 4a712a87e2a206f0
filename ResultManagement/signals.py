# ResultManagement/signals.py
import logging
from decimal import Decimal

from django.db.models.signals import post_save, post_delete, pre_save
from django.dispatch import receiver

from core import notifications
from ExamManagement.models import StudentExamAttempt
from .cbt import sync_attempt_to_result
from .compiler import recalculate_subject_positions
from .models import Result

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Result)
def remember_previous_scores(sender, instance, **kwargs):
    """Keep the stored scores so post_save can tell whether they changed"""
    instance._previous_scores = None
    if instance.pk:
        instance._previous_scores = (
            Result.objects.filter(pk=instance.pk).values_list('ca_score', 'exam_score').first()
        )


@receiver(post_save, sender=Result)
def update_positions_on_save(sender, instance, created, **kwargs):
    """Re-rank the subject and tell the student when a result is added or changed"""
    try:
        recalculate_subject_positions(instance.subject, instance.term, instance.classroom_id)
    except Exception:
        # Log the error but don't fail the save operation
        logger.exception("Error updating subject positions for result %s", instance.pk)

    try:
        previous = getattr(instance, '_previous_scores', None)
        subject = instance.subject.name
        if created:
            notifications.send_to_user(
                instance.student.user,
                f"New result: {subject}",
                f"Your {subject} result for {instance.term} has been recorded. Total: {instance.total_score} ({instance.grade}).",
                type='result',
                reference_id=instance.pk,
            )
        elif previous and previous != (Decimal(instance.ca_score), Decimal(instance.exam_score)):
            notifications.send_to_user(
                instance.student.user,
                f"Result updated: {subject}",
                f"Your {subject} result for {instance.term} was updated. Total: {instance.total_score} ({instance.grade}).",
                type='result',
                reference_id=instance.pk,
            )
    except Exception:
        logger.exception("Error sending result notification for result %s", instance.pk)


@receiver(post_delete, sender=Result)
def update_positions_on_delete(sender, instance, **kwargs):
    try:
        recalculate_subject_positions(instance.subject, instance.term, instance.classroom_id)
        notifications.send_to_user(
            instance.student.user,
            f"Result removed: {instance.subject.name}",
            f"Your {instance.subject.name} result for {instance.term} has been removed.",
            type='result',
        )
    except Exception:
        # Log the error but don't fail the delete operation
        logger.exception("Error updating positions after deleting result %s", instance.pk)


@receiver(post_save, sender=StudentExamAttempt)
def sync_finished_attempt(sender, instance, **kwargs):
    """Copy a finished CBT attempt's score into the term result"""
    if not instance.is_finished:
        return
    try:
        sync_attempt_to_result(instance)
    except Exception:
        logger.exception("Error syncing attempt %s to results", instance.pk)

from django.contrib.auth import get_user_model
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from .challenges import record_book_read
from .models import Role, UserRole

User = get_user_model()

# Sent after a return has been committed; kwargs: record, returned_at.
book_returned = Signal()


@receiver(post_save, sender=User)
def grant_student_role(sender, instance, created, **kwargs):
    if created and not instance.is_superuser and not kwargs.get('raw'):
        UserRole.objects.get_or_create(user=instance, role=Role.STUDENT)


@receiver(book_returned)
def count_returned_book(sender, record, returned_at, **kwargs):
    record_book_read(record.user_id, record.book, returned_at)

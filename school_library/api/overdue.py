"""Single definition of the overdue predicate.

A record is overdue when it has not been returned and its due date lies
before the current date. A stored ``overdue`` status is only a cache of
this predicate; it never decides anything on its own.
"""
from django.utils import timezone

from .models import BorrowingStatus


def _today(now=None):
    return timezone.localdate(now or timezone.now())


def is_overdue(record, now=None):
    if record.status == BorrowingStatus.RETURNED or record.returned_at is not None:
        return False
    return record.due_date < _today(now)


def days_overdue(record, now=None):
    if not is_overdue(record, now):
        return 0
    return max((_today(now) - record.due_date).days, 0)


def days_until_due(record, now=None):
    return (record.due_date - _today(now)).days

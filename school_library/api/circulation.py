"""Book issue and return.

Copy counts are only ever changed through conditional ``UPDATE`` statements
so that concurrent requests cannot push ``available_copies`` below zero or
above ``total_copies``.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import (
    AlreadyReturned, BookNotFound, CopiesOnLoan, NoCopiesAvailable, RecordNotFound, Unauthorized, UserNotFound,
)
from .models import Book, BorrowingRecord, BorrowingStatus
from .overdue import days_overdue, days_until_due
from .signals import book_returned

logger = logging.getLogger(__name__)

User = get_user_model()


def default_due_date(now=None):
    return timezone.localdate(now or timezone.now()) + timedelta(days=settings.LIBRARY_LOAN_DAYS)


def issue_book(actor, book_id, user_id, due_date=None, now=None):
    if not actor.is_librarian:
        raise Unauthorized()

    now = now or timezone.now()
    if due_date is None:
        due_date = default_due_date(now)

    if not User.objects.filter(pk=user_id).exists():
        raise UserNotFound()

    with transaction.atomic():
        taken = Book.objects.filter(pk=book_id, available_copies__gt=0).update(
            available_copies=F('available_copies') - 1
        )
        if not taken:
            if Book.objects.filter(pk=book_id).exists():
                raise NoCopiesAvailable()
            raise BookNotFound()

        record = BorrowingRecord.objects.create(
            book_id=book_id,
            user_id=user_id,
            issued_by_id=actor.user_id,
            borrowed_at=now,
            due_date=due_date,
            status=BorrowingStatus.BORROWED,
        )

    logger.info('Issued book %s to user %s (record %s, due %s)', book_id, user_id, record.pk, due_date)
    return record


def return_book(actor, record_id, book_id=None, now=None):
    """Close a borrowing record and put its copy back on the shelf.

    ``book_id`` is optional; when supplied it must match the record's book,
    otherwise the reference is treated as stale.
    """
    if not actor.is_librarian:
        raise Unauthorized()

    now = now or timezone.now()

    with transaction.atomic():
        try:
            record = BorrowingRecord.objects.select_for_update().get(pk=record_id)
        except BorrowingRecord.DoesNotExist:
            raise RecordNotFound()
        if book_id is not None and int(book_id) != record.book_id:
            raise RecordNotFound()

        closed = (
            BorrowingRecord.objects.filter(pk=record_id)
            .exclude(status=BorrowingStatus.RETURNED)
            .update(status=BorrowingStatus.RETURNED, returned_at=now)
        )
        if not closed:
            raise AlreadyReturned()

        restocked = Book.objects.filter(
            pk=record.book_id, available_copies__lt=F('total_copies')
        ).update(available_copies=F('available_copies') + 1)
        if not restocked:
            logger.warning('Return of record %s left book %s at its total copy count', record_id, record.book_id)

        record.refresh_from_db()
        transaction.on_commit(lambda: _announce_return(record, now))

    logger.info('Returned record %s for book %s', record.pk, record.book_id)
    return record


def _announce_return(record, returned_at):
    responses = book_returned.send_robust(sender=BorrowingRecord, record=record, returned_at=returned_at)
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                'Return hook %s failed for record %s', getattr(receiver, '__name__', receiver), record.pk,
                exc_info=response,
            )


def set_total_copies(book_id, total_copies):
    """Change a book's stock, shifting ``available_copies`` by the same amount.

    Copies out on loan stay accounted for, so the new total may not drop
    below the number currently lent out.
    """
    with transaction.atomic():
        try:
            book = Book.objects.select_for_update().get(pk=book_id)
        except Book.DoesNotExist:
            raise BookNotFound()
        delta = total_copies - book.total_copies
        changed = Book.objects.filter(pk=book_id, available_copies__gte=-delta).update(
            total_copies=total_copies, available_copies=F('available_copies') + delta
        )
        if not changed:
            raise CopiesOnLoan()

    logger.info('Book %s stock changed from %s to %s copies', book_id, book.total_copies, total_copies)


def refresh_overdue(now=None):
    """Bring stored statuses in line with the overdue predicate; returns rows changed.

    Open records past their due date become ``overdue``; ``overdue`` records
    whose due date has not passed go back to ``borrowed``.
    """
    today = timezone.localdate(now or timezone.now())
    open_records = BorrowingRecord.objects.filter(returned_at__isnull=True)
    marked = open_records.filter(status=BorrowingStatus.BORROWED, due_date__lt=today).update(
        status=BorrowingStatus.OVERDUE
    )
    cleared = open_records.filter(status=BorrowingStatus.OVERDUE, due_date__gte=today).update(
        status=BorrowingStatus.BORROWED
    )
    if marked or cleared:
        logger.info('Marked %s borrowing records overdue, cleared %s', marked, cleared)
    return marked + cleared


@dataclass
class OverdueEntry:
    record: BorrowingRecord
    days_overdue: int


def list_overdue(now=None, user_id=None):
    """Open records overdue as of ``now``.

    Stored statuses are only refreshed for a listing at the current time;
    an explicit as-of listing reads the predicate and writes nothing.
    """
    if now is None:
        now = timezone.now()
        refresh_overdue(now)
    records = BorrowingRecord.objects.select_related('book', 'user').filter(
        returned_at__isnull=True, due_date__lt=timezone.localdate(now)
    ).exclude(status=BorrowingStatus.RETURNED)
    if user_id is not None:
        records = records.filter(user_id=user_id)
    entries = [OverdueEntry(record, days_overdue(record, now)) for record in records]
    return [entry for entry in entries if entry.days_overdue > 0]


@dataclass
class DueSoonEntry:
    record: BorrowingRecord
    days_left: int


def list_due_soon(user_id, now=None, within_days=None):
    now = now or timezone.now()
    if within_days is None:
        within_days = settings.LIBRARY_DUE_SOON_DAYS
    today = timezone.localdate(now)
    records = BorrowingRecord.objects.select_related('book').filter(
        user_id=user_id,
        returned_at__isnull=True,
        due_date__gte=today,
        due_date__lte=today + timedelta(days=within_days),
    ).exclude(status=BorrowingStatus.RETURNED)
    return [DueSoonEntry(record, days_until_due(record, now)) for record in records]

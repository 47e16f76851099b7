from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from api.circulation import list_due_soon, list_overdue, refresh_overdue
from api.models import BorrowingRecord, BorrowingStatus
from api.overdue import days_overdue, days_until_due, is_overdue

from .fixtures import make_book, make_user


class OverduePredicateTests(SimpleTestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)

    def record(self, days_ago, status=BorrowingStatus.BORROWED, returned_at=None):
        return BorrowingRecord(due_date=self.today - timedelta(days=days_ago), status=status, returned_at=returned_at)

    def test_past_due_borrowed_record(self):
        record = self.record(5)
        self.assertTrue(is_overdue(record, self.now))
        self.assertEqual(days_overdue(record, self.now), 5)

    def test_due_today_is_not_overdue(self):
        record = self.record(0)
        self.assertFalse(is_overdue(record, self.now))
        self.assertEqual(days_overdue(record, self.now), 0)

    def test_future_due_date(self):
        record = self.record(-4)
        self.assertFalse(is_overdue(record, self.now))
        self.assertEqual(days_overdue(record, self.now), 0)
        self.assertEqual(days_until_due(record, self.now), 4)

    def test_returned_record_is_never_overdue(self):
        record = self.record(30, status=BorrowingStatus.RETURNED, returned_at=self.now)
        self.assertFalse(is_overdue(record, self.now))
        self.assertEqual(days_overdue(record, self.now), 0)

    def test_stored_overdue_status_follows_due_date(self):
        self.assertTrue(is_overdue(self.record(2, status=BorrowingStatus.OVERDUE), self.now))
        # A stale cache value does not make a record overdue.
        self.assertFalse(is_overdue(self.record(-2, status=BorrowingStatus.OVERDUE), self.now))


class OverdueListingTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.book = make_book(copies=5)
        self.reader = make_user('reader')
        self.other = make_user('other')

    def borrow(self, user, due_in_days, **extra):
        return BorrowingRecord.objects.create(
            book=self.book, user=user, due_date=self.today + timedelta(days=due_in_days), **extra
        )

    def test_list_overdue(self):
        late = self.borrow(self.reader, -5)
        self.borrow(self.reader, 3)
        self.borrow(
            self.other, -20, status=BorrowingStatus.RETURNED, returned_at=self.now - timedelta(days=1)
        )

        entries = list_overdue()

        self.assertEqual([entry.record.pk for entry in entries], [late.pk])
        self.assertEqual(entries[0].days_overdue, 5)
        late.refresh_from_db()
        self.assertEqual(late.status, BorrowingStatus.OVERDUE)

    def test_list_overdue_for_one_user(self):
        self.borrow(self.reader, -1)
        other_late = self.borrow(self.other, -2)
        entries = list_overdue(user_id=self.other.pk)
        self.assertEqual([entry.record.pk for entry in entries], [other_late.pk])

    def test_as_of_listing_leaves_stored_statuses_alone(self):
        not_yet_due = self.borrow(self.reader, 3)
        late = self.borrow(self.other, -1)

        entries = list_overdue(self.now + timedelta(days=10))

        self.assertEqual({entry.record.pk for entry in entries}, {not_yet_due.pk, late.pk})
        not_yet_due.refresh_from_db()
        late.refresh_from_db()
        self.assertEqual(not_yet_due.status, BorrowingStatus.BORROWED)
        self.assertEqual(late.status, BorrowingStatus.BORROWED)
        self.assertFalse(is_overdue(not_yet_due, self.now))

    def test_listing_ignores_stale_overdue_status(self):
        stale = self.borrow(self.reader, 4, status=BorrowingStatus.OVERDUE)
        self.assertEqual(list_overdue(self.now), [])
        self.assertEqual(list_overdue(), [])
        stale.refresh_from_db()
        self.assertEqual(stale.status, BorrowingStatus.BORROWED)

    def test_refresh_leaves_returned_and_current_records(self):
        returned = self.borrow(self.reader, -3, status=BorrowingStatus.RETURNED, returned_at=self.now)
        current = self.borrow(self.reader, 1)
        self.borrow(self.reader, -1)

        self.assertEqual(refresh_overdue(self.now), 1)

        returned.refresh_from_db()
        current.refresh_from_db()
        self.assertEqual(returned.status, BorrowingStatus.RETURNED)
        self.assertEqual(current.status, BorrowingStatus.BORROWED)

    def test_refresh_clears_overdue_status_once_due_date_moves(self):
        extended = self.borrow(self.reader, -2)
        refresh_overdue(self.now)
        extended.refresh_from_db()
        self.assertEqual(extended.status, BorrowingStatus.OVERDUE)

        BorrowingRecord.objects.filter(pk=extended.pk).update(due_date=self.today + timedelta(days=7))
        self.assertEqual(refresh_overdue(self.now), 1)
        extended.refresh_from_db()
        self.assertEqual(extended.status, BorrowingStatus.BORROWED)

    def test_list_due_soon(self):
        soon = self.borrow(self.reader, 2)
        self.borrow(self.reader, 10)
        self.borrow(self.reader, -1)
        self.borrow(self.other, 1)

        entries = list_due_soon(self.reader.pk, self.now, within_days=3)

        self.assertEqual([entry.record.pk for entry in entries], [soon.pk])
        self.assertEqual(entries[0].days_left, 2)

    def test_mark_overdue_command(self):
        self.borrow(self.reader, -2)
        out = StringIO()
        call_command('mark_overdue', stdout=out)
        self.assertIn('1 borrowing record status(es) updated', out.getvalue())
        self.assertEqual(BorrowingRecord.objects.filter(status=BorrowingStatus.OVERDUE).count(), 1)

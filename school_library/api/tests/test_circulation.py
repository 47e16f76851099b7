from datetime import timedelta
from unittest import mock

from django.db import OperationalError
from django.test import TestCase
from django.utils import timezone

from api.circulation import default_due_date, issue_book, return_book
from api.exceptions import (
    AlreadyReturned, BookNotFound, NoCopiesAvailable, RecordNotFound, Unauthorized, UserNotFound,
)
from api.models import BorrowingRecord, BorrowingStatus, ChallengeParticipation, ChallengeType, Genre

from .fixtures import actor, make_book, make_challenge, make_librarian, make_user


class CirculationTests(TestCase):
    def setUp(self):
        self.librarian = actor(make_librarian())
        self.user_a = make_user('alice')
        self.user_b = make_user('bob')
        self.user_c = make_user('carol')
        self.book = make_book(copies=2)

    def assertCopiesConserved(self):
        self.book.refresh_from_db()
        open_records = self.book.borrowing_records.exclude(status=BorrowingStatus.RETURNED).count()
        self.assertGreaterEqual(self.book.available_copies, 0)
        self.assertLessEqual(self.book.available_copies, self.book.total_copies)
        self.assertEqual(self.book.available_copies, self.book.total_copies - open_records)

    def test_issue_until_shelf_is_empty(self):
        r1 = issue_book(self.librarian, self.book.id, self.user_a.id)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, 1)
        self.assertEqual(r1.status, BorrowingStatus.BORROWED)

        r2 = issue_book(self.librarian, self.book.id, self.user_b.id)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, 0)
        self.assertEqual(r2.status, BorrowingStatus.BORROWED)

        with self.assertRaises(NoCopiesAvailable):
            issue_book(self.librarian, self.book.id, self.user_c.id)
        self.assertEqual(BorrowingRecord.objects.count(), 2)
        self.assertFalse(BorrowingRecord.objects.filter(user=self.user_c).exists())
        self.assertCopiesConserved()

    def test_issue_records_librarian_and_default_due_date(self):
        now = timezone.now()
        record = issue_book(self.librarian, self.book.id, self.user_a.id, now=now)
        self.assertEqual(record.issued_by_id, self.librarian.user_id)
        self.assertEqual(record.borrowed_at, now)
        self.assertEqual(record.due_date, timezone.localdate(now) + timedelta(days=14))
        self.assertEqual(record.due_date, default_due_date(now))

    def test_issue_with_explicit_due_date(self):
        due = timezone.localdate() + timedelta(days=3)
        record = issue_book(self.librarian, self.book.id, self.user_a.id, due_date=due)
        self.assertEqual(record.due_date, due)

    def test_issue_requires_librarian(self):
        student = actor(self.user_a)
        with self.assertRaises(Unauthorized):
            issue_book(student, self.book.id, self.user_a.id)
        # Same answer for a book that does not exist.
        with self.assertRaises(Unauthorized):
            issue_book(student, 9999, self.user_a.id)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, 2)
        self.assertEqual(BorrowingRecord.objects.count(), 0)

    def test_issue_unknown_book(self):
        with self.assertRaises(BookNotFound):
            issue_book(self.librarian, 9999, self.user_a.id)

    def test_issue_unknown_borrower(self):
        with self.assertRaises(UserNotFound):
            issue_book(self.librarian, self.book.id, 9999)
        self.assertCopiesConserved()

    def test_return_twice(self):
        r1 = issue_book(self.librarian, self.book.id, self.user_a.id)
        issue_book(self.librarian, self.book.id, self.user_b.id)

        returned = return_book(self.librarian, r1.id, self.book.id)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, 1)
        self.assertEqual(returned.status, BorrowingStatus.RETURNED)
        self.assertIsNotNone(returned.returned_at)

        with self.assertRaises(AlreadyReturned):
            return_book(self.librarian, r1.id, self.book.id)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, 1)
        self.assertCopiesConserved()

    def test_return_overdue_record(self):
        record = issue_book(self.librarian, self.book.id, self.user_a.id)
        BorrowingRecord.objects.filter(pk=record.pk).update(status=BorrowingStatus.OVERDUE)
        returned = return_book(self.librarian, record.id)
        self.assertEqual(returned.status, BorrowingStatus.RETURNED)
        self.assertCopiesConserved()

    def test_return_unknown_record(self):
        with self.assertRaises(RecordNotFound):
            return_book(self.librarian, 9999)

    def test_return_with_mismatched_book(self):
        record = issue_book(self.librarian, self.book.id, self.user_a.id)
        other = make_book(title='Other Book')
        with self.assertRaises(RecordNotFound):
            return_book(self.librarian, record.id, other.id)
        record.refresh_from_db()
        self.assertEqual(record.status, BorrowingStatus.BORROWED)

    def test_return_requires_librarian(self):
        record = issue_book(self.librarian, self.book.id, self.user_a.id)
        with self.assertRaises(Unauthorized):
            return_book(actor(self.user_a), record.id)
        record.refresh_from_db()
        self.assertEqual(record.status, BorrowingStatus.BORROWED)

    def test_return_never_exceeds_total_copies(self):
        # A stray record on a fully stocked shelf.
        record = BorrowingRecord.objects.create(
            book=self.book, user=self.user_a, due_date=timezone.localdate() + timedelta(days=14)
        )
        return_book(self.librarian, record.id)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, self.book.total_copies)

    def test_copies_conserved_across_issue_and_return(self):
        borrowers = [self.user_a, self.user_b, self.user_c]
        records = []
        for user in borrowers[:2]:
            records.append(issue_book(self.librarian, self.book.id, user.id))
            self.assertCopiesConserved()
        return_book(self.librarian, records[0].id)
        self.assertCopiesConserved()
        records.append(issue_book(self.librarian, self.book.id, self.user_c.id))
        self.assertCopiesConserved()
        for record in records[1:]:
            return_book(self.librarian, record.id)
            self.assertCopiesConserved()
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, 2)


class ReturnProgressHookTests(TestCase):
    def setUp(self):
        self.librarian = actor(make_librarian())
        self.reader = make_user('reader')
        self.fantasy = Genre.objects.create(name='Fantasy')
        self.history = Genre.objects.create(name='History')
        self.book = make_book(genre=self.fantasy)

    def borrow_and_return(self, book):
        record = issue_book(self.librarian, book.id, self.reader.id)
        with self.captureOnCommitCallbacks(execute=True):
            return return_book(self.librarian, record.id)

    def test_hook_waits_for_commit(self):
        challenge = make_challenge(target_count=5)
        participation = ChallengeParticipation.objects.create(challenge=challenge, user=self.reader)
        record = issue_book(self.librarian, self.book.id, self.reader.id)

        with self.captureOnCommitCallbacks() as callbacks:
            return_book(self.librarian, record.id)
            participation.refresh_from_db()
            self.assertEqual(participation.progress, 0)

        self.assertEqual(len(callbacks), 1)
        callbacks[0]()
        participation.refresh_from_db()
        self.assertEqual(participation.progress, 1)

    def test_failing_hook_does_not_undo_return(self):
        ChallengeParticipation.objects.create(challenge=make_challenge(), user=self.reader)
        record = issue_book(self.librarian, self.book.id, self.reader.id)

        with mock.patch('api.signals.record_book_read', side_effect=OperationalError('connection lost')):
            with self.assertLogs('api.circulation', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    returned = return_book(self.librarian, record.id)

        self.assertEqual(returned.status, BorrowingStatus.RETURNED)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available_copies, self.book.total_copies)

    def test_return_counts_toward_book_count_challenge(self):
        challenge = make_challenge(target_count=1, badge_name='Bookworm')
        participation = ChallengeParticipation.objects.create(challenge=challenge, user=self.reader)

        self.borrow_and_return(self.book)

        participation.refresh_from_db()
        self.assertEqual(participation.progress, 1)
        self.assertTrue(participation.completed)
        self.assertEqual(self.reader.badges.count(), 1)

    def test_return_ignores_closed_challenges(self):
        today = timezone.localdate()
        ended = make_challenge(
            title='Last Term', start_date=today - timedelta(days=60), end_date=today - timedelta(days=30)
        )
        participation = ChallengeParticipation.objects.create(challenge=ended, user=self.reader)

        self.borrow_and_return(self.book)

        participation.refresh_from_db()
        self.assertEqual(participation.progress, 0)

    def test_genre_exploration_counts_matching_genre_only(self):
        challenge = make_challenge(
            title='Into History', challenge_type=ChallengeType.GENRE_EXPLORATION, target_genre=self.history
        )
        participation = ChallengeParticipation.objects.create(challenge=challenge, user=self.reader)

        self.borrow_and_return(self.book)
        participation.refresh_from_db()
        self.assertEqual(participation.progress, 0)

        self.borrow_and_return(make_book(title='Rome', genre=self.history))
        participation.refresh_from_db()
        self.assertEqual(participation.progress, 1)

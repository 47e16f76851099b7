"""Review submission and moderation."""
import logging

from django.db import transaction
from django.utils import timezone

from .exceptions import AlreadyModerated, BookNotFound, ReviewNotFound, Unauthorized
from .models import Book, Review, ReviewStatus

logger = logging.getLogger(__name__)

DECISIONS = (ReviewStatus.APPROVED, ReviewStatus.REJECTED)


def submit_review(actor, book_id, rating, review_text=''):
    if not Book.objects.filter(pk=book_id).exists():
        raise BookNotFound()
    return Review.objects.create(
        book_id=book_id, user_id=actor.user_id, rating=rating, review_text=review_text
    )


def moderate_review(actor, review_id, decision, now=None):
    if not actor.is_librarian:
        raise Unauthorized()
    if decision not in DECISIONS:
        raise ValueError(f'Unknown moderation decision: {decision!r}')

    decided = Review.objects.filter(pk=review_id, status=ReviewStatus.PENDING).update(
        status=decision, moderated_by_id=actor.user_id, moderated_at=now or timezone.now()
    )
    if not decided:
        if Review.objects.filter(pk=review_id).exists():
            raise AlreadyModerated()
        raise ReviewNotFound()

    logger.info('User %s %s review %s', actor.user_id, decision, review_id)
    return Review.objects.get(pk=review_id)


def bulk_approve(actor, review_ids, now=None):
    """Approve whichever of ``review_ids`` are still pending; the rest are skipped."""
    if not actor.is_librarian:
        raise Unauthorized()

    with transaction.atomic():
        pending = list(
            Review.objects.select_for_update()
            .filter(pk__in=review_ids, status=ReviewStatus.PENDING)
            .values_list('pk', flat=True)
        )
        Review.objects.filter(pk__in=pending, status=ReviewStatus.PENDING).update(
            status=ReviewStatus.APPROVED, moderated_by_id=actor.user_id, moderated_at=now or timezone.now()
        )

    skipped = len(set(review_ids)) - len(pending)
    logger.info('User %s bulk-approved %s reviews (%s skipped)', actor.user_id, len(pending), skipped)
    return list(Review.objects.filter(pk__in=pending).order_by('pk'))

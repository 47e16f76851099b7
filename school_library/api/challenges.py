"""Reading challenges: creation, joining, progress and badge awards."""
import logging
from dataclasses import dataclass
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import (
    AlreadyJoined, ChallengeNotActive, ChallengeNotFound, ParticipationNotFound, Unauthorized,
)
from .identity import can_create_challenge_type
from .models import Challenge, ChallengeParticipation, ChallengeStatus, ChallengeType, UserBadge

logger = logging.getLogger(__name__)

BOOK_COUNTING_TYPES = frozenset({
    ChallengeType.BOOK_COUNT,
    ChallengeType.TIME_BASED,
    ChallengeType.CLASS_COMPETITION,
    ChallengeType.HOUSE_COMPETITION,
})


@dataclass
class ProgressResult:
    participation: ChallengeParticipation
    badge: Optional[UserBadge] = None


def create_challenge(actor, **fields):
    if not can_create_challenge_type(actor.roles, fields.get('challenge_type')):
        raise Unauthorized()
    challenge = Challenge.objects.create(created_by_id=actor.user_id, **fields)
    logger.info('User %s created %s challenge %s', actor.user_id, challenge.challenge_type, challenge.pk)
    return challenge


def is_open(challenge, now=None):
    today = timezone.localdate(now or timezone.now())
    return challenge.status == ChallengeStatus.ACTIVE and challenge.start_date <= today <= challenge.end_date


def join_challenge(actor, challenge_id, now=None):
    try:
        challenge = Challenge.objects.get(pk=challenge_id)
    except Challenge.DoesNotExist:
        raise ChallengeNotFound()

    today = timezone.localdate(now or timezone.now())
    if challenge.status != ChallengeStatus.ACTIVE or today > challenge.end_date:
        raise ChallengeNotActive()

    try:
        with transaction.atomic():
            participation = ChallengeParticipation.objects.create(
                challenge=challenge, user_id=actor.user_id, progress=0, completed=False
            )
    except IntegrityError:
        if ChallengeParticipation.objects.filter(challenge=challenge, user_id=actor.user_id).exists():
            raise AlreadyJoined()
        raise

    logger.info('User %s joined challenge %s', actor.user_id, challenge.pk)
    return participation


def award_badge(participation, now=None):
    """Create the badge for a completed participation, or return the existing one."""
    challenge = participation.challenge
    badge, created = UserBadge.objects.get_or_create(
        user_id=participation.user_id,
        challenge=challenge,
        defaults={
            'badge_name': challenge.badge_name or challenge.title,
            'badge_icon': challenge.badge_icon,
            'earned_at': now or timezone.now(),
        },
    )
    if created:
        logger.info('Awarded badge %r to user %s for challenge %s', badge.badge_name, participation.user_id, challenge.pk)
    return badge if created else None


def advance_progress(participation_id, delta, now=None):
    """Add ``delta`` to a participation's progress.

    Crossing the challenge's target flips ``completed`` once and awards the
    badge once. Progress keeps counting after completion.
    """
    if delta <= 0:
        raise ValueError('Progress can only move forward.')

    now = now or timezone.now()
    badge = None

    with transaction.atomic():
        try:
            participation = (
                ChallengeParticipation.objects.select_for_update()
                .select_related('challenge')
                .get(pk=participation_id)
            )
        except ChallengeParticipation.DoesNotExist:
            raise ParticipationNotFound()

        ChallengeParticipation.objects.filter(pk=participation_id).update(progress=F('progress') + delta)
        participation.refresh_from_db(fields=['progress'])

        target = participation.challenge.target_count
        if target and participation.progress >= target:
            completed_now = ChallengeParticipation.objects.filter(
                pk=participation_id, completed=False
            ).update(completed=True, completed_at=now)
            if completed_now:
                logger.info('Participation %s completed challenge %s', participation_id, participation.challenge_id)
                badge = award_badge(participation, now)

        participation.refresh_from_db(fields=['progress', 'completed', 'completed_at'])

    return ProgressResult(participation, badge)


def counts_toward(challenge, book):
    if challenge.challenge_type in BOOK_COUNTING_TYPES:
        return True
    if challenge.challenge_type == ChallengeType.GENRE_EXPLORATION:
        return challenge.target_genre_id is None or challenge.target_genre_id == book.genre_id
    return False


def record_book_read(user_id, book, now=None):
    """Advance every open participation of ``user_id`` that counts ``book``."""
    now = now or timezone.now()
    participations = ChallengeParticipation.objects.select_related('challenge').filter(
        user_id=user_id, completed=False, challenge__status=ChallengeStatus.ACTIVE
    )
    results = []
    for participation in participations:
        challenge = participation.challenge
        if is_open(challenge, now) and counts_toward(challenge, book):
            results.append(advance_progress(participation.pk, 1, now))
    return results

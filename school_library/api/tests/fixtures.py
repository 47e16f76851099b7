from datetime import timedelta

from django.contrib.auth import get_user_model
from django.utils import timezone

from api.identity import Actor
from api.models import Book, Challenge, ChallengeType, Role, UserRole

User = get_user_model()


def make_user(username, *roles, **extra):
    user = User.objects.create_user(
        username=username, email=f'{username}@example.com', password=f'{username}pass123', **extra
    )
    for role in roles:
        UserRole.objects.get_or_create(user=user, role=role)
    return user


def make_librarian(username='librarian'):
    return make_user(username, Role.LIBRARIAN)


def make_book(title='Test Book', copies=2, **extra):
    return Book.objects.create(
        title=title, author='Jane Doe', total_copies=copies, available_copies=copies, **extra
    )


def make_challenge(title='Read 3 Books', target_count=3, challenge_type=ChallengeType.BOOK_COUNT, **extra):
    today = timezone.localdate()
    extra.setdefault('start_date', today - timedelta(days=1))
    extra.setdefault('end_date', today + timedelta(days=30))
    return Challenge.objects.create(
        title=title, challenge_type=challenge_type, target_count=target_count, **extra
    )


def actor(user):
    return Actor.from_user(user)

from django.contrib.auth.models import AbstractUser
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Role(models.TextChoices):
    STUDENT = 'student', 'Student'
    TEACHER = 'teacher', 'Teacher'
    LIBRARIAN = 'librarian', 'Librarian'


class User(AbstractUser):
    class_name = models.CharField(max_length=50, blank=True)
    house_name = models.CharField(max_length=50, blank=True)

    def __str__(self):
        return self.username


class UserRole(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='roles')
    role = models.CharField(max_length=20, choices=Role.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'role'], name='unique_user_role'),
        ]

    def __str__(self):
        return f"{self.user.username}: {self.role}"


class Genre(models.Model):
    name = models.CharField(max_length=50, unique=True)

    def __str__(self):
        return self.name


class Book(models.Model):
    title = models.CharField(max_length=200)
    author = models.CharField(max_length=200)
    isbn = models.CharField(max_length=20, blank=True)
    description = models.TextField(blank=True)
    publication_year = models.PositiveIntegerField(null=True, blank=True)
    total_copies = models.PositiveIntegerField(default=1)
    available_copies = models.PositiveIntegerField(default=1)
    genre = models.ForeignKey(Genre, on_delete=models.SET_NULL, null=True, blank=True, related_name='books')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(available_copies__lte=F('total_copies')),
                name='available_copies_within_total',
            ),
        ]

    def __str__(self):
        return self.title


class BorrowingStatus(models.TextChoices):
    BORROWED = 'borrowed', 'Borrowed'
    RETURNED = 'returned', 'Returned'
    OVERDUE = 'overdue', 'Overdue'


class BorrowingRecord(models.Model):
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='borrowing_records')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='borrowing_records')
    issued_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='issued_records'
    )
    borrowed_at = models.DateTimeField(default=timezone.now)
    due_date = models.DateField()
    returned_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=BorrowingStatus.choices, default=BorrowingStatus.BORROWED)

    class Meta:
        ordering = ['due_date', 'id']

    def __str__(self):
        return f"{self.user.username} borrowed {self.book.title}"


class ChallengeType(models.TextChoices):
    BOOK_COUNT = 'book_count', 'Book count'
    GENRE_EXPLORATION = 'genre_exploration', 'Genre exploration'
    TIME_BASED = 'time_based', 'Time based'
    CLASS_COMPETITION = 'class_competition', 'Class competition'
    HOUSE_COMPETITION = 'house_competition', 'House competition'


class ChallengeStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class Challenge(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    challenge_type = models.CharField(max_length=20, choices=ChallengeType.choices)
    target_count = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(1)])
    target_genre = models.ForeignKey(
        Genre, on_delete=models.SET_NULL, null=True, blank=True, related_name='challenges'
    )
    target_class = models.CharField(max_length=50, blank=True)
    target_house = models.CharField(max_length=50, blank=True)
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=10, choices=ChallengeStatus.choices, default=ChallengeStatus.ACTIVE)
    badge_name = models.CharField(max_length=100, blank=True)
    badge_icon = models.CharField(max_length=100, blank=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_challenges'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(end_date__gte=F('start_date')), name='challenge_ends_after_start'),
        ]

    def __str__(self):
        return self.title


class ChallengeParticipation(models.Model):
    challenge = models.ForeignKey(Challenge, on_delete=models.CASCADE, related_name='participants')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='participations')
    progress = models.PositiveIntegerField(default=0)
    completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['challenge', 'user'], name='unique_challenge_participant'),
        ]

    def __str__(self):
        return f"{self.user.username} in {self.challenge.title}"


class UserBadge(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='badges')
    challenge = models.ForeignKey(
        Challenge, on_delete=models.SET_NULL, null=True, blank=True, related_name='badges'
    )
    badge_name = models.CharField(max_length=100)
    badge_icon = models.CharField(max_length=100, blank=True)
    earned_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'challenge'],
                condition=Q(challenge__isnull=False),
                name='unique_badge_per_challenge',
            ),
        ]

    def __str__(self):
        return f"{self.user.username}: {self.badge_name}"


class ReviewStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'


class Review(models.Model):
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='reviews')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='reviews')
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    review_text = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=ReviewStatus.choices, default=ReviewStatus.PENDING)
    moderated_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='moderated_reviews'
    )
    moderated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(rating__gte=1, rating__lte=5), name='rating_between_1_and_5'),
        ]

    def __str__(self):
        return f"{self.user.username} on {self.book.title} ({self.rating})"

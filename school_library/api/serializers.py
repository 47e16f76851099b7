from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from drf_yasg.utils import swagger_serializer_method
from rest_framework import serializers

from .circulation import set_total_copies
from .models import (
    Book, BorrowingRecord, Challenge, ChallengeParticipation, Genre, Review, ReviewStatus, Role, UserBadge, UserRole,
)
from .overdue import days_overdue, is_overdue

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    roles = serializers.SlugRelatedField(many=True, read_only=True, slug_field='role')

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'password', 'first_name', 'last_name', 'class_name', 'house_name', 'roles']
        extra_kwargs = {'password': {'write_only': True}}

    def create(self, validated_data):
        user = User.objects.create_user(**validated_data)
        return user


class UserRoleSerializer(serializers.ModelSerializer):
    user_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), source='user')
    role = serializers.ChoiceField(choices=Role.choices)

    class Meta:
        model = UserRole
        fields = ['id', 'user_id', 'role', 'created_at']
        read_only_fields = ['created_at']

    def create(self, validated_data):
        user_role, _ = UserRole.objects.get_or_create(**validated_data)
        return user_role


class GenreSerializer(serializers.ModelSerializer):
    class Meta:
        model = Genre
        fields = ['id', 'name']


class BookSerializer(serializers.ModelSerializer):
    genre = GenreSerializer(read_only=True)
    genre_id = serializers.PrimaryKeyRelatedField(
        queryset=Genre.objects.all(), source='genre', write_only=True, required=False, allow_null=True
    )
    available_copies = serializers.IntegerField(required=False)

    class Meta:
        model = Book
        fields = [
            'id', 'title', 'author', 'isbn', 'description', 'publication_year',
            'total_copies', 'available_copies', 'genre', 'genre_id',
        ]

    def validate(self, data):
        """
        Ensure total_copies and available_copies are non-negative and consistent.

        Availability is only set when a book is added; afterwards it moves
        with issues, returns and stock changes.
        """
        if self.instance is not None:
            data.pop('available_copies', None)
            if data.get('total_copies', 0) < 0:
                raise serializers.ValidationError("Total copies cannot be negative.")
            return data
        total_copies = data.get('total_copies', 1)
        available_copies = data.get('available_copies', total_copies)
        if total_copies < 0 or available_copies < 0:
            raise serializers.ValidationError("Total and available copies cannot be negative.")
        if available_copies > total_copies:
            raise serializers.ValidationError("Available copies cannot exceed total copies.")
        data['available_copies'] = available_copies
        return data

    def update(self, instance, validated_data):
        total_copies = validated_data.pop('total_copies', None)
        with transaction.atomic():
            for attr, value in validated_data.items():
                setattr(instance, attr, value)
            if validated_data:
                instance.save(update_fields=list(validated_data))
            if total_copies is not None and total_copies != instance.total_copies:
                set_total_copies(instance.pk, total_copies)
                instance.refresh_from_db(fields=['total_copies', 'available_copies'])
        return instance


class BorrowingRecordSerializer(serializers.ModelSerializer):
    user = serializers.StringRelatedField(read_only=True)
    book = serializers.StringRelatedField(read_only=True)
    is_overdue = serializers.SerializerMethodField()
    days_overdue = serializers.SerializerMethodField()

    class Meta:
        model = BorrowingRecord
        fields = [
            'id', 'book', 'book_id', 'user', 'user_id', 'issued_by_id', 'borrowed_at', 'due_date',
            'returned_at', 'status', 'is_overdue', 'days_overdue',
        ]
        read_only_fields = ['borrowed_at', 'due_date', 'returned_at', 'status']

    @swagger_serializer_method(serializer_or_field=serializers.BooleanField())
    def get_is_overdue(self, obj):
        return is_overdue(obj, self.context.get('now'))

    @swagger_serializer_method(serializer_or_field=serializers.IntegerField())
    def get_days_overdue(self, obj):
        return days_overdue(obj, self.context.get('now'))


class IssueSerializer(serializers.Serializer):
    book_id = serializers.IntegerField()
    user_id = serializers.IntegerField()
    due_date = serializers.DateField(required=False)

    def validate_due_date(self, value):
        if value < timezone.localdate():
            raise serializers.ValidationError("Due date cannot be in the past.")
        return value


class ReturnSerializer(serializers.Serializer):
    record_id = serializers.IntegerField()
    book_id = serializers.IntegerField(required=False)


class OverdueQuerySerializer(serializers.Serializer):
    as_of = serializers.DateTimeField(required=False)


class OverdueEntrySerializer(serializers.Serializer):
    record = BorrowingRecordSerializer()
    days_overdue = serializers.IntegerField()


class DueSoonEntrySerializer(serializers.Serializer):
    record = BorrowingRecordSerializer()
    days_left = serializers.IntegerField()


class ChallengeSerializer(serializers.ModelSerializer):
    created_by = serializers.StringRelatedField(read_only=True)
    target_genre_id = serializers.PrimaryKeyRelatedField(
        queryset=Genre.objects.all(), source='target_genre', required=False, allow_null=True
    )
    participant_count = serializers.IntegerField(source='participants.count', read_only=True)

    class Meta:
        model = Challenge
        fields = [
            'id', 'title', 'description', 'challenge_type', 'target_count', 'target_genre_id',
            'target_class', 'target_house', 'start_date', 'end_date', 'status',
            'badge_name', 'badge_icon', 'created_by', 'participant_count',
        ]
        read_only_fields = ['status']

    def validate(self, data):
        if data['end_date'] < data['start_date']:
            raise serializers.ValidationError("End date must be on or after the start date.")
        return data


class ChallengeParticipationSerializer(serializers.ModelSerializer):
    challenge = serializers.StringRelatedField(read_only=True)
    user = serializers.StringRelatedField(read_only=True)
    target_count = serializers.IntegerField(source='challenge.target_count', read_only=True)

    class Meta:
        model = ChallengeParticipation
        fields = [
            'id', 'challenge', 'challenge_id', 'user', 'user_id', 'progress', 'target_count',
            'completed', 'completed_at', 'joined_at',
        ]
        read_only_fields = ['progress', 'completed', 'completed_at', 'joined_at']


class UserBadgeSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserBadge
        fields = ['id', 'badge_name', 'badge_icon', 'challenge_id', 'earned_at']
        read_only_fields = fields


class ProgressSerializer(serializers.Serializer):
    delta = serializers.IntegerField(min_value=1, default=1)


class ProgressResultSerializer(serializers.Serializer):
    participation = ChallengeParticipationSerializer()
    badge = UserBadgeSerializer(allow_null=True)


class ReviewSerializer(serializers.ModelSerializer):
    user = serializers.StringRelatedField(read_only=True)
    book_id = serializers.IntegerField()
    rating = serializers.IntegerField(min_value=1, max_value=5)

    class Meta:
        model = Review
        fields = [
            'id', 'book_id', 'user', 'rating', 'review_text', 'status',
            'moderated_by_id', 'moderated_at', 'created_at',
        ]
        read_only_fields = ['status', 'moderated_by_id', 'moderated_at', 'created_at']


class ModerationSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=[ReviewStatus.APPROVED, ReviewStatus.REJECTED])


class BulkApproveSerializer(serializers.Serializer):
    review_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import no_body, swagger_auto_schema
from rest_framework import filters, generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from . import challenges, circulation, reviews
from .models import (
    Book, BorrowingRecord, BorrowingStatus, Challenge, ChallengeParticipation, Genre, Review, ReviewStatus, UserBadge,
    UserRole,
)
from .permissions import IsLibrarian, IsLibrarianOrReadOnly, IsSelfOrLibrarian, IsStaffMember, actor_for
from .serializers import (
    BookSerializer, BorrowingRecordSerializer, BulkApproveSerializer, ChallengeParticipationSerializer,
    ChallengeSerializer, DueSoonEntrySerializer, GenreSerializer, IssueSerializer, ModerationSerializer,
    OverdueEntrySerializer, OverdueQuerySerializer, ProgressResultSerializer, ProgressSerializer, ReturnSerializer,
    ReviewSerializer, UserBadgeSerializer, UserRoleSerializer, UserSerializer,
)

User = get_user_model()


class RegisterView(generics.CreateAPIView):
    queryset = User.objects.all()
    serializer_class = UserSerializer
    permission_classes = [AllowAny]


class UserDetailView(generics.RetrieveAPIView):
    queryset = User.objects.all()
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated, IsSelfOrLibrarian]

    def get_object(self):
        if 'pk' not in self.kwargs:
            return self.request.user
        user = get_object_or_404(User, pk=self.kwargs['pk'])
        self.check_object_permissions(self.request, user)
        return user


class UserRoleView(generics.ListCreateAPIView):
    queryset = UserRole.objects.select_related('user').all()
    serializer_class = UserRoleSerializer
    permission_classes = [IsLibrarian]
    filterset_fields = ['role', 'user']


class BookListView(generics.ListAPIView):
    queryset = Book.objects.select_related('genre').all()
    serializer_class = BookSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['author', 'genre__name']
    search_fields = ['title', 'author', 'description', 'isbn']


class BookDetailView(generics.RetrieveAPIView):
    queryset = Book.objects.select_related('genre').all()
    serializer_class = BookSerializer


class BookCreateUpdateView(generics.CreateAPIView, generics.UpdateAPIView):
    queryset = Book.objects.all()
    serializer_class = BookSerializer
    permission_classes = [IsLibrarian]


class GenreView(generics.ListCreateAPIView):
    queryset = Genre.objects.all()
    serializer_class = GenreSerializer
    permission_classes = [IsLibrarianOrReadOnly]


class BorrowingListView(generics.ListAPIView):
    """Librarians see every open loan; everyone else sees their own."""

    serializer_class = BorrowingRecordSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['status', 'book', 'user']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return BorrowingRecord.objects.none()
        records = BorrowingRecord.objects.select_related('book', 'user').exclude(status=BorrowingStatus.RETURNED)
        if actor_for(self.request).is_librarian:
            return records
        return records.filter(user=self.request.user)


class MyBorrowingsView(generics.ListAPIView):
    serializer_class = BorrowingRecordSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['status']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return BorrowingRecord.objects.none()
        return BorrowingRecord.objects.select_related('book', 'user').filter(user=self.request.user)


class IssueView(generics.GenericAPIView):
    serializer_class = IssueSerializer
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(request_body=IssueSerializer, responses={201: BorrowingRecordSerializer})
    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = circulation.issue_book(actor_for(request), **serializer.validated_data)
        return Response(BorrowingRecordSerializer(record).data, status=status.HTTP_201_CREATED)


class ReturnView(generics.GenericAPIView):
    serializer_class = ReturnSerializer
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(request_body=ReturnSerializer, responses={200: BorrowingRecordSerializer})
    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = circulation.return_book(actor_for(request), **serializer.validated_data)
        return Response(BorrowingRecordSerializer(record).data)


class OverdueView(generics.GenericAPIView):
    serializer_class = OverdueEntrySerializer
    permission_classes = [IsAuthenticated]
    filter_backends = []

    @swagger_auto_schema(query_serializer=OverdueQuerySerializer)
    def get(self, request):
        query = OverdueQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        as_of = query.validated_data.get('as_of')
        user_id = None if actor_for(request).is_librarian else request.user.pk
        entries = circulation.list_overdue(as_of, user_id=user_id)
        serializer = self.get_serializer(entries, many=True, context={'now': as_of or timezone.now()})
        return Response(serializer.data)


class DueSoonView(generics.GenericAPIView):
    serializer_class = DueSoonEntrySerializer
    permission_classes = [IsAuthenticated]
    filter_backends = []

    def get(self, request):
        now = timezone.now()
        entries = circulation.list_due_soon(request.user.pk, now)
        serializer = self.get_serializer(entries, many=True, context={'now': now})
        return Response(serializer.data)


class ChallengeListView(generics.ListCreateAPIView):
    queryset = Challenge.objects.select_related('created_by').all()
    serializer_class = ChallengeSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['challenge_type', 'status', 'target_class', 'target_house']
    search_fields = ['title', 'description']

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsStaffMember()]
        return super().get_permissions()

    def perform_create(self, serializer):
        serializer.instance = challenges.create_challenge(actor_for(self.request), **serializer.validated_data)


class ChallengeDetailView(generics.RetrieveAPIView):
    queryset = Challenge.objects.all()
    serializer_class = ChallengeSerializer


class JoinChallengeView(generics.GenericAPIView):
    serializer_class = ChallengeParticipationSerializer
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(request_body=no_body, responses={201: ChallengeParticipationSerializer})
    def post(self, request, pk):
        participation = challenges.join_challenge(actor_for(request), pk)
        return Response(self.get_serializer(participation).data, status=status.HTTP_201_CREATED)


class MyParticipationsView(generics.ListAPIView):
    serializer_class = ChallengeParticipationSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['completed']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return ChallengeParticipation.objects.none()
        return ChallengeParticipation.objects.select_related('challenge', 'user').filter(user=self.request.user)


class ProgressView(generics.GenericAPIView):
    serializer_class = ProgressSerializer
    permission_classes = [IsStaffMember]

    @swagger_auto_schema(request_body=ProgressSerializer, responses={200: ProgressResultSerializer})
    def post(self, request, pk):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = challenges.advance_progress(pk, serializer.validated_data['delta'])
        return Response(ProgressResultSerializer(result).data)


class MyBadgesView(generics.ListAPIView):
    serializer_class = UserBadgeSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return UserBadge.objects.none()
        return UserBadge.objects.filter(user=self.request.user).order_by('-earned_at')


class ReviewListCreateView(generics.ListCreateAPIView):
    """Approved reviews are public; librarians can list any status."""

    serializer_class = ReviewSerializer
    filterset_fields = ['book', 'status']

    def get_queryset(self):
        queryset = Review.objects.select_related('user').order_by('-created_at')
        if self.request.user.is_authenticated and actor_for(self.request).is_librarian:
            return queryset
        return queryset.filter(status=ReviewStatus.APPROVED)

    def perform_create(self, serializer):
        serializer.instance = reviews.submit_review(actor_for(self.request), **serializer.validated_data)


class ModerateReviewView(generics.GenericAPIView):
    serializer_class = ModerationSerializer
    permission_classes = [IsLibrarian]

    @swagger_auto_schema(request_body=ModerationSerializer, responses={200: ReviewSerializer})
    def post(self, request, pk):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = reviews.moderate_review(actor_for(request), pk, serializer.validated_data['decision'])
        return Response(ReviewSerializer(review).data)


class BulkApproveView(generics.GenericAPIView):
    serializer_class = BulkApproveSerializer
    permission_classes = [IsLibrarian]

    @swagger_auto_schema(request_body=BulkApproveSerializer, responses={200: ReviewSerializer(many=True)})
    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        approved = reviews.bulk_approve(actor_for(request), serializer.validated_data['review_ids'])
        return Response(ReviewSerializer(approved, many=True).data)

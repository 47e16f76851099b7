from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import (
    BookCreateUpdateView, BookDetailView, BookListView, BorrowingListView, BulkApproveView, ChallengeDetailView,
    ChallengeListView, DueSoonView, GenreView, IssueView, JoinChallengeView, ModerateReviewView, MyBadgesView,
    MyBorrowingsView, MyParticipationsView, OverdueView, ProgressView, RegisterView, ReturnView,
    ReviewListCreateView, UserDetailView, UserRoleView,
)

urlpatterns = [
    path('register/', RegisterView.as_view(), name='register'),
    path('login/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('users/me/', UserDetailView.as_view(), name='current_user'),
    path('users/<int:pk>/', UserDetailView.as_view(), name='user_detail'),
    path('roles/', UserRoleView.as_view(), name='user_roles'),
    path('books/', BookListView.as_view(), name='book_list'),
    path('books/<int:pk>/', BookDetailView.as_view(), name='book_detail'),
    path('books/create/', BookCreateUpdateView.as_view(), name='book_create'),
    path('books/<int:pk>/edit/', BookCreateUpdateView.as_view(), name='book_update'),
    path('genres/', GenreView.as_view(), name='genre_list'),
    path('borrowings/', BorrowingListView.as_view(), name='borrowing_list'),
    path('borrowings/mine/', MyBorrowingsView.as_view(), name='my_borrowings'),
    path('borrowings/issue/', IssueView.as_view(), name='issue'),
    path('borrowings/return/', ReturnView.as_view(), name='return'),
    path('borrowings/overdue/', OverdueView.as_view(), name='overdue'),
    path('borrowings/due-soon/', DueSoonView.as_view(), name='due_soon'),
    path('challenges/', ChallengeListView.as_view(), name='challenge_list'),
    path('challenges/<int:pk>/', ChallengeDetailView.as_view(), name='challenge_detail'),
    path('challenges/<int:pk>/join/', JoinChallengeView.as_view(), name='challenge_join'),
    path('participations/mine/', MyParticipationsView.as_view(), name='my_participations'),
    path('participations/<int:pk>/progress/', ProgressView.as_view(), name='participation_progress'),
    path('badges/mine/', MyBadgesView.as_view(), name='my_badges'),
    path('reviews/', ReviewListCreateView.as_view(), name='review_list'),
    path('reviews/<int:pk>/moderate/', ModerateReviewView.as_view(), name='review_moderate'),
    path('reviews/bulk-approve/', BulkApproveView.as_view(), name='review_bulk_approve'),
]

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import (
    Book, BorrowingRecord, Challenge, ChallengeParticipation, Genre, Review, User, UserBadge, UserRole,
)


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 0


@admin.register(User)
class LibraryUserAdmin(UserAdmin):
    fieldsets = UserAdmin.fieldsets + (('School', {'fields': ('class_name', 'house_name')}),)
    inlines = [UserRoleInline]


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = ('title', 'author', 'genre', 'available_copies', 'total_copies')
    search_fields = ('title', 'author', 'isbn')


@admin.register(BorrowingRecord)
class BorrowingRecordAdmin(admin.ModelAdmin):
    list_display = ('book', 'user', 'due_date', 'status', 'returned_at')
    list_filter = ('status',)
    readonly_fields = ('status', 'returned_at')


@admin.register(Challenge)
class ChallengeAdmin(admin.ModelAdmin):
    list_display = ('title', 'challenge_type', 'status', 'start_date', 'end_date')
    list_filter = ('challenge_type', 'status')


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('book', 'user', 'rating', 'status')
    list_filter = ('status',)


admin.site.register(Genre)
admin.site.register(ChallengeParticipation)
admin.site.register(UserBadge)

"""Typed business errors raised by the circulation, challenge and review services.

Every error is a DRF ``APIException`` so views can let it propagate and the
framework renders ``{"detail": ..., "code": ...}`` with the right status.
"""
import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class LibraryError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request could not be completed.'
    default_code = 'library_error'


# Precondition violations

class NoCopiesAvailable(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'No available copies of this book.'
    default_code = 'no_copies_available'


class CopiesOnLoan(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Total copies cannot drop below the number of copies on loan.'
    default_code = 'copies_on_loan'


class AlreadyReturned(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This borrowing record has already been returned.'
    default_code = 'already_returned'


class AlreadyJoined(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'You have already joined this challenge.'
    default_code = 'already_joined'


class ChallengeNotActive(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This challenge is not open for participation.'
    default_code = 'challenge_not_active'


class AlreadyModerated(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This review has already been moderated.'
    default_code = 'already_moderated'


# Stale references

class EntityNotFound(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'No longer available, please refresh.'
    default_code = 'not_found'


class BookNotFound(EntityNotFound):
    default_detail = 'Book no longer available, please refresh.'
    default_code = 'book_not_found'


class RecordNotFound(EntityNotFound):
    default_detail = 'Borrowing record no longer available, please refresh.'
    default_code = 'record_not_found'


class ChallengeNotFound(EntityNotFound):
    default_detail = 'Challenge no longer available, please refresh.'
    default_code = 'challenge_not_found'


class ParticipationNotFound(EntityNotFound):
    default_detail = 'Challenge participation no longer available, please refresh.'
    default_code = 'participation_not_found'


class ReviewNotFound(EntityNotFound):
    default_detail = 'Review no longer available, please refresh.'
    default_code = 'review_not_found'


class UserNotFound(EntityNotFound):
    default_detail = 'User no longer available, please refresh.'
    default_code = 'user_not_found'


class Unauthorized(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'unauthorized'


class StoreUnavailable(LibraryError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The library database is unavailable, please try again later.'
    default_code = 'store_unavailable'


def library_exception_handler(exc, context):
    if isinstance(exc, DatabaseError):
        logger.error('Database failure in %s', context.get('view').__class__.__name__, exc_info=exc)
        exc = StoreUnavailable()

    response = exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict) and 'detail' in response.data:
        response.data['code'] = getattr(response.data['detail'], 'code', None)
    return response

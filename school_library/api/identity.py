"""Request-scoped identity handed to the services.

Views build an ``Actor`` from ``request.user`` once per request; services
never look at the request or any global auth state.
"""
from dataclasses import dataclass, field

from .models import ChallengeType, Role

TEACHER_CHALLENGE_TYPES = frozenset({ChallengeType.CLASS_COMPETITION, ChallengeType.HOUSE_COMPETITION})


@dataclass(frozen=True)
class Actor:
    user_id: int
    roles: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_user(cls, user):
        roles = set(user.roles.values_list('role', flat=True))
        if user.is_superuser:
            roles.add(Role.LIBRARIAN)
        return cls(user_id=user.pk, roles=frozenset(roles))

    def has_role(self, role):
        return role in self.roles

    @property
    def is_librarian(self):
        return self.has_role(Role.LIBRARIAN)

    @property
    def is_teacher(self):
        return self.has_role(Role.TEACHER)

    @property
    def is_staff_member(self):
        return self.is_librarian or self.is_teacher


def can_create_challenge_type(roles, challenge_type):
    """Librarians may create any challenge; teachers only class or house competitions."""
    if Role.LIBRARIAN in roles:
        return challenge_type in ChallengeType.values
    if Role.TEACHER in roles:
        return challenge_type in TEACHER_CHALLENGE_TYPES
    return False

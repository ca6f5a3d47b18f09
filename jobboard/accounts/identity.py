"""Who is acting on this request.

The authentication layer (Django sessions, tokens, ...) decides *who* the
user is. This module only turns that user into the ``{id, role}`` pair the
authorization engine consumes.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.core.exceptions import PermissionDenied

from .models import User


@dataclass(frozen=True)
class Principal:
    id: int
    role: str

    @classmethod
    def from_user(cls, user) -> "Principal":
        role = getattr(user, "role", "") or ""
        if not role and getattr(user, "is_superuser", False):
            role = User.Role.ADMIN
        return cls(id=user.pk, role=str(role))

    @property
    def is_admin(self) -> bool:
        return self.role == User.Role.ADMIN


class NotAuthenticated(PermissionDenied):
    pass


def principal_from_request(request) -> Principal:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")
    return Principal.from_user(user)

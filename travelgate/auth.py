"""
Actor Context.

Every policy check and service call receives an explicit :class:`Actor`
(subject id + role) instead of reading the caller from ambient state.
An ``Actor`` is obtained from a verified token
(:meth:`travelgate.jwt_auth.TokenService.verify`) or built from a stored
user with :func:`actor_for`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from travelgate.models.enums import UserRole
from travelgate.models.user import User


class Actor(BaseModel):
    """The authenticated caller of an operation."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)

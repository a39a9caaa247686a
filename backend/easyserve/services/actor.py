"""Authenticated identity passed explicitly into every service operation."""
from dataclasses import dataclass
from uuid import UUID

from easyserve.models.users import UserRole


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    Built by the API layer from the bearer token; services never read
    request-global auth state.
    """

    id: UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_provider(self) -> bool:
        return self.role == UserRole.PROVIDER

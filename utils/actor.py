"""Explicit acting-identity passed into the lifecycle core instead of session lookups."""
from dataclasses import dataclass
from typing import Optional

from models import ANONYMOUS_NAME, STAFF_ROLES

SUBMITTER_ROLE = "submitter"
SYSTEM_ROLE = "system"


@dataclass(frozen=True)
class Actor:
    role: str
    id: Optional[str] = None
    department: Optional[str] = None
    display_name: str = ""

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            role=user.role,
            id=user.id,
            department=user.department,
            display_name=user.full_name or user.email,
        )

    @classmethod
    def submitter(cls, name: Optional[str] = None, user_id: Optional[str] = None) -> "Actor":
        """Whoever holds the reference number; ``user_id`` is kept only for comment attribution."""
        return cls(role=SUBMITTER_ROLE, id=user_id, display_name=name or ANONYMOUS_NAME)

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=SYSTEM_ROLE, display_name="System")

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def audit_id(self) -> Optional[str]:
        # Submitter and system actions are recorded without an account reference.
        return self.id if self.is_staff else None

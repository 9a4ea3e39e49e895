"""
User Directory

Role lookup and id -> name/email resolution for the workflow. Two sources:

- SqlUserDirectory reads the users table
- InMemoryUserDirectory serves a fixed list (mock mode and tests)

Which one is used is decided by the composition root (api/deps.py) from
USER_DIRECTORY_BACKEND and passed into the workflow.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from po_workflow.models.user import User


@dataclass(frozen=True)
class DirectoryUser:
    id: str
    name: str
    email: str
    role: str
    department: Optional[str] = None
    active: bool = True


class UserDirectory(Protocol):
    def find_by_id(self, user_id: str) -> Optional[DirectoryUser]:
        ...

    def find_ids_by_roles(self, roles: Sequence[str]) -> List[str]:
        ...


def _role_values(roles: Sequence) -> List[str]:
    return [getattr(role, "value", role) for role in roles]


class SqlUserDirectory:
    """User directory backed by the users table."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: str) -> Optional[DirectoryUser]:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        return DirectoryUser(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
            active=user.active,
        )

    def find_ids_by_roles(self, roles: Sequence[str]) -> List[str]:
        """IDs of active users holding any of the roles."""
        if not roles:
            return []
        rows = (
            self.db.query(User.id)
            .filter(User.role.in_(_role_values(roles)), User.active.is_(True))
            .order_by(User.id)
            .all()
        )
        return [row.id for row in rows]


class InMemoryUserDirectory:
    """User directory over a fixed set of users."""

    def __init__(self, users: Iterable[DirectoryUser] = ()):
        self._users: Dict[str, DirectoryUser] = {}
        for user in users:
            self.add(user)

    def add(self, user: DirectoryUser) -> None:
        self._users[user.id] = user

    def find_by_id(self, user_id: str) -> Optional[DirectoryUser]:
        return self._users.get(user_id)

    def find_ids_by_roles(self, roles: Sequence[str]) -> List[str]:
        wanted = set(_role_values(roles))
        return sorted(
            user.id for user in self._users.values()
            if user.active and user.role in wanted
        )


# Seed data for USER_DIRECTORY_BACKEND=memory
MOCK_USERS = (
    DirectoryUser(
        id="123e4567-e89b-12d3-a456-426614174000",
        name="Ahmad Al-Sabbagh",
        email="ahmad@sabbagh.com",
        role="manager",
        department="Management",
    ),
    DirectoryUser(
        id="456e7890-e89b-12d3-a456-426614174001",
        name="Sara Al-Ahmad",
        email="sara@sabbagh.com",
        role="assistant_manager",
        department="IT Department",
    ),
    DirectoryUser(
        id="789e1234-e89b-12d3-a456-426614174002",
        name="Omar Al-Khouri",
        email="omar@sabbagh.com",
        role="employee",
        department="Sales",
    ),
    DirectoryUser(
        id="012e5678-e89b-12d3-a456-426614174003",
        name="Layla Al-Zahra",
        email="layla@sabbagh.com",
        role="employee",
        department="HR",
        active=False,
    ),
)

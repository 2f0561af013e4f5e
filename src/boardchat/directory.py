# /src/boardchat/directory.py
# User and project directories consumed by the core

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import Project, User, UserRole
from .storage.base import DocumentStore

USERS = "users"
PROJECTS = "projects"


class UserDirectory(ABC):
    """Read access to tenant users (backed by the identity provider)."""

    @abstractmethod
    async def get_users(self, organization_id: str) -> List[User]:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    async def get_admins(self, organization_id: str) -> List[User]:
        """All users holding the admin role in a tenant."""
        return [user for user in await self.get_users(organization_id) if user.role == UserRole.ADMIN]


class ProjectDirectory(ABC):
    """Read access to projects."""

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        pass


class StoreUserDirectory(UserDirectory):
    """UserDirectory reading the ``users`` collection of a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def get_users(self, organization_id: str) -> List[User]:
        docs = await self._store.find(USERS, {"organization_id": organization_id})
        return [User.from_dict(doc) for doc in docs]

    async def get_user(self, user_id: str) -> Optional[User]:
        doc = await self._store.get(USERS, user_id)
        return User.from_dict(doc) if doc else None

    async def add_user(self, user: User) -> None:
        await self._store.insert(USERS, user.to_dict())


class StoreProjectDirectory(ProjectDirectory):
    """ProjectDirectory reading the ``projects`` collection of a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def get_project(self, project_id: str) -> Optional[Project]:
        doc = await self._store.get(PROJECTS, project_id)
        return Project.from_dict(doc) if doc else None

    async def add_project(self, project: Project) -> None:
        await self._store.insert(PROJECTS, project.to_dict())

"""Department Repository - Data access for departments, ticket types and users"""
from typing import List, Optional

from .base_repo import BaseRepository
from .store import Collections
from ..domain.models import Department, User
from ..domain.errors import DepartmentNotFoundError, NotFoundError


class DepartmentRepository(BaseRepository[Department]):
    """Repository for departments (ticket types are embedded)"""

    collection = Collections.DEPARTMENTS
    model = Department
    not_found_error = DepartmentNotFoundError
    entity_name = "Department"

    async def get_by_name(self, name: str) -> Optional[Department]:
        """Get a department by its unique name"""
        matches = await self.list({"name": name})
        return matches[0] if matches else None

    async def list_departments(self) -> List[Department]:
        """List departments ordered by name"""
        departments = await self.list()
        departments.sort(key=lambda d: d.name.lower())
        return departments


class UserRepository(BaseRepository[User]):
    """Repository for the users-by-department lookup"""

    collection = Collections.USERS
    model = User
    not_found_error = NotFoundError
    entity_name = "User"
    tracks_updates = False

    async def list_by_department(self, department: str) -> List[User]:
        """Users belonging to a department, ordered by name"""
        users = await self.list({"department": department})
        users.sort(key=lambda u: u.name.lower())
        return users

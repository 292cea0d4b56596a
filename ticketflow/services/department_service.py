"""Department Service - Departments, ticket types, sub-categories and users"""
from typing import List, Optional

from ..domain.models import Department, TicketType, User
from ..domain.enums import Priority
from ..domain.errors import (
    ValidationError, AlreadyExistsError, ConflictError, TicketTypeNotFoundError,
    DepartmentNotFoundError
)
from ..repositories.department_repo import DepartmentRepository, UserRepository
from ..repositories.workflow_repo import WorkflowRepository
from ..utils.idgen import (
    IdFactory, generate_id, DEPARTMENT_PREFIX, TICKET_TYPE_PREFIX, USER_PREFIX
)
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DepartmentService:
    """Service for department lookups and administration"""

    def __init__(
        self,
        repo: DepartmentRepository,
        user_repo: UserRepository,
        workflow_repo: WorkflowRepository,
        clock: Clock = utc_now,
        id_factory: IdFactory = generate_id
    ):
        self.repo = repo
        self.user_repo = user_repo
        self.workflow_repo = workflow_repo
        self.clock = clock
        self.id_factory = id_factory

    # =========================================================================
    # Departments
    # =========================================================================

    async def create_department(
        self,
        name: str,
        sub_categories: Optional[List[str]] = None
    ) -> Department:
        """Create a department; names are unique"""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Department name is required")
        if await self.repo.get_by_name(name) is not None:
            raise AlreadyExistsError(
                f"Department {name} already exists",
                details={"name": name}
            )

        now = self.clock()
        department = Department(
            department_id=self.id_factory(DEPARTMENT_PREFIX),
            name=name,
            sub_categories=list(sub_categories or []),
            created_at=now,
            updated_at=now,
        )
        await self.repo.create(department)
        logger.info(f"Created department: {name}", extra={"department": name})
        return department

    async def get_department(self, department_id: str) -> Department:
        return await self.repo.get_or_raise(department_id)

    async def get_department_by_name(self, name: str) -> Optional[Department]:
        return await self.repo.get_by_name(name)

    async def list_departments(self) -> List[Department]:
        return await self.repo.list_departments()

    async def rename_department(self, department_id: str, name: str) -> Department:
        """
        Rename a department

        Workflow steps and users that reference the department follow the
        new name. Existing tickets keep the name they were routed with.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Department name is required")
        department = await self.repo.get_or_raise(department_id)
        if name == department.name:
            return department

        other = await self.repo.get_by_name(name)
        if other is not None:
            raise AlreadyExistsError(f"Department {name} already exists", details={"name": name})

        updated = await self.repo.update(department_id, {"name": name})

        workflows = 0
        for workflow in await self.workflow_repo.list_workflows():
            if not any(step.department_id == department_id for step in workflow.steps):
                continue
            steps = [
                step.model_copy(update={"department_name": name})
                if step.department_id == department_id else step
                for step in workflow.steps
            ]
            await self.workflow_repo.update(workflow.workflow_id, {"steps": steps})
            workflows += 1

        users = await self.user_repo.list_by_department(department.name)
        for user in users:
            await self.user_repo.update(user.user_id, {"department": name})

        logger.info(
            f"Renamed department {department.name} to {name} "
            f"({workflows} workflow(s), {len(users)} user(s))",
            extra={"department": name}
        )
        return updated

    async def delete_department(self, department_id: str) -> None:
        """Delete a department that no workflow step uses"""
        department = await self.repo.get_or_raise(department_id)
        used_by = [
            w.workflow_id for w in await self.workflow_repo.list_workflows()
            if any(step.department_id == department_id for step in w.steps)
        ]
        if used_by:
            raise ConflictError(
                f"Department {department.name} is used by {len(used_by)} workflow(s)",
                details={"department_id": department_id, "workflow_ids": used_by}
            )
        await self.repo.delete(department_id)
        logger.info(f"Deleted department: {department.name}", extra={"department": department.name})

    # =========================================================================
    # Ticket types
    # =========================================================================

    async def get_ticket_types(self, department_id: str) -> List[TicketType]:
        department = await self.repo.get_or_raise(department_id)
        return department.ticket_types

    async def add_ticket_type(
        self,
        department_id: str,
        name: str,
        default_working_days: int = 5,
        priority: Priority = Priority.MEDIUM,
        sub_category: Optional[str] = None,
        workflow_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> TicketType:
        """
        Add a ticket type to a department

        Raises:
            AlreadyExistsError: The department already has a type of that name
            WorkflowNotFoundError: The workflow does not exist
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Ticket type name is required")
        department = await self.repo.get_or_raise(department_id)
        if any(t.name == name for t in department.ticket_types):
            raise AlreadyExistsError(
                f"Ticket type {name} already exists in {department.name}",
                details={"department_id": department_id, "name": name}
            )
        if workflow_id:
            await self.workflow_repo.get_or_raise(workflow_id)

        now = self.clock()
        ticket_type = TicketType(
            ticket_type_id=self.id_factory(TICKET_TYPE_PREFIX),
            name=name,
            default_working_days=default_working_days,
            priority=priority,
            sub_category=sub_category,
            workflow_id=workflow_id,
            description=description,
            created_at=now,
            updated_at=now,
        )
        await self.repo.update(department_id, {"ticket_types": department.ticket_types + [ticket_type]})
        logger.info(
            f"Added ticket type {name}",
            extra={"department": department.name}
        )
        return ticket_type

    async def update_ticket_type(
        self,
        department_id: str,
        ticket_type_id: str,
        **changes
    ) -> TicketType:
        """Update fields of a ticket type"""
        department = await self.repo.get_or_raise(department_id)
        types = list(department.ticket_types)
        index = self._index_of(types, ticket_type_id)

        allowed = set(TicketType.model_fields) - {"ticket_type_id", "created_at", "updated_at"}
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise ValidationError(
                f"Unknown ticket type fields: {', '.join(unknown)}",
                details={"fields": unknown}
            )
        if changes.get("workflow_id"):
            await self.workflow_repo.get_or_raise(changes["workflow_id"])

        updated_type = TicketType.model_validate({
            **types[index].model_dump(), **changes, "updated_at": self.clock()
        })
        types[index] = updated_type
        await self.repo.update(department_id, {"ticket_types": types})
        return updated_type

    async def delete_ticket_type(self, department_id: str, ticket_type_id: str) -> None:
        department = await self.repo.get_or_raise(department_id)
        types = list(department.ticket_types)
        del types[self._index_of(types, ticket_type_id)]
        await self.repo.update(department_id, {"ticket_types": types})

    @staticmethod
    def _index_of(types: List[TicketType], ticket_type_id: str) -> int:
        for index, ticket_type in enumerate(types):
            if ticket_type.ticket_type_id == ticket_type_id:
                return index
        raise TicketTypeNotFoundError(
            f"Ticket type {ticket_type_id} not found",
            details={"ticket_type_id": ticket_type_id}
        )

    # =========================================================================
    # Sub-categories
    # =========================================================================

    async def add_sub_category(self, department_id: str, sub_category: str) -> Department:
        sub_category = (sub_category or "").strip()
        if not sub_category:
            raise ValidationError("Sub-category is required")
        department = await self.repo.get_or_raise(department_id)
        if sub_category in department.sub_categories:
            return department
        return await self.repo.update(
            department_id, {"sub_categories": department.sub_categories + [sub_category]}
        )

    async def remove_sub_category(self, department_id: str, sub_category: str) -> Department:
        department = await self.repo.get_or_raise(department_id)
        if sub_category not in department.sub_categories:
            return department
        return await self.repo.update(
            department_id,
            {"sub_categories": [s for s in department.sub_categories if s != sub_category]}
        )

    # =========================================================================
    # Users
    # =========================================================================

    async def get_users_by_department(self, department: str) -> List[User]:
        """Users of a department, by department name"""
        return await self.user_repo.list_by_department(department)

    async def add_user(self, name: str, department: str, email: Optional[str] = None) -> User:
        """Add a user to an existing department"""
        if not name or not name.strip():
            raise ValidationError("User name is required")
        dept = await self.repo.get_by_name(department)
        if dept is None:
            raise DepartmentNotFoundError(
                f"Department {department} not found",
                details={"department": department}
            )
        user = User(
            user_id=self.id_factory(USER_PREFIX),
            name=name.strip(),
            email=email,
            department=dept.name,
        )
        await self.user_repo.create(user)
        logger.info(f"Added user {user.name}", extra={"department": dept.name})
        return user

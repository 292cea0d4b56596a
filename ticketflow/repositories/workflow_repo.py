"""Workflow Repository - Data access for workflow definitions"""
from typing import List, Optional

from .base_repo import BaseRepository
from .store import Collections
from ..domain.models import Workflow
from ..domain.errors import WorkflowNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowRepository(BaseRepository[Workflow]):
    """Repository for workflow operations"""

    collection = Collections.WORKFLOWS
    model = Workflow
    not_found_error = WorkflowNotFoundError
    entity_name = "Workflow"

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Create a new workflow"""
        await self.create(workflow)
        logger.info(f"Created workflow: {workflow.workflow_id}", extra={"workflow_id": workflow.workflow_id})
        return workflow

    async def list_workflows(self) -> List[Workflow]:
        """List workflows ordered by name"""
        workflows = await self.list()
        workflows.sort(key=lambda w: w.name.lower())
        return workflows

    async def get_default(self) -> Optional[Workflow]:
        """Get the default workflow, if one is marked"""
        defaults = await self.list({"is_default": True})
        if len(defaults) > 1:
            # Should not happen; the service clears other defaults on every write
            logger.warning(f"Found {len(defaults)} default workflows, using the most recently updated")
            defaults.sort(key=lambda w: w.updated_at, reverse=True)
        return defaults[0] if defaults else None

"""
Container - wires the store, repositories, engine and services together

Everything is built from four explicit inputs (store handle, settings,
clock, id factory), so tests and embedding applications get a fully
deterministic system without module-level singletons.
"""
from typing import Optional

from .config.settings import Settings, get_settings
from .engine.history import ChangeHistoryRecorder
from .engine.lifecycle import TicketLifecycle
from .engine.reassignment import ReassignmentHandler
from .engine.sla import SlaEvaluator
from .engine.workflow_engine import WorkflowEngine
from .repositories.store import RecordStore
from .repositories.memory_store import InMemoryRecordStore
from .repositories.mongo_store import MongoRecordStore
from .repositories.ticket_repo import TicketRepository
from .repositories.workflow_repo import WorkflowRepository
from .repositories.department_repo import DepartmentRepository, UserRepository
from .repositories.history_repo import HistoryRepository, ResolutionRepository
from .repositories.migrations import migrate
from .scheduler.overdue_scheduler import OverdueScheduler
from .services.ticket_service import TicketService
from .services.workflow_service import WorkflowService
from .services.department_service import DepartmentService
from .utils.idgen import IdFactory, generate_id
from .utils.time import Clock, utc_now
from .utils.logger import get_logger

logger = get_logger(__name__)


class TicketingSystem:
    """A wired ticketing system"""

    def __init__(
        self,
        settings: Settings,
        store: RecordStore,
        engine: WorkflowEngine,
        reassignment: ReassignmentHandler,
        tickets: TicketService,
        workflows: WorkflowService,
        departments: DepartmentService,
        scheduler: OverdueScheduler
    ):
        self.settings = settings
        self.store = store
        self.engine = engine
        self.reassignment = reassignment
        self.tickets = tickets
        self.workflows = workflows
        self.departments = departments
        self.scheduler = scheduler

    async def close(self) -> None:
        """Stop background jobs and release the store"""
        self.scheduler.stop()
        await self.store.close()


async def build_system(
    store: Optional[RecordStore] = None,
    settings: Optional[Settings] = None,
    clock: Clock = utc_now,
    id_factory: IdFactory = generate_id,
    run_migrations: bool = True
) -> TicketingSystem:
    """
    Build a TicketingSystem

    Args:
        store: Record store; defaults to the backend named by
            `settings.store_backend`
        settings: Settings (default: environment)
        clock: Source of "now"
        id_factory: Id generator taking an entity prefix
        run_migrations: Apply pending additive migrations on startup

    Returns:
        The wired system; its scheduler is not started
    """
    settings = settings or get_settings()

    if store is None:
        if settings.store_backend == "mongo":
            store = await MongoRecordStore(settings).connect()
        else:
            store = InMemoryRecordStore()

    if run_migrations and store.available:
        version = await migrate(store)
        logger.info(f"Store at schema v{version}", extra={"schema_version": version})

    ticket_repo = TicketRepository(store, clock)
    workflow_repo = WorkflowRepository(store, clock)
    department_repo = DepartmentRepository(store, clock)
    user_repo = UserRepository(store, clock)
    history_repo = HistoryRepository(store, clock)
    resolution_repo = ResolutionRepository(store, clock)

    lifecycle = TicketLifecycle()
    history = ChangeHistoryRecorder(history_repo, clock, id_factory)
    engine = WorkflowEngine(
        ticket_repo=ticket_repo,
        workflow_repo=workflow_repo,
        resolution_repo=resolution_repo,
        history=history,
        sla_evaluator=SlaEvaluator(settings),
        lifecycle=lifecycle,
        settings=settings,
        clock=clock,
        id_factory=id_factory,
    )
    reassignment = ReassignmentHandler(
        ticket_repo=ticket_repo,
        workflow_repo=workflow_repo,
        resolution_repo=resolution_repo,
        history=history,
        lifecycle=lifecycle,
        settings=settings,
        clock=clock,
        id_factory=id_factory,
    )
    tickets = TicketService(
        ticket_repo=ticket_repo,
        department_repo=department_repo,
        history_repo=history_repo,
        resolution_repo=resolution_repo,
        engine=engine,
        reassignment=reassignment,
        history=history,
        lifecycle=lifecycle,
        settings=settings,
        clock=clock,
        id_factory=id_factory,
    )

    return TicketingSystem(
        settings=settings,
        store=store,
        engine=engine,
        reassignment=reassignment,
        tickets=tickets,
        workflows=WorkflowService(workflow_repo, department_repo, ticket_repo, settings, clock, id_factory),
        departments=DepartmentService(department_repo, user_repo, workflow_repo, clock, id_factory),
        scheduler=OverdueScheduler(tickets, settings),
    )

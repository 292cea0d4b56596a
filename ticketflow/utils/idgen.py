"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

# Signature shared by generate_id and the stubs injected in tests
IdFactory = Callable[[Optional[str]], str]


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'TKT', 'WF', 'HIST')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('TKT')
        'TKT-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


# Entity prefixes
TICKET_PREFIX = "TKT"
WORKFLOW_PREFIX = "WF"
STEP_PREFIX = "STEP"
DEPARTMENT_PREFIX = "DEP"
TICKET_TYPE_PREFIX = "TTY"
ACTION_PREFIX = "ACT"
RESOLUTION_PREFIX = "RES"
HISTORY_PREFIX = "HIST"
ATTACHMENT_PREFIX = "ATT"
USER_PREFIX = "USR"


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for tracing one engine operation through the logs

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"

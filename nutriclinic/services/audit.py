import logging
from typing import Optional

from ..core.database import SessionLocal
from .outbox import AUDIT_LOG, enqueue

logger = logging.getLogger(__name__)

class AuditLogger:
    """Fire-and-forget audit trail for privileged mutations.

    Call ``log`` only after the mutation itself has been committed. A failure
    here is logged and swallowed; it never undoes the mutation.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def log(self, action: str, details: str, performed_by: Optional[str]) -> bool:
        task_id = enqueue(
            AUDIT_LOG,
            {"action": action, "details": details, "performed_by": performed_by},
            session_factory=self.session_factory,
        )
        if task_id is None:
            logger.error(f"Audit entry lost: {action} by {performed_by}: {details}")
            return False
        return True

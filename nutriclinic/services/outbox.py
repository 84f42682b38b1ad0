"""Best-effort outbox for side effects (audit entries, notifications).

Producers enqueue a task in a session of their own once the primary write
has been committed, so a failing side effect can never roll that write back.
The dispatcher delivers tasks later, recording attempts and the last error
on each task; tasks that keep failing end up ``failed`` for an admin to
inspect and re-dispatch.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.database import SessionLocal
from ..models.audit import AuditLog, OutboxStatus, OutboxTask
from ..models.meal_plan import Notification

logger = logging.getLogger(__name__)

AUDIT_LOG = "audit_log"
NOTIFICATION = "notification"

Handler = Callable[[Session, Dict[str, Any]], None]

def deliver_audit_log(db: Session, payload: Dict[str, Any]) -> None:
    db.add(AuditLog(
        action=payload["action"],
        details=payload.get("details"),
        performed_by=payload.get("performed_by"),
    ))

def deliver_notification(db: Session, payload: Dict[str, Any]) -> None:
    db.add(Notification(
        recipient=payload["recipient"],
        type=payload["type"],
        title=payload["title"],
        content=payload.get("content"),
        meal_plan_id=payload.get("meal_plan_id"),
    ))

DEFAULT_HANDLERS: Dict[str, Handler] = {
    AUDIT_LOG: deliver_audit_log,
    NOTIFICATION: deliver_notification,
}

def enqueue(kind: str, payload: Dict[str, Any], session_factory=SessionLocal) -> Optional[int]:
    """Queue a side effect. Returns the task id, or None if queueing failed."""
    db = None
    try:
        db = session_factory()
        task = OutboxTask(kind=kind, payload=payload)
        db.add(task)
        db.commit()
        return task.id
    except SQLAlchemyError as e:
        if db is not None:
            db.rollback()
        logger.error(f"Failed to enqueue {kind} task: {str(e)}")
        return None
    finally:
        if db is not None:
            db.close()

@dataclass
class DispatchStats:
    delivered: int = 0
    failed: int = 0
    retried: int = 0

class OutboxDispatcher:
    def __init__(
        self,
        session_factory=SessionLocal,
        handlers: Optional[Dict[str, Handler]] = None,
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.handlers = handlers or DEFAULT_HANDLERS
        self.max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS

    def dispatch_pending(self, limit: Optional[int] = None) -> DispatchStats:
        """Deliver pending tasks oldest first, one commit per task."""
        stats = DispatchStats()
        db = self.session_factory()
        try:
            task_ids = [
                row.id for row in db.query(OutboxTask.id)
                .filter(OutboxTask.status == OutboxStatus.PENDING)
                .order_by(OutboxTask.id)
                .limit(limit or settings.OUTBOX_BATCH_SIZE)
                .all()
            ]
            for task_id in task_ids:
                self._deliver(db, task_id, stats)
        finally:
            db.close()

        if stats.delivered or stats.failed or stats.retried:
            logger.info(
                f"Outbox dispatch: delivered={stats.delivered} "
                f"retried={stats.retried} failed={stats.failed}"
            )
        return stats

    def _claim(self, db: Session, task_id: int) -> bool:
        """Mark a still-pending task delivered; False if another dispatcher got it."""
        claimed = db.query(OutboxTask).filter(
            OutboxTask.id == task_id,
            OutboxTask.status == OutboxStatus.PENDING
        ).update({
            "status": OutboxStatus.DELIVERED,
            "attempts": OutboxTask.attempts + 1,
            "last_error": None,
            "processed_at": datetime.utcnow(),
        }, synchronize_session=False)
        return claimed == 1

    def _deliver(self, db: Session, task_id: int, stats: DispatchStats) -> None:
        try:
            # Claim and side effect commit together
            if not self._claim(db, task_id):
                db.rollback()
                return
            task = db.get(OutboxTask, task_id, populate_existing=True)
            handler = self.handlers[task.kind]
            handler(db, task.payload)
            db.commit()
            stats.delivered += 1
        except Exception as e:
            db.rollback()
            self._record_failure(db, task_id, e, stats)

    def _record_failure(self, db: Session, task_id: int, error: Exception, stats: DispatchStats) -> None:
        task = db.get(OutboxTask, task_id, populate_existing=True)
        if task is None or task.status != OutboxStatus.PENDING:
            return

        task.attempts += 1
        task.last_error = f"{type(error).__name__}: {error}"
        if task.attempts >= self.max_attempts:
            task.status = OutboxStatus.FAILED
            task.processed_at = datetime.utcnow()
            stats.failed += 1
        else:
            stats.retried += 1
        db.commit()
        logger.warning(f"Outbox task {task_id} ({task.kind}) attempt {task.attempts} failed: {task.last_error}")

    def requeue_failed(self) -> int:
        """Move failed tasks back to pending with a fresh attempt budget."""
        db = self.session_factory()
        try:
            count = db.query(OutboxTask).filter(
                OutboxTask.status == OutboxStatus.FAILED
            ).update({"status": OutboxStatus.PENDING, "attempts": 0}, synchronize_session=False)
            db.commit()
            return count
        finally:
            db.close()

"""
Purpose: The escalation "heartbeat".
What it does:
- Arms timers as ScheduledTask rows (one per order and task type), so a restart
  does not lose them.
- sweep() picks up due tasks and runs their handler. Run periodically by
  `manage.py run_escalations`.

Handlers re-read the order and act only if it is still stalled in the status the
timer was armed for. A failing handler marks its task failed and is logged; it never
raises into the sweep loop.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from logistics.models import Order, ScheduledTask
from orders.models import OrderStatus

from .admin_alerts import create_driver_assignment_notification, create_pending_order_notification
from .config import SystemConfigReader
from .notifications import NotificationGateway
from .policy import EscalationPolicy, default_escalation_policy

logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    PENDING_TIMEOUT = "pending_timeout"
    AUTO_START_PREPARING = "auto_start_preparing"
    PREPARING_WITHOUT_DRIVER = "preparing_without_driver"
    PREPARATION_GRACE = "preparation_grace"


# handler(task, now) -> True when it acted, False when the order had moved on
TaskHandler = Callable[[ScheduledTask, datetime], bool]


class EscalationScheduler:

    def __init__(self, gateway: NotificationGateway, config: SystemConfigReader,
                 policy: Optional[EscalationPolicy] = None):
        self.gateway = gateway
        self.config = config
        self.policy = policy or default_escalation_policy()
        self._handlers: Dict[str, TaskHandler] = {
            TaskType.PENDING_TIMEOUT.value: self._handle_pending_timeout,
            TaskType.PREPARING_WITHOUT_DRIVER.value: self._handle_preparing_without_driver,
            TaskType.PREPARATION_GRACE.value: self._handle_preparation_grace,
        }

    def register(self, task_type: TaskType, handler: TaskHandler) -> None:
        self._handlers[TaskType(task_type).value] = handler

    # ---- Arming ----

    def arm(self, order_id: int, task_type: TaskType, due_at: datetime,
            payload: Optional[dict] = None) -> ScheduledTask:
        """
        Idempotent: a second arm for the same (order, task_type) returns the existing task.
        """
        task, created = ScheduledTask.objects.get_or_create(
            order_id=order_id,
            task_type=TaskType(task_type).value,
            defaults={"due_at": due_at, "payload": payload or {}},
        )
        if created:
            logger.debug("Armed %s for order %s at %s", task.task_type, order_id, due_at.isoformat())
        return task

    def arm_pending_timeout(self, order_id: int, now: Optional[datetime] = None) -> ScheduledTask:
        now = now or timezone.now()
        minutes = self.config.pending_order_timeout_minutes()
        return self.arm(order_id, TaskType.PENDING_TIMEOUT, now + timedelta(minutes=minutes),
                        {"timeout_minutes": minutes})

    def arm_auto_start_preparing(self, order_id: int, now: Optional[datetime] = None) -> ScheduledTask:
        now = now or timezone.now()
        return self.arm(order_id, TaskType.AUTO_START_PREPARING,
                        now + timedelta(seconds=self.policy.auto_start_preparing_sec))

    def arm_preparing_without_driver(self, order_id: int, now: Optional[datetime] = None) -> ScheduledTask:
        now = now or timezone.now()
        delay = self.policy.preparing_without_driver_sec
        return self.arm(order_id, TaskType.PREPARING_WITHOUT_DRIVER, now + timedelta(seconds=delay),
                        {"waited_seconds": delay})

    def arm_preparation_grace(self, order_id: int, preparation_minutes: int,
                              now: Optional[datetime] = None) -> ScheduledTask:
        now = now or timezone.now()
        return self.arm(order_id, TaskType.PREPARATION_GRACE, now + timedelta(minutes=preparation_minutes),
                        {"grace_minutes": self.policy.preparation_grace_min})

    # ---- Sweeping ----

    def due_tasks(self, now: datetime, limit: int) -> List[ScheduledTask]:
        return list(
            ScheduledTask.objects.filter(status=ScheduledTask.Status.PENDING, due_at__lte=now)
            .order_by("due_at", "id")[:limit]
        )

    def sweep(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> Dict[str, int]:
        """
        Run every due task once. Returns counts per outcome.
        """
        now = now or timezone.now()
        outcome = {"done": 0, "skipped": 0, "failed": 0}

        for task in self.due_tasks(now, limit or self.policy.sweep_batch_size):
            # claim: another sweeper may have picked the same row
            claimed = ScheduledTask.objects.filter(
                pk=task.pk, status=ScheduledTask.Status.PENDING, attempts=task.attempts,
            ).update(attempts=F("attempts") + 1)
            if not claimed:
                continue

            status = self._run(task, now)
            outcome[status] += 1

        if any(outcome.values()):
            logger.info("Escalation sweep: %s", outcome)
        return outcome

    def _run(self, task: ScheduledTask, now: datetime) -> str:
        handler = self._handlers.get(task.task_type)
        error = None

        if handler is None:
            status = ScheduledTask.Status.FAILED
            error = f"No handler registered for {task.task_type}"
            logger.error("%s (task %s)", error, task.pk)
        else:
            try:
                acted = handler(task, now)
                status = ScheduledTask.Status.DONE if acted else ScheduledTask.Status.SKIPPED
            except Exception as exc:
                # best-effort path: record and carry on with the next task
                logger.exception("Escalation %s for order %s failed", task.task_type, task.order_id)
                status = ScheduledTask.Status.FAILED
                error = str(exc)

        ScheduledTask.objects.filter(pk=task.pk).update(status=status, last_error=error, processed_at=now)
        return status.value

    # ---- Built-in handlers ----

    def _handle_pending_timeout(self, task: ScheduledTask, now: datetime) -> bool:
        order = Order.objects.select_related("restaurant", "client").get(pk=task.order_id)
        if order.status != OrderStatus.PENDING.value:
            return False
        minutes = task.payload.get("timeout_minutes") or self.config.pending_order_timeout_minutes()
        return create_pending_order_notification(self.gateway, order, minutes) is not None

    def _handle_preparing_without_driver(self, task: ScheduledTask, now: datetime) -> bool:
        order = Order.objects.select_related("restaurant", "client").get(pk=task.order_id)
        if not order.is_delivery:
            return False
        waited = task.payload.get("waited_seconds", self.policy.preparing_without_driver_sec)
        return create_driver_assignment_notification(self.gateway, order, waited) is not None

    def _handle_preparation_grace(self, task: ScheduledTask, now: datetime) -> bool:
        grace = task.payload.get("grace_minutes", self.policy.preparation_grace_min)

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=task.order_id)
            if order.status != OrderStatus.PREPARING.value:
                return False

            order.preparation_time = (order.preparation_time or self.config.default_preparation_time_minutes()) + grace
            update_fields = ["preparation_time", "updated_at"]
            if order.estimated_delivery_time:
                order.estimated_delivery_time += timedelta(minutes=grace)
                update_fields.append("estimated_delivery_time")
            order.save(update_fields=update_fields)

        logger.info("Order %s still preparing, extended by %d min", order.pk, grace)
        return True

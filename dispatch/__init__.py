#Expose the high-level dispatch pieces:
#Dispatcher orchestrator (accept -> prepare -> assign -> deliver -> complete)
#Batch eligibility, nearby orders, driver cancellation
#Escalation scheduler and the one-call wiring (build_dispatch_services)

from .cancellation import CancellationHandler, CancellationResult
from .config import SystemConfigReader
from .dispatcher import ArrivalResult, AssignmentResult, Dispatcher
from .eligibility import BatchEligibilityChecker, EligibilityResult
from .exceptions import (
    BusinessRejection,
    DispatchError,
    DispatchInternalError,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailure,
)
from .nearby import NearbyOrderFinder, NearbyOrdersPage
from .notifications import LoggingNotificationGateway, NotificationGateway, WebhookNotificationGateway
from .policy import EscalationPolicy, default_escalation_policy
from .scheduler import EscalationScheduler, TaskType
from .services import DispatchServices, build_dispatch_services, get_dispatch_services

__all__ = [
    "Dispatcher",
    "AssignmentResult",
    "ArrivalResult",
    "BatchEligibilityChecker",
    "EligibilityResult",
    "NearbyOrderFinder",
    "NearbyOrdersPage",
    "CancellationHandler",
    "CancellationResult",
    "EscalationScheduler",
    "EscalationPolicy",
    "default_escalation_policy",
    "TaskType",
    "SystemConfigReader",
    "NotificationGateway",
    "LoggingNotificationGateway",
    "WebhookNotificationGateway",
    "DispatchServices",
    "build_dispatch_services",
    "get_dispatch_services",
    "DispatchError",
    "NotFound",
    "InvalidTransition",
    "Forbidden",
    "BusinessRejection",
    "ValidationFailure",
    "DispatchInternalError",
]

"""
Purpose: Wire the dispatch collaborators once.
Routing and notification transports are chosen here from settings, not at call sites.
"""

from dataclasses import dataclass
from typing import Optional

from django.conf import settings

from drivers.policy import DriverPolicy, default_driver_policy
from orders.batching import BatchingPolicy, default_policy
from routing.provider import RoutingProvider, build_routing_provider, clamp_timeout

from .cancellation import CancellationHandler
from .config import SystemConfigReader
from .dispatcher import Dispatcher
from .eligibility import BatchEligibilityChecker
from .nearby import NearbyOrderFinder
from .notifications import NotificationGateway, build_notification_gateway
from .policy import EscalationPolicy, default_escalation_policy
from .scheduler import EscalationScheduler


@dataclass
class DispatchServices:
    routing: RoutingProvider
    gateway: NotificationGateway
    config: SystemConfigReader
    scheduler: EscalationScheduler
    eligibility: BatchEligibilityChecker
    dispatcher: Dispatcher
    cancellations: CancellationHandler
    nearby: NearbyOrderFinder


def build_dispatch_services(routing: Optional[RoutingProvider] = None,
                            gateway: Optional[NotificationGateway] = None,
                            config: Optional[SystemConfigReader] = None,
                            batching_policy: Optional[BatchingPolicy] = None,
                            driver_policy: Optional[DriverPolicy] = None,
                            escalation_policy: Optional[EscalationPolicy] = None) -> DispatchServices:
    """
    Anything not passed in is built from Django settings.
    """
    batching_policy = batching_policy or default_policy()
    driver_policy = driver_policy or default_driver_policy()
    escalation_policy = escalation_policy or default_escalation_policy()

    raw_timeout = getattr(settings, "ROUTING_TIMEOUT", None)
    routing = routing or build_routing_provider(
        base_url=getattr(settings, "ROUTING_BASE_URL", None),
        timeout=clamp_timeout(raw_timeout) if raw_timeout else batching_policy.routing_timeout_sec,
    )
    gateway = gateway or build_notification_gateway(getattr(settings, "NOTIFICATION_WEBHOOK_URL", None))
    config = config or SystemConfigReader()

    scheduler = EscalationScheduler(gateway, config, escalation_policy)
    eligibility = BatchEligibilityChecker(routing, config, batching_policy)
    dispatcher = Dispatcher(routing, gateway, config, scheduler, eligibility, driver_policy)

    return DispatchServices(
        routing=routing,
        gateway=gateway,
        config=config,
        scheduler=scheduler,
        eligibility=eligibility,
        dispatcher=dispatcher,
        cancellations=CancellationHandler(gateway, config, driver_policy),
        nearby=NearbyOrderFinder(routing, eligibility, driver_policy),
    )


_services: Optional[DispatchServices] = None


def get_dispatch_services() -> DispatchServices:
    """Process-wide instance used by the HTTP layer and management commands."""
    global _services
    if _services is None:
        _services = build_dispatch_services()
    return _services

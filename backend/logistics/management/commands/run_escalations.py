import logging
import time

from django.core.management.base import BaseCommand

from dispatch.services import get_dispatch_services

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Sweep due escalation timers (pending timeout, auto start-preparing, no-driver alert, preparation grace)."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single sweep and exit.")
        parser.add_argument("--interval", type=float, default=None, help="Seconds between sweeps.")
        parser.add_argument("--limit", type=int, default=None, help="Maximum tasks per sweep.")

    def handle(self, *args, **options):
        scheduler = get_dispatch_services().scheduler
        interval = options["interval"] or scheduler.policy.sweep_interval_sec

        if options["once"]:
            outcome = scheduler.sweep(limit=options["limit"])
            self.stdout.write(self.style.SUCCESS(f"Sweep complete: {outcome}"))
            return

        self.stdout.write(f"Sweeping escalations every {interval}s (Ctrl+C to stop)")
        try:
            while True:
                scheduler.sweep(limit=options["limit"])
                time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Escalation worker stopped")

import logging
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from marketplace.notifications import get_notification_channel
from orders.nimbuspost_utils import NimbusPostAPI
from orders.relay import monitor_and_forward

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Forward orders that reached the warehouse to their buyers (one cycle, or --loop)"

    def add_arguments(self, parser):
        parser.add_argument("--loop", action="store_true", help="Keep running, one cycle every --interval seconds")
        parser.add_argument(
            "--interval",
            type=int,
            default=getattr(settings, "RELAY_MONITOR_INTERVAL", 900),
            help="Seconds between cycles in --loop mode",
        )
        parser.add_argument("--notifier", default=None, help="Notification backend (log, email, telegram)")

    def handle(self, *args, **options):
        courier = NimbusPostAPI()
        notifier = get_notification_channel(options["notifier"])

        while True:
            try:
                result = monitor_and_forward(courier, notifier)
                self.stdout.write(
                    f"Checked {result['checked']}, forwarded {result['forwarded']}, failed {result['failed']}"
                )
            except Exception as e:
                # Keep looping after a failed cycle
                logger.error(f"Relay monitor cycle failed: {str(e)}", exc_info=True)
                if not options["loop"]:
                    raise

            if not options["loop"]:
                break
            time.sleep(options["interval"])

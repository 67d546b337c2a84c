from django.core.management.base import BaseCommand, CommandError

from domains.shipments.scheduler import DEFAULT_SCHEDULER_NAME, build_tracking_scheduler


class Command(BaseCommand):
    help = "운송장 자동 추적 제어: start / stop / status / process"

    def add_arguments(self, parser):
        parser.add_argument("action", choices=["start", "stop", "status", "process"])
        parser.add_argument("--interval", type=int, default=None, help="polling interval (minutes)")
        parser.add_argument("--name", default=DEFAULT_SCHEDULER_NAME)

    def handle(self, *args, **opts):
        scheduler = build_tracking_scheduler(opts["name"])
        action = opts["action"]

        if action == "start":
            try:
                job = scheduler.start(opts["interval"])
            except ValueError as e:
                raise CommandError(str(e))
        elif action == "stop":
            job = scheduler.stop()
        elif action == "process":
            job = scheduler.process_tracking_updates()
        else:
            job = scheduler.status()

        if job is None:
            self.stdout.write("no tracking job")
            return

        self.stdout.write(
            f"{job.name}: status={job.status} interval={job.interval_minutes}m "
            f"last_run={job.last_run} next_run={job.next_run} "
            f"processed={job.orders_processed} errors={len(job.errors or [])}"
        )
        for err in job.errors or []:
            self.stdout.write(self.style.WARNING(f"  - {err}"))

"""
Django management command for the station reconciliation passes.

Usage:
    python manage.py reconcile_stations
    python manage.py reconcile_stations --platform <uuid>
    python manage.py reconcile_stations --radius-ips
"""

from django.core.management.base import BaseCommand, CommandError

from stations.models import Platform
from stations.tasks import reconcile_system_basis, sync_radius_client_ips


class Command(BaseCommand):
    help = "Re-run basis migration for stations whose router disagrees with the database"

    def add_arguments(self, parser):
        parser.add_argument(
            "--platform", help="Only reconcile stations of this platform id"
        )
        parser.add_argument(
            "--radius-ips",
            action="store_true",
            help="Re-resolve DDNS names and update FreeRADIUS client addresses instead",
        )

    def handle(self, *args, **options):
        platform = None
        if options["platform"]:
            platform = Platform.objects.filter(id=options["platform"]).first()
            if platform is None:
                raise CommandError(f"Platform {options['platform']} not found")

        if options["radius_ips"]:
            self.stdout.write("🔄 Syncing RADIUS client addresses...")
            result = sync_radius_client_ips(platform=platform)
            summary = (
                f"checked={result['checked']} updated={result['updated']} "
                f"unresolved={result['unresolved']} failed={result['failed']}"
            )
        else:
            self.stdout.write("🔄 Reconciling station system basis...")
            result = reconcile_system_basis(platform=platform)
            summary = (
                f"checked={result['checked']} reconciled={result['reconciled']} "
                f"unreachable={result['unreachable']} failed={result['failed']}"
            )

        for error in result["errors"]:
            self.stdout.write(self.style.ERROR(f"  ✗ {error}"))
        if result["success"]:
            self.stdout.write(self.style.SUCCESS(f"✓ Done: {summary}"))
        else:
            self.stdout.write(self.style.WARNING(f"Done with failures: {summary}"))

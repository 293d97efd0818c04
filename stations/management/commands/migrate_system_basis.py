"""
Django management command to switch a station between API and RADIUS basis.

Usage:
    python manage.py migrate_system_basis --station 12 --target RADIUS
    python manage.py migrate_system_basis --station 12 --target API
"""

import json

from django.core.management.base import BaseCommand, CommandError

from stations.migration import SystemBasisMigrator, normalize_target
from stations.models import Station


class Command(BaseCommand):
    help = "Migrate a station's authentication backend (API <-> RADIUS)"

    def add_arguments(self, parser):
        parser.add_argument("--station", type=int, required=True, help="Station id")
        parser.add_argument(
            "--target", required=True, help="Target basis: API or RADIUS"
        )
        parser.add_argument(
            "--json", action="store_true", help="Print the run summary as JSON"
        )

    def handle(self, *args, **options):
        target = normalize_target(options["target"])
        if target is None:
            raise CommandError("Invalid target basis, use API or RADIUS")

        try:
            station = Station.objects.select_related("platform").get(id=options["station"])
        except Station.DoesNotExist:
            raise CommandError(f"Station {options['station']} not found")

        self.stdout.write(f"Migrating {station.display_name} to {target}...")
        summary = SystemBasisMigrator(station).run(target)

        if options["json"]:
            self.stdout.write(json.dumps(summary, indent=2))

        for warning in summary["warnings"]:
            self.stdout.write(self.style.WARNING(f"  ⚠ {warning}"))
        for error in summary["errors"]:
            self.stdout.write(self.style.ERROR(f"  ✗ {error}"))

        line = (
            f"users={summary['users_migrated']} pppoe={summary['pppoe_migrated']} "
            f"packages={summary['packages_updated']} router={summary['router_configured']}"
        )
        if summary["errors"]:
            self.stdout.write(self.style.ERROR(f"Migration to {target} finished with errors ({line})"))
        else:
            self.stdout.write(self.style.SUCCESS(f"✓ Migration to {target} completed ({line})"))

from django.core.management.base import BaseCommand, CommandError

from countries_api.exceptions import CountryCacheError
from countries_api.services import get_refresher


class Command(BaseCommand):
    help = 'Refresh countries and exchange rates from the external APIs'

    def handle(self, *args, **options):
        try:
            result = get_refresher().refresh()
        except CountryCacheError as exc:
            raise CommandError(f"Refresh failed: {exc}") from exc

        self.stdout.write(self.style.SUCCESS(
            f"{result.message}: {result.total_countries} countries "
            f"at {result.last_refreshed_at.isoformat()}"
        ))

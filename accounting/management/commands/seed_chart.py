# accounting/management/commands/seed_chart.py


from django.core.management.base import BaseCommand, CommandError

from accounting.chart import seed_chart
from accounts.models import Company


class Command(BaseCommand):
    help = "Seed the default chart of accounts and current fiscal year for a company"

    def add_arguments(self, parser):
        parser.add_argument("company", help="Company slug")

    def handle(self, *args, **options):
        try:
            company = Company.objects.get(slug=options["company"])
        except Company.DoesNotExist:
            raise CommandError(f"Company '{options['company']}' not found.")

        result = seed_chart(company)
        fiscal_year_name = result["fiscal_year"]

        self.stdout.write(self.style.SUCCESS(
            f"Done! Created {result['groups_created']} groups, "
            f"{result['ledgers_created']} ledgers"
            + (f", fiscal year {fiscal_year_name}." if fiscal_year_name else ".")
        ))

# reports/management/commands/export_report.py

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from accounting.exports import export_report
from reports.aging import generate_aging
from reports.balance_sheet import generate_balance_sheet
from reports.cash_flow import generate_cash_flow
from reports.ledger_statement import generate_ledger_statement
from reports.profit_loss import generate_profit_loss
from reports.serializers import ReportRequestSerializer
from reports.trial_balance import generate_trial_balance

GENERATORS = {
    "trial_balance": generate_trial_balance,
    "balance_sheet": generate_balance_sheet,
    "profit_loss": generate_profit_loss,
    "cash_flow": generate_cash_flow,
    "aging": generate_aging,
    "ledger_statement": generate_ledger_statement,
}


def _flatten_errors(errors, prefix="") -> list[str]:
    messages = []
    if isinstance(errors, dict):
        for key, value in errors.items():
            label = "" if key == "non_field_errors" else f"{key}: "
            messages.extend(_flatten_errors(value, label))
    elif isinstance(errors, list):
        for value in errors:
            messages.extend(_flatten_errors(value, prefix))
    else:
        messages.append(f"{prefix}{errors}")
    return messages


class Command(BaseCommand):
    help = "Generate a report for a company and write it as xlsx, csv or txt"

    def add_arguments(self, parser):
        parser.add_argument("report", choices=sorted(GENERATORS))
        parser.add_argument("--company", required=True, help="Company slug")
        parser.add_argument("--as-of", dest="as_of")
        parser.add_argument("--start")
        parser.add_argument("--end")
        parser.add_argument("--fiscal-year", dest="fiscal_year", type=int)
        parser.add_argument("--type", default="receivables", help="Aging type: receivables or payables")
        parser.add_argument("--party", type=int, help="Aging: only this party")
        parser.add_argument("--ledger", type=int, help="Ledger id for the ledger statement")
        parser.add_argument("--compare", action="store_true")
        parser.add_argument("--include-unapproved", dest="include_unapproved", action="store_true")
        parser.add_argument("--format", default="xlsx")
        parser.add_argument("--output", default="", help="Output path (default: <report>_<company>_<date>.<format>)")

    def handle(self, *args, **options):
        params = {
            key: options[key]
            for key in (
                "report", "company", "as_of", "start", "end", "fiscal_year", "type",
                "party", "ledger", "compare", "include_unapproved", "format", "output",
            )
            if options.get(key) is not None
        }
        serializer = ReportRequestSerializer(data=params)
        if not serializer.is_valid():
            raise CommandError("; ".join(_flatten_errors(serializer.errors)))

        data = serializer.validated_data
        report_name = data["report"]
        fmt = data["format"]
        company = data["company"]

        report = GENERATORS[report_name](**serializer.generator_kwargs())
        content = export_report(report_name, report, fmt)

        output = data["output"] or f"{report_name}_{company.slug}_{timezone.localdate():%Y%m%d}.{fmt}"
        path = Path(output)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")

        self.stdout.write(self.style.SUCCESS(f"Done! Wrote {report_name} to {path}."))

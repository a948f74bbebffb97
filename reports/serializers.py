from rest_framework import serializers

from accounting.exports import REPORT_EXPORTS, ExportFormat
from accounting.models import Ledger
from accounts.models import Company
from reports.aging import DOCUMENT_MODELS


class ReportRequestSerializer(serializers.Serializer):
    """
    Parameters of a report run. Resolves the company slug and the ledger,
    and rejects combinations the generators would refuse.
    """

    report = serializers.ChoiceField(choices=sorted(REPORT_EXPORTS))
    company = serializers.SlugField()
    as_of = serializers.DateField(required=False, allow_null=True)
    start = serializers.DateField(required=False, allow_null=True)
    end = serializers.DateField(required=False, allow_null=True)
    fiscal_year = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    type = serializers.ChoiceField(choices=sorted(DOCUMENT_MODELS), default="receivables")
    party = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    ledger = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    compare = serializers.BooleanField(default=False)
    include_unapproved = serializers.BooleanField(default=False)
    format = serializers.ChoiceField(choices=ExportFormat.CHOICES, default=ExportFormat.EXCEL)
    output = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_company(self, value: str):
        company = Company.objects.filter(slug=value, is_active=True).first()
        if company is None:
            raise serializers.ValidationError(f"Company '{value}' not found.")
        return company

    def validate(self, attrs):
        start = attrs.get("start")
        end = attrs.get("end")
        if start and end and start > end:
            raise serializers.ValidationError({"start": "Start date must be on or before end date."})

        if attrs["report"] == "ledger_statement":
            ledger_id = attrs.get("ledger")
            if ledger_id is None:
                raise serializers.ValidationError({"ledger": "A ledger is required for the ledger statement."})
            if not Ledger.objects.filter(pk=ledger_id, company=attrs["company"]).exists():
                raise serializers.ValidationError({"ledger": "Ledger not found."})
        return attrs

    def generator_kwargs(self) -> dict:
        """Keyword arguments for the generator named by 'report'."""
        data = self.validated_data
        company = data["company"]
        report = data["report"]
        include_unapproved = data["include_unapproved"]

        if report == "trial_balance":
            return {
                "company": company,
                "as_of": data.get("as_of"),
                "fiscal_year": data.get("fiscal_year"),
                "include_unapproved": include_unapproved,
            }
        if report == "balance_sheet":
            return {
                "company": company,
                "as_of": data.get("as_of"),
                "fiscal_year": data.get("fiscal_year"),
                "compare": data["compare"],
                "include_unapproved": include_unapproved,
            }
        if report == "profit_loss":
            return {
                "company": company,
                "start": data.get("start"),
                "end": data.get("end"),
                "compare": data["compare"],
                "include_unapproved": include_unapproved,
            }
        if report == "cash_flow":
            return {
                "company": company,
                "start": data.get("start"),
                "end": data.get("end"),
                "include_unapproved": include_unapproved,
            }
        if report == "aging":
            return {
                "company": company,
                "as_of": data.get("as_of"),
                "report_type": data["type"],
                "party_id": data.get("party"),
            }
        return {
            "company": company,
            "ledger_id": data["ledger"],
            "start": data.get("start"),
            "end": data.get("end"),
            "include_unapproved": include_unapproved,
        }

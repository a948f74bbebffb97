# accounting/serializers.py
"""
Input serializers for voucher commands.

Commands validate raw entry dicts here before touching the database.
The business decision (status, numbering, events) still happens in
commands.py.
"""

from decimal import Decimal

from rest_framework import serializers

from accounting.models import Ledger, Voucher
from accounting.policies import balance_tolerance, can_post_to_ledger


MONEY_Q = Decimal("0.01")


def first_error(errors) -> str:
    """Flatten DRF's nested error structure to its first message."""
    if isinstance(errors, dict):
        for key, value in errors.items():
            message = first_error(value)
            if key in ("non_field_errors", "__all__"):
                return message
            return f"{key}: {message}"
    if isinstance(errors, (list, tuple)):
        for value in errors:
            if value:
                return first_error(value)
        return ""
    return str(errors)


class VoucherEntryInputSerializer(serializers.Serializer):
    ledger_id = serializers.IntegerField()
    debit = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, default=Decimal("0.00"))
    credit = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, default=Decimal("0.00"))
    narration = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    cost_center = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    project = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class VoucherInputSerializer(serializers.Serializer):
    """
    Validates a voucher before any write.

    Context:
        company: The owning company (required)
        require_balanced: False for drafts, which may be unbalanced and
            may have a single entry
    """

    voucher_type = serializers.ChoiceField(choices=Voucher.VoucherType.choices)
    date = serializers.DateField()
    narration = serializers.CharField(required=False, allow_blank=True, default="")
    reference_no = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    fiscal_year_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    entries = VoucherEntryInputSerializer(many=True)

    def validate(self, attrs):
        company = self.context["company"]
        require_balanced = self.context.get("require_balanced", True)
        entries = attrs.get("entries") or []

        minimum = 2 if require_balanced else 1
        if len(entries) < minimum:
            raise serializers.ValidationError(
                f"Voucher must have at least {minimum} {'entries' if minimum > 1 else 'entry'}."
            )

        total_debit = Decimal("0.00")
        total_credit = Decimal("0.00")
        for i, entry in enumerate(entries, start=1):
            debit = entry["debit"]
            credit = entry["credit"]
            if debit < 0 or credit < 0:
                raise serializers.ValidationError(f"Entry {i}: negative debit/credit is not allowed.")
            if debit == 0 and credit == 0:
                raise serializers.ValidationError(f"Entry {i}: debit or credit must be non-zero.")
            if debit > 0 and credit > 0:
                raise serializers.ValidationError(f"Entry {i}: cannot have both debit and credit > 0.")
            total_debit += debit
            total_credit += credit

        ledger_ids = {entry["ledger_id"] for entry in entries}
        ledgers = {
            ledger.pk: ledger
            for ledger in Ledger.objects.filter(company=company, pk__in=ledger_ids).select_related("group")
        }
        for i, entry in enumerate(entries, start=1):
            ledger = ledgers.get(entry["ledger_id"])
            if ledger is None:
                raise serializers.ValidationError(f"Entry {i}: ledger {entry['ledger_id']} not found.")
            allowed, reason = can_post_to_ledger(ledger)
            if not allowed:
                raise serializers.ValidationError(f"Entry {i}: {reason}")
            entry["ledger"] = ledger

        if require_balanced and abs(total_debit - total_credit) >= balance_tolerance():
            raise serializers.ValidationError(
                f"Voucher is not balanced. Debit={total_debit.quantize(MONEY_Q)} "
                f"Credit={total_credit.quantize(MONEY_Q)}"
            )

        attrs["total_debit"] = total_debit.quantize(MONEY_Q)
        attrs["total_credit"] = total_credit.quantize(MONEY_Q)
        return attrs

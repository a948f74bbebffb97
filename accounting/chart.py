# accounting/chart.py
"""
Chart-of-accounts tree and the default chart.

The tree is built in memory from one flat fetch of groups and one of
ledgers; reports roll balances up this structure instead of issuing a
query per level.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.utils import timezone

from accounts.models import Company
from accounting.models import FiscalYear, Ledger, LedgerGroup, Nature
from events.emitter import emit_event
from events.types import ChartSeededData, EventTypes
from ops.write_barrier import bootstrap_writes_allowed

logger = logging.getLogger(__name__)


class ChartIntegrityError(Exception):
    """Raised when the stored group hierarchy contains a cycle."""
    pass


@dataclass
class GroupNode:
    group: LedgerGroup
    children: list["GroupNode"] = field(default_factory=list)
    ledgers: list[Ledger] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.group.pk

    @property
    def name(self) -> str:
        return self.group.name

    @property
    def nature(self) -> str:
        return self.group.nature

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def all_ledgers(self) -> list[Ledger]:
        return [ledger for node in self.walk() for ledger in node.ledgers]

    def to_dict(self) -> dict:
        return {
            "id": self.group.pk,
            "public_id": str(self.group.public_id),
            "name": self.group.name,
            "nature": self.group.nature,
            "sequence": self.group.sequence,
            "affects_gross_profit": self.group.affects_gross_profit,
            "is_system": self.group.is_system,
            "is_cash_or_bank": self.group.is_cash_or_bank,
            "children": [child.to_dict() for child in self.children],
            "ledgers": [
                {
                    "id": ledger.pk,
                    "public_id": str(ledger.public_id),
                    "name": ledger.name,
                    "code": ledger.code,
                    "is_active": ledger.is_active,
                }
                for ledger in self.ledgers
            ],
        }


def _resolve_company(company) -> Company:
    if isinstance(company, Company):
        return company
    return Company.objects.get(pk=company)


def get_group_tree(company, nature: Optional[str] = None, include_inactive: bool = False) -> list[GroupNode]:
    """
    Build the group forest for a company.

    Args:
        company: Company instance or primary key
        nature: Only return the subtrees of this nature
        include_inactive: Also attach inactive ledgers

    Returns:
        Root GroupNodes in (sequence, name) order

    Raises:
        Company.DoesNotExist: Unknown company
        ChartIntegrityError: The stored parent links form a cycle
    """
    company = _resolve_company(company)

    groups = LedgerGroup.objects.filter(company=company)
    if nature:
        groups = groups.filter(nature=nature)
    nodes = {g.pk: GroupNode(group=g) for g in groups.order_by("sequence", "name", "id")}

    roots = []
    for node in nodes.values():
        parent_id = node.group.parent_id
        if parent_id is None or parent_id not in nodes:
            roots.append(node)
        else:
            nodes[parent_id].children.append(node)

    # Nodes on a cycle are never reachable from a root
    reachable = sum(1 for root in roots for _ in root.walk())
    if reachable != len(nodes):
        raise ChartIntegrityError(
            f"Ledger group hierarchy for company {company.pk} contains a cycle."
        )

    ledgers = Ledger.objects.filter(company=company, group_id__in=list(nodes))
    if not include_inactive:
        ledgers = ledgers.filter(is_active=True)
    for ledger in ledgers.order_by("name", "id"):
        nodes[ledger.group_id].ledgers.append(ledger)

    logger.debug("Built group tree for company %s: %d groups", company.pk, len(nodes))
    return roots


def find_node(roots: list[GroupNode], group_id: int) -> Optional[GroupNode]:
    for root in roots:
        for node in root.walk():
            if node.id == group_id:
                return node
    return None


def group_ancestry(groups_by_id: dict, group_id: int) -> list[LedgerGroup]:
    """
    The group and its ancestors, nearest first.

    Raises:
        ChartIntegrityError: If a cycle is found while climbing
    """
    chain = []
    seen = set()
    current = groups_by_id.get(group_id)
    while current is not None:
        if current.pk in seen:
            raise ChartIntegrityError(f"Ledger group {group_id} has a cyclic ancestry.")
        seen.add(current.pk)
        chain.append(current)
        current = groups_by_id.get(current.parent_id)
    return chain


def effective_affects_gross_profit(groups_by_id: dict, group_id: int) -> bool:
    """A group counts as direct cost if it, or any ancestor, is flagged."""
    return any(g.affects_gross_profit for g in group_ancestry(groups_by_id, group_id))


CASH_OR_BANK_GROUP_NAMES = frozenset({"Cash-in-Hand", "Bank Accounts", "Cash", "Bank", "Cash & Bank"})


def is_cash_or_bank_group(groups_by_id: dict, group_id: int) -> bool:
    return any(
        g.is_cash_or_bank or g.name in CASH_OR_BANK_GROUP_NAMES
        for g in group_ancestry(groups_by_id, group_id)
    )


# =============================================================================
# Default Chart
# =============================================================================

# (name, nature, parent, sequence, flags)
DEFAULT_GROUPS = [
    ("Assets", Nature.ASSETS, None, 1, {}),
    ("Current Assets", Nature.ASSETS, "Assets", 1, {}),
    ("Cash & Bank", Nature.ASSETS, "Current Assets", 1, {"is_cash_or_bank": True}),
    ("Sundry Debtors", Nature.ASSETS, "Current Assets", 2, {}),
    ("Stock-in-Hand", Nature.ASSETS, "Current Assets", 3, {}),
    ("Fixed Assets", Nature.ASSETS, "Assets", 2, {}),
    ("Liabilities", Nature.LIABILITIES, None, 2, {}),
    ("Current Liabilities", Nature.LIABILITIES, "Liabilities", 1, {}),
    ("Sundry Creditors", Nature.LIABILITIES, "Current Liabilities", 1, {}),
    ("Duties & Taxes", Nature.LIABILITIES, "Current Liabilities", 2, {}),
    ("Loans (Liability)", Nature.LIABILITIES, "Liabilities", 2, {}),
    ("Capital Account", Nature.EQUITY, None, 3, {}),
    ("Income", Nature.INCOME, None, 4, {}),
    ("Sales Accounts", Nature.INCOME, "Income", 1, {}),
    ("Other Income", Nature.INCOME, "Income", 2, {}),
    ("Expenses", Nature.EXPENSES, None, 5, {}),
    ("Direct Expenses", Nature.EXPENSES, "Expenses", 1, {"affects_gross_profit": True}),
    ("Indirect Expenses", Nature.EXPENSES, "Expenses", 2, {}),
]

# (name, group)
DEFAULT_LEDGERS = [
    ("Cash in Hand", "Cash & Bank"),
    ("GST Input", "Duties & Taxes"),
    ("GST Output", "Duties & Taxes"),
    ("TDS Payable", "Duties & Taxes"),
    ("Sales - Goods", "Sales Accounts"),
    ("Sales - Services", "Sales Accounts"),
    ("Purchase Accounts", "Direct Expenses"),
    ("Salaries & Wages", "Indirect Expenses"),
    ("Rent", "Indirect Expenses"),
    ("Electricity", "Indirect Expenses"),
    ("Office Expenses", "Indirect Expenses"),
]


def _current_fiscal_year_bounds(company: Company, today: date) -> tuple[str, date, date]:
    month = company.fiscal_year_start_month or 4
    start_year = today.year if today.month >= month else today.year - 1
    start = date(start_year, month, 1)
    if month == 1:
        end = date(start_year, 12, 31)
        name = f"FY {start_year}"
    else:
        end = date(start_year + 1, month, 1) - timedelta(days=1)
        name = f"FY {start_year}-{str(start_year + 1)[-2:]}"
    return name, start, end


@transaction.atomic
def seed_chart(company: Company, user=None, today: Optional[date] = None) -> dict:
    """
    Install the default chart of accounts and the current fiscal year.

    Idempotent: groups and ledgers are matched by name, and the fiscal
    year is only created when none covers today.

    Returns:
        {"groups_created": int, "ledgers_created": int, "fiscal_year": str | None}
    """
    today = today or timezone.localdate()
    groups_created = 0
    ledgers_created = 0
    fiscal_year_name = None

    with bootstrap_writes_allowed():
        groups = {}
        for name, nature, parent_name, sequence, flags in DEFAULT_GROUPS:
            group, created = LedgerGroup.objects.get_or_create(
                company=company,
                name=name,
                defaults={
                    "nature": nature,
                    "parent": groups.get(parent_name),
                    "sequence": sequence,
                    "is_system": True,
                    **flags,
                },
            )
            groups[name] = group
            groups_created += int(created)

        for name, group_name in DEFAULT_LEDGERS:
            _, created = Ledger.objects.get_or_create(
                company=company,
                name=name,
                defaults={
                    "group": groups[group_name],
                    "opening_balance": Decimal("0.00"),
                },
            )
            ledgers_created += int(created)

        if not FiscalYear.objects.filter(
            company=company, start_date__lte=today, end_date__gte=today
        ).exists():
            name, start, end = _current_fiscal_year_bounds(company, today)
            overlaps = FiscalYear.objects.filter(
                company=company, start_date__lte=end, end_date__gte=start
            ).exists()
            if not overlaps and not FiscalYear.objects.filter(company=company, name=name).exists():
                FiscalYear.objects.create(company=company, name=name, start_date=start, end_date=end)
                fiscal_year_name = name

    summary = {
        "groups_created": groups_created,
        "ledgers_created": ledgers_created,
        "fiscal_year": fiscal_year_name,
    }

    if groups_created or ledgers_created or fiscal_year_name:
        emit_event(
            company=company,
            user=user,
            event_type=EventTypes.CHART_SEEDED,
            aggregate_type="Company",
            aggregate_id=str(company.public_id),
            idempotency_key=f"chart.seeded:{company.public_id}:{groups_created}:{ledgers_created}:{fiscal_year_name}",
            data=ChartSeededData(**summary),
        )
        logger.info(
            "Seeded chart for %s: %d groups, %d ledgers, fiscal year %s",
            company.slug, groups_created, ledgers_created, fiscal_year_name,
        )
    return summary

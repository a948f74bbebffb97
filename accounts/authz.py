# accounts/authz.py
"""
Actor context for the command layer.

Callers authenticate and authorize before reaching the ledger engine.
Commands only need to know who is acting and in which company, so that
every read and write is scoped to that tenant and every voucher records
its creator and approver.
"""

from dataclasses import dataclass
from typing import Optional

from accounts.models import Company


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor (user + company).

    Attributes:
        user: The acting user
        company: The active company (tenant)
    """
    user: Optional[object]
    company: Company

    @property
    def user_id(self) -> Optional[int]:
        return getattr(self.user, "id", None)

    @property
    def user_email(self) -> str:
        return getattr(self.user, "email", "") or ""

# tests/test_write_barrier.py
"""
Tests for write barrier enforcement.
"""

import pytest

from accounting.commands import create_ledger_group
from accounting.models import CompanySequence, LedgerGroup, Nature
from ops.write_barrier import (
    admin_emergency_writes_allowed,
    bootstrap_writes_allowed,
    command_writes_allowed,
    current_write_context,
)


@pytest.mark.django_db
def test_direct_model_create_raises(settings, company):
    settings.TESTING = False

    with pytest.raises(RuntimeError, match="Direct saves are only allowed"):
        LedgerGroup.objects.create(company=company, name="Rogue", nature=Nature.ASSETS)


@pytest.mark.django_db
def test_direct_update_and_delete_raise(settings, company):
    with bootstrap_writes_allowed():
        group = LedgerGroup.objects.create(company=company, name="Barrier", nature=Nature.ASSETS)

    settings.TESTING = False

    group.name = "Barrier Updated"
    with pytest.raises(RuntimeError, match="Direct saves"):
        group.save()
    with pytest.raises(RuntimeError, match="Direct updates"):
        LedgerGroup.objects.filter(pk=group.pk).update(name="Bulk")
    with pytest.raises(RuntimeError, match="Direct deletes"):
        group.delete()


@pytest.mark.django_db
def test_command_context_allows_writes(settings, company):
    settings.TESTING = False

    with pytest.raises(RuntimeError, match="command_writes_allowed"):
        CompanySequence.objects.create(company=company, name="voucher:PAYMENT")

    with command_writes_allowed():
        seq = CompanySequence.objects.create(company=company, name="voucher:PAYMENT")

    assert seq.company_id == company.id


@pytest.mark.django_db
def test_commands_write_through_the_barrier(settings, actor):
    settings.TESTING = False

    result = create_ledger_group(actor, name="Deposits", nature=Nature.ASSETS)

    assert result.success, result.error
    assert LedgerGroup.objects.filter(company=actor.company, name="Deposits").exists()


@pytest.mark.django_db
def test_admin_emergency_writes_gated_by_setting(settings, company):
    settings.TESTING = False
    settings.ALLOW_ADMIN_EMERGENCY_WRITES = False

    with pytest.raises(RuntimeError, match="disabled"):
        with admin_emergency_writes_allowed():
            pass

    settings.ALLOW_ADMIN_EMERGENCY_WRITES = True
    with admin_emergency_writes_allowed():
        LedgerGroup.objects.create(company=company, name="Repair", nature=Nature.LIABILITIES)

    assert LedgerGroup.objects.filter(company=company, name="Repair").exists()


def test_contexts_nest_and_unwind():
    assert current_write_context() is None

    with command_writes_allowed():
        with bootstrap_writes_allowed():
            assert current_write_context() == "bootstrap"
        assert current_write_context() == "command"

    assert current_write_context() is None


def test_context_unwinds_on_error():
    with pytest.raises(KeyError):
        with command_writes_allowed():
            raise KeyError("boom")

    assert current_write_context() is None

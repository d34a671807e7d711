from decimal import Decimal

import pytest

from conftest import make_agent, make_invoice, make_lead
from backoffice.services.stats import (
    StatRecord,
    StatsKind,
    commission_of,
    rollup,
    stats_for,
)


def test_agent_scenario_mixes_populated_and_raw_refs() -> None:
    leads = [
        {"agent": {"_id": "A1"}, "status": "logged", "loanAmount": 50000},
        {"agent": "A1", "status": "completed", "loanAmount": 30000},
    ]
    invoices = [{"agent": "A1", "commissionAmount": 500}]

    record = stats_for("agent", "A1", leads=leads, invoices=invoices)

    assert record == StatRecord(
        total=2,
        active=1,
        completed=1,
        commission_sum=Decimal("500"),
        amount_sum=Decimal("80000"),
    )


@pytest.mark.parametrize("target", [None, "", {"name": "no id"}])
def test_empty_target_returns_zero_record(target) -> None:
    leads = [make_lead(agent=None, agentId=None)]
    assert stats_for(StatsKind.AGENT, target, leads=leads, invoices=[make_invoice()]) == StatRecord()


@pytest.mark.parametrize(
    "invoice, expected",
    [
        ({"commissionAmount": 100, "netPayable": 200}, Decimal("100")),
        ({"commissionAmount": None, "netPayable": 200}, Decimal("200")),
        ({"amount": 75}, Decimal("75")),
        ({}, Decimal("0")),
        ({"commissionAmount": 0, "netPayable": 200}, Decimal("0")),
    ],
)
def test_commission_fallback(invoice, expected) -> None:
    assert commission_of(invoice) == expected


def test_novel_status_counts_as_active() -> None:
    leads = [make_lead(status="sanctioned"), make_lead(status=None), make_lead(status="REJECTED")]
    record = stats_for("agent", "A1", leads=leads)
    assert record.total == 3
    assert record.active == 2
    assert record.completed == 0


def test_status_comparison_ignores_case() -> None:
    record = stats_for("agent", "A1", leads=[make_lead(status=" Completed ")])
    assert record.completed == 1
    assert record.active == 0


def test_malformed_numbers_count_as_zero() -> None:
    leads = [
        make_lead(loanAmount="abc"),
        make_lead(loanAmount="1,500"),
        make_lead(loanAmount=float("nan")),
        make_lead(loanAmount=None),
    ]
    invoices = [make_invoice(commissionAmount="oops"), make_invoice(commissionAmount="250.50")]
    record = stats_for("agent", "A1", leads=leads, invoices=invoices)
    assert record.amount_sum == Decimal("1500")
    assert record.commission_sum == Decimal("250.50")


def test_flat_and_legacy_agent_fields() -> None:
    leads = [
        make_lead(agent=None, agentId="A1"),
        make_lead(agent=None, agent_id="A1"),
        make_lead(agent={"id": "A1"}),
        make_lead(agent="A2"),
    ]
    assert stats_for("agent", {"_id": "A1"}, leads=leads).total == 3


def test_franchise_leads_prefer_polymorphic_association() -> None:
    leads = [
        make_lead(associated={"_id": "F2"}, associatedModel="Franchise", franchise="F1"),
        make_lead(associated="RM1", associatedModel="RelationshipManager", franchise="F2"),
        make_lead(franchise={"_id": "F2"}),
        make_lead(franchise=None, franchiseId="F2"),
    ]
    invoices = [make_invoice(franchise="F2", commissionAmount=None, netPayable=120)]
    record = stats_for("franchise", "F2", leads=leads, invoices=invoices)
    assert record.total == 4
    assert record.commission_sum == Decimal("120")


def test_franchise_invoices_match_direct_link_only() -> None:
    invoices = [
        make_invoice(franchise="F2", commissionAmount=100),
        make_invoice(franchise="F1", associated="F2", associatedModel="Franchise", commissionAmount=900),
        make_invoice(franchise=None, franchiseId="F2", commissionAmount=50),
    ]
    record = stats_for("franchise", "F2", leads=[], invoices=invoices)
    assert record.commission_sum == Decimal("150")


def test_bank_stats() -> None:
    leads = [make_lead(bank={"_id": "B1"}), make_lead(bank=None, bankId="B1"), make_lead(bank="B2")]
    record = stats_for(StatsKind.BANK, "B1", leads=leads)
    assert record.total == 2
    assert record.amount_sum == Decimal("100000")


def test_unknown_kind_returns_zero_record() -> None:
    assert stats_for("branch", "A1", leads=[make_lead()]) == StatRecord()


def test_stats_are_recomputed_on_each_call() -> None:
    leads = [make_lead()]
    first = stats_for("agent", "A1", leads=leads)
    leads.append(make_lead(_id="lead-2"))
    second = stats_for("agent", "A1", leads=leads)
    assert (first.total, second.total) == (1, 2)


def test_franchise_rollup_counts_agents_and_totals() -> None:
    franchises = [{"_id": "F1", "name": "North Zone"}, {"_id": "F2", "name": "South Zone"}, {"name": "ghost"}]
    leads = [make_lead(franchise="F1"), make_lead(franchise="F2", status="completed", loanAmount=20000)]
    invoices = [make_invoice(franchise="F1", commissionAmount=300), make_invoice(franchise="F2", commissionAmount=200)]
    agents = [make_agent(_id="A1"), make_agent(_id="A2"), make_agent(_id="A3", managedBy="F2")]

    result = rollup("franchise", franchises, leads=leads, invoices=invoices, agents=agents)

    assert [row.id for row in result.rows] == ["F1", "F2"]
    assert [row.agent_count for row in result.rows] == [2, 1]
    assert result.rows[0].name == "North Zone"
    assert result.totals.total == 2
    assert result.totals.completed == 1
    assert result.totals.commission_sum == Decimal("500")
    assert result.totals.amount_sum == Decimal("70000")
    assert result.agent_count == 3


def test_relationship_manager_rollup_has_agent_counts_only() -> None:
    managers = [{"_id": "RM1", "name": "rm1"}]
    agents = [make_agent(_id="A1", managedBy="RM1", managedByModel="RelationshipManager")]
    result = rollup(StatsKind.RELATIONSHIP_MANAGER, managers, leads=[make_lead()], agents=agents)
    assert result.rows[0].stats == StatRecord()
    assert result.rows[0].agent_count == 1


def test_agent_rollup_has_no_agent_counts() -> None:
    result = rollup("agent", [make_agent()], leads=[make_lead()], invoices=[make_invoice()])
    assert result.rows[0].agent_count is None
    assert result.agent_count is None
    assert result.totals.commission_sum == Decimal("500")

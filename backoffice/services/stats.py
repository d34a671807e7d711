from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Iterable

from backoffice.services.identity import field_of, first_key, key_of, ref_name
from backoffice.services.ownership import Owner, OwnerKind, managed_agents, parse_owner_kind

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Lead statuses that close a lead; anything else, including unknown values, is active.
COMPLETED_STATUS = "completed"
CLOSED_STATUSES = frozenset({COMPLETED_STATUS, "rejected"})

COMMISSION_FIELDS = ("commissionAmount", "netPayable", "amount")


class StatsKind(str, Enum):
    AGENT = "agent"
    FRANCHISE = "franchise"
    BANK = "bank"
    RELATIONSHIP_MANAGER = "relationship_manager"


@dataclass(frozen=True)
class StatRecord:
    total: int = 0
    active: int = 0
    completed: int = 0
    commission_sum: Decimal = ZERO
    amount_sum: Decimal = ZERO

    def __add__(self, other: StatRecord) -> StatRecord:
        return StatRecord(
            total=self.total + other.total,
            active=self.active + other.active,
            completed=self.completed + other.completed,
            commission_sum=self.commission_sum + other.commission_sum,
            amount_sum=self.amount_sum + other.amount_sum,
        )


@dataclass(frozen=True)
class RollupRow:
    id: str
    name: str
    stats: StatRecord
    agent_count: int | None = None


@dataclass(frozen=True)
class Rollup:
    kind: StatsKind
    rows: list[RollupRow] = field(default_factory=list)
    totals: StatRecord = field(default_factory=StatRecord)
    agent_count: int | None = None


def _as_decimal(value: Any) -> Decimal:
    """Coerce a backend numeric field; anything malformed or non-finite becomes 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def commission_of(invoice: Any) -> Decimal:
    """First present, non-null commission figure on an invoice.

    A recorded 0 is a real value and stops the fallback.
    """
    for name in COMMISSION_FIELDS:
        value = field_of(invoice, name)
        if value is not None:
            return _as_decimal(value)
    return ZERO


def status_of(lead: Any) -> str:
    status = field_of(lead, "status")
    if status is None:
        return ""
    return str(status).strip().lower()


def _agent_key(record: Any) -> str:
    return first_key(
        field_of(record, "agent"),
        field_of(record, "agentId"),
        field_of(record, "agent_id"),
    )


def _franchise_invoice_key(record: Any) -> str:
    return first_key(
        field_of(record, "franchise"),
        field_of(record, "franchiseId"),
        field_of(record, "franchise_id"),
    )


def _franchise_key(record: Any) -> str:
    if parse_owner_kind(field_of(record, "associatedModel")) is OwnerKind.FRANCHISE:
        associated = key_of(field_of(record, "associated"))
        if associated:
            return associated
    return _franchise_invoice_key(record)


def _bank_key(record: Any) -> str:
    return first_key(
        field_of(record, "bank"),
        field_of(record, "bankId"),
        field_of(record, "bank_id"),
    )


_OWNER_KEYS: dict[StatsKind, Callable[[Any], str]] = {
    StatsKind.AGENT: _agent_key,
    StatsKind.FRANCHISE: _franchise_key,
    StatsKind.BANK: _bank_key,
}

# Invoices carry no polymorphic association; franchise invoices match the direct link only.
_INVOICE_KEYS: dict[StatsKind, Callable[[Any], str]] = {
    **_OWNER_KEYS,
    StatsKind.FRANCHISE: _franchise_invoice_key,
}


def _parse_kind(kind: StatsKind | str) -> StatsKind | None:
    try:
        return StatsKind(kind)
    except ValueError:
        return None


def stats_for(
    kind: StatsKind | str,
    target_id: Any,
    *,
    leads: Iterable[Any] = (),
    invoices: Iterable[Any] = (),
) -> StatRecord:
    target_key = key_of(target_id)
    if not target_key:
        return StatRecord()

    parsed = _parse_kind(kind)
    owner_key = _OWNER_KEYS.get(parsed) if parsed is not None else None
    if owner_key is None:
        if parsed is None:
            logger.warning("No lead ownership rule for stats kind %r", kind)
        return StatRecord()

    total = active = completed = 0
    amount_sum = ZERO
    for lead in leads or ():
        if owner_key(lead) != target_key:
            continue
        total += 1
        status = status_of(lead)
        if status == COMPLETED_STATUS:
            completed += 1
        if status not in CLOSED_STATUSES:
            active += 1
        amount_sum += _as_decimal(field_of(lead, "loanAmount"))

    invoice_key = _INVOICE_KEYS[parsed]
    commission_sum = ZERO
    for invoice in invoices or ():
        if invoice_key(invoice) == target_key:
            commission_sum += commission_of(invoice)

    return StatRecord(
        total=total,
        active=active,
        completed=completed,
        commission_sum=commission_sum,
        amount_sum=amount_sum,
    )


_MANAGING_KINDS = {
    StatsKind.FRANCHISE: OwnerKind.FRANCHISE,
    StatsKind.RELATIONSHIP_MANAGER: OwnerKind.RELATIONSHIP_MANAGER,
}


def rollup(
    kind: StatsKind | str,
    entities: Iterable[Any],
    *,
    leads: Iterable[Any] = (),
    invoices: Iterable[Any] = (),
    agents: Iterable[Any] = (),
) -> Rollup:
    """Per-entity stat rows for a list page, plus totals across the rows."""
    parsed = StatsKind(kind)
    leads = list(leads or ())
    invoices = list(invoices or ())
    agents = list(agents or ())
    owner_kind = _MANAGING_KINDS.get(parsed)

    rows: list[RollupRow] = []
    totals = StatRecord()
    agent_total = 0
    for entity in entities or ():
        entity_id = key_of(entity)
        if not entity_id:
            continue
        stats = stats_for(parsed, entity_id, leads=leads, invoices=invoices)
        agent_count = None
        if owner_kind is not None:
            agent_count = len(managed_agents(Owner(kind=owner_kind, id=entity_id), agents))
            agent_total += agent_count
        rows.append(
            RollupRow(id=entity_id, name=ref_name(entity), stats=stats, agent_count=agent_count)
        )
        totals = totals + stats

    return Rollup(
        kind=parsed,
        rows=rows,
        totals=totals,
        agent_count=agent_total if owner_kind is not None else None,
    )

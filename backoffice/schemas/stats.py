from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class StatRecordDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int = 0
    active: int = 0
    completed: int = 0
    commission_sum: Decimal = Decimal("0")
    amount_sum: Decimal = Decimal("0")


class RollupRowDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    stats: StatRecordDTO
    agent_count: int | None = None


class RollupDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    rows: list[RollupRowDTO]
    totals: StatRecordDTO
    agent_count: int | None = None

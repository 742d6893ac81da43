from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict
from groupsplit.models.settlement import SettlementStatus
from groupsplit.schemas.expense import Money

class SettlementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    group_id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    status: SettlementStatus
    created_at: datetime | None = None
    paid_at: datetime | None = None

class SettlementSummaryOut(BaseModel):
    settlements: list[SettlementOut]
    total_owed: Decimal
    total_owing: Decimal
    net_balance: Decimal

class PaymentCreate(BaseModel):
    to_user_id: int
    amount: Money

class Transfer(BaseModel):
    from_id: int
    to_id: int
    amount: Decimal

class GroupBalanceOut(BaseModel):
    net: dict[int, Decimal]
    settlements: list[Transfer]

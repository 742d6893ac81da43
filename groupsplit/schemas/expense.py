from decimal import Decimal
from typing import Annotated, List
from pydantic import BaseModel, Field

Money = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]

class SplitInput(BaseModel):
    user_id: int
    amount: Money

class ExpenseCreate(BaseModel):
    group_id : int
    amount : Money
    description : str | None = None
    splits: List[SplitInput] = Field(min_length=1)

class ExpenseUpdate(BaseModel):
    amount : Money
    description : str | None = None
    splits: List[SplitInput] = Field(min_length=1)

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from groupsplit.db.session import get_db
from groupsplit.core.dependencies import get_current_user, check_group_membership
from groupsplit.schemas.settlement import SettlementOut, SettlementSummaryOut
from groupsplit.services.settlement_service import (
    get_user_settlement_summary,
    list_user_settlements,
    get_settlement_details,
    mark_settlement_paid,
)

router = APIRouter()

@router.get("/summary", response_model=SettlementSummaryOut)
async def summary(
    group_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    if group_id is not None:
        await check_group_membership(db, group_id, user.id)
    return await get_user_settlement_summary(db, user.id, group_id=group_id)

@router.get("/mine", response_model=list[SettlementOut])
async def my_settlements(db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await list_user_settlements(db, user.id)

@router.get("/{settlement_id}", response_model=SettlementOut)
async def details(settlement_id: int, db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await get_settlement_details(db, settlement_id, user.id)

@router.patch("/{settlement_id}/paid", response_model=SettlementOut)
async def mark_paid(settlement_id: int, db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await mark_settlement_paid(db, settlement_id, user.id)

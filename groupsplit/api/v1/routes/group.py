from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from groupsplit.db.session import get_db
from groupsplit.services.group_services import create_group, add_member, list_group_for_user, list_group_members, delete_group, remove_member, exit_group, edit_group, get_group_for_member, list_group_expenses
from groupsplit.services.settlement_service import get_group_balances, list_group_settlements, recompute_settlements, record_payment
from groupsplit.schemas.group import GroupCreate, GroupUpdate, GroupMemberOut, GroupOut
from groupsplit.schemas.settlement import GroupBalanceOut, PaymentCreate, SettlementOut
from groupsplit.schemas.user import UserOut
from groupsplit.models.settlement import SettlementStatus
from groupsplit.core.dependencies import get_current_user, check_group_membership

router = APIRouter()

@router.post("/", response_model=GroupOut, status_code=201, description="create new group")
async def create_new_group(
    data:GroupCreate,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    return await create_group(db, data.name, user.id)

@router.get("/my-groups", response_model=list[GroupOut], description="get user groups")
async def my_groups(db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await list_group_for_user(db, user.id)

@router.get("/{group_id}", response_model=GroupOut)
async def get_one(group_id: int, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await get_group_for_member(db, group_id, current_user.id)

@router.patch("/{group_id}", response_model=GroupOut)
async def edit(group_id: int, data: GroupUpdate, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await edit_group(db, group_id, current_user.id, data)

@router.delete("/{group_id}")
async def del_group(group_id: int, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await delete_group(db, group_id=group_id, user_id=current_user.id)

@router.post("/{group_id}/add/{user_id}", response_model=GroupMemberOut, status_code=201)
async def add_user_to_group(
    group_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user)
):
    return await add_member(db, group_id, user_id, current_user.id)

@router.delete("/{group_id}/remove/{user_id}")
async def rem_mem(group_id: int, user_id : int, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await remove_member(db, group_id=group_id, user_id=user_id, admin_id=current_user.id)

@router.delete("/{group_id}/exit")
async def exit_from_group(group_id: int, db:AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await exit_group(db, group_id=group_id, user_id=current_user.id)

@router.get("/{group_id}/group-members", response_model=list[UserOut])
async def group_members(group_id: int, db: AsyncSession = Depends(get_db), current_user=Depends(get_current_user)):
    return await list_group_members(db, current_user.id, group_id=group_id)

@router.get("/{group_id}/expenses", description="get all expenses of the group")
async def fetch_expenses(
    group_id: int,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    return await list_group_expenses(db, user.id, group_id)

@router.get("/{group_id}/balances", response_model=GroupBalanceOut)
async def group_balances(group_id: int, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    await check_group_membership(db, group_id, current_user.id)
    return await get_group_balances(db, group_id)

@router.get("/{group_id}/settlements", response_model=list[SettlementOut])
async def get_group_settlements(
    group_id: int,
    status: SettlementStatus | None = None,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    await check_group_membership(db, group_id, user.id)
    return await list_group_settlements(db, group_id, status=status)

@router.post("/{group_id}/settlements/recompute", response_model=list[SettlementOut])
async def recompute(
    group_id: int,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    await check_group_membership(db, group_id, user.id)
    return await recompute_settlements(db, group_id)

@router.post("/{group_id}/settlements/payments", response_model=SettlementOut, status_code=201)
async def add_payment(
    group_id: int,
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user)
):
    return await record_payment(db, group_id, user.id, data)

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from fastapi import HTTPException
from groupsplit.models.expense import Expense
from groupsplit.models.expense_split import ExpenseSplit
from groupsplit.models.group import Group
from groupsplit.models.group_member import GroupMember
from groupsplit.models.user import User
from groupsplit.core.dependencies import check_group_membership
from groupsplit.core.utils import money
from groupsplit.services.settlement_service import refresh_group_settlements

logger = logging.getLogger(__name__)

async def _validate_splits(db: AsyncSession, group_id: int, amount, splits):
    user_ids = [s.user_id for s in splits]

    if len(user_ids) != len(set(user_ids)):
        raise HTTPException(400, "Duplicate users found in splits")

    if any(s.amount <= 0 for s in splits):
        raise HTTPException(400, "Split amounts must be positive")

    total = sum(s.amount for s in splits)
    if total != amount:
        raise HTTPException(400, "Sum of split amounts must equal total amount")

    q = select(GroupMember.user_id).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id.in_(user_ids)
    )
    res = await db.execute(q)
    members = res.scalars().all()

    if len(members) != len(user_ids):
        raise HTTPException(400, "Some users in split are not group members")

async def _get_expense(db: AsyncSession, expense_id: int) -> Expense:
    q = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(Expense.id == expense_id)
    )
    res = await db.execute(q)
    expense = res.scalar_one_or_none()

    if not expense:
        raise HTTPException(404, "Expense not found")

    return expense

def serialize_expense(expense: Expense, splits):
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "description": expense.description,
        "amount": money(expense.amount),
        "paid_by": expense.paid_by,
        "created_at": expense.created_at,
        "splits": [
            {"user_id": s.user_id, "amount": money(s.amount)}
            for s in sorted(splits, key=lambda s: s.user_id)
        ]
    }

async def create_expense(db: AsyncSession, data, paid_by: int):
    # 1. Payer must be a member of the group
    q = select(Group.id).where(Group.id == data.group_id)
    if (await db.execute(q)).scalar_one_or_none() is None:
        raise HTTPException(404, "Group doesn't exist")

    await check_group_membership(db, data.group_id, paid_by)

    # 2. Splits must be valid for this group
    await _validate_splits(db, data.group_id, data.amount, data.splits)

    # 3. Create expense and its splits
    expense = Expense(
        group_id=data.group_id,
        paid_by=paid_by,
        amount=data.amount,
        description=data.description
    )
    db.add(expense)
    await db.flush()  # gives expense.id

    splits = [
        ExpenseSplit(expense_id=expense.id, user_id=s.user_id, amount=s.amount)
        for s in data.splits
    ]
    db.add_all(splits)

    await db.commit()

    logger.info("Expense created", extra={"group_id": expense.group_id, "expense_id": expense.id, "user_id": paid_by})

    result = serialize_expense(expense, splits)
    await refresh_group_settlements(db, expense.group_id)
    return result

async def edit_expense(db: AsyncSession, data, expense_id: int, user_id: int):
    expense = await _get_expense(db, expense_id)

    if expense.paid_by != user_id:
        raise HTTPException(403, "You can't edit this expense")

    await check_group_membership(db, expense.group_id, user_id)
    await _validate_splits(db, expense.group_id, data.amount, data.splits)

    expense.amount = data.amount
    expense.description = data.description

    # delete-orphan cascade removes the old splits on flush
    expense.splits = [
        ExpenseSplit(user_id=s.user_id, amount=s.amount)
        for s in data.splits
    ]

    await db.commit()

    logger.info("Expense updated", extra={"group_id": expense.group_id, "expense_id": expense_id, "user_id": user_id})

    result = serialize_expense(expense, expense.splits)
    await refresh_group_settlements(db, expense.group_id)
    return result

async def delete_expense(db: AsyncSession, user_id: int, expense_id: int):
    expense = await _get_expense(db, expense_id)

    res = await db.execute(select(Group.created_by).where(Group.id == expense.group_id))
    admin_id = res.scalar_one_or_none()

    # payer or group admin
    if expense.paid_by != user_id and admin_id != user_id:
        raise HTTPException(403, "You cannot delete this expense")

    group_id = expense.group_id

    # splits go with it (delete-orphan cascade)
    await db.delete(expense)
    await db.commit()

    logger.info("Expense deleted", extra={"group_id": group_id, "expense_id": expense_id, "user_id": user_id})

    await refresh_group_settlements(db, group_id)
    return {"status": "deleted"}

async def get_my_expenses(
    db: AsyncSession,
    user_id: int
):
    q = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(Expense.paid_by == user_id)
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )

    res = await db.execute(q)
    return [serialize_expense(e, e.splits) for e in res.scalars().all()]

async def get_expense_by_id(
    db: AsyncSession,
    expense_id: int,
    user_id: int
):
    q = (
        select(
            Expense,
            User.id.label("payer_id"),
            User.name.label("payer_name")
        )
        .options(selectinload(Expense.splits))
        .join(User, User.id == Expense.paid_by)
        .where(Expense.id == expense_id)
    )

    res = await db.execute(q)
    row = res.first()

    if not row:
        raise HTTPException(404, "Expense not found")

    expense = row.Expense

    await check_group_membership(db, expense.group_id, user_id)

    result = serialize_expense(expense, expense.splits)
    result["paid_by"] = {
        "id": row.payer_id,
        "name": row.payer_name
    }
    return result

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from fastapi import HTTPException
from groupsplit.models.group import Group
from groupsplit.models.group_member import GroupMember
from groupsplit.models.expense import Expense
from groupsplit.models.user import User
from groupsplit.core.dependencies import check_group_membership
from groupsplit.services.expense_services import serialize_expense
from groupsplit.services import notifications

logger = logging.getLogger(__name__)

async def get_group(db: AsyncSession, group_id: int) -> Group:
    res = await db.execute(select(Group).where(Group.id == group_id))
    group = res.scalar_one_or_none()

    if not group:
        raise HTTPException(404, "Group doesn't exist")

    return group

async def _get_admin_group(db: AsyncSession, group_id: int, user_id: int, action: str) -> Group:
    group = await get_group(db, group_id)

    if group.created_by != user_id:
        raise HTTPException(403, f"Only the group admin can {action}")

    return group

async def create_group(db: AsyncSession, name:str, creator_id:int):
    group = Group(name=name, created_by=creator_id)
    db.add(group)
    await db.flush()

    member = GroupMember(group_id=group.id, user_id=creator_id)
    db.add(member)

    await db.commit()
    logger.info("Group created", extra={"group_id": group.id, "user_id": creator_id})
    return group

async def get_group_for_member(db: AsyncSession, group_id: int, user_id: int):
    group = await get_group(db, group_id)
    await check_group_membership(db, group_id, user_id)
    return group

async def edit_group(db: AsyncSession, group_id: int, user_id: int, data):
    group = await _get_admin_group(db, group_id, user_id, "edit the group")

    if data.name:
        group.name = data.name

    await db.commit()
    return group

async def delete_group(db: AsyncSession, group_id: int, user_id: int):
    q = (
        select(Group)
        .options(
            selectinload(Group.members),
            selectinload(Group.expenses).selectinload(Expense.splits),
            selectinload(Group.settlements)
        )
        .where(Group.id == group_id)
    )
    res = await db.execute(q)
    group = res.scalar_one_or_none()

    if not group:
        raise HTTPException(404, "Group doesn't exist")

    if group.created_by != user_id:
        raise HTTPException(403, "Only the group admin can delete the group")

    await db.delete(group)
    await db.commit()

    logger.info("Group deleted", extra={"group_id": group_id, "user_id": user_id})
    return {"status": "deleted"}

async def add_member(db: AsyncSession, group_id: int, user_id: int, admin_id: int):
    await _get_admin_group(db, group_id, admin_id, "add members")

    res = await db.execute(select(User.id).where(User.id == user_id))
    if res.scalar_one_or_none() is None:
        raise HTTPException(404, "User not found")

    check_q = select(GroupMember).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == user_id
    )

    existing = await db.execute(check_q)

    if existing.scalar_one_or_none():
        raise HTTPException(400, "User is already a member of this group")

    new_member = GroupMember(group_id=group_id, user_id=user_id)
    db.add(new_member)
    await db.commit()

    await notifications.notify(user_id, {
        "type": "member_added",
        "group_id": group_id,
        "added_by": admin_id
    })

    return new_member

async def _get_membership(db: AsyncSession, group_id: int, user_id: int, missing: str) -> GroupMember:
    res = await db.execute(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id
        )
    )
    member = res.scalar_one_or_none()

    if not member:
        raise HTTPException(404, missing)

    return member

async def remove_member(db: AsyncSession, group_id: int, user_id: int, admin_id: int):
    # TODO: block removal while the member still has pending settlements
    await _get_admin_group(db, group_id, admin_id, "remove members")

    if user_id == admin_id:
        raise HTTPException(400, "Transfer admin role before removing yourself")

    member = await _get_membership(db, group_id, user_id, "User is not a member of this group")

    await db.delete(member)
    await db.commit()

    return {"status": "member_removed"}

async def exit_group(db: AsyncSession, group_id: int, user_id: int):
    group = await get_group(db, group_id)

    if group.created_by == user_id:
        raise HTTPException(400, "Group admin cannot exit. Transfer admin role first.")

    member = await _get_membership(db, group_id, user_id, "You are not a member of this group")

    await db.delete(member)
    await db.commit()

    return {"status": "exited_group"}

async def list_group_for_user(db: AsyncSession, user_id: int):
    q = (
        select(Group)
        .join(GroupMember)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.id)
    )
    result = await db.execute(q)
    return result.scalars().all()

async def list_group_members(db:AsyncSession, user_id:int, group_id: int):
    await check_group_membership(db, group_id, user_id)

    members__q = (
        select(User)
        .join(GroupMember, User.id == GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.id)
    )

    result = await db.execute(members__q)
    return result.scalars().all()

async def list_group_expenses(
        db: AsyncSession,
        user_id: int,
        group_id: int
):
    await check_group_membership(db, group_id, user_id)

    expense_q = (
        select(
            Expense,
            User.id.label("payer_id"),
            User.name.label("payer_name")
        )
        .options(selectinload(Expense.splits))
        .join(User, User.id == Expense.paid_by)
        .where(Expense.group_id == group_id)
        .order_by(Expense.created_at, Expense.id)
    )

    expense_res = await db.execute(expense_q)

    result = []
    for row in expense_res.all():
        item = serialize_expense(row.Expense, row.Expense.splits)
        item["paid_by"] = {
            "id": row.payer_id,
            "name": row.payer_name
        }
        result.append(item)

    return result

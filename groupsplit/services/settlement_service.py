"""
Settlement recompute protocol and settlement reads/transitions.

PENDING settlements are derived from the ledger and replaced wholesale by
``recompute_settlements``. PAID settlements are history: recompute never
deletes or edits them, and the accumulator folds them in as transfers that
already happened. After every successful recompute, replaying the group's
expenses, splits and PAID settlements through the accumulator and matcher
gives exactly its PENDING rows.
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from groupsplit.core.config import settings
from groupsplit.core.dependencies import check_group_membership, is_group_member
from groupsplit.core.exceptions import ArithmeticInvariantViolation, StorageError, ValidationError
from groupsplit.core.ledger import accumulate_balances, match_debts
from groupsplit.core.utils import ZERO, require_id, to_decimal
from groupsplit.models.expense import Expense
from groupsplit.models.settlement import Settlement, SettlementStatus
from groupsplit.services import notifications

logger = logging.getLogger(__name__)

# first key of the two-int pg_advisory_xact_lock form, the group id is the second
ADVISORY_LOCK_NAMESPACE = 7201

_group_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def _group_lock(group_id: int):
    if not settings.RECOMPUTE_LOCKING:
        yield
        return

    lock = _group_locks.get(group_id)
    if lock is None:
        lock = asyncio.Lock()
        _group_locks[group_id] = lock

    async with lock:
        yield


async def _acquire_advisory_lock(db: AsyncSession, group_id: int):
    # Held until the surrounding transaction commits or rolls back.
    if not settings.RECOMPUTE_LOCKING:
        return
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(select(func.pg_advisory_xact_lock(ADVISORY_LOCK_NAMESPACE, group_id)))


async def load_group_ledger(db: AsyncSession, group_id: int):
    """Expenses with splits and PAID settlements of a group, oldest first."""
    expenses_q = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(Expense.group_id == group_id)
        .order_by(Expense.created_at, Expense.id)
    )
    expenses = (await db.execute(expenses_q)).scalars().all()

    paid_q = (
        select(Settlement)
        .where(
            Settlement.group_id == group_id,
            Settlement.status == SettlementStatus.PAID
        )
        .order_by(Settlement.created_at, Settlement.id)
    )
    paid = (await db.execute(paid_q)).scalars().all()

    return expenses, paid


async def get_group_balances(db: AsyncSession, group_id: int):
    """Live balances and the plan the matcher would produce right now. Writes nothing."""
    require_id(group_id, "group_id")

    expenses, paid = await load_group_ledger(db, group_id)
    balances = accumulate_balances(expenses, paid)
    transfers = match_debts(balances)

    return {
        "net": {uid: amt for uid, amt in balances.items() if amt != 0},
        "settlements": [
            {"from_id": f, "to_id": t, "amount": a}
            for f, t, a in transfers
        ]
    }


async def recompute_settlements(db: AsyncSession, group_id: int) -> List[Settlement]:
    """
    Replace the group's PENDING settlements with a fresh matcher run.

    The ledger read, the delete of old PENDING rows and the insert of new ones
    share one transaction. Raises ``StorageError`` if the database work fails
    and ``ArithmeticInvariantViolation`` if the ledger is not zero-sum; in both
    cases nothing is written.
    """
    require_id(group_id, "group_id")

    try:
        async with _group_lock(group_id):
            await _acquire_advisory_lock(db, group_id)

            expenses, paid = await load_group_ledger(db, group_id)
            balances = accumulate_balances(expenses, paid)
            transfers = match_debts(balances)

            await db.execute(
                delete(Settlement)
                .where(
                    Settlement.group_id == group_id,
                    Settlement.status == SettlementStatus.PENDING
                )
                .execution_options(synchronize_session="fetch")
            )

            pending = [
                Settlement(
                    group_id=group_id,
                    from_user_id=f,
                    to_user_id=t,
                    amount=amt,
                    status=SettlementStatus.PENDING
                )
                for f, t, amt in transfers
            ]
            db.add_all(pending)
            await db.commit()
    except ArithmeticInvariantViolation:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(f"Could not replace pending settlements for group {group_id}", group_id) from e

    logger.info(
        "Recomputed settlements",
        extra={"group_id": group_id, "pending": len(pending), "paid": len(paid)},
    )
    return pending


async def refresh_group_settlements(db: AsyncSession, group_id: int) -> bool:
    """
    Best-effort recompute run after a ledger mutation has committed.

    A failure leaves the previous PENDING set in place until the next
    successful recompute; it is logged and reported as ``False``, never raised.
    Runs in its own session so a rollback here cannot expire the caller's objects.
    """
    async with AsyncSession(bind=db.bind, expire_on_commit=False) as session:
        try:
            await recompute_settlements(session, group_id)
        except (StorageError, ArithmeticInvariantViolation):
            logger.exception("Settlement refresh failed", extra={"group_id": group_id})
            return False
        except ValidationError:
            raise
        except Exception:
            # driver errors (e.g. refused connections) are not wrapped by SQLAlchemy
            logger.exception("Settlement refresh failed", extra={"group_id": group_id})
            return False
    return True


async def get_user_settlement_summary(db: AsyncSession, user_id: int, group_id: Optional[int] = None):
    require_id(user_id, "user_id")
    if group_id is not None:
        require_id(group_id, "group_id")

    q = select(Settlement).where(
        Settlement.status == SettlementStatus.PENDING,
        or_(Settlement.from_user_id == user_id, Settlement.to_user_id == user_id)
    )
    if group_id is not None:
        q = q.where(Settlement.group_id == group_id)
    q = q.order_by(Settlement.created_at, Settlement.id)

    rows = (await db.execute(q)).scalars().all()

    total_owed = ZERO
    total_owing = ZERO

    for s in rows:
        if s.from_user_id == user_id:
            total_owing += to_decimal(s.amount)
        else:
            total_owed += to_decimal(s.amount)

    return {
        "settlements": rows,
        "total_owed": total_owed,
        "total_owing": total_owing,
        "net_balance": total_owed - total_owing
    }


async def list_group_settlements(db: AsyncSession, group_id: int, status: Optional[SettlementStatus] = None):
    q = select(Settlement).where(Settlement.group_id == group_id)
    if status is not None:
        q = q.where(Settlement.status == status)
    q = q.order_by(Settlement.created_at.desc(), Settlement.id.desc())

    res = await db.execute(q)
    return res.scalars().all()


async def list_user_settlements(db: AsyncSession, user_id: int):
    q = (
        select(Settlement)
        .where(or_(Settlement.from_user_id == user_id, Settlement.to_user_id == user_id))
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    res = await db.execute(q)
    return res.scalars().all()


async def get_settlement(db: AsyncSession, settlement_id: int) -> Settlement:
    res = await db.execute(select(Settlement).where(Settlement.id == settlement_id))
    settlement = res.scalar_one_or_none()

    if not settlement:
        raise HTTPException(404, "Settlement not found")

    return settlement


async def get_settlement_details(db: AsyncSession, settlement_id: int, user_id: int):
    settlement = await get_settlement(db, settlement_id)

    if user_id not in (settlement.from_user_id, settlement.to_user_id):
        raise HTTPException(403, "Access denied")

    return settlement


async def mark_settlement_paid(db: AsyncSession, settlement_id: int, user_id: int):
    settlement = await get_settlement(db, settlement_id)

    # Only the debtor can say the debt is paid
    if settlement.from_user_id != user_id:
        raise HTTPException(403, "Only the payer can mark settlement as paid")

    if settlement.status == SettlementStatus.PAID:
        raise HTTPException(400, "Settlement is already paid")

    res = await db.execute(
        update(Settlement)
        .where(
            Settlement.id == settlement_id,
            Settlement.from_user_id == user_id,
            Settlement.status == SettlementStatus.PENDING
        )
        .values(status=SettlementStatus.PAID, paid_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )

    if res.rowcount != 1:
        # replaced by a concurrent recompute since we read it
        await db.rollback()
        raise HTTPException(409, "Settlement changed, refresh and try again")

    await db.commit()
    await db.refresh(settlement)

    logger.info(
        "Settlement marked paid",
        extra={"settlement_id": settlement.id, "group_id": settlement.group_id, "user_id": user_id},
    )

    await refresh_group_settlements(db, settlement.group_id)

    await notifications.notify(settlement.to_user_id, {
        "type": "settlement_paid",
        "settlement_id": settlement.id,
        "group_id": settlement.group_id,
        "from_user_id": settlement.from_user_id,
        "amount": str(settlement.amount)
    })

    return settlement


async def record_payment(db: AsyncSession, group_id: int, from_user_id: int, data):
    """Record a payment made outside the plan as an already PAID settlement."""
    await check_group_membership(db, group_id, from_user_id)

    if data.to_user_id == from_user_id:
        raise HTTPException(400, "Cannot record a payment to yourself")

    if not await is_group_member(db, group_id, data.to_user_id):
        raise HTTPException(400, "Both users must be members of the group")

    settlement = Settlement(
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=data.to_user_id,
        amount=data.amount,
        status=SettlementStatus.PAID,
        paid_at=datetime.now(timezone.utc)
    )
    db.add(settlement)
    await db.commit()
    await db.refresh(settlement)

    logger.info(
        "Payment recorded",
        extra={"settlement_id": settlement.id, "group_id": group_id, "user_id": from_user_id},
    )

    await refresh_group_settlements(db, group_id)

    await notifications.notify(data.to_user_id, {
        "type": "payment_recorded",
        "settlement_id": settlement.id,
        "group_id": group_id,
        "from_user_id": from_user_id,
        "amount": str(settlement.amount)
    })

    return settlement

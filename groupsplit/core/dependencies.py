import logging
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from groupsplit.db.session import get_db
from groupsplit.core.jwt_config import decode_token, get_token_from_cookie
from groupsplit.models.group_member import GroupMember
from groupsplit.services.user_service import get_user_by_id, get_user_by_email
from groupsplit.core.security import verify_password

logger = logging.getLogger(__name__)

async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)):
    token = get_token_from_cookie(request=request)
    payload = decode_token(token)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    user_id = payload.get("sub")

    if user_id is None or not str(user_id).isdigit():
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    user = await get_user_by_id(db, int(user_id))

    if user is None:
        logger.info("Token for unknown user", extra={"user_id": user_id})
        raise HTTPException(status_code=401, detail="User not found")

    return user

async def authenticate_user(db:AsyncSession, email:str, password:str):
    user = await get_user_by_email(db, email)
    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    return user

async def is_group_member(db: AsyncSession, group_id: int, user_id: int) -> bool:
    q = select(GroupMember.id).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == user_id
    )
    res = await db.execute(q)
    return res.scalar_one_or_none() is not None

async def check_group_membership(db: AsyncSession, group_id: int, user_id: int):
    if not await is_group_member(db, group_id, user_id):
        raise HTTPException(403, "You are not a member of this group")

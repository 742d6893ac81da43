from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession
from groupsplit.db.session import get_db
from groupsplit.schemas.user import UserCreate, UserOut, UserLogin
from groupsplit.models.user import User
from groupsplit.services.user_service import create_user, get_user_by_id, set_refresh_token
from groupsplit.core.dependencies import authenticate_user, get_current_user
from groupsplit.core.jwt_config import create_access_token, create_refresh_token, decode_token

router = APIRouter()

@router.post("/register", response_model=UserOut, status_code=201)
async def register_user(data:UserCreate, db:AsyncSession = Depends(get_db)):
    return await create_user(db, data)

@router.post("/login", response_model=UserOut)
async def login_user(data:UserLogin, response : Response, db:AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, data.email, data.password)

    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    access = create_access_token({"sub": str(user.id)})
    refresh = create_refresh_token({"sub": str(user.id)})

    await set_refresh_token(db, user, refresh)

    response.set_cookie(
        key="refresh_token",
        value=refresh,
        httponly=True,
        samesite="lax"
    )

    response.set_cookie(
        key="access_token",
        value=access,
        httponly=True,
        samesite="lax"
    )

    return user

@router.get("/me", response_model=UserOut)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user

@router.post("/refresh", response_model=UserOut)
async def refresh_tokens(
    response: Response,
    db: AsyncSession = Depends(get_db),
    refresh_cookie: str | None = Cookie(None, alias="refresh_token")
):
    if refresh_cookie is None:
        raise HTTPException(status_code=401, detail="Refresh token missing")

    payload = decode_token(refresh_cookie)
    sub = payload.get("sub")
    if payload.get("type") != "refresh" or not sub or not str(sub).isdigit():
        raise HTTPException(401, "Invalid refresh token")

    user = await get_user_by_id(db, int(sub))

    if not user:
        raise HTTPException(401, "User not found")

    # a rotated or logged-out token no longer matches the stored one
    if user.refresh_token != refresh_cookie:
        raise HTTPException(401, "Refresh token revoked or rotated")

    new_access = create_access_token({"sub": str(user.id)})
    new_refresh = create_refresh_token({"sub": str(user.id)})

    await set_refresh_token(db, user, new_refresh)

    response.set_cookie(
        key="refresh_token",
        value=new_refresh,
        httponly=True,
        samesite="lax"
    )

    response.set_cookie(
        key="access_token",
        value=new_access,
        httponly=True,
        samesite="lax"
    )

    return user

@router.post("/logout")
async def logout_user(response: Response, db: AsyncSession = Depends(get_db), current_user : User = Depends(get_current_user)):
    await set_refresh_token(db, current_user, None)

    response.delete_cookie("refresh_token")
    response.delete_cookie("access_token")
    return {"message":"Logged out"}

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from decimal import Decimal
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from groupsplit.core.jwt_config import create_access_token
from groupsplit.db.base import Base
from groupsplit.db.session import get_db
from groupsplit.main import app
from groupsplit.models.group import Group
from groupsplit.models.group_member import GroupMember
from groupsplit.models.user import User
from groupsplit.schemas.expense import ExpenseCreate, SplitInput
from groupsplit.services import notifications
from groupsplit.services.expense_services import create_expense


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so separate sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def clear_subscribers():
    notifications.registry.clear()
    yield
    notifications.registry.clear()


@pytest.fixture
def make_user(db):
    """Factory for users; password hashes are placeholders unless a test logs in."""
    async def _make(name, email=None, password_hash="not-a-real-hash"):
        user = User(name=name, email=email or f"{name.lower()}@example.com", password_hash=password_hash)
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest.fixture
def make_group(db):
    """Factory for a group whose first member is the admin."""
    async def _make(admin, *members, name="Trip"):
        group = Group(name=name, created_by=admin.id)
        db.add(group)
        await db.flush()
        for user in (admin, *members):
            db.add(GroupMember(group_id=group.id, user_id=user.id))
        await db.commit()
        return group
    return _make


@pytest.fixture
def add_expense(db):
    """Create an expense through the service, which also refreshes settlements."""
    async def _add(group, payer, amount, shares, description=None):
        data = ExpenseCreate(
            group_id=group.id,
            amount=Decimal(amount),
            description=description,
            splits=[SplitInput(user_id=u.id, amount=Decimal(a)) for u, a in shares],
        )
        return await create_expense(db, data, payer.id)
    return _add


@pytest.fixture
async def alice(make_user):
    return await make_user("Alice")


@pytest.fixture
async def bob(make_user):
    return await make_user("Bob")


@pytest.fixture
async def carol(make_user):
    return await make_user("Carol")


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}

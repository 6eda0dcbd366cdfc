"""Shared fixtures for API tests."""

from datetime import timedelta
from types import SimpleNamespace

import fakeredis
import fakeredis.aioredis
import pytest

from api.app import clock
from api.app import db as app_db
from api.app.authz import Principal
from api.app.domain import Role, UserStatus
from api.app.models import OrderingSettings, University, User
from api.app.repos_sqlalchemy import menu_repo_sql

TZ = "Asia/Ho_Chi_Minh"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    engine = app_db.create_test_engine()
    await app_db.init_models(engine)
    app_db.configure(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    async with app_db.get_session() as sess:
        yield sess


@pytest.fixture
def redis():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer())


def as_principal(user: User) -> Principal:
    return Principal(
        user_id=user.id,
        role=Role(user.role),
        tenant_id=user.university_id,
        status=UserStatus(user.status),
        name=user.name,
        email=user.email,
    )


@pytest.fixture
async def world(session):
    """Two universities with a student body and staff each."""

    uni_a = University(code="AH", name="Alpha Hall", timezone=TZ)
    uni_b = University(code="BK", name="Beta Kitchen", timezone=TZ)
    session.add_all([uni_a, uni_b])
    await session.flush()
    session.add(OrderingSettings(university_id=uni_a.id))

    def user(name, role, uni, status=UserStatus.APPROVED, phone=None):
        u = User(
            name=name,
            email=f"{name}@example.edu",
            phone=phone,
            role=role.value,
            status=status.value,
            university_id=uni.id if uni else None,
        )
        session.add(u)
        return u

    w = SimpleNamespace(
        uni_a=uni_a,
        uni_b=uni_b,
        student=user("an", Role.STUDENT, uni_a, phone="0901234567"),
        student2=user("binh", Role.STUDENT, uni_a),
        pending_student=user("chi", Role.STUDENT, uni_a, status=UserStatus.PENDING),
        manager=user("dung", Role.MANAGER, uni_a),
        caterer=user("em", Role.CATERER, uni_a),
        admin=user("giang", Role.ADMIN, None),
        student_b=user("hoa", Role.STUDENT, uni_b),
        manager_b=user("khanh", Role.MANAGER, uni_b),
        caterer_b=user("linh", Role.CATERER, uni_b),
    )
    await session.commit()
    return w


@pytest.fixture
def p(world):
    """Principals for every seeded user, keyed like ``world``."""

    return SimpleNamespace(
        **{
            key: as_principal(value)
            for key, value in vars(world).items()
            if isinstance(value, User)
        }
    )


@pytest.fixture
def order_day():
    """A date comfortably inside every default ordering rule."""

    return clock.local_today(TZ) + timedelta(days=3)


@pytest.fixture
async def dish(session, world):
    return await menu_repo_sql.create_item(
        session,
        world.uni_a.id,
        {
            "name": "Pho Bo",
            "description": "Beef noodle soup",
            "base_price": "40.00",
            "categories": ["lunch", "Dinner"],
            "variants": [
                {"name": "Regular", "price": "45.00", "is_default": True},
                {"name": "Large", "price": "55.00"},
            ],
        },
    )


@pytest.fixture
async def salad(session, world):
    return await menu_repo_sql.create_item(
        session,
        world.uni_a.id,
        {
            "name": "Garden Salad",
            "base_price": "25.00",
            "categories": ["LUNCH"],
            "is_vegetarian": True,
            "is_vegan": True,
            "variants": [{"name": "Bowl", "price": "25.00", "is_default": True}],
        },
    )


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, notification):
        self.sent.append(notification)


class FailingNotifier:
    async def send(self, notification):
        raise RuntimeError("gateway down")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()

from datetime import timedelta

import jwt
import pytest
from fastapi.security import HTTPAuthorizationCredentials
from prometheus_client import REGISTRY
from sqlalchemy import select

from api.app import auth, clock
from api.app.audit import recent_events
from api.app.errors import AccessDenied, Unauthorized
from api.app.models import SessionRevocation, User
from api.app.revocation import force_logout_all_students, latest_checkpoint


def bearer(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


async def resolve(session, token):
    return await auth.get_current_principal(bearer(token), session)


async def logout_at(session, monkeypatch, principal, when, reason=None):
    monkeypatch.setattr(clock, "utcnow", lambda: when)
    try:
        return await force_logout_all_students(session, principal, reason)
    finally:
        monkeypatch.undo()


@pytest.mark.anyio
async def test_token_round_trip(session, world):
    token = auth.create_access_token(world.student)
    principal = await resolve(session, token)
    assert principal.user_id == world.student.id
    assert principal.tenant_id == world.uni_a.id
    assert principal.is_student


@pytest.mark.anyio
async def test_missing_and_bad_tokens(session, world):
    with pytest.raises(Unauthorized):
        await auth.get_current_principal(None, session)
    with pytest.raises(Unauthorized):
        await resolve(session, "not-a-jwt")
    forged = jwt.encode({"sub": str(world.student.id), "iat": 1, "exp": 4102444800}, "wrong", algorithm="HS256")
    with pytest.raises(Unauthorized):
        await resolve(session, forged)


@pytest.mark.anyio
async def test_expired_token(session, world):
    token = auth.create_access_token(
        world.student,
        expires_delta=timedelta(minutes=5),
        issued_at=clock.utcnow() - timedelta(hours=1),
    )
    with pytest.raises(Unauthorized) as exc:
        await resolve(session, token)
    assert exc.value.message == "token expired"


@pytest.mark.anyio
async def test_force_logout_revokes_earlier_student_tokens(session, world, p, monkeypatch):
    now = clock.utcnow()
    student_token = auth.create_access_token(world.student, issued_at=now - timedelta(seconds=60))
    manager_token = auth.create_access_token(world.manager, issued_at=now - timedelta(seconds=60))

    result = await logout_at(session, monkeypatch, p.admin, now - timedelta(seconds=10), "exam week")
    assert result["affected_students"] == 4
    assert result["version"] == 1

    with pytest.raises(Unauthorized) as exc:
        await resolve(session, student_token)
    assert exc.value.details == {"reason": "forced_logout"}

    staff = await resolve(session, manager_token)
    assert staff.user_id == world.manager.id

    fresh = await resolve(session, auth.create_access_token(world.student))
    assert fresh.user_id == world.student.id


@pytest.mark.anyio
async def test_force_logout_records_ledger_and_audit(session, world, p, monkeypatch):
    before = REGISTRY.get_sample_value("forced_logouts_total") or 0
    first = await logout_at(session, monkeypatch, p.admin, clock.utcnow() - timedelta(seconds=30))
    second = await force_logout_all_students(session, p.admin, "again")
    assert second["version"] == first["version"] + 1
    assert REGISTRY.get_sample_value("forced_logouts_total") == before + 2

    entries = (await session.scalars(select(SessionRevocation).order_by(SessionRevocation.id))).all()
    assert [e.reason for e in entries] == [None, "again"]
    assert all(e.actor_id == world.admin.id for e in entries)
    assert await latest_checkpoint(session) == clock.as_utc(entries[-1].revoked_at)

    stamped = (
        await session.scalars(select(User.forced_logout_at).where(User.role == "STUDENT"))
    ).all()
    assert len(stamped) == 4 and all(stamped)
    untouched = await session.scalar(select(User.forced_logout_at).where(User.id == world.caterer.id))
    assert untouched is None

    (event, _) = await recent_events(session, action="FORCE_LOGOUT_ALL_STUDENTS")
    assert event.actor == "giang@example.edu"
    assert event.meta["reason"] == "again"
    assert event.meta["affected_students"] == 4


@pytest.mark.anyio
@pytest.mark.parametrize("who", ["manager", "caterer", "student"])
async def test_only_admin_can_force_logout(session, p, who):
    with pytest.raises(AccessDenied):
        await force_logout_all_students(session, getattr(p, who))
    assert await latest_checkpoint(session) is None

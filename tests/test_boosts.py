"""apply_boost: ownership, single active boost per post, credit compensation."""

from datetime import datetime, timedelta

import pytest

from nguvuhire.core.exceptions import (
    AlreadyBoostedError,
    BadRequestError,
    ForbiddenError,
    InsufficientCreditsError,
    NotFoundError,
)
from nguvuhire.models.boost_record import BoostRecord
from nguvuhire.services import boosts as boosts_service
from nguvuhire.services import credits as credits_service


@pytest.mark.parametrize(
    "boost_type,days",
    [("standard", 7), ("premium", 14), ("ultra", 30), ("mega", 7), (None, 7)],
)
def test_duration_days(boost_type, days):
    assert boosts_service.duration_days(boost_type) == days

async def test_standard_boost_then_second_attempt_rejected(make_user, make_post):
    user = await make_user()
    post = await make_post(user)
    uid, pid = str(user.id), str(post.id)

    record, balance = await boosts_service.apply_boost(pid, "job", uid, "standard")
    assert balance.credits_available == 0
    assert record.is_active
    assert record.boost_end - record.boost_start == timedelta(days=7)

    with pytest.raises(AlreadyBoostedError):
        await boosts_service.apply_boost(pid, "job", uid, "standard")
    assert await BoostRecord.find(BoostRecord.post_id == pid).count() == 1

async def test_already_boosted_wins_over_credit_balance(make_user, make_post):
    user = await make_user()
    post = await make_post(user)
    uid, pid = str(user.id), str(post.id)
    await credits_service.grant(uid, 5, "purchase")
    await boosts_service.apply_boost(pid, "job", uid, "premium")

    with pytest.raises(AlreadyBoostedError):
        await boosts_service.apply_boost(pid, "job", uid, "ultra")
    balance = await credits_service.get_balance(uid)
    assert balance.credits_available == 5

async def test_non_owner_is_forbidden_even_with_credits(make_user, make_post):
    owner = await make_user()
    other = await make_user(email="other@example.com")
    post = await make_post(owner, post_type="availability")
    await credits_service.grant(str(other.id), 3, "purchase")

    with pytest.raises(ForbiddenError):
        await boosts_service.apply_boost(str(post.id), "availability", str(other.id))
    balance = await credits_service.get_balance(str(other.id))
    assert balance.credits_available == 4

async def test_missing_post_and_bad_type(make_user):
    user = await make_user()
    with pytest.raises(NotFoundError):
        await boosts_service.apply_boost("64b7f0c2a1b2c3d4e5f60718", "job", str(user.id))
    with pytest.raises(NotFoundError):
        await boosts_service.apply_boost("not-an-id", "job", str(user.id))
    with pytest.raises(BadRequestError):
        await boosts_service.apply_boost("64b7f0c2a1b2c3d4e5f60718", "event", str(user.id))

async def test_insufficient_credits(make_user, make_post):
    user = await make_user()
    first = await make_post(user, title="first")
    second = await make_post(user, title="second")
    await boosts_service.apply_boost(str(first.id), "job", str(user.id))
    with pytest.raises(InsufficientCreditsError):
        await boosts_service.apply_boost(str(second.id), "job", str(user.id))

async def test_expired_boost_does_not_block(make_user, make_post):
    user = await make_user()
    post = await make_post(user)
    uid, pid = str(user.id), str(post.id)
    await credits_service.grant(uid, 1, "purchase")
    record, _ = await boosts_service.apply_boost(pid, "job", uid)
    await record.set({BoostRecord.boost_end: datetime.utcnow() - timedelta(minutes=1)})

    new_record, balance = await boosts_service.apply_boost(pid, "job", uid)
    assert new_record.is_active
    assert balance.credits_available == 0
    old = await BoostRecord.get(record.id)
    assert old.is_active is False
    assert old.active_slot == str(record.id)

async def test_expire_boosts_sweep(make_user, make_post):
    user = await make_user()
    post = await make_post(user)
    record, _ = await boosts_service.apply_boost(str(post.id), "job", str(user.id))
    assert await boosts_service.expire_boosts() == 0
    ended = await boosts_service.expire_boosts(now=record.boost_end + timedelta(seconds=1))
    assert ended == 1
    assert await boosts_service.get_active_boost(str(post.id)) is None

async def test_failed_insert_refunds_credit(make_user, make_post, monkeypatch):
    user = await make_user()
    post = await make_post(user)

    async def broken_insert(self, *args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(BoostRecord, "insert", broken_insert)
    with pytest.raises(RuntimeError):
        await boosts_service.apply_boost(str(post.id), "job", str(user.id))
    balance = await credits_service.get_balance(str(user.id))
    assert balance.credits_available == 1
    assert balance.credits_used == 0

async def test_concurrent_boost_loses_on_active_slot(make_user, make_post, monkeypatch):
    user = await make_user()
    post = await make_post(user)
    uid, pid = str(user.id), str(post.id)
    await credits_service.grant(uid, 1, "purchase")
    await boosts_service.apply_boost(pid, "job", uid)

    async def no_active_boost(post_id):
        # the other request has not committed yet when this one checks
        return None

    monkeypatch.setattr(boosts_service, "get_active_boost", no_active_boost)
    with pytest.raises(AlreadyBoostedError):
        await boosts_service.apply_boost(pid, "job", uid)
    balance = await credits_service.get_balance(uid)
    assert balance.credits_available == 1
    assert await BoostRecord.find(BoostRecord.post_id == pid).count() == 1

"""Tests for the Redis session store."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pickup_beacon.adapters.redis_session_store import RedisSessionStore
from pickup_beacon.domain.sessions import Participant, SessionRecord
from pickup_beacon.errors import TransientStoreError
from pickup_beacon.services.visuals import visual_from_code
from tests.conftest import FakeClock


@dataclass
class FakeRedis:
    values: dict[str, str] = field(default_factory=dict)
    ttls: dict[str, int] = field(default_factory=dict)
    closed: bool = False

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.values.pop(key, None) is not None else 0

    async def exists(self, key: str) -> int:
        return 1 if key in self.values else 0

    async def aclose(self) -> None:
        self.closed = True


class UnreachableRedis(FakeRedis):
    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        raise RedisConnectionError("connection refused")

    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("connection refused")


def _record(clock: FakeClock) -> SessionRecord:
    now = clock()
    return SessionRecord(
        code="ABC123",
        created_at=now,
        expires_at=now + timedelta(hours=2),
        driver=Participant(last_update=now, latitude=0.0, longitude=0.0, name="Sam"),
        passenger=Participant(last_update=now),
        visual=visual_from_code("ABC123"),
    )


def test_put_writes_json_under_prefixed_key(clock: FakeClock) -> None:
    redis = FakeRedis()
    store = RedisSessionStore(client=redis)
    record = _record(clock)

    asyncio.run(store.put("ABC123", record, 7200))

    assert redis.ttls["session:ABC123"] == 7200
    payload = json.loads(redis.values["session:ABC123"])
    assert payload["driver"]["name"] == "Sam"
    assert payload["driver"]["latitude"] == 0.0
    assert payload["passenger"]["latitude"] is None
    assert asyncio.run(store.get("ABC123")) == record
    assert asyncio.run(store.exists("ABC123"))


def test_add_only_claims_free_codes(clock: FakeClock) -> None:
    store = RedisSessionStore(client=FakeRedis())

    assert asyncio.run(store.add("ABC123", _record(clock), 7200))
    assert not asyncio.run(store.add("ABC123", _record(clock), 7200))
    assert not asyncio.run(store.add("XYZ789", _record(clock), 0))


def test_put_with_non_positive_ttl_deletes(clock: FakeClock) -> None:
    redis = FakeRedis()
    store = RedisSessionStore(client=redis)
    asyncio.run(store.put("ABC123", _record(clock), 60))

    asyncio.run(store.put("ABC123", _record(clock), 0))

    assert "session:ABC123" not in redis.values


def test_unreadable_record_is_treated_as_missing() -> None:
    redis = FakeRedis(values={"session:ABC123": "{not json"})
    store = RedisSessionStore(client=redis)

    assert asyncio.run(store.get("ABC123")) is None


def test_delete_and_close(clock: FakeClock) -> None:
    redis = FakeRedis()
    store = RedisSessionStore(client=redis)
    asyncio.run(store.put("ABC123", _record(clock), 60))

    asyncio.run(store.delete("ABC123"))
    asyncio.run(store.close())

    assert not asyncio.run(store.exists("ABC123"))
    assert redis.closed


def test_redis_errors_become_transient_store_errors(clock: FakeClock) -> None:
    store = RedisSessionStore(client=UnreachableRedis())

    with pytest.raises(TransientStoreError):
        asyncio.run(store.get("ABC123"))
    with pytest.raises(TransientStoreError):
        asyncio.run(store.put("ABC123", _record(clock), 60))
    with pytest.raises(TransientStoreError):
        asyncio.run(store.add("ABC123", _record(clock), 60))

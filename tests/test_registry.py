import re
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from voice_gateway.models.registry import SessionRegistry


@pytest.fixture
def registry():
    return SessionRegistry()


def test_next_call_id_format(registry):
    first = registry.next_call_id()
    second = registry.next_call_id()

    assert re.fullmatch(r"call_\d{13}_1", first)
    assert re.fullmatch(r"call_\d{13}_2", second)


def test_register_and_unregister(registry):
    session = MagicMock()
    registry.register("call_1", session)

    assert registry.sessions() == [session]
    assert registry.active_count == 1
    assert registry.total_count == 1

    assert registry.unregister("call_1") is True
    assert registry.sessions() == []
    assert registry.snapshot() == {"total": 1, "active": 0}


def test_unregister_is_idempotent(registry):
    registry.register("call_1", MagicMock())
    assert registry.unregister("call_1") is True
    assert registry.unregister("call_1") is False
    assert registry.active_count == 0


def test_duplicate_register_rejected(registry):
    registry.register("call_1", MagicMock())
    with pytest.raises(ValueError):
        registry.register("call_1", MagicMock())
    assert registry.total_count == 1


def test_counters_are_consistent_across_threads(registry):
    def worker(n):
        for i in range(200):
            call_id = f"call_{n}_{i}"
            registry.register(call_id, object())
            registry.unregister(call_id)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.snapshot() == {"total": 1600, "active": 0}


@pytest.mark.asyncio
async def test_shutdown_closes_every_session(registry):
    first = MagicMock(call_id="call_1")
    first.close = AsyncMock()
    second = MagicMock(call_id="call_2")
    second.close = AsyncMock(side_effect=RuntimeError("boom"))
    registry.register("call_1", first)
    registry.register("call_2", second)

    await registry.shutdown("server_shutdown")

    first.close.assert_awaited_once_with("server_shutdown")
    second.close.assert_awaited_once_with("server_shutdown")


@pytest.mark.asyncio
async def test_shutdown_with_no_sessions(registry):
    await registry.shutdown()
    assert registry.active_count == 0

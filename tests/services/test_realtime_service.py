import asyncio

import pytest

from app.services import realtime_service


@pytest.mark.asyncio
async def test_scheduled_emit_is_held_until_sent(silence_sockets):
    before = set(realtime_service._pending_emits)

    realtime_service.emit_to_user("u1", "cartUpdated", {"items": []})
    scheduled = realtime_service._pending_emits - before
    assert len(scheduled) == 1

    for _ in range(3):
        await asyncio.sleep(0)

    silence_sockets.assert_awaited_once_with("cartUpdated", {"items": []}, room="user:u1")
    assert not scheduled & realtime_service._pending_emits


def test_emit_without_running_loop_is_dropped(silence_sockets):
    realtime_service.emit_global("productUpdated", {})
    silence_sockets.assert_not_called()

from __future__ import annotations

import asyncio

import pytest
from acp import RequestError

from acpquest.client.correlator import RequestCorrelator
from acpquest.protocol.frames import INTERNAL_ERROR, Response


@pytest.mark.asyncio
async def test_response_resolves_matching_request():
    correlator = RequestCorrelator()
    future = correlator.register(1)
    assert 1 in correlator

    assert correlator.resolve(Response(id=1, result={"stopReason": "end_turn"})) is True
    assert await future == {"stopReason": "end_turn"}
    assert len(correlator) == 0


@pytest.mark.asyncio
async def test_error_response_rejects_with_peer_error():
    correlator = RequestCorrelator()
    future = correlator.register(2)
    correlator.resolve(Response(id=2, error={"code": -32602, "message": "bad", "data": {"field": "cwd"}}))

    with pytest.raises(RequestError) as excinfo:
        await future
    assert excinfo.value.code == -32602
    assert str(excinfo.value) == "bad"
    assert excinfo.value.data == {"field": "cwd"}


@pytest.mark.asyncio
async def test_error_without_code_uses_internal_error():
    correlator = RequestCorrelator()
    future = correlator.register(3)
    correlator.resolve(Response(id=3, error={"message": 17}))

    with pytest.raises(RequestError) as excinfo:
        await future
    assert excinfo.value.code == INTERNAL_ERROR


@pytest.mark.asyncio
async def test_duplicate_response_is_ignored():
    correlator = RequestCorrelator()
    future = correlator.register(1)
    assert correlator.resolve(Response(id=1, result="first")) is True
    assert correlator.resolve(Response(id=1, result="second")) is False
    assert await future == "first"


@pytest.mark.asyncio
async def test_unknown_response_is_ignored():
    correlator = RequestCorrelator()
    pending = correlator.register(1)
    assert correlator.resolve(Response(id=99, result={})) is False
    assert not pending.done()
    assert correlator.pending_ids == (1,)


@pytest.mark.asyncio
async def test_each_response_settles_at_most_one_request():
    correlator = RequestCorrelator()
    futures = {rid: correlator.register(rid) for rid in (1, 2, 3)}
    for rid in (2, 2, 3, 7, 1, 3):
        correlator.resolve(Response(id=rid, result=rid))
    assert {rid: fut.result() for rid, fut in futures.items()} == {1: 1, 2: 2, 3: 3}
    assert len(correlator) == 0


@pytest.mark.asyncio
async def test_register_rejects_live_duplicate_id():
    correlator = RequestCorrelator()
    correlator.register("req-1")
    with pytest.raises(ValueError):
        correlator.register("req-1")


@pytest.mark.asyncio
async def test_discard_cancels_waiter():
    correlator = RequestCorrelator()
    future = correlator.register(5)
    assert correlator.discard(5) is True
    assert correlator.discard(5) is False
    with pytest.raises(asyncio.CancelledError):
        await future
    assert correlator.resolve(Response(id=5, result={})) is False


@pytest.mark.asyncio
async def test_unanswered_request_stays_pending():
    correlator = RequestCorrelator()
    future = correlator.register(1)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(asyncio.shield(future), timeout=0.01)
    assert 1 in correlator

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from mealstock.infra.idempotency import (
    idempotency_clear_key,
    idempotency_precheck,
    idempotency_store_result,
    run_ledger_mutation,
)


def make_request(idem_key=None, body=b'{"items": null}', path="/api/shopping/lists/l1/restock"):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": idem_key} if idem_key else {}
    req.method = "POST"
    req.url.path = path
    req.body = AsyncMock(return_value=body)
    return req


@pytest.mark.asyncio
async def test_idempotency_precheck_missing_header():
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(make_request(), workspace_id="ws1", route_key="test")
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_idempotency_flow(fake_redis):
    idem_key = str(uuid.uuid4())
    req = make_request(idem_key)

    # 1. First call proceeds
    res = await idempotency_precheck(req, workspace_id="ws1", route_key="shopping_restock")
    assert isinstance(res, tuple)
    rkey, rhash, body = res
    assert rkey == f"mealstock:idemp:ws1:shopping_restock:{idem_key}"
    assert b"items" in body

    data = json.loads(await fake_redis.get(rkey))
    assert data["state"] == "processing"

    # 2. Concurrent retry while the first is in flight
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(req, workspace_id="ws1", route_key="shopping_restock")
    assert exc.value.status_code == 409

    # 3. Store result
    await idempotency_store_result(rkey, rhash, status=200, body={"restocked": []})
    data = json.loads(await fake_redis.get(rkey))
    assert data["state"] == "done"
    assert data["status"] == 200
    assert await fake_redis.ttl(rkey) > 60

    # 4. Replay
    replay = await idempotency_precheck(req, workspace_id="ws1", route_key="shopping_restock")
    assert isinstance(replay, JSONResponse)
    assert json.loads(replay.body) == {"restocked": []}
    assert replay.status_code == 200


@pytest.mark.asyncio
async def test_key_reused_with_other_payload_conflicts():
    idem_key = str(uuid.uuid4())
    rkey, rhash, _ = await idempotency_precheck(make_request(idem_key), workspace_id="ws1", route_key="r")
    await idempotency_store_result(rkey, rhash, status=200, body={})

    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(
            make_request(idem_key, body=b'{"items": []}'), workspace_id="ws1", route_key="r"
        )
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_keys_are_scoped_per_workspace_and_route():
    idem_key = "same-key"
    first = await idempotency_precheck(make_request(idem_key), workspace_id="ws1", route_key="r")
    other_ws = await idempotency_precheck(make_request(idem_key), workspace_id="ws2", route_key="r")
    other_route = await idempotency_precheck(make_request(idem_key), workspace_id="ws1", route_key="r2")

    assert len({first[0], other_ws[0], other_route[0]}) == 3


@pytest.mark.asyncio
async def test_clear_key_releases_processing_lock(fake_redis):
    req = make_request("retry")
    rkey, _, _ = await idempotency_precheck(req, workspace_id="ws1", route_key="r")

    await idempotency_clear_key(rkey)

    assert await fake_redis.get(rkey) is None
    assert isinstance(await idempotency_precheck(req, workspace_id="ws1", route_key="r"), tuple)


@pytest.mark.asyncio
async def test_run_ledger_mutation_applies_once():
    db = MagicMock()
    calls = []

    def mutate():
        calls.append(1)
        return {"deducted": [], "skipped": []}

    req = make_request("consume-1", body=b"")
    first = await run_ledger_mutation(req, db, workspace_id="ws1", route_key="inventory_consume", mutate=mutate)
    replay = await run_ledger_mutation(req, db, workspace_id="ws1", route_key="inventory_consume", mutate=mutate)

    assert first == {"deducted": [], "skipped": []}
    assert isinstance(replay, JSONResponse)
    assert json.loads(replay.body) == first
    assert calls == [1]
    db.commit.assert_called_once()


@pytest.mark.asyncio
async def test_run_ledger_mutation_failure_rolls_back_and_releases_key(fake_redis):
    db = MagicMock()

    def mutate():
        raise RuntimeError("boom")

    req = make_request("consume-2", body=b"")
    with pytest.raises(RuntimeError):
        await run_ledger_mutation(req, db, workspace_id="ws1", route_key="inventory_consume", mutate=mutate)

    db.rollback.assert_called_once()
    db.commit.assert_not_called()
    assert await fake_redis.keys("mealstock:idemp:*") == []

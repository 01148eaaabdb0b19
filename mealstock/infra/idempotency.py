"""Idempotency-Key support for ledger-mutating endpoints.

Consuming a planned meal or restocking from a shopping list writes inventory
transactions, so a client retry must never apply twice. A request with a
given key takes a short processing lock (SET NX); its response is stored for
a day and replayed to retries. Reusing a key with a different payload, or
while the first request is in flight, is a 409.

Keys and request hashes are scoped to the workspace: the same key sent to
another household is an unrelated request.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, NamedTuple, Optional, Union

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from . import redis_client

logger = logging.getLogger("mealstock.idempotency")

DONE_TTL_SEC = 60 * 60 * 24
PROCESSING_TTL_SEC = 60

STATE_PROCESSING = "processing"
STATE_DONE = "done"


class LedgerSlot(NamedTuple):
    """A claimed key: where to store the result and what it must match."""
    redis_key: str
    request_hash: str
    body: bytes


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hash_request(workspace_id: str, method: str, path: str, body_bytes: bytes) -> str:
    h = hashlib.sha256()
    for part in (workspace_id, method, path):
        h.update(part.encode("utf-8"))
        h.update(b"|")
    h.update(body_bytes or b"")
    return h.hexdigest()


def _idemp_redis_key(workspace_id: str, route_key: str, idem_key: str) -> str:
    return f"mealstock:idemp:{workspace_id}:{route_key}:{idem_key}"


def _still_processing() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail="Request with this Idempotency-Key is still processing. Retry shortly.",
    )


async def idempotency_precheck(
    request: Request, *, workspace_id: str, route_key: str
) -> Union[LedgerSlot, JSONResponse]:
    """Claim the request's Idempotency-Key.

    Returns a LedgerSlot when the caller should run the mutation, or a
    JSONResponse replaying the stored result of an earlier run.
    """
    idem_key = request.headers.get("Idempotency-Key")
    if not idem_key:
        raise HTTPException(status_code=400, detail="Missing Idempotency-Key header")

    body_bytes = await request.body()
    req_hash = _hash_request(workspace_id, request.method, request.url.path, body_bytes)

    rkey = _idemp_redis_key(workspace_id, route_key, idem_key)
    r = await redis_client.get_redis()

    raw = await r.get(rkey)
    if raw:
        record = json.loads(raw)
        if record.get("request_hash") != req_hash:
            raise HTTPException(status_code=409, detail="Idempotency-Key reused with different request payload")
        if record.get("state") == STATE_DONE:
            logger.info(f"Replaying {route_key} result for key {idem_key} in workspace {workspace_id}")
            return JSONResponse(content=record.get("body"), status_code=int(record.get("status", 200)))
        raise _still_processing()

    record = {
        "state": STATE_PROCESSING,
        "request_hash": req_hash,
        "started_at": _iso_now(),
    }
    if not await r.set(rkey, json.dumps(record), ex=PROCESSING_TTL_SEC, nx=True):
        # another request won the race
        raise _still_processing()

    return LedgerSlot(rkey, req_hash, body_bytes)


async def idempotency_store_result(redis_key: str, req_hash: str, *, status: int, body: Any):
    r = await redis_client.get_redis()
    record = {
        "state": STATE_DONE,
        "status": int(status),
        "body": body,
        "request_hash": req_hash,
        "completed_at": _iso_now(),
    }
    await r.set(redis_key, json.dumps(record), ex=DONE_TTL_SEC)


async def idempotency_clear_key(redis_key: str):
    """Release the processing lock after a failed request so it can be retried."""
    try:
        r = await redis_client.get_redis()
        await r.delete(redis_key)
    except RedisError as e:
        logger.warning(f"Could not clear idempotency key {redis_key}: {e}")


async def run_ledger_mutation(
    request: Request,
    db: Session,
    *,
    workspace_id: str,
    route_key: str,
    mutate: Callable[[], Any],
    status: int = 200,
):
    """Run `mutate` at most once per Idempotency-Key and commit it.

    `mutate` performs the ledger writes and returns the JSON-ready response
    body. On failure the transaction is rolled back and the key released, so
    the client may retry with the same key.
    """
    slot = await idempotency_precheck(request, workspace_id=workspace_id, route_key=route_key)
    if isinstance(slot, JSONResponse):
        return slot

    try:
        body = mutate()
        db.commit()
    except Exception:
        db.rollback()
        await idempotency_clear_key(slot.redis_key)
        raise

    await idempotency_store_result(slot.redis_key, slot.request_hash, status=status, body=body)
    return body
